"""
Mainstream - Search Tests
=========================
"""

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.core.models import AssetVisibility, StreamStatus, User
from tests.conftest import make_asset, make_stream, make_user, utc


class TestSearch:

    async def _corpus(self, db: AsyncSession, user: User) -> None:
        await make_user(db, username="iconsmith", display_name="Ines Smith")
        await make_user(db, username="icon_retired", is_active=False)
        await make_stream(db, user, name="icons", description="Glyphs and pictograms")
        await make_stream(db, user, name="brand", description="Logo and icon guidelines")
        await make_stream(db, user, name="icon-lab", is_private=True)
        await make_stream(db, user, name="old-icons", status=StreamStatus.ARCHIVED)
        await make_asset(db, user, title="Icon grid", created_at=utc(2026, 10, 1))
        await make_asset(db, user, title="New ICON set", created_at=utc(2026, 10, 2))
        await make_asset(db, user, title="Hidden icon", visibility=AssetVisibility.UNLISTED)
        await make_asset(db, user, title="Typography")

    async def test_search_all(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        await self._corpus(db_session, test_user)

        response = await client.get("/api/v1/search", params={"q": "icon"})

        assert response.status_code == 200
        data = response.json()
        assert [a["title"] for a in data["assets"]] == ["New ICON set", "Icon grid"]
        assert [u["username"] for u in data["users"]] == ["iconsmith"]
        assert [s["name"] for s in data["streams"]] == ["brand", "icons"]
        assert data["total"] == 5

    async def test_type_restricts_results(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        await self._corpus(db_session, test_user)

        response = await client.get("/api/v1/search", params={"q": "icon", "type": "streams"})

        data = response.json()
        assert data["assets"] == []
        assert data["users"] == []
        assert len(data["streams"]) == 2

    async def test_matches_display_name(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        response = await client.get("/api/v1/search", params={"q": "archer", "type": "users"})
        assert [u["username"] for u in response.json()["users"]] == ["alice"]

    async def test_wildcards_are_literal(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        await make_asset(db_session, test_user, title="100% done")
        await make_asset(db_session, test_user, title="1000 icons")

        response = await client.get("/api/v1/search", params={"q": "0%", "type": "assets"})

        assert [a["title"] for a in response.json()["assets"]] == ["100% done"]

    async def test_limit(self, client: AsyncClient, db_session: AsyncSession, test_user: User):
        for day in range(1, 4):
            await make_asset(db_session, test_user, title=f"Icon {day}", created_at=utc(2026, 10, day))

        response = await client.get(
            "/api/v1/search", params={"q": "icon", "type": "assets", "limit": "2"}
        )

        assert [a["title"] for a in response.json()["assets"]] == ["Icon 3", "Icon 2"]

    async def test_query_required(self, client: AsyncClient):
        missing = await client.get("/api/v1/search")
        blank = await client.get("/api/v1/search", params={"q": "   "})

        assert missing.status_code == 400
        assert blank.status_code == 400

    async def test_invalid_type(self, client: AsyncClient):
        response = await client.get("/api/v1/search", params={"q": "icon", "type": "drops"})
        assert response.status_code == 400
