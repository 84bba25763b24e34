"""
Mainstream - Drop Blocks Tests
==============================

Block insertion, ordering and gallery images.
"""

from uuid import uuid4

from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.core.models import Drop, User
from tests.conftest import make_asset, make_drop


async def _add(client: AsyncClient, drop_id, headers: dict, **body) -> dict:
    response = await client.post(f"/api/v1/drops/{drop_id}/blocks", headers=headers, json=body)
    assert response.status_code == 201, response.text
    return response.json()


async def _listed(client: AsyncClient, drop_id, headers: dict) -> list[dict]:
    response = await client.get(f"/api/v1/drops/{drop_id}/blocks", headers=headers)
    return response.json()


def _contents(blocks: list[dict]) -> list[tuple]:
    return [(b["position"], b["content"]) for b in blocks]


# ==========================================================================
# Blocks
# ==========================================================================

class TestBlocks:

    async def test_append_and_insert(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        drop = await make_drop(db_session, test_user)

        first = await _add(client, drop.id, auth_headers, type="text", content="Intro")
        await _add(client, drop.id, auth_headers, type="divider")
        await _add(client, drop.id, auth_headers, type="heading", content="Top", heading_level=1, position=0)

        assert first["position"] == 0
        assert first["display_mode"] == "auto"
        blocks = await _listed(client, drop.id, auth_headers)
        assert [(b["position"], b["type"]) for b in blocks] == [
            (0, "heading"),
            (1, "text"),
            (2, "divider"),
        ]
        assert blocks[0]["heading_level"] == 1

        result = await db_session.execute(select(Drop.use_blocks).where(Drop.id == drop.id))
        assert result.scalar_one() is True

    async def test_position_past_end_appends(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        drop = await make_drop(db_session, test_user)
        await _add(client, drop.id, auth_headers, type="text", content="One")

        block = await _add(client, drop.id, auth_headers, type="text", content="Two", position=9)

        assert block["position"] == 1

    async def test_post_block_carries_asset(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        drop = await make_drop(db_session, test_user)
        asset = await make_asset(db_session, test_user, title="Hero")

        block = await _add(
            client,
            drop.id,
            auth_headers,
            type="featured_post",
            asset_id=str(asset.id),
            display_mode="cover",
            crop_position_y=40,
        )

        assert block["asset"]["title"] == "Hero"
        assert block["display_mode"] == "cover"
        assert block["crop_position_x"] == 50
        assert block["crop_position_y"] == 40

    async def test_validation(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        drop = await make_drop(db_session, test_user)
        url = f"/api/v1/drops/{drop.id}/blocks"

        bad_type = await client.post(url, headers=auth_headers, json={"type": "video"})
        missing_asset = await client.post(
            url, headers=auth_headers, json={"type": "post", "asset_id": str(uuid4())}
        )
        bad_crop = await client.post(
            url, headers=auth_headers, json={"type": "post", "crop_position_x": 150}
        )

        assert bad_type.status_code == 400
        assert missing_asset.status_code == 404
        assert bad_crop.status_code == 422

    async def test_only_creator_edits(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_headers: dict,
    ):
        drop = await make_drop(db_session, test_user, published=True)

        response = await client.post(
            f"/api/v1/drops/{drop.id}/blocks", headers=other_headers, json={"type": "divider"}
        )
        listed = await client.get(f"/api/v1/drops/{drop.id}/blocks", headers=other_headers)

        assert response.status_code == 403
        assert listed.status_code == 200

    async def test_draft_blocks_hidden(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, other_headers: dict
    ):
        drop = await make_drop(db_session, test_user)

        response = await client.get(f"/api/v1/drops/{drop.id}/blocks", headers=other_headers)

        assert response.status_code == 403

    async def test_update(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        drop = await make_drop(db_session, test_user)
        block = await _add(client, drop.id, auth_headers, type="quote", content="Ship it")
        url = f"/api/v1/drops/{drop.id}/blocks/{block['id']}"

        updated = await client.patch(url, headers=auth_headers, json={"content": "Ship it soon"})
        empty = await client.patch(url, headers=auth_headers, json={})

        assert updated.status_code == 200
        assert updated.json()["content"] == "Ship it soon"
        assert updated.json()["type"] == "quote"
        assert empty.status_code == 400

    async def test_null_for_required_field_rejected(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        drop = await make_drop(db_session, test_user)
        asset = await make_asset(db_session, test_user, title="Hero")
        block = await _add(
            client, drop.id, auth_headers, type="post", asset_id=str(asset.id), display_mode="fit"
        )
        url = f"/api/v1/drops/{drop.id}/blocks/{block['id']}"

        rejected = [
            (await client.patch(url, headers=auth_headers, json={field: None})).status_code
            for field in (
                "display_mode",
                "crop_position_x",
                "crop_position_y",
                "gallery_layout",
                "gallery_featured_index",
            )
        ]
        detached = await client.patch(url, headers=auth_headers, json={"asset_id": None})

        assert rejected == [422] * 5
        assert detached.status_code == 200
        assert detached.json()["asset_id"] is None
        assert detached.json()["display_mode"] == "fit"

    async def test_update_missing_block(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        drop = await make_drop(db_session, test_user)

        response = await client.patch(
            f"/api/v1/drops/{drop.id}/blocks/{uuid4()}", headers=auth_headers, json={"content": "?"}
        )

        assert response.status_code == 404

    async def test_delete_closes_gap(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        drop = await make_drop(db_session, test_user)
        blocks = [
            await _add(client, drop.id, auth_headers, type="text", content=text)
            for text in ("a", "b", "c")
        ]

        response = await client.delete(
            f"/api/v1/drops/{drop.id}/blocks/{blocks[1]['id']}", headers=auth_headers
        )

        assert response.status_code == 200
        assert _contents(await _listed(client, drop.id, auth_headers)) == [(0, "a"), (1, "c")]


class TestReorder:

    async def test_listed_first_rest_after(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        drop = await make_drop(db_session, test_user)
        a, b, c, d = [
            await _add(client, drop.id, auth_headers, type="text", content=text)
            for text in ("a", "b", "c", "d")
        ]

        response = await client.put(
            f"/api/v1/drops/{drop.id}/blocks",
            headers=auth_headers,
            json={"block_ids": [c["id"], a["id"]]},
        )

        assert response.status_code == 200
        assert _contents(response.json()) == [(0, "c"), (1, "a"), (2, "b"), (3, "d")]

    async def test_foreign_block_rejected(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        drop = await make_drop(db_session, test_user)
        other = await make_drop(db_session, test_user, title="Other")
        mine = await _add(client, drop.id, auth_headers, type="text", content="mine")
        foreign = await _add(client, other.id, auth_headers, type="text", content="theirs")

        response = await client.put(
            f"/api/v1/drops/{drop.id}/blocks",
            headers=auth_headers,
            json={"block_ids": [foreign["id"], mine["id"]]},
        )

        assert response.status_code == 400


# ==========================================================================
# Gallery Images
# ==========================================================================

class TestGallery:

    async def _gallery(self, client: AsyncClient, db: AsyncSession, user: User, headers: dict):
        drop = await make_drop(db, user)
        block = await _add(client, drop.id, headers, type="image_gallery", gallery_layout="featured")
        assets = [await make_asset(db, user, title=f"Shot {i}") for i in range(3)]
        return drop, block, assets

    async def test_add_skips_duplicates(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        drop, block, assets = await self._gallery(client, db_session, test_user, auth_headers)
        url = f"/api/v1/drops/{drop.id}/blocks/{block['id']}/gallery"

        await client.post(url, headers=auth_headers, json={"asset_ids": [str(assets[0].id)]})
        response = await client.post(
            url,
            headers=auth_headers,
            json={"asset_ids": [str(assets[0].id), str(assets[1].id)]},
        )

        assert response.status_code == 201
        assert [(i["asset"]["title"], i["position"]) for i in response.json()] == [
            ("Shot 0", 0),
            ("Shot 1", 1),
        ]

        blocks = await _listed(client, drop.id, auth_headers)
        assert blocks[0]["gallery_layout"] == "featured"
        assert len(blocks[0]["gallery_images"]) == 2

    async def test_replace(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        drop, block, assets = await self._gallery(client, db_session, test_user, auth_headers)
        url = f"/api/v1/drops/{drop.id}/blocks/{block['id']}/gallery"
        await client.post(url, headers=auth_headers, json={"asset_ids": [str(assets[0].id)]})

        response = await client.put(
            url,
            headers=auth_headers,
            json={"asset_ids": [str(assets[2].id), str(assets[1].id)]},
        )

        assert response.status_code == 200
        assert [i["asset"]["title"] for i in response.json()] == ["Shot 2", "Shot 1"]

    async def test_remove(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        drop, block, assets = await self._gallery(client, db_session, test_user, auth_headers)
        url = f"/api/v1/drops/{drop.id}/blocks/{block['id']}/gallery"
        await client.post(
            url, headers=auth_headers, json={"asset_ids": [str(a.id) for a in assets[:2]]}
        )

        response = await client.delete(
            url, headers=auth_headers, params={"asset_id": str(assets[0].id)}
        )

        assert response.status_code == 200
        listed = (await client.get(url, headers=auth_headers)).json()
        assert [i["asset"]["title"] for i in listed] == ["Shot 1"]

    async def test_validation(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        drop, block, assets = await self._gallery(client, db_session, test_user, auth_headers)
        text = await _add(client, drop.id, auth_headers, type="text", content="Not a gallery")
        url = f"/api/v1/drops/{drop.id}/blocks/{block['id']}/gallery"

        empty = await client.post(url, headers=auth_headers, json={"asset_ids": []})
        missing = await client.post(url, headers=auth_headers, json={"asset_ids": [str(uuid4())]})
        wrong_block = await client.post(
            f"/api/v1/drops/{drop.id}/blocks/{text['id']}/gallery",
            headers=auth_headers,
            json={"asset_ids": [str(assets[0].id)]},
        )

        assert empty.status_code == 400
        assert missing.status_code == 404
        assert wrong_block.status_code == 400
