"""
Mainstream - Streams Tests
==========================

Stream CRUD and visibility, follows, members, bookmarks and stream assets.
"""

from uuid import uuid4

from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.core.models import (
    AssetStream,
    AssetVisibility,
    Notification,
    NotificationType,
    ResourceType,
    Stream,
    StreamRole,
    StreamStatus,
    User,
)
from tests.conftest import headers_for, make_asset, make_stream, make_user


# ==========================================================================
# Listing & Visibility
# ==========================================================================

class TestListStreams:

    async def test_anonymous_sees_public_active_streams(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        await make_stream(db_session, test_user, name="zeta")
        await make_stream(db_session, test_user, name="alpha")
        await make_stream(db_session, test_user, name="hidden", is_private=True)
        await make_stream(db_session, test_user, name="old", status=StreamStatus.ARCHIVED)

        response = await client.get("/api/v1/streams")

        assert response.status_code == 200
        assert [s["name"] for s in response.json()] == ["alpha", "zeta"]

    async def test_members_see_their_private_streams(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        other_headers: dict,
    ):
        await make_stream(
            db_session, test_user, name="team-only", is_private=True,
            members={other_user: StreamRole.MEMBER},
        )
        await make_stream(db_session, test_user, name="secret", is_private=True)

        response = await client.get("/api/v1/streams", headers=other_headers)

        assert [s["name"] for s in response.json()] == ["team-only"]

    async def test_status_filter(self, client: AsyncClient, db_session: AsyncSession, test_user: User):
        await make_stream(db_session, test_user, name="live")
        await make_stream(db_session, test_user, name="old", status=StreamStatus.ARCHIVED)

        archived = await client.get("/api/v1/streams", params={"status": "archived"})
        everything = await client.get("/api/v1/streams", params={"status": "all"})
        invalid = await client.get("/api/v1/streams", params={"status": "deleted"})

        assert [s["name"] for s in archived.json()] == ["old"]
        assert [s["name"] for s in everything.json()] == ["live", "old"]
        assert invalid.status_code == 400

    async def test_asset_counts(self, client: AsyncClient, db_session: AsyncSession, test_user: User):
        stream = await make_stream(db_session, test_user, name="icons")
        await make_asset(db_session, test_user, streams=[stream])
        await make_asset(db_session, test_user, streams=[stream])

        response = await client.get("/api/v1/streams")

        assert response.json()[0]["assetsCount"] == 2


class TestGetStream:

    async def test_by_id_and_name(self, client: AsyncClient, db_session: AsyncSession, test_user: User):
        stream = await make_stream(db_session, test_user, name="branding")

        by_id = await client.get(f"/api/v1/streams/{stream.id}")
        by_name = await client.get("/api/v1/streams/Branding")

        assert by_id.status_code == 200
        assert by_name.json()["id"] == str(stream.id)

    async def test_missing_stream(self, client: AsyncClient):
        response = await client.get("/api/v1/streams/nothing-here")
        assert response.status_code == 404

    async def test_private_stream_access(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        auth_headers: dict,
        other_headers: dict,
    ):
        stream = await make_stream(db_session, test_user, name="vault", is_private=True)

        anonymous = await client.get(f"/api/v1/streams/{stream.id}")
        outsider = await client.get(f"/api/v1/streams/{stream.id}", headers=other_headers)
        owner = await client.get(f"/api/v1/streams/{stream.id}", headers=auth_headers)

        assert anonymous.status_code == 401
        assert outsider.status_code == 403
        assert owner.status_code == 200


# ==========================================================================
# Create / Update / Delete
# ==========================================================================

class TestStreamCrud:

    async def test_create_normalizes_name(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        asset = await make_asset(db_session, test_user)

        response = await client.post(
            "/api/v1/streams",
            headers=auth_headers,
            json={"name": "  Design-System ", "description": "Tokens", "asset_ids": [str(asset.id)]},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "design-system"
        assert data["owner_id"] == str(test_user.id)
        assert data["assetsCount"] == 1

        members = (await client.get(f"/api/v1/streams/{data['id']}/members")).json()
        assert members["members"][0]["role"] == "owner"

    async def test_invalid_name(self, client: AsyncClient, auth_headers: dict):
        for name in ("a", "has space", "double--hyphen", "-edge"):
            response = await client.post("/api/v1/streams", headers=auth_headers, json={"name": name})
            assert response.status_code == 400, name

    async def test_existing_name_returns_existing(
        self, client: AsyncClient, db_session: AsyncSession, other_user: User, auth_headers: dict
    ):
        stream = await make_stream(db_session, other_user, name="mobile")

        response = await client.post("/api/v1/streams", headers=auth_headers, json={"name": "Mobile"})

        assert response.status_code == 200
        assert response.json()["id"] == str(stream.id)
        assert "assetsCount" in response.json()

    async def test_owner_updates(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        stream = await make_stream(db_session, test_user, name="web")

        response = await client.put(
            f"/api/v1/streams/{stream.id}",
            headers=auth_headers,
            json={"name": "web-app", "description": "Marketing site", "is_private": True},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "web-app"
        assert data["description"] == "Marketing site"
        assert data["is_private"] is True

    async def test_update_name_conflict(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        await make_stream(db_session, test_user, name="taken")
        stream = await make_stream(db_session, test_user, name="mine")

        conflict = await client.put(
            f"/api/v1/streams/{stream.id}", headers=auth_headers, json={"name": "taken"}
        )
        invalid = await client.put(
            f"/api/v1/streams/{stream.id}", headers=auth_headers, json={"name": "Not Valid!"}
        )

        assert conflict.status_code == 409
        assert invalid.status_code == 400

    async def test_non_owner_cannot_update_or_delete(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, other_headers: dict
    ):
        stream = await make_stream(db_session, test_user)

        update = await client.put(
            f"/api/v1/streams/{stream.id}", headers=other_headers, json={"description": "x"}
        )
        remove = await client.delete(f"/api/v1/streams/{stream.id}", headers=other_headers)

        assert update.status_code == 403
        assert remove.status_code == 403

    async def test_stream_admin_can_archive(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, other_user: User
    ):
        stream = await make_stream(db_session, test_user, members={other_user: StreamRole.ADMIN})

        response = await client.patch(
            f"/api/v1/streams/{stream.id}",
            headers=headers_for(other_user),
            json={"status": "archived"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "archived"

    async def test_member_cannot_archive(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, other_user: User
    ):
        stream = await make_stream(db_session, test_user, members={other_user: StreamRole.MEMBER})

        response = await client.patch(
            f"/api/v1/streams/{stream.id}",
            headers=headers_for(other_user),
            json={"status": "archived"},
        )

        assert response.status_code == 403

    async def test_invalid_status(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        stream = await make_stream(db_session, test_user)

        response = await client.patch(
            f"/api/v1/streams/{stream.id}", headers=auth_headers, json={"status": "gone"}
        )
        assert response.status_code == 400

    async def test_owner_deletes(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        stream = await make_stream(db_session, test_user)
        stream_id = stream.id
        await make_asset(db_session, test_user, streams=[stream])

        response = await client.delete(f"/api/v1/streams/{stream_id}", headers=auth_headers)

        assert response.status_code == 200
        links = await db_session.execute(select(AssetStream).where(AssetStream.stream_id == stream_id))
        assert links.scalars().all() == []
        db_session.expunge_all()
        assert await db_session.get(Stream, stream_id) is None


# ==========================================================================
# Follows
# ==========================================================================

class TestStreamFollows:

    async def test_follow_notifies_owner(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        other_headers: dict,
    ):
        stream = await make_stream(db_session, test_user, name="type")

        response = await client.post(f"/api/v1/streams/{stream.id}/follow", headers=other_headers)

        assert response.status_code == 201
        result = await db_session.execute(
            select(Notification).where(Notification.recipient_id == test_user.id)
        )
        notification = result.scalar_one()
        assert notification.type == NotificationType.FOLLOW
        assert notification.resource_type == ResourceType.STREAM
        assert notification.resource_id == stream.id

    async def test_follow_twice(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, other_headers: dict
    ):
        stream = await make_stream(db_session, test_user)
        await client.post(f"/api/v1/streams/{stream.id}/follow", headers=other_headers)

        response = await client.post(f"/api/v1/streams/{stream.id}/follow", headers=other_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "Already following"

    async def test_follow_info(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        other_headers: dict,
    ):
        stream = await make_stream(db_session, test_user, name="motion")
        await make_asset(db_session, test_user, streams=[stream])
        await make_asset(db_session, other_user, streams=[stream])
        await make_asset(db_session, other_user, streams=[stream])
        await client.post(f"/api/v1/streams/{stream.id}/follow", headers=other_headers)

        response = await client.get(f"/api/v1/streams/{stream.id}/follow", headers=other_headers)

        data = response.json()
        assert data["isFollowing"] is True
        assert data["followerCount"] == 1
        assert [u["username"] for u in data["followers"]] == ["bob"]
        assert data["contributorCount"] == 2
        assert [u["username"] for u in data["contributors"]] == ["alice", "bob"]
        assert data["assetCount"] == 3

    async def test_unfollow(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, other_headers: dict
    ):
        stream = await make_stream(db_session, test_user)
        await client.post(f"/api/v1/streams/{stream.id}/follow", headers=other_headers)

        await client.delete(f"/api/v1/streams/{stream.id}/follow", headers=other_headers)

        info = (await client.get(f"/api/v1/streams/{stream.id}/follow", headers=other_headers)).json()
        assert info["isFollowing"] is False
        assert info["followerCount"] == 0

    async def test_private_stream_follow_info(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        auth_headers: dict,
        other_headers: dict,
    ):
        stream = await make_stream(db_session, test_user, name="vault", is_private=True)
        url = f"/api/v1/streams/{stream.id}/follow"

        anonymous = await client.get(url)
        outsider = await client.get(url, headers=other_headers)
        owner = await client.get(url, headers=auth_headers)

        assert anonymous.status_code == 401
        assert outsider.status_code == 403
        assert owner.status_code == 200


# ==========================================================================
# Members
# ==========================================================================

class TestStreamMembers:

    async def test_add_member(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        auth_headers: dict,
    ):
        stream = await make_stream(db_session, test_user)

        response = await client.post(
            f"/api/v1/streams/{stream.id}/members",
            headers=auth_headers,
            json={"user_id": str(other_user.id), "role": "admin"},
        )

        assert response.status_code == 201
        assert response.json()["user"]["username"] == "bob"
        assert response.json()["role"] == "admin"

        again = await client.post(
            f"/api/v1/streams/{stream.id}/members",
            headers=auth_headers,
            json={"user_id": str(other_user.id)},
        )
        assert again.status_code == 200

        listing = (await client.get(
            f"/api/v1/streams/{stream.id}/members", headers=headers_for(other_user)
        )).json()
        assert listing["memberCount"] == 2
        assert listing["currentUserRole"] == "admin"
        assert listing["streamId"] == str(stream.id)

    async def test_add_member_validation(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        auth_headers: dict,
    ):
        stream = await make_stream(db_session, test_user)
        url = f"/api/v1/streams/{stream.id}/members"

        owner_role = await client.post(
            url, headers=auth_headers, json={"user_id": str(other_user.id), "role": "owner"}
        )
        owner_again = await client.post(url, headers=auth_headers, json={"user_id": str(test_user.id)})
        missing = await client.post(url, headers=auth_headers, json={"user_id": str(uuid4())})

        assert owner_role.status_code == 400
        assert owner_again.status_code == 400
        assert missing.status_code == 404

    async def test_plain_member_cannot_add(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, other_user: User
    ):
        stream = await make_stream(db_session, test_user, members={other_user: StreamRole.MEMBER})
        newcomer = await make_user(db_session)

        response = await client.post(
            f"/api/v1/streams/{stream.id}/members",
            headers=headers_for(other_user),
            json={"user_id": str(newcomer.id)},
        )

        assert response.status_code == 403

    async def test_member_can_leave(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, other_user: User
    ):
        stream = await make_stream(db_session, test_user, members={other_user: StreamRole.MEMBER})

        response = await client.delete(
            f"/api/v1/streams/{stream.id}/members",
            headers=headers_for(other_user),
            params={"user_id": str(other_user.id)},
        )

        assert response.status_code == 200

    async def test_removal_permissions(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        admin = await make_user(db_session)
        second_admin = await make_user(db_session)
        member = await make_user(db_session)
        stream = await make_stream(
            db_session,
            test_user,
            members={admin: StreamRole.ADMIN, second_admin: StreamRole.ADMIN, member: StreamRole.MEMBER},
        )
        url = f"/api/v1/streams/{stream.id}/members"

        admin_on_admin = await client.delete(
            url, headers=headers_for(admin), params={"user_id": str(second_admin.id)}
        )
        admin_on_member = await client.delete(
            url, headers=headers_for(admin), params={"user_id": str(member.id)}
        )
        owner_on_admin = await client.delete(
            url, headers=headers_for(test_user), params={"user_id": str(second_admin.id)}
        )
        remove_owner = await client.delete(
            url, headers=headers_for(admin), params={"user_id": str(test_user.id)}
        )
        not_member = await client.delete(
            url, headers=headers_for(test_user), params={"user_id": str(member.id)}
        )

        assert admin_on_admin.status_code == 403
        assert admin_on_member.status_code == 200
        assert owner_on_admin.status_code == 200
        assert remove_owner.status_code == 400
        assert not_member.status_code == 404


# ==========================================================================
# Bookmarks
# ==========================================================================

class TestBookmarks:

    async def test_bookmarks_are_positioned(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        stream = await make_stream(db_session, test_user)
        url = f"/api/v1/streams/{stream.id}/bookmarks"

        first = await client.post(url, headers=auth_headers, json={"url": "https://figma.com/a", "title": "Design file"})
        second = await client.post(url, headers=auth_headers, json={"url": "https://notion.so/b"})

        assert first.status_code == 201
        assert first.json()["position"] == 0
        assert second.json()["position"] == 1
        listing = (await client.get(url)).json()
        assert [b["title"] for b in listing] == ["Design file", None]

    async def test_invalid_url(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        stream = await make_stream(db_session, test_user)

        response = await client.post(
            f"/api/v1/streams/{stream.id}/bookmarks", headers=auth_headers, json={"url": "notaurl"}
        )

        assert response.status_code == 400

    async def test_delete_permissions(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        auth_headers: dict,
        other_headers: dict,
    ):
        stream = await make_stream(db_session, test_user)
        stranger = await make_user(db_session)
        bookmark = (await client.post(
            f"/api/v1/streams/{stream.id}/bookmarks",
            headers=other_headers,
            json={"url": "https://example.com/brief"},
        )).json()
        url = f"/api/v1/streams/{stream.id}/bookmarks/{bookmark['id']}"

        forbidden = await client.delete(url, headers=headers_for(stranger))
        by_owner = await client.delete(url, headers=auth_headers)

        assert forbidden.status_code == 403
        assert by_owner.status_code == 200


# ==========================================================================
# Stream Assets
# ==========================================================================

class TestStreamAssets:

    async def test_add_and_list(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers: dict
    ):
        stream = await make_stream(db_session, test_user, name="posters")
        asset = await make_asset(db_session, test_user, title="Poster")
        url = f"/api/v1/streams/{stream.id}/assets"

        added = await client.post(url, headers=auth_headers, json={"asset_id": str(asset.id)})
        again = await client.post(url, headers=auth_headers, json={"asset_id": str(asset.id)})
        missing = await client.post(url, headers=auth_headers, json={"asset_id": str(uuid4())})

        assert added.status_code == 201
        assert again.status_code == 200
        assert missing.status_code == 404
        listing = (await client.get(url)).json()
        assert [a["title"] for a in listing] == ["Poster"]
        assert listing[0]["streams"][0]["name"] == "posters"

    async def test_private_stream_assets_hidden(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, other_headers: dict
    ):
        stream = await make_stream(db_session, test_user, is_private=True)

        response = await client.get(f"/api/v1/streams/{stream.id}/assets", headers=other_headers)

        assert response.status_code == 403

    async def test_unlisted_assets_left_out(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User
    ):
        stream = await make_stream(db_session, test_user, name="posters")
        await make_asset(db_session, test_user, title="Poster", streams=[stream])
        await make_asset(
            db_session,
            test_user,
            title="Draft poster",
            streams=[stream],
            visibility=AssetVisibility.UNLISTED,
        )

        response = await client.get(f"/api/v1/streams/{stream.id}/assets")

        assert [a["title"] for a in response.json()] == ["Poster"]

    async def test_remove_permissions(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        other_headers: dict,
    ):
        stream = await make_stream(db_session, test_user)
        asset = await make_asset(db_session, other_user, streams=[stream])
        stranger = await make_user(db_session)
        url = f"/api/v1/streams/{stream.id}/assets"

        forbidden = await client.delete(
            url, headers=headers_for(stranger), params={"asset_id": str(asset.id)}
        )
        by_uploader = await client.delete(url, headers=other_headers, params={"asset_id": str(asset.id)})
        gone = await client.delete(url, headers=other_headers, params={"asset_id": str(asset.id)})

        assert forbidden.status_code == 403
        assert by_uploader.status_code == 200
        assert gone.status_code == 404
