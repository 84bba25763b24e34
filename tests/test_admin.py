"""
Mainstream - Admin Tests
========================

User and stream administration plus platform analytics.
"""

from uuid import uuid4

from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.api.admin import format_bytes
from mainstream.core.models import (
    Asset,
    AssetComment,
    AssetLike,
    AssetStream,
    PlatformRole,
    Stream,
    StreamFollow,
    StreamMember,
    StreamRole,
    StreamStatus,
    User,
)
from tests.conftest import headers_for, make_asset, make_stream, make_user, utc


def test_format_bytes():
    assert format_bytes(0) == "0 Bytes"
    assert format_bytes(500) == "500 Bytes"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(5 * 1024 * 1024) == "5 MB"
    assert format_bytes(-1) == "Invalid size"


# ==========================================================================
# Access
# ==========================================================================

class TestAdminAccess:

    async def test_plain_user_forbidden(self, client: AsyncClient, auth_headers: dict):
        for path in ("/api/v1/admin/users", "/api/v1/admin/streams", "/api/v1/admin/analytics"):
            response = await client.get(path, headers=auth_headers)
            assert response.status_code == 403

    async def test_anonymous_unauthorized(self, client: AsyncClient):
        response = await client.get("/api/v1/admin/users")
        assert response.status_code == 401


# ==========================================================================
# User Management
# ==========================================================================

class TestAdminUsers:

    async def test_list_oldest_first(
        self, client: AsyncClient, db_session: AsyncSession, admin_headers: dict
    ):
        await make_user(db_session, username="first", created_at=utc(2020, 1, 1))
        await make_user(db_session, username="retired", is_active=False, created_at=utc(2020, 2, 1))

        response = await client.get("/api/v1/admin/users", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert [u["username"] for u in data["users"]][:2] == ["first", "retired"]
        assert data["total"] == 3
        assert data["hasMore"] is False
        assert data["users"][0]["email"] == "first@example.com"

    async def test_search_by_email(
        self, client: AsyncClient, test_user: User, other_user: User, admin_headers: dict
    ):
        response = await client.get(
            "/api/v1/admin/users", headers=admin_headers, params={"search": "bob@"}
        )
        assert [u["username"] for u in response.json()["users"]] == ["bob"]

    async def test_pagination(
        self, client: AsyncClient, test_user: User, other_user: User, admin_headers: dict
    ):
        response = await client.get(
            "/api/v1/admin/users", headers=admin_headers, params={"limit": "2"}
        )

        data = response.json()
        assert len(data["users"]) == 2
        assert data["hasMore"] is True


class TestRoleChanges:

    async def test_only_owner_changes_roles(
        self, client: AsyncClient, other_user: User, admin_headers: dict
    ):
        response = await client.patch(
            f"/api/v1/admin/users/{other_user.id}",
            headers=admin_headers,
            json={"platform_role": "admin"},
        )
        assert response.status_code == 403

    async def test_promote(self, client: AsyncClient, other_user: User, owner_headers: dict):
        response = await client.patch(
            f"/api/v1/admin/users/{other_user.id}",
            headers=owner_headers,
            json={"platform_role": "admin"},
        )

        assert response.status_code == 200
        assert response.json()["user"]["platform_role"] == "admin"

    async def test_invalid_role(self, client: AsyncClient, other_user: User, owner_headers: dict):
        response = await client.patch(
            f"/api/v1/admin/users/{other_user.id}",
            headers=owner_headers,
            json={"platform_role": "superuser"},
        )
        assert response.status_code == 400

    async def test_owner_cannot_be_demoted(
        self, client: AsyncClient, test_owner: User, owner_headers: dict
    ):
        response = await client.patch(
            f"/api/v1/admin/users/{test_owner.id}",
            headers=owner_headers,
            json={"platform_role": "user"},
        )
        assert response.status_code == 400

    async def test_transfer_ownership(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_owner: User,
        test_admin: User,
        owner_headers: dict,
    ):
        """Promoting to owner demotes the current owner to admin."""
        response = await client.patch(
            f"/api/v1/admin/users/{test_admin.id}",
            headers=owner_headers,
            json={"platform_role": "owner"},
        )

        assert response.status_code == 200
        db_session.expunge_all()
        roles = dict((await db_session.execute(
            select(User.username, User.platform_role).where(User.id.in_([test_owner.id, test_admin.id]))
        )).all())
        assert roles == {"olivia": PlatformRole.ADMIN, "carol": PlatformRole.OWNER}


class TestAdminDeleteUser:

    async def test_delete_user_and_streams(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        other_user: User,
        admin_headers: dict,
    ):
        stream = await make_stream(db_session, other_user, name="bobs-stream")
        user_id, stream_id = other_user.id, stream.id

        response = await client.delete(f"/api/v1/admin/users/{user_id}", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "User bob has been deleted"
        db_session.expunge_all()
        assert (await db_session.execute(select(User).where(User.id == user_id))).scalar_one_or_none() is None
        assert (await db_session.execute(select(Stream).where(Stream.id == stream_id))).scalar_one_or_none() is None

    async def test_cannot_delete_self(
        self, client: AsyncClient, test_admin: User, admin_headers: dict
    ):
        response = await client.delete(f"/api/v1/admin/users/{test_admin.id}", headers=admin_headers)
        assert response.status_code == 400

    async def test_cannot_delete_owner(
        self, client: AsyncClient, test_owner: User, admin_headers: dict
    ):
        response = await client.delete(f"/api/v1/admin/users/{test_owner.id}", headers=admin_headers)
        assert response.status_code == 400

    async def test_only_owner_deletes_admins(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict,
        owner_headers: dict,
    ):
        second_admin = await make_user(db_session, username="dave", role=PlatformRole.ADMIN)

        by_admin = await client.delete(f"/api/v1/admin/users/{second_admin.id}", headers=admin_headers)
        by_owner = await client.delete(f"/api/v1/admin/users/{second_admin.id}", headers=owner_headers)

        assert by_admin.status_code == 403
        assert by_owner.status_code == 200

    async def test_missing_user(self, client: AsyncClient, admin_headers: dict):
        response = await client.delete(f"/api/v1/admin/users/{uuid4()}", headers=admin_headers)
        assert response.status_code == 404


class TestUserInsight:

    async def test_details(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        admin_headers: dict,
    ):
        await make_stream(db_session, test_user, name="icons")
        first = await make_asset(
            db_session, test_user, title="Older", file_size=1024, created_at=utc(2026, 10, 1)
        )
        await make_asset(
            db_session, test_user, title="Newer", file_size=512, created_at=utc(2026, 10, 2)
        )
        db_session.add(AssetLike(asset_id=first.id, user_id=other_user.id))
        db_session.add(AssetComment(asset_id=first.id, user_id=test_user.id, content="Notes"))
        await db_session.commit()

        response = await client.get(
            f"/api/v1/admin/users/{test_user.id}/details", headers=admin_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["username"] == "alice"
        assert data["stats"] == {
            "uploads": 2,
            "likes_given": 0,
            "likes_received": 1,
            "comments": 1,
            "followers": 0,
            "following": 0,
            "streams_owned": 1,
            "total_views": 0,
            "storage_bytes": 1536,
            "storage_formatted": "1.5 KB",
        }
        assert [a["title"] for a in data["recent_uploads"]] == ["Newer", "Older"]

    async def test_activity_timeline(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        admin_headers: dict,
    ):
        mine = await make_asset(db_session, test_user, title="Mine", created_at=utc(2026, 10, 1))
        theirs = await make_asset(db_session, other_user, title="Theirs", created_at=utc(2026, 9, 1))
        db_session.add(AssetComment(
            asset_id=theirs.id, user_id=test_user.id, content="Great", created_at=utc(2026, 10, 2)
        ))
        db_session.add(AssetLike(asset_id=theirs.id, user_id=test_user.id, created_at=utc(2026, 10, 3)))
        await db_session.commit()
        stream = await make_stream(db_session, test_user, name="fresh")
        stream.created_at = utc(2026, 10, 4)
        await db_session.commit()

        response = await client.get(
            f"/api/v1/admin/users/{test_user.id}/activity", headers=admin_headers
        )

        data = response.json()
        assert [a["type"] for a in data["activities"]] == ["stream", "like", "comment", "upload"]
        assert data["total"] == 4
        assert data["activities"][0]["details"]["streamName"] == "fresh"
        assert data["activities"][2]["details"] == {
            "assetId": str(theirs.id),
            "assetTitle": "Theirs",
            "commentContent": "Great",
        }
        assert data["activities"][3]["details"]["assetId"] == str(mine.id)


# ==========================================================================
# Stream Management
# ==========================================================================

class TestAdminStreams:

    async def test_list_with_counts(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        admin_headers: dict,
    ):
        stream = await make_stream(
            db_session, test_user, name="icons", members={other_user: StreamRole.MEMBER}
        )
        await make_asset(db_session, test_user, streams=[stream])
        await make_stream(db_session, test_user, name="legacy", status=StreamStatus.ARCHIVED)

        response = await client.get(
            "/api/v1/admin/streams", headers=admin_headers, params={"status": "active"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["totalPages"] == 1
        item = data["streams"][0]
        assert item["name"] == "icons"
        assert item["owner"]["username"] == "alice"
        assert item["asset_count"] == 1
        assert item["member_count"] == 2

    async def test_list_search_and_invalid_status(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, admin_headers: dict
    ):
        await make_stream(db_session, test_user, name="icons")
        await make_stream(db_session, test_user, name="brand", is_private=True)

        found = await client.get(
            "/api/v1/admin/streams", headers=admin_headers, params={"search": "BRA"}
        )
        invalid = await client.get(
            "/api/v1/admin/streams", headers=admin_headers, params={"status": "deleted"}
        )

        assert [s["name"] for s in found.json()["streams"]] == ["brand"]
        assert invalid.status_code == 400

    async def test_rename(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, admin_headers: dict
    ):
        stream = await make_stream(db_session, test_user, name="icons")
        await make_stream(db_session, test_user, name="brand")
        url = f"/api/v1/admin/streams/{stream.id}"

        renamed = await client.patch(url, headers=admin_headers, json={"name": " Icon Set "})
        taken = await client.patch(url, headers=admin_headers, json={"name": "brand"})
        short = await client.patch(url, headers=admin_headers, json={"name": "x"})

        assert renamed.status_code == 200
        assert renamed.json()["name"] == "icon-set"
        assert taken.status_code == 409
        assert short.status_code == 400

    async def test_delete_keeps_assets_by_default(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, admin_headers: dict
    ):
        stream = await make_stream(db_session, test_user, name="icons")
        asset = await make_asset(db_session, test_user, streams=[stream])

        response = await client.delete(f"/api/v1/admin/streams/{stream.id}", headers=admin_headers)

        assert response.status_code == 200
        db_session.expunge_all()
        assert (await db_session.execute(select(Asset.id).where(Asset.id == asset.id))).scalar_one_or_none()
        assert (await db_session.execute(select(AssetStream))).scalars().all() == []

    async def test_delete_with_assets(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, admin_headers: dict
    ):
        stream = await make_stream(db_session, test_user, name="icons")
        await make_asset(db_session, test_user, streams=[stream])
        await make_asset(db_session, test_user, title="Elsewhere")

        response = await client.delete(
            f"/api/v1/admin/streams/{stream.id}",
            headers=admin_headers,
            params={"delete_assets": "true"},
        )

        assert response.status_code == 200
        db_session.expunge_all()
        titles = (await db_session.execute(select(Asset.title))).scalars().all()
        assert titles == ["Elsewhere"]


class TestMergeStreams:

    async def test_merge(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        admin_headers: dict,
    ):
        source = await make_stream(
            db_session, test_user, name="figma-old", members={other_user: StreamRole.ADMIN}
        )
        target = await make_stream(db_session, test_user, name="figma")
        shared = await make_asset(db_session, test_user, title="Shared", streams=[source, target])
        only_source = await make_asset(db_session, test_user, title="Moved", streams=[source])
        db_session.add(StreamFollow(stream_id=source.id, user_id=other_user.id))
        await db_session.commit()
        source_id, target_id = source.id, target.id

        response = await client.post(
            "/api/v1/admin/streams/merge",
            headers=admin_headers,
            json={"sourceId": str(source_id), "targetId": str(target_id)},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["merged"]["source"]["name"] == "figma-old"
        assert data["merged"]["assetsMoved"] == 1
        assert data["merged"]["membersAdded"] == 1

        db_session.expunge_all()
        assert (await db_session.execute(select(Stream).where(Stream.id == source_id))).scalar_one_or_none() is None
        linked = (await db_session.execute(
            select(AssetStream.asset_id).where(AssetStream.stream_id == target_id)
        )).scalars().all()
        assert set(linked) == {shared.id, only_source.id}
        members = dict((await db_session.execute(
            select(StreamMember.user_id, StreamMember.role).where(StreamMember.stream_id == target_id)
        )).all())
        assert members == {test_user.id: StreamRole.OWNER, other_user.id: StreamRole.ADMIN}
        follower = (await db_session.execute(
            select(StreamFollow.user_id).where(StreamFollow.stream_id == target_id)
        )).scalar_one()
        assert follower == other_user.id

    async def test_merge_into_itself(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, admin_headers: dict
    ):
        stream = await make_stream(db_session, test_user, name="icons")

        response = await client.post(
            "/api/v1/admin/streams/merge",
            headers=admin_headers,
            json={"sourceId": str(stream.id), "targetId": str(stream.id)},
        )

        assert response.status_code == 400

    async def test_merge_missing_stream(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, admin_headers: dict
    ):
        stream = await make_stream(db_session, test_user, name="icons")

        response = await client.post(
            "/api/v1/admin/streams/merge",
            headers=admin_headers,
            json={"sourceId": str(uuid4()), "targetId": str(stream.id)},
        )

        assert response.status_code == 404


# ==========================================================================
# Analytics
# ==========================================================================

class TestAnalytics:

    async def test_platform_totals(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        test_admin: User,
    ):
        asset = await make_asset(db_session, test_user, file_size=1536)
        db_session.add(AssetLike(asset_id=asset.id, user_id=other_user.id))
        db_session.add(AssetComment(asset_id=asset.id, user_id=other_user.id, content="Nice"))
        await db_session.commit()

        response = await client.get("/api/v1/admin/analytics", headers=headers_for(test_admin))

        assert response.status_code == 200
        data = response.json()
        assert data["users"]["total"] == 3
        assert data["users"]["activeThisWeek"] == 2
        assert sum(p["count"] for p in data["users"]["signupsOverTime"]) == 3
        assert data["content"] == {
            "totalUploads": 1,
            "totalLikes": 1,
            "totalComments": 1,
            "totalViews": 0,
        }
        assert data["storage"] == {"totalBytes": 1536, "totalFormatted": "1.5 KB"}

        top = data["topContributors"]
        assert top[0]["username"] == "alice"
        assert top[0]["upload_count"] == 1
        assert top[0]["like_count"] == 1
        assert {c["username"]: c["comment_count"] for c in top}["bob"] == 1
