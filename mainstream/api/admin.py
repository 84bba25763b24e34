"""
Mainstream - Admin API
======================

Platform administration for admins and the owner:

- user management (roles, deletion, details, activity)
- stream management (rename, delete, merge)
- platform analytics
"""

import math
from datetime import timedelta
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.api.deps import CurrentAdminUser, CurrentOwnerUser, DbSession
from mainstream.core.database import as_utc, utcnow
from mainstream.core.models import (
    Asset,
    AssetComment,
    AssetLike,
    AssetStream,
    AssetView,
    PlatformRole,
    Stream,
    StreamBookmark,
    StreamFollow,
    StreamMember,
    StreamRole,
    StreamStatus,
    User,
    UserFollow,
)
from mainstream.core.pagination import parse_limit
from mainstream.core.schemas import (
    ActivityItem,
    ActivityResponse,
    AdminStream,
    AdminStreamList,
    AdminUser,
    AdminUserDetails,
    AdminUserEnvelope,
    AdminUserList,
    AdminUserStats,
    AnalyticsResponse,
    AssetBrief,
    ContentAnalytics,
    MergeResponse,
    MergeResult,
    MessageResponse,
    RoleUpdate,
    SignupPoint,
    StorageAnalytics,
    StreamDetail,
    StreamMerge,
    StreamRename,
    StreamSummary,
    TopContributor,
    UserAnalytics,
    UserResponse,
    UserSummary,
)
from mainstream.core.validation import (
    LIKE_ESCAPE,
    STREAM_NAME_MAX_LENGTH,
    STREAM_NAME_MIN_LENGTH,
    like_pattern,
    normalize_stream_name,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/admin", tags=["Admin"])

ADMIN_USERS_PAGE = 50
ADMIN_STREAMS_PAGE = 20
MAX_ADMIN_PAGE = 100
RECENT_UPLOADS = 12
ACTIVITY_PER_TYPE = 200
SIGNUP_WINDOW_DAYS = 30
TOP_CONTRIBUTORS = 10

BYTE_UNITS = ("Bytes", "KB", "MB", "GB", "TB", "PB", "EB")


def format_bytes(size: int) -> str:
    """Human-readable size: 0 -> "0 Bytes", 1536 -> "1.5 KB"."""
    if size == 0:
        return "0 Bytes"
    if size < 0:
        return "Invalid size"
    if size < 1:
        return "< 1 Byte"
    index = min(int(math.floor(math.log(size, 1024))), len(BYTE_UNITS) - 1)
    value = round(size / (1024 ** index), 2)
    return f"{value:g} {BYTE_UNITS[index]}"


async def _get_user_or_404(db: AsyncSession, user_id: UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


async def _get_stream_or_404(db: AsyncSession, stream_id: UUID) -> Stream:
    stream = await db.get(Stream, stream_id)
    if stream is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Stream not found",
        )
    return stream


async def _count(db: AsyncSession, query) -> int:
    return (await db.execute(query)).scalar_one() or 0


# ==========================================================================
# Users
# ==========================================================================

@router.get(
    "/users",
    response_model=AdminUserList,
    summary="List all users",
)
async def list_users(
    admin: CurrentAdminUser,
    db: DbSession,
    limit: Optional[str] = None,
    offset: int = Query(0, ge=0),
    search: Optional[str] = None,
) -> AdminUserList:
    """All users, oldest first so the owner sits at the top."""
    page_size = parse_limit(limit, default=ADMIN_USERS_PAGE, maximum=MAX_ADMIN_PAGE)

    query = select(User)
    term = (search or "").strip()
    if term:
        pattern = like_pattern(term)
        query = query.where(or_(
            User.username.ilike(pattern, escape=LIKE_ESCAPE),
            User.display_name.ilike(pattern, escape=LIKE_ESCAPE),
            User.email.ilike(pattern, escape=LIKE_ESCAPE),
        ))

    total = await _count(db, select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(User.created_at.asc()).offset(offset).limit(page_size)
    )
    return AdminUserList(
        users=[AdminUser.model_validate(u) for u in result.scalars().all()],
        total=total,
        has_more=offset + page_size < total,
    )


@router.patch(
    "/users/{user_id}",
    response_model=AdminUserEnvelope,
    summary="Change a user's platform role",
    responses={
        400: {"description": "Invalid role, or demoting the owner"},
        403: {"description": "Caller is not the owner"},
    },
)
async def update_user_role(
    user_id: UUID,
    data: RoleUpdate,
    owner: CurrentOwnerUser,
    db: DbSession,
) -> AdminUserEnvelope:
    """
    Set a user's platform role.

    Promoting someone to owner transfers ownership; the current owner
    becomes an admin in the same transaction.
    """
    try:
        new_role = PlatformRole(data.platform_role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid role. Must be user, admin, or owner",
        )

    target = await _get_user_or_404(db, user_id)
    if target.platform_role == PlatformRole.OWNER and new_role != PlatformRole.OWNER:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot demote the platform owner. Transfer ownership first.",
        )

    if new_role == PlatformRole.OWNER and target.platform_role != PlatformRole.OWNER:
        owner.platform_role = PlatformRole.ADMIN
        logger.warning("ownership_transferred", from_user=str(owner.id), to_user=str(target.id))
    target.platform_role = new_role

    await db.commit()
    await db.refresh(target)

    logger.info("user_role_changed", user_id=str(target.id), role=new_role.value)
    return AdminUserEnvelope(user=AdminUser.model_validate(target))


@router.delete(
    "/users/{user_id}",
    response_model=MessageResponse,
    summary="Delete a user",
    responses={
        400: {"description": "Deleting yourself or the owner"},
        403: {"description": "Only the owner may delete admins"},
    },
)
async def delete_user(
    user_id: UUID,
    admin: CurrentAdminUser,
    db: DbSession,
) -> MessageResponse:
    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete your own account from admin panel",
        )

    target = await _get_user_or_404(db, user_id)
    if target.platform_role == PlatformRole.OWNER:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete the platform owner",
        )
    if target.platform_role == PlatformRole.ADMIN and not admin.is_owner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the owner can delete admin accounts",
        )

    username = target.username
    await db.execute(delete(Stream).where(Stream.owner_id == target.id))
    await db.delete(target)
    await db.commit()

    logger.info("user_deleted_by_admin", user_id=str(user_id), admin_id=str(admin.id))
    return MessageResponse(message=f"User {username} has been deleted")


@router.get(
    "/users/{user_id}/details",
    response_model=AdminUserDetails,
    summary="User profile, statistics and recent uploads",
)
async def get_user_details(
    user_id: UUID,
    admin: CurrentAdminUser,
    db: DbSession,
) -> AdminUserDetails:
    user = await _get_user_or_404(db, user_id)
    own_assets = select(Asset.id).where(Asset.uploader_id == user.id)

    storage_bytes = await _count(
        db, select(func.coalesce(func.sum(Asset.file_size), 0)).where(Asset.uploader_id == user.id)
    )
    stats = AdminUserStats(
        uploads=await _count(db, select(func.count(Asset.id)).where(Asset.uploader_id == user.id)),
        likes_given=await _count(db, select(func.count(AssetLike.id)).where(AssetLike.user_id == user.id)),
        likes_received=await _count(
            db, select(func.count(AssetLike.id)).where(AssetLike.asset_id.in_(own_assets))
        ),
        comments=await _count(
            db, select(func.count(AssetComment.id)).where(AssetComment.user_id == user.id)
        ),
        followers=await _count(
            db, select(func.count(UserFollow.id)).where(UserFollow.following_id == user.id)
        ),
        following=await _count(
            db, select(func.count(UserFollow.id)).where(UserFollow.follower_id == user.id)
        ),
        streams_owned=await _count(db, select(func.count(Stream.id)).where(Stream.owner_id == user.id)),
        total_views=await _count(
            db, select(func.coalesce(func.sum(Asset.view_count), 0)).where(Asset.uploader_id == user.id)
        ),
        storage_bytes=storage_bytes,
        storage_formatted=format_bytes(storage_bytes),
    )

    result = await db.execute(
        select(Asset)
        .where(Asset.uploader_id == user.id)
        .order_by(Asset.created_at.desc())
        .limit(RECENT_UPLOADS)
    )
    return AdminUserDetails(
        user=UserResponse.model_validate(user),
        stats=stats,
        recent_uploads=[AssetBrief.model_validate(a) for a in result.scalars().all()],
    )


@router.get(
    "/users/{user_id}/activity",
    response_model=ActivityResponse,
    summary="User activity timeline",
)
async def get_user_activity(
    user_id: UUID,
    admin: CurrentAdminUser,
    db: DbSession,
    limit: Optional[str] = None,
) -> ActivityResponse:
    """Uploads, likes, comments and created streams merged newest first."""
    user = await _get_user_or_404(db, user_id)
    page_size = parse_limit(limit, default=ACTIVITY_PER_TYPE, maximum=ACTIVITY_PER_TYPE * 4)
    activities: list[ActivityItem] = []

    uploads = (await db.execute(
        select(Asset)
        .where(Asset.uploader_id == user.id)
        .order_by(Asset.created_at.desc())
        .limit(ACTIVITY_PER_TYPE)
    )).scalars().all()
    for asset in uploads:
        activities.append(ActivityItem(
            type="upload",
            timestamp=as_utc(asset.created_at),
            details={
                "assetId": str(asset.id),
                "assetTitle": asset.title,
                "assetThumbnail": asset.thumbnail_url,
            },
        ))

    likes = (await db.execute(
        select(AssetLike.created_at, Asset)
        .join(Asset, Asset.id == AssetLike.asset_id)
        .where(AssetLike.user_id == user.id)
        .order_by(AssetLike.created_at.desc())
        .limit(ACTIVITY_PER_TYPE)
    )).all()
    for liked_at, asset in likes:
        activities.append(ActivityItem(
            type="like",
            timestamp=as_utc(liked_at),
            details={
                "assetId": str(asset.id),
                "assetTitle": asset.title,
                "assetThumbnail": asset.thumbnail_url,
            },
        ))

    comments = (await db.execute(
        select(AssetComment, Asset.title)
        .join(Asset, Asset.id == AssetComment.asset_id)
        .where(AssetComment.user_id == user.id)
        .order_by(AssetComment.created_at.desc())
        .limit(ACTIVITY_PER_TYPE)
    )).all()
    for comment, title in comments:
        activities.append(ActivityItem(
            type="comment",
            timestamp=as_utc(comment.created_at),
            details={
                "assetId": str(comment.asset_id),
                "assetTitle": title,
                "commentContent": comment.content,
            },
        ))

    streams = (await db.execute(
        select(Stream)
        .where(Stream.owner_id == user.id)
        .order_by(Stream.created_at.desc())
        .limit(ACTIVITY_PER_TYPE)
    )).scalars().all()
    for stream in streams:
        activities.append(ActivityItem(
            type="stream",
            timestamp=as_utc(stream.created_at),
            details={
                "streamId": str(stream.id),
                "streamName": stream.name,
                "streamCoverUrl": stream.cover_image_url,
            },
        ))

    activities.sort(key=lambda item: item.timestamp, reverse=True)
    activities = activities[:page_size]
    return ActivityResponse(activities=activities, total=len(activities))


# ==========================================================================
# Streams
# ==========================================================================

@router.get(
    "/streams",
    response_model=AdminStreamList,
    summary="List all streams",
)
async def list_streams(
    admin: CurrentAdminUser,
    db: DbSession,
    search: Optional[str] = None,
    status_filter: str = Query("all", alias="status"),
    page: int = Query(1, ge=1),
    limit: Optional[str] = None,
) -> AdminStreamList:
    page_size = parse_limit(limit, default=ADMIN_STREAMS_PAGE, maximum=MAX_ADMIN_PAGE)

    query = select(Stream)
    term = (search or "").strip()
    if term:
        query = query.where(Stream.name.ilike(like_pattern(term), escape=LIKE_ESCAPE))
    if status_filter != "all":
        try:
            query = query.where(Stream.status == StreamStatus(status_filter))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid status",
            )

    total = await _count(db, select(func.count()).select_from(query.subquery()))
    streams = (await db.execute(
        query.order_by(Stream.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )).scalars().all()

    ids = [s.id for s in streams]
    asset_counts: dict = {}
    member_counts: dict = {}
    owners: dict = {}
    if ids:
        asset_counts = dict((await db.execute(
            select(AssetStream.stream_id, func.count(AssetStream.id))
            .where(AssetStream.stream_id.in_(ids))
            .group_by(AssetStream.stream_id)
        )).all())
        member_counts = dict((await db.execute(
            select(StreamMember.stream_id, func.count(StreamMember.id))
            .where(StreamMember.stream_id.in_(ids))
            .group_by(StreamMember.stream_id)
        )).all())
        owner_rows = (await db.execute(
            select(User).where(User.id.in_({s.owner_id for s in streams}))
        )).scalars().all()
        owners = {u.id: u for u in owner_rows}

    items = []
    for stream in streams:
        owner = owners.get(stream.owner_id)
        items.append(AdminStream(
            id=stream.id,
            name=stream.name,
            description=stream.description,
            cover_image_url=stream.cover_image_url,
            is_private=stream.is_private,
            status=stream.status,
            created_at=stream.created_at,
            owner=UserSummary.model_validate(owner) if owner else None,
            asset_count=asset_counts.get(stream.id, 0),
            member_count=member_counts.get(stream.id, 0),
        ))

    return AdminStreamList(
        streams=items,
        total=total,
        page=page,
        limit=page_size,
        total_pages=math.ceil(total / page_size),
    )


@router.patch(
    "/streams/{stream_id}",
    response_model=StreamDetail,
    summary="Rename a stream",
    responses={
        400: {"description": "Invalid name"},
        409: {"description": "Name already exists"},
    },
)
async def rename_stream(
    stream_id: UUID,
    data: StreamRename,
    admin: CurrentAdminUser,
    db: DbSession,
) -> StreamDetail:
    name = normalize_stream_name(data.name or "")
    if not STREAM_NAME_MIN_LENGTH <= len(name) <= STREAM_NAME_MAX_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name must be between 2 and 50 characters",
        )

    stream = await _get_stream_or_404(db, stream_id)
    if stream.name != name:
        taken = await db.execute(select(Stream.id).where(Stream.name == name))
        if taken.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Name already exists",
            )
        old_name = stream.name
        stream.name = name
        await db.commit()
        await db.refresh(stream)
        logger.info("stream_renamed", stream_id=str(stream.id), old=old_name, new=name)

    return StreamDetail.model_validate(stream)


@router.delete(
    "/streams/{stream_id}",
    response_model=MessageResponse,
    summary="Delete a stream",
)
async def delete_stream(
    stream_id: UUID,
    admin: CurrentAdminUser,
    db: DbSession,
    delete_assets: bool = False,
) -> MessageResponse:
    """Delete a stream; with ``delete_assets`` its assets are deleted too."""
    stream = await _get_stream_or_404(db, stream_id)

    deleted_assets = 0
    if delete_assets:
        asset_ids = (await db.execute(
            select(AssetStream.asset_id).where(AssetStream.stream_id == stream.id)
        )).scalars().all()
        if asset_ids:
            result = await db.execute(
                delete(Asset)
                .where(Asset.id.in_(asset_ids))
                .execution_options(synchronize_session="fetch")
            )
            deleted_assets = result.rowcount

    name = stream.name
    await db.delete(stream)
    await db.commit()

    logger.info("stream_deleted_by_admin", stream_id=str(stream_id), assets_deleted=deleted_assets)
    return MessageResponse(message=f"Stream {name} deleted")


@router.post(
    "/streams/merge",
    response_model=MergeResponse,
    summary="Merge one stream into another",
    responses={
        400: {"description": "Source and target are the same"},
        404: {"description": "One or both streams not found"},
    },
)
async def merge_streams(
    data: StreamMerge,
    admin: CurrentAdminUser,
    db: DbSession,
) -> MergeResponse:
    """
    Fold the source stream into the target, then delete the source.

    Asset links and members already on the target are skipped; owners of
    the source join the target as plain members. Bookmarks move over, as
    do follows of users not already following the target.
    """
    if data.source_id == data.target_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot merge stream into itself",
        )

    source = await db.get(Stream, data.source_id)
    target = await db.get(Stream, data.target_id)
    if source is None or target is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="One or both streams not found",
        )

    target_assets = select(AssetStream.asset_id).where(AssetStream.stream_id == target.id)
    moved = await db.execute(
        update(AssetStream)
        .where(AssetStream.stream_id == source.id, AssetStream.asset_id.not_in(target_assets))
        .values(stream_id=target.id)
        .execution_options(synchronize_session="fetch")
    )
    assets_moved = moved.rowcount

    target_members = set((await db.execute(
        select(StreamMember.user_id).where(StreamMember.stream_id == target.id)
    )).scalars().all())
    source_members = (await db.execute(
        select(StreamMember.user_id, StreamMember.role).where(StreamMember.stream_id == source.id)
    )).all()
    members_added = 0
    for member_id, role in source_members:
        if member_id in target_members or member_id == target.owner_id:
            continue
        db.add(StreamMember(
            stream_id=target.id,
            user_id=member_id,
            role=StreamRole.MEMBER if role == StreamRole.OWNER else role,
        ))
        members_added += 1

    await db.execute(
        update(StreamBookmark)
        .where(StreamBookmark.stream_id == source.id)
        .values(stream_id=target.id)
        .execution_options(synchronize_session="fetch")
    )
    target_followers = select(StreamFollow.user_id).where(StreamFollow.stream_id == target.id)
    await db.execute(
        update(StreamFollow)
        .where(StreamFollow.stream_id == source.id, StreamFollow.user_id.not_in(target_followers))
        .values(stream_id=target.id)
        .execution_options(synchronize_session="fetch")
    )

    result = MergeResult(
        source=StreamSummary.model_validate(source),
        target=StreamSummary.model_validate(target),
        assets_moved=assets_moved,
        members_added=members_added,
    )
    await db.delete(source)
    await db.commit()

    logger.info(
        "streams_merged",
        source=result.source.name,
        target=result.target.name,
        assets_moved=assets_moved,
        members_added=members_added,
    )
    return MergeResponse(merged=result)


# ==========================================================================
# Analytics
# ==========================================================================

@router.get(
    "/analytics",
    response_model=AnalyticsResponse,
    summary="Platform analytics",
)
async def get_analytics(
    admin: CurrentAdminUser,
    db: DbSession,
) -> AnalyticsResponse:
    now = utcnow()
    week_ago = now - timedelta(days=7)
    window_start = now - timedelta(days=SIGNUP_WINDOW_DAYS)

    total_users = await _count(db, select(func.count(User.id)))

    active_ids: set = set()
    for query in (
        select(Asset.uploader_id).where(Asset.created_at >= week_ago),
        select(AssetLike.user_id).where(AssetLike.created_at >= week_ago),
        select(AssetComment.user_id).where(AssetComment.created_at >= week_ago),
        select(AssetView.user_id).where(AssetView.viewed_at >= week_ago),
    ):
        active_ids.update((await db.execute(query.distinct())).scalars().all())

    signups = {
        (window_start + timedelta(days=i)).date().isoformat(): 0
        for i in range(SIGNUP_WINDOW_DAYS)
    }
    created = (await db.execute(
        select(User.created_at).where(User.created_at >= window_start)
    )).scalars().all()
    for created_at in created:
        day = as_utc(created_at).date().isoformat()
        signups[day] = signups.get(day, 0) + 1

    total_bytes = await _count(db, select(func.coalesce(func.sum(Asset.file_size), 0)))

    uploads = dict((await db.execute(
        select(Asset.uploader_id, func.count(Asset.id)).group_by(Asset.uploader_id)
    )).all())
    likes_received = dict((await db.execute(
        select(Asset.uploader_id, func.count(AssetLike.id))
        .join(Asset, Asset.id == AssetLike.asset_id)
        .group_by(Asset.uploader_id)
    )).all())
    comments_made = dict((await db.execute(
        select(AssetComment.user_id, func.count(AssetComment.id)).group_by(AssetComment.user_id)
    )).all())

    contributor_ids = set(uploads) | set(likes_received) | set(comments_made)
    top: list[TopContributor] = []
    if contributor_ids:
        users = (await db.execute(select(User).where(User.id.in_(contributor_ids)))).scalars().all()
        ranked = sorted(users, key=lambda u: uploads.get(u.id, 0), reverse=True)
        for user in ranked[:TOP_CONTRIBUTORS]:
            top.append(TopContributor(
                id=user.id,
                username=user.username,
                display_name=user.display_name,
                avatar_url=user.avatar_url,
                upload_count=uploads.get(user.id, 0),
                like_count=likes_received.get(user.id, 0),
                comment_count=comments_made.get(user.id, 0),
            ))

    return AnalyticsResponse(
        users=UserAnalytics(
            total=total_users,
            active_this_week=len(active_ids),
            signups_over_time=[SignupPoint(date=d, count=c) for d, c in sorted(signups.items())],
        ),
        content=ContentAnalytics(
            total_uploads=await _count(db, select(func.count(Asset.id))),
            total_likes=await _count(db, select(func.count(AssetLike.id))),
            total_comments=await _count(db, select(func.count(AssetComment.id))),
            total_views=await _count(db, select(func.coalesce(func.sum(Asset.view_count), 0))),
        ),
        storage=StorageAnalytics(
            total_bytes=total_bytes,
            total_formatted=format_bytes(total_bytes),
        ),
        top_contributors=top,
    )
