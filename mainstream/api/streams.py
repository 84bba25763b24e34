"""
Mainstream - Streams API
========================

Streams and everything hanging off them: follows, members, bookmarks
and the assets posted to them.

Private streams are visible to their owner and members only.
"""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, Query, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy import delete, distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.api.deps import CurrentUser, DbSession, OptionalUser
from mainstream.api.responses import already_done
from mainstream.core.feed import enrich_assets
from mainstream.core.models import (
    Asset,
    AssetStream,
    AssetVisibility,
    NotificationType,
    ResourceType,
    Stream,
    StreamBookmark,
    StreamFollow,
    StreamMember,
    StreamOwnerType,
    StreamRole,
    StreamStatus,
    User,
)
from mainstream.core.notifications import create_notification
from mainstream.core.schemas import (
    AssetResponse,
    BookmarkCreate,
    BookmarkResponse,
    MemberAdd,
    MemberResponse,
    MembersResponse,
    MessageResponse,
    StreamAssetAdd,
    StreamCreate,
    StreamDetail,
    StreamFollowInfo,
    StreamStatusUpdate,
    StreamUpdate,
    UserSummary,
)
from mainstream.core.validation import is_http_url, is_valid_stream_name

logger = structlog.get_logger()

router = APIRouter(prefix="/streams", tags=["Streams"])

FOLLOW_PREVIEW_SIZE = 10
ASSIGNABLE_ROLES = (StreamRole.ADMIN.value, StreamRole.MEMBER.value)


# ==========================================================================
# Helpers
# ==========================================================================

async def resolve_stream(db: AsyncSession, id_or_name: str) -> Stream:
    """Look a stream up by UUID, falling back to its name."""
    try:
        condition = Stream.id == UUID(id_or_name)
    except ValueError:
        condition = Stream.name == id_or_name.lower()

    result = await db.execute(select(Stream).where(condition))
    stream = result.scalar_one_or_none()
    if stream is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Stream not found",
        )
    return stream


async def member_role(db: AsyncSession, stream: Stream, user_id: UUID) -> Optional[StreamRole]:
    """The user's role in the stream; owners count even without a member row."""
    result = await db.execute(
        select(StreamMember.role).where(
            StreamMember.stream_id == stream.id,
            StreamMember.user_id == user_id,
        )
    )
    role = result.scalar_one_or_none()
    if role is None and stream.owner_id == user_id:
        return StreamRole.OWNER
    return role


async def check_stream_access(db: AsyncSession, stream: Stream, user: Optional[User]) -> None:
    if not stream.is_private:
        return
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    if await member_role(db, stream, user.id) is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have access to this stream",
        )


async def _require_manager(db: AsyncSession, stream: Stream, user: User) -> StreamRole:
    role = await member_role(db, stream, user.id)
    if role not in (StreamRole.OWNER, StreamRole.ADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only stream owners and admins can do this",
        )
    return role


def _require_owner(stream: Stream, user: User) -> None:
    if stream.owner_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the stream owner can do this",
        )


async def asset_counts(db: AsyncSession, stream_ids: list[UUID]) -> dict[UUID, int]:
    if not stream_ids:
        return {}
    result = await db.execute(
        select(AssetStream.stream_id, func.count(AssetStream.id))
        .where(AssetStream.stream_id.in_(stream_ids))
        .group_by(AssetStream.stream_id)
    )
    return dict(result.all())


async def _detail(db: AsyncSession, stream: Stream) -> StreamDetail:
    item = StreamDetail.model_validate(stream)
    item.assets_count = (await asset_counts(db, [stream.id])).get(stream.id, 0)
    return item


# ==========================================================================
# Streams
# ==========================================================================

@router.get(
    "",
    response_model=list[StreamDetail],
    summary="List streams",
)
async def list_streams(
    db: DbSession,
    current_user: OptionalUser,
    status_filter: str = Query(StreamStatus.ACTIVE.value, alias="status"),
    owner_id: Optional[UUID] = None,
) -> list[StreamDetail]:
    """
    List visible streams, alphabetically.

    Anonymous callers see public streams; signed-in callers also see
    private streams they own or belong to.
    """
    query = select(Stream)
    if status_filter != "all":
        try:
            query = query.where(Stream.status == StreamStatus(status_filter))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid status",
            )
    if owner_id is not None:
        query = query.where(Stream.owner_id == owner_id)

    if current_user is None:
        query = query.where(Stream.is_private.is_(False))
    else:
        member_of = select(StreamMember.stream_id).where(StreamMember.user_id == current_user.id)
        query = query.where(or_(
            Stream.is_private.is_(False),
            Stream.owner_id == current_user.id,
            Stream.id.in_(member_of),
        ))

    result = await db.execute(query.order_by(Stream.name))
    streams = result.scalars().all()
    counts = await asset_counts(db, [s.id for s in streams])

    items = []
    for stream in streams:
        item = StreamDetail.model_validate(stream)
        item.assets_count = counts.get(stream.id, 0)
        items.append(item)
    return items


@router.post(
    "",
    response_model=StreamDetail,
    status_code=status.HTTP_201_CREATED,
    summary="Create a stream",
    responses={
        200: {"description": "A stream with this name already exists"},
        400: {"description": "Invalid stream name"},
    },
)
async def create_stream(
    data: StreamCreate,
    current_user: CurrentUser,
    db: DbSession,
):
    """
    Create a stream owned by the caller.

    Stream names are slugs; creating an existing name returns that
    stream instead of failing.
    """
    name = data.name.strip().lower()
    if not is_valid_stream_name(name):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Stream name must be 2-50 characters: lowercase letters, numbers and single hyphens",
        )

    result = await db.execute(select(Stream).where(Stream.name == name))
    existing = result.scalar_one_or_none()
    if existing is not None:
        detail = await _detail(db, existing)
        return JSONResponse(status_code=status.HTTP_200_OK, content=jsonable_encoder(detail, by_alias=True))

    stream = Stream(
        name=name,
        description=data.description,
        cover_image_url=data.cover_image_url,
        owner_type=StreamOwnerType.USER,
        owner_id=current_user.id,
        is_private=data.is_private,
    )
    db.add(stream)
    await db.flush()
    db.add(StreamMember(stream_id=stream.id, user_id=current_user.id, role=StreamRole.OWNER))

    if data.asset_ids:
        result = await db.execute(select(Asset.id).where(Asset.id.in_(data.asset_ids)))
        for asset_id in dict.fromkeys(result.scalars().all()):
            db.add(AssetStream(asset_id=asset_id, stream_id=stream.id, added_by=current_user.id))

    await db.commit()
    await db.refresh(stream)

    logger.info("stream_created", stream_id=str(stream.id), name=name)
    return await _detail(db, stream)


@router.get(
    "/{id_or_name}",
    response_model=StreamDetail,
    summary="Get a stream by id or name",
    responses={
        401: {"description": "Private stream, not signed in"},
        403: {"description": "Private stream, not a member"},
        404: {"description": "Stream not found"},
    },
)
async def get_stream(
    id_or_name: str,
    db: DbSession,
    current_user: OptionalUser,
) -> StreamDetail:
    stream = await resolve_stream(db, id_or_name)
    await check_stream_access(db, stream, current_user)
    return await _detail(db, stream)


@router.put(
    "/{stream_id}",
    response_model=StreamDetail,
    summary="Update a stream",
    responses={
        400: {"description": "Invalid stream name"},
        403: {"description": "Not the owner"},
        409: {"description": "Name already taken"},
    },
)
async def update_stream(
    stream_id: UUID,
    data: StreamUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> StreamDetail:
    stream = await resolve_stream(db, str(stream_id))
    _require_owner(stream, current_user)

    if data.name is not None:
        name = data.name.strip().lower()
        if not is_valid_stream_name(name):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid stream name",
            )
        if name != stream.name:
            taken = await db.execute(select(Stream.id).where(Stream.name == name))
            if taken.scalar_one_or_none():
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="A stream with this name already exists",
                )
            stream.name = name

    if data.description is not None:
        stream.description = data.description or None
    if data.cover_image_url is not None:
        stream.cover_image_url = data.cover_image_url or None
    if data.is_private is not None:
        stream.is_private = data.is_private

    await db.commit()
    await db.refresh(stream)
    return await _detail(db, stream)


@router.patch(
    "/{stream_id}",
    response_model=StreamDetail,
    summary="Archive or restore a stream",
    responses={
        400: {"description": "Invalid status"},
        403: {"description": "Not an owner or stream admin"},
    },
)
async def update_stream_status(
    stream_id: UUID,
    data: StreamStatusUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> StreamDetail:
    stream = await resolve_stream(db, str(stream_id))
    await _require_manager(db, stream, current_user)

    try:
        stream.status = StreamStatus(data.status)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Status must be 'active' or 'archived'",
        )

    await db.commit()
    await db.refresh(stream)
    logger.info("stream_status_changed", stream_id=str(stream.id), status=stream.status.value)
    return await _detail(db, stream)


@router.delete(
    "/{stream_id}",
    response_model=MessageResponse,
    summary="Delete a stream",
    responses={403: {"description": "Not the owner"}},
)
async def delete_stream(
    stream_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    stream = await resolve_stream(db, str(stream_id))
    _require_owner(stream, current_user)

    await db.delete(stream)
    await db.commit()

    logger.info("stream_deleted", stream_id=str(stream_id))
    return MessageResponse(message="Stream deleted")


# ==========================================================================
# Follows
# ==========================================================================

@router.get(
    "/{stream_id}/follow",
    response_model=StreamFollowInfo,
    summary="Followers and contributors of a stream",
)
async def get_follow_info(
    stream_id: UUID,
    db: DbSession,
    current_user: OptionalUser,
) -> StreamFollowInfo:
    stream = await resolve_stream(db, str(stream_id))
    await check_stream_access(db, stream, current_user)

    is_following = False
    if current_user is not None:
        result = await db.execute(
            select(StreamFollow.id).where(
                StreamFollow.stream_id == stream.id,
                StreamFollow.user_id == current_user.id,
            )
        )
        is_following = result.scalar_one_or_none() is not None

    follower_count = (await db.execute(
        select(func.count(StreamFollow.id)).where(StreamFollow.stream_id == stream.id)
    )).scalar_one()
    followers = (await db.execute(
        select(User)
        .join(StreamFollow, StreamFollow.user_id == User.id)
        .where(StreamFollow.stream_id == stream.id)
        .order_by(StreamFollow.created_at.desc())
        .limit(FOLLOW_PREVIEW_SIZE)
    )).scalars().all()

    in_stream = select(AssetStream.asset_id).where(AssetStream.stream_id == stream.id)
    contributor_count = (await db.execute(
        select(func.count(distinct(Asset.uploader_id))).where(Asset.id.in_(in_stream))
    )).scalar_one()
    contributors = (await db.execute(
        select(User)
        .where(User.id.in_(select(Asset.uploader_id).where(Asset.id.in_(in_stream))))
        .order_by(User.display_name)
        .limit(FOLLOW_PREVIEW_SIZE)
    )).scalars().all()
    asset_count = (await asset_counts(db, [stream.id])).get(stream.id, 0)

    return StreamFollowInfo(
        is_following=is_following,
        follower_count=follower_count,
        followers=[UserSummary.model_validate(u) for u in followers],
        contributor_count=contributor_count,
        contributors=[UserSummary.model_validate(u) for u in contributors],
        asset_count=asset_count,
    )


@router.post(
    "/{stream_id}/follow",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Follow a stream",
    responses={
        200: {"description": "Already following"},
        404: {"description": "Stream not found"},
    },
)
async def follow_stream(
    stream_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
):
    stream = await resolve_stream(db, str(stream_id))
    await check_stream_access(db, stream, current_user)

    existing = await db.execute(
        select(StreamFollow.id).where(
            StreamFollow.stream_id == stream.id,
            StreamFollow.user_id == current_user.id,
        )
    )
    if existing.scalar_one_or_none():
        return already_done("Already following")

    db.add(StreamFollow(stream_id=stream.id, user_id=current_user.id))
    if stream.owner_type == StreamOwnerType.USER:
        await create_notification(
            db,
            recipient_id=stream.owner_id,
            actor_id=current_user.id,
            notification_type=NotificationType.FOLLOW,
            resource_id=stream.id,
            resource_type=ResourceType.STREAM,
        )
    await db.commit()
    return MessageResponse(message="Following stream")


@router.delete(
    "/{stream_id}/follow",
    response_model=MessageResponse,
    summary="Unfollow a stream",
)
async def unfollow_stream(
    stream_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    await db.execute(
        delete(StreamFollow).where(
            StreamFollow.stream_id == stream_id,
            StreamFollow.user_id == current_user.id,
        )
    )
    await db.commit()
    return MessageResponse(message="Unfollowed stream")


# ==========================================================================
# Members
# ==========================================================================

@router.get(
    "/{stream_id}/members",
    response_model=MembersResponse,
    summary="List stream members",
)
async def list_members(
    stream_id: UUID,
    db: DbSession,
    current_user: OptionalUser,
) -> MembersResponse:
    stream = await resolve_stream(db, str(stream_id))
    await check_stream_access(db, stream, current_user)

    result = await db.execute(
        select(StreamMember)
        .where(StreamMember.stream_id == stream.id)
        .order_by(StreamMember.joined_at)
    )
    members = [MemberResponse.model_validate(m) for m in result.scalars().all()]
    current_role = await member_role(db, stream, current_user.id) if current_user else None

    return MembersResponse(
        members=members,
        member_count=len(members),
        current_user_role=current_role,
        stream_id=stream.id,
    )


@router.post(
    "/{stream_id}/members",
    response_model=MemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a member",
    responses={
        200: {"description": "Already a member"},
        400: {"description": "Invalid role, or user is the owner"},
        403: {"description": "Not an owner or stream admin"},
        404: {"description": "User not found"},
    },
)
async def add_member(
    stream_id: UUID,
    data: MemberAdd,
    current_user: CurrentUser,
    db: DbSession,
):
    stream = await resolve_stream(db, str(stream_id))
    await _require_manager(db, stream, current_user)

    if data.role not in ASSIGNABLE_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Role must be 'admin' or 'member'",
        )
    if data.user_id == stream.owner_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The owner is already part of this stream",
        )

    user = await db.get(User, data.user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    existing = await db.execute(
        select(StreamMember.id).where(
            StreamMember.stream_id == stream.id,
            StreamMember.user_id == user.id,
        )
    )
    if existing.scalar_one_or_none():
        return already_done("User is already a member")

    member = StreamMember(stream_id=stream.id, user_id=user.id, role=StreamRole(data.role))
    db.add(member)
    await db.commit()

    result = await db.execute(
        select(StreamMember)
        .where(StreamMember.id == member.id)
        .execution_options(populate_existing=True)
    )
    logger.info("stream_member_added", stream_id=str(stream.id), user_id=str(user.id), role=data.role)
    return MemberResponse.model_validate(result.scalar_one())


@router.delete(
    "/{stream_id}/members",
    response_model=MessageResponse,
    summary="Remove a member",
    responses={
        400: {"description": "The owner cannot leave"},
        403: {"description": "Not allowed to remove this member"},
        404: {"description": "Not a member"},
    },
)
async def remove_member(
    stream_id: UUID,
    user_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    """
    Remove a member.

    Anyone may leave; the owner may remove anyone but themselves; stream
    admins may remove plain members.
    """
    stream = await resolve_stream(db, str(stream_id))

    if user_id == stream.owner_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The stream owner cannot be removed",
        )

    result = await db.execute(
        select(StreamMember).where(
            StreamMember.stream_id == stream.id,
            StreamMember.user_id == user_id,
        )
    )
    target = result.scalar_one_or_none()
    if target is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User is not a member of this stream",
        )

    if user_id != current_user.id:
        caller_role = await member_role(db, stream, current_user.id)
        allowed = caller_role == StreamRole.OWNER or (
            caller_role == StreamRole.ADMIN and target.role == StreamRole.MEMBER
        )
        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You cannot remove this member",
            )

    await db.delete(target)
    await db.commit()
    return MessageResponse(message="Member removed")


# ==========================================================================
# Bookmarks
# ==========================================================================

@router.get(
    "/{stream_id}/bookmarks",
    response_model=list[BookmarkResponse],
    summary="List stream bookmarks",
)
async def list_bookmarks(
    stream_id: UUID,
    db: DbSession,
    current_user: OptionalUser,
) -> list[BookmarkResponse]:
    stream = await resolve_stream(db, str(stream_id))
    await check_stream_access(db, stream, current_user)

    result = await db.execute(
        select(StreamBookmark)
        .where(StreamBookmark.stream_id == stream.id)
        .order_by(StreamBookmark.position, StreamBookmark.created_at)
    )
    return [BookmarkResponse.model_validate(b) for b in result.scalars().all()]


@router.post(
    "/{stream_id}/bookmarks",
    response_model=BookmarkResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a bookmark",
    responses={400: {"description": "Invalid URL"}},
)
async def create_bookmark(
    stream_id: UUID,
    data: BookmarkCreate,
    current_user: CurrentUser,
    db: DbSession,
) -> BookmarkResponse:
    stream = await resolve_stream(db, str(stream_id))
    await check_stream_access(db, stream, current_user)

    if not is_http_url(data.url):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid URL format",
        )

    current_max = (await db.execute(
        select(func.max(StreamBookmark.position)).where(StreamBookmark.stream_id == stream.id)
    )).scalar_one_or_none()

    bookmark = StreamBookmark(
        stream_id=stream.id,
        url=data.url,
        title=data.title or None,
        created_by=current_user.id,
        position=0 if current_max is None else current_max + 1,
    )
    db.add(bookmark)
    await db.commit()
    await db.refresh(bookmark)
    return BookmarkResponse.model_validate(bookmark)


@router.delete(
    "/{stream_id}/bookmarks/{bookmark_id}",
    response_model=MessageResponse,
    summary="Delete a bookmark",
    responses={
        403: {"description": "Not the creator or stream owner"},
        404: {"description": "Bookmark not found"},
    },
)
async def delete_bookmark(
    stream_id: UUID,
    bookmark_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    stream = await resolve_stream(db, str(stream_id))
    result = await db.execute(
        select(StreamBookmark).where(
            StreamBookmark.id == bookmark_id,
            StreamBookmark.stream_id == stream.id,
        )
    )
    bookmark = result.scalar_one_or_none()
    if bookmark is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Bookmark not found",
        )
    if current_user.id not in (bookmark.created_by, stream.owner_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the creator or the stream owner can delete this bookmark",
        )

    await db.delete(bookmark)
    await db.commit()
    return MessageResponse(message="Bookmark deleted")


# ==========================================================================
# Stream Assets
# ==========================================================================

@router.get(
    "/{stream_id}/assets",
    response_model=list[AssetResponse],
    summary="List assets in a stream",
)
async def list_stream_assets(
    stream_id: UUID,
    db: DbSession,
    current_user: OptionalUser,
) -> list[AssetResponse]:
    stream = await resolve_stream(db, str(stream_id))
    await check_stream_access(db, stream, current_user)

    result = await db.execute(
        select(Asset)
        .join(AssetStream, AssetStream.asset_id == Asset.id)
        .where(
            AssetStream.stream_id == stream.id,
            Asset.visibility == AssetVisibility.PUBLIC,
        )
        .order_by(AssetStream.added_at.desc())
    )
    return await enrich_assets(db, result.scalars().all(), current_user.id if current_user else None)


@router.post(
    "/{stream_id}/assets",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an asset to a stream",
    responses={
        200: {"description": "Asset already in stream"},
        404: {"description": "Stream or asset not found"},
    },
)
async def add_stream_asset(
    stream_id: UUID,
    data: StreamAssetAdd,
    current_user: CurrentUser,
    db: DbSession,
):
    stream = await resolve_stream(db, str(stream_id))
    await check_stream_access(db, stream, current_user)

    asset = await db.get(Asset, data.asset_id)
    if asset is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Asset not found",
        )

    existing = await db.execute(
        select(AssetStream.id).where(
            AssetStream.stream_id == stream.id,
            AssetStream.asset_id == asset.id,
        )
    )
    if existing.scalar_one_or_none():
        return already_done("Asset already in stream")

    db.add(AssetStream(asset_id=asset.id, stream_id=stream.id, added_by=current_user.id))
    await db.commit()
    return MessageResponse(message="Asset added to stream")


@router.delete(
    "/{stream_id}/assets",
    response_model=MessageResponse,
    summary="Remove an asset from a stream",
    responses={
        403: {"description": "Not the uploader, adder or stream owner"},
        404: {"description": "Asset not in stream"},
    },
)
async def remove_stream_asset(
    stream_id: UUID,
    asset_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    stream = await resolve_stream(db, str(stream_id))
    result = await db.execute(
        select(AssetStream, Asset.uploader_id)
        .join(Asset, Asset.id == AssetStream.asset_id)
        .where(AssetStream.stream_id == stream.id, AssetStream.asset_id == asset_id)
    )
    row = result.first()
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Asset is not in this stream",
        )

    link, uploader_id = row
    if current_user.id not in (uploader_id, link.added_by, stream.owner_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You cannot remove this asset from the stream",
        )

    await db.delete(link)
    await db.commit()
    return MessageResponse(message="Asset removed from stream")
