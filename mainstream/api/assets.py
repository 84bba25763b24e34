"""
Mainstream - Assets API
=======================

Asset feeds (public, following, week-grouped), asset CRUD, embeds,
likes, views and asset comments.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.api.comments import comment_responses
from mainstream.api.deps import CurrentUser, DbSession, Figma, OptionalUser
from mainstream.api.integrations import load_access_token
from mainstream.api.responses import already_done
from mainstream.core.feed import enrich_asset, enrich_assets, following_feed, public_feed
from mainstream.core.integrations import detect_provider, figma_title_from_url, is_supported_url
from mainstream.core.models import (
    Asset,
    AssetComment,
    AssetLike,
    AssetStream,
    AssetType,
    AssetView,
    NotificationType,
    ResourceType,
    Stream,
    StreamStatus,
)
from mainstream.core.notifications import create_notification
from mainstream.core.pagination import Page, PageSizes, parse_cursor, parse_limit
from mainstream.core.schemas import (
    AssetCreate,
    AssetPage,
    AssetResponse,
    AssetUpdate,
    CommentCreate,
    CommentResponse,
    EmbedCreate,
    MessageResponse,
    UserSummary,
    ViewerResponse,
    ViewersResponse,
    WeekGroupPage,
    WeekGroupResponse,
)
from mainstream.core.validation import is_http_url
from mainstream.core.week_grouping import group_assets_by_week

logger = structlog.get_logger()

router = APIRouter(prefix="/assets", tags=["Assets"])

DEFAULT_FIGMA_TITLE = "Figma Design"
VIEWERS_DEFAULT_LIMIT = 10


# ==========================================================================
# Helpers
# ==========================================================================

async def get_asset_or_404(db: AsyncSession, asset_id: UUID, refresh: bool = False) -> Asset:
    query = select(Asset).where(Asset.id == asset_id)
    if refresh:
        query = query.execution_options(populate_existing=True)
    result = await db.execute(query)
    asset = result.scalar_one_or_none()
    if asset is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Asset not found",
        )
    return asset


def _require_owner(asset: Asset, user_id: UUID) -> None:
    if asset.uploader_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only modify your own assets",
        )


async def _validate_stream_ids(db: AsyncSession, stream_ids: list[UUID]) -> list[UUID]:
    """Deduplicate and check that every id is an active stream."""
    unique_ids = list(dict.fromkeys(stream_ids))
    if not unique_ids:
        return []
    result = await db.execute(
        select(Stream.id).where(Stream.id.in_(unique_ids), Stream.status == StreamStatus.ACTIVE)
    )
    found = set(result.scalars().all())
    missing = [str(sid) for sid in unique_ids if sid not in found]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Invalid stream IDs: {', '.join(missing)}",
        )
    return unique_ids


def _link_streams(db: AsyncSession, asset_id: UUID, stream_ids: list[UUID], user_id: UUID) -> None:
    for stream_id in stream_ids:
        db.add(AssetStream(asset_id=asset_id, stream_id=stream_id, added_by=user_id))


async def _asset_page(db: AsyncSession, page: Page, current_user_id: Optional[UUID]) -> AssetPage:
    items = await enrich_assets(db, page.items, current_user_id)
    return AssetPage(assets=items, has_more=page.has_more, cursor=page.cursor)


async def _week_page(db: AsyncSession, page: Page, current_user_id: Optional[UUID]) -> WeekGroupPage:
    items = await enrich_assets(db, page.items, current_user_id)
    groups = [
        WeekGroupResponse(
            key=group.key,
            label=group.label,
            week_start=group.week_start,
            week_end=group.week_end,
            post_count=group.post_count,
            contributors=group.contributors,
            assets=group.assets,
        )
        for group in group_assets_by_week(items)
    ]
    return WeekGroupPage(groups=groups, has_more=page.has_more, cursor=page.cursor)


# ==========================================================================
# Feeds
# ==========================================================================

@router.get(
    "",
    response_model=AssetPage,
    summary="List public assets",
)
async def list_assets(
    db: DbSession,
    current_user: OptionalUser,
    cursor: Optional[str] = None,
    limit: Optional[str] = None,
) -> AssetPage:
    """Newest public assets with ``timestamp::id`` cursor pagination."""
    page = await public_feed(db, parse_cursor(cursor), parse_limit(limit))
    return await _asset_page(db, page, current_user.id if current_user else None)


@router.get(
    "/weeks",
    response_model=WeekGroupPage,
    summary="List public assets grouped by week",
)
async def list_assets_by_week(
    db: DbSession,
    current_user: OptionalUser,
    cursor: Optional[str] = None,
    limit: Optional[str] = None,
) -> WeekGroupPage:
    page = await public_feed(db, parse_cursor(cursor), parse_limit(limit))
    return await _week_page(db, page, current_user.id if current_user else None)


@router.get(
    "/following",
    response_model=AssetPage,
    summary="Assets from followed users and streams",
    responses={401: {"description": "Not authenticated"}},
)
async def list_following_assets(
    db: DbSession,
    current_user: CurrentUser,
    cursor: Optional[str] = None,
    limit: Optional[str] = None,
) -> AssetPage:
    page = await following_feed(db, current_user.id, parse_cursor(cursor), parse_limit(limit))
    return await _asset_page(db, page, current_user.id)


@router.get(
    "/following/weeks",
    response_model=WeekGroupPage,
    summary="Following feed grouped by week",
    responses={401: {"description": "Not authenticated"}},
)
async def list_following_by_week(
    db: DbSession,
    current_user: CurrentUser,
    cursor: Optional[str] = None,
    limit: Optional[str] = None,
) -> WeekGroupPage:
    page = await following_feed(db, current_user.id, parse_cursor(cursor), parse_limit(limit))
    return await _week_page(db, page, current_user.id)


# ==========================================================================
# Create
# ==========================================================================

@router.post(
    "",
    response_model=AssetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an asset from uploaded file metadata",
    responses={404: {"description": "Stream not found"}},
)
async def create_asset(
    data: AssetCreate,
    current_user: CurrentUser,
    db: DbSession,
) -> AssetResponse:
    stream_ids = await _validate_stream_ids(db, data.stream_ids)

    asset = Asset(
        uploader_id=current_user.id,
        **data.model_dump(exclude={"stream_ids"}),
    )
    db.add(asset)
    await db.flush()
    _link_streams(db, asset.id, stream_ids, current_user.id)
    await db.commit()

    asset = await get_asset_or_404(db, asset.id, refresh=True)
    logger.info("asset_created", asset_id=str(asset.id), uploader_id=str(current_user.id))
    return await enrich_asset(db, asset, current_user.id)


@router.post(
    "/embed",
    response_model=AssetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an embed asset from a Figma link",
    responses={
        400: {"description": "Invalid or unsupported URL"},
        404: {"description": "Stream not found"},
    },
)
async def create_embed(
    data: EmbedCreate,
    current_user: CurrentUser,
    db: DbSession,
    figma: Figma,
) -> AssetResponse:
    """
    Create an embed asset.

    Only Figma links are accepted. When the user has connected a Figma
    token and the link names a frame, the thumbnail is that frame rendered
    through the Figma API; otherwise it comes from oEmbed. When no title
    is given it is resolved from oEmbed, then from the file name in the URL.
    """
    if not is_http_url(data.url):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid URL format",
        )
    if not is_supported_url(data.url):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unsupported URL. Currently only Figma links are supported.",
        )

    stream_ids = await _validate_stream_ids(db, data.stream_ids)

    frame = None
    token = await load_access_token(db, current_user.id, "figma")
    if token:
        frame = await figma.fetch_frame_thumbnail(data.url, token)
    oembed = None if frame else await figma.fetch_oembed(data.url)

    title = data.title
    if not title:
        title = (oembed.title if oembed else None) or figma_title_from_url(data.url) or DEFAULT_FIGMA_TITLE

    if frame:
        thumbnail_url, width, height = frame.image_url, frame.width, frame.height
    elif oembed:
        thumbnail_url, width, height = oembed.thumbnail_url, oembed.width, oembed.height
    else:
        thumbnail_url = width = height = None

    asset = Asset(
        title=title,
        description=data.description,
        type="embed",
        url=data.url,
        embed_url=data.url,
        embed_provider=detect_provider(data.url),
        asset_type=AssetType.EMBED,
        thumbnail_url=thumbnail_url,
        width=width,
        height=height,
        uploader_id=current_user.id,
    )
    db.add(asset)
    await db.flush()
    _link_streams(db, asset.id, stream_ids, current_user.id)
    await db.commit()

    asset = await get_asset_or_404(db, asset.id, refresh=True)
    logger.info("embed_created", asset_id=str(asset.id), provider=asset.embed_provider)
    return await enrich_asset(db, asset, current_user.id)


# ==========================================================================
# Read / Update / Delete
# ==========================================================================

@router.get(
    "/{asset_id}",
    response_model=AssetResponse,
    summary="Get an asset",
    responses={404: {"description": "Asset not found"}},
)
async def get_asset(
    asset_id: UUID,
    db: DbSession,
    current_user: OptionalUser,
) -> AssetResponse:
    asset = await get_asset_or_404(db, asset_id)
    return await enrich_asset(db, asset, current_user.id if current_user else None)


@router.patch(
    "/{asset_id}",
    response_model=AssetResponse,
    summary="Update an asset",
    responses={
        400: {"description": "Empty title"},
        403: {"description": "Not the uploader"},
        404: {"description": "Asset or stream not found"},
    },
)
async def update_asset(
    asset_id: UUID,
    data: AssetUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> AssetResponse:
    asset = await get_asset_or_404(db, asset_id)
    _require_owner(asset, current_user.id)

    if data.title is not None:
        if not data.title:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Title must be a non-empty string",
            )
        asset.title = data.title
    if data.description is not None:
        asset.description = data.description or None

    if data.stream_ids is not None:
        stream_ids = await _validate_stream_ids(db, data.stream_ids)
        await db.execute(delete(AssetStream).where(AssetStream.asset_id == asset.id))
        _link_streams(db, asset.id, stream_ids, current_user.id)

    await db.commit()
    asset = await get_asset_or_404(db, asset.id, refresh=True)
    return await enrich_asset(db, asset, current_user.id)


@router.delete(
    "/{asset_id}",
    response_model=MessageResponse,
    summary="Delete an asset",
    responses={
        403: {"description": "Not the uploader"},
        404: {"description": "Asset not found"},
    },
)
async def delete_asset(
    asset_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    asset = await get_asset_or_404(db, asset_id)
    _require_owner(asset, current_user.id)

    await db.delete(asset)
    await db.commit()

    logger.info("asset_deleted", asset_id=str(asset_id))
    return MessageResponse(message="Asset deleted")


# ==========================================================================
# Likes
# ==========================================================================

@router.post(
    "/{asset_id}/like",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Like an asset",
    responses={
        200: {"description": "Already liked"},
        404: {"description": "Asset not found"},
    },
)
async def like_asset(
    asset_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
):
    asset = await get_asset_or_404(db, asset_id)

    existing = await db.execute(
        select(AssetLike.id).where(
            AssetLike.asset_id == asset.id,
            AssetLike.user_id == current_user.id,
        )
    )
    if existing.scalar_one_or_none():
        return already_done("Already liked")

    db.add(AssetLike(asset_id=asset.id, user_id=current_user.id))
    await create_notification(
        db,
        recipient_id=asset.uploader_id,
        actor_id=current_user.id,
        notification_type=NotificationType.LIKE_ASSET,
        resource_id=asset.id,
        resource_type=ResourceType.ASSET,
    )
    await db.commit()
    return MessageResponse(message="Asset liked")


@router.delete(
    "/{asset_id}/like",
    response_model=MessageResponse,
    summary="Unlike an asset",
)
async def unlike_asset(
    asset_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    await db.execute(
        delete(AssetLike).where(
            AssetLike.asset_id == asset_id,
            AssetLike.user_id == current_user.id,
        )
    )
    await db.commit()
    return MessageResponse(message="Asset unliked")


# ==========================================================================
# Views
# ==========================================================================

@router.post(
    "/{asset_id}/view",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Record a view",
    responses={404: {"description": "Asset not found"}},
)
async def record_view(
    asset_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    """
    Record that the caller viewed an asset.

    Owners' views are ignored. Each viewer is counted once; repeat
    views only move ``viewed_at``.
    """
    asset = await get_asset_or_404(db, asset_id)
    if asset.uploader_id == current_user.id:
        return MessageResponse(message="Owner view not counted")

    result = await db.execute(
        select(AssetView).where(
            AssetView.asset_id == asset.id,
            AssetView.user_id == current_user.id,
        )
    )
    view = result.scalar_one_or_none()
    now = datetime.now(timezone.utc)

    if view is not None:
        view.viewed_at = now
        await db.commit()
        return MessageResponse(message="View refreshed")

    db.add(AssetView(asset_id=asset.id, user_id=current_user.id, viewed_at=now))
    asset.view_count = Asset.view_count + 1
    await db.commit()
    return MessageResponse(message="View recorded")


@router.get(
    "/{asset_id}/viewers",
    response_model=ViewersResponse,
    summary="List who viewed an asset",
    responses={404: {"description": "Asset not found"}},
)
async def list_viewers(
    asset_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    limit: Optional[str] = None,
) -> ViewersResponse:
    asset = await get_asset_or_404(db, asset_id)
    page_size = parse_limit(limit, default=VIEWERS_DEFAULT_LIMIT, maximum=PageSizes.MAX_LIMIT)

    total = (await db.execute(
        select(func.count(AssetView.id)).where(AssetView.asset_id == asset.id)
    )).scalar_one()
    result = await db.execute(
        select(AssetView)
        .where(AssetView.asset_id == asset.id)
        .order_by(AssetView.viewed_at.desc())
        .limit(page_size)
    )
    viewers = [
        ViewerResponse(user=UserSummary.model_validate(view.user), viewed_at=view.viewed_at)
        for view in result.scalars().all()
    ]
    return ViewersResponse(viewers=viewers, total=total)


# ==========================================================================
# Comments
# ==========================================================================

@router.get(
    "/{asset_id}/comments",
    response_model=list[CommentResponse],
    summary="List comments on an asset",
    responses={404: {"description": "Asset not found"}},
)
async def list_comments(
    asset_id: UUID,
    db: DbSession,
    current_user: OptionalUser,
) -> list[CommentResponse]:
    asset = await get_asset_or_404(db, asset_id)
    result = await db.execute(
        select(AssetComment)
        .where(AssetComment.asset_id == asset.id)
        .order_by(AssetComment.created_at.asc())
    )
    return await comment_responses(db, result.scalars().all(), current_user.id if current_user else None)


@router.post(
    "/{asset_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Comment on an asset",
    responses={
        400: {"description": "Parent comment is on another asset"},
        404: {"description": "Asset not found"},
    },
)
async def create_comment(
    asset_id: UUID,
    data: CommentCreate,
    current_user: CurrentUser,
    db: DbSession,
) -> CommentResponse:
    """
    Post a comment or a reply.

    The uploader is notified with ``comment``, or ``reply_comment`` when
    the comment answers another one.
    """
    asset = await get_asset_or_404(db, asset_id)

    if data.parent_id is not None:
        parent = await db.execute(
            select(AssetComment.asset_id).where(AssetComment.id == data.parent_id)
        )
        if parent.scalar_one_or_none() != asset.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Parent comment not found on this asset",
            )

    comment = AssetComment(
        asset_id=asset.id,
        user_id=current_user.id,
        content=data.content,
        parent_id=data.parent_id,
    )
    db.add(comment)
    await db.flush()

    await create_notification(
        db,
        recipient_id=asset.uploader_id,
        actor_id=current_user.id,
        notification_type=(
            NotificationType.REPLY_COMMENT if data.parent_id else NotificationType.COMMENT
        ),
        resource_id=asset.id,
        resource_type=ResourceType.ASSET,
        comment_id=comment.id,
        content=data.content,
    )
    await db.commit()

    result = await db.execute(
        select(AssetComment)
        .where(AssetComment.id == comment.id)
        .execution_options(populate_existing=True)
    )
    return (await comment_responses(db, [result.scalar_one()], current_user.id))[0]
