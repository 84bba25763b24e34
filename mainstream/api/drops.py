"""
Mainstream - Drops API
======================

Drops are curated digests of the work posted in a date range. Creating
one composes it from the matching assets; the creator then edits it,
optionally asks the AI for a summary, and publishes it (with an email to
the team).
"""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import HTMLResponse
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.api.deps import AIClient, CurrentUser, DbSession, Mailer, OptionalUser
from mainstream.core.config import settings
from mainstream.core.database import as_utc, utcnow
from mainstream.core.drops import (
    as_json_list,
    build_email_html,
    build_summary_prompt,
    compose_drop,
    drop_contributors,
    load_posts,
    next_position,
    post_counts,
    summary_assets,
)
from mainstream.core.feed import enrich_assets, streams_for_assets
from mainstream.core.integrations.litellm_client import LiteLLMError
from mainstream.core.models import Asset, DisplayMode, Drop, DropPost, DropStatus, User
from mainstream.core.schemas import (
    DisplayModeUpdate,
    DropCreate,
    DropCreateResponse,
    DropDetailResponse,
    DropListItem,
    DropListResponse,
    DropPostResponse,
    DropPostsAdd,
    DropPostsAdded,
    DropResponse,
    DropUpdate,
    GenerateResponse,
    MessageResponse,
    PublishRequest,
    PublishResponse,
    UserSummary,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/drops", tags=["Drops"])

MAX_DROPS_PAGE = 100


# ==========================================================================
# Helpers
# ==========================================================================

async def get_drop_or_404(db: AsyncSession, drop_id: UUID) -> Drop:
    result = await db.execute(
        select(Drop)
        .where(Drop.id == drop_id)
        .execution_options(populate_existing=True)
    )
    drop = result.scalar_one_or_none()
    if drop is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Drop not found",
        )
    return drop


def require_creator(drop: Drop, user: Optional[User]) -> None:
    if user is None or drop.created_by != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the drop creator can do this",
        )


def require_visible(drop: Drop, user: Optional[User]) -> None:
    """Drafts are private to their creator."""
    if drop.status == DropStatus.DRAFT:
        require_creator(drop, user)


# ==========================================================================
# Drops
# ==========================================================================

@router.get(
    "",
    response_model=DropListResponse,
    summary="List drops",
)
async def list_drops(
    current_user: CurrentUser,
    db: DbSession,
    tab: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=MAX_DROPS_PAGE),
    offset: int = Query(0, ge=0),
) -> DropListResponse:
    """
    List drops, newest first.

    - ``tab=weekly``: published weekly drops
    - ``tab=drafts``: the caller's drafts
    - otherwise: published drops plus the caller's own drafts
    """
    query = select(Drop)
    if tab == "weekly":
        query = query.where(Drop.status == DropStatus.PUBLISHED, Drop.is_weekly.is_(True))
    elif tab == "drafts":
        query = query.where(Drop.status == DropStatus.DRAFT, Drop.created_by == current_user.id)
    else:
        query = query.where(or_(
            Drop.status == DropStatus.PUBLISHED,
            Drop.created_by == current_user.id,
        ))
        if status_filter:
            try:
                query = query.where(Drop.status == DropStatus(status_filter))
            except ValueError:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Invalid status",
                )

    total = (await db.execute(
        select(func.count()).select_from(query.subquery())
    )).scalar_one()

    result = await db.execute(
        query.order_by(Drop.created_at.desc()).offset(offset).limit(limit)
    )
    drops = result.scalars().all()
    counts = await post_counts(db, [d.id for d in drops])

    items = []
    for drop in drops:
        item = DropListItem.model_validate(drop)
        item.post_count = counts.get(drop.id, 0)
        items.append(item)
    return DropListResponse(drops=items, total=total)


@router.post(
    "",
    response_model=DropCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create and compose a drop",
    responses={400: {"description": "Invalid date range"}},
)
async def create_drop(
    data: DropCreate,
    current_user: CurrentUser,
    db: DbSession,
) -> DropCreateResponse:
    """
    Create a draft drop from the assets posted in the date range.

    Assets are grouped under one heading per stream, then "Other" for
    assets outside any stream.
    """
    start = as_utc(data.date_range_start)
    end = as_utc(data.date_range_end)
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="date_range_end must not be before date_range_start",
        )

    drop = Drop(
        title=data.title,
        description=data.description,
        created_by=current_user.id,
        date_range_start=start,
        date_range_end=end,
        filter_stream_ids=as_json_list(data.filter_stream_ids),
        filter_user_ids=as_json_list(data.filter_user_ids),
        is_weekly=data.is_weekly,
    )
    db.add(drop)
    await db.flush()

    post_count = await compose_drop(db, drop)
    await db.commit()

    drop = await get_drop_or_404(db, drop.id)
    logger.info("drop_created", drop_id=str(drop.id), posts=post_count)
    return DropCreateResponse(drop=DropResponse.model_validate(drop), post_count=post_count)


@router.get(
    "/{drop_id}",
    response_model=DropDetailResponse,
    summary="Get a drop with its posts",
    responses={
        403: {"description": "Draft of another user"},
        404: {"description": "Drop not found"},
    },
)
async def get_drop(
    drop_id: UUID,
    db: DbSession,
    current_user: OptionalUser,
) -> DropDetailResponse:
    drop = await get_drop_or_404(db, drop_id)
    require_visible(drop, current_user)

    posts = await load_posts(db, drop.id)
    assets = await enrich_assets(db, [p.asset for p in posts], current_user.id if current_user else None)

    post_items = []
    for post, asset in zip(posts, assets):
        item = DropPostResponse.model_validate(post)
        item.asset = asset
        post_items.append(item)

    contributors = await drop_contributors(db, drop)
    return DropDetailResponse(
        **DropResponse.model_validate(drop).model_dump(),
        posts=post_items,
        contributors=[UserSummary.model_validate(u) for u in contributors],
        post_count=len(posts),
    )


@router.patch(
    "/{drop_id}",
    response_model=DropResponse,
    summary="Update a drop",
    responses={
        400: {"description": "No fields to update"},
        403: {"description": "Not the creator"},
    },
)
async def update_drop(
    drop_id: UUID,
    data: DropUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> DropResponse:
    drop = await get_drop_or_404(db, drop_id)
    require_creator(drop, current_user)

    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )
    for field, value in changes.items():
        setattr(drop, field, value)

    await db.commit()
    drop = await get_drop_or_404(db, drop_id)
    return DropResponse.model_validate(drop)


@router.delete(
    "/{drop_id}",
    response_model=MessageResponse,
    summary="Delete a drop",
    responses={403: {"description": "Not the creator"}},
)
async def delete_drop(
    drop_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    drop = await get_drop_or_404(db, drop_id)
    require_creator(drop, current_user)

    await db.delete(drop)
    await db.commit()

    logger.info("drop_deleted", drop_id=str(drop_id))
    return MessageResponse(message="Drop deleted")


# ==========================================================================
# Posts
# ==========================================================================

@router.post(
    "/{drop_id}/posts",
    response_model=DropPostsAdded,
    summary="Add assets to a drop",
    responses={404: {"description": "Drop or asset not found"}},
)
async def add_posts(
    drop_id: UUID,
    data: DropPostsAdd,
    current_user: CurrentUser,
    db: DbSession,
) -> DropPostsAdded:
    """Append assets after the current last post; assets already in the drop are skipped."""
    drop = await get_drop_or_404(db, drop_id)
    require_creator(drop, current_user)

    wanted = list(dict.fromkeys(data.asset_ids))
    found = set((await db.execute(select(Asset.id).where(Asset.id.in_(wanted)))).scalars().all())
    missing = [str(a) for a in wanted if a not in found]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Assets not found: {', '.join(missing)}",
        )

    existing = set((await db.execute(
        select(DropPost.asset_id).where(DropPost.drop_id == drop.id)
    )).scalars().all())

    position = await next_position(db, DropPost.position, DropPost.drop_id, drop.id)
    added = 0
    for asset_id in wanted:
        if asset_id in existing:
            continue
        db.add(DropPost(drop_id=drop.id, asset_id=asset_id, position=position))
        position += 1
        added += 1

    await db.commit()
    return DropPostsAdded(added=added)


async def _get_post_or_404(db: AsyncSession, drop_id: UUID, post_id: UUID) -> DropPost:
    result = await db.execute(
        select(DropPost).where(DropPost.id == post_id, DropPost.drop_id == drop_id)
    )
    post = result.scalar_one_or_none()
    if post is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Post not found",
        )
    return post


@router.delete(
    "/{drop_id}/posts/{post_id}",
    response_model=MessageResponse,
    summary="Remove a post from a drop",
)
async def remove_post(
    drop_id: UUID,
    post_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    drop = await get_drop_or_404(db, drop_id)
    require_creator(drop, current_user)

    post = await _get_post_or_404(db, drop.id, post_id)
    await db.delete(post)
    await db.commit()
    return MessageResponse(message="Post removed")


@router.patch(
    "/{drop_id}/posts/{post_id}/display-mode",
    response_model=DropPostResponse,
    summary="Set how a post's image is framed",
    responses={400: {"description": "Invalid display mode or crop"}},
)
async def update_display_mode(
    drop_id: UUID,
    post_id: UUID,
    data: DisplayModeUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> DropPostResponse:
    drop = await get_drop_or_404(db, drop_id)
    require_creator(drop, current_user)
    post = await _get_post_or_404(db, drop.id, post_id)

    if data.display_mode is None and data.crop_position_x is None and data.crop_position_y is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )

    if data.display_mode is not None:
        try:
            post.display_mode = DisplayMode(data.display_mode)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="display_mode must be one of: auto, fit, cover",
            )
    for field in ("crop_position_x", "crop_position_y"):
        value = getattr(data, field)
        if value is None:
            continue
        if not 0 <= value <= 100:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{field} must be between 0 and 100",
            )
        setattr(post, field, value)

    await db.commit()
    post = await _get_post_or_404(db, drop.id, post_id)
    item = DropPostResponse.model_validate(post)
    item.asset = (await enrich_assets(db, [post.asset], current_user.id))[0]
    return item


# ==========================================================================
# Publishing
# ==========================================================================

@router.post(
    "/{drop_id}/publish",
    response_model=PublishResponse,
    summary="Publish a drop",
    responses={403: {"description": "Not the creator"}},
)
async def publish_drop(
    drop_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    mailer: Mailer,
    data: Optional[PublishRequest] = None,
) -> PublishResponse:
    """
    Publish the drop and, with ``notify_team``, email it to every active user.

    ``email_sent`` is false when emailing was not requested, Resend is not
    configured, or delivery failed; the drop is published regardless.
    """
    drop = await get_drop_or_404(db, drop_id)
    require_creator(drop, current_user)

    drop.status = DropStatus.PUBLISHED
    drop.published_at = utcnow()
    await db.flush()

    email_sent = False
    if data is not None and data.notify_team:
        if mailer.enabled:
            html = await build_email_html(db, drop)
            result = await db.execute(select(User.email).where(User.is_active.is_(True)))
            recipients = list(result.scalars().all())
            email_sent = await mailer.send_bulk(
                settings.DROPS_EMAIL_FROM,
                recipients,
                drop.title,
                html,
            )
        else:
            logger.warning("drop_email_skipped", drop_id=str(drop.id), reason="resend_not_configured")

    await db.commit()
    drop = await get_drop_or_404(db, drop_id)

    logger.info("drop_published", drop_id=str(drop.id), email_sent=email_sent)
    return PublishResponse(drop=DropResponse.model_validate(drop), email_sent=email_sent)


@router.get(
    "/{drop_id}/email-preview",
    response_class=HTMLResponse,
    summary="Preview the drop email",
    responses={403: {"description": "Unpublished drop of another user"}},
)
async def email_preview(
    drop_id: UUID,
    db: DbSession,
    current_user: OptionalUser,
) -> HTMLResponse:
    drop = await get_drop_or_404(db, drop_id)
    require_visible(drop, current_user)
    return HTMLResponse(await build_email_html(db, drop))


@router.post(
    "/{drop_id}/generate",
    response_model=GenerateResponse,
    summary="Generate the drop description with AI",
    responses={
        400: {"description": "Drop has no posts"},
        403: {"description": "Not the creator"},
        502: {"description": "Upstream AI failure"},
        503: {"description": "AI not configured"},
    },
)
async def generate_description(
    drop_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    ai: AIClient,
) -> GenerateResponse:
    if not ai.enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI generation is not configured",
        )

    drop = await get_drop_or_404(db, drop_id)
    require_creator(drop, current_user)

    assets = await summary_assets(db, drop)
    if not assets:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Drop has no posts to summarize",
        )

    streams = await streams_for_assets(db, [a.id for a in assets], active_only=False)
    stream_names = {asset_id: [s.name for s in items] for asset_id, items in streams.items()}
    prompt = build_summary_prompt(drop, assets, stream_names)

    try:
        description = await ai.complete(prompt, max_tokens=settings.LITELLM_MAX_TOKENS)
    except LiteLLMError as e:
        logger.error("drop_generate_failed", drop_id=str(drop.id), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to generate description",
        )

    drop.description = description
    await db.commit()

    logger.info("drop_description_generated", drop_id=str(drop_id), posts=len(assets))
    return GenerateResponse(description=description)
