"""
Mainstream - Asset Feeds
========================

Queries behind every asset list: the public feed, per-user and
per-stream feeds, and the personalized "following" feed. Also turns
Asset rows into feed items (uploader, streams, like count, like state).
"""

from collections import defaultdict
from typing import Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.core.models import (
    Asset,
    AssetLike,
    AssetStream,
    AssetVisibility,
    Stream,
    StreamFollow,
    StreamStatus,
    UserFollow,
)
from mainstream.core.pagination import (
    Cursor,
    Page,
    after_cursor,
    feed_sort_key,
    make_page,
)
from mainstream.core.schemas import AssetResponse, StreamSummary

logger = structlog.get_logger()


# ==========================================================================
# Enrichment
# ==========================================================================

async def streams_for_assets(
    db: AsyncSession,
    asset_ids: Sequence[UUID],
    active_only: bool = True,
) -> dict[UUID, list[Stream]]:
    """Streams of each asset, in the order they were attached."""
    if not asset_ids:
        return {}
    query = (
        select(AssetStream.asset_id, Stream)
        .join(Stream, Stream.id == AssetStream.stream_id)
        .where(AssetStream.asset_id.in_(asset_ids))
        .order_by(AssetStream.added_at, Stream.name)
    )
    if active_only:
        query = query.where(Stream.status == StreamStatus.ACTIVE)
    result = await db.execute(query)

    streams: dict[UUID, list[Stream]] = defaultdict(list)
    for asset_id, stream in result.all():
        streams[asset_id].append(stream)
    return streams


async def like_counts(db: AsyncSession, asset_ids: Sequence[UUID]) -> dict[UUID, int]:
    if not asset_ids:
        return {}
    result = await db.execute(
        select(AssetLike.asset_id, func.count(AssetLike.id))
        .where(AssetLike.asset_id.in_(asset_ids))
        .group_by(AssetLike.asset_id)
    )
    return {asset_id: count for asset_id, count in result.all()}


async def liked_asset_ids(
    db: AsyncSession,
    asset_ids: Sequence[UUID],
    user_id: Optional[UUID],
) -> set[UUID]:
    if not asset_ids or user_id is None:
        return set()
    result = await db.execute(
        select(AssetLike.asset_id).where(
            AssetLike.asset_id.in_(asset_ids),
            AssetLike.user_id == user_id,
        )
    )
    return set(result.scalars().all())


async def enrich_assets(
    db: AsyncSession,
    assets: Sequence[Asset],
    current_user_id: Optional[UUID] = None,
) -> list[AssetResponse]:
    """Attach streams, like count and the caller's like state to each asset."""
    ids = [asset.id for asset in assets]
    streams = await streams_for_assets(db, ids)
    counts = await like_counts(db, ids)
    liked = await liked_asset_ids(db, ids, current_user_id)

    items = []
    for asset in assets:
        item = AssetResponse.model_validate(asset)
        item.streams = [StreamSummary.model_validate(s) for s in streams.get(asset.id, [])]
        item.like_count = counts.get(asset.id, 0)
        item.is_liked_by_current_user = asset.id in liked
        items.append(item)
    return items


async def enrich_asset(
    db: AsyncSession,
    asset: Asset,
    current_user_id: Optional[UUID] = None,
) -> AssetResponse:
    return (await enrich_assets(db, [asset], current_user_id))[0]


# ==========================================================================
# Feeds
# ==========================================================================

def _public_feed_query(cursor: Optional[Cursor], limit: int):
    query = select(Asset).where(Asset.visibility == AssetVisibility.PUBLIC)
    predicate = after_cursor(Asset.created_at, Asset.id, cursor)
    if predicate is not None:
        query = query.where(predicate)
    return query.order_by(Asset.created_at.desc(), Asset.id.desc()).limit(limit + 1)


async def public_feed(
    db: AsyncSession,
    cursor: Optional[Cursor],
    limit: int,
    uploader_id: Optional[UUID] = None,
) -> Page:
    """Newest public assets, optionally restricted to one uploader."""
    query = _public_feed_query(cursor, limit)
    if uploader_id is not None:
        query = query.where(Asset.uploader_id == uploader_id)
    result = await db.execute(query)
    return make_page(result.scalars().all(), limit)


async def stream_feed(
    db: AsyncSession,
    stream_id: UUID,
    cursor: Optional[Cursor],
    limit: int,
) -> Page:
    query = _public_feed_query(cursor, limit).where(
        Asset.id.in_(select(AssetStream.asset_id).where(AssetStream.stream_id == stream_id))
    )
    result = await db.execute(query)
    return make_page(result.scalars().all(), limit)


async def following_feed(
    db: AsyncSession,
    user_id: UUID,
    cursor: Optional[Cursor],
    limit: int,
) -> Page:
    """
    Assets from followed users and followed streams, merged.

    The two sources are queried independently, each already bounded by
    the cursor and ``limit + 1``, then merged in feed order and
    deduplicated; an asset both uploaded by a followed user and posted to
    a followed stream appears once.
    """
    followed_users = (
        await db.execute(select(UserFollow.following_id).where(UserFollow.follower_id == user_id))
    ).scalars().all()
    followed_streams = (
        await db.execute(select(StreamFollow.stream_id).where(StreamFollow.user_id == user_id))
    ).scalars().all()

    if not followed_users and not followed_streams:
        return Page(items=[], has_more=False, cursor=None)

    merged: dict[UUID, Asset] = {}

    if followed_users:
        query = _public_feed_query(cursor, limit).where(Asset.uploader_id.in_(followed_users))
        for asset in (await db.execute(query)).scalars().all():
            merged[asset.id] = asset

    if followed_streams:
        in_streams = select(AssetStream.asset_id).where(AssetStream.stream_id.in_(followed_streams))
        query = _public_feed_query(cursor, limit).where(Asset.id.in_(in_streams))
        for asset in (await db.execute(query)).scalars().all():
            merged.setdefault(asset.id, asset)

    ordered = sorted(merged.values(), key=feed_sort_key, reverse=True)
    logger.debug(
        "following_feed_merged",
        user_id=str(user_id),
        users=len(followed_users),
        streams=len(followed_streams),
        candidates=len(ordered),
    )
    return make_page(ordered, limit)
