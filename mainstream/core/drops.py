"""
Mainstream - Drop Composition
=============================

Everything a drop needs beyond plain CRUD:

- composing a new drop from the assets posted in its date range
- keeping block and post positions contiguous
- collecting contributors
- assembling the email HTML and the AI summary prompt
"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.core.database import as_utc
from mainstream.core.email_renderer import StreamSection, render_drop_email
from mainstream.core.feed import streams_for_assets
from mainstream.core.models import (
    Asset,
    AssetStream,
    AssetVisibility,
    BlockType,
    Drop,
    DropBlock,
    DropBlockGalleryImage,
    DropPost,
    Stream,
)

logger = structlog.get_logger()

OTHER_HEADING = "Other"
POST_BLOCK_TYPES = (BlockType.POST, BlockType.FEATURED_POST)


def as_uuid_list(values: Optional[Sequence[Any]]) -> list[UUID]:
    """Filter lists are stored as JSON strings."""
    return [v if isinstance(v, UUID) else UUID(str(v)) for v in values or []]


def as_json_list(values: Optional[Sequence[UUID]]) -> Optional[list[str]]:
    """Empty filters are stored as NULL."""
    return [str(v) for v in values] if values else None


# ==========================================================================
# Positions
# ==========================================================================

async def next_position(db: AsyncSession, position_column, parent_column, parent_id: UUID) -> int:
    """One past the highest position under ``parent_id`` (0 when empty)."""
    result = await db.execute(
        select(func.max(position_column)).where(parent_column == parent_id)
    )
    current = result.scalar_one_or_none()
    return 0 if current is None else current + 1


async def shift_blocks(db: AsyncSession, drop_id: UUID, from_position: int, delta: int) -> None:
    """Move every block at or after ``from_position`` by ``delta``."""
    await db.execute(
        update(DropBlock)
        .where(DropBlock.drop_id == drop_id, DropBlock.position >= from_position)
        .values(position=DropBlock.position + delta)
        .execution_options(synchronize_session="fetch")
    )


# ==========================================================================
# Composition
# ==========================================================================

async def collect_drop_assets(
    db: AsyncSession,
    start: datetime,
    end: datetime,
    filter_user_ids: Sequence[UUID] = (),
    filter_stream_ids: Sequence[UUID] = (),
) -> list[Asset]:
    """Public assets created inside ``[start, end]``, newest first."""
    query = (
        select(Asset)
        .where(
            Asset.created_at >= start,
            Asset.created_at <= end,
            Asset.visibility == AssetVisibility.PUBLIC,
        )
        .order_by(Asset.created_at.desc(), Asset.id.desc())
    )
    if filter_user_ids:
        query = query.where(Asset.uploader_id.in_(filter_user_ids))
    if filter_stream_ids:
        query = query.where(
            Asset.id.in_(
                select(AssetStream.asset_id).where(AssetStream.stream_id.in_(filter_stream_ids))
            )
        )
    result = await db.execute(query)
    return list(result.scalars().unique().all())


def group_by_stream(
    assets: Sequence[Asset],
    asset_streams: dict[UUID, list[Stream]],
    filter_stream_ids: Sequence[UUID] = (),
) -> tuple[list[tuple[Stream, list[Asset]]], list[Asset]]:
    """
    Assign each asset to one stream.

    With a stream filter an asset goes to the first filtered stream it is
    in (filter order); otherwise, or when none match, to its first stream.
    Groups follow the filter order, then first appearance. Assets with no
    stream are returned separately.
    """
    groups: dict[UUID, list[Asset]] = {}
    streams_by_id: dict[UUID, Stream] = {}
    uncategorized: list[Asset] = []

    for asset in assets:
        streams = asset_streams.get(asset.id, [])
        if not streams:
            uncategorized.append(asset)
            continue

        chosen = None
        for stream_id in filter_stream_ids:
            chosen = next((s for s in streams if s.id == stream_id), None)
            if chosen is not None:
                break
        if chosen is None:
            chosen = streams[0]

        streams_by_id[chosen.id] = chosen
        groups.setdefault(chosen.id, []).append(asset)

    order = [sid for sid in filter_stream_ids if sid in groups]
    order += [sid for sid in groups if sid not in order]
    return [(streams_by_id[sid], groups[sid]) for sid in order], uncategorized


async def compose_drop(db: AsyncSession, drop: Drop) -> int:
    """
    Fill a freshly created drop with posts and blocks.

    Blocks are an H2 heading per stream followed by one post block per
    asset, then an "Other" section for assets outside any stream.
    Returns the number of assets included.
    """
    filter_stream_ids = as_uuid_list(drop.filter_stream_ids)
    assets = await collect_drop_assets(
        db,
        drop.date_range_start,
        drop.date_range_end,
        as_uuid_list(drop.filter_user_ids),
        filter_stream_ids,
    )
    asset_streams = await streams_for_assets(db, [a.id for a in assets], active_only=False)
    grouped, uncategorized = group_by_stream(assets, asset_streams, filter_stream_ids)

    for position, asset in enumerate(assets):
        db.add(DropPost(drop_id=drop.id, asset_id=asset.id, position=position))

    sections = [(stream.name, members) for stream, members in grouped]
    if uncategorized:
        sections.append((OTHER_HEADING, uncategorized))

    position = 0
    for heading, members in sections:
        db.add(DropBlock(
            drop_id=drop.id,
            type=BlockType.HEADING,
            content=heading,
            heading_level=2,
            position=position,
        ))
        position += 1
        for asset in members:
            db.add(DropBlock(
                drop_id=drop.id,
                type=BlockType.POST,
                asset_id=asset.id,
                position=position,
            ))
            position += 1

    drop.use_blocks = True
    await db.flush()

    logger.info(
        "drop_composed",
        drop_id=str(drop.id),
        assets=len(assets),
        streams=len(grouped),
        blocks=position,
    )
    return len(assets)


# ==========================================================================
# Loading
# ==========================================================================

async def load_posts(db: AsyncSession, drop_id: UUID) -> list[DropPost]:
    result = await db.execute(
        select(DropPost)
        .where(DropPost.drop_id == drop_id)
        .order_by(DropPost.position, DropPost.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().unique().all())


async def load_blocks(db: AsyncSession, drop_id: UUID) -> list[DropBlock]:
    result = await db.execute(
        select(DropBlock)
        .where(DropBlock.drop_id == drop_id)
        .order_by(DropBlock.position)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().unique().all())


async def load_gallery_images(
    db: AsyncSession,
    block_ids: Sequence[UUID],
) -> dict[UUID, list[DropBlockGalleryImage]]:
    """Gallery images of each block, by position."""
    if not block_ids:
        return {}
    result = await db.execute(
        select(DropBlockGalleryImage)
        .where(DropBlockGalleryImage.block_id.in_(block_ids))
        .order_by(DropBlockGalleryImage.position)
        .execution_options(populate_existing=True)
    )
    images: dict[UUID, list[DropBlockGalleryImage]] = defaultdict(list)
    for image in result.scalars().unique().all():
        images[image.block_id].append(image)
    return images


async def post_counts(db: AsyncSession, drop_ids: Sequence[UUID]) -> dict[UUID, int]:
    if not drop_ids:
        return {}
    result = await db.execute(
        select(DropPost.drop_id, func.count(DropPost.id))
        .where(DropPost.drop_id.in_(drop_ids))
        .group_by(DropPost.drop_id)
    )
    return {drop_id: count for drop_id, count in result.all()}


def unique_uploaders(assets: Sequence[Optional[Asset]]) -> list:
    seen: set[UUID] = set()
    contributors = []
    for asset in assets:
        if asset is None or asset.uploader is None:
            continue
        if asset.uploader.id not in seen:
            seen.add(asset.uploader.id)
            contributors.append(asset.uploader)
    return contributors


async def drop_contributors(db: AsyncSession, drop: Drop) -> list:
    """Uploaders of everything shown in the drop, in order of appearance."""
    if not drop.use_blocks:
        return unique_uploaders([p.asset for p in await load_posts(db, drop.id)])

    blocks = await load_blocks(db, drop.id)
    gallery = await load_gallery_images(db, [b.id for b in blocks])
    assets: list[Optional[Asset]] = []
    for block in blocks:
        assets.append(block.asset)
        assets.extend(image.asset for image in gallery.get(block.id, []))
    return unique_uploaders(assets)


# ==========================================================================
# Email
# ==========================================================================

async def build_email_html(db: AsyncSession, drop: Drop, now: Optional[datetime] = None) -> str:
    """Render the email for a drop, from its blocks or, for legacy drops, its posts."""
    contributors = await drop_contributors(db, drop)

    if drop.use_blocks:
        blocks = await load_blocks(db, drop.id)
        gallery = await load_gallery_images(db, [b.id for b in blocks])
        gallery_assets = {
            block_id: [image.asset for image in images]
            for block_id, images in gallery.items()
        }
        return render_drop_email(
            drop,
            contributors=contributors,
            blocks=blocks,
            gallery_assets=gallery_assets,
            now=now,
        )

    posts = await load_posts(db, drop.id)
    asset_streams = await streams_for_assets(db, [p.asset_id for p in posts])
    sections: dict[Optional[str], list[DropPost]] = {}
    for post in posts:
        streams = asset_streams.get(post.asset_id)
        name = streams[0].name if streams else None
        sections.setdefault(name, []).append(post)

    ordered = [StreamSection(name, items) for name, items in sections.items() if name is not None]
    if None in sections:
        ordered.append(StreamSection(None, sections[None]))
    return render_drop_email(drop, contributors=contributors, sections=ordered, now=now)


# ==========================================================================
# AI Summary
# ==========================================================================

async def summary_assets(db: AsyncSession, drop: Drop) -> list[Asset]:
    """Assets to summarize: post blocks first, drop posts for legacy drops."""
    blocks = await load_blocks(db, drop.id)
    assets = [b.asset for b in blocks if b.type in POST_BLOCK_TYPES and b.asset is not None]
    if not assets:
        assets = [p.asset for p in await load_posts(db, drop.id) if p.asset is not None]
    return assets


def _long_date(value: datetime, with_year: bool = False) -> str:
    value = as_utc(value)
    label = f"{value.strftime('%B')} {value.day}"
    return f"{label}, {value.year}" if with_year else label


def build_summary_prompt(
    drop: Drop,
    assets: Sequence[Asset],
    stream_names: dict[UUID, list[str]],
) -> str:
    lines = []
    for index, asset in enumerate(assets, start=1):
        uploader = asset.uploader.display_name if asset.uploader else None
        names = stream_names.get(asset.id, [])
        in_streams = f" in #{', #'.join(names)}" if names else ""
        description = f" - {asset.description[:100]}" if asset.description else ""
        lines.append(f'{index}. "{asset.title}" by {uploader or "Unknown"}{in_streams}{description}')

    return (
        "You are writing a weekly design newsletter for a platform called Mainstream.\n"
        f"Summarize the following {len(assets)} posts shared between "
        f"{_long_date(drop.date_range_start)} and {_long_date(drop.date_range_end, with_year=True)}.\n"
        "\n"
        "Posts:\n"
        + "\n".join(lines)
        + "\n\n"
        "Write a 2-3 paragraph summary (150-250 words) that:\n"
        "- Highlights key themes and notable work\n"
        "- Mentions contributors by name where relevant\n"
        "- Groups related work together naturally\n"
        "- Keeps a friendly, professional tone suitable for stakeholders\n"
        "\n"
        "Respond with ONLY the summary text, no formatting or additional commentary."
    )
