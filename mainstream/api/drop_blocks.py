"""
Mainstream - Drop Blocks API
============================

The block editor behind a drop: ordered content blocks and the images of
gallery blocks. Positions stay contiguous (0..n-1) across inserts,
deletes and reorders.
"""

from typing import Optional, Sequence
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.api.deps import CurrentUser, DbSession, OptionalUser
from mainstream.api.drops import get_drop_or_404, require_creator, require_visible
from mainstream.core.drops import load_blocks, load_gallery_images, next_position, shift_blocks
from mainstream.core.models import (
    Asset,
    BlockType,
    Drop,
    DropBlock,
    DropBlockGalleryImage,
)
from mainstream.core.schemas import (
    BlockCreate,
    BlockReorder,
    BlockResponse,
    BlockUpdate,
    GalleryImageResponse,
    GalleryImagesSet,
    MessageResponse,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/drops", tags=["Drop Blocks"])


# ==========================================================================
# Helpers
# ==========================================================================

async def _get_block_or_404(db: AsyncSession, drop_id: UUID, block_id: UUID) -> DropBlock:
    result = await db.execute(
        select(DropBlock)
        .where(DropBlock.id == block_id, DropBlock.drop_id == drop_id)
        .execution_options(populate_existing=True)
    )
    block = result.scalar_one_or_none()
    if block is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Block not found",
        )
    return block


async def _ensure_asset(db: AsyncSession, asset_id: Optional[UUID]) -> None:
    if asset_id is not None and await db.get(Asset, asset_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Asset not found",
        )


async def _block_responses(db: AsyncSession, blocks: Sequence[DropBlock]) -> list[BlockResponse]:
    gallery = await load_gallery_images(db, [b.id for b in blocks])
    responses = []
    for block in blocks:
        item = BlockResponse.model_validate(block)
        item.gallery_images = [GalleryImageResponse.model_validate(i) for i in gallery.get(block.id, [])]
        responses.append(item)
    return responses


async def _editable_drop(db: AsyncSession, drop_id: UUID, user) -> Drop:
    drop = await get_drop_or_404(db, drop_id)
    require_creator(drop, user)
    return drop


# ==========================================================================
# Blocks
# ==========================================================================

@router.get(
    "/{drop_id}/blocks",
    response_model=list[BlockResponse],
    summary="List a drop's blocks",
)
async def list_blocks(
    drop_id: UUID,
    db: DbSession,
    current_user: OptionalUser,
) -> list[BlockResponse]:
    drop = await get_drop_or_404(db, drop_id)
    require_visible(drop, current_user)
    return await _block_responses(db, await load_blocks(db, drop.id))


@router.post(
    "/{drop_id}/blocks",
    response_model=BlockResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Insert a block",
    responses={
        400: {"description": "Invalid block type"},
        403: {"description": "Not the creator"},
    },
)
async def create_block(
    drop_id: UUID,
    data: BlockCreate,
    current_user: CurrentUser,
    db: DbSession,
) -> BlockResponse:
    """
    Insert a block.

    Without a position the block is appended; otherwise blocks at or
    after that position move down by one.
    """
    drop = await _editable_drop(db, drop_id, current_user)

    try:
        block_type = BlockType(data.type)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid block type. Must be one of: {', '.join(t.value for t in BlockType)}",
        )
    await _ensure_asset(db, data.asset_id)

    end = await next_position(db, DropBlock.position, DropBlock.drop_id, drop.id)
    if data.position is None or data.position >= end:
        position = end
    else:
        position = data.position
        await shift_blocks(db, drop.id, position, 1)

    block = DropBlock(
        drop_id=drop.id,
        type=block_type,
        position=position,
        content=data.content,
        heading_level=data.heading_level,
        asset_id=data.asset_id,
        display_mode=data.display_mode,
        crop_position_x=data.crop_position_x,
        crop_position_y=data.crop_position_y,
        gallery_layout=data.gallery_layout,
        gallery_featured_index=data.gallery_featured_index,
    )
    db.add(block)
    drop.use_blocks = True
    await db.commit()

    block = await _get_block_or_404(db, drop.id, block.id)
    logger.info("drop_block_created", drop_id=str(drop.id), type=block_type.value, position=position)
    return (await _block_responses(db, [block]))[0]


@router.put(
    "/{drop_id}/blocks",
    response_model=list[BlockResponse],
    summary="Reorder blocks",
    responses={400: {"description": "Block ids not in this drop"}},
)
async def reorder_blocks(
    drop_id: UUID,
    data: BlockReorder,
    current_user: CurrentUser,
    db: DbSession,
) -> list[BlockResponse]:
    """Assign positions 0..n in the order given; unlisted blocks keep their order after them."""
    drop = await _editable_drop(db, drop_id, current_user)
    blocks = await load_blocks(db, drop.id)
    by_id = {b.id: b for b in blocks}

    ordered_ids = list(dict.fromkeys(data.block_ids))
    foreign = [str(i) for i in ordered_ids if i not in by_id]
    if foreign:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Blocks do not belong to this drop: {', '.join(foreign)}",
        )

    rest = [b.id for b in blocks if b.id not in set(ordered_ids)]
    for position, block_id in enumerate(ordered_ids + rest):
        by_id[block_id].position = position

    await db.commit()
    return await _block_responses(db, await load_blocks(db, drop.id))


@router.patch(
    "/{drop_id}/blocks/{block_id}",
    response_model=BlockResponse,
    summary="Update a block",
)
async def update_block(
    drop_id: UUID,
    block_id: UUID,
    data: BlockUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> BlockResponse:
    drop = await _editable_drop(db, drop_id, current_user)
    block = await _get_block_or_404(db, drop.id, block_id)

    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )
    if "asset_id" in changes:
        await _ensure_asset(db, changes["asset_id"])
    for field, value in changes.items():
        setattr(block, field, value)

    await db.commit()
    block = await _get_block_or_404(db, drop.id, block_id)
    return (await _block_responses(db, [block]))[0]


@router.delete(
    "/{drop_id}/blocks/{block_id}",
    response_model=MessageResponse,
    summary="Delete a block",
)
async def delete_block(
    drop_id: UUID,
    block_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    drop = await _editable_drop(db, drop_id, current_user)
    block = await _get_block_or_404(db, drop.id, block_id)

    position = block.position
    await db.delete(block)
    await db.flush()
    await shift_blocks(db, drop.id, position + 1, -1)
    await db.commit()
    return MessageResponse(message="Block deleted")


# ==========================================================================
# Gallery Images
# ==========================================================================

async def _gallery_block(db: AsyncSession, drop: Drop, block_id: UUID) -> DropBlock:
    block = await _get_block_or_404(db, drop.id, block_id)
    if block.type != BlockType.IMAGE_GALLERY:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Block is not an image gallery",
        )
    return block


async def _validated_asset_ids(db: AsyncSession, data: GalleryImagesSet) -> list[UUID]:
    if not data.asset_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="asset_ids is required",
        )
    wanted = list(dict.fromkeys(data.asset_ids))
    found = set((await db.execute(select(Asset.id).where(Asset.id.in_(wanted)))).scalars().all())
    missing = [str(a) for a in wanted if a not in found]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Assets not found: {', '.join(missing)}",
        )
    return wanted


async def _gallery_response(db: AsyncSession, block_id: UUID) -> list[GalleryImageResponse]:
    images = (await load_gallery_images(db, [block_id])).get(block_id, [])
    return [GalleryImageResponse.model_validate(i) for i in images]


@router.get(
    "/{drop_id}/blocks/{block_id}/gallery",
    response_model=list[GalleryImageResponse],
    summary="List gallery images",
)
async def list_gallery(
    drop_id: UUID,
    block_id: UUID,
    db: DbSession,
    current_user: OptionalUser,
) -> list[GalleryImageResponse]:
    drop = await get_drop_or_404(db, drop_id)
    require_visible(drop, current_user)
    block = await _get_block_or_404(db, drop.id, block_id)
    return await _gallery_response(db, block.id)


@router.post(
    "/{drop_id}/blocks/{block_id}/gallery",
    response_model=list[GalleryImageResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Add gallery images",
    responses={400: {"description": "Not a gallery block, or no asset_ids"}},
)
async def add_gallery_images(
    drop_id: UUID,
    block_id: UUID,
    data: GalleryImagesSet,
    current_user: CurrentUser,
    db: DbSession,
) -> list[GalleryImageResponse]:
    drop = await _editable_drop(db, drop_id, current_user)
    block = await _gallery_block(db, drop, block_id)
    asset_ids = await _validated_asset_ids(db, data)

    existing = set((await db.execute(
        select(DropBlockGalleryImage.asset_id).where(DropBlockGalleryImage.block_id == block.id)
    )).scalars().all())
    position = await next_position(
        db, DropBlockGalleryImage.position, DropBlockGalleryImage.block_id, block.id
    )
    for asset_id in asset_ids:
        if asset_id in existing:
            continue
        db.add(DropBlockGalleryImage(block_id=block.id, asset_id=asset_id, position=position))
        position += 1

    await db.commit()
    return await _gallery_response(db, block.id)


@router.put(
    "/{drop_id}/blocks/{block_id}/gallery",
    response_model=list[GalleryImageResponse],
    summary="Replace gallery images",
)
async def replace_gallery_images(
    drop_id: UUID,
    block_id: UUID,
    data: GalleryImagesSet,
    current_user: CurrentUser,
    db: DbSession,
) -> list[GalleryImageResponse]:
    drop = await _editable_drop(db, drop_id, current_user)
    block = await _gallery_block(db, drop, block_id)
    asset_ids = await _validated_asset_ids(db, data)

    await db.execute(
        delete(DropBlockGalleryImage)
        .where(DropBlockGalleryImage.block_id == block.id)
        .execution_options(synchronize_session="fetch")
    )
    for position, asset_id in enumerate(asset_ids):
        db.add(DropBlockGalleryImage(block_id=block.id, asset_id=asset_id, position=position))

    await db.commit()
    return await _gallery_response(db, block.id)


@router.delete(
    "/{drop_id}/blocks/{block_id}/gallery",
    response_model=MessageResponse,
    summary="Remove a gallery image",
)
async def remove_gallery_image(
    drop_id: UUID,
    block_id: UUID,
    asset_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    drop = await _editable_drop(db, drop_id, current_user)
    block = await _get_block_or_404(db, drop.id, block_id)

    await db.execute(
        delete(DropBlockGalleryImage).where(
            DropBlockGalleryImage.block_id == block.id,
            DropBlockGalleryImage.asset_id == asset_id,
        )
    )
    await db.commit()
    return MessageResponse(message="Image removed from gallery")
