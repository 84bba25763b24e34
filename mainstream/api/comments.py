"""
Mainstream - Comments API
=========================

Editing, deleting and liking comments. Listing and posting live under
``/assets/{id}/comments``.
"""

from typing import Optional, Sequence
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.api.deps import CurrentUser, DbSession
from mainstream.api.responses import already_done
from mainstream.core.models import (
    AssetComment,
    CommentLike,
    NotificationType,
    ResourceType,
)
from mainstream.core.notifications import create_notification
from mainstream.core.schemas import CommentResponse, CommentUpdate, MessageResponse

logger = structlog.get_logger()

router = APIRouter(prefix="/comments", tags=["Comments"])


# ==========================================================================
# Helpers
# ==========================================================================

async def comment_responses(
    db: AsyncSession,
    comments: Sequence[AssetComment],
    current_user_id: Optional[UUID] = None,
) -> list[CommentResponse]:
    """Attach like counts and the caller's like state."""
    ids = [c.id for c in comments]
    counts: dict = {}
    liked: set = set()
    if ids:
        result = await db.execute(
            select(CommentLike.comment_id, func.count(CommentLike.id))
            .where(CommentLike.comment_id.in_(ids))
            .group_by(CommentLike.comment_id)
        )
        counts = dict(result.all())
        if current_user_id is not None:
            result = await db.execute(
                select(CommentLike.comment_id).where(
                    CommentLike.comment_id.in_(ids),
                    CommentLike.user_id == current_user_id,
                )
            )
            liked = set(result.scalars().all())

    responses = []
    for comment in comments:
        item = CommentResponse.model_validate(comment)
        item.likes = counts.get(comment.id, 0)
        item.has_liked = comment.id in liked
        responses.append(item)
    return responses


async def get_comment_or_404(db: AsyncSession, comment_id: UUID) -> AssetComment:
    result = await db.execute(select(AssetComment).where(AssetComment.id == comment_id))
    comment = result.scalar_one_or_none()
    if comment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Comment not found",
        )
    return comment


def _require_author(comment: AssetComment, user_id: UUID) -> None:
    if comment.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only modify your own comments",
        )


# ==========================================================================
# Edit / Delete
# ==========================================================================

@router.patch(
    "/{comment_id}",
    response_model=CommentResponse,
    summary="Edit a comment",
    responses={
        403: {"description": "Not the author"},
        404: {"description": "Comment not found"},
    },
)
async def update_comment(
    comment_id: UUID,
    data: CommentUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> CommentResponse:
    comment = await get_comment_or_404(db, comment_id)
    _require_author(comment, current_user.id)

    comment.content = data.content
    await db.commit()
    await db.refresh(comment)
    return (await comment_responses(db, [comment], current_user.id))[0]


@router.delete(
    "/{comment_id}",
    response_model=MessageResponse,
    summary="Delete a comment",
    responses={
        403: {"description": "Not the author"},
        404: {"description": "Comment not found"},
    },
)
async def delete_comment(
    comment_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    comment = await get_comment_or_404(db, comment_id)
    _require_author(comment, current_user.id)

    await db.delete(comment)
    await db.commit()
    return MessageResponse(message="Comment deleted")


# ==========================================================================
# Likes
# ==========================================================================

@router.post(
    "/{comment_id}/like",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Like a comment",
    responses={
        200: {"description": "Already liked"},
        404: {"description": "Comment not found"},
    },
)
async def like_comment(
    comment_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
):
    comment = await get_comment_or_404(db, comment_id)

    existing = await db.execute(
        select(CommentLike.id).where(
            CommentLike.comment_id == comment.id,
            CommentLike.user_id == current_user.id,
        )
    )
    if existing.scalar_one_or_none():
        return already_done("Already liked")

    db.add(CommentLike(comment_id=comment.id, user_id=current_user.id))
    await create_notification(
        db,
        recipient_id=comment.user_id,
        actor_id=current_user.id,
        notification_type=NotificationType.LIKE_COMMENT,
        resource_id=comment.asset_id,
        resource_type=ResourceType.ASSET,
        comment_id=comment.id,
    )
    await db.commit()
    return MessageResponse(message="Comment liked")


@router.delete(
    "/{comment_id}/like",
    response_model=MessageResponse,
    summary="Unlike a comment",
)
async def unlike_comment(
    comment_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    await db.execute(
        delete(CommentLike).where(
            CommentLike.comment_id == comment_id,
            CommentLike.user_id == current_user.id,
        )
    )
    await db.commit()
    return MessageResponse(message="Comment unliked")
