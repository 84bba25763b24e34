"""
Mainstream - Notifications API
==============================

The caller's notification inbox. Preferences live under
``/users/me/notification-settings``.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, HTTPException, status
from sqlalchemy import func, select, update

from mainstream.api.deps import CurrentUser, DbSession
from mainstream.core.models import Notification
from mainstream.core.pagination import parse_limit
from mainstream.core.schemas import (
    MessageResponse,
    NotificationListResponse,
    NotificationMarkRead,
    NotificationResponse,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/notifications", tags=["Notifications"])

DEFAULT_LIMIT = 50
MAX_LIMIT = 100


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List notifications",
)
async def list_notifications(
    current_user: CurrentUser,
    db: DbSession,
    unread_only: bool = False,
    limit: Optional[str] = None,
) -> NotificationListResponse:
    """Newest notifications first, with the total unread count."""
    page_size = parse_limit(limit, default=DEFAULT_LIMIT, maximum=MAX_LIMIT)

    query = select(Notification).where(Notification.recipient_id == current_user.id)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    result = await db.execute(
        query.order_by(Notification.created_at.desc()).limit(page_size)
    )
    notifications = result.scalars().all()

    unread_count = (await db.execute(
        select(func.count(Notification.id)).where(
            Notification.recipient_id == current_user.id,
            Notification.is_read.is_(False),
        )
    )).scalar_one()

    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=unread_count,
    )


@router.patch(
    "",
    response_model=MessageResponse,
    summary="Mark notifications as read",
    responses={400: {"description": "Neither notification_ids nor mark_all given"}},
)
async def mark_read(
    data: NotificationMarkRead,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    query = (
        update(Notification)
        .where(Notification.recipient_id == current_user.id)
        .values(is_read=True)
        .execution_options(synchronize_session="fetch")
    )
    if data.mark_all:
        message = "All notifications marked as read"
    elif data.notification_ids:
        query = query.where(Notification.id.in_(data.notification_ids))
        message = "Notifications marked as read"
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide notification_ids or mark_all",
        )

    result = await db.execute(query)
    await db.commit()

    logger.info("notifications_marked_read", user_id=str(current_user.id), count=result.rowcount)
    return MessageResponse(message=message)
