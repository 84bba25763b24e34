"""
In-app notifications - preference checks and creation.

Every social action that notifies someone goes through
``create_notification`` so self-actions and opted-out recipients are
filtered in one place.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.core.models import (
    Notification,
    NotificationType,
    ResourceType,
    UserNotificationSettings,
)

logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 100

# Which settings flag gates each notification type
PREFERENCE_FLAGS: dict[NotificationType, str] = {
    NotificationType.LIKE_ASSET: "likes_enabled",
    NotificationType.LIKE_COMMENT: "likes_enabled",
    NotificationType.COMMENT: "comments_enabled",
    NotificationType.REPLY_COMMENT: "comments_enabled",
    NotificationType.FOLLOW: "follows_enabled",
    NotificationType.MENTION: "mentions_enabled",
}

SETTING_FIELDS = (
    "in_app_enabled",
    "likes_enabled",
    "comments_enabled",
    "follows_enabled",
    "mentions_enabled",
)


def excerpt(text: str, length: int = EXCERPT_LENGTH) -> str:
    return text if len(text) <= length else text[:length]


async def get_settings_row(
    db: AsyncSession,
    user_id: UUID,
) -> Optional[UserNotificationSettings]:
    result = await db.execute(
        select(UserNotificationSettings).where(UserNotificationSettings.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_or_create_settings(db: AsyncSession, user_id: UUID) -> UserNotificationSettings:
    """Fetch a user's settings, inserting the all-enabled defaults on first access."""
    row = await get_settings_row(db, user_id)
    if row is None:
        row = UserNotificationSettings(user_id=user_id)
        db.add(row)
        await db.flush()
        await db.refresh(row)
    return row


async def should_create_notification(
    db: AsyncSession,
    recipient_id: UUID,
    notification_type: NotificationType,
) -> bool:
    """
    Check the recipient's preferences for a notification type.

    No settings row means the user never changed anything, so notify.
    """
    settings_row = await get_settings_row(db, recipient_id)
    if settings_row is None:
        return True
    if not settings_row.in_app_enabled:
        return False
    flag = PREFERENCE_FLAGS.get(notification_type)
    if flag is None:
        return True
    return bool(getattr(settings_row, flag))


async def create_notification(
    db: AsyncSession,
    *,
    recipient_id: UUID,
    actor_id: UUID,
    notification_type: NotificationType,
    resource_id: Optional[UUID] = None,
    resource_type: Optional[ResourceType] = None,
    comment_id: Optional[UUID] = None,
    content: Optional[str] = None,
) -> Optional[Notification]:
    """Insert a notification unless it is a self-action or the recipient opted out."""
    if recipient_id == actor_id:
        return None

    if not await should_create_notification(db, recipient_id, notification_type):
        logger.debug(
            "Notification suppressed by preferences: %s -> %s",
            notification_type.value,
            recipient_id,
        )
        return None

    notification = Notification(
        recipient_id=recipient_id,
        actor_id=actor_id,
        type=notification_type,
        resource_id=resource_id,
        resource_type=resource_type,
        comment_id=comment_id,
        content=excerpt(content) if content else None,
    )
    db.add(notification)
    await db.flush()
    return notification
