"""
Mainstream - Users API
======================

People directory, profiles, account settings and user follows.
"""

from collections import defaultdict
from typing import Optional

import structlog
from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import delete, func, or_, select

from mainstream.api.auth import verify_password
from mainstream.api.deps import CurrentUser, DbSession, OptionalUser
from mainstream.api.responses import already_done
from mainstream.core.feed import enrich_assets, public_feed
from mainstream.core.models import (
    Asset,
    AssetStream,
    AssetVisibility,
    NotificationType,
    ResourceType,
    Stream,
    StreamStatus,
    User,
    UserFollow,
)
from mainstream.core.notifications import SETTING_FIELDS, create_notification, get_or_create_settings
from mainstream.core.pagination import PageSizes, parse_cursor, parse_limit
from mainstream.core.schemas import (
    AccountDelete,
    AssetBrief,
    AssetPage,
    MessageResponse,
    NotificationSettingsResponse,
    NotificationSettingsUpdate,
    PublicProfile,
    StreamSummary,
    UserListItem,
    UserListResponse,
    UserProfileResponse,
    UserProfileUpdate,
    UserResponse,
    UserStats,
)
from mainstream.core.validation import (
    LIKE_ESCAPE,
    PROFILE_USERNAME_RE,
    is_allowed_avatar_url,
    is_valid_email,
    like_pattern,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/users", tags=["Users"])

RECENT_ASSETS_PER_USER = 5
STREAMS_PER_USER = 4


async def _get_user_by_username(db: DbSession, username: str) -> User:
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


# ==========================================================================
# Directory
# ==========================================================================

@router.get(
    "",
    response_model=UserListResponse,
    summary="List users",
)
async def list_users(
    db: DbSession,
    limit: Optional[str] = None,
    offset: int = Query(0, ge=0),
    search: Optional[str] = None,
) -> UserListResponse:
    """
    People directory, newest accounts first.

    Each user carries their latest public work, the public streams they
    post to, and their follower count.
    """
    page_size = parse_limit(limit, default=PageSizes.CLIENT_PAGE, maximum=100)

    query = select(User).where(User.is_active.is_(True))
    if search:
        pattern = like_pattern(search)
        query = query.where(or_(
            User.username.ilike(pattern, escape=LIKE_ESCAPE),
            User.display_name.ilike(pattern, escape=LIKE_ESCAPE),
        ))

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(User.created_at.desc()).offset(offset).limit(page_size)
    )
    users = result.scalars().all()
    if not users:
        return UserListResponse(users=[], total=total, has_more=False)

    user_ids = [u.id for u in users]

    assets_result = await db.execute(
        select(Asset)
        .where(Asset.uploader_id.in_(user_ids), Asset.visibility == AssetVisibility.PUBLIC)
        .order_by(Asset.created_at.desc())
    )
    recent: dict = defaultdict(list)
    for asset in assets_result.scalars().all():
        if len(recent[asset.uploader_id]) < RECENT_ASSETS_PER_USER:
            recent[asset.uploader_id].append(asset)

    streams_result = await db.execute(
        select(Asset.uploader_id, Stream)
        .join(AssetStream, AssetStream.asset_id == Asset.id)
        .join(Stream, Stream.id == AssetStream.stream_id)
        .where(
            Asset.uploader_id.in_(user_ids),
            Stream.status == StreamStatus.ACTIVE,
            Stream.is_private.is_(False),
        )
        .order_by(AssetStream.added_at.desc())
    )
    streams: dict = defaultdict(dict)
    for uploader_id, stream in streams_result.all():
        streams[uploader_id].setdefault(stream.id, stream)

    followers_result = await db.execute(
        select(UserFollow.following_id, func.count(UserFollow.id))
        .where(UserFollow.following_id.in_(user_ids))
        .group_by(UserFollow.following_id)
    )
    follower_counts = dict(followers_result.all())

    items = []
    for user in users:
        item = UserListItem.model_validate(user)
        user_streams = list(streams[user.id].values())
        item.recent_assets = [AssetBrief.model_validate(a) for a in recent[user.id]]
        item.streams = [StreamSummary.model_validate(s) for s in user_streams[:STREAMS_PER_USER]]
        item.total_streams = len(user_streams)
        item.follower_count = follower_counts.get(user.id, 0)
        items.append(item)

    return UserListResponse(users=items, total=total, has_more=offset + page_size < total)


# ==========================================================================
# Current User
# ==========================================================================

@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user",
    responses={401: {"description": "Not authenticated"}},
)
async def get_me(current_user: CurrentUser) -> UserResponse:
    return UserResponse.model_validate(current_user)


@router.put(
    "/me",
    response_model=UserResponse,
    summary="Update current user's profile",
    responses={
        400: {"description": "Invalid field format"},
        409: {"description": "Username or email already taken"},
    },
)
async def update_me(
    data: UserProfileUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> UserResponse:
    """
    Update the caller's profile.

    Only provided fields change. Usernames are lowercase, 3-20 characters;
    avatars must come from an allowed host.
    """
    if data.username is not None and data.username != current_user.username:
        if not PROFILE_USERNAME_RE.match(data.username):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Username must be 3-20 characters: lowercase letters, numbers, _ or -",
            )
        taken = await db.execute(select(User.id).where(User.username == data.username))
        if taken.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Username is already taken",
            )
        current_user.username = data.username

    if data.email is not None and data.email.lower() != current_user.email:
        email = data.email.lower()
        if not is_valid_email(email):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid email format",
            )
        taken = await db.execute(select(User.id).where(User.email == email))
        if taken.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Email is already in use",
            )
        current_user.email = email

    if data.avatar_url is not None:
        if not is_allowed_avatar_url(data.avatar_url):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid avatar URL",
            )
        current_user.avatar_url = data.avatar_url

    for field in ("display_name", "bio", "location", "job_title"):
        value = getattr(data, field)
        if value is not None:
            setattr(current_user, field, value)

    await db.commit()
    await db.refresh(current_user)
    return UserResponse.model_validate(current_user)


@router.delete(
    "/me",
    response_model=MessageResponse,
    summary="Delete current user's account",
    responses={
        400: {"description": "Password missing, or caller is the platform owner"},
        401: {"description": "Incorrect password"},
    },
)
async def delete_me(
    current_user: CurrentUser,
    db: DbSession,
    data: Optional[AccountDelete] = None,
) -> MessageResponse:
    """
    Permanently delete the caller's account.

    Assets, likes, comments, follows and memberships cascade with the
    user row; streams the user owns are removed explicitly.
    """
    password = data.password if data else ""
    if not password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password is required to delete account",
        )
    if not verify_password(password, current_user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect password",
        )
    if current_user.is_owner:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The platform owner cannot delete their own account",
        )

    await db.execute(delete(Stream).where(Stream.owner_id == current_user.id))
    await db.delete(current_user)
    await db.commit()

    logger.info("account_deleted", user_id=str(current_user.id))
    return MessageResponse(message="Account deleted")


# ==========================================================================
# Notification Settings
# ==========================================================================

@router.get(
    "/me/notification-settings",
    response_model=NotificationSettingsResponse,
    summary="Get notification preferences",
)
async def get_notification_settings(
    current_user: CurrentUser,
    db: DbSession,
) -> NotificationSettingsResponse:
    row = await get_or_create_settings(db, current_user.id)
    await db.commit()
    return NotificationSettingsResponse.model_validate(row)


@router.put(
    "/me/notification-settings",
    response_model=NotificationSettingsResponse,
    summary="Update notification preferences",
    responses={400: {"description": "No settings provided"}},
)
async def update_notification_settings(
    data: NotificationSettingsUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> NotificationSettingsResponse:
    changes = data.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No valid settings provided",
        )

    row = await get_or_create_settings(db, current_user.id)
    for field in SETTING_FIELDS:
        if field in changes:
            setattr(row, field, changes[field])

    await db.commit()
    await db.refresh(row)
    return NotificationSettingsResponse.model_validate(row)


# ==========================================================================
# Profiles
# ==========================================================================

@router.get(
    "/{username}",
    response_model=UserProfileResponse,
    summary="Get a user's public profile",
    responses={404: {"description": "User not found"}},
)
async def get_profile(
    username: str,
    db: DbSession,
    current_user: OptionalUser,
) -> UserProfileResponse:
    user = await _get_user_by_username(db, username)

    followers = (await db.execute(
        select(func.count(UserFollow.id)).where(UserFollow.following_id == user.id)
    )).scalar_one()
    following = (await db.execute(
        select(func.count(UserFollow.id)).where(UserFollow.follower_id == user.id)
    )).scalar_one()
    assets = (await db.execute(
        select(func.count(Asset.id)).where(
            Asset.uploader_id == user.id,
            Asset.visibility == AssetVisibility.PUBLIC,
        )
    )).scalar_one()

    is_following = False
    if current_user is not None and current_user.id != user.id:
        result = await db.execute(
            select(UserFollow.id).where(
                UserFollow.follower_id == current_user.id,
                UserFollow.following_id == user.id,
            )
        )
        is_following = result.scalar_one_or_none() is not None

    return UserProfileResponse(
        user=PublicProfile.model_validate(user),
        stats=UserStats(followers=followers, following=following, assets=assets),
        is_following=is_following,
    )


@router.get(
    "/{username}/assets",
    response_model=AssetPage,
    summary="List a user's public assets",
    responses={404: {"description": "User not found"}},
)
async def list_user_assets(
    username: str,
    db: DbSession,
    current_user: OptionalUser,
    cursor: Optional[str] = None,
    limit: Optional[str] = None,
) -> AssetPage:
    user = await _get_user_by_username(db, username)
    page = await public_feed(db, parse_cursor(cursor), parse_limit(limit), uploader_id=user.id)
    items = await enrich_assets(db, page.items, current_user.id if current_user else None)
    return AssetPage(assets=items, has_more=page.has_more, cursor=page.cursor)


# ==========================================================================
# Follows
# ==========================================================================

@router.post(
    "/{username}/follow",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Follow a user",
    responses={
        200: {"description": "Already following"},
        400: {"description": "Cannot follow yourself"},
        404: {"description": "User not found"},
    },
)
async def follow_user(
    username: str,
    current_user: CurrentUser,
    db: DbSession,
):
    target = await _get_user_by_username(db, username)
    if target.id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot follow yourself",
        )

    existing = await db.execute(
        select(UserFollow.id).where(
            UserFollow.follower_id == current_user.id,
            UserFollow.following_id == target.id,
        )
    )
    if existing.scalar_one_or_none():
        return already_done("Already following")

    db.add(UserFollow(follower_id=current_user.id, following_id=target.id))
    await create_notification(
        db,
        recipient_id=target.id,
        actor_id=current_user.id,
        notification_type=NotificationType.FOLLOW,
        resource_id=current_user.id,
        resource_type=ResourceType.USER,
    )
    await db.commit()

    logger.info("user_followed", follower_id=str(current_user.id), following_id=str(target.id))
    return MessageResponse(message="Followed")


@router.delete(
    "/{username}/follow",
    response_model=MessageResponse,
    summary="Unfollow a user",
    responses={404: {"description": "User not found"}},
)
async def unfollow_user(
    username: str,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    target = await _get_user_by_username(db, username)
    await db.execute(
        delete(UserFollow).where(
            UserFollow.follower_id == current_user.id,
            UserFollow.following_id == target.id,
        )
    )
    await db.commit()
    return MessageResponse(message="Unfollowed")

