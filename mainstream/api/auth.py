"""
Mainstream - Authentication API
===============================

Authentication endpoints for user registration, login, and token management.
"""

import hashlib
from datetime import timedelta
from uuid import UUID, uuid4

import structlog
from fastapi import APIRouter, HTTPException, status
from passlib.hash import bcrypt
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.api.deps import (
    CurrentUser,
    DbSession,
    create_access_token,
    create_refresh_token,
    decode_token,
)
from mainstream.core.config import settings
from mainstream.core.database import as_utc, utcnow
from mainstream.core.models import PlatformRole, RefreshToken, User
from mainstream.core.schemas import (
    MessageResponse,
    RefreshTokenRequest,
    TokenResponse,
    UserCreate,
    UserLogin,
    UserResponse,
)
from mainstream.core.validation import (
    default_avatar_url,
    fallback_username,
    slugify_username,
    username_with_suffix,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["Authentication"])

USERNAME_ATTEMPTS = 10


# ==========================================================================
# Helper Functions
# ==========================================================================

def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a hash."""
    return bcrypt.verify(password, password_hash)


def hash_token(token: str) -> str:
    """Create a hash of a token for storage."""
    return hashlib.sha256(token.encode()).hexdigest()


async def _username_taken(db: AsyncSession, username: str) -> bool:
    result = await db.execute(select(User.id).where(User.username == username))
    return result.scalar_one_or_none() is not None


async def generate_username(db: AsyncSession, name: str) -> str:
    """
    Derive a free username from a display name.

    Collisions get a random ``_NNNN`` suffix; after repeated collisions a
    random ``user_xxxxxxxx`` name is used.
    """
    base = slugify_username(name)
    if not await _username_taken(db, base):
        return base
    for _ in range(USERNAME_ATTEMPTS):
        candidate = username_with_suffix(base)
        if not await _username_taken(db, candidate):
            return candidate
    return fallback_username()


async def _issue_tokens(db: AsyncSession, user: User) -> TokenResponse:
    access_token = create_access_token(user.id)
    refresh_token = create_refresh_token(user.id)

    db.add(RefreshToken(
        id=uuid4(),
        user_id=user.id,
        token_hash=hash_token(refresh_token),
        expires_at=utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        revoked=False,
    ))

    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


# ==========================================================================
# Registration
# ==========================================================================

@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
    responses={
        201: {"description": "User created successfully"},
        409: {"description": "Email already registered"},
        422: {"description": "Validation error"},
    },
)
async def register(
    data: UserCreate,
    db: DbSession,
) -> UserResponse:
    """
    Register a new user account.

    - Validates email uniqueness
    - Generates a unique username from the name
    - Assigns a default avatar
    - The very first account becomes the platform owner
    """
    email = data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    user_count = (await db.execute(select(func.count(User.id)))).scalar_one()
    username = await generate_username(db, data.name)

    user = User(
        id=uuid4(),
        username=username,
        display_name=data.name,
        email=email,
        password_hash=hash_password(data.password),
        avatar_url=default_avatar_url(username),
        platform_role=PlatformRole.OWNER if user_count == 0 else PlatformRole.USER,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info("user_registered", user_id=str(user.id), username=username, role=user.platform_role.value)
    return UserResponse.model_validate(user)


# ==========================================================================
# Login / Logout
# ==========================================================================

@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login and get tokens",
    responses={
        200: {"description": "Login successful"},
        401: {"description": "Invalid credentials"},
    },
)
async def login(
    data: UserLogin,
    db: DbSession,
) -> TokenResponse:
    """
    Authenticate user and return tokens.

    Unknown email, wrong password and deactivated accounts all get the
    same 401.
    """
    result = await db.execute(select(User).where(User.email == data.email.lower()))
    user = result.scalar_one_or_none()

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
    )

    if not user or not verify_password(data.password, user.password_hash):
        raise credentials_exception
    if not user.is_active:
        raise credentials_exception

    tokens = await _issue_tokens(db, user)
    user.last_login = utcnow()
    await db.commit()

    logger.info("user_logged_in", user_id=str(user.id))
    return tokens


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout and revoke refresh tokens",
    responses={
        200: {"description": "Logout successful"},
        401: {"description": "Not authenticated"},
    },
)
async def logout(
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    """
    Revoke every refresh token of the current user.

    Access tokens are stateless and expire naturally.
    """
    result = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == current_user.id, RefreshToken.revoked.is_(False))
        .values(revoked=True)
    )
    await db.commit()

    logger.info("user_logged_out", user_id=str(current_user.id), tokens_revoked=result.rowcount)
    return MessageResponse(message="Logged out")


# ==========================================================================
# Token Management
# ==========================================================================

@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh access token",
    responses={
        200: {"description": "Token refreshed"},
        401: {"description": "Invalid or expired refresh token"},
    },
)
async def refresh_token(
    data: RefreshTokenRequest,
    db: DbSession,
) -> TokenResponse:
    """
    Exchange a refresh token for a new token pair.

    Refresh tokens are single-use: the presented one is revoked.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired refresh token",
    )

    try:
        payload = decode_token(data.refresh_token)
    except HTTPException:
        raise credentials_exception

    if payload.get("type") != "refresh":
        raise credentials_exception

    user_id_str = payload.get("sub")
    if not user_id_str:
        raise credentials_exception

    result = await db.execute(
        select(RefreshToken).where(RefreshToken.token_hash == hash_token(data.refresh_token))
    )
    stored_token = result.scalar_one_or_none()
    if not stored_token or stored_token.revoked:
        raise credentials_exception

    if as_utc(stored_token.expires_at) < utcnow():
        raise credentials_exception

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise credentials_exception

    stored_token.revoked = True
    tokens = await _issue_tokens(db, user)
    await db.commit()
    return tokens
