"""
Mainstream - API Dependencies
=============================

Shared dependencies for FastAPI endpoints.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.core.config import settings
from mainstream.core.database import get_db
from mainstream.core.integrations import FigmaClient, LiteLLMClient, ResendClient
from mainstream.core.models import User


# ==========================================================================
# Security
# ==========================================================================

security = HTTPBearer(auto_error=False)


# ==========================================================================
# Token Utilities
# ==========================================================================

def _create_token(user_id: UUID, token_type: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "exp": now + expires_delta,
        "iat": now,
        "type": token_type,
        "jti": secrets.token_hex(16),  # Unique token identifier
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(
    user_id: UUID,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a new access token.

    Args:
        user_id: User's UUID
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _create_token(user_id, "access", expires_delta)


def create_refresh_token(
    user_id: UUID,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a new refresh token."""
    if expires_delta is None:
        expires_delta = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return _create_token(user_id, "refresh", expires_delta)


def decode_token(token: str) -> dict:
    """
    Decode and validate a JWT token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# ==========================================================================
# User Dependencies
# ==========================================================================

async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Get the current authenticated user.

    Raises:
        HTTPException: 401 if not authenticated, token invalid or user gone
    """
    if credentials is None:
        raise _unauthorized("Authentication required")

    payload = decode_token(credentials.credentials)

    if payload.get("type") != "access":
        raise _unauthorized("Invalid token type")

    user_id_str = payload.get("sub")
    if user_id_str is None:
        raise _unauthorized("Invalid token payload")

    try:
        user_id = UUID(user_id_str)
    except ValueError as e:
        raise _unauthorized("Invalid user ID in token") from e

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise _unauthorized("User not found")

    if not user.is_active:
        raise _unauthorized("User account is deactivated")

    return user


async def get_current_admin_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Current user, required to hold the admin or owner platform role."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


async def get_current_owner_user(
    current_user: Annotated[User, Depends(get_current_admin_user)],
) -> User:
    """Current user, required to be the platform owner."""
    if not current_user.is_owner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the platform owner can do this",
        )
    return current_user


# ==========================================================================
# Optional Auth
# ==========================================================================

async def get_optional_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Optional[User]:
    """
    Get the current user if authenticated, None otherwise.

    Used by endpoints that show more to signed-in users (private streams,
    like state) but still serve anonymous visitors.
    """
    if credentials is None:
        return None

    try:
        return await get_current_user(credentials, db)
    except HTTPException:
        return None


# ==========================================================================
# Integration Clients
# ==========================================================================

_resend_client: ResendClient | None = None
_litellm_client: LiteLLMClient | None = None
_figma_client: FigmaClient | None = None


def get_resend_client() -> ResendClient:
    """Get or create the Resend client instance."""
    global _resend_client
    if _resend_client is None:
        _resend_client = ResendClient()
    return _resend_client


def get_litellm_client() -> LiteLLMClient:
    global _litellm_client
    if _litellm_client is None:
        _litellm_client = LiteLLMClient()
    return _litellm_client


def get_figma_client() -> FigmaClient:
    global _figma_client
    if _figma_client is None:
        _figma_client = FigmaClient()
    return _figma_client


async def close_clients() -> None:
    """Close any HTTP clients created during the app's lifetime."""
    global _resend_client, _litellm_client, _figma_client
    for client in (_resend_client, _litellm_client, _figma_client):
        if client is not None:
            await client.close()
    _resend_client = _litellm_client = _figma_client = None


# ==========================================================================
# Type Aliases for Dependency Injection
# ==========================================================================

CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentAdminUser = Annotated[User, Depends(get_current_admin_user)]
CurrentOwnerUser = Annotated[User, Depends(get_current_owner_user)]
OptionalUser = Annotated[Optional[User], Depends(get_optional_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Mailer = Annotated[ResendClient, Depends(get_resend_client)]
AIClient = Annotated[LiteLLMClient, Depends(get_litellm_client)]
Figma = Annotated[FigmaClient, Depends(get_figma_client)]
