"""
Mainstream - Integrations API
=============================

Third-party tokens connected by the current user. Only Figma personal
access tokens are supported; they unlock frame thumbnails for embeds.
"""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from mainstream.api.deps import CurrentUser, DbSession, Figma
from mainstream.core.encryption import (
    TokenDecryptionError,
    decrypt_token,
    encrypt_token,
    token_hint,
)
from mainstream.core.integrations import FIGMA_TOKEN_PREFIX
from mainstream.core.models import UserIntegration
from mainstream.core.schemas import (
    IntegrationStatus,
    IntegrationsResponse,
    IntegrationUpdate,
    IntegrationUpdateResponse,
    MessageResponse,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/users/me/integrations", tags=["Integrations"])

PROVIDER_NAMES = {"figma": "Figma"}


async def _get_integration(db: AsyncSession, user_id: UUID, provider: str) -> Optional[UserIntegration]:
    result = await db.execute(
        select(UserIntegration).where(
            UserIntegration.user_id == user_id,
            UserIntegration.provider == provider,
        )
    )
    return result.scalar_one_or_none()


async def load_access_token(db: AsyncSession, user_id: UUID, provider: str) -> Optional[str]:
    """
    The decrypted token for ``provider``, or None.

    A token that no longer decrypts (the key was rotated) counts as not
    connected.
    """
    integration = await _get_integration(db, user_id, provider)
    if integration is None:
        return None
    try:
        return decrypt_token(integration.access_token)
    except TokenDecryptionError:
        logger.warning("integration_token_unreadable", user_id=str(user_id), provider=provider)
        return None


def _status(integration: Optional[UserIntegration]) -> IntegrationStatus:
    if integration is None:
        return IntegrationStatus()
    return IntegrationStatus(
        connected=True,
        connected_at=integration.updated_at,
        token_preview=f"•••{integration.token_hint}",
    )


def _require_supported(provider: str) -> None:
    if provider not in PROVIDER_NAMES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported provider: {provider}",
        )


async def _disconnect(db: AsyncSession, user_id: UUID, provider: str) -> int:
    result = await db.execute(
        delete(UserIntegration).where(
            UserIntegration.user_id == user_id,
            UserIntegration.provider == provider,
        )
    )
    await db.commit()
    logger.info("integration_disconnected", user_id=str(user_id), provider=provider)
    return result.rowcount


# ==========================================================================
# Routes
# ==========================================================================

@router.get(
    "",
    response_model=IntegrationsResponse,
    summary="Get integration status",
)
async def get_integrations(
    current_user: CurrentUser,
    db: DbSession,
) -> IntegrationsResponse:
    """Which providers are connected, with a masked token preview."""
    result = await db.execute(
        select(UserIntegration).where(UserIntegration.user_id == current_user.id)
    )
    connected = {row.provider: row for row in result.scalars().all()}
    return IntegrationsResponse(
        integrations={provider: _status(connected.get(provider)) for provider in PROVIDER_NAMES}
    )


@router.post(
    "",
    response_model=IntegrationUpdateResponse,
    summary="Connect or disconnect an integration",
    responses={400: {"description": "Unsupported provider or invalid token"}},
)
async def update_integration(
    data: IntegrationUpdate,
    current_user: CurrentUser,
    db: DbSession,
    figma: Figma,
) -> IntegrationUpdateResponse:
    """
    Store a provider token, or remove it when ``token`` is empty.

    Figma tokens must look like personal access tokens and are checked
    against the Figma API before they are saved.
    """
    _require_supported(data.provider)
    name = PROVIDER_NAMES[data.provider]

    if not data.token:
        await _disconnect(db, current_user.id, data.provider)
        return IntegrationUpdateResponse(message=f"{name} disconnected", integration=IntegrationStatus())

    if not data.token.startswith(FIGMA_TOKEN_PREFIX):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Invalid Figma token format. Personal Access Tokens start with "{FIGMA_TOKEN_PREFIX}"',
        )
    if not await figma.verify_token(data.token):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid Figma token. Please check your Personal Access Token.",
        )

    integration = await _get_integration(db, current_user.id, data.provider)
    if integration is None:
        integration = UserIntegration(user_id=current_user.id, provider=data.provider)
        db.add(integration)
    integration.access_token = encrypt_token(data.token)
    integration.token_hint = token_hint(data.token)
    await db.commit()
    await db.refresh(integration)

    logger.info("integration_connected", user_id=str(current_user.id), provider=data.provider)
    return IntegrationUpdateResponse(
        message=f"{name} connected successfully",
        integration=_status(integration),
    )


@router.delete(
    "/{provider}",
    response_model=MessageResponse,
    summary="Disconnect an integration",
    responses={400: {"description": "Unsupported provider"}},
)
async def delete_integration(
    provider: str,
    current_user: CurrentUser,
    db: DbSession,
) -> MessageResponse:
    _require_supported(provider)
    removed = await _disconnect(db, current_user.id, provider)
    name = PROVIDER_NAMES[provider]
    return MessageResponse(message=f"{name} disconnected" if removed else f"{name} was not connected")
