"""
Mainstream - Outbound Integrations
==================================

HTTP clients for third-party services (email, AI summaries, embeds).
"""

from .figma import (
    FIGMA_TOKEN_PREFIX,
    FigmaClient,
    FrameThumbnail,
    OEmbedData,
    detect_provider,
    figma_title_from_url,
    is_supported_url,
)
from .litellm_client import LiteLLMClient, LiteLLMError
from .resend_client import EmailMessage, ResendClient

__all__ = [
    "FIGMA_TOKEN_PREFIX",
    "EmailMessage",
    "FigmaClient",
    "FrameThumbnail",
    "LiteLLMClient",
    "LiteLLMError",
    "OEmbedData",
    "ResendClient",
    "detect_provider",
    "figma_title_from_url",
    "is_supported_url",
]
