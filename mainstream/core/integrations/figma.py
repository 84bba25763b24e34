"""
Figma Embeds
============

Provider detection for embed URLs, oEmbed metadata lookup, and frame
thumbnails rendered through the Figma REST API with a user's personal
access token.
"""

import asyncio
import re
from typing import Any, Optional
from urllib.parse import parse_qs, unquote, urlparse

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from mainstream.core.config import settings

logger = structlog.get_logger()

PROVIDER_PATTERNS: dict[str, re.Pattern] = {
    "figma": re.compile(r"figma\.com/(file|design|proto|board)/([a-zA-Z0-9-_]+)"),
    "youtube": re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/)([a-zA-Z0-9_-]+)"),
    "vimeo": re.compile(r"vimeo\.com/(\d+)"),
    "dribbble": re.compile(r"dribbble\.com/shots/(\d+)"),
}
SUPPORTED_PROVIDERS = ("figma",)

# Personal access tokens carry this prefix
FIGMA_TOKEN_PREFIX = "figd_"

# Used when the node's bounding box is unavailable
DEFAULT_FRAME_WIDTH = 1600
DEFAULT_FRAME_HEIGHT = 900


def detect_provider(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return "unknown"
    for provider, pattern in PROVIDER_PATTERNS.items():
        if pattern.search(url):
            return provider
    return "unknown"


def is_supported_url(url: str) -> bool:
    return detect_provider(url) in SUPPORTED_PROVIDERS


def figma_title_from_url(url: str) -> Optional[str]:
    """``/design/<key>/My-File`` -> ``My File``."""
    parts = urlparse(url).path.split("/")
    if len(parts) >= 4 and parts[3]:
        return unquote(parts[3]).replace("-", " ")
    return None


def figma_file_key(url: str) -> Optional[str]:
    match = PROVIDER_PATTERNS["figma"].search(url)
    return match.group(2) if match else None


def figma_node_id(url: str) -> Optional[str]:
    """
    The ``node-id`` query parameter in API form.

    URLs write node ids with hyphens (``4919-3452``); the REST API expects
    colons (``4919:3452``).
    """
    values = parse_qs(urlparse(url).query).get("node-id")
    if not values or not values[0]:
        return None
    return values[0].replace("-", ":")


class OEmbedData(BaseModel):
    title: Optional[str] = None
    thumbnail_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


class FrameThumbnail(BaseModel):
    image_url: str
    width: int
    height: int


class FigmaClient:
    """Fetches oEmbed metadata and frame renders for Figma links."""

    def __init__(
        self,
        oembed_url: Optional[str] = None,
        api_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.oembed_url = oembed_url or settings.FIGMA_OEMBED_URL
        self.api_url = (api_url or settings.FIGMA_API_URL).rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

    async def fetch_oembed(self, url: str) -> Optional[OEmbedData]:
        try:
            response = await self._client.get(
                self.oembed_url,
                params={"url": url},
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.warning("figma_oembed_error", error=str(e))
            return None

        if response.status_code != 200:
            logger.info("figma_oembed_failed", status_code=response.status_code)
            return None
        try:
            return OEmbedData.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning("figma_oembed_malformed", error=str(e))
            return None

    async def _api_get(self, path: str, token: str, params: dict) -> Optional[dict[str, Any]]:
        try:
            response = await self._client.get(
                f"{self.api_url}{path}",
                params=params,
                headers={"X-Figma-Token": token},
            )
        except httpx.HTTPError as e:
            logger.warning("figma_api_error", path=path, error=str(e))
            return None

        if response.status_code != 200:
            logger.info("figma_api_failed", path=path, status_code=response.status_code)
            return None
        try:
            data = response.json()
        except ValueError as e:
            logger.warning("figma_api_malformed", path=path, error=str(e))
            return None
        return data if isinstance(data, dict) else None

    async def verify_token(self, token: str) -> bool:
        """True when Figma accepts the token for ``GET /v1/me``."""
        return await self._api_get("/v1/me", token, {}) is not None

    async def _node_size(self, file_key: str, node_id: str, token: str) -> Optional[tuple[int, int]]:
        data = await self._api_get(f"/v1/files/{file_key}/nodes", token, {"ids": node_id})
        node = ((data or {}).get("nodes") or {}).get(node_id) or {}
        document = node.get("document") or {}
        bounds = document.get("absoluteBoundingBox") or document.get("absoluteRenderBounds")
        if not bounds:
            return None
        try:
            return round(bounds["width"]), round(bounds["height"])
        except (KeyError, TypeError):
            return None

    async def fetch_frame_thumbnail(self, url: str, token: str) -> Optional[FrameThumbnail]:
        """
        Render the frame a link points at.

        Needs both a file key and a ``node-id`` in the URL. Returns None
        when either is missing or Figma does not return an image, so the
        caller can fall back to oEmbed.
        """
        file_key = figma_file_key(url)
        node_id = figma_node_id(url)
        if not file_key or not node_id:
            return None

        images, size = await asyncio.gather(
            self._api_get(
                f"/v1/images/{file_key}",
                token,
                {"ids": node_id, "format": "png", "scale": 2},
            ),
            self._node_size(file_key, node_id, token),
        )
        if not images or images.get("err"):
            return None
        image_url = (images.get("images") or {}).get(node_id)
        if not image_url:
            return None

        width, height = size or (DEFAULT_FRAME_WIDTH, DEFAULT_FRAME_HEIGHT)
        logger.info("figma_frame_rendered", file_key=file_key, node_id=node_id)
        return FrameThumbnail(image_url=image_url, width=width, height=height)

    async def close(self) -> None:
        await self._client.aclose()
