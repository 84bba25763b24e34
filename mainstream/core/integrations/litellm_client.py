"""
LiteLLM Integration
===================

Chat completions through a LiteLLM proxy, used to draft drop descriptions.
"""

from typing import Optional

import httpx
import structlog

from mainstream.core.config import settings

logger = structlog.get_logger()


class LiteLLMError(Exception):
    """The completion request failed or returned nothing usable."""


class LiteLLMClient:
    """Client for an OpenAI-compatible LiteLLM proxy."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.LITELLM_BASE_URL) or ""
        self.api_key = api_key if api_key is not None else settings.LITELLM_API_KEY
        self.model = model or settings.LITELLM_MODEL
        self._client = client or httpx.AsyncClient(timeout=60.0)

        if self.enabled:
            logger.info("litellm_client_initialized", mode="live", model=self.model)
        else:
            logger.info("litellm_client_initialized", mode="disabled")

    @property
    def enabled(self) -> bool:
        return bool(self.base_url and self.api_key)

    async def complete(
        self,
        prompt: str,
        max_tokens: int = settings.LITELLM_MAX_TOKENS,
    ) -> str:
        """Run a single-turn completion and return the assistant text."""
        if not self.enabled:
            raise LiteLLMError("LiteLLM is not configured")

        try:
            response = await self._client.post(
                f"{self.base_url.rstrip('/')}/v1/chat/completions",
                json={
                    "model": self.model,
                    "messages": [{"role": "user", "content": prompt}],
                    "max_tokens": max_tokens,
                },
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("litellm_error", error=str(e), model=self.model)
            raise LiteLLMError(str(e)) from e

        try:
            data = response.json()
            text = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error("litellm_malformed_response", error=str(e), model=self.model)
            raise LiteLLMError("Malformed completion response") from e
        if not isinstance(text, str) or not text.strip():
            raise LiteLLMError("Empty completion")

        logger.info("litellm_completion", model=self.model, characters=len(text))
        return text.strip()

    async def close(self) -> None:
        await self._client.aclose()
