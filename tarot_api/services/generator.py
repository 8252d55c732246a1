"""
Generative text provider - Google Gemini over its REST API.
"""

from typing import Any, Protocol

import httpx
from structlog import get_logger

from tarot_api.config import Settings
from tarot_api.exceptions import (
    UpstreamError,
    UpstreamNotConfiguredError,
    UpstreamTimeoutError,
)

logger = get_logger(__name__)


class TextGenerator(Protocol):
    """Anything that turns a prompt into interpretation text."""

    @property
    def is_configured(self) -> bool: ...

    async def generate(self, prompt: str) -> str: ...


def extract_text(payload: dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate; empty when absent."""
    candidates = payload.get("candidates") or []
    if not candidates:
        return ""
    content = candidates[0].get("content") or {}
    parts = content.get("parts") or []
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict)).strip()


class GeminiClient:
    """Gemini generateContent client."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = settings.gemini_api_key
        self.model = settings.gemini_model
        self.base_url = settings.gemini_base_url.rstrip("/")
        self.timeout = settings.upstream_timeout_seconds
        self._http_client = http_client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def generate(self, prompt: str) -> str:
        """
        Generate text for a prompt.

        Raises:
            UpstreamNotConfiguredError: no API key
            UpstreamError: transport failure, non-2xx status or unreadable body
            UpstreamTimeoutError: the HTTP client gave up waiting
        """
        if not self.is_configured:
            raise UpstreamNotConfiguredError()

        body = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

        try:
            response = await self.http_client.post(
                self.endpoint,
                params={"key": self.api_key},
                json=body,
            )
            response.raise_for_status()
            return extract_text(response.json())

        except httpx.HTTPStatusError as e:
            logger.error(
                "upstream_request_failed",
                model=self.model,
                status=e.response.status_code,
                text=e.response.text[:500],
            )
            raise UpstreamError(f"Generative provider returned {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            logger.error("upstream_request_timeout", model=self.model, timeout_seconds=self.timeout)
            raise UpstreamTimeoutError(self.timeout) from e
        except httpx.HTTPError as e:
            logger.error("upstream_transport_error", model=self.model, error=str(e))
            raise UpstreamError("Generative provider unreachable") from e
        except ValueError as e:
            logger.error("upstream_invalid_response", model=self.model, error=str(e))
            raise UpstreamError("Generative provider returned an unreadable response") from e

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
