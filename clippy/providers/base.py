from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Sequence

import httpx

from clippy.models import Message, ProviderConfig, ToolDefinition

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """Raised when a provider cannot turn a conversation into a reply."""


class Provider(ABC):
    default_base_url: str = ""

    def __init__(self, config: ProviderConfig, *, client: httpx.Client | None = None) -> None:
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=config.timeout)

    @abstractmethod
    def generate(self, messages: Sequence[Message], tools: Sequence[ToolDefinition]) -> Message:
        """Send the whole conversation and return the assistant's reply.

        Every failure (network, non-200 status, malformed or empty body) is
        raised as ProviderError.
        """
        ...

    def update_config(self, config: ProviderConfig) -> None:
        self.config = config

    def get_config(self) -> ProviderConfig:
        return self.config

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _base_url(self) -> str:
        return (self.config.base_url or self.default_base_url).rstrip("/")

    def _post(self, url: str, headers: dict[str, str], payload: dict[str, Any]) -> dict[str, Any]:
        """POST a JSON payload and return the decoded JSON body."""
        logger.debug("POST %s (model=%s, messages=%d)", url, self.config.model, len(payload.get("messages", [])))
        start = time.perf_counter()
        try:
            response = self._client.post(url, headers=headers, json=payload, timeout=self.config.timeout)
        except httpx.HTTPError as exc:
            logger.warning("request to %s failed: %s", url, exc)
            raise ProviderError(f"request failed: {exc}") from exc
        except (httpx.InvalidURL, UnicodeEncodeError) as exc:
            # raised while building the request: bad base_url, non-ASCII api_key
            logger.warning("could not build request to %s: %s", url, exc)
            raise ProviderError(f"invalid provider configuration: {exc}") from exc

        if response.status_code != 200:
            logger.warning("API error from %s: %s", url, response.status_code)
            raise ProviderError(
                f"API error: {response.status_code} {response.reason_phrase} - {response.text}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError(f"invalid JSON in response: {exc}") from exc
        if not isinstance(body, dict):
            raise ProviderError("invalid response: expected a JSON object")

        logger.debug("response from %s in %.2fs", url, time.perf_counter() - start)
        return body
