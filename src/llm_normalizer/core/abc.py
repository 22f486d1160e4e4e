"""core.abc

Abstract transport that every SDK adapter implements.

The normalization engine never performs I/O. A transport is the external
collaborator that takes a serialized wire payload and returns the provider's
raw JSON response (or a stream of raw JSON events).

Design goals
============
1. **Payload in, mapping out** - callers pass the exact dict a request
    builder serialized; transports return plain dicts so normalizers never
    see SDK objects.
2. **Built-in retry** - `send()` and `stream()` are wrapped in `with_retry()`
    so every adapter inherits back-off behaviour by default.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from llm_normalizer.core.retry import RetryStrategy, with_retry
from llm_normalizer.core.types import Endpoint

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from llm_normalizer.core.config import ProviderSettings


class AbstractTransport(ABC):
    """Provider-independent transport interface."""

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        retry_strategy: RetryStrategy | None = None,
    ) -> None:
        self._settings = settings
        self._retry_strategy: RetryStrategy = retry_strategy or RetryStrategy(
            max_attempts=settings.max_retries + 1,
            base_backoff_sec=1.0,
            max_backoff_sec=30.0,
            jitter=True,
        )

    @property
    def settings(self) -> ProviderSettings:
        return self._settings

    def send(self, payload: Mapping[str, Any], *, endpoint: Endpoint = Endpoint.chat) -> dict[str, Any]:
        """Send `payload` and return the decoded response.

        Subclasses **must not** override this - override `_send()` instead.
        """
        body = copy.deepcopy(dict(payload))

        @with_retry(self._retry_strategy)
        def _call() -> dict[str, Any]:
            return self._send(body, Endpoint(endpoint))

        return _call()

    def stream(self, payload: Mapping[str, Any], *, endpoint: Endpoint = Endpoint.chat) -> Iterator[dict[str, Any]]:
        """Open a stream for `payload` and yield raw events as dicts.

        Only opening the stream is retried; errors while iterating propagate.
        """
        body = copy.deepcopy(dict(payload))

        @with_retry(self._retry_strategy)
        def _open() -> Iterator[dict[str, Any]]:
            return self._stream(body, Endpoint(endpoint))

        return _open()

    @abstractmethod
    def _send(self, payload: dict[str, Any], endpoint: Endpoint) -> dict[str, Any]:
        """Provider-specific blocking call."""

    @abstractmethod
    def _stream(self, payload: dict[str, Any], endpoint: Endpoint) -> Iterator[dict[str, Any]]:
        """Provider-specific streaming call."""

    def __repr__(self) -> str:  # pragma: no cover - cosmetic
        return f'<{self.__class__.__name__} base_url={self._settings.base_url!r}>'
