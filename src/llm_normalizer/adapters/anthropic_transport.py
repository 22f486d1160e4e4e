"""adapters.anthropic_transport

Transport for the Anthropic Messages API through the official **anthropic**
SDK.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import anthropic
from dotenv import load_dotenv

from llm_normalizer.adapters.openai_transport import split_extra_body, to_dict
from llm_normalizer.core.abc import AbstractTransport
from llm_normalizer.core.exceptions import (
    GenerationTimeoutError,
    ModelNotFoundError,
    ProviderClientError,
    RateLimitExceededError,
)
from llm_normalizer.core.types import Endpoint

if TYPE_CHECKING:
    from collections.abc import Iterator

    from llm_normalizer.core.config import ProviderSettings
    from llm_normalizer.core.retry import RetryStrategy

log = logging.getLogger(__name__)

load_dotenv()


def translate_error(exc: anthropic.AnthropicError) -> Exception:
    if isinstance(exc, anthropic.RateLimitError):
        return RateLimitExceededError('Rate limit exceeded')
    if isinstance(exc, anthropic.NotFoundError):
        return ModelNotFoundError('Unknown model for provider')
    if isinstance(exc, anthropic.APITimeoutError):
        return GenerationTimeoutError('Request timed out')
    if isinstance(exc, anthropic.APIConnectionError):
        return ConnectionError(str(exc))
    return ProviderClientError(f'Upstream provider error: {exc}')


class AnthropicTransport(AbstractTransport):
    """Transport over `anthropic.Anthropic`."""

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        retry_strategy: RetryStrategy | None = None,
        client: anthropic.Anthropic | None = None,
    ) -> None:
        super().__init__(settings, retry_strategy=retry_strategy)
        self._client = client

    @property
    def client(self) -> anthropic.Anthropic:
        if self._client is None:
            kwargs = {key: value for key, value in self.settings.client_kwargs().items() if value is not None}
            self._client = anthropic.Anthropic(max_retries=0, **kwargs)
        return self._client

    def _check(self, endpoint: Endpoint) -> None:
        if endpoint is not Endpoint.messages:
            raise ProviderClientError(f'{type(self).__name__} does not serve the {endpoint} endpoint')

    def _send(self, payload: dict[str, Any], endpoint: Endpoint) -> dict[str, Any]:
        self._check(endpoint)
        method = self.client.messages.create
        try:
            response = method(**split_extra_body(method, payload))
        except anthropic.AnthropicError as exc:
            raise translate_error(exc) from exc
        return to_dict(response)

    def _stream(self, payload: dict[str, Any], endpoint: Endpoint) -> Iterator[dict[str, Any]]:
        self._check(endpoint)
        method = self.client.messages.create
        try:
            stream = method(**split_extra_body(method, {**payload, 'stream': True}))
        except anthropic.AnthropicError as exc:
            raise translate_error(exc) from exc
        return self._events(stream)

    def _events(self, stream: Any) -> Iterator[dict[str, Any]]:
        try:
            for event in stream:
                yield to_dict(event)
        except anthropic.AnthropicError as exc:
            raise translate_error(exc) from exc
