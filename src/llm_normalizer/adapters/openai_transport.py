"""adapters.openai_transport

Transport that sends serialized payloads through the official **openai**
SDK (1.x). It serves every OpenAI-compatible surface:

* OpenAI Chat Completions, Responses and Embeddings;
* OpenRouter (``https://openrouter.ai/api/v1``);
* Ollama through its ``/v1`` compatibility endpoint.

Payload keys the SDK method does not declare (Ollama ``options``,
OpenRouter ``provider`` ...) are passed through ``extra_body`` so the wire
body matches the serialized request exactly.
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any

import openai
from dotenv import load_dotenv

from llm_normalizer.core.abc import AbstractTransport
from llm_normalizer.core.exceptions import (
    GenerationTimeoutError,
    ModelNotFoundError,
    ProviderClientError,
    RateLimitExceededError,
)
from llm_normalizer.core.types import Endpoint

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from llm_normalizer.core.config import ProviderSettings
    from llm_normalizer.core.retry import RetryStrategy

log = logging.getLogger(__name__)

load_dotenv()


def translate_error(exc: openai.OpenAIError) -> Exception:
    """Map an SDK error to the domain error (or `ConnectionError` for retry)."""
    if isinstance(exc, openai.RateLimitError):
        return RateLimitExceededError('Rate limit exceeded')
    if isinstance(exc, openai.NotFoundError):
        return ModelNotFoundError('Unknown model for provider')
    if isinstance(exc, openai.APITimeoutError):
        return GenerationTimeoutError('Request timed out')
    if isinstance(exc, openai.APIConnectionError):
        return ConnectionError(str(exc))
    return ProviderClientError(f'Upstream provider error: {exc}')


def split_extra_body(method: Callable[..., Any], payload: dict[str, Any]) -> dict[str, Any]:
    """Keyword arguments for `method`; unknown payload keys move to `extra_body`."""
    known = set(inspect.signature(method).parameters)
    kwargs = {key: value for key, value in payload.items() if key in known}
    extra = {key: value for key, value in payload.items() if key not in known}
    if extra:
        log.debug('sending %s via extra_body', sorted(extra))
        kwargs['extra_body'] = extra
    return kwargs


def to_dict(obj: Any) -> dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    return obj.model_dump(mode='json', exclude_unset=True)


class OpenAITransport(AbstractTransport):
    """Transport over `openai.OpenAI`."""

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        retry_strategy: RetryStrategy | None = None,
        client: openai.OpenAI | None = None,
    ) -> None:
        super().__init__(settings, retry_strategy=retry_strategy)
        self._client = client

    @property
    def client(self) -> openai.OpenAI:
        if self._client is None:
            kwargs = {key: value for key, value in self.settings.client_kwargs().items() if value is not None}
            try:
                # Retries are handled by `AbstractTransport`.
                self._client = openai.OpenAI(max_retries=0, **kwargs)
            except openai.OpenAIError as exc:
                raise ProviderClientError(f'Cannot create OpenAI client: {exc}') from exc
        return self._client

    def _method(self, endpoint: Endpoint) -> Callable[..., Any]:
        if endpoint is Endpoint.chat:
            return self.client.chat.completions.create
        if endpoint is Endpoint.responses:
            return self.client.responses.create
        if endpoint is Endpoint.embeddings:
            return self.client.embeddings.create
        raise ProviderClientError(f'{type(self).__name__} does not serve the {endpoint} endpoint')

    def _send(self, payload: dict[str, Any], endpoint: Endpoint) -> dict[str, Any]:
        method = self._method(endpoint)
        try:
            response = method(**split_extra_body(method, payload))
        except openai.OpenAIError as exc:
            raise translate_error(exc) from exc
        return to_dict(response)

    def _stream(self, payload: dict[str, Any], endpoint: Endpoint) -> Iterator[dict[str, Any]]:
        method = self._method(endpoint)
        payload = {**payload, 'stream': True}
        try:
            stream = method(**split_extra_body(method, payload))
        except openai.OpenAIError as exc:
            raise translate_error(exc) from exc
        return self._events(stream)

    def _events(self, stream: Any) -> Iterator[dict[str, Any]]:
        try:
            for event in stream:
                yield to_dict(event)
        except openai.OpenAIError as exc:
            raise translate_error(exc) from exc
