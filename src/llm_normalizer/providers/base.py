"""providers.base

Provider contract shared by every backend.

A provider ties together one request builder, one response normalizer and
one stream assembler. It never performs I/O itself; `prompt()` and `embed()`
hand the serialized payload to an injected `AbstractTransport` and normalize
what comes back::

    provider = MockProvider(model='mock-model')
    response = provider.prompt(messages=['Hello'])
    response.message.content  # 'Ellohay'

Every step can also be driven by hand (`build_request` -> `serialize` ->
transport of your choice -> `normalize_prompt`).
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, ClassVar

from llm_normalizer.common.responses import EmbedResponse, Format, PromptResponse
from llm_normalizer.common.streaming import StreamingMessageResolver
from llm_normalizer.core.exceptions import ProviderClientError, ResponseShapeError
from llm_normalizer.core.types import Endpoint

if TYPE_CHECKING:
    from llm_normalizer.core.abc import AbstractTransport
    from llm_normalizer.core.config import ProviderSettings
    from llm_normalizer.core.model import BridgeModel

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers shared by normalizers
# ---------------------------------------------------------------------------


def parse_arguments(arguments: Any) -> dict[str, Any]:
    """Decode tool-call arguments; providers send a JSON string or an object."""
    if arguments is None or arguments == '':
        return {}
    if isinstance(arguments, Mapping):
        return dict(arguments)
    try:
        decoded = json.loads(arguments)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ResponseShapeError(f'Tool call arguments are not valid JSON: {arguments!r}') from exc
    if not isinstance(decoded, dict):
        raise ResponseShapeError(f'Tool call arguments must decode to an object: {arguments!r}')
    return decoded


def embedding_data(raw: Mapping[str, Any]) -> list[dict[str, Any]]:
    """`object: list` carries `data`; a bare `object: embedding` is item 0."""
    kind = raw.get('object')
    if kind == 'list':
        return [dict(item) for item in raw.get('data') or []]
    if kind == 'embedding':
        return [{'index': 0, **raw}]
    raise ResponseShapeError(f'Unexpected embedding response object: {kind!r}')


# ---------------------------------------------------------------------------
# Stream assembly
# ---------------------------------------------------------------------------


class StreamAssembler(ABC):
    """Consumes one generation's raw stream events.

    Text and tool-call fragments are fed into a `StreamingMessageResolver`
    as they arrive; `raw_response()` rebuilds the provider's non-streaming
    response body so the regular normalizer can run on it.
    """

    def __init__(self) -> None:
        self.resolver = StreamingMessageResolver()
        self.event_count = 0

    def process(self, event: Mapping[str, Any]) -> None:
        self.event_count += 1
        self._process(event)

    def consume(self, events: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
        for event in events:
            self.process(event)
        log.debug('%s consumed %d events', type(self).__name__, self.event_count)
        return self.raw_response()

    @abstractmethod
    def _process(self, event: Mapping[str, Any]) -> None:
        """Apply one event."""

    @abstractmethod
    def raw_response(self) -> dict[str, Any]:
        """The response body the stream described."""


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class Provider(ABC):
    """One backend: request building, response normalization and streaming."""

    slug: ClassVar[str]
    settings_cls: ClassVar[type[ProviderSettings]]
    request_cls: ClassVar[type[BridgeModel]]
    embedding_request_cls: ClassVar[type[BridgeModel] | None] = None
    endpoint: ClassVar[Endpoint] = Endpoint.chat

    def __init__(
        self,
        model: str | None = None,
        *,
        settings: ProviderSettings | None = None,
        transport: AbstractTransport | None = None,
        embedding_model: str | None = None,
    ) -> None:
        self.model = model
        self.embedding_model = embedding_model
        self.settings = settings if settings is not None else self.settings_cls()
        self._transport = transport

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @property
    def transport(self) -> AbstractTransport:
        if self._transport is None:
            self._transport = self.default_transport()
            log.debug('%s using default transport %r', self.slug, self._transport)
        return self._transport

    @abstractmethod
    def default_transport(self) -> AbstractTransport:
        """Transport used when none was injected."""

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def prepare_params(self, params: dict[str, Any]) -> dict[str, Any]:
        """Hook for provider-specific parameter rewriting before the cast."""
        return params

    def build_request(self, **params: Any) -> BridgeModel:
        """Cast a generic parameter bag into this provider's request."""
        params = dict(params)
        if self.model is not None:
            params.setdefault('model', self.model)
        return self.request_cls(**self.prepare_params(params))

    def build_embedding_request(self, **params: Any) -> BridgeModel:
        if self.embedding_request_cls is None:
            raise ProviderClientError(f'{self.slug} does not support embeddings')
        params = dict(params)
        model = self.embedding_model or self.model
        if model is not None:
            params.setdefault('model', model)
        return self.embedding_request_cls(**params)

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    @abstractmethod
    def reply_messages(self, raw: Mapping[str, Any]) -> list[Any]:
        """Messages the reply adds, in the provider's own shape (raises `ResponseShapeError`)."""

    def reply_tool_calls(self, raw: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Tool invocations in the reply as `{id, name, input}`."""
        return []

    def normalize_prompt(
        self,
        raw: Mapping[str, Any],
        request: BridgeModel,
        context: Mapping[str, Any] | None = None,
    ) -> PromptResponse:
        """Raw prompt response plus the request it answered -> `PromptResponse`."""
        if not isinstance(raw, Mapping):
            raise ResponseShapeError(f'Expected a JSON object from {self.slug}, got {type(raw).__name__}')
        messages = list(request.to_common_messages()) + self.reply_messages(raw)
        return PromptResponse(
            context=dict(context) if context is not None else None,
            raw_request=request,
            raw_response=raw,
            messages=messages,
            format=Format.from_request(getattr(request, 'response_format', None)),
            tool_calls=self.reply_tool_calls(raw),
        )

    def normalize_embed(
        self,
        raw: Mapping[str, Any],
        request: BridgeModel,
        context: Mapping[str, Any] | None = None,
    ) -> EmbedResponse:
        if not isinstance(raw, Mapping):
            raise ResponseShapeError(f'Expected a JSON object from {self.slug}, got {type(raw).__name__}')
        return EmbedResponse(
            context=dict(context) if context is not None else None,
            raw_request=request,
            raw_response=raw,
            data=embedding_data(raw),
        )

    @abstractmethod
    def stream_processor(self) -> StreamAssembler:
        """A fresh assembler for one streamed generation."""

    # ------------------------------------------------------------------
    # Round trips
    # ------------------------------------------------------------------

    def prompt(self, **params: Any) -> PromptResponse:
        """Build, validate, send and normalize one generation."""
        request = self.build_request(**params)
        request.raise_if_invalid()
        payload = request.serialize()
        if payload.get('stream'):
            assembler = self.stream_processor()
            raw = assembler.consume(self.transport.stream(payload, endpoint=self.endpoint))
        else:
            raw = self.transport.send(payload, endpoint=self.endpoint)
        return self.normalize_prompt(raw, request, context=params)

    def embed(self, **params: Any) -> EmbedResponse:
        request = self.build_embedding_request(**params)
        request.raise_if_invalid()
        raw = self.transport.send(request.serialize(), endpoint=Endpoint.embeddings)
        return self.normalize_embed(raw, request, context=params)

    def __repr__(self) -> str:  # pragma: no cover - cosmetic
        return f'<{type(self).__name__} model={self.model!r}>'
