"""Deterministic offline provider.

Replies are the Pig Latin of the last message, shaped like Anthropic
Messages responses, so the Anthropic stream assembler and reply cast are
reused as is.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar

from llm_normalizer.core.config import MockSettings
from llm_normalizer.core.exceptions import ResponseShapeError
from llm_normalizer.core.types import Endpoint
from llm_normalizer.providers.anthropic.request import AssistantMessage
from llm_normalizer.providers.anthropic.streaming import AnthropicStreamAssembler
from llm_normalizer.providers.base import Provider
from llm_normalizer.providers.mock.request import MockEmbeddingRequest, MockRequest
from llm_normalizer.registry.provider_registry import provider_registry

if TYPE_CHECKING:
    from llm_normalizer.core.abc import AbstractTransport


class MockProvider(Provider):
    slug: ClassVar[str] = 'mock'
    settings_cls = MockSettings
    request_cls = MockRequest
    embedding_request_cls = MockEmbeddingRequest
    endpoint = Endpoint.messages

    def default_transport(self) -> AbstractTransport:
        from llm_normalizer.adapters.mock_transport import MockTransport

        return MockTransport(self.settings)

    def reply_messages(self, raw: Mapping[str, Any]) -> list[Any]:
        if not isinstance(raw.get('content'), list):
            raise ResponseShapeError('mock response has no content array')
        return [AssistantMessage.cast(dict(raw)).serialize()]

    def stream_processor(self) -> AnthropicStreamAssembler:
        return AnthropicStreamAssembler()


# ---------------------------------------------------------------------------
# Automatic registration
# ---------------------------------------------------------------------------

provider_registry.register('mock', MockProvider)
