"""OpenAI providers: Chat Completions and the Responses API."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar

from llm_normalizer.core.config import OpenAISettings
from llm_normalizer.core.exceptions import ResponseShapeError
from llm_normalizer.core.types import Endpoint
from llm_normalizer.providers.base import Provider, parse_arguments
from llm_normalizer.providers.openai.chat import AssistantMessage, ChatRequest
from llm_normalizer.providers.openai.embedding import EmbeddingRequest
from llm_normalizer.providers.openai.responses import ResponsesRequest
from llm_normalizer.providers.openai.streaming import (
    ChatStreamAssembler,
    ResponsesStreamAssembler,
    tool_calls_from_message,
)
from llm_normalizer.registry.provider_registry import provider_registry

if TYPE_CHECKING:
    from llm_normalizer.core.abc import AbstractTransport
    from llm_normalizer.core.model import BridgeModel

log = logging.getLogger(__name__)


class OpenAIProvider(Provider):
    """OpenAI Chat Completions."""

    slug: ClassVar[str] = 'openai'
    settings_cls = OpenAISettings
    request_cls = ChatRequest
    embedding_request_cls = EmbeddingRequest
    endpoint = Endpoint.chat
    #: Class used to read reply messages; subclasses narrow it.
    assistant_cls: ClassVar[type[BridgeModel]] = AssistantMessage

    def default_transport(self) -> AbstractTransport:
        from llm_normalizer.adapters.openai_transport import OpenAITransport

        return OpenAITransport(self.settings)

    def _choices(self, raw: Mapping[str, Any]) -> list[Mapping[str, Any]]:
        choices = raw.get('choices')
        if not choices:
            raise ResponseShapeError(f'{self.slug} response has no choices')
        messages = []
        for choice in sorted(choices, key=lambda c: c.get('index', 0)):
            message = choice.get('message')
            if not isinstance(message, Mapping):
                raise ResponseShapeError(f'{self.slug} choice {choice.get("index", 0)} has no message')
            messages.append(message)
        return messages

    def reply_messages(self, raw: Mapping[str, Any]) -> list[Any]:
        return [self.assistant_cls.cast(message).to_common() for message in self._choices(raw)]

    def reply_tool_calls(self, raw: Mapping[str, Any]) -> list[dict[str, Any]]:
        calls = []
        for message in self._choices(raw):
            calls.extend(tool_calls_from_message(message))
        return calls

    def stream_processor(self) -> ChatStreamAssembler:
        return ChatStreamAssembler()


class OpenAIResponsesProvider(Provider):
    """OpenAI Responses API."""

    slug: ClassVar[str] = 'openai_responses'
    settings_cls = OpenAISettings
    request_cls = ResponsesRequest
    embedding_request_cls = EmbeddingRequest
    endpoint = Endpoint.responses

    def default_transport(self) -> AbstractTransport:
        from llm_normalizer.adapters.openai_transport import OpenAITransport

        return OpenAITransport(self.settings)

    def _output(self, raw: Mapping[str, Any]) -> list[Mapping[str, Any]]:
        output = raw.get('output')
        if not isinstance(output, list):
            raise ResponseShapeError('responses payload has no output array')
        return output

    def reply_messages(self, raw: Mapping[str, Any]) -> list[Any]:
        messages: list[Any] = []
        for item in self._output(raw):
            kind = item.get('type')
            if kind == 'message':
                parts = [p for p in item.get('content') or [] if p.get('type') in ('output_text', 'refusal')]
                text = '\n'.join(p.get('text') or p.get('refusal') or '' for p in parts)
                messages.append({'role': item.get('role', 'assistant'), 'content': text})
            elif kind == 'function_call':
                call = {
                    'type': 'tool_use',
                    'id': item.get('call_id'),
                    'name': item.get('name'),
                    'input': parse_arguments(item.get('arguments')),
                }
                messages.append({'role': 'assistant', 'content': [call]})
            else:
                log.debug('skipping responses output item of type %s', kind)
        return messages

    def reply_tool_calls(self, raw: Mapping[str, Any]) -> list[dict[str, Any]]:
        return [
            {'id': item.get('call_id'), 'name': item.get('name'), 'input': parse_arguments(item.get('arguments'))}
            for item in self._output(raw)
            if item.get('type') == 'function_call'
        ]

    def stream_processor(self) -> ResponsesStreamAssembler:
        return ResponsesStreamAssembler()


# ---------------------------------------------------------------------------
# Automatic registration
# ---------------------------------------------------------------------------

provider_registry.register('openai', OpenAIProvider)
provider_registry.register('openai_responses', OpenAIResponsesProvider)
