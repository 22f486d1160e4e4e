"""Anthropic Messages provider."""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar

from llm_normalizer.core.config import AnthropicSettings
from llm_normalizer.core.exceptions import ResponseShapeError
from llm_normalizer.core.types import Endpoint
from llm_normalizer.providers.anthropic.request import JSON_PREFILL, AssistantMessage, MessagesRequest
from llm_normalizer.providers.anthropic.streaming import AnthropicStreamAssembler
from llm_normalizer.providers.base import Provider
from llm_normalizer.registry.provider_registry import provider_registry

if TYPE_CHECKING:
    from llm_normalizer.core.abc import AbstractTransport

log = logging.getLogger(__name__)

#: Reasoning blocks stay in the raw response only.
_HIDDEN_BLOCKS = frozenset({'thinking', 'redacted_thinking'})


class AnthropicProvider(Provider):
    """Anthropic Messages API."""

    slug: ClassVar[str] = 'anthropic'
    settings_cls = AnthropicSettings
    request_cls = MessagesRequest
    endpoint = Endpoint.messages

    def default_transport(self) -> AbstractTransport:
        from llm_normalizer.adapters.anthropic_transport import AnthropicTransport

        return AnthropicTransport(self.settings)

    def build_request(self, **params: Any) -> MessagesRequest:
        """Cast, then drop a satisfied tool choice and add the JSON prefill turn."""
        request = super().build_request(**params)
        choice = request.tool_choice
        if choice is not None and choice.type in ('any', 'tool'):
            used = request.tools_used()
            if (choice.type == 'any' and used) or (choice.type == 'tool' and choice.name in used):
                log.debug('removing tool_choice %s: tool already used', choice.type)
                request.tool_choice = None
        if request.response_format is not None and request.response_format.type == 'json_object':
            request.messages = [*request.messages, AssistantMessage(content=JSON_PREFILL)]
        return request

    def _reply(self, raw: Mapping[str, Any], request: Any = None) -> dict[str, Any]:
        if not isinstance(raw.get('content'), list):
            raise ResponseShapeError('anthropic response has no content array')
        message = copy.deepcopy(dict(raw))
        wants_json = request is not None and request.response_format is not None and request.response_format.type == 'json_object'
        if wants_json and message['content'] and message['content'][0].get('type') == 'text':
            message['content'][0]['text'] = '{' + (message['content'][0].get('text') or '')
        return message

    def reply_messages(self, raw: Mapping[str, Any]) -> list[Any]:
        message = AssistantMessage.cast(self._reply(raw))
        data = message.serialize(compress=False)
        data['content'] = [block for block in data.get('content') or [] if block.get('type') not in _HIDDEN_BLOCKS]
        return [data]

    def reply_tool_calls(self, raw: Mapping[str, Any]) -> list[dict[str, Any]]:
        return [
            {'id': block.get('id'), 'name': block.get('name'), 'input': block.get('input') or {}}
            for block in raw.get('content') or []
            if block.get('type') == 'tool_use'
        ]

    def normalize_prompt(self, raw: Mapping[str, Any], request: Any, context: Mapping[str, Any] | None = None) -> Any:
        if isinstance(raw, Mapping):
            raw = self._reply(raw, request)
        return super().normalize_prompt(raw, request, context)

    def stream_processor(self) -> AnthropicStreamAssembler:
        return AnthropicStreamAssembler()


# ---------------------------------------------------------------------------
# Automatic registration
# ---------------------------------------------------------------------------

provider_registry.register('anthropic', AnthropicProvider)
