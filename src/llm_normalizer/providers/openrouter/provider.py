"""OpenRouter provider (OpenAI-compatible chat with routing)."""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from llm_normalizer.core.config import OpenRouterSettings
from llm_normalizer.providers.openai.chat import NamedToolChoice
from llm_normalizer.providers.openai.provider import OpenAIProvider
from llm_normalizer.providers.openrouter.request import AssistantMessage, OpenRouterRequest
from llm_normalizer.registry.provider_registry import provider_registry

log = logging.getLogger(__name__)


class OpenRouterProvider(OpenAIProvider):
    slug: ClassVar[str] = 'openrouter'
    settings_cls = OpenRouterSettings
    request_cls = OpenRouterRequest
    embedding_request_cls = None
    assistant_cls = AssistantMessage

    def build_request(self, **params: Any) -> OpenRouterRequest:
        """Cast, then clear a tool choice the conversation already satisfied."""
        request = super().build_request(**params)
        choice = request.tool_choice
        if choice is None:
            return request
        used = request.tools_used()
        if isinstance(choice, NamedToolChoice):
            name = (choice.function or {}).get('name')
            if name and name in used:
                log.debug('removing tool_choice for %s: already called', name)
                request.tool_choice = None
        elif choice == 'any' and used:
            log.debug('removing tool_choice any: a tool was already called')
            request.tool_choice = None
        return request


# ---------------------------------------------------------------------------
# Automatic registration
# ---------------------------------------------------------------------------

provider_registry.register('openrouter', OpenRouterProvider)
