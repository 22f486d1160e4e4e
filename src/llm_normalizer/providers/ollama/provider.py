"""Ollama through its OpenAI-compatible `/v1` endpoint."""

from __future__ import annotations

from typing import ClassVar

from llm_normalizer.core.config import OllamaSettings
from llm_normalizer.providers.ollama.chat import AssistantMessage, OllamaChatRequest
from llm_normalizer.providers.ollama.embedding import OllamaEmbeddingRequest
from llm_normalizer.providers.openai.provider import OpenAIProvider
from llm_normalizer.registry.provider_registry import provider_registry


class OllamaProvider(OpenAIProvider):
    slug: ClassVar[str] = 'ollama'
    settings_cls = OllamaSettings
    request_cls = OllamaChatRequest
    embedding_request_cls = OllamaEmbeddingRequest
    assistant_cls = AssistantMessage


# ---------------------------------------------------------------------------
# Automatic registration
# ---------------------------------------------------------------------------

provider_registry.register('ollama', OllamaProvider)
