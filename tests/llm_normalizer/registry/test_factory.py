from __future__ import annotations

import pytest

from llm_normalizer.adapters.mock_transport import MockTransport
from llm_normalizer.core.config import MockSettings
from llm_normalizer.core.exceptions import ProviderNotFoundError
from llm_normalizer.core.model_id import ModelId
from llm_normalizer.providers.anthropic.provider import AnthropicProvider
from llm_normalizer.providers.base import Provider
from llm_normalizer.providers.mock.provider import MockProvider
from llm_normalizer.providers.ollama.provider import OllamaProvider
from llm_normalizer.providers.openai.provider import OpenAIProvider, OpenAIResponsesProvider
from llm_normalizer.providers.openrouter.provider import OpenRouterProvider
from llm_normalizer.registry.factory import ProviderFactory


def test_initialize_provider_and_prompt() -> None:
    transport = MockTransport(MockSettings())
    provider = ProviderFactory.initialize_provider('mock:mock-model', transport=transport)
    assert isinstance(provider, MockProvider)
    assert provider.model == 'mock-model'
    assert provider.transport is transport

    response = provider.prompt(messages=['ping'])
    assert response.message.content == 'ingpay'


def test_kwargs_reach_the_provider() -> None:
    settings = MockSettings(api_key='secret')
    provider = ProviderFactory.initialize_provider('mock:mock-model', settings=settings, embedding_model='mock-embed')
    assert provider.settings is settings
    assert provider.embedding_model == 'mock-embed'


def test_parsed_model_id() -> None:
    provider = ProviderFactory.initialize_provider(ModelId.parse('anthropic:claude-3-5-haiku-latest'))
    assert isinstance(provider, AnthropicProvider)
    assert provider.model == 'claude-3-5-haiku-latest'


def test_unknown_provider() -> None:
    with pytest.raises(ProviderNotFoundError):
        ProviderFactory.initialize_provider('nope:some-model')


@pytest.mark.parametrize(
    ('slug', 'provider_cls'),
    [
        ('openai', OpenAIProvider),
        ('openai_responses', OpenAIResponsesProvider),
        ('anthropic', AnthropicProvider),
        ('ollama', OllamaProvider),
        ('openrouter', OpenRouterProvider),
        ('mock', MockProvider),
    ],
)
def test_builtin_slugs(slug: str, provider_cls: type[Provider]) -> None:
    provider = ProviderFactory.initialize_provider(f'{slug}:some-model')
    assert type(provider) is provider_cls
    assert provider.slug == slug
    assert provider.model == 'some-model'
