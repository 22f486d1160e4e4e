from __future__ import annotations

from typing import Any

import pytest

from llm_normalizer.core.exceptions import ProviderClientError
from llm_normalizer.core.rules import FieldError
from llm_normalizer.providers.openai.chat import NamedToolChoice
from llm_normalizer.providers.openrouter.provider import OpenRouterProvider
from llm_normalizer.providers.openrouter.request import (
    AssistantMessage,
    MaxPrice,
    OpenRouterRequest,
    ProviderPreferences,
)


def test_default_model_is_always_sent() -> None:
    assert OpenRouterRequest(messages=['Hi']).serialize() == {
        'model': 'openrouter/auto',
        'messages': [{'role': 'user', 'content': 'Hi'}],
    }


def test_fallback_models_alias() -> None:
    request = OpenRouterRequest(messages=['Hi'], fallback_models=['anthropic/claude-3.5-sonnet', 'openai/gpt-4o'])
    assert request.fallback_models == ['anthropic/claude-3.5-sonnet', 'openai/gpt-4o']
    assert request.serialize()['models'] == ['anthropic/claude-3.5-sonnet', 'openai/gpt-4o']


def test_route_must_be_fallback() -> None:
    assert OpenRouterRequest(messages=['Hi'], route='fallback').is_valid()
    assert OpenRouterRequest(messages=['Hi'], route='random').validation_errors() == [
        FieldError('route', 'must be one of: fallback'),
    ]


def test_required_tool_choice_becomes_any() -> None:
    request = OpenRouterRequest(messages=['Hi'], tool_choice='required')
    assert request.tool_choice == 'any'
    assert request.is_valid()


@pytest.mark.parametrize('response_format', ['json_object', {'type': 'json_schema', 'name': 'x', 'schema': {}}])
def test_json_formats_require_parameters(response_format: Any) -> None:
    body = OpenRouterRequest(messages=['Hi'], response_format=response_format, provider={'order': ['openai']}).serialize()
    assert body['provider'] == {'order': ['openai'], 'require_parameters': True}


def test_text_format_leaves_provider_alone() -> None:
    assert 'provider' not in OpenRouterRequest(messages=['Hi'], response_format='text').serialize()


def test_file_parts_keep_data_uri_and_allow_urls() -> None:
    request = OpenRouterRequest(
        messages=[
            {
                'role': 'user',
                'content': [
                    {'document': 'data:application/pdf;base64,QUJD'},
                    {'type': 'file', 'file': 'https://example.com/paper.pdf'},
                ],
            },
        ],
    )
    files = [part.file.file_data for part in request.messages[0].content]
    assert files == ['data:application/pdf;base64,QUJD', 'https://example.com/paper.pdf']


def test_provider_preferences() -> None:
    preferences = ProviderPreferences(enable_fallbacks=False, quantizations=['fp8'], sort='price')
    assert preferences.serialize() == {'allow_fallbacks': False, 'quantizations': ['fp8'], 'sort': 'price'}
    assert not ProviderPreferences(quantizations=['int3']).is_valid()
    assert not ProviderPreferences(sort='cheapest').is_valid()


def test_max_price_aliases() -> None:
    price = MaxPrice(prompt_tokens=1, completion=2)
    assert price.serialize() == {'prompt': 1.0, 'completion': 2.0}
    assert not MaxPrice(request=-1).is_valid()


def test_sampling_ranges() -> None:
    errors = OpenRouterRequest(messages=['Hi'], top_a=1.5, repetition_penalty=0, min_p=0.1).validation_errors()
    assert {e.field for e in errors} == {'top_a', 'repetition_penalty'}


def test_plugins() -> None:
    assert OpenRouterRequest(messages=['Hi'], plugins=[{'id': 'file-parser', 'pdf': {'engine': 'pdf-text'}}]).is_valid()
    assert not OpenRouterRequest(messages=['Hi'], plugins=[{'id': 'web'}]).is_valid()


def test_reasoning_is_dropped_from_assistant_input() -> None:
    message = AssistantMessage.cast({'role': 'assistant', 'content': 'Hi', 'reasoning': 'r', 'reasoning_details': []})
    assert message.serialize() == {'role': 'assistant', 'content': 'Hi'}


def _history() -> list[Any]:
    return [
        'Weather?',
        {
            'role': 'assistant',
            'tool_calls': [{'id': 'call_1', 'type': 'function', 'function': {'name': 'weather', 'arguments': '{}'}}],
        },
        {'role': 'tool', 'tool_call_id': 'call_1', 'content': '12C'},
    ]


def test_satisfied_tool_choice_is_cleared() -> None:
    provider = OpenRouterProvider()
    assert provider.build_request(messages=_history(), tool_choice={'name': 'weather'}).tool_choice is None
    assert provider.build_request(messages=_history(), tool_choice='required').tool_choice is None
    kept = provider.build_request(messages=_history(), tool_choice={'name': 'other'}).tool_choice
    assert isinstance(kept, NamedToolChoice)
    assert provider.build_request(messages=['Weather?'], tool_choice='any').tool_choice == 'any'


def test_no_embeddings() -> None:
    with pytest.raises(ProviderClientError, match='openrouter does not support embeddings'):
        OpenRouterProvider().build_embedding_request(input='x')


def test_provider_model_is_used() -> None:
    request = OpenRouterProvider(model='meta-llama/llama-3-70b-instruct').build_request(messages=['Hi'])
    assert request.serialize()['model'] == 'meta-llama/llama-3-70b-instruct'


def test_user_content_parts() -> None:
    request = OpenRouterRequest(messages=[{'text': 'What is this?', 'image': 'https://example.com/cat.png'}])
    assert request.serialize()['messages'] == [
        {
            'role': 'user',
            'content': [
                {'type': 'text', 'text': 'What is this?'},
                {'type': 'image_url', 'image_url': {'url': 'https://example.com/cat.png'}},
            ],
        },
    ]
