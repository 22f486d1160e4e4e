from __future__ import annotations

import pytest

from llm_normalizer.common.messages import AssistantMessage, UserMessage
from llm_normalizer.common.responses import EmbedResponse, Format, PromptResponse
from llm_normalizer.core.exceptions import CastError


def _raw() -> dict:
    return {
        'id': 'msg_1',
        'content': [{'type': 'text', 'text': 'Hi'}],
        'usage': {'input_tokens': 3, 'output_tokens': 1},
    }


def test_prompt_response_messages_and_usage() -> None:
    response = PromptResponse(
        context={'instructions': 'be brief'},
        raw_response=_raw(),
        messages=['Hello', {'role': 'assistant', 'content': 'Hi'}],
    )
    assert response.messages == [UserMessage(content='Hello'), AssistantMessage(content='Hi')]
    assert response.message == AssistantMessage(content='Hi')
    assert response.instructions == 'be brief'
    assert (response.prompt_tokens, response.completion_tokens, response.total_tokens) == (3, 1, 4)
    assert response.success


def test_inputs_are_deep_copied() -> None:
    raw = _raw()
    context = {'messages': ['Hello']}
    response = PromptResponse(context=context, raw_response=raw)
    raw['content'][0]['text'] = 'changed'
    context['messages'].append('more')
    assert response.raw_response['content'][0]['text'] == 'Hi'
    assert response.context == {'messages': ['Hello']}


def test_responses_are_frozen() -> None:
    response = PromptResponse(raw_response=_raw())
    with pytest.raises(CastError):
        response.raw_response = {}


def test_missing_usage_is_none() -> None:
    response = PromptResponse(raw_response={'content': []})
    assert response.usage is None
    assert response.total_tokens is None


def test_success_requires_messages_unless_explicit() -> None:
    assert not PromptResponse(raw_response=_raw()).success
    assert PromptResponse(raw_response=_raw(), succeeded=True).success
    assert not PromptResponse().success


def test_format_from_request() -> None:
    assert Format.from_request(None) == Format()
    assert Format.from_request('json_object').type == 'json_object'
    schema = {'type': 'object'}
    nested = Format.from_request({'type': 'json_schema', 'json_schema': {'name': 'thing', 'schema': schema}})
    assert (nested.type, nested.name, nested.schema_) == ('json_schema', 'thing', schema)
    flat = Format.from_request({'type': 'json_schema', 'name': 'thing', 'schema': schema})
    assert flat == nested


def test_prompt_response_format_default() -> None:
    assert PromptResponse().format.type == 'text'


def test_embed_response_orders_embeddings_by_index() -> None:
    response = EmbedResponse(
        raw_response={'object': 'list', 'usage': {'prompt_tokens': 2, 'total_tokens': 2}},
        data=[{'index': 1, 'embedding': [0.0, 1.0]}, {'index': 0, 'embedding': [1.0, 0.0]}],
    )
    assert response.embeddings == [[1.0, 0.0], [0.0, 1.0]]
    assert response.prompt_tokens == 2  # noqa: PLR2004
    assert response.success
