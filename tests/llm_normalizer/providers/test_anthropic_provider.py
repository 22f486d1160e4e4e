from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest

from llm_normalizer.common.messages import AssistantMessage, UserMessage
from llm_normalizer.core.abc import AbstractTransport
from llm_normalizer.core.config import AnthropicSettings
from llm_normalizer.core.exceptions import ProviderClientError, ResponseShapeError, UnknownTagError
from llm_normalizer.core.retry import RetryStrategy
from llm_normalizer.core.types import Endpoint
from llm_normalizer.providers.anthropic.provider import AnthropicProvider
from llm_normalizer.providers.anthropic.request import JSON_PREFILL
from llm_normalizer.providers.anthropic.streaming import AnthropicStreamAssembler


class RecordingTransport(AbstractTransport):
    def __init__(self, response: Any = None, events: list[dict[str, Any]] | None = None) -> None:
        super().__init__(AnthropicSettings(api_key='sk-ant-test'), retry_strategy=RetryStrategy.disabled())
        self.response = response
        self.events = events or []
        self.payloads: list[dict[str, Any]] = []

    def _send(self, payload: dict[str, Any], endpoint: Endpoint) -> dict[str, Any]:
        assert endpoint is Endpoint.messages
        self.payloads.append(payload)
        return self.response

    def _stream(self, payload: dict[str, Any], endpoint: Endpoint) -> Iterator[dict[str, Any]]:
        self.payloads.append(payload)
        return iter(self.events)


def _message(*content: dict[str, Any], stop_reason: str = 'end_turn') -> dict[str, Any]:
    return {
        'id': 'msg_01',
        'type': 'message',
        'role': 'assistant',
        'model': 'claude-sonnet-4-5',
        'content': list(content),
        'stop_reason': stop_reason,
        'stop_sequence': None,
        'usage': {'input_tokens': 12, 'output_tokens': 6, 'service_tier': 'standard'},
    }


def _provider(transport: RecordingTransport) -> AnthropicProvider:
    return AnthropicProvider(model='claude-sonnet-4-5', transport=transport)


def test_prompt_round_trip() -> None:
    transport = RecordingTransport(_message({'type': 'text', 'text': 'Hello!'}))
    response = _provider(transport).prompt(instructions='Be kind.', messages=['Hi'])

    assert transport.payloads == [
        {
            'model': 'claude-sonnet-4-5',
            'messages': [{'role': 'user', 'content': 'Hi'}],
            'max_tokens': 4096,
            'system': 'Be kind.',
        },
    ]
    assert response.messages == [UserMessage(content='Hi'), AssistantMessage(content='Hello!')]
    assert response.instructions == 'Be kind.'
    assert response.usage.service_tier == 'standard'
    assert response.total_tokens == 18  # noqa: PLR2004


def test_reply_blocks_split_and_thinking_is_hidden() -> None:
    raw = _message(
        {'type': 'thinking', 'thinking': 'hmm', 'signature': 'sig'},
        {'type': 'text', 'text': 'Let me check.'},
        {'type': 'tool_use', 'id': 'toolu_1', 'name': 'weather', 'input': {'city': 'Oslo'}},
        stop_reason='tool_use',
    )
    response = _provider(RecordingTransport(raw)).prompt(messages=['Weather in Oslo?'])

    assert [m.content for m in response.messages] == [
        'Weather in Oslo?',
        'Let me check.',
        '[Tool Use: weather]\nID: toolu_1\nInput: {\n  "city": "Oslo"\n}',
    ]
    assert response.tool_calls == [{'id': 'toolu_1', 'name': 'weather', 'input': {'city': 'Oslo'}}]
    assert response.raw_response['content'][0]['type'] == 'thinking'


def test_json_object_adds_prefill_and_restores_brace() -> None:
    transport = RecordingTransport(_message({'type': 'text', 'text': '"answer": 42}'}))
    response = _provider(transport).prompt(messages=['Answer in JSON'], response_format='json_object')

    sent = transport.payloads[0]
    assert sent['messages'][-1] == {'role': 'assistant', 'content': JSON_PREFILL}
    assert 'response_format' not in sent
    assert response.messages == [UserMessage(content='Answer in JSON'), AssistantMessage(content='{"answer": 42}')]
    assert response.format.type == 'json_object'


def test_satisfied_tool_choice_is_removed() -> None:
    history = [
        'Weather?',
        {'role': 'assistant', 'content': [{'type': 'tool_use', 'id': 'toolu_1', 'name': 'weather', 'input': {}}]},
        {'role': 'user', 'content': [{'type': 'tool_result', 'tool_use_id': 'toolu_1', 'content': '12C'}]},
    ]
    tools = [{'name': 'weather', 'input_schema': {'type': 'object'}}]
    provider = _provider(RecordingTransport())

    assert provider.build_request(messages=history, tools=tools, tool_choice={'name': 'weather'}).tool_choice is None
    assert provider.build_request(messages=history, tools=tools, tool_choice='any').tool_choice is None
    assert provider.build_request(messages=history, tools=tools, tool_choice={'name': 'other'}).tool_choice is not None
    assert provider.build_request(messages=['Weather?'], tools=tools, tool_choice='any').tool_choice is not None


def test_prompt_drops_used_tool_choice_without_system() -> None:
    history = [
        'Weather?',
        {'role': 'assistant', 'content': [{'type': 'tool_use', 'id': 'toolu_1', 'name': 'weather', 'input': {}}]},
        {'role': 'user', 'content': [{'type': 'tool_result', 'tool_use_id': 'toolu_1', 'content': '12C'}]},
    ]
    transport = RecordingTransport(_message({'type': 'text', 'text': 'It is 12C.'}))
    response = _provider(transport).prompt(
        messages=history,
        tools=[{'name': 'weather', 'input_schema': {'type': 'object'}}],
        tool_choice='any',
    )

    sent = transport.payloads[0]
    assert 'tool_choice' not in sent
    assert 'system' not in sent
    assert response.messages[-1] == AssistantMessage(content='It is 12C.')


def test_response_without_content() -> None:
    with pytest.raises(ResponseShapeError):
        _provider(RecordingTransport({'type': 'error'})).prompt(messages=['Hi'])


def _stream_events() -> list[dict[str, Any]]:
    return [
        {
            'type': 'message_start',
            'message': {
                'id': 'msg_01',
                'type': 'message',
                'role': 'assistant',
                'model': 'claude-sonnet-4-5',
                'content': [],
                'usage': {'input_tokens': 5, 'output_tokens': 1},
            },
        },
        {'type': 'ping'},
        {'type': 'content_block_start', 'index': 0, 'content_block': {'type': 'text', 'text': ''}},
        {'type': 'content_block_delta', 'index': 0, 'delta': {'type': 'text_delta', 'text': 'Checking'}},
        {'type': 'content_block_delta', 'index': 0, 'delta': {'type': 'text_delta', 'text': ' now.'}},
        {'type': 'content_block_stop', 'index': 0},
        {
            'type': 'content_block_start',
            'index': 1,
            'content_block': {'type': 'tool_use', 'id': 'toolu_1', 'name': 'weather', 'input': {}},
        },
        {'type': 'content_block_delta', 'index': 1, 'delta': {'type': 'input_json_delta', 'partial_json': '{"city": '}},
        {'type': 'content_block_delta', 'index': 1, 'delta': {'type': 'input_json_delta', 'partial_json': '"Oslo"}'}},
        {'type': 'content_block_stop', 'index': 1},
        {'type': 'message_delta', 'delta': {'stop_reason': 'tool_use'}, 'usage': {'output_tokens': 9}},
        {'type': 'message_stop'},
    ]


def test_stream_assembles_message() -> None:
    assembler = AnthropicStreamAssembler()
    raw = assembler.consume(_stream_events())

    assert raw['content'] == [
        {'type': 'text', 'text': 'Checking now.'},
        {'type': 'tool_use', 'id': 'toolu_1', 'name': 'weather', 'input': {'city': 'Oslo'}},
    ]
    assert raw['stop_reason'] == 'tool_use'
    assert raw['usage'] == {'input_tokens': 5, 'output_tokens': 9}

    streamed = assembler.resolver.messages[0]
    assert streamed.content == 'Checking now.'
    assert streamed.tool_actions == [{'id': 'toolu_1', 'name': 'weather', 'input': {'city': 'Oslo'}}]


def test_streamed_prompt() -> None:
    transport = RecordingTransport(events=_stream_events())
    response = _provider(transport).prompt(messages=['Weather?'], stream=True)

    assert transport.payloads[0]['stream'] is True
    assert response.tool_calls == [{'id': 'toolu_1', 'name': 'weather', 'input': {'city': 'Oslo'}}]
    assert response.total_tokens == 14  # noqa: PLR2004


def test_stream_error_event() -> None:
    assembler = AnthropicStreamAssembler()
    with pytest.raises(ProviderClientError, match='overloaded_error'):
        assembler.consume([{'type': 'error', 'error': {'type': 'overloaded_error', 'message': 'Overloaded'}}])


def test_stream_unknown_event() -> None:
    assembler = AnthropicStreamAssembler()
    assembler.process(_stream_events()[0])
    with pytest.raises(UnknownTagError):
        assembler.process({'type': 'content_block_teleport'})


def test_stream_delta_before_start() -> None:
    with pytest.raises(ResponseShapeError):
        AnthropicStreamAssembler().process({'type': 'content_block_delta', 'index': 0, 'delta': {}})


def test_stream_bad_tool_json() -> None:
    events = _stream_events()[:7] + [
        {'type': 'content_block_delta', 'index': 1, 'delta': {'type': 'input_json_delta', 'partial_json': '{"city"'}},
        {'type': 'content_block_stop', 'index': 1},
    ]
    with pytest.raises(ResponseShapeError):
        AnthropicStreamAssembler().consume(events)
