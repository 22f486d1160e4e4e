from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import anthropic
import httpx
import pytest

from llm_normalizer.adapters.anthropic_transport import AnthropicTransport, translate_error
from llm_normalizer.core.config import AnthropicSettings
from llm_normalizer.core.exceptions import (
    GenerationTimeoutError,
    ModelNotFoundError,
    ProviderClientError,
    RateLimitExceededError,
)
from llm_normalizer.core.retry import RetryStrategy
from llm_normalizer.core.types import Endpoint

_REQUEST = httpx.Request('POST', 'https://api.anthropic.com/v1/messages')

PAYLOAD = {'model': 'claude-3-5-haiku-latest', 'max_tokens': 4096, 'messages': [{'role': 'user', 'content': 'Hi'}]}


class FakeMessages:
    def __init__(self, result: Any) -> None:
        self.result = result
        self.calls: list[dict[str, Any]] = []

    def create(
        self,
        *,
        model: str,
        max_tokens: int,
        messages: list[dict[str, Any]],
        system: Any = None,
        stream: bool = False,
        extra_body: dict[str, Any] | None = None,
    ) -> Any:
        self.calls.append({'model': model, 'system': system, 'stream': stream, 'extra_body': extra_body})
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def _transport(messages: FakeMessages) -> AnthropicTransport:
    return AnthropicTransport(
        AnthropicSettings(api_key='sk-ant-test'),
        retry_strategy=RetryStrategy.disabled(),
        client=SimpleNamespace(messages=messages),
    )


def test_send() -> None:
    messages = FakeMessages({'id': 'msg_1', 'content': []})
    assert _transport(messages).send({**PAYLOAD, 'mcp_servers': []}, endpoint=Endpoint.messages) == {
        'id': 'msg_1',
        'content': [],
    }
    assert messages.calls[0]['extra_body'] == {'mcp_servers': []}


def test_stream() -> None:
    events = [{'type': 'message_start'}, {'type': 'message_stop'}]
    messages = FakeMessages(iter(events))
    assert list(_transport(messages).stream(PAYLOAD, endpoint=Endpoint.messages)) == events
    assert messages.calls[0]['stream'] is True


def test_only_messages_endpoint() -> None:
    with pytest.raises(ProviderClientError, match='does not serve'):
        _transport(FakeMessages({})).send(PAYLOAD, endpoint=Endpoint.chat)


@pytest.mark.parametrize(
    ('status', 'cls', 'expected'),
    [
        (429, anthropic.RateLimitError, RateLimitExceededError),
        (404, anthropic.NotFoundError, ModelNotFoundError),
        (400, anthropic.BadRequestError, ProviderClientError),
    ],
)
def test_translate_error(status: int, cls: type[anthropic.APIStatusError], expected: type[Exception]) -> None:
    error = cls('boom', response=httpx.Response(status, request=_REQUEST), body=None)
    assert isinstance(translate_error(error), expected)


def test_sdk_errors_surface_as_domain_errors() -> None:
    error = anthropic.NotFoundError('boom', response=httpx.Response(404, request=_REQUEST), body=None)
    with pytest.raises(ModelNotFoundError):
        _transport(FakeMessages(error)).send(PAYLOAD, endpoint=Endpoint.messages)


def test_exhausted_rate_limits_time_out() -> None:
    error = anthropic.RateLimitError('slow down', response=httpx.Response(429, request=_REQUEST), body=None)
    with pytest.raises(GenerationTimeoutError, match='Retry limit exceeded'):
        _transport(FakeMessages(error)).send(PAYLOAD, endpoint=Endpoint.messages)


def test_connection_errors_become_retryable() -> None:
    assert isinstance(translate_error(anthropic.APIConnectionError(request=_REQUEST)), ConnectionError)


def test_default_client_uses_settings() -> None:
    client = AnthropicTransport(AnthropicSettings(api_key='sk-ant-test')).client
    assert isinstance(client, anthropic.Anthropic)
    assert client.max_retries == 0
    assert client.api_key == 'sk-ant-test'
