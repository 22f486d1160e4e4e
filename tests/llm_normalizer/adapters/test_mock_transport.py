from __future__ import annotations

import math

import pytest

from llm_normalizer.adapters.mock_transport import (
    MockTransport,
    content_text,
    embedding_vector,
    prompt_text,
    to_pig_latin,
)
from llm_normalizer.core.config import MockSettings
from llm_normalizer.core.types import Endpoint


@pytest.mark.parametrize(
    ('text', 'expected'),
    [
        ('Hello, world!', 'Ellohay, orldway!'),
        ('apple', 'appleway'),
        ('string', 'ingstray'),
        ('Quiet', 'Uietqay'),
        ('', ''),
    ],
)
def test_to_pig_latin(text: str, expected: str) -> None:
    assert to_pig_latin(text) == expected


def test_content_text() -> None:
    assert content_text(None) == ''
    assert content_text('plain') == 'plain'
    blocks = [{'type': 'text', 'text': 'a'}, {'type': 'image', 'source': {}}, {'type': 'text', 'text': 'b'}]
    assert content_text(blocks) == 'a b'


def test_prompt_text_joins_instructions_and_last_message() -> None:
    payload = {'instructions': ['Be', 'brief'], 'messages': [{'content': 'first'}, {'content': 'last'}]}
    assert prompt_text(payload) == 'Be brief last'
    assert prompt_text({}) == ''


def test_embedding_vector() -> None:
    vector = embedding_vector('alpha', 16)
    assert len(vector) == 16  # noqa: PLR2004
    assert math.isclose(sum(v * v for v in vector), 1.0, rel_tol=1e-9)
    assert embedding_vector('alpha', 16) == vector
    assert embedding_vector('beta', 16) != vector


def test_send_shapes_an_anthropic_message() -> None:
    raw = MockTransport(MockSettings()).send({'messages': [{'role': 'user', 'content': 'Hello'}]})
    assert raw['id'].startswith('mock-')
    assert raw['content'] == [{'type': 'text', 'text': 'Ellohay'}]
    assert raw['model'] == 'mock-model'
    assert raw['usage'] == {'input_tokens': 5, 'output_tokens': 7}


def test_stream_events() -> None:
    events = list(MockTransport(MockSettings()).stream({'messages': [{'content': 'Hello world'}]}))
    kinds = [event['type'] for event in events]
    assert kinds[0] == 'message_start'
    assert kinds[-2:] == ['message_delta', 'message_stop']
    text = ''.join(e['delta']['text'] for e in events if e['type'] == 'content_block_delta')
    assert text == 'Ellohay orldway'


def test_embed_endpoint() -> None:
    raw = MockTransport(MockSettings()).send({'input': 'abc', 'dimensions': 4}, endpoint=Endpoint.embeddings)
    assert raw['object'] == 'list'
    assert len(raw['data'][0]['embedding']) == 4  # noqa: PLR2004
    assert raw['usage'] == {'prompt_tokens': 3, 'total_tokens': 3}
