"""adapters.mock_transport

In-process transport for tests and offline development.

Prompts are answered with the Pig Latin of the instructions plus the last
message, in the Anthropic Messages response shape. Streams emit the same
text word by word as Anthropic stream events. Embeddings are unit-norm
vectors seeded from the input text, so equal inputs give equal vectors.
"""

from __future__ import annotations

import hashlib
import logging
import math
import random
import re
import secrets
from typing import TYPE_CHECKING, Any

from llm_normalizer.core.abc import AbstractTransport
from llm_normalizer.core.types import Endpoint

if TYPE_CHECKING:
    from collections.abc import Iterator

log = logging.getLogger(__name__)

DEFAULT_DIMENSIONS = 1536

_VOWELS = 'aeiouAEIOU'
_LEADING_CONSONANTS = re.compile(r'^([^aeiouAEIOU]+)(.*)$', re.DOTALL)


def pig_latin_word(word: str) -> str:
    if not re.search(r'\w', word):
        return word
    if word[0] in _VOWELS:
        return f'{word}way'
    match = _LEADING_CONSONANTS.match(word)
    if match is None:  # pragma: no cover - any non-vowel start matches
        return f'{word}ay'
    consonants, rest = match.groups()
    if word[0] == word[0].upper() and rest:
        return f'{rest[0].upper()}{rest[1:]}{consonants.lower()}ay'
    return f'{rest}{consonants}ay'


def to_pig_latin(text: str) -> str:
    """Translate word by word, keeping punctuation and spacing.

    >>> to_pig_latin('Hello, world!')
    'Ellohay, orldway!'
    """
    if not text:
        return ''
    return ''.join(pig_latin_word(piece) for piece in re.split(r'\b', text))


def content_text(content: Any) -> str:
    if content is None:
        return ''
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return ' '.join(
            block.get('text') or ''
            for block in content
            if isinstance(block, dict) and block.get('type') == 'text'
        )
    return str(content)


def prompt_text(payload: dict[str, Any]) -> str:
    instructions = payload.get('instructions')
    if isinstance(instructions, list):
        instructions = ' '.join(instructions)
    messages = payload.get('messages') or []
    last = content_text(messages[-1].get('content')) if messages else ''
    return ' '.join(part for part in (instructions, last) if part)


def embedding_vector(text: str, dimensions: int) -> list[float]:
    seed = int.from_bytes(hashlib.sha256(text.encode('utf-8')).digest()[:8], 'big')
    rng = random.Random(seed)  # noqa: S311 - not used for security
    vector = [rng.uniform(-1.0, 1.0) for _ in range(dimensions)]
    magnitude = math.sqrt(sum(v * v for v in vector)) or 1.0
    return [v / magnitude for v in vector]


class MockTransport(AbstractTransport):
    """Deterministic transport; never touches the network."""

    def _send(self, payload: dict[str, Any], endpoint: Endpoint) -> dict[str, Any]:
        if endpoint is Endpoint.embeddings:
            return self._embed(payload)
        content = prompt_text(payload)
        reply = to_pig_latin(content)
        log.debug('mock reply of %d characters', len(reply))
        return {
            'id': f'mock-{secrets.token_hex(8)}',
            'type': 'message',
            'role': 'assistant',
            'content': [{'type': 'text', 'text': reply}],
            'model': payload.get('model') or 'mock-model',
            'stop_reason': 'end_turn',
            'usage': {'input_tokens': len(content), 'output_tokens': len(reply)},
        }

    def _stream(self, payload: dict[str, Any], endpoint: Endpoint) -> Iterator[dict[str, Any]]:
        return self._events(payload)

    def _events(self, payload: dict[str, Any]) -> Iterator[dict[str, Any]]:
        content = prompt_text(payload)
        reply = to_pig_latin(content)
        yield {
            'type': 'message_start',
            'message': {
                'id': f'mock-{secrets.token_hex(8)}',
                'type': 'message',
                'role': 'assistant',
                'content': [],
                'model': payload.get('model') or 'mock-model',
                'usage': {'input_tokens': len(content), 'output_tokens': 0},
            },
        }
        yield {'type': 'content_block_start', 'index': 0, 'content_block': {'type': 'text', 'text': ''}}
        for index, word in enumerate(reply.split(' ')):
            chunk = word if index == 0 else f' {word}'
            yield {'type': 'content_block_delta', 'index': 0, 'delta': {'type': 'text_delta', 'text': chunk}}
        yield {'type': 'content_block_stop', 'index': 0}
        yield {
            'type': 'message_delta',
            'delta': {'stop_reason': 'end_turn'},
            'usage': {'output_tokens': len(reply)},
        }
        yield {'type': 'message_stop'}

    def _embed(self, payload: dict[str, Any]) -> dict[str, Any]:
        inputs = payload.get('input')
        inputs = inputs if isinstance(inputs, list) else [inputs]
        dimensions = payload.get('dimensions') or DEFAULT_DIMENSIONS
        characters = sum(len(str(text)) for text in inputs)
        return {
            'object': 'list',
            'data': [
                {'object': 'embedding', 'index': index, 'embedding': embedding_vector(str(text), dimensions)}
                for index, text in enumerate(inputs)
            ],
            'model': payload.get('model') or 'mock-embedding-model',
            'usage': {'prompt_tokens': characters, 'total_tokens': characters},
        }
