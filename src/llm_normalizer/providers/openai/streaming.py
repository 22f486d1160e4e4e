"""Stream assemblers for Chat Completions chunks and Responses events."""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from llm_normalizer.core.exceptions import UnknownTagError
from llm_normalizer.providers.base import StreamAssembler, parse_arguments

log = logging.getLogger(__name__)

#: Delta keys that identify rather than accumulate.
_REPLACE_KEYS = frozenset({'role', 'type', 'id', 'index'})


def merge_delta(target: dict[str, Any], delta: Mapping[str, Any]) -> dict[str, Any]:
    """Fold one streamed delta into `target` in place.

    Strings concatenate, mappings merge recursively and lists of indexed
    objects merge element-wise by their `index` key. Identity keys
    (`role`, `type`, `id`, `index`) are replaced instead of concatenated.
    """
    for key, value in delta.items():
        if value is None:
            continue
        current = target.get(key)
        if current is None or key in _REPLACE_KEYS:
            target[key] = copy.deepcopy(value)
        elif isinstance(current, str) and isinstance(value, str):
            target[key] = current + value
        elif isinstance(current, dict) and isinstance(value, Mapping):
            merge_delta(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            _merge_indexed(current, value)
        else:
            target[key] = copy.deepcopy(value)
    return target


def _merge_indexed(current: list[Any], items: list[Any]) -> None:
    for item in items:
        if isinstance(item, Mapping) and 'index' in item:
            existing = next(
                (c for c in current if isinstance(c, dict) and c.get('index') == item['index']),
                None,
            )
            if existing is not None:
                merge_delta(existing, item)
                continue
        current.append(copy.deepcopy(item))


def tool_calls_from_message(message: Mapping[str, Any]) -> list[dict[str, Any]]:
    """`{id, name, input}` for every function tool call on a chat message."""
    calls = []
    for call in message.get('tool_calls') or []:
        function = call.get('function') or {}
        calls.append({'id': call.get('id'), 'name': function.get('name'), 'input': parse_arguments(function.get('arguments'))})
    return calls


class ChatStreamAssembler(StreamAssembler):
    """Merges `chat.completion.chunk` deltas per choice index."""

    def __init__(self) -> None:
        super().__init__()
        self._envelope: dict[str, Any] = {}
        self._choices: dict[int, dict[str, Any]] = {}
        self._usage: dict[str, Any] | None = None

    def _process(self, chunk: Mapping[str, Any]) -> None:
        for key in ('id', 'model', 'created', 'system_fingerprint', 'service_tier'):
            if chunk.get(key) is not None:
                self._envelope[key] = chunk[key]
        if chunk.get('usage'):
            self._usage = dict(chunk['usage'])
        generation_id = chunk.get('id')
        for choice in chunk.get('choices') or []:
            index = choice.get('index', 0)
            state = self._choices.setdefault(index, {'index': index, 'message': {}, 'finish_reason': None})
            delta = choice.get('delta') or {}
            merge_delta(state['message'], delta)
            if delta.get('content'):
                self.resolver.append_text(delta['content'], generation_id)
            for fragment in delta.get('tool_calls') or []:
                self.resolver.add_tool_call_fragment(fragment, generation_id)
            finish_reason = choice.get('finish_reason')
            if finish_reason:
                state['finish_reason'] = finish_reason
                if finish_reason == 'tool_calls':
                    self.resolver.target(generation_id).complete_tool_actions(tool_calls_from_message(state['message']))

    def raw_response(self) -> dict[str, Any]:
        choices = []
        for index in sorted(self._choices):
            state = copy.deepcopy(self._choices[index])
            state['message'].setdefault('role', 'assistant')
            choices.append(state)
        raw = {**self._envelope, 'object': 'chat.completion', 'choices': choices}
        if self._usage is not None:
            raw['usage'] = self._usage
        return raw


_IGNORED_RESPONSE_EVENTS = frozenset(
    {
        'response.created',
        'response.in_progress',
        'response.queued',
        'response.content_part.added',
        'response.content_part.done',
        'response.function_call_arguments.delta',
        'response.function_call_arguments.done',
        'response.output_text.annotation.added',
    },
)


class ResponsesStreamAssembler(StreamAssembler):
    """Follows Responses API stream events keyed by output item id."""

    def __init__(self) -> None:
        super().__init__()
        self._items: dict[str, dict[str, Any]] = {}
        self._order: list[str] = []
        self._response: dict[str, Any] | None = None

    def _process(self, event: Mapping[str, Any]) -> None:
        kind = event.get('type')
        if kind in _IGNORED_RESPONSE_EVENTS:
            return
        if kind == 'response.output_item.added':
            self._item_added(dict(event.get('item') or {}))
        elif kind == 'response.output_text.delta':
            item_id = event.get('item_id')
            self._text_item(item_id)['_text'] += event.get('delta') or ''
            self.resolver.append_text(event.get('delta') or '', item_id)
        elif kind == 'response.output_text.done':
            self._text_item(event.get('item_id'))['_text'] = event.get('text') or ''
        elif kind == 'response.output_item.done':
            self._item_done(dict(event.get('item') or {}))
        elif kind in ('response.completed', 'response.failed', 'response.incomplete'):
            self._response = dict(event.get('response') or {})
        elif isinstance(kind, str) and kind.startswith('response.'):
            log.warning('ignoring responses stream event %s', kind)
        else:
            raise UnknownTagError(kind, 'responses stream event')

    def _item_added(self, item: dict[str, Any]) -> None:
        item_id = item.get('id') or f'item_{len(self._order)}'
        if item_id not in self._items:
            self._order.append(item_id)
        self._items[item_id] = {**item, '_text': ''}
        if item.get('type') == 'message':
            self.resolver.target(item_id)

    def _text_item(self, item_id: str | None) -> dict[str, Any]:
        key = item_id or f'item_{len(self._order)}'
        if key not in self._items:
            self._item_added({'id': key, 'type': 'message', 'role': 'assistant'})
        return self._items[key]

    def _item_done(self, item: dict[str, Any]) -> None:
        item_id = item.get('id') or f'item_{len(self._order)}'
        if item_id not in self._items:
            self._order.append(item_id)
        self._items[item_id] = {**self._items.get(item_id, {}), **item}
        if item.get('type') == 'function_call':
            message = self.resolver.current_message()
            message.add_tool_call_fragment(item)
            message.complete_tool_actions(
                [{'id': item.get('call_id'), 'name': item.get('name'), 'input': parse_arguments(item.get('arguments'))}],
            )

    def raw_response(self) -> dict[str, Any]:
        if self._response is not None and self._response.get('output') is not None:
            return copy.deepcopy(self._response)
        output = []
        for item_id in self._order:
            item = dict(self._items[item_id])
            text = item.pop('_text', '')
            if item.get('type') == 'message' and not item.get('content'):
                item['content'] = [{'type': 'output_text', 'text': text}]
            output.append(item)
        raw = {**(self._response or {}), 'object': 'response', 'output': output}
        return raw
