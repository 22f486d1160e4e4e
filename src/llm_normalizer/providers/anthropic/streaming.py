"""Assembler for Anthropic Messages stream events.

Event order for one message::

    message_start
      content_block_start(index) content_block_delta(index)* content_block_stop(index)
      ...
    message_delta (stop_reason, usage)
    message_stop

`ping` is ignored; an `error` event raises. Any other event type, or an
unknown delta type, raises `UnknownTagError`.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Mapping
from typing import Any

from llm_normalizer.core.exceptions import ProviderClientError, ResponseShapeError, UnknownTagError
from llm_normalizer.providers.base import StreamAssembler

log = logging.getLogger(__name__)


class AnthropicStreamAssembler(StreamAssembler):
    def __init__(self) -> None:
        super().__init__()
        self._message: dict[str, Any] | None = None

    @property
    def message(self) -> dict[str, Any]:
        if self._message is None:
            raise ResponseShapeError('stream event received before message_start')
        return self._message

    def _process(self, event: Mapping[str, Any]) -> None:
        kind = event.get('type')
        if kind == 'message_start':
            self._message = copy.deepcopy(dict(event.get('message') or {}))
            self._message.setdefault('content', [])
            self.resolver.current_message(self._message.get('id'))
        elif kind == 'content_block_start':
            self._block_start(event)
        elif kind == 'content_block_delta':
            self._block_delta(event)
        elif kind == 'content_block_stop':
            self._block_stop(event)
        elif kind == 'message_delta':
            delta = event.get('delta') or {}
            self.message.update({k: v for k, v in delta.items() if v is not None})
            if event.get('usage'):
                self.message['usage'] = {**(self.message.get('usage') or {}), **event['usage']}
            if delta.get('stop_reason') == 'tool_use':
                self._complete_tool_actions()
        elif kind == 'message_stop':
            if event.get('message'):
                self._message = copy.deepcopy(dict(event['message']))
        elif kind == 'ping':
            return
        elif kind == 'error':
            error = event.get('error') or {}
            raise ProviderClientError(f'{error.get("type", "error")}: {error.get("message", "stream error")}')
        else:
            raise UnknownTagError(kind, 'stream event')

    def _block_start(self, event: Mapping[str, Any]) -> None:
        block = copy.deepcopy(dict(event.get('content_block') or {}))
        if block.get('type') in ('tool_use', 'server_tool_use', 'mcp_tool_use'):
            block['json_buf'] = ''
        content = self.message['content']
        index = event.get('index', len(content))
        while len(content) <= index:
            content.append({})
        content[index] = block
        if block.get('type') == 'text' and block.get('text'):
            self.resolver.append_text(block['text'], self.message.get('id'))

    def _block(self, event: Mapping[str, Any]) -> dict[str, Any]:
        index = event.get('index', 0)
        try:
            return self.message['content'][index]
        except IndexError:
            raise ResponseShapeError(f'delta for unknown content block {index}') from None

    def _block_delta(self, event: Mapping[str, Any]) -> None:
        block = self._block(event)
        delta = event.get('delta') or {}
        kind = delta.get('type')
        if kind == 'text_delta':
            block['text'] = (block.get('text') or '') + delta.get('text', '')
            self.resolver.append_text(delta.get('text', ''), self.message.get('id'))
        elif kind == 'input_json_delta':
            block['json_buf'] = block.get('json_buf', '') + delta.get('partial_json', '')
        elif kind == 'thinking_delta':
            block['thinking'] = (block.get('thinking') or '') + delta.get('thinking', '')
        elif kind == 'signature_delta':
            block['signature'] = delta.get('signature')
        elif kind == 'citations_delta':
            block.setdefault('citations', []).append(delta.get('citation'))
        else:
            raise UnknownTagError(kind, 'content block delta')

    def _block_stop(self, event: Mapping[str, Any]) -> None:
        if event.get('content_block'):
            self.message['content'][event.get('index', 0)] = copy.deepcopy(dict(event['content_block']))
        block = self._block(event)
        json_buf = block.pop('json_buf', None)
        if json_buf:
            try:
                block['input'] = json.loads(json_buf)
            except json.JSONDecodeError as exc:
                raise ResponseShapeError(f'Tool input is not valid JSON: {json_buf!r}') from exc
        if block.get('type') == 'tool_use':
            self.resolver.add_tool_call_fragment(
                {'id': block.get('id'), 'name': block.get('name'), 'input': block.get('input') or {}},
                self.message.get('id'),
            )

    def _complete_tool_actions(self) -> None:
        actions = [
            {'id': block.get('id'), 'name': block.get('name'), 'input': block.get('input') or {}}
            for block in self.message['content']
            if block.get('type') == 'tool_use'
        ]
        self.resolver.target(self.message.get('id')).complete_tool_actions(actions)

    def raw_response(self) -> dict[str, Any]:
        message = copy.deepcopy(self.message)
        for block in message.get('content') or []:
            block.pop('json_buf', None)
        return message
