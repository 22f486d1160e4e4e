"""common.messages

Provider-neutral messages and the cast that bridges provider messages into
them.

`cast_message()` picks a concrete class from `{role, content, name}`:

* a bare string is a user message;
* `system` messages are dropped (system text surfaces via `instructions`);
* objects exposing `to_common()` are converted through it first;
* an unknown role raises `UnknownRoleError`.

`cast_messages()` additionally splits assistant messages whose content is a
list of blocks into one message per block, in order, carrying the parent's
`name`. Tool-use and MCP blocks are rendered as readable text so downstream
consumers can iterate tool calls independently of narrative text.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Annotated, Any, Literal

from llm_normalizer.core.exceptions import CastError, UnknownRoleError
from llm_normalizer.core.model import ALWAYS, BridgeModel

log = logging.getLogger(__name__)


class Message(BridgeModel):
    """Base canonical message."""

    role: str
    content: str | list[Any] | None = None
    name: str | None = None

    @property
    def text(self) -> str:
        """Content flattened to text (text blocks joined by newlines)."""
        return flatten_text(self.content)

    def to_common(self) -> Message:
        return self


class UserMessage(Message):
    role: Annotated[Literal['user'], ALWAYS] = 'user'


class AssistantMessage(Message):
    role: Annotated[Literal['assistant'], ALWAYS] = 'assistant'


class ToolMessage(Message):
    role: Annotated[Literal['tool'], ALWAYS] = 'tool'
    tool_call_id: str | None = None


def flatten_text(content: Any) -> str:
    """Join the text of every text block in order, newline separated."""
    if content is None:
        return ''
    if isinstance(content, str):
        return content
    if isinstance(content, BridgeModel):
        content = [content]
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
            continue
        data = block.serialize(compress=False) if isinstance(block, BridgeModel) else block
        if isinstance(data, Mapping) and data.get('type') in ('text', 'input_text', 'output_text'):
            parts.append(data.get('text') or '')
    return '\n'.join(parts)


def _pick(data: Mapping[str, Any], *keys: str) -> dict[str, Any]:
    return {key: data[key] for key in keys if key in data}


def cast_message(value: Any) -> Message | None:
    """Cast one value into a canonical message; `None` for dropped system messages."""
    if value is None or isinstance(value, Message):
        return value
    if not isinstance(value, (str, Mapping)) and hasattr(value, 'to_common'):
        value = value.to_common()
        if value is None or isinstance(value, Message):
            return value
    if isinstance(value, str):
        return UserMessage(content=value)
    if not isinstance(value, Mapping):
        raise CastError.unsupported(value, 'Message')

    data = {str(k): v for k, v in value.items()}
    role = data.get('role')
    role = getattr(role, 'value', role)
    if role == 'system':
        return None
    if role in (None, 'user'):
        if data.get('text') is not None and data.get('content') is None:
            return UserMessage(content=data['text'], name=data.get('name'))
        return UserMessage(**_pick(data, 'content', 'name'))
    if role == 'assistant':
        return AssistantMessage(**_pick(data, 'content', 'name'))
    if role == 'tool':
        return ToolMessage(**_pick(data, 'content', 'tool_call_id'))
    raise UnknownRoleError(role)


def cast_messages(value: Any) -> list[Message]:
    """Cast a list of messages, dropping system messages and splitting assistant blocks."""
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else [value]
    messages: list[Message] = []
    for item in items:
        message = cast_message(item)
        if message is None:
            continue
        messages.extend(split_message(message))
    return messages


# ---------------------------------------------------------------------------
# Splitting
# ---------------------------------------------------------------------------


def split_message(message: Message) -> list[Message]:
    """Split an assistant message with block content into one message per block."""
    if not isinstance(message, AssistantMessage) or not isinstance(message.content, list):
        return [message]
    fragments = [
        AssistantMessage(content=render_block(block), name=message.name)
        for block in message.content
        if block is not None
    ]
    log.debug('split assistant message into %d fragments', len(fragments))
    return fragments


def render_block(block: Any) -> str:
    """Render one content block as text for a split fragment."""
    if isinstance(block, str):
        return block
    data = block.serialize(compress=False) if isinstance(block, BridgeModel) else block
    if not isinstance(data, Mapping):
        return str(data)
    kind = data.get('type')
    if kind == 'text':
        return data.get('text') or ''
    if kind == 'tool_use':
        return (
            f'[Tool Use: {data.get("name")}]\n'
            f'ID: {data.get("id")}\n'
            f'Input: {json.dumps(data.get("input"), indent=2)}'
        )
    if kind == 'mcp_tool_use':
        return (
            f'[MCP Tool Use: {data.get("name")}]\n'
            f'ID: {data.get("id")}\n'
            f'Server: {data.get("server_name")}\n'
            f'Input: {json.dumps(data.get("input") or {}, indent=2)}'
        )
    if kind == 'mcp_tool_result':
        return f'[MCP Tool Result]\n{_render_result(data.get("content"))}'
    if data.get('text') is not None:
        return data['text']
    return json.dumps(data)


def _render_result(content: Any) -> str:
    if content is None:
        return ''
    if isinstance(content, str):
        return content
    if isinstance(content, list) and all(isinstance(c, Mapping) and 'text' in c for c in content):
        return '\n'.join(c['text'] for c in content)
    return json.dumps(content)
