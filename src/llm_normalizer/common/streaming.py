"""common.streaming

Tracks which in-progress assistant message streamed deltas attach to.

The resolver holds an append-only list of messages for one generation.
`current_message()` returns the last message unless it already carries
completed tool actions, in which case a fresh message is appended first.
Text therefore always lands in an open message, and a finished tool-call
turn never receives more text.

One resolver belongs to one in-flight generation and must be fed from a
single sequential callback chain; it holds no locks.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal

from pydantic import Field

from llm_normalizer.core.model import ALWAYS, BridgeModel

log = logging.getLogger(__name__)


class StreamingMessage(BridgeModel):
    """An assistant message being assembled from deltas."""

    role: Annotated[Literal['assistant'], ALWAYS] = 'assistant'
    content: str = ''
    generation_id: str | None = None
    tool_call_fragments: list[dict[str, Any]] = Field(default_factory=list)
    tool_actions: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def has_tool_actions(self) -> bool:
        return bool(self.tool_actions)

    def append_text(self, text: str) -> None:
        self.content += text

    def add_tool_call_fragment(self, fragment: dict[str, Any]) -> None:
        self.tool_call_fragments.append(dict(fragment))

    def complete_tool_actions(self, actions: list[dict[str, Any]] | None = None) -> None:
        """Record the finished tool calls; this message accepts no more text afterwards."""
        completed = actions if actions is not None else self.tool_call_fragments
        self.tool_actions = [dict(action) for action in completed]


class StreamingMessageResolver:
    """Append-only stack of streaming assistant messages."""

    def __init__(self) -> None:
        self._messages: list[StreamingMessage] = []

    @property
    def messages(self) -> tuple[StreamingMessage, ...]:
        return tuple(self._messages)

    def current_message(self, generation_id: str | None = None) -> StreamingMessage:
        """Return the open message, starting a new one when needed."""
        if not self._messages or self._messages[-1].has_tool_actions:
            self._messages.append(StreamingMessage(generation_id=generation_id))
            log.debug('started streaming message %d', len(self._messages))
        return self._messages[-1]

    def find(self, generation_id: str) -> StreamingMessage | None:
        """Look up a message by generation id without changing state."""
        for message in self._messages:
            if message.generation_id == generation_id:
                return message
        return None

    def target(self, generation_id: str | None = None) -> StreamingMessage:
        """The message a delta for `generation_id` should append into."""
        if generation_id is not None:
            found = self.find(generation_id)
            if found is not None and not found.has_tool_actions:
                return found
        return self.current_message(generation_id)

    def append_text(self, text: str, generation_id: str | None = None) -> StreamingMessage:
        message = self.target(generation_id)
        message.append_text(text)
        return message

    def add_tool_call_fragment(self, fragment: dict[str, Any], generation_id: str | None = None) -> StreamingMessage:
        message = self.target(generation_id)
        message.add_tool_call_fragment(fragment)
        return message

    # names used by stream dispatchers
    streaming_message = current_message
    streaming_message_find = find
