"""common.responses

Canonical response objects handed back to callers.

All three classes are frozen and deep-copy their inputs on construction, so
a caller mutating the dict it passed in cannot corrupt a stored response.
`usage` is derived from `raw_response['usage']` on access; a missing usage
block yields `None`.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from pydantic import ConfigDict, Field, field_validator

from llm_normalizer.common.messages import Message, cast_messages
from llm_normalizer.common.usage import Usage
from llm_normalizer.core.model import BridgeModel


def _find_usage(raw: Any) -> Any:
    if isinstance(raw, Mapping):
        return raw.get('usage')
    return None


class Format(BridgeModel):
    """Requested output format: `text`, `json_object` or `json_schema`."""

    type: str = 'text'
    name: str | None = None
    schema_: dict[str, Any] | None = Field(default=None, alias='schema')

    @classmethod
    def from_request(cls, response_format: Any) -> Format:
        if response_format is None:
            return cls()
        if isinstance(response_format, str):
            return cls(type=response_format)
        if isinstance(response_format, BridgeModel):
            response_format = response_format.serialize()
        data = dict(response_format)
        nested = data.get('json_schema') or {}
        return cls(
            type=data.get('type') or 'text',
            name=data.get('name') or nested.get('name'),
            schema=data.get('schema') or nested.get('schema'),
        )


class BaseResponse(BridgeModel):
    """Response base: original context plus the raw request and response."""

    model_config = ConfigDict(frozen=True, validate_assignment=False, extra='forbid')

    context: dict[str, Any] | None = None
    raw_request: Any = None
    raw_response: Any = None
    #: Explicit outcome; `None` means "derive from the response".
    succeeded: bool | None = Field(default=None, exclude=True)

    @field_validator('context', 'raw_request', 'raw_response', mode='before')
    @classmethod
    def _deep_copy(cls, value: Any) -> Any:
        if isinstance(value, BridgeModel):
            return value.serialize()
        return copy.deepcopy(value)

    @property
    def instructions(self) -> Any:
        return (self.context or {}).get('instructions')

    @property
    def usage(self) -> Usage | None:
        return Usage.from_provider_usage(_find_usage(self.raw_response))

    @property
    def prompt_tokens(self) -> int | None:
        usage = self.usage
        return usage.input_tokens if usage else None

    @property
    def completion_tokens(self) -> int | None:
        usage = self.usage
        return usage.output_tokens if usage else None

    @property
    def total_tokens(self) -> int | None:
        usage = self.usage
        return usage.total_tokens if usage else None

    @property
    def success(self) -> bool:
        if self.succeeded is not None:
            return self.succeeded
        return self.raw_response is not None


class PromptResponse(BaseResponse):
    """Response to a prompt (chat/messages) generation."""

    messages: list[Message] = Field(default_factory=list)
    format: Format = Field(default_factory=Format)
    #: Tool invocations in the reply as `{id, name, input}`.
    tool_calls: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator('messages', mode='before')
    @classmethod
    def _cast_messages(cls, value: Any) -> list[Message]:
        return cast_messages(value)

    @field_validator('tool_calls', mode='before')
    @classmethod
    def _copy_tool_calls(cls, value: Any) -> Any:
        return copy.deepcopy(value) if value is not None else []

    @field_validator('format', mode='before')
    @classmethod
    def _cast_format(cls, value: Any) -> Format:
        return value if isinstance(value, Format) else Format.from_request(value)

    @property
    def message(self) -> Message | None:
        """The last message, normally the assistant reply."""
        return self.messages[-1] if self.messages else None

    @property
    def success(self) -> bool:
        if self.succeeded is not None:
            return self.succeeded
        return self.raw_response is not None and bool(self.messages)


class EmbedResponse(BaseResponse):
    """Response to an embedding request."""

    data: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator('data', mode='before')
    @classmethod
    def _copy_data(cls, value: Any) -> Any:
        return copy.deepcopy(value) if value is not None else []

    @property
    def embeddings(self) -> list[list[float]]:
        return [item.get('embedding') for item in sorted(self.data, key=lambda item: item.get('index', 0))]

    @property
    def success(self) -> bool:
        if self.succeeded is not None:
            return self.succeeded
        return self.raw_response is not None and bool(self.data)
