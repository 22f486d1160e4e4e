"""Mock provider requests.

A deliberately small request shape: the mock backend only needs the
messages, instructions and a few generation knobs it echoes back.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BeforeValidator, field_serializer, model_validator

from llm_normalizer.common.messages import flatten_text
from llm_normalizer.core.exceptions import CastError
from llm_normalizer.core.model import ALWAYS, BridgeModel, ContentModel, compress_text_blocks
from llm_normalizer.core.rules import Range, Required
from llm_normalizer.core.variants import Inference, VariantFamily
from llm_normalizer.providers.anthropic.request import merge_block_lists
from llm_normalizer.providers.openai.chat import cast_message_list, group_same_role

DEFAULT_DIMENSIONS = 1536


class MockMessage(ContentModel):
    role: str
    content: Annotated[str | list[dict[str, Any]] | None, Required()] = None

    def to_common(self) -> dict[str, Any]:
        return {'role': self.role, 'content': flatten_text(self.content)}


class UserMessage(MockMessage):
    role: Annotated[Literal['user'], ALWAYS] = 'user'

    @model_validator(mode='before')
    @classmethod
    def _text_shorthand(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and 'text' in data and 'content' not in data:
            data = dict(data)
            data['content'] = data.pop('text')
        return data


class AssistantMessage(MockMessage):
    role: Annotated[Literal['assistant'], ALWAYS] = 'assistant'

    drop_attributes: ClassVar[frozenset[str]] = frozenset({'id', 'type', 'model', 'stop_reason', 'usage'})


MESSAGES = VariantFamily(
    name='message role',
    variants={'user': UserMessage, 'assistant': AssistantMessage},
    inference=(Inference('untagged', lambda data: True, UserMessage),),
    shorthand=lambda text: UserMessage(content=text),
    tag_key='role',
)

Message = Annotated[UserMessage | AssistantMessage, BeforeValidator(MESSAGES.cast)]


class MockRequest(BridgeModel):
    model: Annotated[str | None, ALWAYS, Required()] = 'mock-model'
    messages: Annotated[list[Message] | None, BeforeValidator(cast_message_list(MESSAGES))] = None
    instructions: str | list[str] | None = None
    temperature: Annotated[float | None, Range(ge=0)] = None
    max_tokens: Annotated[int | None, Range(gt=0)] = None
    stream: bool | None = False
    tools: list[dict[str, Any]] | None = None
    tool_choice: str | dict[str, Any] | None = None

    @model_validator(mode='before')
    @classmethod
    def _message_alias(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            raise CastError.unsupported(data, cls.__name__)
        if 'message' in data and 'messages' not in data:
            data = dict(data)
            data['messages'] = data.pop('message')
        return data

    @field_serializer('messages', mode='wrap')
    def _group_messages(self, value: Any, handler: Any) -> Any:
        serialized = handler(value)
        if not serialized:
            return serialized
        grouped = group_same_role(serialized, merge_block_lists)
        for message in grouped:
            if isinstance(message.get('content'), list):
                message['content'] = compress_text_blocks(message['content'])
        return grouped

    def to_common_messages(self) -> list[dict[str, Any]]:
        return [message.to_common() for message in self.messages or []]


class MockEmbeddingRequest(BridgeModel):
    model: Annotated[str | None, ALWAYS, Required()] = 'mock-embedding-model'
    input: Annotated[str | list[str] | None, Required()] = None
    dimensions: Annotated[int | None, ALWAYS, Range(gt=0)] = DEFAULT_DIMENSIONS
