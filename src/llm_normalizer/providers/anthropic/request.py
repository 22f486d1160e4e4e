"""Anthropic Messages request builder.

Messages are user or assistant; system text lives in `system`, so
`instructions` (and any system message in the input) are moved there.
Content is always cast to a block list; on serialize consecutive messages
sharing a role are merged block-wise and a lone text block collapses to a
bare string.

`response_format` is not an Anthropic parameter. It is kept on the request
(excluded from the wire body) so the provider can add the JSON prefill turn
and restore the opening brace on the reply.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BeforeValidator, ConfigDict, Field, field_serializer, model_validator

from llm_normalizer.common.messages import flatten_text
from llm_normalizer.core.exceptions import CastError
from llm_normalizer.core.model import ALWAYS, BridgeModel, ContentModel, compress_text_blocks
from llm_normalizer.core.rules import FieldError, Length, OneOf, Predicate, Range, Required
from llm_normalizer.core.variants import Inference, VariantFamily
from llm_normalizer.providers.anthropic.content import Block, TextBlock, cast_blocks
from llm_normalizer.providers.openai.chat import group_same_role

log = logging.getLogger(__name__)

JSON_PREFILL = 'Here is the JSON requested:\n{'

DEFAULT_MAX_TOKENS = 4096


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def _content_from_extra_keys(data: Any) -> Any:
    """`{role, text: ...}` and `{role, image: ...}` carry their content inline."""
    if not isinstance(data, Mapping) or 'content' in data:
        return data
    extra = {k: v for k, v in data.items() if k not in ('role', 'name')}
    if not extra:
        return data
    return {'role': data.get('role'), 'content': extra} if 'role' in data else {'content': extra}


class AnthropicMessage(ContentModel):
    role: str
    content: Annotated[list[Block] | None, BeforeValidator(cast_blocks), Required()] = None

    @model_validator(mode='before')
    @classmethod
    def _inline_content(cls, data: Any) -> Any:
        return _content_from_extra_keys(data)

    def to_common(self) -> dict[str, Any]:
        return {'role': self.role, 'content': flatten_text(self.content)}


class UserMessage(AnthropicMessage):
    role: Annotated[Literal['user'], ALWAYS] = 'user'


class AssistantMessage(AnthropicMessage):
    role: Annotated[Literal['assistant'], ALWAYS] = 'assistant'

    #: Reply fields accepted when a response message is sent back as input.
    drop_attributes: ClassVar[frozenset[str]] = frozenset(
        {'id', 'model', 'stop_reason', 'stop_sequence', 'type', 'usage', 'container'},
    )


MESSAGES = VariantFamily(
    name='message role',
    variants={'user': UserMessage, 'assistant': AssistantMessage},
    inference=(Inference('untagged', lambda data: True, UserMessage),),
    shorthand=lambda text: UserMessage(content=text),
    tag_key='role',
)

Message = Annotated[UserMessage | AssistantMessage, BeforeValidator(MESSAGES.cast)]


def merge_block_lists(left: Any, right: Any) -> list[Any]:
    def as_list(content: Any) -> list[Any]:
        if content is None:
            return []
        if isinstance(content, str):
            return [{'type': 'text', 'text': content}]
        return list(content)

    return as_list(left) + as_list(right)


# ---------------------------------------------------------------------------
# Tools, tool choice, thinking
# ---------------------------------------------------------------------------


class Tool(BridgeModel):
    """Custom tool (`input_schema`) or a versioned server tool (`type`)."""

    model_config = ConfigDict(extra='allow')

    name: Annotated[str | None, Required(), Length(min=1, max=128)] = None
    description: str | None = None
    input_schema: dict[str, Any] | None = None
    type: str | None = None
    cache_control: dict[str, Any] | None = None

    @model_validator(mode='before')
    @classmethod
    def _parameters_to_input_schema(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and 'parameters' in data and 'input_schema' not in data:
            data = dict(data)
            data['input_schema'] = data.pop('parameters')
        if isinstance(data, Mapping) and data.get('type') == 'function' and isinstance(data.get('function'), Mapping):
            function = dict(data['function'])
            function['input_schema'] = function.pop('parameters', None) or function.get('input_schema')
            return function
        return data

    def structural_errors(self) -> list[FieldError]:
        if self.type in (None, 'custom') and self.input_schema is None:
            return [FieldError('input_schema', "can't be blank")]
        return []


class AutoChoice(BridgeModel):
    type: Annotated[Literal['auto'], ALWAYS] = 'auto'
    disable_parallel_tool_use: bool | None = None


class AnyChoice(BridgeModel):
    type: Annotated[Literal['any'], ALWAYS] = 'any'
    disable_parallel_tool_use: bool | None = None


class ToolChoiceByName(BridgeModel):
    type: Annotated[Literal['tool'], ALWAYS] = 'tool'
    name: Annotated[str | None, Required()] = None
    disable_parallel_tool_use: bool | None = None


class NoneChoice(BridgeModel):
    type: Annotated[Literal['none'], ALWAYS] = 'none'


_CHOICE_SHORTHANDS = {'auto': AutoChoice, 'any': AnyChoice, 'required': AnyChoice, 'none': NoneChoice}


def _choice_from_string(value: str) -> BridgeModel:
    try:
        return _CHOICE_SHORTHANDS[value]()
    except KeyError:
        raise CastError(f'Unknown tool choice: {value!r}') from None


TOOL_CHOICES = VariantFamily(
    name='tool choice',
    variants={'auto': AutoChoice, 'any': AnyChoice, 'tool': ToolChoiceByName, 'none': NoneChoice},
    inference=(Inference.keys('name', build=lambda data: ToolChoiceByName(name=data['name'])),),
    shorthand=_choice_from_string,
)

ToolChoice = Annotated[AutoChoice | AnyChoice | ToolChoiceByName | NoneChoice, BeforeValidator(TOOL_CHOICES.cast)]


class ThinkingEnabled(BridgeModel):
    type: Annotated[Literal['enabled'], ALWAYS] = 'enabled'
    budget_tokens: Annotated[int | None, Required(), Range(ge=1024)] = None


class ThinkingDisabled(BridgeModel):
    type: Annotated[Literal['disabled'], ALWAYS] = 'disabled'


THINKING = VariantFamily(
    name='thinking config',
    variants={'enabled': ThinkingEnabled, 'disabled': ThinkingDisabled},
    inference=(Inference.keys('budget_tokens', build=ThinkingEnabled),),
)

Thinking = Annotated[ThinkingEnabled | ThinkingDisabled, BeforeValidator(THINKING.cast)]


class McpServer(BridgeModel):
    type: Annotated[Literal['url'], ALWAYS] = 'url'
    name: Annotated[str | None, Required()] = None
    url: Annotated[str | None, Required()] = None
    authorization_token: str | None = None
    tool_configuration: dict[str, Any] | None = None

    @model_validator(mode='before')
    @classmethod
    def _authorization(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and 'authorization' in data:
            data = dict(data)
            token = data.pop('authorization')
            data.setdefault('authorization_token', token)
        return data


class Container(BridgeModel):
    id: str | None = None
    skills: list[dict[str, Any]] | None = None


class Metadata(BridgeModel):
    user_id: Annotated[str | None, Length(max=256)] = None


class ResponseFormat(BridgeModel):
    type: Annotated[str, OneOf('text', 'json_object')] = 'text'


def _cast_system(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    items = value if isinstance(value, (list, tuple)) else [value]
    blocks = []
    for item in items:
        if isinstance(item, str):
            blocks.append(TextBlock(text=item))
        elif isinstance(item, Mapping) and item.get('type', 'text') != 'text':
            raise CastError(f'Unknown system block type: {item.get("type")!r}')
        else:
            blocks.append(TextBlock.cast(item))
    return blocks


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class MessagesRequest(BridgeModel):
    """Anthropic `/v1/messages` request."""

    model: Annotated[str | None, Required()] = None
    messages: Annotated[
        list[Message] | None,
        BeforeValidator(lambda value: MESSAGES.cast_many(value)),
        Required(),
    ] = None
    max_tokens: Annotated[int | None, ALWAYS, Required(), Range(ge=1)] = DEFAULT_MAX_TOKENS
    system: Annotated[str | list[TextBlock] | None, BeforeValidator(_cast_system)] = None
    temperature: Annotated[float | None, Range(ge=0, le=1)] = None
    top_k: Annotated[int | None, Range(ge=0)] = None
    top_p: Annotated[float | None, Range(ge=0, le=1)] = None
    stop_sequences: Annotated[list[str] | None, Predicate(lambda stops: all(isinstance(s, str) for s in stops), 'must be an array of strings')] = None
    tools: list[Tool] | None = None
    tool_choice: ToolChoice | None = None
    thinking: Thinking | None = None
    stream: bool | None = False
    metadata: Metadata | None = None
    context_management: dict[str, Any] | None = None
    container: Annotated[Container | None, BeforeValidator(lambda value: {'id': value} if isinstance(value, str) else value)] = None
    service_tier: Annotated[str | None, OneOf('auto', 'standard_only')] = None
    mcp_servers: Annotated[list[McpServer] | None, Length(max=20)] = None
    response_format: ResponseFormat | None = Field(default=None, exclude=True)

    @model_validator(mode='before')
    @classmethod
    def _normalize_params(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            raise CastError.unsupported(data, cls.__name__)
        data = dict(data)
        if 'message' in data and 'messages' not in data:
            data['messages'] = data.pop('message')
        if 'mcps' in data:
            data['mcp_servers'] = data.pop('mcps')
        if isinstance(data.get('response_format'), str):
            data['response_format'] = {'type': data['response_format']}
        system = _system_parts(data.pop('system', None)) + _system_parts(data.pop('instructions', None))
        messages = data.get('messages')
        if messages is not None:
            messages = messages if isinstance(messages, (list, tuple)) else [messages]
            kept = []
            for message in messages:
                if isinstance(message, Mapping) and message.get('role') in ('system', 'developer'):
                    system.extend(_system_parts(message.get('content')))
                else:
                    kept.append(message)
            data['messages'] = kept
        # assignment re-runs this validator with every field, so system must always be set
        if system:
            data['system'] = system[0] if len(system) == 1 and isinstance(system[0], str) else system
        else:
            data['system'] = None
        return data

    @field_serializer('messages', mode='wrap')
    def _group_messages(self, value: Any, handler: Any, info: Any) -> Any:
        serialized = handler(value)
        if not serialized:
            return serialized
        grouped = group_same_role(serialized, merge_block_lists)
        if info.context is None or info.context.get('compress', True):
            for message in grouped:
                message['content'] = compress_text_blocks(message.get('content'))
        return grouped

    @field_serializer('system', mode='wrap')
    def _compress_system(self, value: Any, handler: Any, info: Any) -> Any:
        data = handler(value)
        if info.context is None or info.context.get('compress', True):
            return compress_text_blocks(data)
        return data

    def tools_used(self) -> list[str]:
        """Names of tools already invoked in the conversation."""
        names = []
        for message in self.messages or []:
            for block in message.content or []:
                if getattr(block, 'type', None) == 'tool_use':
                    names.append(block.name)
        return names

    def to_common_messages(self) -> list[dict[str, Any]]:
        messages = list(self.messages or [])
        if self.response_format is not None and self.response_format.type == 'json_object' and messages:
            last = messages[-1]
            if isinstance(last, AssistantMessage) and flatten_text(last.content) == JSON_PREFILL:
                messages = messages[:-1]
        return [message.to_common() for message in messages]


def _system_parts(value: Any) -> list[Any]:
    if value is None or value == '' or value == []:
        return []
    if isinstance(value, (list, tuple)):
        return [part for part in value if part]
    return [value]
