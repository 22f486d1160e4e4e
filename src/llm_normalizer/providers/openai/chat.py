"""OpenAI Chat Completions request builder.

`ChatRequest(**params)` accepts the generic parameter bag: ``instructions``
become leading developer messages, message shorthands (bare strings,
``{text, image}`` hashes) are expanded, tools given as ``{name, parameters}``
are wrapped in the function envelope and ``response_format`` strings or
flat schemas are normalized to the wire shape.

On serialize, consecutive messages sharing a role are merged (tool messages
never merge). Content is coerced to part lists before concatenation, so
``"A"`` then ``"B"`` becomes two text parts. Ollama overrides the merge.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BeforeValidator, Field, field_serializer, model_validator

from llm_normalizer.common.messages import flatten_text
from llm_normalizer.core.exceptions import CastError
from llm_normalizer.core.model import ALWAYS, BridgeModel, ContentModel
from llm_normalizer.core.rules import (
    Each,
    FieldError,
    Length,
    MetadataLimits,
    OneOf,
    Predicate,
    Range,
    Required,
)
from llm_normalizer.core.variants import Inference, VariantFamily
from llm_normalizer.providers.openai.content import CONTENT, ContentPart, cast_contents

log = logging.getLogger(__name__)

COMMON_ROLES: dict[str, str] = {
    'developer': 'system',
    'system': 'system',
    'user': 'user',
    'assistant': 'assistant',
    'tool': 'tool',
    'function': 'tool',
}


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def expand_message_shorthand(data: Any) -> Any:
    """`{text}`, `{image}` and `{text, image}` message hashes become `content`."""
    if not isinstance(data, Mapping) or 'content' in data:
        return data
    data = dict(data)
    text, image = data.pop('text', None), data.pop('image', None)
    if image is not None:
        parts: list[dict[str, Any]] = []
        if text is not None:
            parts.append({'type': 'text', 'text': text})
        parts.append({'type': 'image_url', 'image_url': {'url': image}})
        data['content'] = parts
    elif text is not None:
        data['content'] = text
    return data


class ChatMessage(ContentModel):
    """Fields shared by every chat message."""

    role: str
    name: str | None = None

    @model_validator(mode='before')
    @classmethod
    def _expand_shorthand(cls, data: Any) -> Any:
        return expand_message_shorthand(data)

    def to_common(self) -> dict[str, Any]:
        common = {
            'role': COMMON_ROLES.get(self.role, self.role),
            'content': flatten_text(self.content) if self.content is not None else None,
            'name': self.name,
            'tool_call_id': getattr(self, 'tool_call_id', None),
        }
        return {key: value for key, value in common.items() if value is not None}


_cast_chat_contents = cast_contents(CONTENT)

Contents = Annotated[list[ContentPart] | None, BeforeValidator(_cast_chat_contents)]
RequiredContents = Annotated[list[ContentPart] | None, BeforeValidator(_cast_chat_contents), Required()]


class DeveloperMessage(ChatMessage):
    role: Annotated[Literal['developer'], ALWAYS] = 'developer'
    content: RequiredContents = None


class SystemMessage(ChatMessage):
    role: Annotated[Literal['system'], ALWAYS] = 'system'
    content: RequiredContents = None


class UserMessage(ChatMessage):
    role: Annotated[Literal['user'], ALWAYS] = 'user'
    content: RequiredContents = None


class AssistantFields(ChatMessage):
    """Assistant fields every OpenAI-compatible provider shares."""

    role: Annotated[Literal['assistant'], ALWAYS] = 'assistant'
    content: Contents = None
    tool_calls: list[dict[str, Any]] | None = None

    drop_attributes: ClassVar[frozenset[str]] = frozenset({'annotations', 'index'})


class AssistantMessage(AssistantFields):
    audio: dict[str, Any] | None = None
    refusal: str | None = None
    function_call: dict[str, Any] | None = None

    def structural_errors(self) -> list[FieldError]:
        if self.content is None and self.tool_calls is None and self.function_call is None and self.refusal is None:
            return [FieldError('base', 'must have content, tool_calls, function_call, or refusal')]
        return []


class ToolMessage(ChatMessage):
    role: Annotated[Literal['tool'], ALWAYS] = 'tool'
    content: RequiredContents = None
    tool_call_id: Annotated[str | None, Required()] = None


class FunctionMessage(ChatMessage):
    role: Annotated[Literal['function'], ALWAYS] = 'function'
    content: Annotated[str | None, Required()] = None
    name: Annotated[str | None, Required()] = None


def make_message_family(
    user: type[BridgeModel] = UserMessage,
    assistant: type[BridgeModel] = AssistantMessage,
    **extra: type[BridgeModel],
) -> VariantFamily:
    variants: dict[str, type[BridgeModel]] = {
        'developer': DeveloperMessage,
        'system': SystemMessage,
        'user': user,
        'assistant': assistant,
        'tool': ToolMessage,
        'function': FunctionMessage,
    }
    variants.update(extra)
    return VariantFamily(
        name='message role',
        variants=variants,
        inference=(Inference('untagged', lambda data: True, user),),
        shorthand=lambda text: user(content=text),
        tag_key='role',
    )


MESSAGES = make_message_family()

Message = Annotated[
    DeveloperMessage | SystemMessage | UserMessage | AssistantMessage | ToolMessage | FunctionMessage,
    BeforeValidator(MESSAGES.cast),
]


def instructions_to_messages(instructions: Any) -> list[dict[str, Any]]:
    """One developer message per instruction, or one with several parts."""
    items = [i for i in (instructions if isinstance(instructions, (list, tuple)) else [instructions]) if i]
    if len(items) > 1:
        return [{'role': 'developer', 'content': [{'type': 'text', 'text': item} for item in items]}]
    return [{'role': 'developer', 'content': item} for item in items]


def merge_contents_as_lists(left: Any, right: Any) -> list[Any]:
    def as_list(content: Any) -> list[Any]:
        if content is None:
            return []
        if isinstance(content, str):
            return [{'type': 'text', 'text': content}]
        if isinstance(content, list):
            return [{'type': 'text', 'text': part} if isinstance(part, str) else part for part in content]
        return [content]

    return as_list(left) + as_list(right)


def _role_of(message: dict[str, Any]) -> Any:
    return message.get('role')


def group_same_role(
    messages: list[dict[str, Any]],
    merge: Any,
    *,
    skip_roles: tuple[str, ...] = (),
    key: Any = _role_of,
) -> list[dict[str, Any]]:
    """Merge consecutive wire messages with the same `key(message)` into new dicts.

    Messages whose key is `None` or listed in `skip_roles` never merge.
    """
    grouped: list[dict[str, Any]] = []
    for message in messages:
        role = key(message)
        mergeable = role is not None and role not in skip_roles
        if mergeable and grouped and key(grouped[-1]) == role:
            grouped[-1] = {**grouped[-1], 'content': merge(grouped[-1].get('content'), message.get('content'))}
            log.debug('merged consecutive %s messages', role)
        else:
            grouped.append(dict(message))
    return grouped


# ---------------------------------------------------------------------------
# Tools, tool choice, response format and small option objects
# ---------------------------------------------------------------------------


class FunctionDefinition(BridgeModel):
    name: Annotated[str | None, Required(), Length(max=64)] = None
    description: str | None = None
    parameters: dict[str, Any] | None = None
    strict: bool | None = None


class FunctionTool(BridgeModel):
    type: Annotated[Literal['function'], ALWAYS] = 'function'
    function: Annotated[FunctionDefinition | None, Required()] = None


class CustomTool(BridgeModel):
    type: Annotated[Literal['custom'], ALWAYS] = 'custom'
    custom: Annotated[
        dict[str, Any] | None,
        Required(),
        Predicate(lambda custom: bool(custom.get('name')), "must include 'name' field"),
    ] = None


def _function_tool_from_flat(data: dict[str, Any]) -> FunctionTool:
    return FunctionTool(
        function={
            'name': data.get('name'),
            'description': data.get('description'),
            'parameters': data.get('parameters') or data.get('input_schema'),
            'strict': data.get('strict'),
        },
    )


TOOLS = VariantFamily(
    name='tool',
    variants={'function': FunctionTool, 'custom': CustomTool},
    inference=(
        Inference.keys('function', build=FunctionTool),
        Inference.keys('name', build=_function_tool_from_flat),
    ),
)

Tool = Annotated[FunctionTool | CustomTool, BeforeValidator(TOOLS.cast)]


def normalize_tool(value: Any) -> Any:
    """Flat `{type: function, name, parameters}` tools get the nested envelope."""
    if isinstance(value, Mapping) and value.get('type') == 'function' and 'function' not in value:
        return _function_tool_from_flat(dict(value))
    return TOOLS.cast(value)


class NamedToolChoice(BridgeModel):
    type: Annotated[Literal['function', 'custom'], ALWAYS] = 'function'
    function: dict[str, Any] | None = None
    custom: dict[str, Any] | None = None


class AllowedToolsChoice(BridgeModel):
    type: Annotated[Literal['allowed_tools'], ALWAYS] = 'allowed_tools'
    allowed_tools: Annotated[dict[str, Any] | None, Required()] = None


TOOL_CHOICE_MODES = ('none', 'auto', 'required')

_TOOL_CHOICES = VariantFamily(
    name='tool choice',
    variants={'function': NamedToolChoice, 'custom': NamedToolChoice, 'allowed_tools': AllowedToolsChoice},
    inference=(
        Inference.keys('mode', build=lambda data: data['mode']),
        Inference.keys('name', build=lambda data: NamedToolChoice(function={'name': data['name']})),
    ),
)


def cast_tool_choice(value: Any) -> Any:
    """`"auto"` stays a string; `{name}` names a function; `{mode}` collapses to the mode."""
    if value is None or isinstance(value, str):
        return value
    return _TOOL_CHOICES.cast(value)


ToolChoice = Annotated[
    str | NamedToolChoice | AllowedToolsChoice | None,
    BeforeValidator(cast_tool_choice),
    Predicate(lambda choice: not isinstance(choice, str) or choice in TOOL_CHOICE_MODES, 'is not a valid mode'),
]


class JsonSchemaFormat(BridgeModel):
    name: Annotated[str | None, Required()] = None
    description: str | None = None
    schema_: dict[str, Any] | None = Field(default=None, alias='schema')
    strict: bool | None = None


class ResponseFormat(BridgeModel):
    type: Annotated[str, ALWAYS, OneOf('text', 'json_object', 'json_schema')] = 'text'
    json_schema: JsonSchemaFormat | None = None

    @model_validator(mode='before')
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {'type': data}
        if isinstance(data, Mapping) and data.get('type') == 'json_schema':
            nested = data.get('json_schema') or {}
            return {
                'type': 'json_schema',
                'json_schema': {
                    'name': data.get('name') or nested.get('name'),
                    'description': data.get('description') or nested.get('description'),
                    'schema': data.get('schema') or nested.get('schema'),
                    'strict': data.get('strict') if data.get('strict') is not None else nested.get('strict'),
                },
            }
        return data


def cast_response_format(value: Any) -> Any:
    if value is None or isinstance(value, ResponseFormat):
        return value
    if isinstance(value, str):
        return ResponseFormat(type=value)
    return ResponseFormat.cast(value)


class Audio(BridgeModel):
    voice: Annotated[str | None, Required()] = None
    format: Annotated[str | None, Required(), OneOf('wav', 'aac', 'mp3', 'flac', 'opus', 'pcm16')] = None


class Prediction(BridgeModel):
    type: Annotated[Literal['content'], ALWAYS] = 'content'
    content: Annotated[str | list[dict[str, Any]] | None, Required()] = None


class StreamOptions(BridgeModel):
    include_usage: bool | None = None
    include_obfuscation: bool | None = None


def _valid_user_location(location: Any) -> bool:
    return (
        isinstance(location, Mapping)
        and location.get('type') == 'approximate'
        and isinstance(location.get('approximate'), Mapping)
    )


class WebSearchOptions(BridgeModel):
    search_context_size: Annotated[str | None, OneOf('low', 'medium', 'high')] = None
    user_location: Annotated[
        dict[str, Any] | None,
        Predicate(_valid_user_location, "must have type 'approximate' and an 'approximate' hash"),
    ] = None


def _valid_stop(stop: Any) -> bool:
    if isinstance(stop, str):
        return True
    return isinstance(stop, list) and len(stop) <= 4 and all(isinstance(s, str) for s in stop)


def _valid_logit_bias(bias: Any) -> bool:
    return all(isinstance(v, (int, float)) and -100 <= v <= 100 for v in bias.values())


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


def cast_message_list(family: VariantFamily) -> Any:
    def cast(value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, (str, Mapping, BridgeModel)):
            value = [value]
        return [family.cast(item) for item in value if item is not None]

    return cast


class ChatRequest(BridgeModel):
    """Chat Completions request."""

    model: Annotated[str | None, Required()] = None
    messages: Annotated[list[Message] | None, BeforeValidator(cast_message_list(MESSAGES)), Required()] = None
    audio: Audio | None = None
    frequency_penalty: Annotated[float | None, Range(ge=-2, le=2)] = 0
    function_call: str | dict[str, Any] | None = None
    functions: list[dict[str, Any]] | None = None
    logit_bias: Annotated[dict[str, float] | None, Predicate(_valid_logit_bias, 'values must be between -100 and 100')] = None
    logprobs: bool | None = False
    max_completion_tokens: Annotated[int | None, Range(gt=0)] = None
    max_tokens: Annotated[int | None, Range(gt=0)] = None
    metadata: Annotated[dict[str, str] | None, MetadataLimits()] = None
    modalities: Annotated[list[str] | None, Each(OneOf('text', 'audio'))] = Field(default_factory=lambda: ['text'])
    n: Annotated[int | None, Range(gt=0)] = 1
    parallel_tool_calls: bool | None = True
    prediction: Prediction | None = None
    presence_penalty: Annotated[float | None, Range(ge=-2, le=2)] = 0
    prompt_cache_key: str | None = None
    reasoning_effort: Annotated[str | None, OneOf('minimal', 'low', 'medium', 'high')] = None
    response_format: Annotated[ResponseFormat | None, BeforeValidator(cast_response_format)] = None
    safety_identifier: str | None = None
    seed: int | None = None
    service_tier: Annotated[str | None, OneOf('auto', 'default', 'flex', 'priority')] = 'auto'
    stop: Annotated[str | list[str] | None, Predicate(_valid_stop, 'must be a string or an array of at most 4 strings')] = None
    store: bool | None = False
    stream: bool | None = False
    stream_options: StreamOptions | None = None
    temperature: Annotated[float | None, Range(ge=0, le=2)] = 1
    tool_choice: ToolChoice = None
    tools: Annotated[list[Tool] | None, BeforeValidator(lambda tools: tools and [normalize_tool(t) for t in tools])] = None
    top_logprobs: Annotated[int | None, Range(ge=0, le=20)] = None
    top_p: Annotated[float | None, Range(ge=0, le=1)] = 1
    user: str | None = None
    verbosity: Annotated[str | None, OneOf('low', 'medium', 'high')] = None
    web_search_options: Annotated[WebSearchOptions | None, ALWAYS] = None

    #: Roles that never merge with a neighbour.
    unmerged_roles: ClassVar[tuple[str, ...]] = ('tool',)

    @model_validator(mode='before')
    @classmethod
    def _normalize_params(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            raise CastError.unsupported(data, cls.__name__)
        data = dict(data)
        if 'message' in data and 'messages' not in data:
            data['messages'] = data.pop('message')
        if 'instructions' in data:
            leading = instructions_to_messages(data.pop('instructions'))
            existing = data.get('messages') or []
            if isinstance(existing, (str, Mapping, BridgeModel)):
                existing = [existing]
            data['messages'] = leading + list(existing)
        return data

    @classmethod
    def merge_contents(cls, left: Any, right: Any) -> Any:
        return merge_contents_as_lists(left, right)

    @field_serializer('messages', mode='wrap')
    def _group_messages(self, value: Any, handler: Any) -> Any:
        serialized = handler(value)
        if not serialized:
            return serialized
        return group_same_role(serialized, type(self).merge_contents, skip_roles=self.unmerged_roles)

    def structural_errors(self) -> list[FieldError]:
        errors = []
        if self.max_tokens is not None and self.max_completion_tokens is not None:
            errors.append(FieldError('max_tokens', 'cannot be combined with max_completion_tokens'))
        if self.top_logprobs is not None and not self.logprobs:
            errors.append(FieldError('top_logprobs', 'requires logprobs to be true'))
        return errors

    def to_common_messages(self) -> list[dict[str, Any]]:
        return [message.to_common() for message in self.messages or []]
