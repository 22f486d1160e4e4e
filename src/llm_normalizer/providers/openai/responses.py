"""OpenAI Responses API request builder.

`messages` maps to `input` and a list of `instructions` is joined with
newlines. `response_format` maps to `text.format`. Tools are flattened to the
Responses shape (`{type: function, name, parameters}`) and `mcp_servers` are
appended as `mcp` tools.

Input items dispatch on `type`: `message` (or no type), `function_call`,
`function_call_output`, `reasoning`, `item_reference` and the hosted
tool-call items, which pass through untouched. On serialize, consecutive
message items sharing a role are merged, and a lone user message with plain
string content collapses to a bare `input` string.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BeforeValidator, ConfigDict, Field, field_serializer, field_validator, model_validator

from llm_normalizer.common.messages import flatten_text
from llm_normalizer.core.exceptions import CastError
from llm_normalizer.core.model import ALWAYS, BridgeModel, ContentModel
from llm_normalizer.core.rules import Each, FieldError, MetadataLimits, OneOf, Predicate, Range, Required
from llm_normalizer.core.variants import Inference, VariantFamily
from llm_normalizer.providers.openai.chat import COMMON_ROLES

INCLUDABLE = (
    'code_interpreter_call.outputs',
    'computer_call_output.output.image_url',
    'file_search_call.results',
    'message.input_image.image_url',
    'message.output_text.logprobs',
    'reasoning.encrypted_content',
    'web_search_call.action.sources',
)

#: Tool-call items accepted as input and sent back unchanged.
PASSTHROUGH_ITEM_TYPES = (
    'file_search_call',
    'computer_call',
    'computer_call_output',
    'web_search_call',
    'image_generation_call',
    'code_interpreter_call',
    'local_shell_call',
    'local_shell_call_output',
    'custom_tool_call',
    'custom_tool_call_output',
    'mcp_list_tools',
    'mcp_approval_request',
    'mcp_approval_response',
    'mcp_call',
)

TEXT_BLOCK_TYPES = ('input_text', 'output_text')


# ---------------------------------------------------------------------------
# Content parts
# ---------------------------------------------------------------------------


class InputText(BridgeModel):
    type: Annotated[Literal['input_text'], ALWAYS] = 'input_text'
    text: Annotated[str | None, Required()] = None


class OutputText(BridgeModel):
    type: Annotated[Literal['output_text'], ALWAYS] = 'output_text'
    text: Annotated[str | None, Required()] = None

    drop_attributes: ClassVar[frozenset[str]] = frozenset({'annotations', 'logprobs'})


class Refusal(BridgeModel):
    type: Annotated[Literal['refusal'], ALWAYS] = 'refusal'
    refusal: Annotated[str | None, Required()] = None


class InputImage(BridgeModel):
    type: Annotated[Literal['input_image'], ALWAYS] = 'input_image'
    image_url: str | None = None
    file_id: str | None = None
    detail: Annotated[str | None, OneOf('low', 'high', 'auto')] = None

    def structural_errors(self) -> list[FieldError]:
        if self.image_url is None and self.file_id is None:
            return [FieldError('base', 'must have image_url or file_id')]
        return []


class InputFile(BridgeModel):
    type: Annotated[Literal['input_file'], ALWAYS] = 'input_file'
    file_data: str | None = None
    file_id: str | None = None
    file_url: str | None = None
    filename: str | None = None


def _file_from_document(data: dict[str, Any]) -> InputFile:
    document = data['document']
    if isinstance(document, str) and document.startswith('data:'):
        return InputFile(filename=data.get('filename') or 'document.pdf', file_data=document)
    return InputFile(file_url=document, filename=data.get('filename'))


CONTENT = VariantFamily(
    name='content part',
    variants={
        'input_text': InputText,
        'output_text': OutputText,
        'refusal': Refusal,
        'input_image': InputImage,
        'input_file': InputFile,
    },
    inference=(
        Inference.keys('text', build=lambda data: InputText(text=data['text'])),
        Inference.keys('image', build=lambda data: InputImage(image_url=data['image'], detail=data.get('detail'))),
        Inference.keys('document', build=_file_from_document),
    ),
    shorthand=lambda text: InputText(text=text),
)

ContentPart = Annotated[
    InputText | OutputText | Refusal | InputImage | InputFile,
    BeforeValidator(CONTENT.cast),
]


def _cast_content(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return CONTENT.cast_many(value)


# ---------------------------------------------------------------------------
# Input items
# ---------------------------------------------------------------------------


class MessageItem(ContentModel):
    """A conversation message item (`type: message`, or untyped)."""

    text_block_types: ClassVar[tuple[str, ...]] = TEXT_BLOCK_TYPES
    drop_attributes: ClassVar[frozenset[str]] = frozenset({'status'})

    type: Literal['message'] | None = None
    role: Annotated[str, ALWAYS, OneOf('user', 'system', 'developer', 'assistant')] = 'user'
    content: Annotated[str | list[ContentPart] | None, BeforeValidator(_cast_content), Required()] = None
    id: str | None = None

    @model_validator(mode='before')
    @classmethod
    def _text_shorthand(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and 'text' in data and 'content' not in data:
            data = dict(data)
            data['content'] = data.pop('text')
        return data

    def to_common(self) -> dict[str, Any]:
        return {'role': COMMON_ROLES.get(self.role, self.role), 'content': flatten_text(self.content)}


def _json_string(value: Any) -> Any:
    if isinstance(value, Mapping):
        return json.dumps(dict(value))
    return value


class FunctionCallItem(BridgeModel):
    type: Annotated[Literal['function_call'], ALWAYS] = 'function_call'
    call_id: Annotated[str | None, Required()] = None
    name: Annotated[str | None, Required()] = None
    arguments: Annotated[str | None, BeforeValidator(_json_string), Required()] = None
    id: str | None = None
    status: Annotated[str | None, OneOf('in_progress', 'completed', 'incomplete')] = None


class FunctionCallOutputItem(BridgeModel):
    type: Annotated[Literal['function_call_output'], ALWAYS] = 'function_call_output'
    call_id: Annotated[str | None, Required()] = None
    output: Annotated[str | list[dict[str, Any]] | None, BeforeValidator(_json_string), Required()] = None
    id: str | None = None
    status: str | None = None


class ReasoningItem(BridgeModel):
    type: Annotated[Literal['reasoning'], ALWAYS] = 'reasoning'
    id: str | None = None
    summary: Annotated[list[dict[str, Any]], ALWAYS] = Field(default_factory=list)
    content: list[dict[str, Any]] | None = None
    encrypted_content: str | None = None
    status: str | None = None


class ItemReference(BridgeModel):
    type: Annotated[Literal['item_reference'], ALWAYS] = 'item_reference'
    id: Annotated[str | None, Required()] = None


class PassthroughItem(BridgeModel):
    """Hosted tool-call items; every field is kept as given."""

    model_config = ConfigDict(extra='allow')

    type: Annotated[str, ALWAYS]


def _message_from_untagged(data: dict[str, Any]) -> MessageItem:
    if 'role' not in data and set(data) == {'text'}:
        return MessageItem(role='user', content=data['text'])
    return MessageItem(**data)


ITEMS = VariantFamily(
    name='input item',
    variants={
        'message': MessageItem,
        'function_call': FunctionCallItem,
        'function_call_output': FunctionCallOutputItem,
        'reasoning': ReasoningItem,
        'item_reference': ItemReference,
        **{kind: PassthroughItem for kind in PASSTHROUGH_ITEM_TYPES},
    },
    inference=(Inference('message', lambda data: True, _message_from_untagged),),
    shorthand=lambda text: MessageItem(role='user', content=text),
)

Item = Annotated[
    MessageItem | FunctionCallItem | FunctionCallOutputItem | ReasoningItem | ItemReference | PassthroughItem,
    BeforeValidator(ITEMS.cast),
]


def _is_content_item(item: Any) -> bool:
    if isinstance(item, str):
        return True
    return isinstance(item, Mapping) and 'role' not in item and 'type' not in item and any(
        key in item for key in ('text', 'image', 'document')
    )


def normalize_input(value: Any) -> Any:
    """Several role-less content items are one user message; anything else is a list of items."""
    if value is None:
        return None
    if isinstance(value, (str, Mapping, BridgeModel)):
        return [value]
    items = list(value)
    if len(items) > 1 and all(_is_content_item(item) for item in items):
        return [MessageItem(role='user', content=items)]
    return items


def _message_key(item: dict[str, Any]) -> Any:
    if item.get('type', 'message') != 'message' or 'role' not in item:
        return None
    return item['role']


def _merge_text_as(text_type: str) -> Any:
    def merge(left: Any, right: Any) -> list[Any]:
        def as_list(content: Any) -> list[Any]:
            if content is None:
                return []
            if isinstance(content, str):
                return [{'type': text_type, 'text': content}]
            return list(content)

        return as_list(left) + as_list(right)

    return merge


def group_message_items(items: list[Any]) -> list[Any]:
    """Merge consecutive message items of one role; assistant text stays 'output_text'."""
    grouped: list[Any] = []
    for item in items:
        role = _message_key(item) if isinstance(item, dict) else None
        if role is not None and grouped and isinstance(grouped[-1], dict) and _message_key(grouped[-1]) == role:
            merge = _merge_text_as('output_text' if role == 'assistant' else 'input_text')
            grouped[-1] = {**grouped[-1], 'content': merge(grouped[-1].get('content'), item.get('content'))}
        else:
            grouped.append(item)
    return grouped


def simplify_input(items: list[Any]) -> Any:
    """A lone user message with string content becomes the bare string."""
    if len(items) != 1 or not isinstance(items[0], dict):
        return items
    item = items[0]
    if item.get('role') == 'user' and isinstance(item.get('content'), str) and set(item) <= {'role', 'content', 'type'}:
        return item['content']
    return items


# ---------------------------------------------------------------------------
# Tools and tool choice
# ---------------------------------------------------------------------------


class FunctionTool(BridgeModel):
    type: Annotated[Literal['function'], ALWAYS] = 'function'
    name: Annotated[str | None, Required()] = None
    description: str | None = None
    parameters: dict[str, Any] | None = None
    strict: bool | None = None


class McpTool(BridgeModel):
    type: Annotated[Literal['mcp'], ALWAYS] = 'mcp'
    server_label: Annotated[str | None, Required()] = None
    server_url: str | None = None
    connector_id: str | None = None
    authorization: str | None = None
    allowed_tools: list[str] | dict[str, Any] | None = None
    headers: dict[str, str] | None = None
    require_approval: str | dict[str, Any] | None = None
    server_description: str | None = None

    def structural_errors(self) -> list[FieldError]:
        if self.server_url is None and self.connector_id is None:
            return [FieldError('base', 'must have server_url or connector_id')]
        return []


class HostedTool(BridgeModel):
    """Built-in tools (web search, file search, code interpreter, ...)."""

    model_config = ConfigDict(extra='allow')

    type: Annotated[str, ALWAYS]


def _flatten_function(data: dict[str, Any]) -> FunctionTool:
    function = data.get('function') or data
    return FunctionTool(
        name=function.get('name'),
        description=function.get('description'),
        parameters=function.get('parameters') or function.get('input_schema'),
        strict=function.get('strict'),
    )


def _tool_by_type(data: dict[str, Any]) -> BridgeModel:
    kind = data.get('type')
    if kind == 'function':
        return _flatten_function(data)
    if kind == 'mcp':
        return McpTool(**data)
    return HostedTool(**data)


def cast_tool(value: Any) -> Any:
    if value is None or isinstance(value, BridgeModel):
        return value
    if not isinstance(value, Mapping):
        raise CastError.unsupported(value, 'tool')
    data = {str(k): v for k, v in value.items()}
    if data.get('type') is not None:
        return _tool_by_type(data)
    if data.get('name') is not None or data.get('function') is not None:
        return _flatten_function(data)
    raise CastError(f'Cannot infer tool type from keys: {sorted(data)}')


Tool = Annotated[FunctionTool | McpTool | HostedTool, BeforeValidator(cast_tool)]


def mcp_server_to_tool(server: Any) -> Any:
    """`{name, url, authorization}` becomes `{type: mcp, server_label, server_url, authorization}`."""
    if isinstance(server, BridgeModel) or not isinstance(server, Mapping):
        return server
    if server.get('type') == 'mcp' and server.get('server_label'):
        return dict(server)
    return {
        'type': 'mcp',
        'server_label': server.get('name') or server.get('server_label'),
        'server_url': server.get('url') or server.get('server_url'),
        'authorization': server.get('authorization') or server.get('authorization_token'),
    }


class FunctionChoice(BridgeModel):
    type: Annotated[Literal['function'], ALWAYS] = 'function'
    name: Annotated[str | None, Required()] = None


class HostedChoice(BridgeModel):
    """`allowed_tools`, `mcp`, `custom` and hosted-tool choices."""

    model_config = ConfigDict(extra='allow')

    type: Annotated[str, ALWAYS]


def cast_tool_choice(value: Any) -> Any:
    if value is None or isinstance(value, (str, BridgeModel)):
        return value
    if not isinstance(value, Mapping):
        raise CastError.unsupported(value, 'tool choice')
    data = {str(k): v for k, v in value.items()}
    if data.get('type') in (None, 'function') and data.get('name') is not None:
        return FunctionChoice(name=data['name'])
    if data.get('type') is None:
        raise CastError(f'Cannot infer tool choice type from keys: {sorted(data)}')
    return HostedChoice(**data)


# ---------------------------------------------------------------------------
# Text, reasoning, prompt
# ---------------------------------------------------------------------------


class TextFormat(BridgeModel):
    type: Annotated[str, ALWAYS, OneOf('text', 'json_object', 'json_schema')] = 'text'
    name: str | None = None
    description: str | None = None
    schema_: dict[str, Any] | None = Field(default=None, alias='schema')
    strict: bool | None = None

    def structural_errors(self) -> list[FieldError]:
        if self.type == 'json_schema' and (not self.name or self.schema_ is None):
            return [FieldError('base', 'json_schema format requires name and schema')]
        return []


class TextConfig(BridgeModel):
    format: TextFormat | None = None
    verbosity: Annotated[str | None, OneOf('low', 'medium', 'high')] = None


def response_format_to_text(response_format: Any) -> dict[str, Any]:
    """Map a Chat-style `response_format` onto the Responses `text` parameter."""
    if isinstance(response_format, str):
        return {'format': {'type': response_format}}
    data = dict(response_format)
    kind = data.get('type')
    if kind == 'json_schema':
        nested = data.get('json_schema') or {}
        return {
            'format': {
                'type': 'json_schema',
                'name': data.get('name') or nested.get('name'),
                'schema': data.get('schema') or nested.get('schema'),
                'strict': data.get('strict') or nested.get('strict'),
            },
        }
    if kind is not None:
        return {'format': {'type': kind}}
    return data


class Reasoning(BridgeModel):
    effort: Annotated[str | None, OneOf('minimal', 'low', 'medium', 'high')] = None
    summary: Annotated[str | None, OneOf('auto', 'concise', 'detailed')] = None


class PromptReference(BridgeModel):
    id: Annotated[str | None, Required()] = None
    version: str | None = None
    variables: dict[str, Any] | None = None


class ResponsesStreamOptions(BridgeModel):
    include_obfuscation: bool | None = None


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class ResponsesRequest(BridgeModel):
    """Responses API `create` request."""

    model: Annotated[str | None, Required()] = None
    input: Annotated[list[Item] | None, BeforeValidator(normalize_input)] = None
    background: bool | None = False
    conversation: str | dict[str, Any] | None = None
    include: Annotated[list[str] | None, Each(OneOf(*INCLUDABLE))] = None
    instructions: str | None = None
    max_output_tokens: Annotated[int | None, Range(gt=0)] = None
    max_tool_calls: Annotated[int | None, Range(gt=0)] = None
    metadata: Annotated[dict[str, str] | None, MetadataLimits()] = None
    parallel_tool_calls: bool | None = True
    previous_response_id: str | None = None
    prompt: PromptReference | None = None
    prompt_cache_key: str | None = None
    reasoning: Reasoning | None = None
    safety_identifier: str | None = None
    service_tier: Annotated[str | None, OneOf('auto', 'default', 'flex', 'priority')] = 'auto'
    store: bool | None = True
    stream: bool | None = False
    stream_options: ResponsesStreamOptions | None = None
    temperature: Annotated[float | None, Range(ge=0, le=2)] = 1
    text: TextConfig | None = None
    tool_choice: Annotated[
        str | FunctionChoice | HostedChoice | None,
        BeforeValidator(cast_tool_choice),
        Predicate(lambda choice: not isinstance(choice, str) or choice in ('none', 'auto', 'required'), 'is not a valid mode'),
    ] = None
    tools: list[Tool] | None = None
    top_logprobs: Annotated[int | None, Range(ge=0, le=20)] = None
    top_p: Annotated[float | None, Range(ge=0, le=1)] = 1
    truncation: Annotated[str | None, OneOf('auto', 'disabled')] = 'disabled'
    user: str | None = None

    @model_validator(mode='before')
    @classmethod
    def _normalize_params(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            raise CastError.unsupported(data, cls.__name__)
        data = dict(data)
        for alias in ('messages', 'message'):
            if alias in data and 'input' not in data:
                data['input'] = data.pop(alias)
        instructions = data.get('instructions')
        if isinstance(instructions, (list, tuple)):
            data['instructions'] = '\n'.join(str(i) for i in instructions if i)
        response_format = data.pop('response_format', None)
        if response_format is not None and 'text' not in data:
            data['text'] = response_format_to_text(response_format)
        servers = data.pop('mcp_servers', None)
        if servers:
            data['tools'] = list(data.get('tools') or []) + [mcp_server_to_tool(s) for s in servers]
        return data

    @field_validator('instructions', mode='before')
    @classmethod
    def _blank_instructions(cls, value: Any) -> Any:
        return value or None

    @field_serializer('input', mode='wrap')
    def _group_input(self, value: Any, handler: Any) -> Any:
        items = handler(value)
        if not items:
            return items
        return simplify_input(group_message_items(items))

    def structural_errors(self) -> list[FieldError]:
        errors = []
        if self.conversation is not None and self.previous_response_id is not None:
            errors.append(FieldError('base', 'cannot specify both conversation and previous_response_id'))
        if not self.input and self.previous_response_id is None and self.prompt is None:
            errors.append(FieldError('input', "can't be blank"))
        return errors

    @property
    def response_format(self) -> dict[str, Any] | None:
        if self.text is None or self.text.format is None:
            return None
        return self.text.format.serialize()

    def to_common_messages(self) -> list[dict[str, Any]]:
        return [item.to_common() for item in self.input or [] if isinstance(item, MessageItem)]
