"""OpenRouter chat request.

OpenRouter speaks the OpenAI Chat Completions format and adds routing
controls: ``provider`` preferences, ``plugins``, ``transforms``, fallback
``models`` and ``route``, plus a few sampling knobs (``top_k``, ``min_p``,
``top_a``, ``repetition_penalty``).

Differences from plain OpenAI Chat:

* ``model`` defaults to ``openrouter/auto``.
* File parts keep the full ``data:`` URI and accept http(s) URLs.
* ``tool_choice: "required"`` is sent as ``"any"``.
* A JSON response format forces ``provider.require_parameters`` so the
  request is only routed to providers that honour it.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, ClassVar, Literal

from pydantic import AliasChoices, BeforeValidator, Field, model_validator

from llm_normalizer.core.model import ALWAYS, BridgeModel
from llm_normalizer.core.rules import Each, OneOf, Predicate, Range, Required
from llm_normalizer.providers.openai import content as openai_content
from llm_normalizer.providers.openai.chat import (
    AllowedToolsChoice,
    AssistantMessage as OpenAIAssistantMessage,
    ChatMessage,
    ChatRequest,
    DeveloperMessage,
    FunctionMessage,
    NamedToolChoice,
    SystemMessage,
    ToolMessage,
    cast_message_list,
    cast_tool_choice,
    make_message_family,
)

TOOL_CHOICE_MODES = ('none', 'auto', 'any')
QUANTIZATIONS = ('int4', 'int8', 'fp4', 'fp6', 'fp8', 'fp16', 'bf16', 'fp32', 'unknown')
JSON_FORMATS = ('json_object', 'json_schema')


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class FileDetails(openai_content.FileDetails):
    keep_data_uri: ClassVar[bool] = True
    allow_urls: ClassVar[bool] = True


class FilePart(BridgeModel):
    type: Annotated[Literal['file'], ALWAYS] = 'file'
    file: Annotated[FileDetails | None, BeforeValidator(FileDetails.cast), Required()] = None


CONTENT = openai_content.make_content_family(FilePart)

ContentPart = Annotated[
    openai_content.TextPart | openai_content.ImagePart | openai_content.AudioPart | FilePart | openai_content.RefusalPart,
    BeforeValidator(CONTENT.cast),
]


class UserMessage(ChatMessage):
    role: Annotated[Literal['user'], ALWAYS] = 'user'
    content: Annotated[list[ContentPart] | None, BeforeValidator(openai_content.cast_contents(CONTENT)), Required()] = None


class AssistantMessage(OpenAIAssistantMessage):
    drop_attributes: ClassVar[frozenset[str]] = OpenAIAssistantMessage.drop_attributes | {'reasoning', 'reasoning_details'}


MESSAGES = make_message_family(user=UserMessage, assistant=AssistantMessage)

Message = Annotated[
    DeveloperMessage | SystemMessage | UserMessage | AssistantMessage | ToolMessage | FunctionMessage,
    BeforeValidator(MESSAGES.cast),
]


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


class MaxPrice(BridgeModel):
    """Price ceilings; prompt and completion are per million tokens."""

    prompt: Annotated[float | None, Range(ge=0)] = Field(default=None, validation_alias=AliasChoices('prompt', 'prompt_tokens'))
    completion: Annotated[float | None, Range(ge=0)] = Field(
        default=None,
        validation_alias=AliasChoices('completion', 'completion_tokens'),
    )
    image: Annotated[float | None, Range(ge=0)] = None
    audio: Annotated[float | None, Range(ge=0)] = None
    request: Annotated[float | None, Range(ge=0)] = None


class ProviderPreferences(BridgeModel):
    allow_fallbacks: bool | None = Field(default=None, validation_alias=AliasChoices('allow_fallbacks', 'enable_fallbacks'))
    require_parameters: bool | None = None
    data_collection: Annotated[str | None, OneOf('deny', 'allow')] = None
    zdr: bool | None = None
    order: list[str] = Field(default_factory=list)
    only: list[str] = Field(default_factory=list)
    ignore: list[str] = Field(default_factory=list)
    quantizations: Annotated[list[str], Each(OneOf(*QUANTIZATIONS))] = Field(default_factory=list)
    sort: Annotated[str | None, OneOf('price', 'throughput', 'latency')] = None
    max_price: MaxPrice | None = None


class PdfConfig(BridgeModel):
    engine: Annotated[str | None, OneOf('mistral-ocr', 'pdf-text', 'native')] = None


class Plugin(BridgeModel):
    id: Annotated[str | None, Required(), OneOf('file-parser')] = None
    pdf: PdfConfig | None = None


ToolChoice = Annotated[
    str | NamedToolChoice | AllowedToolsChoice | None,
    BeforeValidator(cast_tool_choice),
    Predicate(lambda choice: not isinstance(choice, str) or choice in TOOL_CHOICE_MODES, 'is not a valid mode'),
]


def _format_type(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return value.get('type')
    return getattr(value, 'type', None)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class OpenRouterRequest(ChatRequest):
    """OpenAI Chat request with OpenRouter routing extensions."""

    model: Annotated[str | None, ALWAYS, Required()] = 'openrouter/auto'
    messages: Annotated[list[Message] | None, BeforeValidator(cast_message_list(MESSAGES)), Required()] = None
    tool_choice: ToolChoice = None
    provider: ProviderPreferences | None = None
    plugins: list[Plugin] | None = None
    transforms: list[str] = Field(default_factory=list)
    models: list[str] = Field(default_factory=list, validation_alias=AliasChoices('models', 'fallback_models'))
    route: Annotated[str | None, OneOf('fallback')] = 'fallback'
    top_k: Annotated[int | None, Range(ge=0)] = None
    min_p: Annotated[float | None, Range(ge=0, le=1)] = None
    top_a: Annotated[float | None, Range(ge=0, le=1)] = None
    repetition_penalty: Annotated[float | None, Range(gt=0, le=2)] = None

    @model_validator(mode='before')
    @classmethod
    def _openrouter_params(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        if data.get('tool_choice') == 'required':
            data['tool_choice'] = 'any'
        if _format_type(data.get('response_format')) in JSON_FORMATS:
            preferences = data.get('provider') or {}
            if isinstance(preferences, BridgeModel):
                preferences = preferences.serialize()
            data['provider'] = {**preferences, 'require_parameters': True}
        return data

    @property
    def fallback_models(self) -> list[str]:
        return self.models

    def tools_used(self) -> list[str]:
        """Function names already called by assistant messages."""
        names = []
        for message in self.messages or []:
            for call in getattr(message, 'tool_calls', None) or []:
                name = (call.get('function') or {}).get('name')
                if name:
                    names.append(name)
        return names
