"""Ollama chat request.

Ollama is served through its OpenAI-compatible endpoint, so the request is
an OpenAI Chat request plus the Ollama extensions ``format``, ``options``,
``keep_alive`` and ``raw``. Every model option (``temperature``, ``top_p``,
``seed``, ``stop``, ``num_ctx``, ``mirostat``, ...) may be given at the top
level and is folded into ``options``; an explicit ``options`` mapping wins.

Ollama needs consecutive same-role messages merged for every role, and it
merges by concatenation: two string contents join into one string, two part
lists concatenate, anything mixed becomes a list.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BeforeValidator, model_validator

from llm_normalizer.core.model import ALWAYS
from llm_normalizer.core.rules import FieldError, Predicate, Required
from llm_normalizer.core.variants import Inference, VariantFamily
from llm_normalizer.providers.ollama.options import OPTION_KEYS, Options, fold_options
from llm_normalizer.providers.openai.chat import (
    AssistantFields,
    ChatMessage,
    ChatRequest,
    DeveloperMessage,
    SystemMessage,
    ToolMessage,
    cast_message_list,
    make_message_family,
)
from llm_normalizer.providers.openai.content import ImagePart, TextPart, cast_contents

CONTENT = VariantFamily(
    name='content part',
    variants={'text': TextPart, 'image_url': ImagePart},
    inference=(
        Inference.keys('text', build=TextPart),
        Inference.keys('image', build=lambda data: ImagePart(image_url=data['image'])),
    ),
    shorthand=lambda text: TextPart(text=text),
)

Contents = Annotated[list[TextPart | ImagePart] | None, BeforeValidator(cast_contents(CONTENT)), Required()]


class UserMessage(ChatMessage):
    role: Annotated[Literal['user'], ALWAYS] = 'user'
    content: Contents = None


class AssistantMessage(AssistantFields):
    drop_attributes: ClassVar[frozenset[str]] = AssistantFields.drop_attributes | {
        'audio',
        'refusal',
        'function_call',
        'reasoning',
        'thinking',
    }

    def structural_errors(self) -> list[FieldError]:
        if self.content is None and self.tool_calls is None:
            return [FieldError('base', 'must have content or tool_calls')]
        return []


MESSAGES = make_message_family(user=UserMessage, assistant=AssistantMessage)

Message = Annotated[
    DeveloperMessage | SystemMessage | UserMessage | AssistantMessage | ToolMessage,
    BeforeValidator(MESSAGES.cast),
]


def merge_by_concatenation(left: Any, right: Any) -> Any:
    if isinstance(left, str) and isinstance(right, str):
        return left + right
    if isinstance(left, list) and isinstance(right, list):
        return left + right

    def as_list(content: Any) -> list[Any]:
        if content is None:
            return []
        if isinstance(content, str):
            return [{'type': 'text', 'text': content}]
        return content if isinstance(content, list) else [content]

    return as_list(left) + as_list(right)


def _valid_format(value: Any) -> bool:
    return value == 'json' or isinstance(value, Mapping)


class OllamaChatRequest(ChatRequest):
    """OpenAI Chat request with Ollama extensions."""

    messages: Annotated[list[Message] | None, BeforeValidator(cast_message_list(MESSAGES)), Required()] = None
    format: Annotated[str | dict[str, Any] | None, Predicate(_valid_format, "must be 'json' or a JSON schema object")] = None
    options: Options | None = None
    keep_alive: str | int | None = None
    raw: bool | None = False
    # always folded into `options`; no default, so assignment never folds one
    temperature: float | None = None
    top_p: float | None = None

    unmerged_roles: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode='before')
    @classmethod
    def _fold_options(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        data = fold_options(data, OPTION_KEYS)
        # folded keys that are also chat fields stay present, unset
        for key in OPTION_KEYS & cls.model_fields.keys():
            data[key] = None
        return data

    @classmethod
    def merge_contents(cls, left: Any, right: Any) -> Any:
        return merge_by_concatenation(left, right)
