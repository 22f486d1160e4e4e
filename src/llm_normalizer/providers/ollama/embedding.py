"""Ollama embedding request."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any

from pydantic import BeforeValidator, field_serializer, model_validator

from llm_normalizer.core.model import BridgeModel
from llm_normalizer.core.rules import FieldError, Required
from llm_normalizer.providers.ollama.options import OPTION_KEYS, Options, fold_options


def _as_list(value: Any) -> Any:
    if isinstance(value, str):
        return [value]
    return value


class OllamaEmbeddingRequest(BridgeModel):
    model: Annotated[str | None, Required()] = None
    input: Annotated[list[Any] | None, BeforeValidator(_as_list), Required()] = None
    truncate: bool | None = True
    options: Options | None = None
    keep_alive: str | None = None

    @model_validator(mode='before')
    @classmethod
    def _fold_options(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            return fold_options(data, OPTION_KEYS)
        return data

    @field_serializer('input')
    def _single_input_bare(self, value: Any) -> Any:
        if isinstance(value, list) and len(value) == 1:
            return value[0]
        return value

    def structural_errors(self) -> list[FieldError]:
        if self.input is None:
            return []
        if not self.input:
            return [FieldError('input', 'cannot be an empty array')]
        errors = []
        for index, item in enumerate(self.input):
            if not isinstance(item, str):
                errors.append(FieldError('input', f'array elements must be strings at index {index}'))
            elif not item:
                errors.append(FieldError('input', f'cannot contain empty strings at index {index}'))
        return errors
