"""OpenAI embeddings request."""

from __future__ import annotations

from typing import Annotated, Any

from llm_normalizer.core.model import BridgeModel
from llm_normalizer.core.rules import FieldError, OneOf, Range, Required


def _valid_input(value: Any) -> bool:
    if isinstance(value, str):
        return bool(value)
    if not isinstance(value, list) or not value:
        return False
    if all(isinstance(item, str) for item in value):
        return all(value)
    if all(isinstance(item, int) for item in value):
        return True
    return all(isinstance(item, list) and item and all(isinstance(t, int) for t in item) for item in value)


class EmbeddingRequest(BridgeModel):
    """`/v1/embeddings` body: text, token ids, or batches of either."""

    input: Annotated[str | list[str] | list[int] | list[list[int]] | None, Required()] = None
    model: Annotated[str | None, Required()] = None
    dimensions: Annotated[int | None, Range(gt=0)] = None
    encoding_format: Annotated[str | None, OneOf('float', 'base64')] = None
    user: str | None = None

    def structural_errors(self) -> list[FieldError]:
        if self.input is not None and not _valid_input(self.input):
            return [FieldError('input', 'must be a non-empty string, token array, or array of either')]
        return []
