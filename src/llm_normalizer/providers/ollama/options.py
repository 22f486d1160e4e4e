"""Ollama model options shared by chat and embedding requests."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any

from llm_normalizer.core.model import BridgeModel
from llm_normalizer.core.rules import OneOf, Predicate, Range


def _valid_stop(stop: Any) -> bool:
    return isinstance(stop, str) or (isinstance(stop, list) and all(isinstance(s, str) for s in stop))


class Options(BridgeModel):
    mirostat: Annotated[int | None, OneOf(0, 1, 2)] = None
    mirostat_eta: Annotated[float | None, Range(ge=0)] = None
    mirostat_tau: Annotated[float | None, Range(ge=0)] = None
    num_ctx: Annotated[int | None, Range(gt=0)] = None
    repeat_last_n: Annotated[int | None, Range(ge=-1)] = None
    repeat_penalty: Annotated[float | None, Range(gt=0)] = None
    temperature: Annotated[float | None, Range(ge=0)] = None
    seed: int | None = None
    stop: Annotated[str | list[str] | None, Predicate(_valid_stop, 'must be a string or array of strings')] = None
    num_predict: Annotated[int | None, Range(ge=-1)] = None
    top_k: Annotated[int | None, Range(gt=0)] = None
    top_p: Annotated[float | None, Range(ge=0, le=1)] = None
    min_p: Annotated[float | None, Range(ge=0, le=1)] = None


OPTION_KEYS = frozenset(Options.model_fields)


def fold_options(data: Mapping[str, Any], keys: frozenset[str]) -> dict[str, Any]:
    """Move top-level `keys` into the `options` mapping; explicit options win. `None` values are dropped."""
    data = dict(data)
    folded = {}
    for key in keys:
        if key in data:
            value = data.pop(key)
            if value is not None:
                folded[key] = value
    if folded:
        existing = data.get('options')
        if isinstance(existing, BridgeModel):
            existing = existing.serialize()
        data['options'] = {**folded, **(existing or {})}
    return data
