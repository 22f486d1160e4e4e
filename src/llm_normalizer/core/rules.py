"""core.rules

Declarative field rules evaluated by `BridgeModel.validation_errors()`.

Rules are attached to fields as `typing.Annotated` metadata::

    temperature: Annotated[float | None, Range(0, 2)] = None

Pydantic ignores metadata objects it does not know, so rules never fire
during construction. Every rule except `Required` treats `None` as valid
(absence is not a range violation).
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sized
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FieldError:
    """A single field-scoped validation failure."""

    field: str
    message: str

    def __str__(self) -> str:
        return f'{self.field} {self.message}'


class Rule:
    """Base rule. Subclasses implement `check` and return a message or None."""

    allow_none: bool = True

    def check(self, value: Any) -> str | None:  # pragma: no cover - abstract
        raise NotImplementedError

    def errors(self, field: str, value: Any) -> list[FieldError]:
        if value is None and self.allow_none:
            return []
        message = self.check(value)
        return [] if message is None else [FieldError(field, message)]


class Required(Rule):
    """Value must be present and non-empty."""

    allow_none = False

    def check(self, value: Any) -> str | None:
        if value is None:
            return "can't be blank"
        if isinstance(value, str) and not value.strip():
            return "can't be blank"
        if isinstance(value, Sized) and not isinstance(value, str) and len(value) == 0:
            return "can't be blank"
        return None


@dataclass(frozen=True)
class Range(Rule):
    """Inclusive numeric bounds; `gt`/`lt` give exclusive ones."""

    ge: float | None = None
    le: float | None = None
    gt: float | None = None
    lt: float | None = None

    def check(self, value: Any) -> str | None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 'is not a number'
        if self.ge is not None and value < self.ge:
            return f'must be greater than or equal to {self.ge}'
        if self.gt is not None and value <= self.gt:
            return f'must be greater than {self.gt}'
        if self.le is not None and value > self.le:
            return f'must be less than or equal to {self.le}'
        if self.lt is not None and value >= self.lt:
            return f'must be less than {self.lt}'
        return None


class OneOf(Rule):
    """Value must be one of a fixed set of literals."""

    def __init__(self, *choices: Any) -> None:
        self.choices = tuple(choices)

    def check(self, value: Any) -> str | None:
        if value in self.choices:
            return None
        return f'must be one of: {", ".join(map(str, self.choices))}'


@dataclass(frozen=True)
class Length(Rule):
    """Length bounds for strings and collections."""

    min: int | None = None
    max: int | None = None

    def check(self, value: Any) -> str | None:
        if not isinstance(value, Sized):
            return 'has no length'
        if self.min is not None and len(value) < self.min:
            return f'is too short (minimum is {self.min})'
        if self.max is not None and len(value) > self.max:
            return f'is too long (maximum is {self.max})'
        return None


class Pattern(Rule):
    """String must fully match a regular expression."""

    def __init__(self, pattern: str, message: str = 'is invalid') -> None:
        self.regex = re.compile(pattern)
        self.message = message

    def check(self, value: Any) -> str | None:
        if isinstance(value, str) and self.regex.fullmatch(value):
            return None
        return self.message


class Each(Rule):
    """Apply `rule` to every item of a list (or a bare scalar)."""

    def __init__(self, rule: Rule) -> None:
        self.rule = rule

    def check(self, value: Any) -> str | None:
        items = value if isinstance(value, (list, tuple)) else [value]
        for index, item in enumerate(items):
            message = self.rule.check(item)
            if message is not None:
                return f'item {index} {message}'
        return None


class Predicate(Rule):
    """Arbitrary check: `fn(value)` must be truthy."""

    def __init__(self, fn: Callable[[Any], bool], message: str) -> None:
        self.fn = fn
        self.message = message

    def check(self, value: Any) -> str | None:
        return None if self.fn(value) else self.message


class MetadataLimits(Rule):
    """Key/value metadata map capped at 16 pairs, keys <= 64 and values <= 512 chars."""

    max_pairs = 16
    max_key = 64
    max_value = 512

    def check(self, value: Any) -> str | None:
        if not isinstance(value, Mapping):
            return 'must be a hash'
        if len(value) > self.max_pairs:
            return f'cannot have more than {self.max_pairs} key-value pairs'
        for key, item in value.items():
            if len(str(key)) > self.max_key:
                return f'keys must be {self.max_key} characters or less'
            if isinstance(item, str) and len(item) > self.max_value:
                return f'values must be {self.max_value} characters or less'
        return None
