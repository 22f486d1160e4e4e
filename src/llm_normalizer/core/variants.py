"""core.variants

Single dispatch point for tagged-variant families (content blocks, sources,
tool choices, input items, ...).

A `VariantFamily` casts a raw value in four steps:

1. an instance of one of the family's classes passes through unchanged;
2. a mapping with an explicit tag is routed to the matching constructor,
   an unrecognized tag raises `UnknownTagError`;
3. a mapping without a tag is matched against ordered `Inference` rules,
   first match wins, no match raises `CastError`;
4. a plain string goes to the family's shorthand constructor, if any.

Fields hold a family as `Annotated[A | B, BeforeValidator(FAMILY.cast)]`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from llm_normalizer.core.exceptions import CastError, UnknownTagError
from llm_normalizer.core.model import BridgeModel

log = logging.getLogger(__name__)

Builder = Callable[[dict[str, Any]], Any]


def _build(target: type | Builder, data: dict[str, Any]) -> Any:
    if isinstance(target, type) and issubclass(target, BridgeModel):
        return target(**data)
    return target(data)


@dataclass(frozen=True)
class Inference:
    """One ordered inference rule: when `when(data)` holds, `build(data)`."""

    name: str
    when: Callable[[dict[str, Any]], bool]
    build: type | Builder

    @classmethod
    def keys(cls, *names: str, build: type | Builder) -> Inference:
        """Match when every key in `names` is present with a non-None value."""
        return cls(
            name='+'.join(names),
            when=lambda data: all(data.get(n) is not None for n in names),
            build=build,
        )


@dataclass
class VariantFamily:
    """A tagged family with explicit tags, inference rules and string shorthand."""

    name: str
    variants: Mapping[str, type | Builder]
    inference: Sequence[Inference] = ()
    shorthand: Builder | Callable[[str], Any] | None = None
    tag_key: str = 'type'
    passthrough: tuple[type, ...] = field(default=())

    def __post_init__(self) -> None:
        classes = tuple(v for v in self.variants.values() if isinstance(v, type))
        self.passthrough = self.passthrough + classes

    def cast(self, value: Any) -> Any:
        if value is None:
            return None
        if self.passthrough and isinstance(value, self.passthrough):
            return value
        if isinstance(value, Mapping):
            data = {str(k): v for k, v in value.items()}
            tag = data.get(self.tag_key)
            if tag is not None:
                tag = getattr(tag, 'value', tag)
                try:
                    target = self.variants[str(tag)]
                except KeyError:
                    raise UnknownTagError(tag, self.name) from None
                return _build(target, data)
            for rule in self.inference:
                if rule.when(data):
                    log.debug('inferred %s variant via %s', self.name, rule.name)
                    # inference treats None-valued keys as absent; so does the build
                    return _build(rule.build, {k: v for k, v in data.items() if v is not None})
            raise CastError(f'Cannot infer {self.name} type from keys: {sorted(data)}')
        if isinstance(value, str) and self.shorthand is not None:
            return self.shorthand(value)
        raise CastError.unsupported(value, self.name)

    def cast_many(self, value: Any) -> list[Any] | None:
        """Cast a list (or a single value) into a list of variants."""
        if value is None:
            return None
        items = value if isinstance(value, (list, tuple)) else [value]
        return [self.cast(item) for item in items if item is not None]
