"""core.model

The typed attribute model every request, message, content block and response
object inherits from.

`BridgeModel` is a thin layer over `pydantic.BaseModel` that adds the
behaviour provider wire formats need:

* **Forgiving cast.** Pydantic coerces scalars; polymorphic fields use
  `BeforeValidator` dispatch (see `core.variants`). A `ValidationError` during
  construction or assignment surfaces as the domain `CastError`.
* **Non-raising validation.** Field rules from `core.rules` live in
  `Annotated` metadata and are only evaluated by `validation_errors()`.
* **Strict serialize.** `serialize()` emits provider JSON: values equal to
  their default are omitted unless marked `ALWAYS`, `None` and empty
  containers are compacted away recursively, and single text blocks may be
  collapsed to a bare string (shorthand compression).
* **Drop attributes.** Names listed in `drop_attributes` are accepted on
  input and discarded (response-only fields reused as request input).
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any, ClassVar

from pydantic import (
    BaseModel,
    ConfigDict,
    SerializationInfo,
    SerializerFunctionWrapHandler,
    ValidationError,
    field_serializer,
    model_serializer,
    model_validator,
)

from llm_normalizer.core.exceptions import CastError, RequestValidationError
from llm_normalizer.core.rules import FieldError, Rule


# ---------------------------------------------------------------------------
# Serialization markers and helpers
# ---------------------------------------------------------------------------


class Always:
    """Field metadata: serialize even when equal to the default or empty."""

    def __repr__(self) -> str:  # pragma: no cover - cosmetic
        return 'ALWAYS'


ALWAYS = Always()


def is_empty(value: Any) -> bool:
    return isinstance(value, (dict, list)) and not value


def deep_compact(value: Any) -> Any:
    """Recursively drop `None` values and empty dicts/lists from mappings."""
    if isinstance(value, dict):
        compacted = {}
        for key, item in value.items():
            item = deep_compact(item)
            if item is None or is_empty(item):
                continue
            compacted[key] = item
        return compacted
    if isinstance(value, list):
        return [deep_compact(item) for item in value if item is not None]
    return value


def compress_text_blocks(data: Any, text_types: tuple[str, ...] = ('text',)) -> Any:
    """Collapse `[{'type': 'text', 'text': s}]` to `s`; anything else is returned as is."""
    if (
        isinstance(data, list)
        and len(data) == 1
        and isinstance(data[0], dict)
        and data[0].get('type') in text_types
        and set(data[0]) == {'type', 'text'}
    ):
        return data[0]['text']
    return data


def wants_compression(info: SerializationInfo) -> bool:
    context = info.context or {}
    return context.get('compress', True)


# ---------------------------------------------------------------------------
# Base model
# ---------------------------------------------------------------------------


class BridgeModel(BaseModel):
    """Base for all typed attribute models."""

    #: Input keys accepted and silently discarded.
    drop_attributes: ClassVar[frozenset[str]] = frozenset()

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        protected_namespaces=(),
    )

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise CastError(f'Cannot cast to {type(self).__name__}: {exc}') from exc

    def __setattr__(self, name: str, value: Any) -> None:
        try:
            super().__setattr__(name, value)
        except ValidationError as exc:
            raise CastError(f'Cannot assign {name} on {type(self).__name__}: {exc}') from exc

    # ------------------------------------------------------------------
    # Cast
    # ------------------------------------------------------------------

    @classmethod
    def cast(cls, value: Any) -> Any:
        """Cast a mapping (or an instance) into this model; `None` passes through."""
        if value is None or isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls(**{str(k): v for k, v in value.items()})
        raise CastError.unsupported(value, cls.__name__)

    @model_validator(mode='before')
    @classmethod
    def _discard_dropped(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and cls.drop_attributes:
            return {k: v for k, v in data.items() if k not in cls.drop_attributes}
        return data

    # ------------------------------------------------------------------
    # Serialize
    # ------------------------------------------------------------------

    @model_serializer(mode='wrap')
    def _serialize_wire(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        fields = _fields_by_wire_key(type(self))
        wire: dict[str, Any] = {}
        for key, value in data.items():
            field = fields.get(key)
            current = getattr(self, _attr_name(type(self), key)) if field is not None else None
            # nested models compacted themselves; ALWAYS fields inside them must survive
            if not _holds_models(current):
                value = deep_compact(value)
            if value is None:
                continue
            if field is None:
                if not is_empty(value):
                    wire[key] = value
                continue
            if not any(isinstance(meta, Always) for meta in field.metadata):
                if is_empty(value):
                    continue
                if not field.is_required() and current == field.get_default(call_default_factory=True):
                    continue
            wire[key] = value
        return wire

    def serialize(self, *, compress: bool = True) -> dict[str, Any]:
        """Return the wire mapping. `compress=False` keeps single text blocks as lists."""
        return self.model_dump(mode='json', by_alias=True, context={'compress': compress}, warnings=False)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validation_errors(self) -> list[FieldError]:
        """Run every declared rule and return field-scoped errors (never raises)."""
        errors: list[FieldError] = []
        for name, field in type(self).model_fields.items():
            value = getattr(self, name)
            for meta in field.metadata:
                if isinstance(meta, Rule):
                    errors.extend(meta.errors(name, value))
            errors.extend(_nested_errors(name, value))
        errors.extend(self.structural_errors())
        return errors

    def structural_errors(self) -> list[FieldError]:
        """Cross-field rules. Subclasses override."""
        return []

    def is_valid(self) -> bool:
        return not self.validation_errors()

    def raise_if_invalid(self) -> None:
        errors = self.validation_errors()
        if errors:
            raise RequestValidationError(errors)

    # ------------------------------------------------------------------
    # Copies
    # ------------------------------------------------------------------

    def merged(self, **changes: Any) -> BridgeModel:
        """Build a new instance from this one's set fields plus `changes`."""
        values = {name: copy.deepcopy(getattr(self, name)) for name in self.model_fields_set}
        values.update(changes)
        return type(self)(**values)


def _nested_errors(name: str, value: Any) -> list[FieldError]:
    if isinstance(value, BridgeModel):
        return [FieldError(f'{name}.{e.field}', e.message) for e in value.validation_errors()]
    if isinstance(value, list):
        errors = []
        for index, item in enumerate(value):
            if isinstance(item, BridgeModel):
                errors.extend(FieldError(f'{name}[{index}].{e.field}', e.message) for e in item.validation_errors())
        return errors
    return []


def _holds_models(value: Any) -> bool:
    if isinstance(value, BridgeModel):
        return True
    return isinstance(value, list) and any(isinstance(item, BridgeModel) for item in value)


def _fields_by_wire_key(cls: type[BaseModel]) -> dict[str, Any]:
    return {(field.serialization_alias or field.alias or name): field for name, field in cls.model_fields.items()}


def _attr_name(cls: type[BaseModel], key: str) -> str:
    for name, field in cls.model_fields.items():
        if key in (name, field.serialization_alias, field.alias):
            return name
    return key


class ContentModel(BridgeModel):
    """A model whose `content` collapses a lone text block to a bare string on serialize.

    Subclasses narrow the `content` annotation; the serializer applies by name.
    """

    #: Block types that count as plain text for compression.
    text_block_types: ClassVar[tuple[str, ...]] = ('text',)

    content: Any = None

    @field_serializer('content', mode='wrap')
    def _compress_content(self, value: Any, handler: SerializerFunctionWrapHandler, info: SerializationInfo) -> Any:
        data = handler(value)
        return compress_text_blocks(data, self.text_block_types) if wants_compression(info) else data
