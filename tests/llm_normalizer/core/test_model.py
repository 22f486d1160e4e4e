from __future__ import annotations

from typing import Annotated, Any, ClassVar, Literal

import pytest
from pydantic import Field

from llm_normalizer.core.exceptions import CastError, RequestValidationError
from llm_normalizer.core.model import ALWAYS, BridgeModel, ContentModel, compress_text_blocks, deep_compact
from llm_normalizer.core.rules import FieldError, Range, Required


class Point(BridgeModel):
    kind: Annotated[Literal['point'], ALWAYS] = 'point'
    x: Annotated[int | None, Required()] = None
    y: int = 0
    tags: list[str] = Field(default_factory=list)
    scale: Annotated[float | None, Range(ge=0, le=2)] = 1.0
    hidden: str | None = Field(default=None, exclude=True)

    drop_attributes: ClassVar[frozenset[str]] = frozenset({'id'})


class Shape(BridgeModel):
    name: str | None = None
    origin: Point | None = None
    points: list[Point] | None = None

    def structural_errors(self) -> list[FieldError]:
        if self.name == 'nothing':
            return [FieldError('base', 'must be something')]
        return []


class Note(ContentModel):
    content: list[dict[str, Any]] | None = None


def test_serialize_omits_defaults_but_keeps_always() -> None:
    assert Point(x=3).serialize() == {'kind': 'point', 'x': 3}


def test_serialize_keeps_non_default_values() -> None:
    assert Point(x=1, y=2, scale=1.5, tags=['a']).serialize() == {
        'kind': 'point',
        'x': 1,
        'y': 2,
        'tags': ['a'],
        'scale': 1.5,
    }


def test_serialize_hides_excluded_fields() -> None:
    assert 'hidden' not in Point(x=1, hidden='secret').serialize()


def test_nested_models_are_compacted() -> None:
    shape = Shape(name='tri', points=[{'x': 1}, {'x': 2, 'y': 5}])
    assert shape.serialize() == {
        'name': 'tri',
        'points': [{'kind': 'point', 'x': 1}, {'kind': 'point', 'x': 2, 'y': 5}],
    }


def test_cast_accepts_mapping_instance_and_none() -> None:
    point = Point.cast({'x': 4})
    assert isinstance(point, Point)
    assert Point.cast(point) is point
    assert Point.cast(None) is None


def test_cast_rejects_scalars() -> None:
    with pytest.raises(CastError):
        Point.cast(42)


def test_unknown_attribute_is_a_cast_error() -> None:
    with pytest.raises(CastError):
        Point(x=1, color='red')


def test_drop_attributes_are_discarded() -> None:
    assert Point(x=1, id='abc').serialize() == {'kind': 'point', 'x': 1}


def test_bad_assignment_raises_cast_error() -> None:
    point = Point(x=1)
    with pytest.raises(CastError):
        point.x = 'not a number'


def test_validation_errors_do_not_raise() -> None:
    point = Point(scale=3)
    errors = point.validation_errors()
    assert FieldError('x', "can't be blank") in errors
    assert any(e.field == 'scale' for e in errors)
    assert not point.is_valid()


def test_nested_validation_errors_are_prefixed() -> None:
    shape = Shape(origin={'y': 1}, points=[{'x': 1}, {'scale': 5, 'x': 1}])
    fields = {error.field for error in shape.validation_errors()}
    assert fields == {'origin.x', 'points[1].scale'}


def test_structural_errors_are_included() -> None:
    assert Shape(name='nothing').validation_errors() == [FieldError('base', 'must be something')]


def test_raise_if_invalid() -> None:
    with pytest.raises(RequestValidationError) as excinfo:
        Point().raise_if_invalid()
    assert excinfo.value.errors == [FieldError('x', "can't be blank")]
    assert excinfo.value.to_json()['error']['fields'] == [{'field': 'x', 'message': "can't be blank"}]
    Point(x=1).raise_if_invalid()


def test_merged_returns_a_new_instance() -> None:
    point = Point(x=1, tags=['a'])
    moved = point.merged(y=9)
    assert moved is not point
    assert moved.serialize() == {'kind': 'point', 'x': 1, 'y': 9, 'tags': ['a']}
    moved.tags.append('b')
    assert point.tags == ['a']


def test_content_model_compresses_single_text_block() -> None:
    note = Note(content=[{'type': 'text', 'text': 'hi'}])
    assert note.serialize() == {'content': 'hi'}
    assert note.serialize(compress=False) == {'content': [{'type': 'text', 'text': 'hi'}]}


@pytest.mark.parametrize(
    'data',
    [
        [{'type': 'text', 'text': 'a'}, {'type': 'text', 'text': 'b'}],
        [{'type': 'text', 'text': 'a', 'cache_control': {'type': 'ephemeral'}}],
        [{'type': 'image', 'source': {}}],
        'already a string',
    ],
)
def test_compress_text_blocks_leaves_other_shapes(data: Any) -> None:
    assert compress_text_blocks(data) == data


def test_deep_compact() -> None:
    assert deep_compact({'a': None, 'b': {}, 'c': [], 'd': {'e': None, 'f': 1}, 'g': [None, 2]}) == {
        'd': {'f': 1},
        'g': [2],
    }
