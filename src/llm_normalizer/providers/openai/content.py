"""OpenAI Chat Completions content parts.

Variants: ``text``, ``image_url``, ``input_audio``, ``file``, ``refusal``.
Untagged parts are inferred from their keys in this order: ``text``,
``image``, ``document``. A bare string is a text part.

File parts strip a ``data:<mime>;base64,`` prefix from ``file_data`` and
reject http(s) URLs; OpenRouter swaps in its own file part (see
`llm_normalizer.providers.openrouter.request`).
"""

from __future__ import annotations

import re
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BeforeValidator, field_validator

from llm_normalizer.core.exceptions import CastError
from llm_normalizer.core.model import ALWAYS, BridgeModel
from llm_normalizer.core.rules import OneOf, Required
from llm_normalizer.core.variants import Inference, VariantFamily

_DATA_URI_PREFIX = re.compile(r'^data:[^;]+;base64,')
_HTTP_URL = re.compile(r'^https?://', re.IGNORECASE)


class TextPart(BridgeModel):
    type: Annotated[Literal['text'], ALWAYS] = 'text'
    text: Annotated[str | None, Required()] = None


class ImageURL(BridgeModel):
    url: Annotated[str | None, Required()] = None
    detail: Annotated[str | None, OneOf('auto', 'low', 'high')] = None


class ImagePart(BridgeModel):
    type: Annotated[Literal['image_url'], ALWAYS] = 'image_url'
    image_url: Annotated[ImageURL | None, Required()] = None

    @field_validator('image_url', mode='before')
    @classmethod
    def _url_shorthand(cls, value: Any) -> Any:
        return {'url': value} if isinstance(value, str) else value


class InputAudio(BridgeModel):
    data: Annotated[str | None, Required()] = None
    format: Annotated[str | None, Required(), OneOf('wav', 'mp3')] = None


class AudioPart(BridgeModel):
    type: Annotated[Literal['input_audio'], ALWAYS] = 'input_audio'
    input_audio: Annotated[InputAudio | None, Required()] = None


class FileDetails(BridgeModel):
    """File reference: inline base64 data, an uploaded file id, or both."""

    #: OpenAI wants raw base64; OpenRouter keeps the full data URI.
    keep_data_uri: ClassVar[bool] = False
    allow_urls: ClassVar[bool] = False

    file_data: str | None = None
    file_id: str | None = None
    filename: str | None = None

    @field_validator('file_data', mode='before')
    @classmethod
    def _strip_data_uri(cls, value: Any) -> Any:
        if isinstance(value, str) and not cls.keep_data_uri:
            return _DATA_URI_PREFIX.sub('', value, count=1)
        return value

    @classmethod
    def cast(cls, value: Any) -> Any:
        if isinstance(value, str):
            if _HTTP_URL.match(value) and not cls.allow_urls:
                raise CastError('HTTP/S URLs are not supported. Use base64 data instead')
            return cls(file_data=value)
        return super().cast(value)


class FilePart(BridgeModel):
    type: Annotated[Literal['file'], ALWAYS] = 'file'
    file: Annotated[FileDetails | None, BeforeValidator(FileDetails.cast), Required()] = None


class RefusalPart(BridgeModel):
    type: Annotated[Literal['refusal'], ALWAYS] = 'refusal'
    refusal: Annotated[str | None, Required()] = None


def _image_from_shorthand(data: dict[str, Any]) -> ImagePart:
    data = dict(data)
    return ImagePart(image_url=data.pop('image'), **data)


def file_from_shorthand(part_cls: type[BridgeModel]) -> Any:
    def build(data: dict[str, Any]) -> BridgeModel:
        data = dict(data)
        return part_cls(file=data.pop('document'), **data)

    return build


def make_content_family(file_part: type[BridgeModel]) -> VariantFamily:
    """Content family parameterized by the provider's file part."""
    return VariantFamily(
        name='content part',
        variants={
            'text': TextPart,
            'image_url': ImagePart,
            'input_audio': AudioPart,
            'file': file_part,
            'refusal': RefusalPart,
        },
        inference=(
            Inference.keys('text', build=TextPart),
            Inference.keys('image', build=_image_from_shorthand),
            Inference.keys('document', build=file_from_shorthand(file_part)),
        ),
        shorthand=lambda text: TextPart(text=text),
    )


CONTENT = make_content_family(FilePart)

ContentPart = Annotated[
    TextPart | ImagePart | AudioPart | FilePart | RefusalPart,
    BeforeValidator(CONTENT.cast),
]


def cast_contents(family: VariantFamily) -> Any:
    """Contents cast: a string becomes one text part, a single mapping a one-item list."""

    def cast(value: Any) -> Any:
        if value is None or (isinstance(value, list) and all(isinstance(v, BridgeModel) for v in value)):
            return value
        if isinstance(value, str):
            return [TextPart(text=value)]
        return family.cast_many(value)

    return cast

