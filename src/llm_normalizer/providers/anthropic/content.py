"""Anthropic Messages content blocks and sources.

Untagged blocks are inferred in this order: ``text``, ``image``,
``document``, ``tool_use_id`` (a tool result), ``id`` + ``name`` + ``input``
(a tool use). A mapping that carries more than one of ``text``, ``image``
and ``document`` expands into one block per key.

Sources (the ``source`` of image and document blocks) are tagged
``base64``, ``url``, ``file``, ``text`` or ``content``. Without a tag they
are inferred in this fixed order:

1. ``image`` key: URL or ``data:`` URI string;
2. ``document`` key: URL or ``data:`` URI string;
3. ``data`` + ``media_type``: base64;
4. ``url``;
5. ``file_id``;
6. ``text``: plain-text document.

A bare string source is a base64 source when it is a ``data:`` URI and a URL
source otherwise.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BeforeValidator, ConfigDict

from llm_normalizer.core.exceptions import CastError
from llm_normalizer.core.model import ALWAYS, BridgeModel
from llm_normalizer.core.rules import Length, OneOf, Pattern, Required
from llm_normalizer.core.variants import Inference, VariantFamily

IMAGE_MEDIA_TYPES = ('image/jpeg', 'image/png', 'image/gif', 'image/webp')
DOCUMENT_MEDIA_TYPES = ('application/pdf',)

_DATA_URI = re.compile(r'\Adata:([^;,]+)(?:;base64)?,(.+)\Z', re.DOTALL)
_HTTP_URL = re.compile(r'\Ahttps?://', re.IGNORECASE)
_IDENTIFIER = r'[a-zA-Z0-9_-]+'


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class ImageBase64Source(BridgeModel):
    type: Annotated[Literal['base64'], ALWAYS] = 'base64'
    media_type: Annotated[str | None, Required(), OneOf(*IMAGE_MEDIA_TYPES)] = None
    data: Annotated[str | None, Required()] = None


class DocumentBase64Source(BridgeModel):
    type: Annotated[Literal['base64'], ALWAYS] = 'base64'
    media_type: Annotated[str | None, Required(), OneOf(*DOCUMENT_MEDIA_TYPES)] = None
    data: Annotated[str | None, Required()] = None


class UrlSource(BridgeModel):
    type: Annotated[Literal['url'], ALWAYS] = 'url'
    url: Annotated[str | None, Required()] = None


class FileSource(BridgeModel):
    type: Annotated[Literal['file'], ALWAYS] = 'file'
    file_id: Annotated[str | None, Required()] = None


class TextSource(BridgeModel):
    type: Annotated[Literal['text'], ALWAYS] = 'text'
    media_type: Annotated[str, ALWAYS, OneOf('text/plain')] = 'text/plain'
    data: Annotated[str | None, Required()] = None


class ContentSource(BridgeModel):
    type: Annotated[Literal['content'], ALWAYS] = 'content'
    content: Annotated[str | list[dict[str, Any]] | None, Required()] = None


def _base64_source(data: dict[str, Any]) -> BridgeModel:
    media_type = str(data.get('media_type') or '')
    if media_type.startswith('image/'):
        return ImageBase64Source(**data)
    return DocumentBase64Source(**data)


def parse_data_uri(value: str) -> BridgeModel:
    """`data:<mime>[;base64],<data>` -> base64 source; unparseable URIs fall back to URL."""
    match = _DATA_URI.match(value)
    if match is None:
        return UrlSource(url=value)
    return _base64_source({'media_type': match.group(1), 'data': match.group(2)})


def source_from_string(value: str) -> BridgeModel:
    if value[:5].lower() == 'data:':
        return parse_data_uri(value)
    return UrlSource(url=value)


def _source_from_key(key: str) -> Any:
    def build(data: dict[str, Any]) -> BridgeModel:
        value = data[key]
        if not isinstance(value, str):
            raise CastError(f'Expected a string for {key!r} source, got {type(value).__name__}')
        if _HTTP_URL.match(value) or value[:5].lower() == 'data:':
            return source_from_string(value)
        raise CastError(f'Cannot determine source type for {key} value: {value[:50]!r}')

    return build


SOURCES = VariantFamily(
    name='source',
    variants={
        'base64': _base64_source,
        'url': UrlSource,
        'file': FileSource,
        'text': TextSource,
        'content': ContentSource,
    },
    inference=(
        Inference.keys('image', build=_source_from_key('image')),
        Inference.keys('document', build=_source_from_key('document')),
        Inference.keys('data', 'media_type', build=_base64_source),
        Inference.keys('url', build=UrlSource),
        Inference.keys('file_id', build=FileSource),
        Inference.keys('text', build=lambda data: TextSource(data=data['text'])),
    ),
    shorthand=source_from_string,
    passthrough=(ImageBase64Source, DocumentBase64Source),
)

Source = Annotated[
    ImageBase64Source | DocumentBase64Source | UrlSource | FileSource | TextSource | ContentSource,
    BeforeValidator(SOURCES.cast),
]


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


class TextBlock(BridgeModel):
    type: Annotated[Literal['text'], ALWAYS] = 'text'
    text: Annotated[str | None, Required()] = None
    citations: list[dict[str, Any]] | None = None
    cache_control: dict[str, Any] | None = None


class ImageBlock(BridgeModel):
    type: Annotated[Literal['image'], ALWAYS] = 'image'
    source: Annotated[Source | None, Required()] = None
    cache_control: dict[str, Any] | None = None


class DocumentBlock(BridgeModel):
    type: Annotated[Literal['document'], ALWAYS] = 'document'
    source: Annotated[Source | None, Required()] = None
    title: str | None = None
    context: str | None = None
    citations: dict[str, Any] | None = None
    cache_control: dict[str, Any] | None = None


class ToolUseBlock(BridgeModel):
    type: Annotated[Literal['tool_use'], ALWAYS] = 'tool_use'
    id: Annotated[str | None, Required(), Pattern(_IDENTIFIER)] = None
    name: Annotated[str | None, Required(), Length(min=1, max=200)] = None
    input: Annotated[dict[str, Any] | None, ALWAYS] = None
    cache_control: dict[str, Any] | None = None

    drop_attributes: ClassVar[frozenset[str]] = frozenset({'json_buf'})


class ToolResultBlock(BridgeModel):
    type: Annotated[Literal['tool_result'], ALWAYS] = 'tool_result'
    tool_use_id: Annotated[str | None, Required(), Pattern(_IDENTIFIER)] = None
    content: str | list[dict[str, Any]] | None = None
    is_error: bool | None = None
    cache_control: dict[str, Any] | None = None


class ThinkingBlock(BridgeModel):
    type: Annotated[Literal['thinking'], ALWAYS] = 'thinking'
    thinking: Annotated[str | None, Required()] = None
    signature: str | None = None


class RedactedThinkingBlock(BridgeModel):
    type: Annotated[Literal['redacted_thinking'], ALWAYS] = 'redacted_thinking'
    data: Annotated[str | None, Required()] = None


class SearchResultBlock(BridgeModel):
    type: Annotated[Literal['search_result'], ALWAYS] = 'search_result'
    source: Annotated[str | None, Required()] = None
    title: Annotated[str | None, Required()] = None
    content: Annotated[list[TextBlock] | None, Required()] = None
    citations: dict[str, Any] | None = None
    cache_control: dict[str, Any] | None = None


class ServerToolBlock(BridgeModel):
    """Server-side tool blocks returned in replies (MCP, web search, ...)."""

    model_config = ConfigDict(extra='allow')

    type: Annotated[str, ALWAYS]


SERVER_TOOL_TYPES = (
    'server_tool_use',
    'web_search_tool_result',
    'web_fetch_tool_result',
    'code_execution_tool_result',
    'mcp_tool_use',
    'mcp_tool_result',
    'container_upload',
)


def _image_block(data: dict[str, Any]) -> ImageBlock:
    data = dict(data)
    return ImageBlock(source=SOURCES.cast({'image': data.pop('image')}), **data)


def _document_block(data: dict[str, Any]) -> DocumentBlock:
    data = dict(data)
    return DocumentBlock(source=SOURCES.cast({'document': data.pop('document')}), **data)


BLOCKS = VariantFamily(
    name='content block',
    variants={
        'text': TextBlock,
        'image': ImageBlock,
        'document': DocumentBlock,
        'tool_use': ToolUseBlock,
        'tool_result': ToolResultBlock,
        'thinking': ThinkingBlock,
        'redacted_thinking': RedactedThinkingBlock,
        'search_result': SearchResultBlock,
        **{kind: ServerToolBlock for kind in SERVER_TOOL_TYPES},
    },
    inference=(
        Inference.keys('text', build=TextBlock),
        Inference.keys('image', build=_image_block),
        Inference.keys('document', build=_document_block),
        Inference.keys('tool_use_id', build=ToolResultBlock),
        Inference.keys('id', 'name', 'input', build=ToolUseBlock),
    ),
    shorthand=lambda text: TextBlock(text=text),
)

Block = Annotated[
    TextBlock
    | ImageBlock
    | DocumentBlock
    | ToolUseBlock
    | ToolResultBlock
    | ThinkingBlock
    | RedactedThinkingBlock
    | SearchResultBlock
    | ServerToolBlock,
    BeforeValidator(BLOCKS.cast),
]

_CONTENT_KEYS = ('text', 'image', 'document')


def _expand(item: Any) -> list[Any]:
    if isinstance(item, Mapping) and 'type' not in item:
        found = [key for key in _CONTENT_KEYS if key in item]
        if len(found) > 1:
            return [{key: item[key]} for key in found]
    return [item]


def cast_blocks(value: Any) -> list[Any] | None:
    """Content cast: a string is one text block; multi-key mappings expand."""
    if value is None:
        return None
    if isinstance(value, str):
        return [TextBlock(text=value)]
    items = value if isinstance(value, (list, tuple)) else [value]
    blocks = []
    for item in items:
        if item is None:
            continue
        blocks.extend(BLOCKS.cast(part) for part in _expand(item))
    return blocks
