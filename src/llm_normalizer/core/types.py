"""core.types

Shared enums used throughout *llm_normalizer*.

These live in the **core** layer so that providers, adapters and the registry
can depend on them without causing circular imports.
"""

from __future__ import annotations

from enum import StrEnum


class Endpoint(StrEnum):
    """Which API surface a serialized payload targets."""

    chat = 'chat'
    responses = 'responses'
    messages = 'messages'
    embeddings = 'embeddings'
