"""common.usage

Token usage normalized across providers.

Every provider names its counters differently:

=============  ===================  ====================  ==================
Provider       input                output                extras
=============  ===================  ====================  ==================
OpenAI Chat    prompt_tokens        completion_tokens     *_tokens_details
OpenAI Resp.   input_tokens         output_tokens         *_tokens_details
Anthropic      input_tokens         output_tokens         cache_*, tier
Ollama         prompt_eval_count    eval_count            *_duration (ns)
=============  ===================  ====================  ==================

`Usage.from_provider_usage()` detects the shape and dispatches to the
matching constructor. `total_tokens` is computed when the payload omits it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import Field, model_validator

from llm_normalizer.core.exceptions import CastError
from llm_normalizer.core.model import BridgeModel

log = logging.getLogger(__name__)

_OPTIONAL_COUNTS = ('cached_tokens', 'reasoning_tokens', 'audio_tokens', 'cache_creation_tokens', 'duration_ms')


def _get(data: Mapping[str, Any] | None, key: str) -> Any:
    if not data:
        return None
    return data.get(key)


def _ns_to_ms(value: Any) -> int | None:
    if value is None:
        return None
    return round(value / 1_000_000)


class Usage(BridgeModel):
    """Normalized token usage for one generation."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int | None = None
    cached_tokens: int | None = None
    reasoning_tokens: int | None = None
    audio_tokens: int | None = None
    cache_creation_tokens: int | None = None
    service_tier: str | None = None
    duration_ms: int | None = None
    provider_details: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode='after')
    def _fill_total(self) -> Usage:
        if self.total_tokens is None:
            self.total_tokens = self.input_tokens + self.output_tokens
        return self

    def __add__(self, other: object) -> Usage:
        if not isinstance(other, Usage):
            return NotImplemented
        optional = {}
        for key in _OPTIONAL_COUNTS:
            left, right = getattr(self, key), getattr(other, key)
            optional[key] = None if left is None and right is None else (left or 0) + (right or 0)
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=(self.total_tokens or 0) + (other.total_tokens or 0),
            service_tier=self.service_tier or other.service_tier,
            provider_details={**self.provider_details, **other.provider_details},
            **optional,
        )

    # ------------------------------------------------------------------
    # Provider constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_openai_chat(cls, usage: Mapping[str, Any]) -> Usage:
        prompt_details = usage.get('prompt_tokens_details') or {}
        completion_details = usage.get('completion_tokens_details') or {}
        audio = (_get(prompt_details, 'audio_tokens') or 0) + (_get(completion_details, 'audio_tokens') or 0)
        return cls(
            input_tokens=usage.get('prompt_tokens') or 0,
            output_tokens=usage.get('completion_tokens') or 0,
            total_tokens=usage.get('total_tokens'),
            cached_tokens=_get(prompt_details, 'cached_tokens'),
            reasoning_tokens=_get(completion_details, 'reasoning_tokens'),
            audio_tokens=audio or None,
            provider_details={
                'prompt_tokens_details': prompt_details,
                'completion_tokens_details': completion_details,
            },
        )

    @classmethod
    def from_openai_embedding(cls, usage: Mapping[str, Any]) -> Usage:
        return cls(
            input_tokens=usage.get('prompt_tokens') or 0,
            output_tokens=0,
            total_tokens=usage.get('total_tokens'),
        )

    @classmethod
    def from_openai_responses(cls, usage: Mapping[str, Any]) -> Usage:
        input_details = usage.get('input_tokens_details') or {}
        output_details = usage.get('output_tokens_details') or {}
        return cls(
            input_tokens=usage.get('input_tokens') or 0,
            output_tokens=usage.get('output_tokens') or 0,
            total_tokens=usage.get('total_tokens'),
            cached_tokens=_get(input_details, 'cached_tokens'),
            reasoning_tokens=_get(output_details, 'reasoning_tokens'),
            provider_details={
                'input_tokens_details': input_details,
                'output_tokens_details': output_details,
            },
        )

    @classmethod
    def from_anthropic(cls, usage: Mapping[str, Any]) -> Usage:
        return cls(
            input_tokens=usage.get('input_tokens') or 0,
            output_tokens=usage.get('output_tokens') or 0,
            cached_tokens=usage.get('cache_read_input_tokens'),
            cache_creation_tokens=usage.get('cache_creation_input_tokens'),
            service_tier=usage.get('service_tier'),
            provider_details={
                'cache_creation': usage.get('cache_creation'),
                'server_tool_use': usage.get('server_tool_use'),
            },
        )

    @classmethod
    def from_ollama(cls, usage: Mapping[str, Any]) -> Usage:
        eval_count = usage.get('eval_count') or 0
        eval_duration = usage.get('eval_duration')
        tokens_per_second = None
        if eval_count and eval_duration:
            tokens_per_second = round(eval_count / (eval_duration / 1e9), 2)
        return cls(
            input_tokens=usage.get('prompt_eval_count') or 0,
            output_tokens=eval_count,
            duration_ms=_ns_to_ms(usage.get('total_duration')),
            provider_details={
                'load_duration_ms': _ns_to_ms(usage.get('load_duration')),
                'prompt_eval_duration_ms': _ns_to_ms(usage.get('prompt_eval_duration')),
                'eval_duration_ms': _ns_to_ms(eval_duration),
                'tokens_per_second': tokens_per_second,
            },
        )

    @classmethod
    def from_openrouter(cls, usage: Mapping[str, Any]) -> Usage:
        return cls.from_openai_chat(usage)

    @classmethod
    def from_provider_usage(cls, usage: Any) -> Usage | None:
        """Detect the payload shape and normalize it; `None` stays `None`."""
        if usage is None:
            return None
        if isinstance(usage, Usage):
            return usage
        if not isinstance(usage, Mapping):
            raise CastError.unsupported(usage, 'Usage')
        usage = {str(k): v for k, v in usage.items()}
        if 'total_duration' in usage:
            shape, build = 'ollama', cls.from_ollama
        elif 'cache_creation' in usage or 'service_tier' in usage:
            shape, build = 'anthropic', cls.from_anthropic
        elif 'input_tokens' in usage and 'input_tokens_details' in usage:
            shape, build = 'openai_responses', cls.from_openai_responses
        elif 'completion_tokens' in usage:
            shape, build = 'openai_chat', cls.from_openai_chat
        elif 'prompt_tokens' in usage:
            shape, build = 'openai_embedding', cls.from_openai_embedding
        else:
            shape, build = 'direct', cls._from_direct
        log.debug('usage payload detected as %s', shape)
        return build(usage)

    @classmethod
    def _from_direct(cls, usage: Mapping[str, Any]) -> Usage:
        known = {key: usage[key] for key in cls.model_fields if key in usage}
        return cls(**known)
