from __future__ import annotations

import pytest

from llm_normalizer.common.usage import Usage
from llm_normalizer.core.exceptions import CastError


def test_openai_chat_usage() -> None:
    usage = Usage.from_provider_usage(
        {
            'prompt_tokens': 10,
            'completion_tokens': 5,
            'total_tokens': 15,
            'prompt_tokens_details': {'cached_tokens': 4, 'audio_tokens': 1},
            'completion_tokens_details': {'reasoning_tokens': 2, 'audio_tokens': 0},
        },
    )
    assert usage.input_tokens == 10  # noqa: PLR2004
    assert usage.output_tokens == 5  # noqa: PLR2004
    assert usage.total_tokens == 15  # noqa: PLR2004
    assert usage.cached_tokens == 4  # noqa: PLR2004
    assert usage.reasoning_tokens == 2  # noqa: PLR2004
    assert usage.audio_tokens == 1


def test_openai_responses_usage() -> None:
    usage = Usage.from_provider_usage(
        {
            'input_tokens': 8,
            'output_tokens': 3,
            'total_tokens': 11,
            'input_tokens_details': {'cached_tokens': 0},
            'output_tokens_details': {'reasoning_tokens': 1},
        },
    )
    assert (usage.input_tokens, usage.output_tokens, usage.total_tokens) == (8, 3, 11)
    assert usage.reasoning_tokens == 1


def test_anthropic_usage_computes_total() -> None:
    usage = Usage.from_provider_usage(
        {
            'input_tokens': 20,
            'output_tokens': 7,
            'cache_read_input_tokens': 12,
            'cache_creation_input_tokens': 3,
            'service_tier': 'standard',
        },
    )
    assert usage.total_tokens == 27  # noqa: PLR2004
    assert usage.cached_tokens == 12  # noqa: PLR2004
    assert usage.cache_creation_tokens == 3  # noqa: PLR2004
    assert usage.service_tier == 'standard'


def test_ollama_usage_converts_durations() -> None:
    usage = Usage.from_provider_usage(
        {
            'prompt_eval_count': 6,
            'eval_count': 10,
            'total_duration': 2_500_000_000,
            'eval_duration': 2_000_000_000,
        },
    )
    assert (usage.input_tokens, usage.output_tokens, usage.total_tokens) == (6, 10, 16)
    assert usage.duration_ms == 2500  # noqa: PLR2004
    assert usage.provider_details['tokens_per_second'] == 5.0  # noqa: PLR2004


def test_embedding_usage() -> None:
    usage = Usage.from_provider_usage({'prompt_tokens': 9, 'total_tokens': 9})
    assert (usage.input_tokens, usage.output_tokens, usage.total_tokens) == (9, 0, 9)


def test_direct_usage_and_none() -> None:
    assert Usage.from_provider_usage({'input_tokens': 1, 'output_tokens': 2}).total_tokens == 3  # noqa: PLR2004
    assert Usage.from_provider_usage(None) is None


def test_unsupported_usage() -> None:
    with pytest.raises(CastError):
        Usage.from_provider_usage([1, 2])


def test_usage_addition() -> None:
    total = Usage(input_tokens=1, output_tokens=2, cached_tokens=1) + Usage(
        input_tokens=3,
        output_tokens=4,
        service_tier='priority',
    )
    assert (total.input_tokens, total.output_tokens, total.total_tokens) == (4, 6, 10)
    assert total.cached_tokens == 1
    assert total.reasoning_tokens is None
    assert total.service_tier == 'priority'
