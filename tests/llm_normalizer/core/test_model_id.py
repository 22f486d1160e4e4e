from __future__ import annotations

import pytest

from llm_normalizer.core.model_id import ModelId, parse_model_id


def test_valid_parse_and_str() -> None:
    mid: ModelId = ModelId.parse('OpenAI:gpt-4o')
    assert mid.provider == 'openai'
    assert mid.model == 'gpt-4o'
    assert mid.raw == 'OpenAI:gpt-4o'
    assert str(mid) == 'openai:gpt-4o'


def test_model_case_is_preserved() -> None:
    assert ModelId.parse('openrouter:Meta-Llama/Llama-3-70B').model == 'Meta-Llama/Llama-3-70B'


def test_ollama_tag_keeps_second_colon() -> None:
    mid = ModelId.parse('ollama:llama3.1:8b')
    assert mid.provider == 'ollama'
    assert mid.model == 'llama3.1:8b'


@pytest.mark.parametrize(
    ('raw', 'provider'),
    [('open_ai:gpt-4o', 'openai'), ('Open-Router:openrouter/auto', 'openrouter'), ('mock:mock-model', 'mock')],
)
def test_provider_aliases(raw: str, provider: str) -> None:
    assert ModelId.parse(raw).provider == provider


@pytest.mark.parametrize('bad_id', ['openai', 'openai-gpt4o', ':', 'openai:', 'open ai:gpt'])
def test_invalid_parse(bad_id: str) -> None:
    with pytest.raises(ValueError):  # noqa: PT011
        ModelId.parse(bad_id)


def test_function_alias() -> None:
    assert isinstance(parse_model_id('anthropic:claude-3-5-sonnet'), ModelId)
