from __future__ import annotations

import pytest
from pydantic import ValidationError

from llm_normalizer.core.config import (
    AnthropicSettings,
    MockSettings,
    OllamaSettings,
    OpenAISettings,
    OpenRouterSettings,
)

_ENV_KEYS = (
    'OPENAI_API_KEY',
    'OPENAI_ACCESS_TOKEN',
    'OPEN_AI_ACCESS_TOKEN',
    'OPENAI_ORGANIZATION_ID',
    'OPENAI_ORG_ID',
    'OPENAI_PROJECT_ID',
    'LLM_NORMALIZER_OPENAI_API_KEY',
    'LLM_NORMALIZER_OPENAI_BASE_URL',
    'ANTHROPIC_ACCESS_TOKEN',
    'ANTHROPIC_API_KEY',
    'OLLAMA_API_KEY',
    'OLLAMA_ACCESS_TOKEN',
    'LLM_NORMALIZER_OLLAMA_BASE_URL',
    'OPENROUTER_API_KEY',
    'OPEN_ROUTER_API_KEY',
    'OPENROUTER_ACCESS_TOKEN',
    'OPEN_ROUTER_ACCESS_TOKEN',
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_explicit_token_wins_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv('OPENAI_API_KEY', 'sk-env')
    assert OpenAISettings(access_token='sk-test').resolved_api_key == 'sk-test'
    assert OpenAISettings(api_key='sk-explicit', access_token='sk-test').resolved_api_key == 'sk-explicit'


def test_environment_key_order(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv('OPENAI_ACCESS_TOKEN', 'sk-second')
    assert OpenAISettings().resolved_api_key == 'sk-second'
    monkeypatch.setenv('OPENAI_API_KEY', 'sk-first')
    assert OpenAISettings().resolved_api_key == 'sk-first'


def test_prefixed_environment_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv('LLM_NORMALIZER_OPENAI_API_KEY', 'sk-prefixed')
    monkeypatch.setenv('LLM_NORMALIZER_OPENAI_BASE_URL', 'https://proxy.example.com/v1')
    settings = OpenAISettings()
    assert settings.resolved_api_key == 'sk-prefixed'
    assert settings.client_kwargs()['base_url'] == 'https://proxy.example.com/v1'


def test_missing_key_is_not_an_error() -> None:
    assert OpenAISettings().resolved_api_key is None


def test_openai_organization_and_project(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv('OPENAI_ORG_ID', 'org-env')
    settings = OpenAISettings(project_id='proj-1')
    kwargs = settings.client_kwargs()
    assert kwargs['organization'] == 'org-env'
    assert kwargs['project'] == 'proj-1'


def test_secrets_are_masked() -> None:
    assert 'sk-hidden' not in repr(OpenAISettings(api_key='sk-hidden'))


def test_anthropic_beta_header(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv('ANTHROPIC_API_KEY', 'sk-ant')
    settings = AnthropicSettings(anthropic_beta='mcp-client-2025-04-04')
    assert settings.resolved_api_key == 'sk-ant'
    assert settings.headers() == {'anthropic-beta': 'mcp-client-2025-04-04'}


def test_ollama_fallback_key_and_openai_endpoint() -> None:
    settings = OllamaSettings(base_url='http://gpu-box:11434/')
    assert settings.resolved_api_key == 'ollama'
    assert settings.client_kwargs()['base_url'] == 'http://gpu-box:11434/v1'


def test_openrouter_headers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv('OPEN_ROUTER_API_KEY', 'sk-or')
    settings = OpenRouterSettings(site_url='https://example.com')
    assert settings.resolved_api_key == 'sk-or'
    assert settings.headers() == {'x-title': 'llm_normalizer', 'http-referer': 'https://example.com'}
    assert settings.client_kwargs()['base_url'] == 'https://openrouter.ai/api/v1'


def test_mock_settings_need_no_environment() -> None:
    assert MockSettings().resolved_api_key == 'mock-api-key'


def test_invalid_timeout() -> None:
    with pytest.raises(ValidationError):
        OpenAISettings(timeout=0)
