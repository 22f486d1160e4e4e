"""core.config

Provider configuration loaded from explicit arguments, the process
environment and an optional `.env` file.

This is the only module that reads the environment. Providers and
transports receive a settings object; they never call `os.getenv`.

Credential precedence is explicit: values passed to the constructor win,
then the provider's environment variables in the order listed on the
hidden `env_*` fields, then any built-in fallback::

    >>> OpenAISettings(access_token='sk-test').resolved_api_key
    'sk-test'

A missing credential is not an error here; transports complain when they
actually need one.
"""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def _secret(value: SecretStr | None) -> str | None:
    if value is None:
        return None
    return value.get_secret_value() or None


class ProviderSettings(BaseSettings):
    """Settings shared by every provider."""

    model_config = SettingsConfigDict(
        env_prefix='LLM_NORMALIZER_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        populate_by_name=True,
        protected_namespaces=(),
    )

    #: Used when neither an explicit key nor an environment key is set.
    fallback_api_key: ClassVar[str | None] = None

    api_key: SecretStr | None = None
    access_token: SecretStr | None = None
    env_api_key: SecretStr | None = Field(default=None, exclude=True)

    base_url: str = ''
    timeout: float = Field(default=600.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    extra_headers: dict[str, str] = Field(default_factory=dict)

    @property
    def resolved_api_key(self) -> str | None:
        return (
            _secret(self.api_key)
            or _secret(self.access_token)
            or _secret(self.env_api_key)
            or self.fallback_api_key
        )

    def headers(self) -> dict[str, str]:
        """Default headers sent with every request."""
        return dict(self.extra_headers)

    def client_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for an SDK client constructor."""
        return {
            'api_key': self.resolved_api_key,
            'base_url': self.base_url or None,
            'timeout': self.timeout,
            'default_headers': self.headers() or None,
        }


class OpenAISettings(ProviderSettings):
    model_config = SettingsConfigDict(env_prefix='LLM_NORMALIZER_OPENAI_')

    env_api_key: SecretStr | None = Field(
        default=None,
        exclude=True,
        validation_alias=AliasChoices('OPENAI_API_KEY', 'OPENAI_ACCESS_TOKEN', 'OPEN_AI_ACCESS_TOKEN'),
    )
    organization_id: str | None = None
    env_organization_id: str | None = Field(
        default=None,
        exclude=True,
        validation_alias=AliasChoices('OPENAI_ORGANIZATION_ID', 'OPENAI_ORG_ID'),
    )
    project_id: str | None = None
    env_project_id: str | None = Field(default=None, exclude=True, validation_alias='OPENAI_PROJECT_ID')
    base_url: str = 'https://api.openai.com/v1'

    @property
    def resolved_organization_id(self) -> str | None:
        return self.organization_id or self.env_organization_id

    @property
    def resolved_project_id(self) -> str | None:
        return self.project_id or self.env_project_id

    def client_kwargs(self) -> dict[str, Any]:
        kwargs = super().client_kwargs()
        kwargs['organization'] = self.resolved_organization_id
        kwargs['project'] = self.resolved_project_id
        return kwargs


class AnthropicSettings(ProviderSettings):
    model_config = SettingsConfigDict(env_prefix='LLM_NORMALIZER_ANTHROPIC_')

    env_api_key: SecretStr | None = Field(
        default=None,
        exclude=True,
        validation_alias=AliasChoices('ANTHROPIC_ACCESS_TOKEN', 'ANTHROPIC_API_KEY'),
    )
    base_url: str = 'https://api.anthropic.com'
    anthropic_beta: str | None = None

    def headers(self) -> dict[str, str]:
        headers = super().headers()
        if self.anthropic_beta:
            headers['anthropic-beta'] = self.anthropic_beta
        return headers


class OllamaSettings(ProviderSettings):
    model_config = SettingsConfigDict(env_prefix='LLM_NORMALIZER_OLLAMA_')

    fallback_api_key: ClassVar[str | None] = 'ollama'

    env_api_key: SecretStr | None = Field(
        default=None,
        exclude=True,
        validation_alias=AliasChoices('OLLAMA_API_KEY', 'OLLAMA_ACCESS_TOKEN'),
    )
    base_url: str = 'http://127.0.0.1:11434'

    @property
    def openai_base_url(self) -> str:
        """The OpenAI-compatible endpoint of the Ollama server."""
        return self.base_url.rstrip('/') + '/v1'

    def client_kwargs(self) -> dict[str, Any]:
        kwargs = super().client_kwargs()
        kwargs['base_url'] = self.openai_base_url
        return kwargs


class OpenRouterSettings(ProviderSettings):
    model_config = SettingsConfigDict(env_prefix='LLM_NORMALIZER_OPENROUTER_')

    base_url_default: ClassVar[str] = 'https://openrouter.ai/api/v1'

    env_api_key: SecretStr | None = Field(
        default=None,
        exclude=True,
        validation_alias=AliasChoices(
            'OPENROUTER_API_KEY',
            'OPEN_ROUTER_API_KEY',
            'OPENROUTER_ACCESS_TOKEN',
            'OPEN_ROUTER_ACCESS_TOKEN',
        ),
    )
    base_url: str = base_url_default
    app_name: str = 'llm_normalizer'
    site_url: str | None = None

    def headers(self) -> dict[str, str]:
        headers = super().headers()
        headers['x-title'] = self.app_name
        if self.site_url:
            headers['http-referer'] = self.site_url
        return headers

    def client_kwargs(self) -> dict[str, Any]:
        kwargs = super().client_kwargs()
        kwargs['base_url'] = self.base_url_default
        return kwargs


class MockSettings(ProviderSettings):
    model_config = SettingsConfigDict(env_prefix='LLM_NORMALIZER_MOCK_')

    fallback_api_key: ClassVar[str | None] = 'mock-api-key'

    base_url: str = 'https://mock.example.com'


__all__ = [
    'AnthropicSettings',
    'MockSettings',
    'OllamaSettings',
    'OpenAISettings',
    'OpenRouterSettings',
    'ProviderSettings',
]
