"""core.model_id

Parse model identifiers of the form

    "<provider>:<model_name>"

The provider part is a registry slug (``openai``, ``anthropic``, ``ollama``,
``openrouter``, ``mock``...). Everything after the first colon is the model,
so Ollama tags (``ollama:llama3.1:8b``) and OpenRouter routes
(``openrouter:meta-llama/llama-3-70b``) survive intact.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

_MODEL_ID_REGEX: re.Pattern[str] = re.compile(
    r'^(?P<provider>[a-z0-9_-]+):(?P<model>[a-z0-9_.:/@+-]+)$',
    re.IGNORECASE,
)

#: Alternate spellings accepted for provider slugs.
PROVIDER_ALIASES: dict[str, str] = {
    'open_ai': 'openai',
    'open-ai': 'openai',
    'open_router': 'openrouter',
    'open-router': 'openrouter',
}


class ModelId(BaseModel):
    """Value object for a ``provider:model`` identifier.

    * `provider` … registry slug, lower-cased and de-aliased
    * `model` … model name, case preserved
    * `raw` … original string, kept for logging
    """

    provider: str = Field(..., pattern=r'^[a-z0-9_-]+$', description='provider slug')
    model: str = Field(..., min_length=1, description='model name')
    raw: str = Field(..., description='original, unmodified identifier')

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    @field_validator('provider', mode='before')
    @classmethod
    def _normalize_provider(cls, v: str) -> str:
        slug = v.lower()
        return PROVIDER_ALIASES.get(slug, slug)

    @classmethod
    def parse(cls, raw: str) -> ModelId:
        """Parse and validate a raw identifier string.

        >>> ModelId.parse("ollama:llama3.1:8b").model
        'llama3.1:8b'
        """
        if (m := _MODEL_ID_REGEX.match(raw.strip())) is None:
            raise ValueError(f"Invalid ModelId format. Expected '<provider>:<model>', got: {raw}")
        return cls(provider=m.group('provider'), model=m.group('model'), raw=raw)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f'{self.provider}:{self.model}'


parse_model_id = ModelId.parse
