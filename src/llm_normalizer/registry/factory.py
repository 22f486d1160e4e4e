"""registry.factory

Factory responsible for converting a ModelId (or raw string) into a fully
initialized `Provider` with its model preset.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from llm_normalizer.core.model_id import ModelId, parse_model_id
from llm_normalizer.registry.provider_registry import provider_registry

if TYPE_CHECKING:
    from llm_normalizer.providers.base import Provider


class ProviderFactory:
    """Factory for creating configured providers.

    This class is stateless; all information resides in provider_registry.
    """

    @staticmethod
    def initialize_provider(model_id: str | ModelId, **provider_kwargs: Any) -> Provider:
        """Return a provider for model_id.

        Parameters
        ----------
        model_id
            Either a raw string ("provider:model") or a pre-parsed
            ModelId instance.
        **provider_kwargs
            Forwarded to the provider constructor (`settings`, `transport`,
            `embedding_model`).

        """
        model_identifier = parse_model_id(model_id) if isinstance(model_id, str) else model_id
        provider_cls = provider_registry.get_provider_cls(model_identifier.provider)
        return provider_cls(model=model_identifier.model, **provider_kwargs)
