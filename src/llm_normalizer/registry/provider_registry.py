"""registry.provider_registry

Global registry that maps provider slugs (e.g. "openai") to their concrete
`Provider` classes.

Provider modules register themselves on import. The built-in providers are
imported lazily on the first lookup that misses, so importing the registry
never pulls in every request model.
"""

from __future__ import annotations

import importlib
import logging
import threading
from typing import TYPE_CHECKING

from llm_normalizer.core.exceptions import ProviderNotFoundError

if TYPE_CHECKING:
    from collections.abc import Mapping, MutableMapping

    from llm_normalizer.providers.base import Provider

log = logging.getLogger(__name__)

#: Modules whose import registers the built-in providers.
BUILTIN_PROVIDER_MODULES: tuple[str, ...] = (
    'llm_normalizer.providers.openai.provider',
    'llm_normalizer.providers.anthropic.provider',
    'llm_normalizer.providers.ollama.provider',
    'llm_normalizer.providers.openrouter.provider',
    'llm_normalizer.providers.mock.provider',
)


class _ThreadSafeSingleton(type):
    """Metaclass ensuring a single registry instance across threads."""

    _instance: ProviderRegistry | None = None
    _lock = threading.Lock()

    def __call__(cls, *args: object, **kwargs: object) -> ProviderRegistry:
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__call__(*args, **kwargs)
        return cls._instance


class ProviderRegistry(metaclass=_ThreadSafeSingleton):
    """Centralised look-up and registration for slug -> provider mappings.

    Usage (at the bottom of a provider module):

    ```python
    provider_registry.register('openai', OpenAIProvider)
    ```
    """

    _registry: MutableMapping[str, type[Provider]]

    def __init__(self) -> None:  # pragma: no cover - called once via singleton
        self._registry = {}
        self._builtins_loaded = False
        self._lock = threading.RLock()

    def register(self, provider_key: str, provider_cls: type[Provider]) -> None:
        """Register provider_cls under provider_key (normalised to lower-case)."""
        from llm_normalizer.providers.base import Provider  # local import avoids cycles

        if not (isinstance(provider_cls, type) and issubclass(provider_cls, Provider)):
            raise TypeError('provider_cls must subclass Provider')
        with self._lock:
            self._registry[provider_key.lower()] = provider_cls
        log.debug('registered provider %s -> %s', provider_key.lower(), provider_cls.__name__)

    def load_builtins(self) -> None:
        with self._lock:
            if self._builtins_loaded:
                return
            for module in BUILTIN_PROVIDER_MODULES:
                importlib.import_module(module)
            self._builtins_loaded = True

    def get_provider_cls(self, provider_key: str) -> type[Provider]:
        """Return the provider class registered for provider_key.

        Raises
        ------
        ProviderNotFoundError
            If provider_key hasn't been registered.

        """
        key = provider_key.lower()
        if key not in self._registry:
            self.load_builtins()
        try:
            return self._registry[key]
        except KeyError as exc:
            raise ProviderNotFoundError(f'Unsupported provider: {provider_key}') from exc

    def available_providers(self) -> list[str]:
        """Sorted registered slugs, built-ins included."""
        self.load_builtins()
        return sorted(self._registry)

    def mapping(self) -> Mapping[str, type[Provider]]:
        """Return a read-only copy of the provider registry mapping."""
        self.load_builtins()
        return dict(self._registry)


provider_registry: ProviderRegistry = ProviderRegistry()
