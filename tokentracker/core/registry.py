"""Provider registry: central registration and lookup for LLM providers."""

import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from .rwlock import ReadWriteLock

if TYPE_CHECKING:
    from ..providers.base import Provider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Thread-safe registry of provider instances.

    Providers are keyed by their name; registering a second provider with
    the same name replaces the first. Lookups may run concurrently with
    each other but not with registration.
    """

    def __init__(self):
        self._providers: Dict[str, "Provider"] = {}
        self._lock = ReadWriteLock()

    def register(self, provider: "Provider") -> None:
        """Register a provider, replacing any provider with the same name."""
        name = provider.name()
        with self._lock.write():
            self._providers[name] = provider
        logger.debug("Registered provider %s", name)

    def get(self, name: str) -> Optional["Provider"]:
        """Get a provider by exact name, or None if not registered."""
        with self._lock.read():
            return self._providers.get(name)

    def get_for_model(self, model: str) -> Optional["Provider"]:
        """Get the first provider that supports a model.

        Iteration order is unspecified; providers must not claim the same
        model.
        """
        with self._lock.read():
            for provider in self._providers.values():
                if provider.supports_model(model):
                    return provider
        return None

    def all(self) -> List["Provider"]:
        """Snapshot of all registered providers."""
        with self._lock.read():
            return list(self._providers.values())

    def names(self) -> List[str]:
        with self._lock.read():
            return list(self._providers.keys())

    def unregister(self, name: str) -> bool:
        """Unregister a provider (mainly for testing).

        Returns True if provider was removed, False if not found.
        """
        with self._lock.write():
            return self._providers.pop(name, None) is not None

    def __contains__(self, name: str) -> bool:
        with self._lock.read():
            return name in self._providers

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._providers)
