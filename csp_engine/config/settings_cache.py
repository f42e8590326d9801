"""Short-TTL cache of resolved directive registries, and the provider in front of it."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

import structlog

from csp_engine.models.registry import DirectiveRegistry

logger = structlog.get_logger()

CACHE_KEY_PREFIX = "csp_settings:"
DEFAULT_TTL_SECONDS = 60 * 60


class RegistrySource(Protocol):
    def resolve_registry(self, tenant_key: str) -> DirectiveRegistry | None: ...


class SettingsCache:
    """In-process {key: (registry, expiry)} cache.

    Expiry is checked on read; there is no background eviction. Concurrent
    misses may each populate the same key, last write wins.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, tuple[DirectiveRegistry, float]] = {}
        self._default_ttl = default_ttl
        self._clock = clock

    def get(self, key: str) -> DirectiveRegistry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        registry, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return registry

    def put(self, key: str, value: DirectiveRegistry, ttl: float | None = None) -> None:
        """Store an enabled registry; disabled ones are never cached."""
        if value is None or not value.enabled:
            return
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            return
        self._entries[key] = (value, self._clock() + ttl)

    def __len__(self) -> int:
        return len(self._entries)


class CspSettingsProvider:
    """Resolve a tenant's registry through the cache, falling back to the source."""

    def __init__(self, source: RegistrySource, cache: SettingsCache | None = None) -> None:
        self._source = source
        self._cache = cache if cache is not None else SettingsCache()

    @property
    def cache(self) -> SettingsCache:
        return self._cache

    def get_registry(self, tenant_key: str) -> DirectiveRegistry | None:
        """Return the tenant's registry, or None when CSP is not configured.

        Source failures propagate; the HTTP boundary treats them as "no header".
        """
        cache_key = f"{CACHE_KEY_PREFIX}{tenant_key}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        registry = self._source.resolve_registry(tenant_key)
        if registry is None:
            logger.debug("csp_settings_absent", tenant=tenant_key)
            return None

        self._cache.put(cache_key, registry)
        return registry

    def is_csp_enabled(self, tenant_key: str) -> bool:
        registry = self.get_registry(tenant_key)
        return registry is not None and registry.enabled


# Module-level singleton
_provider: CspSettingsProvider | None = None


def get_settings_provider() -> CspSettingsProvider:
    """Get or create the singleton provider from the current settings."""
    global _provider
    if _provider is None:
        from csp_engine.config.loader import get_settings
        from csp_engine.config.registry_source import YamlRegistrySource

        settings = get_settings()
        _provider = CspSettingsProvider(
            YamlRegistrySource(settings.registry_file),
            SettingsCache(default_ttl=settings.cache_ttl_seconds),
        )
    return _provider


def reset_settings_provider() -> None:
    """Reset the singleton provider (for testing and config reloads)."""
    global _provider
    _provider = None
