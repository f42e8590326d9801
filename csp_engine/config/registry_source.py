"""YAML-backed settings source for directive registries."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml

from csp_engine.models.registry import DirectiveRegistry

logger = structlog.get_logger()

DEFAULT_BLOCK = "default"
TENANTS_BLOCK = "tenants"


class RegistrySourceError(Exception):
    """Raised when the settings document exists but cannot be read."""


class YamlRegistrySource:
    """Resolve per-tenant directive registries from a YAML document.

    Layout::

        default:
          Enabled: true
          default-src: "'self'"
        tenants:
          shop.example.com:
            script-src: "'self' https://cdn.shop.example.com"

    Tenant blocks are merged over the ``default`` block key by key.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load_document(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            raise RegistrySourceError(f"cannot read CSP settings from {self._path}: {exc}") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise RegistrySourceError(f"CSP settings in {self._path} must be a mapping")
        return data

    def resolve_registry(self, tenant_key: str) -> DirectiveRegistry | None:
        """Return the registry for a tenant, or None when nothing is configured."""
        document = self._load_document()
        if not document:
            logger.debug("csp_settings_document_missing", path=str(self._path))
            return None

        base = document.get(DEFAULT_BLOCK)
        tenants = document.get(TENANTS_BLOCK) or {}
        override = tenants.get(tenant_key) if isinstance(tenants, dict) else None

        if not isinstance(base, dict) and not isinstance(override, dict):
            logger.warning("csp_settings_not_found", tenant=tenant_key)
            return None

        merged: dict[str, Any] = {}
        if isinstance(base, dict):
            merged.update(base)
        if isinstance(override, dict):
            merged.update(override)
        return DirectiveRegistry.from_mapping(merged)
