"""Health endpoint."""

from __future__ import annotations

import structlog
from fastapi import APIRouter

from csp_engine.config.loader import get_settings
from csp_engine.config.registry_source import RegistrySourceError, YamlRegistrySource

logger = structlog.get_logger()
router = APIRouter()


def _check_source() -> str:
    """Report whether the default tenant resolves: "up", "absent" or "error"."""
    settings = get_settings()
    try:
        registry = YamlRegistrySource(settings.registry_file).resolve_registry(settings.default_tenant)
    except RegistrySourceError as exc:
        logger.warning("health_csp_source_error", error=str(exc))
        return "error"
    return "up" if registry is not None else "absent"


@router.get("/health")
async def health():
    """Health check: the engine is up; a broken settings source only degrades it."""
    source = _check_source()
    return {
        "status": "degraded" if source == "error" else "healthy",
        "csp_source": source,
    }
