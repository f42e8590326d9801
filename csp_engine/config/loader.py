"""Env var config loading with pydantic-settings."""

from __future__ import annotations

import signal
from pathlib import Path

import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()

_DEFAULT_REGISTRY_PATH = Path(__file__).parent / "csp_settings.yaml"


class CspEngineSettings(BaseSettings):
    """Engine configuration: model defaults, overridden by CSP_* env vars."""

    model_config = SettingsConfigDict(
        env_prefix="CSP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "info"
    log_json: bool = True

    # Nonce: raw random bytes before base64 encoding
    nonce_length: int = 32

    # Directive registry source and cache
    registry_file: str = str(_DEFAULT_REGISTRY_PATH)
    cache_ttl_minutes: int = 60
    default_tenant: str = "default"

    # "Content-Security-Policy" or "Content-Security-Policy-Report-Only"
    header_name: str = "Content-Security-Policy"

    # Request-skip policy
    skip_during_editing: bool = True
    admin_path_prefixes: list[str] = ["/admin", "/shell"]
    static_extensions: list[str] = [".js", ".css", ".jpg", ".png", ".gif", ".svg", ".woff", ".woff2"]
    editing_query_params: list[str] = [
        "sc_mode",
        "sc_edit",
        "sc_debug",
        "sc_trace",
        "sc_ee",
        "sc_itemid",
        "sc_lang",
        "sc_site",
    ]
    editing_path_markers: list[str] = ["/sitecore/", "/-/speak/", "/~/media/", "/-/media/"]

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_minutes * 60.0


_settings: CspEngineSettings | None = None


def get_settings() -> CspEngineSettings:
    """Get or create the singleton settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def load_settings() -> CspEngineSettings:
    """Load settings from env vars (env vars override model defaults)."""
    global _settings
    _settings = CspEngineSettings()
    logger.info(
        "config_loaded",
        registry_file=_settings.registry_file,
        cache_ttl_minutes=_settings.cache_ttl_minutes,
        nonce_length=_settings.nonce_length,
    )
    return _settings


def reload_settings() -> CspEngineSettings:
    """Reload settings and drop the singletons sized or pointed by them."""
    from csp_engine.config.settings_cache import reset_settings_provider
    from csp_engine.nonce import reset_nonce_manager

    settings = load_settings()
    reset_settings_provider()
    reset_nonce_manager()
    return settings


def register_reload_handler() -> None:
    """Register SIGHUP handler for hot-reload of configuration."""
    import threading

    if threading.current_thread() is not threading.main_thread():
        logger.debug("skipping_sighup_handler", reason="not main thread")
        return

    def _reload(signum, frame):
        logger.info("config_reload_triggered")
        reload_settings()

    try:
        signal.signal(signal.SIGHUP, _reload)
    except (ValueError, AttributeError):
        logger.debug("skipping_sighup_handler", reason="signal not supported")
