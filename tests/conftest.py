"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml


@pytest.fixture(autouse=True)
def _mock_settings(monkeypatch, tmp_path):
    """Provide default settings for all tests."""
    monkeypatch.setenv("CSP_LOG_JSON", "false")
    monkeypatch.setenv("CSP_LOG_LEVEL", "debug")
    monkeypatch.setenv("CSP_REGISTRY_FILE", str(tmp_path / "missing.yaml"))

    # Reset cached singletons
    import csp_engine.config.loader as loader
    from csp_engine.config.settings_cache import reset_settings_provider
    from csp_engine.nonce import reset_nonce_manager

    loader._settings = None
    reset_settings_provider()
    reset_nonce_manager()
    yield
    loader._settings = None
    reset_settings_provider()
    reset_nonce_manager()


@pytest.fixture
def write_registry_file(monkeypatch, tmp_path):
    """Write a YAML settings document and point CSP_REGISTRY_FILE at it."""

    def _write(document: dict) -> Path:
        path = tmp_path / "csp_settings.yaml"
        path.write_text(yaml.safe_dump(document), encoding="utf-8")
        monkeypatch.setenv("CSP_REGISTRY_FILE", str(path))

        import csp_engine.config.loader as loader
        from csp_engine.config.settings_cache import reset_settings_provider

        loader._settings = None
        reset_settings_provider()
        return path

    return _write


