"""Decide whether a request should be left without a CMS-driven CSP header."""

from __future__ import annotations

from starlette.requests import Request

from csp_engine.config.loader import CspEngineSettings


def is_static_asset(path: str, settings: CspEngineSettings) -> bool:
    path = path.lower()
    return any(path.endswith(ext.lower()) for ext in settings.static_extensions)


def is_admin_path(path: str, settings: CspEngineSettings) -> bool:
    path = path.lower()
    for prefix in settings.admin_path_prefixes:
        prefix = prefix.lower().rstrip("/")
        if prefix and (path == prefix or path.startswith(prefix + "/")):
            return True
    return False


def is_content_editing_mode(request: Request, settings: CspEngineSettings) -> bool:
    """True for editor, preview and debug requests, by query parameter or path."""
    query_keys = {key.lower() for key in request.query_params.keys()}
    if any(param.lower() in query_keys for param in settings.editing_query_params):
        return True

    path = request.url.path.lower()
    return any(marker.lower() in path for marker in settings.editing_path_markers)


def should_skip(request: Request, settings: CspEngineSettings) -> bool:
    """Return True when CSP composition must not run for this request."""
    path = request.url.path
    if is_admin_path(path, settings):
        return True
    if settings.skip_during_editing and is_content_editing_mode(request, settings):
        return True
    return is_static_asset(path, settings)
