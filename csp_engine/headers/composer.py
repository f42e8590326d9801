"""Compose the Content-Security-Policy header value from a directive registry."""

from __future__ import annotations

from csp_engine.headers.analytics import ANALYTICS_DIRECTIVES, inject_analytics_sources
from csp_engine.models.registry import DIRECTIVE_FIELDS, DirectiveRegistry
from csp_engine.nonce import NonceProvider
from csp_engine.utils.sanitize import collapse_whitespace, split_tokens

UPGRADE_INSECURE_REQUESTS = "upgrade-insecure-requests"
BLOCK_ALL_MIXED_CONTENT = "block-all-mixed-content"
REPORT_URI = "report-uri"

DIRECTIVE_ORDER: tuple[str, ...] = (
    *DIRECTIVE_FIELDS,
    UPGRADE_INSECURE_REQUESTS,
    BLOCK_ALL_MIXED_CONTENT,
    REPORT_URI,
)


def sanitize_directive_value(value: str | None) -> str:
    """Collapse whitespace (incl. tab/CR/LF) to single spaces and trim.

    Guards against header splitting through control characters in
    configuration data.
    """
    return collapse_whitespace(value)


def is_truthy_flag(value: str | bool | None) -> bool:
    """Interpret a CMS checkbox/string flag: "1" or "true" (any case)."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    flag = str(value).strip()
    return flag == "1" or flag.lower() == "true"


def nonce_source(nonce: str) -> str:
    return f"'nonce-{nonce}'"


def _directive_tokens(registry: DirectiveRegistry, directive: str, nonce: str | None) -> list[str]:
    if directive in ANALYTICS_DIRECTIVES:
        tokens = split_tokens(" ".join(inject_analytics_sources(registry, directive)))
    else:
        tokens = split_tokens(registry.directive_value(directive))

    if directive == "script-src" and nonce:
        source = nonce_source(nonce)
        if source not in tokens:
            tokens.append(source)
    return tokens


def compose_directives(registry: DirectiveRegistry, nonce: str | None = None) -> dict[str, list[str]]:
    """Return the ordered {directive: [sources]} mapping for an enabled registry.

    Valueless directives map to an empty list; blank directives are omitted.
    """
    directives: dict[str, list[str]] = {}
    for directive in DIRECTIVE_FIELDS:
        tokens = _directive_tokens(registry, directive, nonce)
        if tokens:
            directives[directive] = tokens

    if is_truthy_flag(registry.upgrade_insecure_requests):
        directives[UPGRADE_INSECURE_REQUESTS] = []
    if registry.block_all_mixed_content:
        directives[BLOCK_ALL_MIXED_CONTENT] = []

    report_uri = split_tokens(registry.report_uri)
    if report_uri:
        directives[REPORT_URI] = report_uri
    return directives


def build_csp(directives: dict[str, list[str]]) -> str:
    """Build a CSP string from {directive: [values]} dict.

    Example:
        >>> build_csp({"default-src": ["'self'"], "script-src": ["'self'", "https:"]})
        "default-src 'self'; script-src 'self' https:"
    """
    parts = []
    for directive, values in directives.items():
        if values:
            parts.append(f"{directive} {' '.join(values)}")
        else:
            parts.append(directive)
    return "; ".join(parts)


def build_header(registry: DirectiveRegistry | None, nonce_provider: NonceProvider | None = None) -> str:
    """Build the Content-Security-Policy header value.

    Returns "" when the registry is missing, disabled, or yields no clauses.
    The nonce provider is called at most once, and only when nonces are
    enabled; its exceptions propagate to the caller.
    """
    if registry is None or not registry.enabled:
        return ""

    nonce = None
    if registry.enable_nonce and nonce_provider is not None:
        nonce = sanitize_directive_value(nonce_provider()) or None

    return build_csp(compose_directives(registry, nonce))
