"""Per-request CSP nonce generation and scoping.

One nonce is created lazily per request scope and reused for every caller
in that request, so the header and any inline ``<script nonce=...>`` markup
always agree. The scope is passed explicitly: any object that accepts
attribute assignment works (``RequestContext``, ``request.state``).
"""

from __future__ import annotations

import base64
import secrets
from collections.abc import Callable
from typing import Any

import structlog

logger = structlog.get_logger()

NONCE_ATTR = "csp_nonce"
DEFAULT_NONCE_LENGTH = 32

NonceProvider = Callable[[], str]


class NonceManager:
    """Generates and scopes cryptographically random nonce tokens."""

    def __init__(self, nonce_length: int = DEFAULT_NONCE_LENGTH) -> None:
        if nonce_length <= 0:
            raise ValueError(f"nonce_length must be positive, got {nonce_length}")
        self._nonce_length = nonce_length

    @property
    def nonce_length(self) -> int:
        return self._nonce_length

    def generate_nonce(self) -> str:
        """Return a fresh base64-encoded token, unrelated to any request."""
        return base64.b64encode(secrets.token_bytes(self._nonce_length)).decode("ascii")

    def get_or_create_nonce(self, scope: Any | None) -> str:
        """Return the scope's nonce, creating and storing it on first access.

        Without a scope this degrades to ``generate_nonce()``.
        """
        if scope is None:
            logger.debug("csp_nonce_unscoped")
            return self.generate_nonce()

        existing = getattr(scope, NONCE_ATTR, None)
        if isinstance(existing, str) and existing:
            return existing

        nonce = self.generate_nonce()
        setattr(scope, NONCE_ATTR, nonce)
        return nonce

    def clear_nonce(self, scope: Any | None) -> None:
        """Forget the scope's nonce so the next access creates a new one."""
        if scope is None:
            return
        if getattr(scope, NONCE_ATTR, None):
            setattr(scope, NONCE_ATTR, None)

    def provider_for(self, scope: Any | None) -> NonceProvider:
        """Bind the manager to a scope as a zero-argument nonce provider."""

        def _provider() -> str:
            return self.get_or_create_nonce(scope)

        return _provider


_manager: NonceManager | None = None


def get_nonce_manager() -> NonceManager:
    """Get or create the singleton nonce manager sized from settings."""
    global _manager
    if _manager is None:
        from csp_engine.config.loader import get_settings

        _manager = NonceManager(get_settings().nonce_length)
    return _manager


def reset_nonce_manager() -> None:
    """Reset the singleton (for testing and config reloads)."""
    global _manager
    _manager = None
