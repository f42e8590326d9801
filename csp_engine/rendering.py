"""Nonce-aware helpers for views and templates that emit inline scripts."""

from __future__ import annotations

import html

import structlog
from starlette.requests import Request

from csp_engine.headers.analytics import google_tag_manager_noscript, google_tag_manager_script
from csp_engine.middleware.pipeline import RequestContext
from csp_engine.models.registry import DirectiveRegistry
from csp_engine.nonce import NonceManager, get_nonce_manager

logger = structlog.get_logger()

CONTEXT_STATE_ATTR = "csp_context"


class NonceAwareRenderer:
    """Gives rendering code the request's nonce and the Tag Manager markup.

    Uses the same request scope as the header middleware, so scripts
    rendered here carry the nonce that appears in the header.
    """

    def __init__(self, context: RequestContext | None, nonce_manager: NonceManager | None = None) -> None:
        self._context = context
        self._nonce_manager = nonce_manager or get_nonce_manager()

    @property
    def registry(self) -> DirectiveRegistry | None:
        return self._context.registry if self._context is not None else None

    @property
    def current_nonce(self) -> str:
        """The request's nonce, or "" if the random source failed."""
        try:
            return self._nonce_manager.get_or_create_nonce(self._context)
        except Exception as exc:
            logger.error("csp_nonce_unavailable", error=str(exc))
            return ""

    def is_nonce_enabled(self) -> bool:
        registry = self.registry
        return registry is not None and registry.enable_nonce

    def is_google_analytics_enabled(self) -> bool:
        registry = self.registry
        return registry is not None and registry.enable_google_analytics

    def google_tag_manager_script(self) -> str:
        if not self.is_google_analytics_enabled():
            return ""
        nonce = self.current_nonce if self.is_nonce_enabled() else None
        return google_tag_manager_script(self.registry, nonce)

    def google_tag_manager_noscript(self) -> str:
        if not self.is_google_analytics_enabled():
            return ""
        return google_tag_manager_noscript(self.registry)

    def create_nonce_script(self, script_content: str, additional_attributes: str = "") -> str:
        """Wrap inline JavaScript in a ``<script>`` tag carrying the request nonce.

        ``additional_attributes`` is inserted verbatim, e.g. ``type="module"``.
        """
        if not script_content or not script_content.strip():
            return ""
        nonce = html.escape(self.current_nonce, quote=True)
        attributes = f" {additional_attributes.strip()}" if additional_attributes and additional_attributes.strip() else ""
        return f'<script nonce="{nonce}"{attributes}>{script_content}</script>'


def renderer_for(request: Request, nonce_manager: NonceManager | None = None) -> NonceAwareRenderer:
    """Build a renderer bound to the pipeline context stored on the request."""
    context = getattr(request.state, CONTEXT_STATE_ATTR, None)
    return NonceAwareRenderer(context, nonce_manager)
