"""Tenant router middleware: routes by Host header to the tenant's CSP settings."""

from __future__ import annotations

import structlog
from starlette.requests import Request
from starlette.responses import Response

from csp_engine.config.loader import get_settings
from csp_engine.config.settings_cache import get_settings_provider
from csp_engine.middleware.pipeline import Middleware, RequestContext
from csp_engine.middleware.skip_policy import should_skip

logger = structlog.get_logger()


def tenant_key_from_host(host: str, default: str) -> str:
    """Lower-cased host without port, or ``default`` for a blank host."""
    domain = host.split(":")[0].strip().lower() if host else ""
    return domain or default


class TenantRouter(Middleware):
    """Resolve the tenant, attach its registry and flag requests that get no header."""

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        settings = get_settings()
        context.tenant_key = tenant_key_from_host(request.headers.get("host", ""), settings.default_tenant)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=context.request_id,
            tenant=context.tenant_key,
        )

        # Skipping suppresses the header only; views still render analytics markup.
        if should_skip(request, settings):
            context.skip_csp = True
            logger.debug("csp_skipped", path=request.url.path)

        try:
            context.registry = get_settings_provider().get_registry(context.tenant_key)
        except Exception as exc:
            logger.error("csp_settings_error", tenant=context.tenant_key, error=str(exc))
            context.registry = None
        return None
