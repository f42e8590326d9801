"""Content-Security-Policy header injection middleware."""

from __future__ import annotations

import structlog
from starlette.requests import Request
from starlette.responses import Response

from csp_engine.config.loader import get_settings
from csp_engine.headers.composer import build_header
from csp_engine.middleware.pipeline import Middleware, RequestContext
from csp_engine.nonce import NonceManager, get_nonce_manager

logger = structlog.get_logger()


class CspHeaderMiddleware(Middleware):
    """Compose the tenant's CSP header and set it on every eligible response.

    - Uses the registry attached by TenantRouter
    - Shares the request's nonce with any markup rendered during the request
    - Replaces an existing header of the same name instead of duplicating it
    - Fails open: on any error the response goes out without the header
    """

    def __init__(self, nonce_manager: NonceManager | None = None, header_name: str | None = None) -> None:
        self._nonce_manager = nonce_manager
        self._header_name = header_name

    @property
    def nonce_manager(self) -> NonceManager:
        return self._nonce_manager or get_nonce_manager()

    @property
    def header_name(self) -> str:
        return self._header_name or get_settings().header_name

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        if context.skip_csp:
            return response

        registry = context.registry
        if registry is None or not registry.enabled:
            logger.debug("csp_disabled", tenant=context.tenant_key)
            return response

        try:
            header_value = build_header(registry, self.nonce_manager.provider_for(context))
        except Exception as exc:
            logger.error("csp_header_error", tenant=context.tenant_key, error=str(exc))
            return response

        if not header_value:
            logger.warning("csp_header_empty", tenant=context.tenant_key)
            return response

        return self._inject(response, header_value, context)

    def _inject(self, response: Response, header_value: str, context: RequestContext) -> Response:
        """Set the header, dropping any value already present under the same name."""
        try:
            if self.header_name in response.headers:
                del response.headers[self.header_name]
                logger.debug("csp_existing_header_removed", header=self.header_name)
            response.headers[self.header_name] = header_value
        except Exception as exc:
            logger.error("csp_header_write_error", header=self.header_name, error=str(exc))
            return response

        logger.debug(
            "csp_header_injected",
            header=self.header_name,
            directives=header_value.count(";") + 1,
            nonce=context.csp_nonce or "",
        )
        return response
