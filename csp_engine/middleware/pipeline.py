"""Ordered middleware chain framework."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from uuid import uuid4

import structlog
from starlette.requests import Request
from starlette.responses import Response

from csp_engine.models.registry import DirectiveRegistry

logger = structlog.get_logger()


@dataclass
class RequestContext:
    """Per-request scope passed explicitly through the pipeline.

    Holds the request's CSP nonce; never shared between requests.
    """

    request_id: str = ""
    tenant_key: str = ""
    registry: DirectiveRegistry | None = None
    csp_nonce: str | None = None
    skip_csp: bool = False

    def __post_init__(self):
        if not self.request_id:
            self.request_id = uuid4().hex[:8]


class Middleware(abc.ABC):
    """Base class for middleware in the pipeline."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abc.abstractmethod
    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        """Process an incoming request.

        Return None to continue the pipeline, or a Response to short-circuit.
        """
        ...

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        """Process an outgoing response. Override if needed."""
        return response


class MiddlewarePipeline:
    """Ordered list of middleware. Executes request handlers forward, response handlers in reverse."""

    def __init__(self) -> None:
        self._middleware: list[Middleware] = []

    def add(self, middleware: Middleware) -> None:
        """Add a middleware to the end of the pipeline."""
        self._middleware.append(middleware)
        logger.info("middleware_registered", name=middleware.name)

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        """Run request through all middleware in order.

        Returns a Response if any middleware short-circuits, otherwise None.
        A failing middleware is logged and skipped: CSP handling must never
        fail the request it decorates.
        """
        for mw in self._middleware:
            try:
                result = await mw.process_request(request, context)
            except Exception:
                logger.exception("middleware_request_error", middleware=mw.name)
                continue
            if isinstance(result, Response):
                logger.info("middleware_short_circuit", middleware=mw.name)
                return result
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        """Run response through all middleware in reverse order.

        Individual middleware exceptions are caught so one broken middleware
        doesn't corrupt the response.
        """
        for mw in reversed(self._middleware):
            try:
                response = await mw.process_response(response, context)
            except Exception:
                logger.exception("middleware_response_error", middleware=mw.name)
        return response
