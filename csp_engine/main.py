"""FastAPI application wiring the CSP pipeline around every request."""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import Response

from csp_engine.config.loader import load_settings, register_reload_handler
from csp_engine.config.settings_cache import reset_settings_provider
from csp_engine.health import router as health_router
from csp_engine.logging_config import setup_logging
from csp_engine.middleware.csp_header import CspHeaderMiddleware
from csp_engine.middleware.pipeline import MiddlewarePipeline, RequestContext
from csp_engine.middleware.router import TenantRouter
from csp_engine.nonce import reset_nonce_manager
from csp_engine.rendering import CONTEXT_STATE_ATTR

logger = structlog.get_logger()

_pipeline: MiddlewarePipeline | None = None


def _build_pipeline() -> MiddlewarePipeline:
    """Build the ordered middleware pipeline.

    TenantRouter resolves settings on the way in; CspHeaderMiddleware writes
    the header on the way out.
    """
    pipeline = MiddlewarePipeline()
    pipeline.add(TenantRouter())          # 0: tenant, skip policy, registry
    pipeline.add(CspHeaderMiddleware())   # 1: compose and set the header
    return pipeline


def get_pipeline() -> MiddlewarePipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = _build_pipeline()
    return _pipeline


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    global _pipeline

    settings = load_settings()
    setup_logging(log_level=settings.log_level, json_format=settings.log_json)
    register_reload_handler()

    # Rebuild singletons from the freshly loaded settings
    reset_settings_provider()
    reset_nonce_manager()
    _pipeline = _build_pipeline()

    logger.info("csp_engine_started", registry_file=settings.registry_file, header=settings.header_name)

    yield

    logger.info("csp_engine_stopped")


async def csp_pipeline_middleware(request: Request, call_next) -> Response:
    """Run the CSP pipeline around the downstream handler."""
    pipeline = get_pipeline()
    context = RequestContext()
    setattr(request.state, CONTEXT_STATE_ATTR, context)

    # The nonce stays on the context until the streamed body, if any, is done.
    short_circuit = await pipeline.process_request(request, context)
    if short_circuit is not None:
        return await pipeline.process_response(short_circuit, context)

    response = await call_next(request)
    return await pipeline.process_response(response, context)


def create_app() -> FastAPI:
    """Create the application with health routes and the CSP middleware installed."""
    application = FastAPI(title="CSP Engine", lifespan=lifespan)
    application.include_router(health_router)
    application.middleware("http")(csp_pipeline_middleware)
    return application


app = create_app()
