"""
Natours Backend — FastAPI Application Factory
===============================================

What:  Creates the FastAPI application that fronts every Natours request.
How:   Factory pattern: create_app() wires the middleware chain, a single
       catch-all endpoint feeding the request pipeline, and exception
       handlers that delegate to the same ErrorClassifier.
Who:   Called by uvicorn (uvicorn natours.main:app) and by the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Middleware Chain:                                           │
    │  ┌──────────────────┐ ┌──────────┐ ┌──────────┐              │
    │  │ Security Headers │→│ Req ID   │→│ Logging  │              │
    │  └──────────────────┘ └──────────┘ └──────────┘              │
    │                                                              │
    │  Catch-all endpoint /{path:path} (every verb):               │
    │  ┌───────────┐ ┌──────┐ ┌──────────┐ ┌───────────┐ ┌──────┐  │
    │  │ RateLimit │→│ Body │→│ Sanitize │→│ Normalize │→│Router│  │
    │  └───────────┘ └──────┘ └──────────┘ └───────────┘ └──────┘  │
    │                                                              │
    │  Errors: every stage / handler fault → ErrorClassifier       │
    └──────────────────────────────────────────────────────────────┘

Generated docs (/docs, /openapi.json) are disabled: every path that no
handler group owns must reach the router's 404 catch-all.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from natours import __version__
from natours.config import Settings, settings
from natours.exceptions import NatoursError
from natours.middleware.logging import RequestLoggingMiddleware
from natours.middleware.request_id import RequestIDMiddleware
from natours.middleware.security_headers import SecurityHeadersMiddleware
from natours.pipeline.classifier import ErrorClassifier
from natours.pipeline.rate_limit import Clock, RateWindowStore
from natours.pipeline.request import PipelineRequest
from natours.pipeline.response import PipelineResponse
from natours.pipeline.router import HandlerGroup, RouteTable
from natours.pipeline.runner import RequestPipeline, build_pipeline
from natours.routes.health import HealthGroup

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE"]


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(config: Settings) -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Called once from the lifespan, before anything else logs.
    """
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # uvicorn's own access log duplicates natours.access
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Response Conversion
# ══════════════════════════════════════════════════════════════════════════

def to_starlette_response(result: PipelineResponse) -> Response:
    if result.content is None:
        return Response(status_code=result.status_code, headers=result.headers)
    return JSONResponse(
        status_code=result.status_code,
        content=result.content,
        headers=result.headers,
    )


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI, classifier: ErrorClassifier) -> None:
    """
    Route framework-level failures through the same classifier as pipeline faults.

    Handler hierarchy:
        StarletteHTTPException → NatoursError with the same status/detail
        Exception (fallback)   → classifier (generic 500 in production)
    """

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        fault = NatoursError(
            message=str(exc.detail),
            status_code=exc.status_code,
            headers=dict(exc.headers or {}),
        )
        return to_starlette_response(classifier.respond(fault))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        return to_starlette_response(classifier.respond(exc))


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    config: Optional[Settings] = None,
    handler_groups: Optional[Mapping[str, HandlerGroup]] = None,
    store: Optional[RateWindowStore] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config:          Settings to use (defaults to the module singleton)
        handler_groups:  {prefix: group} registered in order after /health
        store:           Rate window store (defaults to in-memory)
        clock:           Limiter clock in milliseconds (defaults to monotonic)
    """
    config = config or settings

    route_table = RouteTable()
    route_table.register("/health", HealthGroup(mode=config.mode))
    for prefix, group in (handler_groups or {}).items():
        route_table.register(prefix, group)

    pipeline: RequestPipeline = build_pipeline(config, route_table, store=store, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging(config)
        logger.info("=" * 60)
        logger.info("Natours Backend starting up in %s mode", config.mode)
        logger.info(
            "Rate limit: %d requests / %dms under %s; body limit %d bytes",
            config.max_requests_per_window,
            config.window_duration_ms,
            config.api_prefix,
            config.body_size_limit_bytes,
        )
        logger.info("Handler groups: %s", ", ".join(route_table.prefixes))
        logger.info("=" * 60)

        yield

        logger.info("Natours Backend shutting down...")

    app = FastAPI(
        title="Natours API",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline

    # Middleware executes in REVERSE order of addition:
    # SecurityHeaders → RequestID → Logging → endpoint
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    register_exception_handlers(app, pipeline.classifier)

    @app.api_route("/{path:path}", methods=ALL_METHODS, include_in_schema=False)
    async def front_door(request: Request) -> Response:
        result = await pipeline.handle(PipelineRequest.from_starlette(request))
        return to_starlette_response(result)

    return app


app = create_app()
