"""Entry-point for the Seat Sync ASGI app.

This module constructs the FastAPI instance, wires global middleware, owns the
reconciliation engine through the app lifespan, registers all route groups and
exposes the `app` variable that the ASGI server imports.
"""

from __future__ import annotations

import os
import logging
import traceback
from contextlib import asynccontextmanager
from contextvars import ContextVar
from time import perf_counter
from typing import TYPE_CHECKING, AsyncIterator, Callable, Awaitable, Dict

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from slowapi import Limiter
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from seatsync import APP_ENV

# Router imports live *inside* create_app() because invites_routes imports
# `limiter` from this module.
from seatsync.utils.logger import configure_logging, logger
from seatsync.settings import ALLOWED_ORIGINS, EngineSettings

if TYPE_CHECKING:
    from seatsync.services.engine import SeatEngine

# Rate limiter (IP-based by default)
limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attach request-level context vars for structured logging."""

    _request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:  # type: ignore[override]
        start = perf_counter()
        request_id = request.headers.get("X-Request-Id", os.urandom(4).hex())
        token = self._request_id_ctx.set(request_id)
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            logger.info(
                "request.complete",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": status_code,
                    "duration_ms": round((perf_counter() - start) * 1000, 2),
                    "request_id": request_id,
                },
            )
            self._request_id_ctx.reset(token)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the engine unless one was injected, and always close it on shutdown."""
    from seatsync.services.engine import SeatEngine
    from seatsync.utils.dependencies import get_supabase_async

    engine = getattr(app.state, "engine", None)
    if engine is None:
        supabase = await anext(get_supabase_async())
        engine = SeatEngine(supabase, EngineSettings.from_env())
        app.state.engine = engine
    try:
        yield
    finally:
        await engine.close()
        logger.info("engine.closed")


def create_app(engine: "SeatEngine | None" = None) -> FastAPI:  # noqa: C901
    configure_logging()

    app = FastAPI(
        title="Seat Sync Control-Plane API",
        version="0.1.0",
        docs_url="/docs" if APP_ENV != "production" else None,
        redoc_url=None,
        openapi_url="/openapi.json" if APP_ENV != "production" else None,
        lifespan=lifespan,
    )
    app.state.engine = engine

    # Global middleware
    app.add_middleware(RequestContextMiddleware)
    # Rate limiting middleware (SlowAPI expects limiter via app.state)
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    # Register default handler for 429 responses from SlowAPI
    from slowapi.errors import RateLimitExceeded  # noqa: WPS433  (runtime import)
    from slowapi import _rate_limit_exceeded_handler

    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Global exception handler - logs full tracebacks for any unhandled 500s
    @app.exception_handler(Exception)
    async def log_unhandled_exceptions(request: Request, exc: Exception):
        """Log full traceback for any unhandled exception that would become a 500."""
        error_logger = logging.getLogger("uvicorn.error")
        error_logger.error(
            "UNHANDLED %s at %s %s\n%s",
            type(exc).__name__,
            request.method,
            request.url.path,
            "".join(traceback.format_tb(exc.__traceback__))
        )
        # Re-raise so FastAPI still returns the appropriate status code
        raise exc

    # -------------------------------------------------------------------
    # Dashboard CORS (env-driven allow-list)
    # -------------------------------------------------------------------

    logger.info("cors.origins", extra={"allowed_origins": ALLOWED_ORIGINS})
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        max_age=600,
    )

    # Health check
    @app.get("/")
    async def root() -> Dict[str, str]:  # pylint: disable=unused-variable
        return {"status": "ok"}

    # -------------------------------------------------------------------
    # Public (unauthenticated) sub-app → wildcard CORS
    # -------------------------------------------------------------------
    public_app = FastAPI(
        title="Seat Sync Public API",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    public_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        max_age=600,
    )
    app.mount("/public", public_app)

    # Expose the private API's schema at /public/openapi.yaml
    from seatsync.openapi import install_openapi_route  # noqa: WPS433 (runtime import)

    install_openapi_route(public_app, source_app=app)

    # Register routers – static /v1/accounts paths are declared before /{account_id}
    from seatsync.routers import accounts_routes, invites_routes, live_routes
    app.include_router(invites_routes.router)
    app.include_router(accounts_routes.router)
    app.include_router(live_routes.router)

    return app

# The object the ASGI server imports
app = create_app()
