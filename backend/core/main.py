"""
Core Service — FastAPI Application Factory
============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app(context) registers the middleware chain, exception handlers
       and routes, and stores the AppContext on app.state.context.
Who:   Called by core.server once the AppContext has been built, and by tests
       with a hand-built context.

Request pipeline (outermost first):
    CORS → Logging → Rate Limit → Auth (auth prefix only)
         → Monitoring (non-local only) → Route Handler

    Starlette runs the last-added middleware first, so create_app() adds
    them innermost-first.

Error translation:
    Handlers raise ServiceError subclasses instead of writing error responses.
        ServiceError (incl. Validation/Storage)  → 400 {"error": message}
        NotFoundError                            → 400 {"error": "No email found. Please sign up."}
        AuthenticationError                      → 401 {"error": message}
        Exception                                → 500 {"error": generic message}
    The 429 rate-limit body is written by RateLimitMiddleware itself; errors
    raised in middleware never reach these handlers.

Lifespan:
    Startup:  start the rate-limit sweeper task
    Shutdown: cancel the sweeper, dispose the database engine, flush monitoring
"""

import asyncio
import contextlib
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core import __version__
from core.context import AppContext
from core.database import dispose_engine
from core.exceptions import (
    AuthenticationError,
    NotFoundError,
    ServiceError,
)
from core.middleware.auth import AuthMiddleware
from core.middleware.logging import RequestLoggingMiddleware
from core.middleware.rate_limit import RateLimitMiddleware
from core.routes import probe, session
from core.services.monitoring import SentryAsgiMiddleware, flush_monitoring

logger = logging.getLogger(__name__)

NO_ROWS_MESSAGE = "No email found. Please sign up."
ALLOWED_METHODS = ["GET", "POST", "PATCH", "PUT", "DELETE"]


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Format: 2026-01-15T12:00:00 [INFO] core.access: GET - /api/probe (10.0.0.7) 200 0.4ms
    Called once by the server entry point, before any other initialization.
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    context: AppContext = app.state.context

    sweeper = asyncio.create_task(
        context.rate_limiter.run_sweeper(), name="rate-limit-sweeper"
    )
    logger.info("Core service ready (env=%s)", context.settings.env)

    yield

    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper

    if context.engine is not None:
        await dispose_engine(context.engine)
    if context.monitoring:
        flush_monitoring()
    logger.info("Core service application stopped")


# ══════════════════════════════════════════════════════════════════════════
# Error Translation
# ══════════════════════════════════════════════════════════════════════════

def format_error(exc: ServiceError) -> dict:
    """{"error": message}, with the no-rows storage outcome rewritten for users."""
    if isinstance(exc, NotFoundError):
        return {"error": NO_ROWS_MESSAGE}
    return {"error": exc.message}


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return JSONResponse(status_code=401, content={"error": exc.message})

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        """Handler-reported failure: always a client error with a readable message."""
        logger.warning(
            "%s %s failed: %s | Context: %s",
            request.method,
            request.url.path,
            exc.message,
            exc.context,
        )
        return JSONResponse(status_code=400, content=format_error(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Stack trace goes to the log only; the client gets a generic message."""
        logger.error(
            "Unexpected error on %s %s: %s",
            request.method,
            request.url.path,
            str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "An unexpected error occurred. Please try again later."},
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(context: AppContext) -> FastAPI:
    """
    Assemble the application around an already-built AppContext.

    Returns: Fully configured FastAPI instance; nothing is connected here.
    """
    settings = context.settings
    app = FastAPI(
        title="Core API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.context = context

    # ── Register Middleware (innermost first) ─────────────────────────────
    if context.monitoring:
        app.add_middleware(SentryAsgiMiddleware)

    if context.verifier is not None:
        app.add_middleware(
            AuthMiddleware,
            verifier=context.verifier,
            prefix=settings.auth_prefix,
        )
    else:
        logger.warning("No token verifier configured; %s routes are not mounted", settings.auth_prefix)

    app.add_middleware(RateLimitMiddleware, limiter=context.rate_limiter)
    app.add_middleware(RequestLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=ALLOWED_METHODS,
        allow_headers=["*"],
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(probe.router)
    if context.verifier is not None:
        app.include_router(session.build_router(settings.auth_prefix))

    return app
