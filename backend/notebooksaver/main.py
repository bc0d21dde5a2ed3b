"""
NotebookSaver Backend — FastAPI Application Factory
=====================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes middleware registration, route mounting, error mapping
       and service lifecycle in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn (uvicorn notebooksaver.main:app) or the
       `notebooksaver` console script.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                        │
    │  Middleware:  [Request ID] → [Access log]                │
    │  Routes:      /api/extract  /api/handoff/*  /api/host/*  │
    │               /api/notifications/*  /api/models          │
    │               /api/telemetry/*  /health                  │
    │  Errors:      NotebookSaverError → status_code/error_code│
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → config check → ServiceContainer.create()
              (store schema, HTTP client, first-launch model fetch,
              drain of drafts queued before a restart)
    Shutdown: cancel open telemetry sessions, close the HTTP client,
              dispose the store engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from notebooksaver import __version__
from notebooksaver.config import Settings, settings
from notebooksaver.exceptions import NotebookSaverError
from notebooksaver.middleware.logging import RequestLoggingMiddleware
from notebooksaver.middleware.request_id import (
    RequestIdLogFilter,
    RequestIDMiddleware,
    request_id_var,
)
from notebooksaver.routes import extract, handoff, health, models, telemetry
from notebooksaver.services.container import ServiceContainer

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging once for the whole process.

    Every record carries the current request ID ("-" outside requests) via
    RequestIdLogFilter on the handler.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdLogFilter())
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s]: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    # Per-request chatter from these libraries is not useful here
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to structured JSON error responses.

    Each NotebookSaverError subclass declares its own status_code and
    error_code (see exceptions.py). Context is logged, never returned.
    """

    @app.exception_handler(NotebookSaverError)
    async def handle_app_error(request: Request, exc: NotebookSaverError):
        rid = request_id_var.get("")
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(
            level,
            "[%s] %s: %s | Context: %s",
            rid,
            type(exc).__name__,
            exc.message,
            exc.context,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "request_id": rid,
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all: stack trace to the log, generic message to the client."""
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    app_settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings: defaults to the module-level `settings`
        container: pre-wired services (tests). When given, the lifespan
                   neither creates nor closes services.
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging(app_settings.log_level)
        logger.info("NotebookSaver Backend %s starting up...", __version__)
        try:
            app_settings.validate_required_for_production()
        except ValueError as e:
            # Keep serving: Local extraction and the queue still work
            logger.error("Configuration error: %s", e)

        owns_container = getattr(app.state, "container", None) is None
        if owns_container:
            app.state.container = await ServiceContainer.create(app_settings)
        logger.info("Server ready at http://%s:%d", app_settings.backend_host, app_settings.backend_port)

        yield

        logger.info("NotebookSaver Backend shutting down...")
        if owns_container:
            await app.state.container.aclose()
        logger.info("Shutdown complete.")

    app = FastAPI(
        title="NotebookSaver API",
        description=(
            "Turns photos of notebook pages into text with Gemini or local OCR, "
            "and hands the text to the Drafts app, queueing it while the capture "
            "client is in the background."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    if container is not None:
        app.state.container = container

    # Last added runs first: RequestID wraps the access log
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(extract.router)
    app.include_router(handoff.router)
    app.include_router(models.router)
    app.include_router(telemetry.router)
    app.include_router(health.router)

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "notebooksaver.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        log_level=settings.log_level.lower(),
    )
