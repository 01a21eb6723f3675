"""
RefMan Backend — FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() assembles middleware, exception handlers and routers.
Who:   uvicorn (uvicorn refman.main:app) and the endpoint tests.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware:  Request ID → Logging → GZip → CORS         │
    │                                                          │
    │  Routes:                                                 │
    │   /api/entries  /api/dump  /api/search  (relational)     │
    │   /api/keywords                          (relational)    │
    │   /api/v0/items                          (flat-file)     │
    │   /api/utils/metadata  /api/utils/archive                │
    │   /health                                                │
    │                                                          │
    │  Exception Handlers:                                     │
    │   Validation→400  NotFound→404  Conflict→409             │
    │   Storage→500     MetadataFetch→502                      │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, storage directories, SQLite tables
    Shutdown: dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from refman import __version__
from refman.config import settings
from refman.database import dispose_engine, init_models
from refman.exceptions import (
    ConflictError,
    DatabaseError,
    FileStorageError,
    MetadataFetchError,
    NotFoundError,
    RefmanError,
    ValidationError,
)
from refman.middleware.logging import RequestLoggingMiddleware
from refman.middleware.request_id import RequestIDMiddleware, request_id_var
from refman.routes import entries, health, items, keywords, utils
from refman.services.json_store import json_item_store

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole application.

    Called once at startup, before anything else logs.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),  # Docker captures stdout
        ],
        force=True,
    )

    # Third-party libraries log every query / connection at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("RefMan Backend starting up (storage backend: %s)", settings.storage_backend)

    json_item_store.ensure_directories()
    logger.info("Item storage: %s (trash: %s)", json_item_store.root, json_item_store.trash)

    # PostgreSQL deployments run `alembic upgrade head` instead
    if settings.is_sqlite:
        await init_models()
        logger.info("SQLite tables ready")

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("RefMan Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Shared error body: {error, message, details?, request_id}."""
    body: Dict[str, Any] = {"error": code, "message": message}
    if details:
        body["details"] = details
    body["request_id"] = request_id_var.get("")
    return JSONResponse(status_code=status_code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map domain exceptions to status codes.

    Handler hierarchy:
        ValidationError     → 400 Bad Request (context echoed as details)
        NotFoundError       → 404 Not Found
        ConflictError       → 409 Conflict (context echoed as details)
        DatabaseError       → 500 (generic message, context logged only)
        FileStorageError    → 500 (context logged only)
        MetadataFetchError  → 502 Bad Gateway
        RefmanError (base)  → 500
        Exception           → 500 (stack trace logged, never returned)
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, exc.code, exc.message, exc.context)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, exc.code, exc.message)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        logger.warning("[%s] Conflict: %s", request_id_var.get(""), exc.message)
        return _error_response(409, exc.code, exc.message, exc.context)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s",
            request_id_var.get(""), exc.message, exc.context,
        )
        return _error_response(500, exc.code, "An internal error occurred. Please try again later.")

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error(
            "[%s] File storage error: %s | Context: %s",
            request_id_var.get(""), exc.message, exc.context,
        )
        return _error_response(500, exc.code, exc.message)

    @app.exception_handler(MetadataFetchError)
    async def handle_metadata_fetch_error(request: Request, exc: MetadataFetchError):
        logger.error("[%s] Metadata fetch failed: %s", request_id_var.get(""), exc.message)
        return _error_response(502, exc.code, exc.message, exc.context)

    @app.exception_handler(RefmanError)
    async def handle_refman_error(request: Request, exc: RefmanError):
        logger.error(
            "[%s] %s: %s | Context: %s",
            request_id_var.get(""), type(exc).__name__, exc.message, exc.context,
        )
        return _error_response(500, exc.code, exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="RefMan API",
        description=(
            "Bookmark and reference manager. Store bibliographic entries with "
            "free-form details and keywords, search them, and scrape metadata "
            "from web pages."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Middleware executes in reverse order of addition:
    # RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.cors_origins_list != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Content-Disposition"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(entries.router)
    app.include_router(keywords.router)
    app.include_router(items.router)
    app.include_router(utils.router)
    app.include_router(health.router)

    return app


# uvicorn expects `refman.main:app` to be importable
app = create_app()
