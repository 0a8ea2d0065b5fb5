"""
Pilbum Backend — FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires middleware, exception handlers and routers;
       uvicorn serves the module-level `app` (uvicorn pilbum.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                        │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌────────────┐ ┌────────┐ ┌─────────┐ ┌──────┐ ┌──────┐ │
    │  │ Rate Limit │→│ Req ID │→│ Logging │→│ GZip │→│ CORS │ │
    │  └────────────┘ └────────┘ └─────────┘ └──────┘ └──────┘ │
    │                                                          │
    │  Routes:                                                 │
    │  photos · upload · auth · admin/users · admin · site     │
    │  /uploads/{path} · /health                               │
    │                                                          │
    │  Exception Handlers:                                     │
    │  PilbumError → its status │ request validation → 400     │
    │  anything else → 500                                     │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, storage directory, schema status report.
    Shutdown: dispose the database engine.

The schema is not created at startup: a fresh install reports ready=false on
GET /api/admin/db and the setup page calls POST /api/admin/db.
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from pilbum import __version__
from pilbum.config import settings
from pilbum.database import check_schema, dispose_engine
from pilbum.exceptions import PilbumError, RateLimitExceededError
from pilbum.middleware.logging import RequestLoggingMiddleware
from pilbum.middleware.rate_limit import RateLimitMiddleware
from pilbum.middleware.request_id import RequestIDMiddleware, request_id_var
from pilbum.routes import admin, auth, health, photos, site, uploads, users

logger = logging.getLogger(__name__)

# Libraries that log every query, request or decoded image at INFO/DEBUG
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "botocore", "azure", "PIL")


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once at startup.

    Format: 2024-01-15T12:00:00 [INFO] pilbum.services.photo_service: message
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Pilbum Backend %s starting up...", __version__)

    if settings.storage_provider == "local":
        storage_root = Path(settings.local_storage_path)
        storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("Local storage: %s", storage_root.resolve())
    elif not settings.is_storage_configured():
        logger.warning("Storage provider '%s' is missing credentials", settings.storage_provider)

    ready, message = await check_schema()
    if ready:
        logger.info("Database: %s", message)
    else:
        logger.warning("Database: %s (POST /api/admin/db to initialize)", message)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Pilbum Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(error: str, message: str, details=None) -> dict:
    return {
        "error": error,
        "message": message,
        "details": details or None,
        "request_id": request_id_var.get("") or None,
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    Every error leaves the API as {"error", "message", "details", "request_id"}.

    Handler hierarchy:
        PilbumError            → exc.status_code (400/401/403/404/409/429/500/503)
        RequestValidationError → 400 with the first field's message
        Exception (fallback)   → 500, details logged server-side only

    Server-side (5xx) errors never echo their context to the client.
    """

    @app.exception_handler(PilbumError)
    async def handle_pilbum_error(request: Request, exc: PilbumError):
        rid = request_id_var.get("")
        headers = {}
        if isinstance(exc, RateLimitExceededError):
            headers["Retry-After"] = str(exc.retry_after)

        if exc.is_client_error:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
            details = exc.context
        else:
            logger.error("[%s] %s: %s | context=%r", rid, type(exc).__name__, exc.message, exc.context)
            details = None

        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, exc.message, details),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        message = first.get("msg") or "请求参数无效"
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
        logger.warning("[%s] Request validation failed: %s (%s)", request_id_var.get(""), message, field)
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", message, {"field": field} if field else None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body("internal_server_error", "服务器内部错误，请稍后重试"),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Pilbum API",
        description=(
            "Self-hosted photo album: gallery, uploads with EXIF extraction and "
            "Live Photo support, multi-user administration."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(photos.router)
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(admin.router)
    app.include_router(site.router)
    app.include_router(uploads.router)
    app.include_router(health.router)

    return app


app = create_app()
