"""
TalentDesk Backend: FastAPI Application Factory
===============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers;
       the lifespan handler prepares logging and storage and releases the
       database pool on shutdown.
Who:   uvicorn (`uvicorn talentdesk.main:app`) and the test client.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                        │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌────────────┐ ┌──────────┐ ┌─────────┐ ┌──────┐ ┌────┐ │
    │  │ Rate Limit │→│ Req ID   │→│ Logging │→│ GZip │→│CORS│ │
    │  └────────────┘ └──────────┘ └─────────┘ └──────┘ └────┘ │
    │                                                          │
    │  Routers:                                                │
    │  health · auth · users · pipelines · candidates ·        │
    │  activity · tags · templates · search · analytics ·      │
    │  imports                                                 │
    │                                                          │
    │  Exception Handlers:                                     │
    │  TalentDeskError subclasses → 400/401/403/404/409/429/   │
    │  500/502/503 · request validation → 400 · other → 500    │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:   logging → configuration check → storage directory
    Shutdown:  dispose database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Dict, Tuple, Type

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from talentdesk import __version__
from talentdesk.config import settings
from talentdesk.database import dispose_engine
from talentdesk.exceptions import (
    AuthenticationError,
    CircuitBreakerOpenError,
    ConflictError,
    DatabaseError,
    EmailDeliveryError,
    FileStorageError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitExceededError,
    TalentDeskError,
    ValidationError,
)
from talentdesk.middleware.logging import RequestLoggingMiddleware
from talentdesk.middleware.rate_limit import RateLimitMiddleware
from talentdesk.middleware.request_id import RequestIDMiddleware, request_id_var
from talentdesk.routes import (
    activity,
    analytics,
    auth,
    candidates,
    health,
    imports,
    pipelines,
    search,
    tags,
    templates,
    users,
)

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configures the root logger once, writing to stdout.

    Format: 2024-01-01T12:00:00 [INFO] talentdesk.services.merge_service: ...

    The request id is not part of the format; the access logger includes
    it in the message and in `extra` for structured handlers.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Chatty at INFO for every request or statement
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("TalentDesk Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health and the error responses stay reachable
        logger.error("Configuration error: %s", str(e))

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())
    logger.info("Email delivery mode: %s", settings.email_delivery_mode)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("TalentDesk Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

# exception → (HTTP status, error code, include context as `details`)
ERROR_MAP: Dict[Type[TalentDeskError], Tuple[int, str, bool]] = {
    ValidationError: (400, "validation_error", True),
    AuthenticationError: (401, "unauthorized", False),
    PermissionDeniedError: (403, "forbidden", True),
    NotFoundError: (404, "not_found", False),
    ConflictError: (409, "conflict", True),
    EmailDeliveryError: (502, "email_delivery_failed", True),
}


def error_body(code: str, message: str, details=None) -> dict:
    body = {"error": code, "message": message, "request_id": request_id_var.get("")}
    if details:
        body["details"] = jsonable_encoder(details)
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Maps exceptions to status codes and the shared error body:

        {"error": code, "message": str, "details": {...}?, "request_id": str}

    Internal details (SQL, file paths, stack traces) are logged and never
    returned; 500 responses always carry a generic message.
    """

    @app.exception_handler(TalentDeskError)
    async def handle_app_error(request: Request, exc: TalentDeskError):
        # Handlers are looked up along the MRO, so subclasses land here
        status, code, with_details = next(
            (ERROR_MAP[cls] for cls in type(exc).__mro__ if cls in ERROR_MAP),
            (500, "server_error", False),
        )
        rid = request_id_var.get("")
        if status >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        elif status != 404:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
        return JSONResponse(
            status_code=status,
            content=error_body(code, exc.message, exc.context if with_details else None),
        )

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            status_code=429,
            content=error_body("rate_limit_exceeded", exc.message, exc.context),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=503,
            content=error_body("service_unavailable", exc.message, exc.context),
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error("[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=error_body("server_error", "An internal error occurred. Please try again later."),
        )

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error("[%s] File storage error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return JSONResponse(status_code=500, content=error_body("server_error", exc.message))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        """Malformed body, query or path values are reported as 400, like business rule violations."""
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=error_body("validation_error", "Invalid request", {"errors": errors}),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="TalentDesk API",
        description=(
            "Recruiting CRM: pipelines and stages, candidates with notes, tags, "
            "attachments and emails, CV imports, duplicate detection and merging, "
            "search and analytics."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware ────────────────────────────────────────────────────────
    # Executes in reverse order of addition: RateLimit runs first, CORS last
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,  # session cookie
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    # ── Routers ───────────────────────────────────────────────────────────
    for module in (
        health,
        auth,
        users,
        pipelines,
        candidates,
        activity,
        tags,
        templates,
        search,
        analytics,
        imports,
    ):
        app.include_router(module.router)

    return app


app = create_app()
