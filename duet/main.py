"""
Duet — FastAPI Application Entry Point

- Async lifespan management (persistent store, responder shutdown)
- CORS and structured-logging middleware
- Error taxonomy mapped to HTTP status codes
- Health-check endpoint
"""

from __future__ import annotations

import logging
import random
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from duet.config import Settings, get_settings
from duet.exceptions import ConfigurationError, StorageError, ValidationError
from duet.services.document_store import DocumentStore
from duet.services.duet_service import DuetService
from duet.utils.storage import open_store

# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(get_settings().LOG_LEVEL.upper())
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger("duet")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store on startup; cancel pending replies and close it on
    shutdown."""
    settings: Settings = app.state.settings

    logger.info(
        "startup_begin",
        environment=settings.ENVIRONMENT,
        store_backend=settings.STORE_BACKEND,
    )

    backend = await open_store(settings)
    app.state.duet = DuetService(DocumentStore(backend), settings=settings)
    app.state.rng = random.Random()

    logger.info("startup_complete")

    yield

    logger.info("shutdown_begin")
    await app.state.duet.close()
    logger.info("shutdown_complete")


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.exception(
                "request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "request_handled",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        return response


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

async def _validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.info("request_rejected", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=422, content={"detail": str(exc)})


async def _configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.info("request_not_configured", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=409, content={"detail": str(exc)})


async def _storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("storage_failure", path=request.url.path, key=exc.key, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "Storage is unavailable, try again."})


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Duet",
        description="Rate couples, get matched, start a conversation",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
    )
    app.state.settings = settings

    # -- Middleware (applied in reverse order, last added runs first) ------- #

    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ValidationError, _validation_error_handler)
    app.add_exception_handler(ConfigurationError, _configuration_error_handler)
    app.add_exception_handler(StorageError, _storage_error_handler)

    @app.get("/health", tags=["health"])
    async def health_liveness() -> dict:
        """Liveness probe; reports which store backend is active."""
        return {"status": "healthy", "store": settings.STORE_BACKEND}

    from duet.api.router import router as api_router

    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
