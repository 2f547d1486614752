"""API application factory."""

from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from investrisk.cache.client import VALKEY_ERRORS
from investrisk.core.config import settings
from investrisk.core.exceptions import register_exception_handlers
from investrisk.core.logging import get_logger, request_id_var, setup_logging
from investrisk.schemas.common import ErrorResponse

from .routes import alerts, health, jobs, search


logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database engine and Valkey client; close them with the AI client."""
    from investrisk.cache.client import close_valkey_client, get_valkey_client
    from investrisk.database.connection import (
        close_sqlalchemy_engine,
        init_sqlalchemy_engine,
    )
    from investrisk.services.ai.client import close_client_manager

    setup_logging()
    try:
        await init_sqlalchemy_engine()
        await get_valkey_client()
    except (SQLAlchemyError, *VALKEY_ERRORS) as e:
        logger.warning(f"Resource initialization failed (may be ok in tests): {e}")

    yield

    try:
        await close_sqlalchemy_engine()
        await close_valkey_client()
        await close_client_manager()
    except (SQLAlchemyError, *VALKEY_ERRORS) as e:
        logger.warning(f"Resource cleanup failed: {e}")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id, echoed back in ``X-Request-ID``."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        request_id_var.set(request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.monotonic()
        response = await call_next(request)
        duration = time.monotonic() - start_time

        # Path only; query strings may carry search text
        path = request.url.path
        logger.info(
            f"{request.method} {path} -> {response.status_code} ({duration:.3f}s)",
            extra={
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": int(duration * 1000),
            },
        )
        return response


def create_api_app() -> FastAPI:
    """Create and configure the API application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Risk scoring, anomaly detection and asset search API",
        root_path=settings.root_path,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        responses={
            400: {"model": ErrorResponse, "description": "Bad Request"},
            404: {"model": ErrorResponse, "description": "Not Found"},
            422: {"model": ErrorResponse, "description": "Validation Error"},
            500: {"model": ErrorResponse, "description": "Internal Server Error"},
        },
    )

    # First added is outermost
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        max_age=600,
    )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["Health"])
    app.include_router(jobs.router, prefix="/jobs", tags=["Jobs"])
    app.include_router(alerts.router, prefix="/alerts", tags=["Alerts"])
    app.include_router(search.router, prefix="/search", tags=["Search"])

    return app
