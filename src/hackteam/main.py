"""FastAPI application entry point."""

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException

from hackteam import __version__
from hackteam.api import admin, problem_statements, teams, votes
from hackteam.api.errors import (
    APIError,
    RequestIDMiddleware,
    api_error_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from hackteam.api.rate_limit import limiter, rate_limit_exceeded_handler
from hackteam.config import settings
from hackteam.db import get_session, init_db
from hackteam.db.database import dispose_engine
from hackteam.logging_config import setup_logging
from hackteam.services.metrics import (
    CONTENT_TYPE_LATEST,
    MetricsMiddleware,
    get_metrics,
    update_gauge_metrics,
)

# Track application start time for uptime calculation
_app_start_time = time.time()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging(settings.environment, settings.log_level)

    if settings.environment == "production" and settings.auth_disabled:
        logger.warning(
            "SECURITY WARNING: Identity checks are disabled in production! "
            "Set AUTH_DISABLED=false for production deployments."
        )
    if not settings.voting_enabled:
        logger.info("Voting is closed; vote writes will be rejected")

    await init_db()

    yield
    # Clean up database connections on shutdown
    await dispose_engine()


app = FastAPI(
    title="Hackteam",
    description="Hackathon team formation and peer voting",
    version=__version__,
    lifespan=lifespan,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
# Only add rate limiting middleware if enabled
if settings.rate_limit_enabled:
    app.add_middleware(SlowAPIMiddleware)

# Request ID middleware (must be added first to wrap all other middleware)
app.add_middleware(RequestIDMiddleware)

# Prometheus metrics middleware
app.add_middleware(MetricsMiddleware)

# CORS middleware
allow_methods = ["*"]
if settings.environment == "production":
    allow_methods = settings.cors_allow_methods

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=allow_methods,
    allow_headers=["*"],
)

# Exception handlers (type: ignore needed for Starlette handler signatures)
app.add_exception_handler(APIError, api_error_handler)  # type: ignore[arg-type]
app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(ValidationError, validation_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(
    RequestValidationError,
    validation_exception_handler,  # type: ignore[arg-type]
)
app.add_exception_handler(Exception, generic_exception_handler)

# API v1 router
api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(teams.router, prefix="/teams", tags=["teams"])
api_v1.include_router(
    problem_statements.router, prefix="/problem-statements", tags=["problem-statements"]
)
api_v1.include_router(votes.router, prefix="/votes", tags=["votes"])
api_v1.include_router(admin.router, prefix="/admin", tags=["admin"])

app.include_router(api_v1)


@app.get("/metrics")
async def metrics() -> PlainTextResponse:
    """Prometheus metrics endpoint."""
    return PlainTextResponse(get_metrics(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health(
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """Health check endpoint with dependency checks."""
    uptime_seconds = time.time() - _app_start_time
    checks: dict[str, dict[str, Any]] = {}

    # Database check
    db_status = "healthy"
    db_latency_ms: float | None = None
    try:
        start = time.time()
        await session.execute(text("SELECT 1"))
        db_latency_ms = round((time.time() - start) * 1000, 2)
    except SQLAlchemyError as e:
        db_status = "unhealthy"
        logger.error("Health check database failed: %s", e)

    checks["database"] = {
        "status": db_status,
        "latency_ms": db_latency_ms,
    }

    overall_status = (
        "healthy" if all(c["status"] == "healthy" for c in checks.values()) else "degraded"
    )

    # Update gauge metrics while we have a session
    if db_status == "healthy":
        try:
            await update_gauge_metrics(session)
        except SQLAlchemyError as e:
            logger.warning("Could not refresh gauge metrics: %s", e)

    return {
        "status": overall_status,
        "version": __version__,
        "uptime_seconds": round(uptime_seconds, 1),
        "checks": checks,
    }


@app.get("/health/ready")
async def health_ready(
    session: AsyncSession = Depends(get_session),
) -> dict[str, str | bool]:
    """Readiness probe - verifies database connectivity."""
    try:
        await session.execute(text("SELECT 1"))
        return {"status": "ready", "database": True}
    except SQLAlchemyError as e:
        # Log full error details server-side, return generic message to client
        logger.error("Readiness check failed: %s", e)
        return {"status": "not_ready", "database": False}


@app.get("/health/live")
async def health_live() -> dict[str, str]:
    """Liveness probe - basic check that app is running."""
    return {"status": "alive"}
