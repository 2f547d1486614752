"""Service health endpoint."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter

from investrisk.cache.client import valkey_healthcheck
from investrisk.core.config import settings
from investrisk.database.connection import db_healthcheck
from investrisk.schemas.common import ServiceHealthResponse


router = APIRouter(prefix="/health")


@router.get(
    "",
    response_model=ServiceHealthResponse,
    summary="Health check",
    description="Check the API and its database and cache dependencies.",
)
async def health_check() -> ServiceHealthResponse:
    checks = {
        "database": await db_healthcheck(),
        "cache": await valkey_healthcheck(),
    }

    if all(checks.values()):
        status = "healthy"
    elif checks["database"]:
        status = "degraded"  # jobs run unlocked and reselect every chunk without Valkey
    else:
        status = "unhealthy"

    return ServiceHealthResponse(
        status=status,
        version=settings.app_version,
        timestamp=datetime.now(UTC),
        checks=checks,
    )
