"""
Pilbum Backend — Health Check Route
=====================================

What:  Liveness/readiness probe for Docker and reverse proxies.
How:   SELECT 1 against the database plus the storage configuration check.

Status levels:
    - healthy:   database reachable and storage configured      (HTTP 200)
    - degraded:  database reachable, storage not configured     (HTTP 200)
    - unhealthy: database unreachable                           (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text

from pilbum import __version__
from pilbum.config import settings
from pilbum.database import engine
from pilbum.schemas.system import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    storage_status = "configured" if settings.is_storage_configured() else "not_configured"
    overall = "healthy" if storage_status == "configured" else "degraded"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", e)

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        storage=storage_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
