"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from paye_engine import __version__
from paye_engine.api.dependencies import DbSession
from paye_engine.services.config_service import TaxYearConfigRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str
    version: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(db: DbSession) -> HealthResponse:
    """Check API and database health."""
    db_status = "unhealthy"
    try:
        await db.execute(text("SELECT 1"))
        db_status = "healthy"
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database health check failed: %s", e)

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        version=__version__,
    )


class ReadinessResponse(BaseModel):
    """Readiness response: the service can calculate once tax tables exist."""

    status: str
    tax_tables: list[str]


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(db: DbSession, response: Response) -> ReadinessResponse:
    """Ready when at least one tax table version is published."""
    published = await TaxYearConfigRepository(db).list_versions()
    if not published:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(status="not_ready", tax_tables=[])
    return ReadinessResponse(
        status="ready", tax_tables=[row.config_ref for row in published]
    )


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
