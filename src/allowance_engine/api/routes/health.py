"""Health check endpoints."""

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from allowance_engine.api.dependencies import DbSession, get_app_settings
from allowance_engine.config import Settings
from allowance_engine.database import STORE_ERRORS

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str
    engine_version: str
    timezone: str


async def _database_reachable(db: AsyncSession) -> bool:
    try:
        await db.execute(text("SELECT 1"))
    except STORE_ERRORS as exc:
        logger.warning("Database health check failed: %s", exc)
        return False
    return True


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(
    db: DbSession,
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> HealthResponse:
    """API and database health; degraded when the claim store is unreachable."""
    reachable = await _database_reachable(db)
    return HealthResponse(
        status="healthy" if reachable else "degraded",
        timestamp=datetime.now(timezone.utc),
        database="healthy" if reachable else "unhealthy",
        engine_version=settings.engine_version,
        timezone=settings.timezone,
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check(db: DbSession) -> JSONResponse:
    """Ready once the claim store answers."""
    if not await _database_reachable(db):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unavailable"},
        )
    return JSONResponse(content={"status": "ready"})


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Process is up; no dependency checks."""
    return {"status": "alive"}
