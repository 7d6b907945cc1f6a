"""
Health and readiness endpoints.

- /health: Liveness check (is the app running?)
- /ready: Readiness check (is the database reachable?)

No authentication required; neither endpoint returns medical data.
"""
import asyncio
import logging
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from core.datetime_utils import format_iso, utc_now
from core.dependencies import get_database
from repositories import Database

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

APP_VERSION = "1.0.0"


class HealthResponse(BaseModel):
    """Response model for /health endpoint."""
    status: str
    version: str
    timestamp: str


class DependencyStatus(BaseModel):
    name: str
    status: str  # "ok" or "unavailable"
    latency_ms: Optional[float] = None
    message: Optional[str] = None


class ReadyResponse(BaseModel):
    status: str  # "ready" or "not_ready"
    dependencies: List[DependencyStatus]
    timestamp: str


def _check_database_sync(db: Database) -> DependencyStatus:
    start = time.perf_counter()
    try:
        conn = db.get_connection()
        try:
            conn.execute("SELECT 1").fetchone()
        finally:
            conn.close()
    except Exception as e:
        logger.warning(f"Database readiness check failed: {e}")
        return DependencyStatus(name="database", status="unavailable", message=str(e))
    latency = (time.perf_counter() - start) * 1000
    return DependencyStatus(name="database", status="ok", latency_ms=round(latency, 2))


@router.get("/health", response_model=HealthResponse, summary="Liveness check")
async def health_check() -> HealthResponse:
    """Returns 200 while the process is serving requests."""
    return HealthResponse(status="healthy", version=APP_VERSION, timestamp=format_iso(utc_now()))


@router.get("/ready", response_model=ReadyResponse, summary="Readiness check")
async def readiness_check(
    response: Response,
    db: Database = Depends(get_database),
) -> ReadyResponse:
    """
    Check that the database answers a trivial query.

    Returns 503 with status="not_ready" when it does not.
    """
    db_status = await asyncio.to_thread(_check_database_sync, db)
    status = "ready"
    if db_status.status != "ok":
        status = "not_ready"
        response.status_code = 503
    return ReadyResponse(status=status, dependencies=[db_status], timestamp=format_iso(utc_now()))
