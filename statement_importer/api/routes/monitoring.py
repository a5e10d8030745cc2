"""
Monitoring endpoints.

Provides health checks and readiness probes.
"""
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from statement_importer import __version__
from statement_importer.database import get_db

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str = __version__


class ReadinessResponse(BaseModel):
    """Readiness check response with component status."""
    status: str
    database: str
    uptime_seconds: float
    timestamp: str


# Track server start time
_start_time = datetime.utcnow()


@router.get("/health", response_model=HealthResponse, tags=["Monitoring"])
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns 200 if the server is running.
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow().isoformat(),
    )


@router.get("/ready", response_model=ReadinessResponse, tags=["Monitoring"])
async def readiness_check(db: Session = Depends(get_db)) -> ReadinessResponse:
    """Readiness check. Probes the database."""
    db_status = "healthy"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db_status = "unhealthy"

    return ReadinessResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        database=db_status,
        uptime_seconds=round((datetime.utcnow() - _start_time).total_seconds(), 2),
        timestamp=datetime.utcnow().isoformat(),
    )
