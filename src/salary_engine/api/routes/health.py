"""Health, readiness and liveness checks."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from salary_engine.api.dependencies import DbSession
from salary_engine.config import get_settings
from salary_engine.models.payroll import PayrollRun
from salary_engine.services.state_machine import PayrollRunStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Runs that still need someone to act on them
OPEN_RUN_STATUSES = (PayrollRunStatus.DRAFT.value, PayrollRunStatus.PROCESSING.value)


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str
    engine_version: str
    currency: str
    open_runs: int | None = None


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Report database reachability and how many payroll runs are still open."""
    settings = get_settings()
    open_runs = None
    try:
        open_runs = await db.scalar(
            select(func.count(PayrollRun.payroll_run_id)).where(
                PayrollRun.status.in_(OPEN_RUN_STATUSES)
            )
        )
        db_status = "healthy"
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)
        db_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        engine_version=settings.engine_version,
        currency=settings.currency,
        open_runs=open_runs,
    )


@router.get("/ready")
async def readiness_check(db: DbSession, response: Response) -> dict[str, str]:
    """Ready only once the database answers."""
    try:
        await db.scalar(select(func.count(PayrollRun.payroll_run_id)))
    except SQLAlchemyError:
        logger.warning("Readiness check failed", exc_info=True)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unavailable"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
