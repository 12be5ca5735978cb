from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pagerline.api.deps import get_job_enqueuer, session_dependency
from pagerline.core.errors import InfrastructureError
from pagerline.queue import JobQueue

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str = "0.1.0"


class ReadinessResponse(BaseModel):
    status: str
    database: str
    queue: str


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health_check() -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(status="healthy")


@router.get("/ready", response_model=ReadinessResponse, status_code=status.HTTP_200_OK)
async def readiness_check(
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    queue: JobQueue = Depends(get_job_enqueuer),  # noqa: B008
) -> ReadinessResponse:
    """Readiness check with database and job queue connectivity."""
    db_status = "unknown"
    queue_status = "unknown"

    try:
        result = await session.execute(text("SELECT 1"))
        if result.scalar() == 1:
            db_status = "connected"
    except (SQLAlchemyError, ConnectionError, TimeoutError, OSError):
        db_status = "disconnected"

    try:
        if await queue.ping():
            queue_status = "connected"
    except (InfrastructureError, ConnectionError, TimeoutError, OSError):
        queue_status = "disconnected"

    overall_status = (
        "ready" if db_status == "connected" and queue_status == "connected" else "not_ready"
    )

    return ReadinessResponse(
        status=overall_status,
        database=db_status,
        queue=queue_status,
    )
