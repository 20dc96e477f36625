from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from storyjobs.config.logging import get_logger
from storyjobs.config.settings import Settings, SettingsDep
from storyjobs.infra.database import get_session
from storyjobs.v1.core.exceptions import create_success_response
from storyjobs.v1.jobs.models import JobRecord, JobStatus

logger = get_logger(__name__)
router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class QueueHealth(BaseModel):
    """Job queue status."""

    queue_depth: int = 0
    processing: int = 0
    stale_jobs_count: int = 0
    active_workers: int = 0


@router.get("/healthz", response_model=dict)
async def health_check(
    settings: Settings = SettingsDep, session: AsyncSession = Depends(get_session)
):
    """Health check with database and job queue status."""

    timestamp = datetime.now(UTC).isoformat()

    db_health = await _check_database_health(session)
    overall_ok = db_health.connected

    queue_health = None
    if db_health.connected:
        try:
            queue_health = await _check_queue_health(session, settings)
        except Exception as e:
            # Queue status is informational and does not fail the check
            logger.warning("Queue health check failed", error=str(e))

    health_data = {
        "ok": overall_ok,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": timestamp,
        "database": db_health.model_dump(),
        "queue": queue_health.model_dump() if queue_health else None,
    }

    return create_success_response(data=health_data)


async def _check_database_health(session: AsyncSession) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        await session.execute(text("SELECT 1"))

        response_time_ms = (datetime.now(UTC) - start_time).total_seconds() * 1000
        return DatabaseHealth(connected=True, response_time_ms=round(response_time_ms, 2))

    except Exception as e:
        return DatabaseHealth(connected=False, error=str(e))


async def _count(session: AsyncSession, *conditions) -> int:
    result = await session.execute(select(func.count(JobRecord.id)).where(*conditions))
    return result.scalar() or 0


async def _check_queue_health(session: AsyncSession, settings: Settings) -> QueueHealth:
    """Count queued, processing and stale jobs."""
    stale_cutoff = datetime.now(UTC) - timedelta(seconds=settings.stale_processing_timeout_s)
    processing = JobRecord.status == JobStatus.PROCESSING.value

    active_workers_result = await session.execute(
        select(func.count(func.distinct(JobRecord.locked_by))).where(
            processing, JobRecord.heartbeat_at >= stale_cutoff
        )
    )

    return QueueHealth(
        queue_depth=await _count(session, JobRecord.status == JobStatus.PENDING.value),
        processing=await _count(session, processing),
        stale_jobs_count=await _count(
            session, processing, JobRecord.heartbeat_at < stale_cutoff
        ),
        active_workers=active_workers_result.scalar() or 0,
    )
