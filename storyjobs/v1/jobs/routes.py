"""
Job API endpoints.

Client-facing: job creation and status polling. Worker-facing: lock, claim,
progress, finalize. Operator-facing: listing, stats, retry and cancel.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Header, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from storyjobs.config.logging import get_logger
from storyjobs.config.settings import Settings, SettingsDep
from storyjobs.infra.database import get_session
from storyjobs.v1.core.clock import Clock, system_clock
from storyjobs.v1.core.exceptions import create_success_response
from storyjobs.v1.jobs.lifecycle import JobLifecycleManager, JobOutcome
from storyjobs.v1.jobs.lock import ProcessingLock
from storyjobs.v1.jobs.models import JobStatus
from storyjobs.v1.jobs.schemas import (
    ClaimRequest,
    FinalizeRequest,
    JobCreatedResponse,
    JobListResponse,
    JobSummary,
    LockAction,
    LockRequest,
    OutcomeType,
    ProgressReport,
    RetryDecisionResponse,
)
from storyjobs.v1.jobs.store import JobStore

logger = get_logger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


def get_clock() -> Clock:
    """Dependency injection function for the transition clock."""
    return system_clock


def get_job_store(session: AsyncSession = Depends(get_session)) -> JobStore:
    return JobStore(session)


def get_lifecycle(
    store: JobStore = Depends(get_job_store),
    settings: Settings = SettingsDep,
    clock: Clock = Depends(get_clock),
) -> JobLifecycleManager:
    return JobLifecycleManager(store, settings, clock)


def _summary(record) -> dict[str, Any]:
    return JobSummary.model_validate(record).model_dump(mode="json", by_alias=True)


@router.post("/lock", response_model=dict)
async def processing_lock(
    request: LockRequest,
    store: JobStore = Depends(get_job_store),
) -> dict[str, Any]:
    """Acquire or release the coarse processing lock."""
    lock = ProcessingLock(store)
    if request.action == LockAction.ACQUIRE:
        result = await lock.acquire(request.processing_id)
    else:
        result = await lock.release(request.processing_id)

    return create_success_response(data=result.to_dict())


@router.get("/stats/overview", response_model=dict)
async def job_stats(
    user_id: str | None = Query(default=None, description="Scope to a user"),
    lifecycle: JobLifecycleManager = Depends(get_lifecycle),
) -> dict[str, Any]:
    """Job counts by status and kind."""
    stats = await lifecycle.stats(user_id)
    return create_success_response(data=stats.model_dump(mode="json", by_alias=True))


@router.get("", response_model=dict)
async def list_jobs(
    status: list[JobStatus] | None = Query(default=None, description="Filter by status"),
    kind: str | None = Query(default=None, description="Filter by job kind"),
    user_id: str | None = Query(default=None, description="Filter by user"),
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum results"),
    offset: int = Query(default=0, ge=0, description="Results offset"),
    lifecycle: JobLifecycleManager = Depends(get_lifecycle),
) -> dict[str, Any]:
    """List jobs with filtering and pagination."""
    records, total = await lifecycle.list_jobs(
        kind=kind, status=status, user_id=user_id, limit=limit, offset=offset
    )
    response_data = JobListResponse(
        jobs=[JobSummary.model_validate(record) for record in records],
        total=total,
        limit=limit,
        offset=offset,
    )
    return create_success_response(
        data=response_data.model_dump(mode="json", by_alias=True)
    )


@router.post("/{kind}/start", response_model=dict)
async def start_job(
    kind: str,
    parameters: dict[str, Any] = Body(default_factory=dict),
    x_user_id: str | None = Header(default=None, alias="X-User-ID"),
    lifecycle: JobLifecycleManager = Depends(get_lifecycle),
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """Create a job of `kind` and return where to poll for it."""
    record = await lifecycle.create(kind, parameters, user_id=x_user_id)
    profile = lifecycle.profile(record.kind)

    created = JobCreatedResponse(
        job_id=record.id,
        status=JobStatus(record.status),
        estimated_completion=lifecycle.estimated_completion(record.kind),
        estimated_minutes=profile.estimated_minutes,
        polling_url=f"{settings.public_base_url.rstrip('/')}/v1/jobs/{record.id}",
    )
    return create_success_response(
        data=created.model_dump(mode="json", by_alias=True),
        message=f"{profile.label.capitalize()} started",
    )


@router.get("/{job_id}", response_model=dict)
async def get_job_status(
    job_id: str,
    response: Response,
    lifecycle: JobLifecycleManager = Depends(get_lifecycle),
) -> dict[str, Any]:
    """Poll the projected status of a job."""
    projection = await lifecycle.get_status(job_id)
    response.headers["Cache-Control"] = projection.cache_control
    return create_success_response(
        data=projection.model_dump(mode="json", by_alias=True)
    )


@router.post("/{job_id}/claim", response_model=dict)
async def claim_job(
    job_id: str,
    request: ClaimRequest,
    lifecycle: JobLifecycleManager = Depends(get_lifecycle),
) -> dict[str, Any]:
    """Claim a pending job for a worker."""
    record = await lifecycle.claim(job_id, request.owner_id)
    return create_success_response(data=_summary(record))


@router.post("/{job_id}/progress", response_model=dict)
async def report_progress(
    job_id: str,
    request: ProgressReport,
    lifecycle: JobLifecycleManager = Depends(get_lifecycle),
) -> dict[str, Any]:
    """Record progress for a claimed job."""
    record = await lifecycle.report_progress(
        job_id, request.owner_id, request.progress, request.current_step
    )
    return create_success_response(data=_summary(record))


@router.post("/{job_id}/finalize", response_model=dict)
async def finalize_job(
    job_id: str,
    request: FinalizeRequest,
    owner_id: str | None = Query(default=None, alias="ownerId"),
    lifecycle: JobLifecycleManager = Depends(get_lifecycle),
) -> dict[str, Any]:
    """Report the terminal outcome of a job."""
    if request.outcome == OutcomeType.COMPLETED:
        outcome = JobOutcome.completed(request.result_ref, request.result_data)
    else:
        outcome = JobOutcome.failed(request.error_message)

    record = await lifecycle.finalize(job_id, outcome, owner_id=owner_id)
    return create_success_response(data=_summary(record))


@router.post("/{job_id}/retry", response_model=dict)
async def retry_job(
    job_id: str,
    lifecycle: JobLifecycleManager = Depends(get_lifecycle),
) -> dict[str, Any]:
    """Re-queue a failed job if it has retry budget left."""
    decision = await lifecycle.retry(job_id)
    record = decision.record

    logger.info("Job retry requested via API", job_id=job_id, decision=decision.decision.value)

    data = RetryDecisionResponse(
        job_id=record.id,
        decision=decision.decision.value,
        status=JobStatus(record.status),
        retry_count=record.retry_count,
        max_retries=record.max_retries,
    )
    return create_success_response(data=data.model_dump(mode="json", by_alias=True))


@router.post("/{job_id}/cancel", response_model=dict)
async def cancel_job(
    job_id: str,
    lifecycle: JobLifecycleManager = Depends(get_lifecycle),
) -> dict[str, Any]:
    """Cancel a pending or processing job."""
    record = await lifecycle.cancel(job_id)
    logger.info("Job cancelled via API", job_id=job_id)
    return create_success_response(data=_summary(record))
