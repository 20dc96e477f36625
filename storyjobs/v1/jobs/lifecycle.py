"""
Job lifecycle management.

Owns the job state machine:

    pending -> processing -> completed | failed | cancelled
    pending -> cancelled
    failed  -> pending          (retry coordinator only)

and produces the client-facing status projection.
"""

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from storyjobs.config.logging import get_logger
from storyjobs.config.settings import Settings
from storyjobs.v1.core.clock import Clock, system_clock
from storyjobs.v1.core.exceptions import ConflictError, NotFoundError, ValidationError
from storyjobs.v1.core.registries import job_kind_registry
from storyjobs.v1.jobs.kinds import JobKindProfile
from storyjobs.v1.jobs.models import TERMINAL_STATUSES, JobRecord, JobStatus
from storyjobs.v1.jobs.retry import RetryCoordinator, RetryDecision
from storyjobs.v1.jobs.schemas import JobResult, JobStatsResponse, ProjectedStatus
from storyjobs.v1.jobs.store import JobStore

logger = get_logger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def generate_job_id() -> str:
    """Return an id of the form job_<unix-ms>_<random base36>."""
    value = secrets.randbits(64)
    suffix = ""
    while value:
        value, digit = divmod(value, 36)
        suffix += _BASE36[digit]
    return f"job_{int(time.time() * 1000)}_{suffix or '0'}"


def _elapsed_seconds(record: JobRecord) -> int | None:
    if record.started_at is None or record.completed_at is None:
        return None
    return round((record.completed_at - record.started_at).total_seconds())


def _percent(part: int, whole: int) -> float:
    return round(part * 100 / whole, 2) if whole else 0.0


@dataclass(frozen=True)
class CachePolicy:
    """Cache headers for status projections, keyed by terminal/non-terminal."""

    terminal_max_age_s: int = 3600
    non_terminal_header: str = "no-cache, no-store, must-revalidate"

    def is_cacheable(self, status: JobStatus) -> bool:
        return status in TERMINAL_STATUSES

    def header_for(self, status: JobStatus) -> str:
        if self.is_cacheable(status):
            return f"public, max-age={self.terminal_max_age_s}"
        return self.non_terminal_header


class OutcomeKind(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class JobOutcome:
    """Terminal result reported by a worker."""

    kind: OutcomeKind
    result_ref: str | None = None
    result_data: dict[str, Any] | None = field(default=None, compare=True, hash=False)
    error_message: str | None = None

    @classmethod
    def completed(
        cls, result_ref: str | None = None, result_data: dict[str, Any] | None = None
    ) -> "JobOutcome":
        return cls(OutcomeKind.COMPLETED, result_ref=result_ref, result_data=result_data)

    @classmethod
    def failed(cls, error_message: str) -> "JobOutcome":
        return cls(OutcomeKind.FAILED, error_message=error_message)

    @property
    def status(self) -> JobStatus:
        return JobStatus(self.kind.value)

    def matches(self, record: JobRecord) -> bool:
        """Whether `record` already holds exactly this outcome."""
        if record.status != self.status.value:
            return False
        if self.kind == OutcomeKind.COMPLETED:
            return (
                record.result_ref == self.result_ref
                and (record.result_data or None) == (self.result_data or None)
            )
        return record.error_message == self.error_message


class JobLifecycleManager:
    """Creates jobs, drives their transitions and projects their status."""

    def __init__(
        self,
        store: JobStore,
        settings: Settings,
        clock: Clock = system_clock,
        cache_policy: CachePolicy | None = None,
    ):
        self.store = store
        self.settings = settings
        self.clock = clock
        self.cache_policy = cache_policy or CachePolicy(
            terminal_max_age_s=settings.terminal_cache_max_age_s
        )
        self.retry_coordinator = RetryCoordinator(store, clock)

    def profile(self, kind: str) -> JobKindProfile:
        """Look up the profile of a kind, rejecting unknown kinds."""
        try:
            return job_kind_registry.get(kind)
        except KeyError:
            raise ValidationError(
                f"Unknown job kind: {kind}",
                details={"kind": kind, "allowed": job_kind_registry.list()},
            ) from None

    async def create(
        self, kind: str, parameters: dict[str, Any], user_id: str | None = None
    ) -> JobRecord:
        profile = self.profile(kind)
        validated = profile.validate_parameters(parameters)
        now = self.clock.now()

        record = JobRecord(
            id=generate_job_id(),
            kind=profile.kind,
            user_id=user_id,
            parameters=validated,
            status=JobStatus.PENDING.value,
            progress=0,
            current_step=profile.initial_step,
            retry_count=0,
            max_retries=profile.max_retries,
            created_at=now,
            updated_at=now,
        )
        record = await self.store.insert(record)

        logger.info("Job created", job_id=record.id, kind=record.kind, user_id=user_id)
        return record

    async def get(self, job_id: str) -> JobRecord:
        record = await self.store.get(job_id)
        if record is None:
            raise NotFoundError("Job not found", details={"job_id": job_id})
        return record

    def estimated_completion(self, kind: str) -> datetime:
        return self.clock.now() + timedelta(minutes=self.profile(kind).estimated_minutes)

    async def get_status(self, job_id: str) -> ProjectedStatus:
        record = await self.get(job_id)
        return self.project(record)

    def project(self, record: JobRecord) -> ProjectedStatus:
        """Derive the client-facing view of a record."""
        status = record.job_status
        profile = self.profile(record.kind)

        terminal = status in TERMINAL_STATUSES
        current_phase = None
        remaining = None
        if status == JobStatus.PROCESSING and record.progress < 100:
            current_phase = profile.phase_for(record.progress)
            remaining = profile.remaining_minutes(record.progress)

        projection = ProjectedStatus(
            job_id=record.id,
            kind=record.kind,
            status=status,
            progress=record.progress,
            current_step=record.current_step,
            current_phase=current_phase,
            estimated_time_remaining=remaining,
            created_at=record.created_at,
            updated_at=record.updated_at,
            started_at=record.started_at,
            # A retried job keeps its previous completed_at until it finishes again
            completed_at=record.completed_at if terminal else None,
            processing_time_seconds=_elapsed_seconds(record) if terminal else None,
            cacheable=self.cache_policy.is_cacheable(status),
            cache_control=self.cache_policy.header_for(status),
        )

        if status == JobStatus.COMPLETED:
            projection.result = JobResult(
                result_ref=record.result_ref, data=record.result_data
            )

        if status == JobStatus.FAILED:
            projection.error = record.error_message or f"{profile.label} failed"
            projection.retries_exhausted = record.retry_count >= record.max_retries

        if status == JobStatus.FAILED or record.retry_count > 0:
            projection.retry_count = record.retry_count
            projection.max_retries = record.max_retries

        return projection

    async def claim(self, job_id: str, owner_id: str) -> JobRecord:
        """Atomically move a pending job to processing for `owner_id`."""
        record = await self.get(job_id)
        now = self.clock.now()

        patch: dict[str, Any] = {
            "status": JobStatus.PROCESSING.value,
            "locked_by": owner_id,
            "heartbeat_at": now,
            "updated_at": now,
        }
        if record.started_at is None:
            patch["started_at"] = now

        claimed = await self.store.update_where(job_id, JobStatus.PENDING, patch)
        logger.info(
            "Job claimed",
            job_id=job_id,
            kind=claimed.kind,
            owner_id=owner_id,
            retry_count=claimed.retry_count,
        )
        return claimed

    async def report_progress(
        self,
        job_id: str,
        owner_id: str,
        progress: int,
        current_step: str | None = None,
    ) -> JobRecord:
        """Record worker progress; progress never decreases while processing."""
        record = await self.get(job_id)
        if record.status != JobStatus.PROCESSING.value:
            raise ConflictError(
                "Progress can only be reported for processing jobs",
                details={"job_id": job_id, "status": record.status},
            )

        # 100 is reserved for completed
        value = max(0, min(99, progress))
        if value < record.progress:
            raise ValidationError(
                "Progress cannot decrease while processing",
                details={
                    "job_id": job_id,
                    "current_progress": record.progress,
                    "reported_progress": progress,
                },
            )

        now = self.clock.now()
        patch: dict[str, Any] = {"progress": value, "heartbeat_at": now, "updated_at": now}
        if current_step:
            patch["current_step"] = current_step

        updated = await self.store.update_where(
            job_id,
            JobStatus.PROCESSING,
            patch,
            owner_id=owner_id,
            conditions=[JobRecord.progress <= value],
        )
        logger.debug("Job progress updated", job_id=job_id, progress=value)
        return updated

    async def heartbeat(self, job_id: str, owner_id: str) -> JobRecord:
        now = self.clock.now()
        return await self.store.update_where(
            job_id,
            JobStatus.PROCESSING,
            {"heartbeat_at": now, "updated_at": now},
            owner_id=owner_id,
        )

    async def finalize(
        self, job_id: str, outcome: JobOutcome, owner_id: str | None = None
    ) -> JobRecord:
        """
        Move a processing job to its terminal outcome.

        Repeating the same outcome on a terminal record is a no-op; a different
        outcome (including any result arriving after cancellation) raises
        ConflictError and leaves the record untouched.
        """
        record = await self.get(job_id)

        if record.is_terminal():
            if outcome.matches(record):
                logger.debug("Duplicate finalize ignored", job_id=job_id)
                return record
            raise ConflictError(
                "Job already finalized with a different outcome",
                details={
                    "job_id": job_id,
                    "status": record.status,
                    "requested_outcome": outcome.kind.value,
                },
            )

        if record.status != JobStatus.PROCESSING.value:
            raise ConflictError(
                "Only processing jobs can be finalized",
                details={"job_id": job_id, "status": record.status},
            )

        now = self.clock.now()
        patch: dict[str, Any] = {
            "status": outcome.status.value,
            "completed_at": now,
            "updated_at": now,
            "locked_by": None,
            "heartbeat_at": None,
        }
        if outcome.kind == OutcomeKind.COMPLETED:
            patch.update(
                progress=100,
                current_step="Completed successfully",
                result_ref=outcome.result_ref,
                result_data=outcome.result_data,
                error_message=None,
            )
        else:
            patch.update(error_message=outcome.error_message)

        try:
            finalized = await self.store.update_where(
                job_id, JobStatus.PROCESSING, patch, owner_id=owner_id
            )
        except ConflictError:
            # Lost a race against another finalize or a cancellation
            current = await self.get(job_id)
            if current.is_terminal() and outcome.matches(current):
                return current
            raise

        log = logger.info if outcome.kind == OutcomeKind.COMPLETED else logger.warning
        log(
            "Job finalized",
            job_id=job_id,
            kind=finalized.kind,
            status=finalized.status,
            result_ref=finalized.result_ref,
            error=finalized.error_message,
        )
        return finalized

    async def cancel(self, job_id: str) -> JobRecord:
        """Cancel a pending or processing job."""
        record = await self.get(job_id)
        if record.status == JobStatus.CANCELLED.value:
            return record
        if record.is_terminal():
            raise ConflictError(
                "Job can no longer be cancelled",
                details={"job_id": job_id, "status": record.status},
            )

        now = self.clock.now()
        cancelled = await self.store.update_where(
            job_id,
            [JobStatus.PENDING, JobStatus.PROCESSING],
            {
                "status": JobStatus.CANCELLED.value,
                "current_step": "Cancelled by user",
                "completed_at": now,
                "updated_at": now,
                "locked_by": None,
                "heartbeat_at": None,
            },
        )
        logger.info("Job cancelled", job_id=job_id, kind=cancelled.kind)
        return cancelled

    async def retry(self, job_id: str) -> RetryDecision:
        record = await self.get(job_id)
        return await self.retry_coordinator.consider_retry(record)

    async def recover_stale(self) -> list[RetryDecision]:
        """
        Fail processing jobs whose owner stopped heartbeating, then offer them
        to the retry coordinator.
        """
        timeout_s = self.settings.stale_processing_timeout_s
        cutoff = self.clock.now() - timedelta(seconds=timeout_s)
        decisions = []

        for stale in await self.store.list_stale(cutoff):
            now = self.clock.now()
            try:
                failed = await self.store.update_where(
                    stale.id,
                    JobStatus.PROCESSING,
                    {
                        "status": JobStatus.FAILED.value,
                        "error_message": f"Worker lease expired after {timeout_s}s",
                        "current_step": "Worker stopped responding",
                        "completed_at": now,
                        "updated_at": now,
                        "locked_by": None,
                        "heartbeat_at": None,
                    },
                    conditions=[JobRecord.heartbeat_at < cutoff],
                )
            except ConflictError:
                # Heartbeat or finalize arrived in the meantime
                continue

            logger.warning(
                "Recovered stale job",
                job_id=stale.id,
                kind=stale.kind,
                previous_owner=stale.locked_by,
                timeout_seconds=timeout_s,
            )
            decisions.append(await self.retry_coordinator.consider_retry(failed))

        return decisions

    async def list_jobs(
        self,
        kind: str | None = None,
        status: list[JobStatus] | None = None,
        user_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[JobRecord], int]:
        if kind is not None:
            self.profile(kind)
        return await self.store.list_jobs(
            kind=kind, status=status, user_id=user_id, limit=limit, offset=offset
        )

    async def stats(self, user_id: str | None = None) -> JobStatsResponse:
        """Counts by status and kind plus queue, timing and outcome rates."""
        by_status = await self.store.count_by("status", user_id=user_id)
        by_kind = await self.store.count_by("kind", user_id=user_id)
        timing = await self.store.timing_aggregates(user_id=user_id)

        counts = {status.value: by_status.get(status.value, 0) for status in JobStatus}
        total = sum(counts.values())
        finished = sum(counts[status.value] for status in TERMINAL_STATUSES)

        return JobStatsResponse(
            total=total,
            by_kind=by_kind,
            queue_depth=counts["pending"] + counts["processing"],
            oldest_pending_at=timing["oldest_pending_at"],
            average_processing_seconds=timing["average_processing_seconds"],
            peak_processing_seconds=timing["peak_processing_seconds"],
            success_rate=_percent(counts["completed"], finished),
            error_rate=_percent(counts["failed"], total),
            retry_rate=_percent(timing["retried"], total),
            **counts,
        )
