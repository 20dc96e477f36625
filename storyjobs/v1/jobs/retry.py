"""
Retry coordination for failed jobs.
"""

from dataclasses import dataclass
from enum import Enum

from storyjobs.config.logging import get_logger
from storyjobs.v1.core.clock import Clock, system_clock
from storyjobs.v1.core.exceptions import ConflictError
from storyjobs.v1.jobs.models import JobRecord, JobStatus
from storyjobs.v1.jobs.store import JobStore

logger = get_logger(__name__)


class Decision(str, Enum):
    RETRY = "retry"
    EXHAUST = "exhaust"


@dataclass(frozen=True)
class RetryDecision:
    decision: Decision
    record: JobRecord

    @property
    def retried(self) -> bool:
        return self.decision == Decision.RETRY


class RetryCoordinator:
    """
    Decides whether a failed job goes back to pending.

    This is the only writer of `retry_count`. It decides eligibility only;
    when a re-queued job is picked up again is up to the worker's sweep.
    """

    def __init__(self, store: JobStore, clock: Clock = system_clock):
        self.store = store
        self.clock = clock

    async def consider_retry(self, record: JobRecord) -> RetryDecision:
        if record.status != JobStatus.FAILED.value:
            raise ConflictError(
                "Only failed jobs can be considered for retry",
                details={"job_id": record.id, "status": record.status},
            )

        if not record.can_retry():
            logger.info(
                "Job retries exhausted",
                job_id=record.id,
                kind=record.kind,
                retry_count=record.retry_count,
                max_retries=record.max_retries,
            )
            return RetryDecision(Decision.EXHAUST, record)

        retry_count = record.retry_count + 1
        updated = await self.store.update_where(
            record.id,
            JobStatus.FAILED,
            {
                "status": JobStatus.PENDING.value,
                "retry_count": retry_count,
                "progress": 0,
                "error_message": None,
                "current_step": f"Retrying ({retry_count}/{record.max_retries})",
                "updated_at": self.clock.now(),
            },
            conditions=[JobRecord.retry_count == record.retry_count],
        )

        logger.info(
            "Job scheduled for retry",
            job_id=record.id,
            kind=record.kind,
            retry_count=retry_count,
            max_retries=record.max_retries,
            last_error=record.error_message,
        )
        return RetryDecision(Decision.RETRY, updated)
