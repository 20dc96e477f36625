"""
Coarse processing lock derived from job state.

The lock is held whenever any job is processing. Nothing is written to take
or release it: a worker that sees `locked=False` claims a job, and the lock
disappears once the last processing job reaches a terminal state. Two callers
can still both observe `locked=False` at the same instant; per-job safety comes
from the conditional claim in the lifecycle manager.
"""

from dataclasses import asdict, dataclass

from storyjobs.config.logging import get_logger
from storyjobs.v1.jobs.store import JobStore

logger = get_logger(__name__)

UNKNOWN_OWNER = "another-process"


@dataclass(frozen=True)
class LockResult:
    locked: bool = False
    acquired: bool = False
    released: bool = False
    owner: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        return {key: value for key, value in asdict(self).items() if value is not None}


class ProcessingLock:
    """Advisory, self-releasing lock over processing sweeps."""

    def __init__(self, store: JobStore):
        self.store = store

    async def acquire(self, owner_id: str) -> LockResult:
        processing = await self.store.first_processing()

        if processing is not None:
            owner = processing.locked_by or UNKNOWN_OWNER
            logger.info(
                "Processing lock held",
                requested_by=owner_id,
                owner=owner,
                job_id=processing.id,
            )
            return LockResult(
                locked=True,
                owner=owner,
                reason="Jobs are currently being processed",
            )

        logger.debug("Processing lock granted", owner=owner_id)
        return LockResult(locked=False, acquired=True, owner=owner_id)

    async def release(self, owner_id: str) -> LockResult:
        # Released implicitly when the last processing job finishes
        return LockResult(released=True, owner=owner_id)
