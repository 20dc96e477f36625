"""
Job worker: sweeps pending jobs, runs their generators and reconciles outcomes.
"""

import asyncio
import os
import socket
from dataclasses import asdict, dataclass

from storyjobs.config.logging import (
    bind_worker_context,
    get_logger,
    job_context,
    setup_logging,
)
from storyjobs.config.settings import Settings
from storyjobs.config.settings import settings as default_settings
from storyjobs.infra.database import Database
from storyjobs.v1.core.clock import Clock, system_clock
from storyjobs.v1.core.exceptions import ConfigurationError, ConflictError
from storyjobs.v1.core.registries import generator_registry
from storyjobs.v1.jobs import registry_init  # noqa: F401
from storyjobs.v1.jobs.lifecycle import JobLifecycleManager, JobOutcome
from storyjobs.v1.jobs.lock import ProcessingLock
from storyjobs.v1.jobs.store import JobStore

logger = get_logger(__name__)


@dataclass
class SweepStats:
    processed: int = 0
    errors: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class JobWorker:
    """
    Database-backed job worker.

    Features:
    - Coarse processing lock checked before every sweep
    - Conditional per-job claims so racing workers never share a job
    - Heartbeats and stale claim recovery for crashed workers
    - Per-kind timeouts and retry reconciliation on failure
    """

    def __init__(self, settings: Settings, database: Database, clock: Clock = system_clock):
        self.settings = settings
        self.database = database
        self.clock = clock
        self.worker_id = f"{socket.gethostname()}-{os.getpid()}-{id(self)}"
        self.running = False
        self.active_jobs: set[str] = set()

    def _lifecycle(self, session) -> JobLifecycleManager:
        return JobLifecycleManager(JobStore(session), self.settings, self.clock)

    async def start(self) -> None:
        """Start the sweep, heartbeat and stale recovery loops."""
        if self.running:
            raise RuntimeError("Worker is already running")

        self.running = True
        bind_worker_context(self.worker_id)
        logger.info(
            "Starting job worker",
            batch_size=self.settings.job_sweep_batch_size,
            sweep_interval_ms=self.settings.job_sweep_interval_ms,
            generators=generator_registry.list(),
        )

        try:
            await asyncio.gather(
                self._sweep_loop(),
                self._heartbeat_loop(),
                self._stale_recovery_loop(),
            )
        finally:
            self.running = False

    async def stop(self, timeout_seconds: int = 30) -> None:
        """Stop the worker, waiting briefly for active jobs to finish."""
        logger.info("Stopping job worker")
        self.running = False

        waited = 0
        while self.active_jobs and waited < timeout_seconds:
            await asyncio.sleep(1)
            waited += 1

        if self.active_jobs:
            logger.warning(
                "Worker stopped with active jobs", active_jobs=len(self.active_jobs)
            )

    async def run_sweep(self, max_jobs: int | None = None) -> SweepStats:
        """Acquire the processing lock, claim pending jobs and process them."""
        stats = SweepStats()
        limit = max_jobs or self.settings.job_sweep_batch_size
        kinds = generator_registry.list()

        if not kinds:
            logger.warning("No generators registered, skipping sweep")
            stats.skipped += 1
            return stats

        claimed: list[str] = []
        async with self.database.SessionLocal() as session:
            store = JobStore(session)
            lock = await ProcessingLock(store).acquire(self.worker_id)
            if lock.locked:
                logger.info("Sweep skipped, processing lock held", owner=lock.owner)
                stats.skipped += 1
                return stats

            lifecycle = self._lifecycle(session)
            for record in await store.list_pending(limit, kinds=kinds):
                try:
                    await lifecycle.claim(record.id, self.worker_id)
                except ConflictError:
                    # Another worker won the claim
                    stats.skipped += 1
                    continue
                claimed.append(record.id)

            await ProcessingLock(store).release(self.worker_id)

        if not claimed:
            logger.debug("No pending jobs to process")
            return stats

        self.active_jobs.update(claimed)
        results = await asyncio.gather(
            *(self._process_job(job_id) for job_id in claimed), return_exceptions=True
        )

        store_error: ConfigurationError | None = None
        for job_id, outcome in zip(claimed, results):
            if isinstance(outcome, ConfigurationError):
                store_error = store_error or outcome
                stats.errors += 1
            elif isinstance(outcome, BaseException):
                logger.error(
                    "Job processing crashed",
                    job_id=job_id,
                    error=str(outcome) or type(outcome).__name__,
                )
                stats.errors += 1
            elif outcome is True:
                stats.processed += 1
            elif outcome is False:
                stats.errors += 1
            else:
                stats.skipped += 1

        logger.info("Sweep complete", **stats.to_dict())
        if store_error is not None:
            # Claims stay in place for stale recovery once the store is back
            raise store_error
        return stats

    async def _process_job(self, job_id: str) -> bool | None:
        """
        Run one claimed job to a terminal outcome.

        Returns True on success, False on failure and None when the result was
        discarded because the job left the processing state (e.g. cancelled).
        Store outages propagate as ConfigurationError with the claim left in place.
        """
        try:
            with job_context(job_id):
                async with self.database.SessionLocal() as session:
                    lifecycle = self._lifecycle(session)
                    record = await lifecycle.get(job_id)
                    profile = lifecycle.profile(record.kind)
                    generator = generator_registry.get(record.kind)
                    return await self._run_generator(lifecycle, record, profile, generator)
        finally:
            self.active_jobs.discard(job_id)

    async def _run_generator(self, lifecycle, record, profile, generator) -> bool | None:
        job_id = record.id

        async def report_progress(progress: int, step: str | None = None) -> None:
            await lifecycle.report_progress(job_id, self.worker_id, progress, step)

        logger.info("Processing job started", kind=record.kind)
        try:
            result = await asyncio.wait_for(
                generator.generate(record, report_progress),
                timeout=profile.timeout_s,
            )
        except TimeoutError:
            error = f"Job processing timeout after {profile.timeout_s}s"
            return await self._fail(lifecycle, job_id, error)
        except ConflictError:
            logger.info("Job left processing during generation")
            return None
        except ConfigurationError:
            # Store outages are not job failures and must not spend retries
            raise
        except Exception as e:
            logger.exception("Job processing failed", error=str(e))
            return await self._fail(lifecycle, job_id, str(e) or type(e).__name__)

        payload = dict(result or {})
        result_ref = payload.pop("result_ref", None)
        try:
            await lifecycle.finalize(
                job_id,
                JobOutcome.completed(
                    str(result_ref) if result_ref is not None else None,
                    payload or None,
                ),
                owner_id=self.worker_id,
            )
        except ConflictError:
            logger.info("Discarding result for job no longer processing")
            return None

        logger.info("Processing job completed successfully", kind=record.kind)
        return True

    async def _fail(
        self, lifecycle: JobLifecycleManager, job_id: str, error: str
    ) -> bool | None:
        try:
            failed = await lifecycle.finalize(
                job_id, JobOutcome.failed(error), owner_id=self.worker_id
            )
        except ConflictError:
            logger.info("Discarding failure for job no longer processing")
            return None

        decision = await lifecycle.retry_coordinator.consider_retry(failed)
        logger.warning(
            "Job attempt failed",
            decision=decision.decision.value,
            retry_count=decision.record.retry_count,
        )
        return False

    async def _sweep_loop(self) -> None:
        while self.running:
            try:
                await self.run_sweep()
            except Exception:
                logger.exception("Error in sweep loop")
            await asyncio.sleep(self.settings.job_sweep_interval_ms / 1000)

    async def _heartbeat_loop(self) -> None:
        """Update heartbeats for active jobs."""
        while self.running:
            try:
                if self.active_jobs:
                    async with self.database.SessionLocal() as session:
                        lifecycle = self._lifecycle(session)
                        for job_id in list(self.active_jobs):
                            try:
                                await lifecycle.heartbeat(job_id, self.worker_id)
                            except ConflictError:
                                self.active_jobs.discard(job_id)
            except Exception:
                logger.exception("Error updating heartbeats")
            await asyncio.sleep(self.settings.heartbeat_interval_s)

    async def _stale_recovery_loop(self) -> None:
        """Recover jobs whose worker stopped heartbeating."""
        while self.running:
            try:
                async with self.database.SessionLocal() as session:
                    decisions = await self._lifecycle(session).recover_stale()
                if decisions:
                    logger.warning("Recovered stale jobs", stale_job_count=len(decisions))
            except Exception:
                logger.exception("Error in stale job recovery")
            await asyncio.sleep(self.settings.stale_check_interval_s)


async def run_worker(settings: Settings = default_settings) -> None:
    """Run a worker until cancelled. Generators must be registered beforehand."""
    setup_logging()
    database = Database(settings)
    if settings.is_sqlite:
        await database.create_all()

    worker = JobWorker(settings, database)
    try:
        await worker.start()
    finally:
        await worker.stop()
        await database.close()


if __name__ == "__main__":
    asyncio.run(run_worker())
