"""
Job store over an async SQLAlchemy session.

Every mutation is a single conditional UPDATE keyed on the job id and the
expected prior status, so two callers racing on the same transition cannot
both win.
"""

from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import and_, extract, func, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from storyjobs.config.logging import get_logger
from storyjobs.v1.core.exceptions import ConfigurationError, ConflictError
from storyjobs.v1.jobs.models import JobRecord, JobStatus

logger = get_logger(__name__)


def _status_values(expected: JobStatus | Iterable[JobStatus]) -> list[str]:
    if isinstance(expected, JobStatus):
        return [expected.value]
    return [status.value for status in expected]


class JobStore:
    """Read, insert and conditional update of job records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def _errors(self, operation: str) -> AsyncIterator[None]:
        """Surface connectivity problems as ConfigurationError without retrying."""
        try:
            yield
        except (OperationalError, InterfaceError) as e:
            # Leave the session usable for the next call
            await self.session.rollback()
            logger.error("Job store unavailable", operation=operation, error=str(e))
            raise ConfigurationError(
                "Job store is unreachable or misconfigured",
                details={"operation": operation},
            ) from e

    async def get(self, job_id: str) -> JobRecord | None:
        async with self._errors("get"):
            return await self.session.get(JobRecord, job_id, populate_existing=True)

    async def insert(self, record: JobRecord) -> JobRecord:
        async with self._errors("insert"):
            self.session.add(record)
            try:
                await self.session.commit()
            except IntegrityError as e:
                await self.session.rollback()
                raise ConflictError(
                    "Job already exists", details={"job_id": record.id}
                ) from e
            await self.session.refresh(record)
        return record

    async def update_where(
        self,
        job_id: str,
        expected_status: JobStatus | Iterable[JobStatus],
        patch: dict[str, Any],
        owner_id: str | None = None,
        conditions: list[ColumnElement[bool]] | None = None,
    ) -> JobRecord:
        """
        Apply `patch` only if the record is still in `expected_status`.

        When `owner_id` is given the record must also be claimed by that owner;
        `conditions` adds further guards to the same statement.
        Raises ConflictError when no row matched.
        """
        expected = _status_values(expected_status)
        guards = [JobRecord.id == job_id, JobRecord.status.in_(expected)]
        if owner_id is not None:
            guards.append(JobRecord.locked_by == owner_id)
        guards.extend(conditions or [])

        async with self._errors("update_where"):
            result = await self.session.execute(
                update(JobRecord)
                .where(and_(*guards))
                .values(**patch)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()

            if result.rowcount != 1:
                current = await self.get(job_id)
                raise ConflictError(
                    "Job is not in the expected state",
                    details={
                        "job_id": job_id,
                        "expected_status": expected,
                        "actual_status": current.status if current else None,
                        "owner_id": owner_id,
                    },
                )

            record = await self.get(job_id)
        return record

    async def first_processing(self) -> JobRecord | None:
        """Return any processing record, oldest heartbeat first."""
        async with self._errors("first_processing"):
            result = await self.session.execute(
                select(JobRecord)
                .where(JobRecord.status == JobStatus.PROCESSING.value)
                .order_by(JobRecord.heartbeat_at)
                .limit(1)
            )
            return result.scalars().first()

    async def list_pending(
        self, limit: int, kinds: list[str] | None = None
    ) -> list[JobRecord]:
        """Pending records, oldest first."""
        query = select(JobRecord).where(JobRecord.status == JobStatus.PENDING.value)
        if kinds:
            query = query.where(JobRecord.kind.in_(kinds))
        query = query.order_by(JobRecord.created_at).limit(limit)

        async with self._errors("list_pending"):
            result = await self.session.execute(query)
            return list(result.scalars().all())

    async def list_stale(self, cutoff: datetime) -> list[JobRecord]:
        """Processing records whose last heartbeat is older than `cutoff`."""
        async with self._errors("list_stale"):
            result = await self.session.execute(
                select(JobRecord).where(
                    and_(
                        JobRecord.status == JobStatus.PROCESSING.value,
                        JobRecord.heartbeat_at < cutoff,
                    )
                )
            )
            return list(result.scalars().all())

    async def list_jobs(
        self,
        kind: str | None = None,
        status: list[JobStatus] | None = None,
        user_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[JobRecord], int]:
        """Filtered listing, newest first, with the unpaginated total."""
        query = select(JobRecord)
        if kind:
            query = query.where(JobRecord.kind == kind)
        if status:
            query = query.where(JobRecord.status.in_([s.value for s in status]))
        if user_id:
            query = query.where(JobRecord.user_id == user_id)

        async with self._errors("list"):
            total_result = await self.session.execute(
                select(func.count()).select_from(query.subquery())
            )
            total = total_result.scalar() or 0

            rows = await self.session.execute(
                query.order_by(JobRecord.created_at.desc()).offset(offset).limit(limit)
            )
            return list(rows.scalars().all()), total

    async def count_by(
        self, column: str, user_id: str | None = None
    ) -> dict[str, int]:
        """Row counts grouped by `status` or `kind`."""
        group_column = getattr(JobRecord, column)
        query = select(group_column, func.count(JobRecord.id)).group_by(group_column)
        if user_id:
            query = query.where(JobRecord.user_id == user_id)

        async with self._errors("count_by"):
            result = await self.session.execute(query)
            return {key: count for key, count in result.all()}

    def _elapsed_seconds(self, start, end):
        if self.session.get_bind().dialect.name == "sqlite":
            return (func.julianday(end) - func.julianday(start)) * 86400.0
        return extract("epoch", end - start)

    async def timing_aggregates(self, user_id: str | None = None) -> dict[str, Any]:
        """
        Aggregates that counts alone cannot give.

        Returns the mean and max processing time of completed jobs (seconds,
        None without samples), the creation time of the oldest pending job and
        the number of jobs that were retried at least once.
        """
        scope = [JobRecord.user_id == user_id] if user_id else []
        elapsed = self._elapsed_seconds(JobRecord.started_at, JobRecord.completed_at)

        timing_query = select(func.avg(elapsed), func.max(elapsed)).where(
            JobRecord.status == JobStatus.COMPLETED.value,
            JobRecord.started_at.is_not(None),
            JobRecord.completed_at.is_not(None),
            *scope,
        )
        oldest_query = select(func.min(JobRecord.created_at)).where(
            JobRecord.status == JobStatus.PENDING.value, *scope
        )
        retried_query = select(func.count(JobRecord.id)).where(
            JobRecord.retry_count > 0, *scope
        )

        async with self._errors("timing_aggregates"):
            average, peak = (await self.session.execute(timing_query)).one()
            oldest_pending = (await self.session.execute(oldest_query)).scalar()
            retried = (await self.session.execute(retried_query)).scalar() or 0

        return {
            "average_processing_seconds": float(average) if average is not None else None,
            "peak_processing_seconds": float(peak) if peak is not None else None,
            "oldest_pending_at": oldest_pending,
            "retried": retried,
        }
