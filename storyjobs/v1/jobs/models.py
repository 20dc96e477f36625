"""
Background job record model.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, SmallInteger, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from storyjobs.infra.database import Base


class JobStatus(str, Enum):
    """Job status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)


class JobKind(str, Enum):
    """Kinds of generation work tracked by the service."""

    IMAGE = "image"
    STORY = "story"
    AUTO_STORY = "auto-story"
    CARTOONIZE = "cartoonize"
    SCENE = "scene"


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always comes back as UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value

    def process_result_value(self, value: datetime | None, dialect):
        # SQLite hands back naive values
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


class JobRecord(Base):
    """
    A unit of asynchronous generation work.

    Ownership of fields:
    - status, started_at, completed_at: lifecycle manager
    - retry_count: retry coordinator
    - progress, current_step: the claiming worker
    """

    __tablename__ = "background_jobs"

    # Core fields
    id: Mapped[str] = mapped_column(Text, primary_key=True)
    kind: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Job kind identifier"
    )
    user_id: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Requesting user"
    )
    parameters: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Validated kind-specific parameters",
    )

    # Job state
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobStatus.PENDING.value,
        comment="Job status: pending|processing|completed|failed|cancelled",
    )
    progress: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=0, comment="Progress 0-100"
    )
    current_step: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Advisory step label set by the worker"
    )
    retry_count: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=0, comment="Retries consumed"
    )
    max_retries: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=3, comment="Retry budget for the kind"
    )

    # Worker coordination
    locked_by: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Owner token of the claiming worker"
    )
    heartbeat_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, comment="Last claim owner heartbeat"
    )

    # Outcome
    result_ref: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Identifier of the produced artifact"
    )
    result_data: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Worker-provided result payload"
    )
    error_message: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Failure description"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="background_jobs_status_check",
        ),
        CheckConstraint(
            "progress BETWEEN 0 AND 100", name="background_jobs_progress_check"
        ),
        CheckConstraint("retry_count >= 0", name="background_jobs_retry_count_check"),
        Index("ix_background_jobs_status_created_at", "status", "created_at"),
        Index("ix_background_jobs_kind_status", "kind", "status"),
        Index("ix_background_jobs_heartbeat_at", "heartbeat_at"),
    )

    @property
    def job_status(self) -> JobStatus:
        return JobStatus(self.status)

    def is_terminal(self) -> bool:
        """Check if job is in a terminal state (completed, failed, cancelled)."""
        return self.job_status in TERMINAL_STATUSES

    def can_retry(self) -> bool:
        """Check if a failed job still has retry budget left."""
        return (
            self.status == JobStatus.FAILED.value
            and self.retry_count < self.max_retries
        )

    def __repr__(self) -> str:
        return (
            f"JobRecord(id={self.id!r}, kind={self.kind!r}, status={self.status!r}, "
            f"progress={self.progress}, retry_count={self.retry_count})"
        )
