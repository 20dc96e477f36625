"""create background_jobs table

Revision ID: 3b7c9e2a41d6
Revises:
Create Date: 2026-10-18 09:30:12.418205

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b7c9e2a41d6"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "background_jobs",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("kind", sa.Text, nullable=False, comment="Job kind identifier"),
        sa.Column("user_id", sa.Text, nullable=True, comment="Requesting user"),
        sa.Column(
            "parameters",
            sa.JSON,
            nullable=False,
            comment="Validated kind-specific parameters",
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="pending",
            comment="Job status: pending|processing|completed|failed|cancelled",
        ),
        sa.Column(
            "progress",
            sa.SmallInteger,
            nullable=False,
            server_default="0",
            comment="Progress 0-100",
        ),
        sa.Column(
            "current_step",
            sa.Text,
            nullable=True,
            comment="Advisory step label set by the worker",
        ),
        sa.Column(
            "retry_count",
            sa.SmallInteger,
            nullable=False,
            server_default="0",
            comment="Retries consumed",
        ),
        sa.Column(
            "max_retries",
            sa.SmallInteger,
            nullable=False,
            server_default="3",
            comment="Retry budget for the kind",
        ),
        # Worker coordination fields
        sa.Column(
            "locked_by",
            sa.Text,
            nullable=True,
            comment="Owner token of the claiming worker",
        ),
        sa.Column(
            "heartbeat_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="Last claim owner heartbeat",
        ),
        # Outcome
        sa.Column(
            "result_ref", sa.Text, nullable=True, comment="Identifier of the produced artifact"
        ),
        sa.Column(
            "result_data", sa.JSON, nullable=True, comment="Worker-provided result payload"
        ),
        sa.Column("error_message", sa.Text, nullable=True, comment="Failure description"),
        # Timestamps
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("started_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        # Constraints
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="background_jobs_status_check",
        ),
        sa.CheckConstraint(
            "progress BETWEEN 0 AND 100", name="background_jobs_progress_check"
        ),
        sa.CheckConstraint("retry_count >= 0", name="background_jobs_retry_count_check"),
    )

    # Sweeps read pending jobs oldest first; stale recovery scans heartbeats
    op.create_index(
        "ix_background_jobs_status_created_at",
        "background_jobs",
        ["status", "created_at"],
    )
    op.create_index(
        "ix_background_jobs_kind_status", "background_jobs", ["kind", "status"]
    )
    op.create_index(
        "ix_background_jobs_heartbeat_at", "background_jobs", ["heartbeat_at"]
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_background_jobs_heartbeat_at", table_name="background_jobs")
    op.drop_index("ix_background_jobs_kind_status", table_name="background_jobs")
    op.drop_index("ix_background_jobs_status_created_at", table_name="background_jobs")
    op.drop_table("background_jobs")
