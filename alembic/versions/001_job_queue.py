"""Durable job queue.

Revision ID: 001_job_queue
Revises:
Create Date: 2026-10-17

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


revision: str = "001_job_queue"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "job_queue",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("kind", sa.Text, nullable=False),
        sa.Column("payload", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("progress", sa.Integer, nullable=False, server_default="0"),
        sa.Column("priority", sa.Integer, nullable=False, server_default="0"),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("owner_id", sa.Text, nullable=True),
        sa.Column("result", JSONB, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.Text, nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="job_queue_status_check",
        ),
        sa.CheckConstraint("progress BETWEEN 0 AND 100", name="job_queue_progress_check"),
        # A finished job carries exactly one of result / error_message.
        sa.CheckConstraint(
            "status NOT IN ('completed', 'failed') "
            "OR ((result IS NULL) <> (error_message IS NULL))",
            name="job_queue_terminal_outcome_check",
        ),
    )

    # Claim query: WHERE status = 'pending' AND scheduled_at <= now
    # ORDER BY priority DESC, scheduled_at ASC
    op.create_index(
        "job_queue_claim_idx",
        "job_queue",
        ["status", sa.text("priority DESC"), "scheduled_at"],
    )
    op.create_index("job_queue_owner_created_idx", "job_queue", ["owner_id", "created_at"])
    op.create_index("job_queue_kind_idx", "job_queue", ["kind"])
    op.create_index(
        "job_queue_processing_started_idx",
        "job_queue",
        ["processing_started_at"],
        postgresql_where=sa.text("status = 'processing'"),
    )


def downgrade() -> None:
    op.drop_index("job_queue_processing_started_idx", table_name="job_queue")
    op.drop_index("job_queue_kind_idx", table_name="job_queue")
    op.drop_index("job_queue_owner_created_idx", table_name="job_queue")
    op.drop_index("job_queue_claim_idx", table_name="job_queue")
    op.drop_table("job_queue")
