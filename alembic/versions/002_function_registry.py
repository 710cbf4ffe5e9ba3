"""Stored function definitions and the function call log.

Revision ID: 002_function_registry
Revises: 001_job_queue
Create Date: 2026-10-17

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


revision: str = "002_function_registry"
down_revision: Union[str, None] = "001_job_queue"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "function_definitions",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("owner_id", sa.Text, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column(
            "parameters",
            JSONB,
            nullable=False,
            server_default=sa.text("'{\"type\": \"object\", \"properties\": {}}'::jsonb"),
        ),
        sa.Column("target_kind", sa.Text, nullable=True),
        sa.Column("is_enabled", sa.Boolean, nullable=False, server_default=sa.true()),
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
        sa.CheckConstraint("name ~ '^[a-zA-Z_][a-zA-Z0-9_]{0,63}$'", name="function_definitions_name_check"),
    )
    op.create_unique_constraint(
        "function_definitions_owner_name_uq",
        "function_definitions",
        ["owner_id", "name"],
    )

    op.create_table(
        "function_call_logs",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("owner_id", sa.Text, nullable=True),
        sa.Column("llm_call_log_id", sa.Text, nullable=True),
        sa.Column("function_name", sa.Text, nullable=False),
        sa.Column("arguments", JSONB, nullable=True),
        sa.Column("execution_mode", sa.Text, nullable=True),
        sa.Column("status", sa.Text, nullable=False, server_default="executing"),
        sa.Column("result", JSONB, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column(
            "job_id",
            sa.Text,
            sa.ForeignKey("job_queue.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("execution_time_ms", sa.Integer, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('executing', 'success', 'failed')",
            name="function_call_logs_status_check",
        ),
        sa.CheckConstraint(
            "execution_mode IS NULL OR execution_mode IN ('sync', 'async')",
            name="function_call_logs_mode_check",
        ),
    )
    op.create_index(
        "function_call_logs_owner_started_idx",
        "function_call_logs",
        ["owner_id", "started_at"],
    )
    op.create_index("function_call_logs_job_idx", "function_call_logs", ["job_id"])
    op.create_index(
        "function_call_logs_llm_call_idx",
        "function_call_logs",
        ["llm_call_log_id"],
    )


def downgrade() -> None:
    op.drop_index("function_call_logs_llm_call_idx", table_name="function_call_logs")
    op.drop_index("function_call_logs_job_idx", table_name="function_call_logs")
    op.drop_index("function_call_logs_owner_started_idx", table_name="function_call_logs")
    op.drop_table("function_call_logs")
    op.drop_constraint(
        "function_definitions_owner_name_uq",
        "function_definitions",
        type_="unique",
    )
    op.drop_table("function_definitions")
