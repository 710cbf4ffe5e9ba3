"""Gateway API keys.

Revision ID: 003_api_keys
Revises: 002_function_registry
Create Date: 2026-10-17

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY


revision: str = "003_api_keys"
down_revision: Union[str, None] = "002_function_registry"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "api_keys",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("owner_id", sa.Text, nullable=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("key_prefix", sa.Text, nullable=False),
        sa.Column("key_hash", sa.Text, nullable=False),
        sa.Column("entity_name", sa.Text, nullable=False),
        sa.Column("table_name", sa.Text, nullable=False),
        sa.Column(
            "allowed_operations",
            ARRAY(sa.Text),
            nullable=False,
            server_default=sa.text("ARRAY['list', 'get']::text[]"),
        ),
        sa.Column("rate_limit_per_minute", sa.Integer, nullable=False, server_default="60"),
        sa.Column("rate_limit_per_day", sa.Integer, nullable=False, server_default="10000"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("request_count", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("key_prefix ~ '^ak_[a-zA-Z0-9]{6}$'", name="api_keys_key_prefix_check"),
        sa.CheckConstraint(
            "allowed_operations <@ ARRAY['list', 'get', 'create', 'update', 'delete']::text[]",
            name="api_keys_allowed_operations_check",
        ),
        sa.CheckConstraint(
            "rate_limit_per_minute > 0 AND rate_limit_per_day > 0",
            name="api_keys_rate_limits_check",
        ),
    )
    op.create_unique_constraint("api_keys_key_hash_uq", "api_keys", ["key_hash"])
    op.create_index("api_keys_owner_idx", "api_keys", ["owner_id"])


def downgrade() -> None:
    op.drop_index("api_keys_owner_idx", table_name="api_keys")
    op.drop_constraint("api_keys_key_hash_uq", "api_keys", type_="unique")
    op.drop_table("api_keys")
