"""Constraints declared by the job_queue migration."""

from __future__ import annotations

import importlib.util
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import sqlalchemy as sa

pytestmark = pytest.mark.unit

MIGRATION = Path(__file__).resolve().parents[3] / "alembic" / "versions" / "001_job_queue.py"


def _load_migration():
    spec = importlib.util.spec_from_file_location("job_queue_migration", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _created_table_items():
    migration = _load_migration()
    op = MagicMock()
    with patch.object(migration, "op", op):
        migration.upgrade()
    _name, *items = op.create_table.call_args.args
    return items


def test_finished_jobs_must_carry_exactly_one_outcome():
    checks = {
        item.name: str(item.sqltext)
        for item in _created_table_items()
        if isinstance(item, sa.CheckConstraint)
    }

    outcome = checks["job_queue_terminal_outcome_check"]
    assert "status NOT IN ('completed', 'failed')" in outcome
    assert "(result IS NULL) <> (error_message IS NULL)" in outcome


def test_claims_record_the_holding_worker():
    columns = {item.name for item in _created_table_items() if isinstance(item, sa.Column)}

    assert "locked_by" in columns
