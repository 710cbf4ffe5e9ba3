from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from conduit.jobs.models import JobStatus
from conduit.kernel.serialization import to_jsonable


@dataclass
class _Delivery:
    recipient: str
    at: datetime


@pytest.mark.unit
def test_to_jsonable_handles_nested_values():
    at = datetime(2026, 1, 1, tzinfo=timezone.utc)
    value = {
        "status": JobStatus.COMPLETED,
        "id": UUID("12345678-1234-5678-1234-567812345678"),
        "amount": Decimal("1.50"),
        "deliveries": (_Delivery("user_1", at),),
    }
    assert to_jsonable(value) == {
        "status": "completed",
        "id": "12345678-1234-5678-1234-567812345678",
        "amount": "1.50",
        "deliveries": [{"recipient": "user_1", "at": "2026-01-01T00:00:00+00:00"}],
    }


@pytest.mark.unit
def test_to_jsonable_rejects_unknown_types():
    with pytest.raises(TypeError):
        to_jsonable(object())
