from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conduit.kernel.time import coerce_utc, parse_iso8601, truncate_to_window


@pytest.mark.unit
def test_parse_iso8601_accepts_z_suffix():
    assert parse_iso8601("2026-03-01T10:00:00Z") == datetime(2026, 3, 1, 10, tzinfo=timezone.utc)


@pytest.mark.unit
def test_parse_iso8601_treats_naive_as_utc():
    assert parse_iso8601("2026-03-01T10:00:00").tzinfo == timezone.utc


@pytest.mark.unit
def test_coerce_utc_converts_offsets():
    value = datetime(2026, 3, 1, 12, tzinfo=timezone(timedelta(hours=2)))
    assert coerce_utc(value) == datetime(2026, 3, 1, 10, tzinfo=timezone.utc)


@pytest.mark.unit
def test_coerce_utc_rejects_naive_without_assumption():
    with pytest.raises(ValueError):
        coerce_utc(datetime(2026, 3, 1), assume_naive_is_utc=False)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("value", "window", "expected"),
    [
        (datetime(2026, 3, 1, 10, 0, 59, 999000, tzinfo=timezone.utc), 60, datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)),
        (datetime(2026, 3, 1, 10, 1, 0, tzinfo=timezone.utc), 60, datetime(2026, 3, 1, 10, 1, tzinfo=timezone.utc)),
        (datetime(2026, 3, 1, 23, 59, 59, tzinfo=timezone.utc), 86400, datetime(2026, 3, 1, tzinfo=timezone.utc)),
    ],
)
def test_truncate_to_window_floors_to_epoch_aligned_boundary(value, window, expected):
    assert truncate_to_window(value, window) == expected


@pytest.mark.unit
def test_truncate_to_window_rejects_non_positive_window():
    with pytest.raises(ValueError):
        truncate_to_window(datetime(2026, 3, 1, tzinfo=timezone.utc), 0)
