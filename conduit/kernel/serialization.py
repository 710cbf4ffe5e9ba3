from __future__ import annotations

import dataclasses
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def to_jsonable(value: Any) -> Any:
    """Coerce common Python types into JSON-compatible primitives.

    Job results and function call results pass through here before they are
    written to jsonb columns. If you need to serialize a new type, add a branch
    and tests.
    """
    if value is None:
        return None

    if isinstance(value, Enum):
        return to_jsonable(value.value)

    if isinstance(value, (str, int, float, bool)):
        return value

    if isinstance(value, (datetime, date)):
        return value.isoformat()

    if isinstance(value, UUID):
        return str(value)

    if isinstance(value, Decimal):
        return str(value)

    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {str(k): to_jsonable(v) for (k, v) in dataclasses.asdict(value).items()}

    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for (k, v) in value.items()}

    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]

    model_dump = getattr(value, "model_dump", None)
    if callable(model_dump):
        return to_jsonable(model_dump())

    raise TypeError(f"Unsupported type for JSON serialization: {type(value)!r}")
