"""
Coercion of filter and id values to the type of the column they target.

Compact filters and path ids arrive as strings; JSON filters may already
carry numbers or booleans. Either way the value bound to the database has
the column's Python type, and a value that cannot be converted is a 400.
"""

import uuid
from datetime import date, datetime, time
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId

from ..exceptions import QueryValidationError
from .types import (CATEGORY_BOOLEAN, CATEGORY_DATE, CATEGORY_DATETIME,
                    CATEGORY_INTEGER, CATEGORY_NUMBER, CATEGORY_OBJECTID,
                    CATEGORY_STRING, CATEGORY_TIME, CATEGORY_UUID, ColumnInfo)

_TRUE_VALUES = frozenset({"true", "1", "yes", "y", "t", "on"})
_FALSE_VALUES = frozenset({"false", "0", "no", "n", "f", "off"})


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("not an integral number")
        return int(value)
    return int(str(value).strip())


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    return float(str(value).strip()) if isinstance(value, str) else float(value)


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError("not a boolean")


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _to_date(value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return date.fromisoformat(str(value).strip())


def _to_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value).strip())


def _to_uuid(value: Any) -> str:
    return str(uuid.UUID(str(value).strip()))


def _to_object_id(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return value
    text = str(value)
    # Collections may use non-ObjectId _id values, so only convert valid ids
    return ObjectId(text) if ObjectId.is_valid(text) else value


_COERCERS = {
    CATEGORY_INTEGER: _to_int,
    CATEGORY_NUMBER: _to_float,
    CATEGORY_BOOLEAN: parse_bool,
    CATEGORY_DATETIME: _to_datetime,
    CATEGORY_DATE: _to_date,
    CATEGORY_TIME: _to_time,
    CATEGORY_UUID: _to_uuid,
    CATEGORY_OBJECTID: _to_object_id,
    CATEGORY_STRING: str,
}


def coerce_value(value: Any, column: ColumnInfo | None) -> Any:
    """
    Convert ``value`` to the Python type of ``column``.

    ``None`` stays ``None``; columns without a known category (json, binary,
    other) receive the value unchanged.

    Raises:
        QueryValidationError: If the value does not fit the column type
    """
    if value is None or column is None:
        return value
    coercer = _COERCERS.get(column.category)
    if coercer is None:
        return value
    try:
        return coercer(value)
    except (ValueError, TypeError, InvalidId) as e:
        raise QueryValidationError(
            f"Invalid value {value!r} for {column.category} field '{column.name}'",
            query_type="value",
            field=column.name,
        ) from e
