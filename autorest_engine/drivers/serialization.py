"""
Conversion of database values into JSON-friendly Python values.
"""

import base64
import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Mapping

from bson import Decimal128, ObjectId


def serialize_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Decimal128):
        value = value.to_decimal()
    if isinstance(value, Decimal):
        if value.is_finite() and value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, Mapping):
        return {str(k): serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [serialize_value(v) for v in value]
    return str(value)


def serialize_row(row: Mapping[str, Any]) -> dict[str, Any]:
    """Serialize one row or document."""
    return {str(key): serialize_value(value) for key, value in row.items()}
