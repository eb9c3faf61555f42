"""
Database drivers used by auto-REST services.
"""

from .base import DatabaseDriver, SchemaCache
from .mongodb import MongoDriver, infer_schema
from .registry import DriverRegistry
from .serialization import serialize_row, serialize_value
from .sql import SQLDriver

__all__ = [
    "DatabaseDriver",
    "SchemaCache",
    "MongoDriver",
    "SQLDriver",
    "DriverRegistry",
    "infer_schema",
    "serialize_row",
    "serialize_value",
]
