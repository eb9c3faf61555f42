"""
Base class for SQL dialects.

A dialect knows how to reach one kind of database through SQLAlchemy's
async engine: the driver name, the connection URL, pool settings and which
schemas are internal to the server.
"""

from typing import Any

from sqlalchemy.engine import URL
from sqlalchemy.types import (JSON, Boolean, Date, DateTime, Float, Integer,
                              LargeBinary, Numeric, String, Time, TypeEngine,
                              Uuid)

from ..catalog.models import ConnectionConfig
from ..constants import (DEFAULT_MAX_OVERFLOW, DEFAULT_POOL_RECYCLE,
                         DEFAULT_POOL_SIZE, DEFAULT_PORTS,
                         DEFAULT_QUERY_TIMEOUT)
from ..query.types import (CATEGORY_BINARY, CATEGORY_BOOLEAN, CATEGORY_DATE,
                           CATEGORY_DATETIME, CATEGORY_INTEGER,
                           CATEGORY_JSON, CATEGORY_NUMBER, CATEGORY_OTHER,
                           CATEGORY_STRING, CATEGORY_TIME, CATEGORY_UUID)

# Checked in order; Boolean must come before the numeric types some backends alias it to
_CATEGORY_TYPES: tuple[tuple[type, str], ...] = (
    (Boolean, CATEGORY_BOOLEAN),
    (Integer, CATEGORY_INTEGER),
    (Numeric, CATEGORY_NUMBER),
    (Float, CATEGORY_NUMBER),
    (DateTime, CATEGORY_DATETIME),
    (Date, CATEGORY_DATE),
    (Time, CATEGORY_TIME),
    (Uuid, CATEGORY_UUID),
    (JSON, CATEGORY_JSON),
    (LargeBinary, CATEGORY_BINARY),
    (String, CATEGORY_STRING),
)


def column_category(sa_type: TypeEngine) -> str:
    """Map a reflected SQLAlchemy type to a column category."""
    for type_class, category in _CATEGORY_TYPES:
        if isinstance(sa_type, type_class):
            return category
    return CATEGORY_OTHER


class SQLDialect:
    """
    Connection settings for one SQL backend.

    Subclasses set the class attributes and override the hooks that differ.
    """

    db_type: str = ""
    driver_name: str = ""
    default_schema: str | None = None
    system_schemas: frozenset[str] = frozenset()

    def build_url(self, connection: ConnectionConfig, password: str | None, database: str | None) -> URL:
        """Build the SQLAlchemy URL for a connection."""
        return URL.create(
            self.driver_name,
            username=connection.username or None,
            password=password or None,
            host=connection.host or None,
            port=connection.port or DEFAULT_PORTS.get(self.db_type),
            database=database or connection.database or None,
        )

    def connect_args(self, connection: ConnectionConfig, query_timeout: int) -> dict[str, Any]:
        """DBAPI connect() arguments."""
        return {}

    def engine_options(
        self,
        connection: ConnectionConfig,
        pool_size: int = DEFAULT_POOL_SIZE,
        query_timeout: int = DEFAULT_QUERY_TIMEOUT,
    ) -> dict[str, Any]:
        """Keyword arguments for ``create_async_engine``."""
        options = {
            "pool_size": pool_size,
            "max_overflow": DEFAULT_MAX_OVERFLOW,
            "pool_recycle": DEFAULT_POOL_RECYCLE,
            "pool_pre_ping": True,
        }
        connect_args = self.connect_args(connection, query_timeout)
        if connect_args:
            options["connect_args"] = connect_args
        return options

    def is_system_schema(self, schema: str | None) -> bool:
        if schema is None:
            return False
        return schema in self.system_schemas or schema.lower() in self.system_schemas

    def discovery_schemas(self, schema_names: list[str]) -> list[str | None]:
        """Schemas whose tables are offered during discovery."""
        return [s for s in schema_names if not self.is_system_schema(s)]
