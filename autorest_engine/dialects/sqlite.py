"""
SQLite through aiosqlite.

The connection's ``database`` is the file path (or ``:memory:``). SQLite
engines use SQLAlchemy's default pool, so no pool sizing is passed.
"""

from typing import Any

from sqlalchemy.engine import URL

from ..catalog.models import ConnectionConfig
from ..constants import DB_SQLITE, DEFAULT_QUERY_TIMEOUT, DEFAULT_SCHEMAS
from .base import SQLDialect


class SQLiteDialect(SQLDialect):
    db_type = DB_SQLITE
    driver_name = "sqlite+aiosqlite"
    default_schema = DEFAULT_SCHEMAS[DB_SQLITE]
    system_schemas = frozenset({"temp"})

    def build_url(self, connection: ConnectionConfig, password: str | None, database: str | None) -> URL:
        return URL.create(self.driver_name, database=database or connection.database or ":memory:")

    def engine_options(
        self,
        connection: ConnectionConfig,
        pool_size: int = 1,
        query_timeout: int = DEFAULT_QUERY_TIMEOUT,
    ) -> dict[str, Any]:
        return {"connect_args": {"timeout": query_timeout}}
