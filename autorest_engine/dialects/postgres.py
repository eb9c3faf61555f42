"""
PostgreSQL through asyncpg.
"""

from typing import Any

from ..catalog.models import ConnectionConfig
from ..constants import DB_POSTGRESQL, DEFAULT_SCHEMAS
from .base import SQLDialect


class PostgresDialect(SQLDialect):
    db_type = DB_POSTGRESQL
    driver_name = "postgresql+asyncpg"
    default_schema = DEFAULT_SCHEMAS[DB_POSTGRESQL]
    system_schemas = frozenset({"information_schema", "pg_catalog", "pg_toast"})

    def is_system_schema(self, schema: str | None) -> bool:
        return super().is_system_schema(schema) or bool(schema and schema.startswith("pg_"))

    def connect_args(self, connection: ConnectionConfig, query_timeout: int) -> dict[str, Any]:
        args: dict[str, Any] = {
            "command_timeout": query_timeout,
            "server_settings": {"statement_timeout": str(query_timeout * 1000)},
        }
        if connection.ssl_enabled:
            args["ssl"] = connection.options.get("sslmode", "require")
        return args
