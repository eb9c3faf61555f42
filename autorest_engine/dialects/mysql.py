"""
MySQL and MariaDB through aiomysql.

MySQL has no schemas inside a database: entities are addressed by table
name within the connection's database.
"""

import ssl
from typing import Any

from ..catalog.models import ConnectionConfig
from ..constants import DB_MYSQL, DEFAULT_SCHEMAS
from .base import SQLDialect


class MySQLDialect(SQLDialect):
    db_type = DB_MYSQL
    driver_name = "mysql+aiomysql"
    default_schema = DEFAULT_SCHEMAS[DB_MYSQL]
    system_schemas = frozenset({"information_schema", "mysql", "performance_schema", "sys"})

    def connect_args(self, connection: ConnectionConfig, query_timeout: int) -> dict[str, Any]:
        args: dict[str, Any] = {"connect_timeout": query_timeout}
        if connection.ssl_enabled:
            args["ssl"] = ssl.create_default_context()
        return args

    def discovery_schemas(self, schema_names: list[str]) -> list[str | None]:
        # Only the connection's own database
        return [None]
