"""
Microsoft SQL Server through aioodbc.
"""

from ..catalog.models import ConnectionConfig
from ..constants import DB_MSSQL, DEFAULT_SCHEMAS
from .base import SQLDialect

DEFAULT_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"


class MSSQLDialect(SQLDialect):
    db_type = DB_MSSQL
    driver_name = "mssql+aioodbc"
    default_schema = DEFAULT_SCHEMAS[DB_MSSQL]
    system_schemas = frozenset(
        {
            "sys",
            "information_schema",
            "guest",
            "db_owner",
            "db_accessadmin",
            "db_securityadmin",
            "db_ddladmin",
            "db_backupoperator",
            "db_datareader",
            "db_datawriter",
            "db_denydatareader",
            "db_denydatawriter",
        }
    )

    def build_url(self, connection: ConnectionConfig, password: str | None, database: str | None):
        url = super().build_url(connection, password, database)
        query = {
            "driver": connection.options.get("odbc_driver", DEFAULT_ODBC_DRIVER),
            "Encrypt": "yes" if connection.ssl_enabled else "no",
        }
        if connection.options.get("trust_server_certificate", not connection.ssl_enabled):
            query["TrustServerCertificate"] = "yes"
        return url.update_query_dict(query)
