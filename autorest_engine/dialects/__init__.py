"""
Dialects: connection settings and statement compilation per backend.
"""

from ..constants import SQL_DATABASE_TYPES
from ..exceptions import UnsupportedDatabaseError
from .base import SQLDialect, column_category
from .mongodb import (MongoQuery, build_by_id_query, build_count_query,
                      build_filter, build_list_query)
from .mssql import MSSQLDialect
from .mysql import MySQLDialect
from .postgres import PostgresDialect
from .sql_builder import SQLStatementBuilder
from .sqlite import SQLiteDialect

SQL_DIALECTS: dict[str, type[SQLDialect]] = {
    dialect.db_type: dialect
    for dialect in (PostgresDialect, MySQLDialect, MSSQLDialect, SQLiteDialect)
}


def get_sql_dialect(db_type: str) -> SQLDialect:
    """
    Return the dialect for a SQL database type.

    Raises:
        UnsupportedDatabaseError: For unknown or non-SQL types
    """
    dialect_class = SQL_DIALECTS.get(str(db_type).upper())
    if dialect_class is None:
        raise UnsupportedDatabaseError(db_type, supported=list(SQL_DATABASE_TYPES))
    return dialect_class()


__all__ = [
    "SQLDialect",
    "column_category",
    "get_sql_dialect",
    "SQL_DIALECTS",
    "PostgresDialect",
    "MySQLDialect",
    "MSSQLDialect",
    "SQLiteDialect",
    "SQLStatementBuilder",
    "MongoQuery",
    "build_filter",
    "build_list_query",
    "build_count_query",
    "build_by_id_query",
]
