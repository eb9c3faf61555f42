"""
Constants for AUTOREST_ENGINE.

This module contains all shared constants used across the codebase to avoid
magic numbers and improve maintainability.
"""

from typing import Final

# ============================================================================
# DATABASE TYPE CONSTANTS
# ============================================================================

DB_POSTGRESQL: Final[str] = "POSTGRESQL"
DB_MSSQL: Final[str] = "MSSQL"
DB_MYSQL: Final[str] = "MYSQL"
DB_SQLITE: Final[str] = "SQLITE"
DB_MONGODB: Final[str] = "MONGODB"

SUPPORTED_DATABASE_TYPES: Final[tuple[str, ...]] = (
    DB_POSTGRESQL,
    DB_MSSQL,
    DB_MYSQL,
    DB_SQLITE,
    DB_MONGODB,
)
"""Database types that can back an auto-REST service."""

SQL_DATABASE_TYPES: Final[tuple[str, ...]] = (
    DB_POSTGRESQL,
    DB_MSSQL,
    DB_MYSQL,
    DB_SQLITE,
)

DEFAULT_SCHEMAS: Final[dict[str, str | None]] = {
    DB_POSTGRESQL: "public",
    DB_MSSQL: "dbo",
    DB_MYSQL: None,
    DB_SQLITE: "main",
    DB_MONGODB: None,
}
"""Schema used when an exposed entity does not name one."""

DEFAULT_PORTS: Final[dict[str, int]] = {
    DB_POSTGRESQL: 5432,
    DB_MSSQL: 1433,
    DB_MYSQL: 3306,
    DB_MONGODB: 27017,
}

# ============================================================================
# ENTITY CONSTANTS
# ============================================================================

ENTITY_TYPE_TABLE: Final[str] = "TABLE"
ENTITY_TYPE_VIEW: Final[str] = "VIEW"
ENTITY_TYPE_COLLECTION: Final[str] = "COLLECTION"

SUPPORTED_ENTITY_TYPES: Final[tuple[str, ...]] = (
    ENTITY_TYPE_TABLE,
    ENTITY_TYPE_VIEW,
    ENTITY_TYPE_COLLECTION,
)

DEFAULT_SQL_PRIMARY_KEY: Final[str] = "id"
DEFAULT_MONGO_PRIMARY_KEY: Final[str] = "_id"

SLUG_STRIP_PREFIXES: Final[tuple[str, ...]] = ("gs", "tbl")
"""Common table name prefixes dropped when suggesting a path slug."""

# ============================================================================
# PAGINATION CONSTANTS
# ============================================================================

DEFAULT_PAGE_SIZE: Final[int] = 25
"""Rows returned per page when the caller does not ask for a size."""

MAX_PAGE_SIZE: Final[int] = 200
"""Upper bound for any requested page size."""

# ============================================================================
# QUERY LIMITS
# ============================================================================

MAX_FILTER_DEPTH: Final[int] = 5
"""Maximum nesting of and/or/not groups in a filter."""

MAX_FILTER_CONDITIONS: Final[int] = 50
"""Maximum number of leaf conditions in a single filter."""

MAX_IN_VALUES: Final[int] = 100
"""Maximum number of values in an in/nin condition."""

MAX_SORT_FIELDS: Final[int] = 10
"""Maximum number of fields that can be sorted in a single query."""

MAX_LIKE_PATTERN_LENGTH: Final[int] = 256
"""Maximum length of contains/startswith/endswith/like values."""

DEFAULT_QUERY_TIMEOUT: Final[int] = 30
"""Default statement timeout in seconds."""

MONGO_SCHEMA_SAMPLE_SIZE: Final[int] = 100
"""Documents sampled to infer the fields of a collection."""

MAX_MONGO_QUERY_DEPTH: Final[int] = 10
"""Maximum nesting of a compiled MongoDB filter document."""

MAX_REGEX_LENGTH: Final[int] = 1000
"""Maximum length of a compiled $regex pattern."""

DANGEROUS_OPERATORS: Final[tuple[str, ...]] = (
    "$where",
    "$eval",
    "$function",
    "$accumulator",
    "$expr",
)
"""MongoDB operators that never reach the database."""

# ============================================================================
# CACHING & POOLING CONSTANTS
# ============================================================================

SCHEMA_CACHE_TTL: Final[int] = 300
"""Seconds a reflected table schema stays cached."""

MAX_CACHE_SIZE: Final[int] = 1000
"""Maximum number of cached table schemas per driver."""

DEFAULT_POOL_SIZE: Final[int] = 10
"""Default connection pool size per exposed database."""

DEFAULT_MAX_OVERFLOW: Final[int] = 5

DEFAULT_POOL_RECYCLE: Final[int] = 1800

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000
"""Default server selection timeout in milliseconds."""

# ============================================================================
# SECURITY CONSTANTS
# ============================================================================

MASK_VALUE: Final[str] = "****"
"""Replacement for masked field values."""

API_KEY_PREFIX: Final[str] = "ark_"

API_KEY_HEADER: Final[str] = "X-API-Key"

API_KEY_QUERY_PARAM: Final[str] = "api_key"

REQUEST_ID_HEADER: Final[str] = "X-Request-ID"

ENCRYPTED_PASSWORD_PREFIX: Final[str] = "enc:v1:"

# ============================================================================
# CATALOG CONSTANTS
# ============================================================================

CATALOG_CONNECTIONS: Final[str] = "autorest_connections"
CATALOG_SERVICES: Final[str] = "autorest_services"
CATALOG_ENTITIES: Final[str] = "autorest_entities"
CATALOG_APPLICATIONS: Final[str] = "autorest_applications"

CURRENT_MANIFEST_VERSION: Final[str] = "1.0"

DEFAULT_API_PREFIX: Final[str] = "/api/v2"
