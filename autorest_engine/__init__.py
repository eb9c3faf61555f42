"""
AUTOREST_ENGINE - Auto-REST Engine

Exposes tables, views and collections of PostgreSQL, SQL Server, MySQL,
SQLite and MongoDB databases as REST resources, with pagination, filtering,
sorting and per-role field and row policies.
"""

__version__ = "0.2.0"

# Catalog
from .catalog import (Application, CatalogStore, ConnectionConfig,
                      ExposedEntity, FieldPolicy, InMemoryCatalogStore,
                      ManifestValidator, MongoCatalogStore, RowPolicy,
                      Service, load_manifest)
# Configuration
from .config import EngineConfig
# Core engine
from .core import AutoRestEngine
# Drivers
from .drivers import DatabaseDriver, DriverRegistry
# Errors
from .exceptions import (AuthenticationError, AutoRestError,
                         ConfigurationError, DriverError,
                         EntityNotFoundError, QueryValidationError,
                         RowNotFoundError)
# Request handling
from .service import AutoRestService, ListParams, RequestPrincipal

__all__ = [
    "__version__",
    # Core
    "AutoRestEngine",
    "AutoRestService",
    "EngineConfig",
    "ListParams",
    "RequestPrincipal",
    # Catalog
    "CatalogStore",
    "InMemoryCatalogStore",
    "MongoCatalogStore",
    "ManifestValidator",
    "load_manifest",
    "Application",
    "ConnectionConfig",
    "ExposedEntity",
    "FieldPolicy",
    "RowPolicy",
    "Service",
    # Drivers
    "DatabaseDriver",
    "DriverRegistry",
    # Errors
    "AutoRestError",
    "AuthenticationError",
    "ConfigurationError",
    "DriverError",
    "EntityNotFoundError",
    "QueryValidationError",
    "RowNotFoundError",
]
