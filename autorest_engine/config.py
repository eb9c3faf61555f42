"""
Configuration management for AUTOREST_ENGINE.

Settings are read from environment variables with sensible defaults and
can be overridden by passing values directly to EngineConfig.
"""

import os

from .constants import (DEFAULT_API_PREFIX, DEFAULT_PAGE_SIZE,
                        DEFAULT_POOL_SIZE, DEFAULT_QUERY_TIMEOUT,
                        MAX_PAGE_SIZE, SCHEMA_CACHE_TTL)
from .exceptions import ConfigurationError


class EngineConfig:
    """
    Auto-REST engine configuration.

    Example:
        # Using environment variables
        config = EngineConfig()

        # Or using direct parameters
        config = EngineConfig(
            catalog_uri="mongodb://localhost:27017",
            catalog_db="autorest",
        )
    """

    def __init__(
        self,
        catalog_uri: str | None = None,
        catalog_db: str | None = None,
        manifest_path: str | None = None,
        api_prefix: str | None = None,
        default_page_size: int | None = None,
        max_page_size: int | None = None,
        schema_cache_ttl: int | None = None,
        pool_size: int | None = None,
        query_timeout: int | None = None,
        master_key: str | None = None,
    ):
        """
        Initialize configuration.

        Args:
            catalog_uri: MongoDB URI of the catalog (AUTOREST_CATALOG_URI).
                Empty means the catalog is kept in memory.
            catalog_db: Catalog database name (AUTOREST_CATALOG_DB, default "autorest")
            manifest_path: Manifest loaded at startup (AUTOREST_MANIFEST)
            api_prefix: Mount point of the REST router (AUTOREST_API_PREFIX)
            default_page_size: Page size when none is requested
            max_page_size: Upper bound for requested page sizes
            schema_cache_ttl: Seconds reflected schemas stay cached
            pool_size: Connection pool size per exposed database
            query_timeout: Statement timeout in seconds
            master_key: Base64 AES-256 key for stored passwords (AUTOREST_MASTER_KEY)
        """
        self.catalog_uri = catalog_uri or os.getenv("AUTOREST_CATALOG_URI", "")
        self.catalog_db = catalog_db or os.getenv("AUTOREST_CATALOG_DB", "autorest")
        self.manifest_path = manifest_path or os.getenv("AUTOREST_MANIFEST", "")
        self.api_prefix = api_prefix or os.getenv("AUTOREST_API_PREFIX", DEFAULT_API_PREFIX)
        self.default_page_size = default_page_size or int(
            os.getenv("AUTOREST_DEFAULT_PAGE_SIZE", str(DEFAULT_PAGE_SIZE))
        )
        self.max_page_size = max_page_size or int(
            os.getenv("AUTOREST_MAX_PAGE_SIZE", str(MAX_PAGE_SIZE))
        )
        self.schema_cache_ttl = (
            schema_cache_ttl
            if schema_cache_ttl is not None
            else int(os.getenv("AUTOREST_SCHEMA_CACHE_TTL", str(SCHEMA_CACHE_TTL)))
        )
        self.pool_size = pool_size or int(os.getenv("AUTOREST_POOL_SIZE", str(DEFAULT_POOL_SIZE)))
        self.query_timeout = query_timeout or int(
            os.getenv("AUTOREST_QUERY_TIMEOUT", str(DEFAULT_QUERY_TIMEOUT))
        )
        self.master_key = master_key or os.getenv("AUTOREST_MASTER_KEY", "")

    @property
    def uses_mongo_catalog(self) -> bool:
        """Whether the catalog is persisted in MongoDB."""
        return bool(self.catalog_uri)

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigurationError: If a value is missing or out of range
        """
        if self.uses_mongo_catalog and not self.catalog_db:
            raise ConfigurationError(
                "catalog_db is required when a catalog URI is set",
                config_key="AUTOREST_CATALOG_DB",
            )

        if not self.api_prefix.startswith("/"):
            raise ConfigurationError(
                f"api_prefix must start with '/', got {self.api_prefix!r}",
                config_key="AUTOREST_API_PREFIX",
                config_value=self.api_prefix,
            )

        if self.max_page_size < 1:
            raise ConfigurationError(
                f"max_page_size must be >= 1, got {self.max_page_size}",
                config_key="AUTOREST_MAX_PAGE_SIZE",
                config_value=self.max_page_size,
            )

        if not 1 <= self.default_page_size <= self.max_page_size:
            raise ConfigurationError(
                f"default_page_size ({self.default_page_size}) must be between 1 and "
                f"max_page_size ({self.max_page_size})",
                config_key="AUTOREST_DEFAULT_PAGE_SIZE",
                config_value=self.default_page_size,
            )

        if self.schema_cache_ttl < 0:
            raise ConfigurationError(
                f"schema_cache_ttl must be >= 0, got {self.schema_cache_ttl}",
                config_key="AUTOREST_SCHEMA_CACHE_TTL",
                config_value=self.schema_cache_ttl,
            )

        if self.pool_size < 1:
            raise ConfigurationError(
                f"pool_size must be >= 1, got {self.pool_size}",
                config_key="AUTOREST_POOL_SIZE",
                config_value=self.pool_size,
            )

        if self.query_timeout < 1:
            raise ConfigurationError(
                f"query_timeout must be >= 1, got {self.query_timeout}",
                config_key="AUTOREST_QUERY_TIMEOUT",
                config_value=self.query_timeout,
            )
