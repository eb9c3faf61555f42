"""
Driver registry.

Drivers hold connection pools, so one driver is kept per connection and
database and reused across requests. Passwords are decrypted when the
driver is created and never stored on the catalog record.
"""

import asyncio
import logging
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from ..catalog.models import ConnectionConfig
from ..constants import (DB_MONGODB, DEFAULT_POOL_SIZE, DEFAULT_QUERY_TIMEOUT,
                         SCHEMA_CACHE_TTL, SUPPORTED_DATABASE_TYPES)
from ..dialects import get_sql_dialect
from ..exceptions import UnsupportedDatabaseError
from ..security import PasswordCipher
from .base import DatabaseDriver
from .mongodb import MongoDriver
from .sql import SQLDriver

logger = logging.getLogger(__name__)

DriverFactory = Callable[[ConnectionConfig, str | None], DatabaseDriver]


class DriverRegistry:
    """
    Creates and caches drivers.

    Example:
        registry = DriverRegistry(PasswordCipher())
        driver = await registry.get_driver(connection, database="sales")
        rows, total = await driver.find(ref, spec)
        await registry.close_all()
    """

    def __init__(
        self,
        cipher: PasswordCipher | None = None,
        pool_size: int = DEFAULT_POOL_SIZE,
        query_timeout: int = DEFAULT_QUERY_TIMEOUT,
        schema_cache_ttl: int = SCHEMA_CACHE_TTL,
        driver_factory: DriverFactory | None = None,
    ):
        """
        Args:
            cipher: Decrypts stored connection passwords
            pool_size: Pool size per driver
            query_timeout: Statement timeout in seconds
            schema_cache_ttl: Seconds reflected schemas stay cached
            driver_factory: Replaces the built-in driver construction
        """
        self._cipher = cipher or PasswordCipher()
        self._pool_size = pool_size
        self._query_timeout = query_timeout
        self._schema_cache_ttl = schema_cache_ttl
        self._driver_factory = driver_factory
        self._drivers: dict[str, DatabaseDriver] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(connection: ConnectionConfig, database: str | None) -> str:
        return f"{connection.id}:{database or connection.database or ''}"

    def create_driver(self, connection: ConnectionConfig, database: str | None = None) -> DatabaseDriver:
        """
        Build a new driver for a connection.

        Raises:
            UnsupportedDatabaseError: For unknown database types
            ConfigurationError: If the password cannot be decrypted
        """
        if self._driver_factory is not None:
            return self._driver_factory(connection, database)

        db_type = str(connection.type).upper()
        if db_type not in SUPPORTED_DATABASE_TYPES:
            raise UnsupportedDatabaseError(db_type, supported=list(SUPPORTED_DATABASE_TYPES))

        password = self._cipher.decrypt(connection.password)
        if db_type == DB_MONGODB:
            return MongoDriver(
                connection,
                password=password,
                database=database,
                pool_size=self._pool_size,
                query_timeout=self._query_timeout,
                schema_cache_ttl=self._schema_cache_ttl,
            )
        return SQLDriver(
            connection,
            get_sql_dialect(db_type),
            password=password,
            database=database,
            pool_size=self._pool_size,
            query_timeout=self._query_timeout,
            schema_cache_ttl=self._schema_cache_ttl,
        )

    async def get_driver(
        self, connection: ConnectionConfig, database: str | None = None
    ) -> DatabaseDriver:
        """Return the cached driver for a connection and database, creating it once."""
        key = self._key(connection, database)
        driver = self._drivers.get(key)
        if driver is not None:
            return driver
        async with self._lock:
            driver = self._drivers.get(key)
            if driver is None:
                driver = self.create_driver(connection, database)
                self._drivers[key] = driver
                logger.debug(f"Registered {connection.type} driver {key}")
        return driver

    def pool_status(self) -> dict[str, dict[str, Any]]:
        """Pool usage per driver key, for drivers that expose it."""
        status = {}
        for key, driver in self._drivers.items():
            info = driver.pool_status()
            if info is not None:
                status[key] = info
        return status

    def __len__(self) -> int:
        return len(self._drivers)

    async def close_all(self) -> None:
        """Close every driver and forget them."""
        drivers = list(self._drivers.items())
        self._drivers.clear()
        for key, driver in drivers:
            try:
                await driver.close()
            except (SQLAlchemyError, OSError, RuntimeError) as e:
                logger.warning(f"Error closing driver {key}: {e}")
        if drivers:
            logger.info(f"Closed {len(drivers)} database driver(s)")
