"""
Engine

The orchestration object of AUTOREST_ENGINE. It manages:
- The catalog store (MongoDB or in memory)
- Manifest loading at startup
- The driver registry and its connection pools
- The request-handling AutoRestService
- Health checks
"""

import logging
import time
from typing import Any, Dict, Optional

from ..catalog import (CatalogStore, InMemoryCatalogStore, MongoCatalogStore,
                       load_manifest, read_manifest_file)
from ..catalog.models import Application
from ..config import EngineConfig
from ..drivers import DriverRegistry
from ..exceptions import InitializationError
from ..observability import (HealthChecker, check_catalog_health,
                             check_driver_pool_health)
from ..observability import get_logger as get_contextual_logger
from ..observability import record_operation, timed_operation
from ..security import PasswordCipher, hash_api_key
from ..service import AutoRestService

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


class AutoRestEngine:
    """
    The Auto-REST engine.

    Example:
        async with AutoRestEngine(EngineConfig(manifest_path="catalog.json")) as engine:
            page = await engine.service.handle_list(principal, "sales", "orders")
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        store: Optional[CatalogStore] = None,
        registry: Optional[DriverRegistry] = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            config: Engine configuration (read from the environment if omitted)
            store: Catalog store to use instead of the one derived from config
            registry: Driver registry to use instead of a new one
        """
        self.config = config or EngineConfig()
        self._store = store
        self._registry = registry
        self._service: Optional[AutoRestService] = None
        self._health_checker: Optional[HealthChecker] = None
        self._initialized = False

    async def initialize(self) -> None:
        """
        Initialize the engine.

        This method:
        1. Validates the configuration
        2. Connects the catalog store and creates its indexes
        3. Loads the startup manifest, if one is configured
        4. Builds the driver registry and the service

        Raises:
            ConfigurationError: If the configuration is invalid
            InitializationError: If the catalog cannot be reached
            ManifestValidationError: If the manifest is invalid
        """
        if self._initialized:
            logger.warning("AutoRestEngine already initialized. Skipping re-initialization.")
            return

        start_time = time.time()
        self.config.validate()

        if self._store is None:
            if self.config.uses_mongo_catalog:
                store = MongoCatalogStore.from_uri(self.config.catalog_uri, self.config.catalog_db)
                await store.ensure_indexes()
                self._store = store
            else:
                self._store = InMemoryCatalogStore()
        logger.info(f"Catalog store: {self._store.backend_name}")

        if self.config.manifest_path:
            manifest = read_manifest_file(self.config.manifest_path)
            counts = await load_manifest(self._store, manifest)
            contextual_logger.info(
                f"Loaded manifest {self.config.manifest_path}",
                extra={"manifest": self.config.manifest_path, **counts},
            )

        if self._registry is None:
            self._registry = DriverRegistry(
                PasswordCipher(self.config.master_key or None),
                pool_size=self.config.pool_size,
                query_timeout=self.config.query_timeout,
                schema_cache_ttl=self.config.schema_cache_ttl,
            )

        self._service = AutoRestService(
            self._store,
            self._registry,
            default_page_size=self.config.default_page_size,
            max_page_size=self.config.max_page_size,
            api_prefix=self.config.api_prefix,
        )
        self._health_checker = self._build_health_checker()
        self._initialized = True

        duration_ms = (time.time() - start_time) * 1000
        record_operation("engine.initialize", duration_ms)
        contextual_logger.info(
            "AutoRestEngine initialized",
            extra={"catalog": self._store.backend_name, "duration_ms": round(duration_ms, 2)},
        )

    def _build_health_checker(self) -> HealthChecker:
        checker = HealthChecker()

        async def catalog():
            return await check_catalog_health(self._store)

        async def driver_pools():
            return await check_driver_pool_health(self._registry)

        checker.register_check(catalog)
        checker.register_check(driver_pools)
        return checker

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise InitializationError("AutoRestEngine not initialized. Call initialize() first.")

    @property
    def store(self) -> CatalogStore:
        self._require_initialized()
        return self._store

    @property
    def registry(self) -> DriverRegistry:
        self._require_initialized()
        return self._registry

    @property
    def service(self) -> AutoRestService:
        """
        Get the request-handling service.

        Raises:
            InitializationError: If the engine is not initialized
        """
        self._require_initialized()
        return self._service

    async def authenticate(self, api_key: str) -> Optional[Application]:
        """Return the active application owning ``api_key``, if any."""
        if not api_key:
            return None
        return await self.store.get_application_by_key_hash(hash_api_key(api_key))

    async def health(self) -> Dict[str, Any]:
        """
        Run the registered health checks.

        Returns:
            Dictionary with the overall status and one entry per check
        """
        if self._health_checker is None:
            return {"status": "unhealthy", "checks": [], "message": "Engine not initialized"}
        return await self._health_checker.check_all()

    @timed_operation("engine.shutdown")
    async def shutdown(self) -> None:
        """
        Close every driver pool and the catalog connection.

        This method is idempotent - it's safe to call multiple times.
        """
        if self._registry is not None:
            await self._registry.close_all()
        if self._store is not None:
            await self._store.close()
        if self._initialized:
            logger.info("AutoRestEngine shut down")
        self._initialized = False

    async def __aenter__(self) -> "AutoRestEngine":
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        await self.shutdown()
