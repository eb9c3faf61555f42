"""
Unit tests for AutoRestEngine.

Tests the orchestration engine including:
- Initialization and shutdown
- Manifest loading at startup
- API key authentication
- Health reporting
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from autorest_engine.catalog import InMemoryCatalogStore
from autorest_engine.config import EngineConfig
from autorest_engine.core import AutoRestEngine
from autorest_engine.drivers import DriverRegistry
from autorest_engine.exceptions import (ConfigurationError,
                                        InitializationError,
                                        ManifestValidationError)
from autorest_engine.observability import get_metrics_collector
from autorest_engine.service import AutoRestService

from conftest import TEST_ADMIN_KEY, TEST_API_KEY, ScriptedDriver, build_manifest


@pytest.fixture(autouse=True)
def no_env_catalog(monkeypatch):
    for name in ("AUTOREST_CATALOG_URI", "AUTOREST_MANIFEST", "AUTOREST_MASTER_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def manifest_file(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(build_manifest()))
    return str(path)


@pytest.mark.unit
class TestEngineLifecycle:
    @pytest.mark.asyncio
    async def test_in_memory_catalog_by_default(self):
        engine = AutoRestEngine(EngineConfig())
        await engine.initialize()

        assert engine.initialized is True
        assert isinstance(engine.store, InMemoryCatalogStore)
        assert isinstance(engine.registry, DriverRegistry)
        assert isinstance(engine.service, AutoRestService)
        assert get_metrics_collector().get_operation_count("engine.initialize") == 1

        await engine.shutdown()
        assert engine.initialized is False
        assert get_metrics_collector().get_operation_count("engine.shutdown") == 1

    @pytest.mark.asyncio
    async def test_properties_require_initialization(self):
        engine = AutoRestEngine(EngineConfig())
        with pytest.raises(InitializationError):
            engine.service
        with pytest.raises(InitializationError):
            engine.store

    @pytest.mark.asyncio
    async def test_initialize_twice_is_noop(self):
        store = InMemoryCatalogStore()
        engine = AutoRestEngine(EngineConfig(), store=store)
        await engine.initialize()
        service = engine.service
        await engine.initialize()
        assert engine.service is service
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self):
        driver = ScriptedDriver()
        registry = DriverRegistry(driver_factory=lambda c, d: driver)
        async with AutoRestEngine(EngineConfig(), registry=registry) as engine:
            await engine.registry.get_driver(driver.connection)
        assert driver.closed is True
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_invalid_config(self):
        engine = AutoRestEngine(EngineConfig(api_prefix="api"))
        with pytest.raises(ConfigurationError):
            await engine.initialize()
        assert engine.initialized is False

    @pytest.mark.asyncio
    async def test_mongo_catalog(self):
        store = MagicMock()
        store.backend_name = "mongodb"
        store.ensure_indexes = AsyncMock()
        store.close = AsyncMock()
        with patch(
            "autorest_engine.core.engine.MongoCatalogStore.from_uri", return_value=store
        ) as from_uri:
            engine = AutoRestEngine(EngineConfig(catalog_uri="mongodb://db:27017", catalog_db="cat"))
            await engine.initialize()

        from_uri.assert_called_once_with("mongodb://db:27017", "cat")
        store.ensure_indexes.assert_awaited_once()
        await engine.shutdown()
        store.close.assert_awaited_once()


@pytest.mark.unit
class TestEngineManifest:
    @pytest.mark.asyncio
    async def test_manifest_loaded(self, manifest_file):
        async with AutoRestEngine(EngineConfig(manifest_path=manifest_file)) as engine:
            reader = await engine.authenticate(TEST_API_KEY)
            admin = await engine.authenticate(TEST_ADMIN_KEY)
            assert reader.name == "reader"
            assert admin.can_manage is True
            assert await engine.authenticate("ark_unknown") is None
            assert await engine.authenticate("") is None

    @pytest.mark.asyncio
    async def test_invalid_manifest_fails_startup(self, tmp_path):
        manifest = build_manifest()
        manifest["services"][0]["connection_id"] = "missing"
        path = tmp_path / "bad.json"
        path.write_text(json.dumps(manifest))

        engine = AutoRestEngine(EngineConfig(manifest_path=str(path)))
        with pytest.raises(ManifestValidationError):
            await engine.initialize()
        assert engine.initialized is False


@pytest.mark.unit
class TestEngineHealth:
    @pytest.mark.asyncio
    async def test_not_initialized(self):
        report = await AutoRestEngine(EngineConfig()).health()
        assert report["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_healthy(self):
        async with AutoRestEngine(EngineConfig()) as engine:
            report = await engine.health()
        assert report["status"] == "healthy"
        assert [c["name"] for c in report["checks"]] == ["catalog", "driver_pools"]
