"""
Pytest configuration and shared fixtures for AUTOREST_ENGINE tests.

This module provides:
- Marker registration
- Catalog manifest factories
- A scripted in-memory driver for service and API tests
- Mock Motor fixtures
"""

import copy
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from motor.motor_asyncio import AsyncIOMotorCollection

from autorest_engine.catalog import InMemoryCatalogStore, load_manifest
from autorest_engine.catalog.manifest import clear_validation_cache
from autorest_engine.catalog.models import ConnectionConfig
from autorest_engine.drivers import DatabaseDriver, DriverRegistry
from autorest_engine.observability import get_metrics_collector
from autorest_engine.query.types import (CATEGORY_INTEGER, CATEGORY_NUMBER,
                                         CATEGORY_STRING, ColumnInfo,
                                         TableSchema)
from autorest_engine.service import AutoRestService

TEST_ORG = "acme"
TEST_API_KEY = "ark_test_reader_key_0001"
TEST_ADMIN_KEY = "ark_test_admin_key_0002"
OTHER_ORG_KEY = "ark_test_other_org_0003"


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external services")
    config.addinivalue_line("markers", "integration: tests against a real database")


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset the metrics collector and validation cache between tests."""
    get_metrics_collector().reset()
    clear_validation_cache()
    yield


# ============================================================================
# MANIFEST FIXTURES
# ============================================================================


def build_manifest(database: str = "/tmp/autorest-test.db") -> Dict[str, Any]:
    """A catalog with one SQLite service, two entities and three applications."""
    return {
        "schema_version": "1.0",
        "organization_id": TEST_ORG,
        "connections": [{"id": "main", "type": "SQLITE", "database": database}],
        "services": [{"name": "sales", "connection_id": "main"}],
        "entities": [
            {
                "service": "sales",
                "name": "tbl_orders",
                "path_slug": "orders",
                "primary_key": "id",
                "default_sort": "-id",
                "allow_create": True,
                "allow_update": True,
                "allow_delete": True,
                "field_policies": [
                    {"role_id": None, "exclude_fields": ["internal_note"], "masked_fields": ["card"]},
                    {"role_id": "auditor", "include_fields": ["id", "status", "total"]},
                ],
                "row_policies": [
                    {"role_id": None, "filter_template": {"owner_id": "{{user.id}}"}},
                    {"role_id": "auditor", "filter_template": "status:shipped"},
                ],
            },
            {"service": "sales", "name": "customers", "primary_key": "id"},
        ],
        "applications": [
            {"name": "reader", "api_key": TEST_API_KEY},
            {"name": "admin", "api_key": TEST_ADMIN_KEY, "can_manage": True},
            {"organization_id": "globex", "name": "other", "api_key": OTHER_ORG_KEY},
        ],
    }


@pytest.fixture
def sample_manifest() -> Dict[str, Any]:
    return build_manifest()


@pytest.fixture
def invalid_manifest() -> Dict[str, Any]:
    """Manifest whose service points at a connection that does not exist."""
    manifest = build_manifest()
    manifest["services"][0]["connection_id"] = "missing"
    return manifest


# ============================================================================
# SCRIPTED DRIVER
# ============================================================================


ORDER_COLUMNS = [
    ColumnInfo("id", "INTEGER", CATEGORY_INTEGER, nullable=False, primary_key=True),
    ColumnInfo("status", "VARCHAR(20)", CATEGORY_STRING),
    ColumnInfo("total", "NUMERIC", CATEGORY_NUMBER),
    ColumnInfo("owner_id", "VARCHAR(40)", CATEGORY_STRING),
    ColumnInfo("card", "VARCHAR(19)", CATEGORY_STRING),
    ColumnInfo("internal_note", "TEXT", CATEGORY_STRING),
]


def order_rows() -> List[Dict[str, Any]]:
    return [
        {"id": 1, "status": "open", "total": 10.5, "owner_id": "u1", "card": "4111", "internal_note": "a"},
        {"id": 2, "status": "shipped", "total": 99.0, "owner_id": "u1", "card": None, "internal_note": "b"},
        {"id": 3, "status": "open", "total": 5.0, "owner_id": "u2", "card": "5500", "internal_note": "c"},
    ]


class ScriptedDriver(DatabaseDriver):
    """
    Driver over a list of dicts.

    Filters are recorded rather than evaluated, so tests assert on the AST
    the service hands to the driver.
    """

    db_type = "SQLITE"

    def __init__(self, schema: Optional[TableSchema] = None, rows=None, objects=None):
        super().__init__(ConnectionConfig(organization_id=TEST_ORG, type="SQLITE", id="main"))
        self.schema = schema or TableSchema(columns=copy.deepcopy(ORDER_COLUMNS), primary_key="id")
        self.rows = rows if rows is not None else order_rows()
        self.objects = objects or []
        self.calls: List[tuple] = []
        self.next_id = 100
        self.closed = False

    def _project(self, row, fields):
        return {f: row.get(f) for f in fields}

    def _find(self, row_id):
        for row in self.rows:
            if row.get(self.schema.primary_key) == row_id:
                return row
        return None

    async def ping(self) -> bool:
        return True

    async def list_objects(self):
        return list(self.objects)

    async def describe(self, ref):
        self.calls.append(("describe", ref))
        return self.schema

    async def find(self, ref, spec):
        self.calls.append(("find", spec))
        page = self.rows[spec.offset : spec.offset + spec.page_size]
        return [self._project(r, spec.fields) for r in page], len(self.rows)

    async def count(self, ref, node):
        self.calls.append(("count", node))
        return len(self.rows)

    async def find_by_id(self, ref, fields, row_id, node=None):
        self.calls.append(("find_by_id", row_id, node))
        row = self._find(row_id)
        return self._project(row, fields) if row is not None else None

    async def insert(self, ref, values, node=None):
        self.calls.append(("insert", dict(values), node))
        row = dict(values)
        row.setdefault(self.schema.primary_key, self.next_id)
        self.next_id += 1
        self.rows.append(row)
        return row[self.schema.primary_key]

    async def update(self, ref, row_id, values, node=None):
        self.calls.append(("update", row_id, dict(values), node))
        row = self._find(row_id)
        if row is None:
            return False
        row.update(values)
        return True

    async def delete(self, ref, row_id, node=None):
        self.calls.append(("delete", row_id, node))
        row = self._find(row_id)
        if row is None:
            return False
        self.rows.remove(row)
        return True

    async def close(self) -> None:
        self.closed = True

    def last_call(self, name: str):
        for call in reversed(self.calls):
            if call[0] == name:
                return call
        return None


@pytest.fixture
def scripted_driver() -> ScriptedDriver:
    return ScriptedDriver()


async def build_service(manifest: Dict[str, Any], driver: DatabaseDriver):
    """Load ``manifest`` into a fresh store and serve it through ``driver``."""
    store = InMemoryCatalogStore()
    await load_manifest(store, manifest)
    registry = DriverRegistry(driver_factory=lambda connection, database: driver)
    return AutoRestService(store, registry), store


# ============================================================================
# MOCK MOTOR FIXTURES
# ============================================================================


@pytest.fixture
def mock_mongo_collection() -> MagicMock:
    """Create a mock Motor collection."""
    collection = MagicMock(spec=AsyncIOMotorCollection)
    collection.name = "autorest_services"
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id="test_id"))
    collection.count_documents = AsyncMock(return_value=0)

    cursor = MagicMock()
    cursor.sort = MagicMock(return_value=cursor)
    cursor.to_list = AsyncMock(return_value=[])
    collection.find = MagicMock(return_value=cursor)
    return collection
