"""
Unit tests for AutoRestService request handling.

The scripted driver records what the service asks for, so these tests
check resolution, policies and validation without a database.
"""

import pytest

from autorest_engine.catalog.models import Application
from autorest_engine.exceptions import (EntityNotFoundError,
                                        OperationNotAllowedError,
                                        PermissionDeniedError,
                                        QueryValidationError,
                                        RowNotFoundError,
                                        ServiceNotFoundError)
from autorest_engine.observability import get_metrics_collector
from autorest_engine.query import Condition, Logical
from autorest_engine.service import (ListParams, RequestPrincipal,
                                     suggest_path_slug)

from conftest import TEST_ORG, ScriptedDriver, build_manifest, build_service


def principal(user=None, role_id=None, can_manage=False, org=TEST_ORG) -> RequestPrincipal:
    app = Application(
        organization_id=org, name="reader", api_key_hash="h", can_manage=can_manage
    )
    return RequestPrincipal(app, user=user, role_id=role_id)


OWNER = principal(user={"id": "u1"})
ADMIN = principal(user={"id": "u1"}, can_manage=True)
AUDITOR = principal(role_id="auditor")


@pytest.mark.unit
class TestHelpers:
    @pytest.mark.parametrize(
        "name,slug",
        [
            ("tbl_Customer_Orders", "customer-orders"),
            ("gs_products", "products"),
            ("tblusers", "users"),
            ("orders", "orders"),
            ("gs", "gs"),
        ],
    )
    def test_suggest_path_slug(self, name, slug):
        assert suggest_path_slug(name) == slug

    def test_principal_defaults_to_application_role(self):
        app = Application(organization_id="acme", name="a", api_key_hash="h", default_role_id="viewer")
        assert RequestPrincipal(app).role_id == "viewer"
        assert RequestPrincipal(app, role_id="admin").role_id == "admin"

    def test_policy_context(self):
        context = OWNER.policy_context()
        assert context["user"] == {"id": "u1"}
        assert context["organization"] == {"id": TEST_ORG}
        assert context["application"]["name"] == "reader"


@pytest.mark.unit
class TestReads:
    @pytest.mark.asyncio
    async def test_list_applies_policies(self):
        driver = ScriptedDriver()
        service, _ = await build_service(build_manifest(), driver)

        page = await service.handle_list(OWNER, "sales", "orders")

        spec = driver.last_call("find")[1]
        assert spec.fields == ["id", "status", "total", "owner_id", "card"]
        assert spec.filter == Condition("owner_id", "eq", "u1")
        assert spec.sort == [("id", "desc")]
        assert page["page"] == 1
        assert page["pageSize"] == 25
        assert page["total"] == 3
        assert page["hasNext"] is False
        assert page["data"][0]["card"] == "****"
        assert page["data"][1]["card"] is None
        assert all("internal_note" not in row for row in page["data"])

    @pytest.mark.asyncio
    async def test_user_filter_is_anded_with_policy(self):
        driver = ScriptedDriver()
        service, _ = await build_service(build_manifest(), driver)

        await service.handle_list(
            OWNER, "sales", "orders", ListParams(filter="status:open", sort="total", page_size="2")
        )

        spec = driver.last_call("find")[1]
        assert spec.filter == Logical(
            "and", [Condition("owner_id", "eq", "u1"), Condition("status", "eq", "open")]
        )
        assert spec.sort == [("total", "asc")]
        assert spec.page_size == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["card:4111", "internal_note:a", '{"card": "x"}'])
    async def test_cannot_filter_on_hidden_or_masked(self, raw):
        service, _ = await build_service(build_manifest(), ScriptedDriver())
        with pytest.raises(QueryValidationError, match="Unknown filter field"):
            await service.handle_list(OWNER, "sales", "orders", ListParams(filter=raw))

    @pytest.mark.asyncio
    async def test_cannot_sort_on_masked(self):
        service, _ = await build_service(build_manifest(), ScriptedDriver())
        with pytest.raises(QueryValidationError, match="Unknown sort field"):
            await service.handle_list(OWNER, "sales", "orders", ListParams(sort="card"))

    @pytest.mark.asyncio
    async def test_role_policies(self):
        driver = ScriptedDriver()
        service, _ = await build_service(build_manifest(), driver)

        await service.handle_list(AUDITOR, "sales", "orders", ListParams(fields="status"))

        spec = driver.last_call("find")[1]
        assert spec.fields == ["status"]
        assert spec.filter == Condition("status", "eq", "shipped")

    @pytest.mark.asyncio
    async def test_unresolved_row_policy_denies_every_row(self):
        driver = ScriptedDriver()
        service, _ = await build_service(build_manifest(), driver)
        anonymous = principal()

        page = await service.handle_list(anonymous, "sales", "orders")
        assert (page["data"], page["total"], page["hasNext"]) == ([], 0, False)
        assert await service.handle_count(anonymous, "sales", "orders") == {"total": 0}
        with pytest.raises(RowNotFoundError):
            await service.handle_by_id(anonymous, "sales", "orders", "1")
        with pytest.raises(PermissionDeniedError):
            await service.handle_create(anonymous, "sales", "orders", {"status": "new"})
        with pytest.raises(RowNotFoundError):
            await service.handle_update(anonymous, "sales", "orders", "1", {"status": "x"})
        with pytest.raises(RowNotFoundError):
            await service.handle_delete(anonymous, "sales", "orders", "1")

        assert [call[0] for call in driver.calls if call[0] != "describe"] == []

    @pytest.mark.asyncio
    async def test_count(self):
        driver = ScriptedDriver()
        service, _ = await build_service(build_manifest(), driver)
        assert await service.handle_count(OWNER, "sales", "orders", "total:gt:5") == {"total": 3}
        assert driver.last_call("count")[1] == Logical(
            "and", [Condition("owner_id", "eq", "u1"), Condition("total", "gt", 5.0)]
        )

    @pytest.mark.asyncio
    async def test_unknown_service_and_entity(self):
        service, _ = await build_service(build_manifest(), ScriptedDriver())
        with pytest.raises(ServiceNotFoundError):
            await service.handle_list(OWNER, "billing", "orders")
        with pytest.raises(EntityNotFoundError):
            await service.handle_list(OWNER, "sales", "invoices")
        with pytest.raises(ServiceNotFoundError):
            await service.handle_list(principal(org="globex"), "sales", "orders")

    @pytest.mark.asyncio
    async def test_by_id(self):
        driver = ScriptedDriver()
        service, _ = await build_service(build_manifest(), driver)

        row = await service.handle_by_id(OWNER, "sales", "orders", "1")

        assert row["id"] == 1
        assert row["card"] == "****"
        _, row_id, node = driver.last_call("find_by_id")
        assert row_id == 1
        assert node == Condition("owner_id", "eq", "u1")

    @pytest.mark.asyncio
    async def test_by_id_not_found_and_invalid(self):
        service, _ = await build_service(build_manifest(), ScriptedDriver())
        with pytest.raises(RowNotFoundError):
            await service.handle_by_id(OWNER, "sales", "orders", "99")
        with pytest.raises(QueryValidationError, match="Invalid value"):
            await service.handle_by_id(OWNER, "sales", "orders", "abc")

    @pytest.mark.asyncio
    async def test_schema(self):
        service, _ = await build_service(build_manifest(), ScriptedDriver())

        result = (await service.handle_schema(OWNER, "sales", "orders"))["data"]

        assert result["name"] == "orders"
        assert result["table"] == "tbl_orders"
        assert result["schema"] == "main"
        assert result["primaryKey"] == "id"
        columns = {c["name"]: c for c in result["columns"]}
        assert "internal_note" not in columns
        assert columns["card"]["masked"] is True
        assert columns["id"]["primaryKey"] is True
        assert result["permissions"] == {"read": True, "create": True, "update": True, "delete": True}

    @pytest.mark.asyncio
    async def test_list_entities(self):
        service, _ = await build_service(build_manifest(), ScriptedDriver())

        result = (await service.list_entities(OWNER, "sales"))["data"]

        assert [e["name"] for e in result] == ["customers", "tbl_orders"]
        orders = result[1]
        assert orders["pathSlug"] == "orders"
        assert orders["endpoint"] == "/api/v2/sales/_table/orders"
        assert result[0]["permissions"]["create"] is False

    @pytest.mark.asyncio
    async def test_metrics_recorded(self):
        service, _ = await build_service(build_manifest(), ScriptedDriver())
        await service.handle_list(OWNER, "sales", "orders")
        with pytest.raises(EntityNotFoundError):
            await service.handle_list(OWNER, "sales", "nope")

        collector = get_metrics_collector()
        assert collector.get_operation_count("autorest.list") == 2
        summary = collector.get_summary()["summary"]["autorest.list"]
        assert summary["error_count"] == 1


@pytest.mark.unit
class TestWrites:
    @pytest.mark.asyncio
    async def test_create_pins_policy_fields(self):
        driver = ScriptedDriver()
        service, _ = await build_service(build_manifest(), driver)

        row = await service.handle_create(OWNER, "sales", "orders", {"status": "new", "total": "12.5"})

        assert driver.last_call("insert")[1:] == (
            {"status": "new", "total": 12.5, "owner_id": "u1"},
            Condition("owner_id", "eq", "u1"),
        )
        assert row["id"] == 100
        assert row["owner_id"] == "u1"
        assert "internal_note" not in row

    @pytest.mark.asyncio
    async def test_create_outside_policy_is_denied(self):
        service, _ = await build_service(build_manifest(), ScriptedDriver())
        with pytest.raises(PermissionDeniedError):
            await service.handle_create(OWNER, "sales", "orders", {"status": "new", "owner_id": "u2"})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, None, ["status"], {"internal_note": "x"}, {"card": "1"}])
    async def test_create_rejects_bad_bodies(self, body):
        service, _ = await build_service(build_manifest(), ScriptedDriver())
        with pytest.raises(QueryValidationError):
            await service.handle_create(OWNER, "sales", "orders", body)

    @pytest.mark.asyncio
    async def test_writes_respect_entity_flags(self):
        service, _ = await build_service(build_manifest(), ScriptedDriver())
        with pytest.raises(OperationNotAllowedError):
            await service.handle_create(OWNER, "sales", "customers", {"status": "x"})
        with pytest.raises(OperationNotAllowedError):
            await service.handle_update(OWNER, "sales", "customers", "1", {"status": "x"})
        with pytest.raises(OperationNotAllowedError):
            await service.handle_delete(OWNER, "sales", "customers", "1")

    @pytest.mark.asyncio
    async def test_update(self):
        driver = ScriptedDriver()
        service, _ = await build_service(build_manifest(), driver)

        row = await service.handle_update(OWNER, "sales", "orders", "2", {"status": "void"})

        _, row_id, values, node = driver.last_call("update")
        assert (row_id, values) == (2, {"status": "void"})
        assert node == Condition("owner_id", "eq", "u1")
        assert row["status"] == "void"

    @pytest.mark.asyncio
    async def test_update_primary_key_rejected(self):
        service, _ = await build_service(build_manifest(), ScriptedDriver())
        with pytest.raises(QueryValidationError, match="primary key"):
            await service.handle_update(OWNER, "sales", "orders", "1", {"id": 5})

    @pytest.mark.asyncio
    async def test_update_missing_row(self):
        service, _ = await build_service(build_manifest(), ScriptedDriver())
        with pytest.raises(RowNotFoundError):
            await service.handle_update(OWNER, "sales", "orders", "99", {"status": "x"})

    @pytest.mark.asyncio
    async def test_delete(self):
        driver = ScriptedDriver()
        service, _ = await build_service(build_manifest(), driver)

        assert await service.handle_delete(OWNER, "sales", "orders", "3") is None
        assert driver.last_call("delete")[1:] == (3, Condition("owner_id", "eq", "u1"))
        with pytest.raises(RowNotFoundError):
            await service.handle_delete(OWNER, "sales", "orders", "3")


@pytest.mark.unit
class TestDiscovery:
    OBJECTS = [
        {"name": "tbl_orders", "schema": "main", "type": "TABLE"},
        {"name": "tbl_items", "schema": "main", "type": "TABLE"},
        {"name": "orders", "schema": "main", "type": "TABLE"},
        {"name": "v_sales", "schema": "main", "type": "VIEW"},
    ]

    @pytest.mark.asyncio
    async def test_requires_manage(self):
        service, _ = await build_service(build_manifest(), ScriptedDriver(objects=self.OBJECTS))
        with pytest.raises(PermissionDeniedError):
            await service.discover_tables(OWNER, "sales")
        with pytest.raises(PermissionDeniedError):
            await service.expose_tables(OWNER, "sales", ["tbl_items"])

    @pytest.mark.asyncio
    async def test_discover(self):
        service, _ = await build_service(build_manifest(), ScriptedDriver(objects=self.OBJECTS))

        objects = await service.discover_tables(ADMIN, "sales")

        assert [o["name"] for o in objects] == ["orders", "tbl_items", "tbl_orders", "v_sales"]
        by_name = {o["name"]: o for o in objects}
        assert by_name["tbl_orders"]["isExposed"] is True
        assert by_name["tbl_items"]["isExposed"] is False
        assert by_name["tbl_items"]["suggestedPathSlug"] == "items"
        assert by_name["v_sales"]["type"] == "VIEW"

    @pytest.mark.asyncio
    async def test_expose(self):
        driver = ScriptedDriver(objects=self.OBJECTS)
        service, store = await build_service(build_manifest(), driver)

        result = await service.expose_tables(
            ADMIN, "sales", ["tbl_items", "missing", "tbl_orders", "orders"]
        )

        assert result["total"] == 1
        assert result["exposed"][0]["name"] == "tbl_items"
        assert result["exposed"][0]["pathSlug"] == "items"
        assert result["exposed"][0]["endpoint"] == "/api/v2/sales/_table/items"
        assert result["errors"] == [
            "Table 'missing' not found",
            "Table 'tbl_orders' is already exposed",
            "Path slug 'orders' for table 'orders' is already in use",
        ]

        listed = await service.list_entities(ADMIN, "sales")
        items = next(e for e in listed["data"] if e["name"] == "tbl_items")
        assert items["primaryKey"] == "id"
        assert items["permissions"] == {"read": True, "create": False, "update": False, "delete": False}

    @pytest.mark.asyncio
    async def test_expose_schema_qualified_name(self):
        service, _ = await build_service(build_manifest(), ScriptedDriver(objects=self.OBJECTS))
        result = await service.expose_tables(ADMIN, "sales", ["main.v_sales"])
        assert result["exposed"][0]["pathSlug"] == "v-sales"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tables", [None, [], "tbl_items", [""], [1]])
    async def test_expose_requires_table_list(self, tables):
        service, _ = await build_service(build_manifest(), ScriptedDriver(objects=self.OBJECTS))
        with pytest.raises(QueryValidationError, match="tables array is required"):
            await service.expose_tables(ADMIN, "sales", tables)
