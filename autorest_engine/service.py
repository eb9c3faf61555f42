"""
Auto-REST request handling.

``AutoRestService`` turns a resolved request (caller, service name, entity
and query parameters) into a driver call. It is where catalog lookups,
field and row policies, query validation and pagination come together;
drivers only ever see validated ASTs and column lists.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Mapping

from .catalog.models import Application, ConnectionConfig, ExposedEntity, Service
from .catalog.store import CatalogStore
from .constants import (DB_MONGODB, DEFAULT_API_PREFIX, DEFAULT_MONGO_PRIMARY_KEY,
                        DEFAULT_PAGE_SIZE, DEFAULT_SCHEMAS, MAX_PAGE_SIZE,
                        SLUG_STRIP_PREFIXES)
from .drivers import DatabaseDriver, DriverRegistry
from .exceptions import (AutoRestError, EntityNotFoundError,
                         OperationNotAllowedError, PermissionDeniedError,
                         QueryValidationError, RowNotFoundError,
                         ServiceNotFoundError)
from .observability import (bind_log_context, get_logger, log_operation,
                            record_operation)
from .query import (DEFAULT_LIMITS, EntityRef, FilterLimits, QueryContext,
                    QuerySpec, TableSchema, apply_masks, build_query_context,
                    coerce_value, combine, has_next, normalize_pagination,
                    parse_filter, parse_sort, policy_assignments,
                    sanitize_fields, validate_filter)

logger = logging.getLogger(__name__)
contextual_logger = get_logger(__name__)

_SLUG_PREFIX = re.compile(r"^(%s)_?" % "|".join(SLUG_STRIP_PREFIXES))


def suggest_path_slug(table_name: str) -> str:
    """
    Suggest the URL segment for a table.

    ``tbl_Customer_Orders`` becomes ``customer-orders``.
    """
    slug = _SLUG_PREFIX.sub("", table_name.lower())
    return slug.replace("_", "-") or table_name.lower()


@dataclass
class RequestPrincipal:
    """
    The caller of a request: the application owning the API key, plus the
    upstream user when the host application authenticated one.
    """

    application: Application
    user: dict[str, Any] | None = None
    role_id: str | None = None

    def __post_init__(self):
        if self.role_id is None:
            self.role_id = self.application.default_role_id

    @property
    def organization_id(self) -> str:
        return self.application.organization_id

    @property
    def can_manage(self) -> bool:
        return self.application.can_manage

    def policy_context(self) -> dict[str, Any]:
        """Values available to row policy templates."""
        return {
            "user": self.user or {},
            "organization": {"id": self.organization_id},
            "role": {"id": self.role_id},
            "application": {"id": self.application.id, "name": self.application.name},
        }


@dataclass
class ListParams:
    """Raw list query parameters as received from the client."""

    page: Any = None
    page_size: Any = None
    fields: str | list[str] | None = None
    sort: str | list[str] | None = None
    filter: str | Mapping[str, Any] | None = None


@dataclass
class _Target:
    service: Service
    connection: ConnectionConfig
    entity: ExposedEntity
    driver: DatabaseDriver
    ref: EntityRef
    schema: TableSchema
    context: QueryContext

    @property
    def writable_columns(self) -> list[str]:
        masked = set(self.context.masked_fields)
        return [c for c in self.context.allowed_columns if c not in masked]

    @property
    def queryable_columns(self):
        """Columns a caller may filter and sort on: visible and not masked."""
        writable = set(self.writable_columns)
        return [c for c in self.schema.columns if c.name in writable]


class AutoRestService:
    """
    Serves the auto-REST operations for every organization in the catalog.

    Example:
        service = AutoRestService(store, DriverRegistry())
        page = await service.handle_list(principal, "sales", "orders",
                                         ListParams(filter="status:open"))
    """

    def __init__(
        self,
        store: CatalogStore,
        registry: DriverRegistry,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
        api_prefix: str = DEFAULT_API_PREFIX,
        limits: FilterLimits = DEFAULT_LIMITS,
    ):
        self.store = store
        self.registry = registry
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.api_prefix = api_prefix.rstrip("/")
        self.limits = limits

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _service(self, principal: RequestPrincipal, service_name: str):
        organization_id = principal.organization_id
        service = await self.store.get_service(organization_id, service_name)
        if service is None:
            raise ServiceNotFoundError(service_name)
        connection = await self.store.get_connection(organization_id, service.connection_id)
        if connection is None:
            logger.warning(
                f"Service {service_name} references missing connection {service.connection_id}"
            )
            raise ServiceNotFoundError(service_name)
        return service, connection

    @staticmethod
    def _ref(entity: ExposedEntity, connection: ConnectionConfig, database: str | None) -> EntityRef:
        db_type = str(connection.type).upper()
        primary_key = entity.primary_key
        if db_type == DB_MONGODB and not primary_key:
            primary_key = DEFAULT_MONGO_PRIMARY_KEY
        return EntityRef(
            name=entity.name,
            schema=entity.schema_for(db_type),
            database=database,
            primary_key=primary_key,
        )

    async def _resolve(
        self, principal: RequestPrincipal, service_name: str, entity_param: str
    ) -> _Target:
        service, connection = await self._service(principal, service_name)
        entity = await self.store.get_exposed_entity(
            principal.organization_id, service.id, entity_param
        )
        if entity is None:
            raise EntityNotFoundError(entity_param)
        bind_log_context(
            service=service.name, entity=entity.slug, organization_id=principal.organization_id
        )

        database = entity.database or service.database or connection.database
        driver = await self.registry.get_driver(connection, database)
        ref = self._ref(entity, connection, database)
        schema = await driver.describe(ref)
        context = build_query_context(
            entity, principal.role_id, schema, principal.policy_context()
        )
        return _Target(service, connection, entity, driver, ref, schema, context)

    def _user_filter(self, target: _Target, raw: Any):
        node = parse_filter(raw, target.queryable_columns)
        validate_filter(node, self.limits)
        return node

    def _scope(self, target: _Target, user_filter=None):
        node = combine(target.context.policy_filter, user_filter)
        validate_filter(node, self.limits)
        return node

    def _row_id(self, target: _Target, raw_id: Any) -> Any:
        primary_key = target.schema.primary_key
        if not primary_key:
            raise QueryValidationError(
                f"Entity '{target.entity.slug}' has no primary key", query_type="id"
            )
        return coerce_value(raw_id, target.schema.get(primary_key))

    def _record(self, operation: str, target: _Target | None, start_time: float, success: bool):
        tags = {}
        if target is not None:
            tags = {
                "service": target.service.name,
                "entity": target.entity.slug,
                "dialect": str(target.connection.type).upper(),
            }
        duration_ms = (time.time() - start_time) * 1000
        record_operation(f"autorest.{operation}", duration_ms, success=success, **tags)
        log_operation(
            logger,
            f"autorest.{operation}",
            success=success,
            duration_ms=duration_ms,
            **tags,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_entities(self, principal: RequestPrincipal, service_name: str) -> dict[str, Any]:
        """List the readable entities of a service."""
        service, connection = await self._service(principal, service_name)
        entities = await self.store.list_exposed_entities(principal.organization_id, service.id)
        db_type = str(connection.type).upper()
        return {
            "data": [
                {
                    "name": entity.name,
                    "pathSlug": entity.slug,
                    "schema": entity.schema_for(db_type),
                    "type": entity.type,
                    "primaryKey": entity.primary_key,
                    "endpoint": self._endpoint(service, entity),
                    "permissions": self._permissions(entity),
                }
                for entity in entities
            ]
        }

    async def handle_list(
        self,
        principal: RequestPrincipal,
        service_name: str,
        entity_param: str,
        params: ListParams | None = None,
    ) -> dict[str, Any]:
        """
        Return one page of rows.

        The caller's filter may only reference visible, unmasked columns and
        is ANDed with the row policy. Without an explicit sort the entity's
        default sort applies.

        Returns:
            ``{"data", "page", "pageSize", "total", "hasNext"}``
        """
        params = params or ListParams()
        start_time = time.time()
        target = None
        success = False
        try:
            target = await self._resolve(principal, service_name, entity_param)
            fields = sanitize_fields(params.fields, target.context.allowed_columns)
            sortable = [c.name for c in target.queryable_columns]
            if params.sort:
                sort = parse_sort(params.sort, sortable)
            else:
                sort = parse_sort(target.entity.default_sort, sortable, strict=False)
            node = self._scope(target, self._user_filter(target, params.filter))
            page, page_size = normalize_pagination(
                params.page, params.page_size, self.default_page_size, self.max_page_size
            )

            spec = QuerySpec(fields=fields, filter=node, sort=sort, page=page, page_size=page_size)
            if target.context.deny_all:
                rows, total = [], 0
            else:
                rows, total = await target.driver.find(target.ref, spec)
            masked = target.context.masked_fields
            data = [apply_masks(row, masked) for row in rows]
            success = True
            return {
                "data": data,
                "page": page,
                "pageSize": page_size,
                "total": total,
                "hasNext": has_next(page, page_size, len(data), total),
            }
        finally:
            self._record("list", target, start_time, success)

    async def handle_count(
        self,
        principal: RequestPrincipal,
        service_name: str,
        entity_param: str,
        filter: Any = None,
    ) -> dict[str, int]:
        start_time = time.time()
        target = None
        success = False
        try:
            target = await self._resolve(principal, service_name, entity_param)
            node = self._scope(target, self._user_filter(target, filter))
            total = 0 if target.context.deny_all else await target.driver.count(target.ref, node)
            success = True
            return {"total": total}
        finally:
            self._record("count", target, start_time, success)

    async def handle_by_id(
        self,
        principal: RequestPrincipal,
        service_name: str,
        entity_param: str,
        row_id: Any,
        fields: str | list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Return one row by primary key.

        The row policy is part of the lookup, so rows outside the caller's
        scope are reported as missing.

        Raises:
            RowNotFoundError: If no visible row has that key
        """
        start_time = time.time()
        target = None
        success = False
        try:
            target = await self._resolve(principal, service_name, entity_param)
            selected = sanitize_fields(fields, target.context.allowed_columns)
            key = self._row_id(target, row_id)
            row = None
            if not target.context.deny_all:
                row = await target.driver.find_by_id(target.ref, selected, key, self._scope(target))
            if row is None:
                raise RowNotFoundError(row_id)
            success = True
            return apply_masks(row, target.context.masked_fields)
        finally:
            self._record("by_id", target, start_time, success)

    async def handle_schema(
        self, principal: RequestPrincipal, service_name: str, entity_param: str
    ) -> dict[str, Any]:
        """Describe the columns the caller can see."""
        target = await self._resolve(principal, service_name, entity_param)
        allowed = set(target.context.allowed_columns)
        masked = set(target.context.masked_fields)
        columns = []
        for column in target.schema.columns:
            if column.name not in allowed:
                continue
            info = column.to_dict()
            info["masked"] = column.name in masked
            columns.append(info)
        return {
            "data": {
                "name": target.entity.slug,
                "table": target.entity.name,
                "schema": target.ref.schema,
                "type": target.entity.type,
                "primaryKey": target.schema.primary_key,
                "columns": columns,
                "permissions": self._permissions(target.entity),
            }
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _values(self, target: _Target, body: Any, operation: str) -> dict[str, Any]:
        if not isinstance(body, Mapping) or not body:
            raise QueryValidationError(
                "Request body must be a non-empty JSON object", query_type="body"
            )
        writable = set(target.writable_columns)
        values = {}
        for name, value in body.items():
            if name not in writable:
                raise QueryValidationError(
                    f"Field '{name}' is unknown or not writable", query_type="body", field=name
                )
            values[name] = coerce_value(value, target.schema.get(name))

        # Policy-bound columns are pinned so rows cannot leave the caller's scope
        for name, assigned in policy_assignments(target.context.policy_filter).items():
            if name in values and values[name] != assigned:
                raise PermissionDeniedError(
                    f"Row policy does not allow this value for '{name}'",
                    context={"field": name, "operation": operation},
                )
            if operation == "create":
                values[name] = assigned
        return values

    async def _read_back(self, target: _Target, row_id: Any) -> dict[str, Any] | None:
        row = await target.driver.find_by_id(
            target.ref, target.context.allowed_columns, row_id, self._scope(target)
        )
        return apply_masks(row, target.context.masked_fields) if row is not None else None

    async def handle_create(
        self, principal: RequestPrincipal, service_name: str, entity_param: str, body: Any
    ) -> dict[str, Any]:
        """
        Insert a row and return it as the caller would read it.

        The insert and the row policy check run together; a row the caller
        could not read back is never kept.

        Raises:
            OperationNotAllowedError: If the entity does not allow inserts
            PermissionDeniedError: If the row would fall outside the row policy
        """
        start_time = time.time()
        target = None
        success = False
        try:
            target = await self._resolve(principal, service_name, entity_param)
            if not target.entity.allow_create:
                raise OperationNotAllowedError("create", target.entity.slug)
            if target.context.deny_all:
                raise PermissionDeniedError(
                    "Row policy cannot be applied to this caller",
                    context={"entity": target.entity.slug, "operation": "create"},
                )
            values = self._values(target, body, "create")
            new_id = await target.driver.insert(target.ref, values, self._scope(target))

            row = None
            if new_id is not None and target.schema.primary_key:
                row = await self._read_back(target, self._row_id(target, new_id))
            success = True
            if row is None:
                return {target.schema.primary_key or "id": new_id}
            return row
        finally:
            self._record("create", target, start_time, success)

    async def handle_update(
        self,
        principal: RequestPrincipal,
        service_name: str,
        entity_param: str,
        row_id: Any,
        body: Any,
    ) -> dict[str, Any]:
        """
        Update a row within the caller's row policy.

        Raises:
            OperationNotAllowedError: If the entity does not allow updates
            RowNotFoundError: If no row in scope has that key
            PermissionDeniedError: If the update would move the row out of
                scope; the row is left unchanged
        """
        start_time = time.time()
        target = None
        success = False
        try:
            target = await self._resolve(principal, service_name, entity_param)
            if not target.entity.allow_update:
                raise OperationNotAllowedError("update", target.entity.slug)
            values = self._values(target, body, "update")
            if target.schema.primary_key in values:
                raise QueryValidationError(
                    "The primary key cannot be updated",
                    query_type="body",
                    field=target.schema.primary_key,
                )
            key = self._row_id(target, row_id)
            if target.context.deny_all:
                raise RowNotFoundError(row_id)
            if not await target.driver.update(target.ref, key, values, self._scope(target)):
                raise RowNotFoundError(row_id)
            row = await self._read_back(target, key)
            if row is None:
                raise RowNotFoundError(row_id)
            success = True
            return row
        finally:
            self._record("update", target, start_time, success)

    async def handle_delete(
        self, principal: RequestPrincipal, service_name: str, entity_param: str, row_id: Any
    ) -> None:
        start_time = time.time()
        target = None
        success = False
        try:
            target = await self._resolve(principal, service_name, entity_param)
            if not target.entity.allow_delete:
                raise OperationNotAllowedError("delete", target.entity.slug)
            key = self._row_id(target, row_id)
            if target.context.deny_all:
                raise RowNotFoundError(row_id)
            if not await target.driver.delete(target.ref, key, self._scope(target)):
                raise RowNotFoundError(row_id)
            success = True
        finally:
            self._record("delete", target, start_time, success)

    # ------------------------------------------------------------------
    # Discovery and exposure
    # ------------------------------------------------------------------

    def _endpoint(self, service: Service, entity: ExposedEntity) -> str:
        return f"{self.api_prefix}/{service.name}/_table/{entity.slug}"

    @staticmethod
    def _permissions(entity: ExposedEntity) -> dict[str, bool]:
        return {
            "read": entity.allow_read,
            "create": entity.allow_create,
            "update": entity.allow_update,
            "delete": entity.allow_delete,
        }

    @staticmethod
    def _require_manage(principal: RequestPrincipal, action: str) -> None:
        if not principal.can_manage:
            raise PermissionDeniedError(
                f"Application is not allowed to {action} tables",
                context={"application": principal.application.id},
            )

    async def _discover(self, principal: RequestPrincipal, service_name: str):
        service, connection = await self._service(principal, service_name)
        driver = await self.registry.get_driver(
            connection, service.database or connection.database
        )
        objects = await driver.list_objects()
        existing = await self.store.list_all_entities(principal.organization_id, service.id)
        return service, connection, driver, objects, existing

    @staticmethod
    def _object_key(schema: str | None, name: str, db_type: str) -> tuple[str | None, str]:
        return (schema or DEFAULT_SCHEMAS.get(db_type), name)

    async def discover_tables(
        self, principal: RequestPrincipal, service_name: str
    ) -> list[dict[str, Any]]:
        """
        List the tables, views or collections of a service's database.

        Returns:
            Dicts with ``name``, ``schema``, ``type``, ``isExposed`` and
            ``suggestedPathSlug``
        """
        self._require_manage(principal, "discover")
        start_time = time.time()
        _, connection, _, objects, existing = await self._discover(principal, service_name)
        db_type = str(connection.type).upper()
        exposed = {self._object_key(e.schema, e.name, db_type) for e in existing}

        result = [
            {
                "name": obj["name"],
                "schema": obj["schema"],
                "type": obj["type"],
                "isExposed": self._object_key(obj["schema"], obj["name"], db_type) in exposed,
                "suggestedPathSlug": suggest_path_slug(obj["name"]),
            }
            for obj in objects
        ]
        result.sort(key=lambda o: (o["schema"] or "", o["name"]))
        contextual_logger.info(
            f"Discovered {len(result)} object(s) in service {service_name}",
            extra={"service": service_name, "db_type": db_type},
        )
        record_operation(
            "autorest.discover", (time.time() - start_time) * 1000, service=service_name
        )
        return result

    @staticmethod
    def _match_object(objects: list[dict[str, Any]], requested: str) -> dict[str, Any] | None:
        for obj in objects:
            qualified = f"{obj['schema']}.{obj['name']}" if obj["schema"] else obj["name"]
            if requested in (obj["name"], qualified):
                return obj
        return None

    async def expose_tables(
        self, principal: RequestPrincipal, service_name: str, tables: Any
    ) -> dict[str, Any]:
        """
        Register discovered tables as read-only entities.

        ``tables`` holds table names, optionally schema-qualified. Tables
        that do not exist, are already exposed or would reuse an existing
        path slug are reported in ``errors`` without stopping the others.

        Returns:
            ``{"exposed": [...], "errors": [...], "total": n}``
        """
        self._require_manage(principal, "expose")
        if (
            not isinstance(tables, list)
            or not tables
            or not all(isinstance(t, str) and t.strip() for t in tables)
        ):
            raise QueryValidationError("tables array is required", query_type="body")

        service, connection, driver, objects, existing = await self._discover(
            principal, service_name
        )
        db_type = str(connection.type).upper()
        exposed_keys = {self._object_key(e.schema, e.name, db_type) for e in existing}
        used_slugs = {e.slug for e in existing}
        database = service.database or connection.database

        exposed: list[dict[str, Any]] = []
        errors: list[str] = []
        for requested in tables:
            requested = requested.strip()
            obj = self._match_object(objects, requested)
            if obj is None:
                errors.append(f"Table '{requested}' not found")
                continue
            key = self._object_key(obj["schema"], obj["name"], db_type)
            if key in exposed_keys:
                errors.append(f"Table '{requested}' is already exposed")
                continue
            slug = suggest_path_slug(obj["name"])
            if slug in used_slugs:
                errors.append(f"Path slug '{slug}' for table '{requested}' is already in use")
                continue

            entity = ExposedEntity(
                organization_id=principal.organization_id,
                service_id=service.id,
                connection_id=connection.id,
                name=obj["name"],
                database=database,
                schema=obj["schema"],
                type=obj["type"],
                path_slug=slug,
            )
            try:
                schema = await driver.describe(self._ref(entity, connection, database))
                entity.primary_key = schema.primary_key
                await self.store.add_exposed_entity(entity)
            except AutoRestError as e:
                logger.warning(f"Failed to expose {requested} in {service_name}: {e}")
                errors.append(f"Failed to expose '{requested}': {e.message}")
                continue

            exposed_keys.add(key)
            used_slugs.add(slug)
            exposed.append(
                {
                    "id": entity.id,
                    "name": entity.name,
                    "pathSlug": entity.slug,
                    "endpoint": self._endpoint(service, entity),
                }
            )

        contextual_logger.info(
            f"Exposed {len(exposed)} table(s) in service {service_name}",
            extra={"service": service_name, "errors": len(errors)},
        )
        return {"exposed": exposed, "errors": errors, "total": len(exposed)}
