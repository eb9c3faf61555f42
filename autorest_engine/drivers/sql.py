"""
SQL driver on SQLAlchemy's async engine.

Tables are reflected on first use and cached; every statement is built by
``SQLStatementBuilder`` against the reflected table, so values are always
bound parameters and identifiers are quoted by the engine's dialect.
"""

import logging
from typing import Any

from sqlalchemy import MetaData, Table, inspect, literal, select
from sqlalchemy.exc import (CompileError, IntegrityError, NoSuchTableError,
                            SQLAlchemyError)
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..catalog.models import ConnectionConfig
from ..constants import (DEFAULT_POOL_SIZE, DEFAULT_QUERY_TIMEOUT,
                         DEFAULT_SQL_PRIMARY_KEY,
                         ENTITY_TYPE_TABLE, ENTITY_TYPE_VIEW,
                         SCHEMA_CACHE_TTL)
from ..dialects import SQLDialect, SQLStatementBuilder, column_category
from ..exceptions import (ConstraintViolationError, DriverError,
                          EntityNotFoundError, PermissionDeniedError)
from ..observability import track_operation
from ..query.ast import Node
from ..query.types import ColumnInfo, EntityRef, QuerySpec, TableSchema
from .base import DatabaseDriver, SchemaCache
from .serialization import serialize_row, serialize_value

logger = logging.getLogger(__name__)


class SQLDriver(DatabaseDriver):
    """
    Driver for PostgreSQL, MySQL, SQL Server and SQLite.

    The engine is created lazily so that registering a service never opens
    a connection.
    """

    def __init__(
        self,
        connection: ConnectionConfig,
        dialect: SQLDialect,
        password: str | None = None,
        database: str | None = None,
        pool_size: int = DEFAULT_POOL_SIZE,
        query_timeout: int = DEFAULT_QUERY_TIMEOUT,
        schema_cache_ttl: int = SCHEMA_CACHE_TTL,
    ):
        super().__init__(connection, database)
        self.dialect = dialect
        self.db_type = dialect.db_type
        self._password = password
        self._pool_size = pool_size
        self._query_timeout = query_timeout
        self._engine: AsyncEngine | None = None
        self._tables: SchemaCache[tuple[Table, TableSchema]] = SchemaCache(schema_cache_ttl)

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            url = self.dialect.build_url(self.connection, self._password, self.database)
            options = self.dialect.engine_options(
                self.connection, pool_size=self._pool_size, query_timeout=self._query_timeout
            )
            self._engine = create_async_engine(url, **options)
            logger.info(
                f"Created {self.db_type} engine for connection {self.connection.id} "
                f"(database={self.database})"
            )
        return self._engine

    def _wrap_error(self, operation: str, error: SQLAlchemyError, ref: EntityRef | None = None):
        context = {"operation": operation, "db_type": self.db_type}
        if ref is not None:
            context["entity"] = ref.qualified_name
        logger.warning(f"{self.db_type} {operation} failed: {error}")
        if isinstance(error, IntegrityError):
            return ConstraintViolationError("Write violates a database constraint", context=context)
        return DriverError(f"Database {operation} failed", context=context)

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(select(literal(1)))
            return True
        except SQLAlchemyError as e:
            raise self._wrap_error("ping", e) from e

    def _list_objects_sync(self, sync_conn) -> list[dict[str, Any]]:
        inspector = inspect(sync_conn)
        objects = []
        for schema in self.dialect.discovery_schemas(inspector.get_schema_names()):
            for name in inspector.get_table_names(schema=schema):
                objects.append({"name": name, "schema": schema, "type": ENTITY_TYPE_TABLE})
            for name in inspector.get_view_names(schema=schema):
                objects.append({"name": name, "schema": schema, "type": ENTITY_TYPE_VIEW})
        return objects

    async def list_objects(self) -> list[dict[str, Any]]:
        try:
            async with self.engine.connect() as conn:
                return await conn.run_sync(self._list_objects_sync)
        except SQLAlchemyError as e:
            raise self._wrap_error("discovery", e) from e

    def _type_name(self, column) -> str:
        try:
            return column.type.compile(dialect=self.engine.dialect)
        except CompileError:
            return type(column.type).__name__

    def _schema_from_table(self, table: Table, ref: EntityRef) -> TableSchema:
        columns = [
            ColumnInfo(
                name=column.name,
                data_type=self._type_name(column),
                category=column_category(column.type),
                nullable=bool(column.nullable),
                primary_key=bool(column.primary_key),
            )
            for column in table.columns
        ]
        primary_key = ref.primary_key
        if not primary_key or primary_key not in table.c:
            pk_columns = list(table.primary_key.columns)
            if pk_columns:
                primary_key = pk_columns[0].name
            elif DEFAULT_SQL_PRIMARY_KEY in table.c:
                primary_key = DEFAULT_SQL_PRIMARY_KEY
            else:
                primary_key = None
        for column in columns:
            column.primary_key = column.name == primary_key
        return TableSchema(columns=columns, primary_key=primary_key)

    async def _table(self, ref: EntityRef) -> tuple[Table, TableSchema]:
        cache_key = (ref.schema, ref.name, ref.primary_key)
        cached = self._tables.get(cache_key)
        if cached is not None:
            return cached

        def reflect(sync_conn) -> Table:
            return Table(ref.name, MetaData(), schema=ref.schema, autoload_with=sync_conn)

        try:
            with track_operation("driver.reflect", db_type=self.db_type):
                async with self.engine.connect() as conn:
                    table = await conn.run_sync(reflect)
        except NoSuchTableError as e:
            raise EntityNotFoundError(ref.name) from e
        except SQLAlchemyError as e:
            raise self._wrap_error("reflection", e, ref) from e

        entry = (table, self._schema_from_table(table, ref))
        self._tables.set(cache_key, entry)
        return entry

    async def _builder(self, ref: EntityRef) -> SQLStatementBuilder:
        table, schema = await self._table(ref)
        return SQLStatementBuilder(table, schema.primary_key)

    async def describe(self, ref: EntityRef) -> TableSchema:
        _, schema = await self._table(ref)
        return schema

    async def find(self, ref: EntityRef, spec: QuerySpec) -> tuple[list[dict[str, Any]], int]:
        builder = await self._builder(ref)
        try:
            with track_operation("driver.find", db_type=self.db_type):
                async with self.engine.connect() as conn:
                    result = await conn.execute(builder.list_statement(spec))
                    rows = [serialize_row(row._mapping) for row in result]
                    total = (await conn.execute(builder.count_statement(spec.filter))).scalar_one()
        except SQLAlchemyError as e:
            raise self._wrap_error("list", e, ref) from e
        return rows, int(total)

    async def count(self, ref: EntityRef, node: Node | None) -> int:
        builder = await self._builder(ref)
        try:
            async with self.engine.connect() as conn:
                return int((await conn.execute(builder.count_statement(node))).scalar_one())
        except SQLAlchemyError as e:
            raise self._wrap_error("count", e, ref) from e

    async def find_by_id(
        self, ref: EntityRef, fields: list[str], row_id: Any, node: Node | None = None
    ) -> dict[str, Any] | None:
        builder = await self._builder(ref)
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(builder.by_id_statement(fields, row_id, node))
                row = result.first()
        except SQLAlchemyError as e:
            raise self._wrap_error("lookup", e, ref) from e
        return serialize_row(row._mapping) if row is not None else None

    async def _require_in_scope(
        self, conn, builder: SQLStatementBuilder, row_id: Any, node: Node, ref: EntityRef
    ) -> None:
        """Fail the surrounding transaction when the written row does not match ``node``."""
        row = None
        if row_id is not None and builder.primary_key:
            stmt = builder.by_id_statement([builder.primary_key], row_id, node)
            row = (await conn.execute(stmt)).first()
        if row is None:
            raise PermissionDeniedError(
                "Row would fall outside the caller's row policy",
                context={"entity": ref.qualified_name},
            )

    async def insert(self, ref: EntityRef, values: dict[str, Any], node: Node | None = None) -> Any:
        builder = await self._builder(ref)
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(builder.insert_statement(values))
                if builder.primary_key in values:
                    new_id = values[builder.primary_key]
                else:
                    inserted = result.inserted_primary_key
                    new_id = inserted[0] if inserted else None
                if node is not None:
                    await self._require_in_scope(conn, builder, new_id, node, ref)
        except SQLAlchemyError as e:
            raise self._wrap_error("insert", e, ref) from e
        return serialize_value(new_id) if new_id is not None else None

    async def update(
        self, ref: EntityRef, row_id: Any, values: dict[str, Any], node: Node | None = None
    ) -> bool:
        builder = await self._builder(ref)
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(builder.update_statement(row_id, values, node))
                matched = result.rowcount > 0
                if matched and node is not None:
                    await self._require_in_scope(conn, builder, row_id, node, ref)
        except SQLAlchemyError as e:
            raise self._wrap_error("update", e, ref) from e
        return matched

    async def delete(self, ref: EntityRef, row_id: Any, node: Node | None = None) -> bool:
        builder = await self._builder(ref)
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(builder.delete_statement(row_id, node))
        except SQLAlchemyError as e:
            raise self._wrap_error("delete", e, ref) from e
        return result.rowcount > 0

    def pool_status(self) -> dict[str, Any] | None:
        if self._engine is None:
            return None
        pool = self._engine.pool
        if not hasattr(pool, "size") or not hasattr(pool, "checkedout"):
            return None
        return {"size": pool.size(), "checked_out": pool.checkedout()}

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
        self._tables.invalidate()
