"""
MongoDB driver on Motor.

Collections have no declared schema, so ``describe`` samples documents and
reports the union of their top-level fields.
"""

import logging
import uuid
from datetime import datetime
from typing import Any

from bson import Binary, Decimal128, ObjectId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..catalog.models import ConnectionConfig
from ..constants import (DB_MONGODB, DEFAULT_MONGO_PRIMARY_KEY,
                         DEFAULT_POOL_SIZE, DEFAULT_PORTS,
                         DEFAULT_QUERY_TIMEOUT,
                         DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
                         ENTITY_TYPE_COLLECTION, MONGO_SCHEMA_SAMPLE_SIZE,
                         SCHEMA_CACHE_TTL)
from ..dialects import (build_by_id_query, build_count_query, build_filter,
                        build_list_query)
from ..exceptions import (ConstraintViolationError, DriverError,
                          EntityNotFoundError, PermissionDeniedError)
from ..observability import track_operation
from ..query.ast import Node
from ..query.types import (CATEGORY_BINARY, CATEGORY_BOOLEAN,
                           CATEGORY_DATETIME, CATEGORY_INTEGER,
                           CATEGORY_JSON, CATEGORY_NUMBER, CATEGORY_OBJECTID,
                           CATEGORY_OTHER, CATEGORY_STRING, CATEGORY_UUID,
                           ColumnInfo, EntityRef, QuerySpec, TableSchema)
from .base import DatabaseDriver, SchemaCache
from .serialization import serialize_row, serialize_value

logger = logging.getLogger(__name__)


def value_category(value: Any) -> str | None:
    """Column category of a BSON value (None for null)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return CATEGORY_BOOLEAN
    if isinstance(value, int):
        return CATEGORY_INTEGER
    if isinstance(value, (float, Decimal128)):
        return CATEGORY_NUMBER
    if isinstance(value, str):
        return CATEGORY_STRING
    if isinstance(value, ObjectId):
        return CATEGORY_OBJECTID
    if isinstance(value, datetime):
        return CATEGORY_DATETIME
    if isinstance(value, uuid.UUID):
        return CATEGORY_UUID
    if isinstance(value, (bytes, Binary)):
        return CATEGORY_BINARY
    if isinstance(value, (dict, list)):
        return CATEGORY_JSON
    return CATEGORY_OTHER


def infer_schema(documents: list[dict[str, Any]], primary_key: str) -> TableSchema:
    """Build a schema from sampled documents, ``_id`` first."""
    order: list[str] = [DEFAULT_MONGO_PRIMARY_KEY]
    categories: dict[str, set[str]] = {DEFAULT_MONGO_PRIMARY_KEY: set()}
    presence: dict[str, int] = {DEFAULT_MONGO_PRIMARY_KEY: 0}
    nulls: set[str] = set()

    for doc in documents:
        for key, value in doc.items():
            if key not in categories:
                order.append(key)
                categories[key] = set()
                presence[key] = 0
            presence[key] += 1
            category = value_category(value)
            if category is None:
                nulls.add(key)
            else:
                categories[key].add(category)

    columns = []
    for name in order:
        found = categories[name]
        if len(found) == 1:
            category = next(iter(found))
        elif found == {CATEGORY_INTEGER, CATEGORY_NUMBER}:
            category = CATEGORY_NUMBER
        elif name == DEFAULT_MONGO_PRIMARY_KEY and not found:
            category = CATEGORY_OBJECTID
        else:
            category = CATEGORY_OTHER
        columns.append(
            ColumnInfo(
                name=name,
                data_type=category,
                category=category,
                nullable=name in nulls or presence[name] < len(documents),
                primary_key=name == primary_key,
            )
        )

    if primary_key not in categories:
        columns.append(ColumnInfo(name=primary_key, primary_key=True))
    return TableSchema(columns=columns, primary_key=primary_key)


class MongoDriver(DatabaseDriver):
    """Driver for MongoDB collections."""

    db_type = DB_MONGODB

    def __init__(
        self,
        connection: ConnectionConfig,
        password: str | None = None,
        database: str | None = None,
        pool_size: int = DEFAULT_POOL_SIZE,
        query_timeout: int = DEFAULT_QUERY_TIMEOUT,
        schema_cache_ttl: int = SCHEMA_CACHE_TTL,
        client: AsyncIOMotorClient | None = None,
    ):
        super().__init__(connection, database)
        self._password = password
        self._pool_size = pool_size
        self._query_timeout = query_timeout
        self._client = client
        self._schemas: SchemaCache[TableSchema] = SchemaCache(schema_cache_ttl)

    @property
    def client(self) -> AsyncIOMotorClient:
        if self._client is None:
            options = dict(
                maxPoolSize=self._pool_size,
                serverSelectionTimeoutMS=DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
                socketTimeoutMS=self._query_timeout * 1000,
                appname="autorest-engine",
            )
            uri = self.connection.options.get("uri")
            if uri:
                self._client = AsyncIOMotorClient(uri, **options)
            else:
                self._client = AsyncIOMotorClient(
                    host=self.connection.host or "localhost",
                    port=self.connection.port or DEFAULT_PORTS[DB_MONGODB],
                    username=self.connection.username or None,
                    password=self._password or None,
                    tls=self.connection.ssl_enabled,
                    **options,
                )
            logger.info(f"Created MongoDB client for connection {self.connection.id}")
        return self._client

    @property
    def db(self):
        return self.client[self.database]

    def _wrap_error(self, operation: str, error: PyMongoError, ref: EntityRef | None = None):
        context = {"operation": operation, "db_type": self.db_type}
        if ref is not None:
            context["entity"] = ref.name
        logger.warning(f"MongoDB {operation} failed: {error}")
        if isinstance(error, DuplicateKeyError):
            return ConstraintViolationError("Write violates a unique index", context=context)
        return DriverError(f"Database {operation} failed", context=context)

    async def ping(self) -> bool:
        try:
            await self.client.admin.command("ping")
            return True
        except PyMongoError as e:
            raise self._wrap_error("ping", e) from e

    async def list_objects(self) -> list[dict[str, Any]]:
        try:
            names = await self.db.list_collection_names()
        except PyMongoError as e:
            raise self._wrap_error("discovery", e) from e
        return [
            {"name": name, "schema": None, "type": ENTITY_TYPE_COLLECTION}
            for name in sorted(names)
            if not name.startswith("system.")
        ]

    async def describe(self, ref: EntityRef) -> TableSchema:
        primary_key = ref.primary_key or DEFAULT_MONGO_PRIMARY_KEY
        cached = self._schemas.get((ref.name, primary_key))
        if cached is not None:
            return cached

        try:
            if ref.name not in await self.db.list_collection_names():
                raise EntityNotFoundError(ref.name)
            cursor = self.db[ref.name].find({}, limit=MONGO_SCHEMA_SAMPLE_SIZE)
            documents = await cursor.to_list(length=MONGO_SCHEMA_SAMPLE_SIZE)
        except PyMongoError as e:
            raise self._wrap_error("schema sampling", e, ref) from e

        schema = infer_schema(documents, primary_key)
        self._schemas.set((ref.name, primary_key), schema)
        return schema

    async def find(self, ref: EntityRef, spec: QuerySpec) -> tuple[list[dict[str, Any]], int]:
        query = build_list_query(ref, spec)
        collection = self.db[query.collection]
        try:
            with track_operation("driver.find", db_type=self.db_type):
                cursor = collection.find(query.filter, projection=query.projection)
                cursor = cursor.sort(query.sort).skip(query.skip).limit(query.limit)
                documents = await cursor.to_list(length=query.limit)
                total = await collection.count_documents(query.filter)
        except PyMongoError as e:
            raise self._wrap_error("list", e, ref) from e
        return [serialize_row(doc) for doc in documents], total

    async def count(self, ref: EntityRef, node: Node | None) -> int:
        query = build_count_query(ref, node)
        try:
            return await self.db[query.collection].count_documents(query.filter)
        except PyMongoError as e:
            raise self._wrap_error("count", e, ref) from e

    async def find_by_id(
        self, ref: EntityRef, fields: list[str], row_id: Any, node: Node | None = None
    ) -> dict[str, Any] | None:
        query = build_by_id_query(ref, fields, row_id, node)
        try:
            doc = await self.db[query.collection].find_one(query.filter, projection=query.projection)
        except PyMongoError as e:
            raise self._wrap_error("lookup", e, ref) from e
        return serialize_row(doc) if doc is not None else None

    def _scoped_filter(self, ref: EntityRef, row_id: Any, node: Node | None) -> dict[str, Any]:
        return build_by_id_query(ref, [], row_id, node).filter

    async def _matches(self, collection, document_id: Any, node: Node | None) -> bool:
        scope = build_filter(node)
        if not scope:
            return True
        query = {"$and": [{DEFAULT_MONGO_PRIMARY_KEY: document_id}, scope]}
        return await collection.count_documents(query, limit=1) > 0

    @staticmethod
    def _out_of_scope(ref: EntityRef) -> PermissionDeniedError:
        return PermissionDeniedError(
            "Row would fall outside the caller's row policy", context={"entity": ref.name}
        )

    async def insert(self, ref: EntityRef, values: dict[str, Any], node: Node | None = None) -> Any:
        """
        Insert a document.

        Without multi-document transactions a document that does not match
        ``node`` is deleted again before PermissionDeniedError is raised.
        """
        collection = self.db[ref.name]
        try:
            result = await collection.insert_one(dict(values))
            if not await self._matches(collection, result.inserted_id, node):
                await collection.delete_one({DEFAULT_MONGO_PRIMARY_KEY: result.inserted_id})
                raise self._out_of_scope(ref)
        except PyMongoError as e:
            raise self._wrap_error("insert", e, ref) from e
        primary_key = ref.primary_key or DEFAULT_MONGO_PRIMARY_KEY
        if primary_key != DEFAULT_MONGO_PRIMARY_KEY and primary_key in values:
            return serialize_value(values[primary_key])
        return serialize_value(result.inserted_id)

    async def update(
        self, ref: EntityRef, row_id: Any, values: dict[str, Any], node: Node | None = None
    ) -> bool:
        """Update a document; one that no longer matches ``node`` is restored."""
        collection = self.db[ref.name]
        try:
            before = await collection.find_one_and_update(
                self._scoped_filter(ref, row_id, node),
                {"$set": values},
                return_document=ReturnDocument.BEFORE,
            )
            if before is None:
                return False
            document_id = before[DEFAULT_MONGO_PRIMARY_KEY]
            if not await self._matches(collection, document_id, node):
                await collection.replace_one({DEFAULT_MONGO_PRIMARY_KEY: document_id}, before)
                raise self._out_of_scope(ref)
        except PyMongoError as e:
            raise self._wrap_error("update", e, ref) from e
        return True

    async def delete(self, ref: EntityRef, row_id: Any, node: Node | None = None) -> bool:
        try:
            result = await self.db[ref.name].delete_one(self._scoped_filter(ref, row_id, node))
        except PyMongoError as e:
            raise self._wrap_error("delete", e, ref) from e
        return result.deleted_count > 0

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
        self._schemas.invalidate()
