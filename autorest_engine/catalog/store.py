"""
Catalog stores.

The catalog is read on every request: an API key resolves to an
application, a service name to a service and connection, and an entity
path segment to an exposed entity. ``InMemoryCatalogStore`` keeps records in
dictionaries (tests, manifests, local development); ``MongoCatalogStore``
persists them in MongoDB through ``OrganizationScopedCollection``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping

from motor.motor_asyncio import (AsyncIOMotorClient, AsyncIOMotorCollection,
                                 AsyncIOMotorDatabase)
from pymongo import ASCENDING
from pymongo.errors import (AutoReconnect, ConnectionFailure, InvalidOperation,
                            OperationFailure, ServerSelectionTimeoutError)

from ..constants import (CATALOG_APPLICATIONS, CATALOG_CONNECTIONS,
                         CATALOG_ENTITIES, CATALOG_SERVICES,
                         DEFAULT_SERVER_SELECTION_TIMEOUT_MS)
from ..exceptions import AutoRestError, InitializationError
from ..observability import track_operation
from .models import (Application, ConnectionConfig, ExposedEntity,
                     Service)

logger = logging.getLogger(__name__)


class CatalogStore(ABC):
    """
    Read and registration interface of the catalog.

    Lookups that serve requests only return active services, active
    applications and readable entities.
    """

    backend_name: str = "abstract"

    @abstractmethod
    async def get_application_by_key_hash(self, api_key_hash: str) -> Application | None:
        """Find the active application owning an API key hash."""

    @abstractmethod
    async def get_service(self, organization_id: str, name: str) -> Service | None:
        """Find an active service by name."""

    @abstractmethod
    async def get_connection(
        self, organization_id: str, connection_id: str
    ) -> ConnectionConfig | None:
        """Get a connection by id."""

    @abstractmethod
    async def list_exposed_entities(
        self, organization_id: str, service_id: str
    ) -> list[ExposedEntity]:
        """List the readable entities of a service ordered by name."""

    @abstractmethod
    async def get_exposed_entity(
        self, organization_id: str, service_id: str, entity_param: str
    ) -> ExposedEntity | None:
        """Find a readable entity by path slug or name."""

    @abstractmethod
    async def list_all_entities(
        self, organization_id: str, service_id: str
    ) -> list[ExposedEntity]:
        """List every entity registered for a service, readable or not."""

    @abstractmethod
    async def add_connection(self, connection: ConnectionConfig) -> str:
        pass

    @abstractmethod
    async def add_service(self, service: Service) -> str:
        pass

    @abstractmethod
    async def add_exposed_entity(self, entity: ExposedEntity) -> str:
        pass

    @abstractmethod
    async def add_application(self, application: Application) -> str:
        pass

    async def ping(self) -> bool:
        """Check that the store answers."""
        return True

    async def close(self) -> None:
        pass


class InMemoryCatalogStore(CatalogStore):
    """
    Dictionary-backed catalog.

    Useful for unit tests and for serving a catalog loaded from a manifest
    without a MongoDB instance.
    """

    backend_name = "memory"

    def __init__(self):
        self._connections: dict[str, ConnectionConfig] = {}
        self._services: dict[str, Service] = {}
        self._entities: dict[str, ExposedEntity] = {}
        self._applications: dict[str, Application] = {}

    async def get_application_by_key_hash(self, api_key_hash: str) -> Application | None:
        for app in self._applications.values():
            if app.api_key_hash == api_key_hash and app.is_active:
                return app
        return None

    async def get_service(self, organization_id: str, name: str) -> Service | None:
        for service in self._services.values():
            if (
                service.organization_id == organization_id
                and service.name == name
                and service.is_active
            ):
                return service
        return None

    async def get_connection(
        self, organization_id: str, connection_id: str
    ) -> ConnectionConfig | None:
        connection = self._connections.get(connection_id)
        if connection is None or connection.organization_id != organization_id:
            return None
        return connection

    async def list_all_entities(
        self, organization_id: str, service_id: str
    ) -> list[ExposedEntity]:
        entities = [
            e
            for e in self._entities.values()
            if e.organization_id == organization_id and e.service_id == service_id
        ]
        return sorted(entities, key=lambda e: e.name)

    async def list_exposed_entities(
        self, organization_id: str, service_id: str
    ) -> list[ExposedEntity]:
        entities = await self.list_all_entities(organization_id, service_id)
        return [e for e in entities if e.allow_read]

    async def get_exposed_entity(
        self, organization_id: str, service_id: str, entity_param: str
    ) -> ExposedEntity | None:
        for entity in await self.list_exposed_entities(organization_id, service_id):
            if entity.matches(entity_param):
                return entity
        return None

    async def add_connection(self, connection: ConnectionConfig) -> str:
        self._connections[connection.id] = connection
        return connection.id

    async def add_service(self, service: Service) -> str:
        self._services[service.id] = service
        return service.id

    async def add_exposed_entity(self, entity: ExposedEntity) -> str:
        self._entities[entity.id] = entity
        return entity.id

    async def add_application(self, application: Application) -> str:
        self._applications[application.id] = application
        return application.id

    def clear(self) -> None:
        """Remove every record (useful for test setup)."""
        self._connections.clear()
        self._services.clear()
        self._entities.clear()
        self._applications.clear()


class OrganizationScopedCollection:
    """
    Wraps an `AsyncIOMotorCollection` to enforce organization scoping.

    - Read operations (`find`, `find_one`, `count_documents`) only see
      documents whose `organization_id` matches the wrapper's organization.
    - `insert_one` stamps the organization onto the document.
    """

    __slots__ = ("_collection", "_organization_id")

    def __init__(self, real_collection: AsyncIOMotorCollection, organization_id: str):
        self._collection = real_collection
        self._organization_id = organization_id

    def _inject_read_filter(self, filter: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Combine the caller's filter with the mandatory organization filter."""
        scope_filter = {"organization_id": self._organization_id}
        if not filter:
            return scope_filter
        return {"$and": [dict(filter), scope_filter]}

    async def _timed(self, operation: str, coro):
        try:
            with track_operation(f"catalog.{operation}", collection=self._collection.name):
                return await coro
        except (OperationFailure, AutoReconnect, InvalidOperation) as e:
            logger.exception(f"Catalog operation failed in {operation}")
            raise AutoRestError(
                "Catalog operation failed",
                context={"operation": operation, "collection": self._collection.name},
            ) from e

    async def insert_one(self, document: Mapping[str, Any]):
        """Injects the organization id before writing, without mutating the caller's data."""
        doc_to_insert = {**document, "organization_id": self._organization_id}
        return await self._timed("insert_one", self._collection.insert_one(doc_to_insert))

    async def find_one(self, filter: Mapping[str, Any] | None = None, **kwargs):
        scoped_filter = self._inject_read_filter(filter)
        return await self._timed("find_one", self._collection.find_one(scoped_filter, **kwargs))

    async def find_all(
        self, filter: Mapping[str, Any] | None = None, sort: list[tuple] | None = None
    ) -> list[dict[str, Any]]:
        """Run a scoped find and return every document."""
        cursor = self._collection.find(self._inject_read_filter(filter))
        if sort:
            cursor = cursor.sort(sort)
        return await self._timed("find", cursor.to_list(length=None))

    async def count_documents(self, filter: Mapping[str, Any] | None = None) -> int:
        scoped_filter = self._inject_read_filter(filter)
        return await self._timed("count_documents", self._collection.count_documents(scoped_filter))


class MongoCatalogStore(CatalogStore):
    """
    MongoDB-backed catalog.

    Example:
        store = MongoCatalogStore.from_uri("mongodb://localhost:27017", "autorest")
        await store.ensure_indexes()
        service = await store.get_service("org-1", "sales")
    """

    backend_name = "mongodb"

    def __init__(self, db: AsyncIOMotorDatabase, client: AsyncIOMotorClient | None = None):
        self._db = db
        self._client = client

    @classmethod
    def from_uri(
        cls,
        uri: str,
        db_name: str,
        server_selection_timeout_ms: int = DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
    ) -> "MongoCatalogStore":
        """Create a store with its own Motor client."""
        client = AsyncIOMotorClient(
            uri,
            serverSelectionTimeoutMS=server_selection_timeout_ms,
            appname="autorest-engine",
        )
        return cls(client[db_name], client=client)

    def _scoped(self, collection_name: str, organization_id: str) -> OrganizationScopedCollection:
        return OrganizationScopedCollection(self._db[collection_name], organization_id)

    async def ping(self) -> bool:
        await self._db.command("ping")
        return True

    async def ensure_indexes(self) -> None:
        """Create the indexes request-time lookups rely on."""
        try:
            await self._db[CATALOG_APPLICATIONS].create_index(
                [("api_key_hash", ASCENDING)], unique=True
            )
            await self._db[CATALOG_SERVICES].create_index(
                [("organization_id", ASCENDING), ("name", ASCENDING)]
            )
            await self._db[CATALOG_ENTITIES].create_index(
                [
                    ("organization_id", ASCENDING),
                    ("service_id", ASCENDING),
                    ("name", ASCENDING),
                ]
            )
        except (OperationFailure, ConnectionFailure, ServerSelectionTimeoutError) as e:
            raise InitializationError(f"Failed to create catalog indexes: {e}") from e

    async def get_application_by_key_hash(self, api_key_hash: str) -> Application | None:
        # The key identifies the organization, so this lookup is the one unscoped read.
        doc = await self._db[CATALOG_APPLICATIONS].find_one(
            {"api_key_hash": api_key_hash, "is_active": True}
        )
        return Application.from_dict(doc)

    async def get_service(self, organization_id: str, name: str) -> Service | None:
        doc = await self._scoped(CATALOG_SERVICES, organization_id).find_one(
            {"name": name, "is_active": True}
        )
        return Service.from_dict(doc)

    async def get_connection(
        self, organization_id: str, connection_id: str
    ) -> ConnectionConfig | None:
        doc = await self._scoped(CATALOG_CONNECTIONS, organization_id).find_one(
            {"_id": connection_id}
        )
        return ConnectionConfig.from_dict(doc)

    async def list_exposed_entities(
        self, organization_id: str, service_id: str
    ) -> list[ExposedEntity]:
        docs = await self._scoped(CATALOG_ENTITIES, organization_id).find_all(
            {"service_id": service_id, "allow_read": True}, sort=[("name", ASCENDING)]
        )
        return [ExposedEntity.from_dict(doc) for doc in docs]

    async def get_exposed_entity(
        self, organization_id: str, service_id: str, entity_param: str
    ) -> ExposedEntity | None:
        doc = await self._scoped(CATALOG_ENTITIES, organization_id).find_one(
            {
                "service_id": service_id,
                "allow_read": True,
                "$or": [{"path_slug": entity_param}, {"name": entity_param}],
            }
        )
        return ExposedEntity.from_dict(doc)

    async def list_all_entities(
        self, organization_id: str, service_id: str
    ) -> list[ExposedEntity]:
        docs = await self._scoped(CATALOG_ENTITIES, organization_id).find_all(
            {"service_id": service_id}, sort=[("name", ASCENDING)]
        )
        return [ExposedEntity.from_dict(doc) for doc in docs]

    async def _add(self, collection_name: str, record) -> str:
        await self._scoped(collection_name, record.organization_id).insert_one(record.to_dict())
        logger.debug(f"Added {type(record).__name__} with id={record.id}")
        return record.id

    async def add_connection(self, connection: ConnectionConfig) -> str:
        return await self._add(CATALOG_CONNECTIONS, connection)

    async def add_service(self, service: Service) -> str:
        return await self._add(CATALOG_SERVICES, service)

    async def add_exposed_entity(self, entity: ExposedEntity) -> str:
        return await self._add(CATALOG_ENTITIES, entity)

    async def add_application(self, application: Application) -> str:
        return await self._add(CATALOG_APPLICATIONS, application)

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
