"""
Database driver interface.

A driver owns the connection pool for one (connection, database) pair and
executes the queries the service has already validated. Drivers never see
API keys or policies, only entity references, filter ASTs and values.
"""

import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Generic, TypeVar

from ..catalog.models import ConnectionConfig
from ..constants import MAX_CACHE_SIZE, SCHEMA_CACHE_TTL
from ..query.ast import Node
from ..query.types import EntityRef, QuerySpec, TableSchema

V = TypeVar("V")


class SchemaCache(Generic[V]):
    """
    Bounded cache of reflected schemas with a time-to-live.

    A TTL of 0 disables caching.
    """

    def __init__(self, ttl_seconds: int = SCHEMA_CACHE_TTL, max_size: int = MAX_CACHE_SIZE):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._entries: OrderedDict[Any, tuple[float, V]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Any) -> V | None:
        if self.ttl_seconds <= 0:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if time.monotonic() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: Any, value: V) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[key] = (time.monotonic(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def invalidate(self, key: Any | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class DatabaseDriver(ABC):
    """
    Executes auto-REST queries against one database.

    Rows are returned as JSON-friendly dicts (see ``serialization``).
    """

    db_type: str = ""

    def __init__(self, connection: ConnectionConfig, database: str | None = None):
        self.connection = connection
        self.database = database or connection.database

    @abstractmethod
    async def ping(self) -> bool:
        """Check that the database answers."""

    @abstractmethod
    async def list_objects(self) -> list[dict[str, Any]]:
        """
        List tables, views or collections.

        Returns:
            Dicts with ``name``, ``schema`` and ``type``
        """

    @abstractmethod
    async def describe(self, ref: EntityRef) -> TableSchema:
        """
        Return the columns of an entity.

        Raises:
            EntityNotFoundError: If the table or collection does not exist
        """

    @abstractmethod
    async def find(self, ref: EntityRef, spec: QuerySpec) -> tuple[list[dict[str, Any]], int]:
        """Return one page of rows and the total number of matching rows."""

    @abstractmethod
    async def count(self, ref: EntityRef, node: Node | None) -> int:
        pass

    @abstractmethod
    async def find_by_id(
        self, ref: EntityRef, fields: list[str], row_id: Any, node: Node | None = None
    ) -> dict[str, Any] | None:
        """Return the row with primary key ``row_id`` if it also matches ``node``."""

    @abstractmethod
    async def insert(self, ref: EntityRef, values: dict[str, Any], node: Node | None = None) -> Any:
        """
        Insert a row and return its primary key value.

        Raises:
            PermissionDeniedError: If the new row does not match ``node``;
                nothing is kept in that case
        """

    @abstractmethod
    async def update(
        self, ref: EntityRef, row_id: Any, values: dict[str, Any], node: Node | None = None
    ) -> bool:
        """
        Update a row matching ``row_id`` and ``node``; False when nothing matched.

        Raises:
            PermissionDeniedError: If the updated row no longer matches
                ``node``; the update is undone
        """

    @abstractmethod
    async def delete(self, ref: EntityRef, row_id: Any, node: Node | None = None) -> bool:
        """Delete a row matching ``row_id`` and ``node``; False when nothing matched."""

    def pool_status(self) -> dict[str, Any] | None:
        """Pool usage (``size``, ``checked_out``), or None when not available."""
        return None

    async def close(self) -> None:
        pass
