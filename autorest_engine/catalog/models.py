"""
Catalog records.

The catalog describes which databases are reachable, which services name
them, which tables are exposed through each service, and which
applications may call the API. Every record belongs to an organization.
"""

import dataclasses
import uuid
from dataclasses import dataclass, field
from typing import Any

from ..constants import DEFAULT_SCHEMAS, ENTITY_TYPE_TABLE


def new_id() -> str:
    """Generate a catalog record id."""
    return uuid.uuid4().hex


@dataclass
class CatalogRecord:
    """
    Base class for catalog records.

    Records are stored with ``_id`` in MongoDB and ``id`` everywhere else.
    """

    def to_dict(self) -> dict[str, Any]:
        """Convert the record to a storage document."""
        data = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if f.name == "id":
                data["_id"] = value
            elif dataclasses.is_dataclass(value):
                data[f.name] = value.to_dict()
            elif isinstance(value, list):
                data[f.name] = [v.to_dict() if dataclasses.is_dataclass(v) else v for v in value]
            else:
                data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None):
        """Create a record from a storage document, ignoring unknown keys."""
        if data is None:
            return None
        data = dict(data)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        field_names = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in field_names})


@dataclass
class ConnectionConfig(CatalogRecord):
    """Connection details of a database reachable by the engine."""

    organization_id: str
    type: str
    host: str | None = None
    port: int | None = None
    username: str | None = None
    password: str | None = None
    database: str | None = None
    ssl_enabled: bool = False
    options: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_id)

    def safe_dict(self) -> dict[str, Any]:
        """Return the record without its password."""
        data = self.to_dict()
        data.pop("password", None)
        return data


@dataclass
class Service(CatalogRecord):
    """A named API service backed by one connection."""

    organization_id: str
    name: str
    connection_id: str
    database: str | None = None
    is_active: bool = True
    description: str | None = None
    id: str = field(default_factory=new_id)


@dataclass
class FieldPolicy(CatalogRecord):
    """
    Column visibility for one role (or every role when ``role_id`` is None).

    A non-empty ``include_fields`` wins over ``exclude_fields``.
    """

    role_id: str | None = None
    include_fields: list[str] = field(default_factory=list)
    exclude_fields: list[str] = field(default_factory=list)
    masked_fields: list[str] = field(default_factory=list)


@dataclass
class RowPolicy(CatalogRecord):
    """Row filter template for one role (or every role when ``role_id`` is None)."""

    role_id: str | None = None
    filter_template: Any = None


@dataclass
class ExposedEntity(CatalogRecord):
    """A table, view or collection published through a service."""

    organization_id: str
    service_id: str
    connection_id: str
    name: str
    database: str | None = None
    schema: str | None = None
    type: str = ENTITY_TYPE_TABLE
    primary_key: str | None = None
    default_sort: str | None = None
    path_slug: str | None = None
    allow_read: bool = True
    allow_create: bool = False
    allow_update: bool = False
    allow_delete: bool = False
    field_policies: list[FieldPolicy] = field(default_factory=list)
    row_policies: list[RowPolicy] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        self.field_policies = [
            p if isinstance(p, FieldPolicy) else FieldPolicy.from_dict(p)
            for p in self.field_policies or []
        ]
        self.row_policies = [
            p if isinstance(p, RowPolicy) else RowPolicy.from_dict(p)
            for p in self.row_policies or []
        ]

    @property
    def slug(self) -> str:
        """The path segment the entity is served under."""
        return self.path_slug or self.name

    def matches(self, entity_param: str) -> bool:
        return entity_param in (self.path_slug, self.name)

    def schema_for(self, db_type: str) -> str | None:
        """The schema to query, falling back to the backend default."""
        return self.schema or DEFAULT_SCHEMAS.get(db_type)


@dataclass
class Application(CatalogRecord):
    """An API client identified by the hash of its key."""

    organization_id: str
    name: str
    api_key_hash: str
    default_role_id: str | None = None
    is_active: bool = True
    can_manage: bool = False
    id: str = field(default_factory=new_id)
