"""
Types shared by the query layer, the dialects and the drivers.
"""

from dataclasses import dataclass, field
from typing import Any

from ..constants import DEFAULT_PAGE_SIZE

# Column categories used for value coercion and schema output
CATEGORY_INTEGER = "integer"
CATEGORY_NUMBER = "number"
CATEGORY_BOOLEAN = "boolean"
CATEGORY_STRING = "string"
CATEGORY_DATETIME = "datetime"
CATEGORY_DATE = "date"
CATEGORY_TIME = "time"
CATEGORY_UUID = "uuid"
CATEGORY_JSON = "json"
CATEGORY_BINARY = "binary"
CATEGORY_OBJECTID = "objectid"
CATEGORY_OTHER = "other"


@dataclass
class ColumnInfo:
    """A column of a reflected table or a field of a sampled collection."""

    name: str
    data_type: str = "unknown"
    category: str = CATEGORY_OTHER
    nullable: bool = True
    primary_key: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.data_type,
            "category": self.category,
            "nullable": self.nullable,
            "primaryKey": self.primary_key,
        }


@dataclass
class TableSchema:
    """Columns of an entity, in database order."""

    columns: list[ColumnInfo]
    primary_key: str | None = None

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def by_name(self) -> dict[str, ColumnInfo]:
        return {c.name: c for c in self.columns}

    def get(self, name: str) -> ColumnInfo | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None


@dataclass(frozen=True)
class EntityRef:
    """Where an entity lives: database, schema and table or collection name."""

    name: str
    schema: str | None = None
    database: str | None = None
    primary_key: str | None = None

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name


@dataclass
class QuerySpec:
    """
    A fully validated list query.

    ``filter`` is a filter AST (see ``query.ast``); ``sort`` is a list of
    ``(field, "asc" | "desc")`` pairs.
    """

    fields: list[str]
    filter: Any = None
    sort: list[tuple[str, str]] = field(default_factory=list)
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size
