"""
Compilation of filter ASTs and query specs into MongoDB queries.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from pymongo import ASCENDING, DESCENDING

from ..constants import DEFAULT_MONGO_PRIMARY_KEY
from ..exceptions import QueryValidationError
from ..query.ast import (LOGICAL_AND, LOGICAL_NOT, LOGICAL_OR, OP_CONTAINS,
                         OP_ENDSWITH, OP_EQ, OP_GT, OP_GTE, OP_ICONTAINS,
                         OP_IN, OP_LIKE, OP_LT, OP_LTE, OP_NE, OP_NIN,
                         OP_NULL, OP_STARTSWITH, Condition, Logical, Node)
from ..query.params import SORT_DESC
from ..query.types import EntityRef, QuerySpec
from ..query.validator import MongoQueryValidator

_COMPARISONS = {
    OP_NE: "$ne",
    OP_GT: "$gt",
    OP_GTE: "$gte",
    OP_LT: "$lt",
    OP_LTE: "$lte",
    OP_IN: "$in",
    OP_NIN: "$nin",
}

_validator = MongoQueryValidator()


@dataclass
class MongoQuery:
    """Arguments for a Motor ``find`` / ``count_documents`` call."""

    collection: str
    filter: dict[str, Any] = field(default_factory=dict)
    projection: dict[str, int] | None = None
    sort: list[tuple[str, int]] = field(default_factory=list)
    skip: int = 0
    limit: int = 0


def like_to_regex(pattern: str) -> str:
    """Translate a SQL LIKE pattern (``%`` and ``_``) into an anchored regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return "^" + "".join(parts) + "$"


def _condition(condition: Condition) -> dict[str, Any]:
    name, op, value = condition.field, condition.op, condition.value

    if op == OP_EQ:
        return {name: value}
    if op == OP_NULL:
        return {name: None} if value else {name: {"$ne": None}}
    if op in _COMPARISONS:
        return {name: {_COMPARISONS[op]: value}}
    if op == OP_CONTAINS:
        return {name: {"$regex": re.escape(value)}}
    if op == OP_ICONTAINS:
        return {name: {"$regex": re.escape(value), "$options": "i"}}
    if op == OP_STARTSWITH:
        return {name: {"$regex": "^" + re.escape(value)}}
    if op == OP_ENDSWITH:
        return {name: {"$regex": re.escape(value) + "$"}}
    if op == OP_LIKE:
        return {name: {"$regex": like_to_regex(value)}}
    raise QueryValidationError(f"Unsupported filter operator '{op}'", field=name, operator=op)


def build_filter(node: Node | None) -> dict[str, Any]:
    """Compile a filter AST into a MongoDB filter document."""
    if node is None:
        return {}
    if isinstance(node, Condition):
        return _condition(node)
    if isinstance(node, Logical):
        children = [build_filter(child) for child in node.nodes]
        children = [c for c in children if c]
        if not children:
            return {}
        if node.op == LOGICAL_NOT:
            return {"$nor": children}
        if node.op == LOGICAL_AND:
            return children[0] if len(children) == 1 else {"$and": children}
        if node.op == LOGICAL_OR:
            return {"$or": children}
    raise QueryValidationError(f"Invalid filter node: {node!r}", query_type="filter")


def build_projection(fields: list[str] | None) -> dict[str, int] | None:
    if not fields:
        return None
    projection = {name: 1 for name in fields}
    if DEFAULT_MONGO_PRIMARY_KEY not in projection:
        projection[DEFAULT_MONGO_PRIMARY_KEY] = 0
    return projection


def build_sort(sort: list[tuple[str, str]] | None, primary_key: str) -> list[tuple[str, int]]:
    """Requested sort plus the primary key as tiebreaker."""
    result = [(name, DESCENDING if d == SORT_DESC else ASCENDING) for name, d in sort or []]
    if primary_key not in {name for name, _ in result}:
        result.append((primary_key, ASCENDING))
    return result


def _validated(node: Node | None) -> dict[str, Any]:
    mongo_filter = build_filter(node)
    _validator.validate_filter(mongo_filter)
    return mongo_filter


def build_list_query(ref: EntityRef, spec: QuerySpec) -> MongoQuery:
    return MongoQuery(
        collection=ref.name,
        filter=_validated(spec.filter),
        projection=build_projection(spec.fields),
        sort=build_sort(spec.sort, ref.primary_key or DEFAULT_MONGO_PRIMARY_KEY),
        skip=spec.offset,
        limit=spec.page_size,
    )


def build_count_query(ref: EntityRef, node: Node | None) -> MongoQuery:
    return MongoQuery(collection=ref.name, filter=_validated(node))


def build_by_id_query(
    ref: EntityRef, fields: list[str], row_id: Any, node: Node | None = None
) -> MongoQuery:
    """Lookup by primary key, still scoped by ``node``."""
    primary_key = ref.primary_key or DEFAULT_MONGO_PRIMARY_KEY
    id_filter = {primary_key: row_id}
    scope = build_filter(node)
    mongo_filter = {"$and": [id_filter, scope]} if scope else id_filter
    _validator.validate_filter(mongo_filter)
    return MongoQuery(
        collection=ref.name,
        filter=mongo_filter,
        projection=build_projection(fields),
        limit=1,
    )
