"""
Filter parsing.

Two syntaxes are accepted and produce the same AST:

* compact: ``status:active,total:gte:100,region:in:eu|us,deleted_at:null``.
  Clauses are ANDed. ``field:value`` means equality, ``field:op:value``
  applies an operator, ``|`` separates ``in``/``nin`` values and ``null`` is
  the null literal.
* JSON, Mongo style: ``{"status": "active", "total": {"$gte": 100},
  "$or": [{"region": "eu"}, {"region": "us"}]}``.

Every field must be a known column and every value is coerced to the
column's type.
"""

import json
from typing import Any, Iterable, Mapping

from ..constants import DANGEROUS_OPERATORS
from ..exceptions import QueryValidationError
from .ast import (COMPARISON_OPERATORS, LIST_OPERATORS, LOGICAL_AND,
                  LOGICAL_NOT, LOGICAL_OR, OP_EQ, OP_NE, OP_NULL,
                  TEXT_OPERATORS, Condition, Logical, Node)
from .coercion import coerce_value, parse_bool
from .types import ColumnInfo

NULL_LITERAL = "null"
LIST_SEPARATOR = "|"

_JSON_LOGICAL = {"$and": LOGICAL_AND, "$or": LOGICAL_OR, "$not": LOGICAL_NOT}
_JSON_ALIASES = {"$exists": "exists"}


def _column_map(columns: Iterable[ColumnInfo] | Mapping[str, ColumnInfo]) -> dict[str, ColumnInfo]:
    if isinstance(columns, Mapping):
        return dict(columns)
    return {c.name: c for c in columns}


def _resolve_column(name: str, columns: dict[str, ColumnInfo]) -> ColumnInfo:
    column = columns.get(name)
    if column is None:
        raise QueryValidationError(
            f"Unknown filter field '{name}'", query_type="filter", field=name
        )
    return column


def build_condition(column: ColumnInfo, op: str, value: Any) -> Condition:
    """
    Build a leaf condition with a coerced value.

    ``eq``/``ne`` against ``None`` become ``null`` checks.

    Raises:
        QueryValidationError: On unknown operators or bad values
    """
    if op not in COMPARISON_OPERATORS:
        raise QueryValidationError(
            f"Unsupported filter operator '{op}'",
            query_type="filter",
            field=column.name,
            operator=op,
        )

    if op in (OP_EQ, OP_NE) and value is None:
        return Condition(column.name, OP_NULL, op == OP_EQ)

    if op == OP_NULL:
        try:
            return Condition(column.name, OP_NULL, True if value is None else parse_bool(value))
        except ValueError as e:
            raise QueryValidationError(
                f"Operator 'null' expects true or false for field '{column.name}'",
                query_type="filter",
                field=column.name,
                operator=op,
            ) from e

    if op in LIST_OPERATORS:
        if isinstance(value, str):
            value = value.split(LIST_SEPARATOR)
        if not isinstance(value, (list, tuple)) or not value:
            raise QueryValidationError(
                f"Operator '{op}' expects a non-empty list for field '{column.name}'",
                query_type="filter",
                field=column.name,
                operator=op,
            )
        return Condition(column.name, op, [coerce_value(v, column) for v in value])

    if op in TEXT_OPERATORS:
        if value is None or isinstance(value, (dict, list)):
            raise QueryValidationError(
                f"Operator '{op}' expects a text value for field '{column.name}'",
                query_type="filter",
                field=column.name,
                operator=op,
            )
        return Condition(column.name, op, str(value))

    if isinstance(value, (dict, list)):
        raise QueryValidationError(
            f"Operator '{op}' expects a scalar value for field '{column.name}'",
            query_type="filter",
            field=column.name,
            operator=op,
        )
    return Condition(column.name, op, coerce_value(value, column))


def _compact_value(text: str) -> Any:
    return None if text == NULL_LITERAL else text


def parse_compact_filter(raw: str, columns: dict[str, ColumnInfo]) -> Node | None:
    """Parse the ``field:value,field:op:value`` syntax."""
    nodes: list[Node] = []
    for clause in raw.split(","):
        clause = clause.strip()
        if not clause:
            continue
        parts = clause.split(":", 2)
        if len(parts) < 2 or not parts[0]:
            raise QueryValidationError(
                f"Invalid filter clause '{clause}'. Expected field:value or field:op:value",
                query_type="filter",
            )
        column = _resolve_column(parts[0].strip(), columns)

        if len(parts) == 3 and parts[1] in COMPARISON_OPERATORS:
            op, text = parts[1], parts[2]
        elif len(parts) == 2 and parts[1] == OP_NULL:
            op, text = OP_NULL, "true"
        else:
            # Values may contain colons (times, URNs): everything after the field is the value
            op, text = OP_EQ, clause.split(":", 1)[1]

        if op in LIST_OPERATORS:
            value: Any = [_compact_value(v) for v in text.split(LIST_SEPARATOR)]
        elif op == OP_NULL:
            value = text
        else:
            value = _compact_value(text)
        nodes.append(build_condition(column, op, value))

    if not nodes:
        return None
    return nodes[0] if len(nodes) == 1 else Logical(LOGICAL_AND, nodes)


def _parse_field_operators(column: ColumnInfo, spec: Mapping[str, Any]) -> list[Node]:
    nodes: list[Node] = []
    for key, value in spec.items():
        if not isinstance(key, str) or not key.startswith("$"):
            raise QueryValidationError(
                f"Expected operator keys starting with '$' for field '{column.name}'",
                query_type="filter",
                field=column.name,
            )
        if key in DANGEROUS_OPERATORS:
            raise QueryValidationError(
                f"Operator '{key}' is not allowed",
                query_type="filter",
                field=column.name,
                operator=key,
            )
        op = _JSON_ALIASES.get(key, key[1:])
        if op == "exists":
            try:
                nodes.append(Condition(column.name, OP_NULL, not parse_bool(value)))
            except ValueError as e:
                raise QueryValidationError(
                    "Operator '$exists' expects a boolean",
                    query_type="filter",
                    field=column.name,
                    operator=key,
                ) from e
            continue
        if op == "not":
            if not isinstance(value, Mapping):
                raise QueryValidationError(
                    "Field-level '$not' expects an operator object",
                    query_type="filter",
                    field=column.name,
                    operator=key,
                )
            inner = _parse_field_operators(column, value)
            nodes.append(Logical(LOGICAL_NOT, [_and(inner)]))
            continue
        nodes.append(build_condition(column, op, value))
    return nodes


def _and(nodes: list[Node]) -> Node:
    return nodes[0] if len(nodes) == 1 else Logical(LOGICAL_AND, nodes)


def parse_json_filter(doc: Mapping[str, Any], columns: dict[str, ColumnInfo]) -> Node | None:
    """Parse a Mongo-style filter document."""
    if not isinstance(doc, Mapping):
        raise QueryValidationError("Filter must be a JSON object", query_type="filter")

    nodes: list[Node] = []
    for key, value in doc.items():
        if key in _JSON_LOGICAL:
            logical = _JSON_LOGICAL[key]
            if logical == LOGICAL_NOT:
                inner = parse_json_filter(value, columns)
                if inner is not None:
                    nodes.append(Logical(LOGICAL_NOT, [inner]))
                continue
            if not isinstance(value, list) or not value:
                raise QueryValidationError(
                    f"'{key}' expects a non-empty array", query_type="filter", operator=key
                )
            children = [n for n in (parse_json_filter(v, columns) for v in value) if n is not None]
            if children:
                nodes.append(children[0] if len(children) == 1 else Logical(logical, children))
            continue

        if key.startswith("$"):
            raise QueryValidationError(
                f"Unsupported filter operator '{key}'", query_type="filter", operator=key
            )

        column = _resolve_column(key, columns)
        if isinstance(value, Mapping):
            nodes.extend(_parse_field_operators(column, value))
        else:
            nodes.append(build_condition(column, OP_EQ, value))

    if not nodes:
        return None
    return _and(nodes)


def parse_filter(
    raw: str | Mapping[str, Any] | None,
    columns: Iterable[ColumnInfo] | Mapping[str, ColumnInfo],
) -> Node | None:
    """
    Parse a filter into an AST.

    Args:
        raw: Compact filter string, JSON string starting with ``{``, or a dict
        columns: Columns the filter may reference

    Returns:
        AST node, or None for an empty filter

    Raises:
        QueryValidationError: On syntax errors, unknown fields or operators,
            and values that do not fit their column
    """
    if raw is None:
        return None
    column_map = _column_map(columns)

    if isinstance(raw, Mapping):
        return parse_json_filter(raw, column_map)

    text = str(raw).strip()
    if not text:
        return None
    if text.startswith("{"):
        try:
            doc = json.loads(text)
        except json.JSONDecodeError as e:
            raise QueryValidationError(
                f"Invalid JSON filter: {e.msg}", query_type="filter"
            ) from e
        return parse_json_filter(doc, column_map)
    return parse_compact_filter(text, column_map)
