"""
Query layer: filter AST, parameter parsing, limits and access policies.
"""

from .ast import Condition, Logical, Node, combine
from .coercion import coerce_value
from .filter_parser import parse_filter
from .params import has_next, normalize_pagination, parse_sort, sanitize_fields
from .policies import (QueryContext, apply_masks, build_query_context,
                       policy_assignments, render_policy_template,
                       select_effective_policy)
from .types import ColumnInfo, EntityRef, QuerySpec, TableSchema
from .validator import (DEFAULT_LIMITS, FilterLimits, MongoQueryValidator,
                        validate_filter)

__all__ = [
    "Condition",
    "Logical",
    "Node",
    "combine",
    "coerce_value",
    "parse_filter",
    "has_next",
    "normalize_pagination",
    "parse_sort",
    "sanitize_fields",
    "QueryContext",
    "apply_masks",
    "build_query_context",
    "policy_assignments",
    "render_policy_template",
    "select_effective_policy",
    "ColumnInfo",
    "EntityRef",
    "QuerySpec",
    "TableSchema",
    "DEFAULT_LIMITS",
    "FilterLimits",
    "MongoQueryValidator",
    "validate_filter",
]
