"""
Query limits.

``validate_filter`` bounds the size of a parsed filter before it is
compiled. ``MongoQueryValidator`` re-checks the compiled MongoDB document:
no server-side JavaScript operators, bounded nesting, bounded regexes.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any

from ..constants import (DANGEROUS_OPERATORS, MAX_FILTER_CONDITIONS,
                         MAX_FILTER_DEPTH, MAX_IN_VALUES,
                         MAX_LIKE_PATTERN_LENGTH, MAX_MONGO_QUERY_DEPTH,
                         MAX_REGEX_LENGTH)
from ..exceptions import QueryValidationError
from .ast import LIST_OPERATORS, TEXT_OPERATORS, Node, depth, iter_conditions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterLimits:
    max_depth: int = MAX_FILTER_DEPTH
    max_conditions: int = MAX_FILTER_CONDITIONS
    max_in_values: int = MAX_IN_VALUES
    max_pattern_length: int = MAX_LIKE_PATTERN_LENGTH


DEFAULT_LIMITS = FilterLimits()


def validate_filter(node: Node | None, limits: FilterLimits = DEFAULT_LIMITS) -> None:
    """
    Check a filter AST against the query limits.

    Raises:
        QueryValidationError: If the filter is too deep, has too many
            conditions, too many ``in`` values or too long a pattern
    """
    if node is None:
        return

    filter_depth = depth(node)
    if filter_depth > limits.max_depth:
        raise QueryValidationError(
            f"Filter exceeds maximum nesting depth: {filter_depth} > {limits.max_depth}",
            query_type="filter",
            context={"depth": filter_depth, "max_depth": limits.max_depth},
        )

    conditions = list(iter_conditions(node))
    if len(conditions) > limits.max_conditions:
        raise QueryValidationError(
            f"Filter exceeds maximum conditions: {len(conditions)} > {limits.max_conditions}",
            query_type="filter",
            context={"conditions": len(conditions), "max_conditions": limits.max_conditions},
        )

    for condition in conditions:
        if condition.op in LIST_OPERATORS and len(condition.value) > limits.max_in_values:
            raise QueryValidationError(
                f"Too many values for '{condition.op}' on '{condition.field}' "
                f"(max {limits.max_in_values})",
                query_type="filter",
                field=condition.field,
                operator=condition.op,
            )
        if (
            condition.op in TEXT_OPERATORS
            and len(condition.value) > limits.max_pattern_length
        ):
            raise QueryValidationError(
                f"Pattern for '{condition.field}' exceeds {limits.max_pattern_length} characters",
                query_type="filter",
                field=condition.field,
                operator=condition.op,
            )


class MongoQueryValidator:
    """
    Validates compiled MongoDB filters.

    The filter parser never emits these operators; this check guards the
    boundary where documents reach Motor.
    """

    def __init__(
        self,
        max_depth: int = MAX_MONGO_QUERY_DEPTH,
        max_regex_length: int = MAX_REGEX_LENGTH,
        dangerous_operators: set[str] | None = None,
    ):
        self.max_depth = max_depth
        self.max_regex_length = max_regex_length
        self.dangerous_operators = set(DANGEROUS_OPERATORS) | set(dangerous_operators or ())

    def validate_filter(self, filter: dict[str, Any] | None, path: str = "") -> None:
        """
        Raises:
            QueryValidationError: If the filter contains dangerous operators,
                is nested too deeply or carries an invalid regex
        """
        if not filter:
            return
        if not isinstance(filter, dict):
            raise QueryValidationError(
                f"Query filter must be a dictionary, got {type(filter).__name__}",
                query_type="filter",
            )
        self._check(filter, path, depth=0)

    def validate_regex(self, pattern: str, path: str = "") -> None:
        if len(pattern) > self.max_regex_length:
            raise QueryValidationError(
                f"Regex pattern exceeds maximum length: {len(pattern)} > {self.max_regex_length}",
                query_type="regex",
                context={"path": path},
            )
        try:
            re.compile(pattern)
        except re.error as e:
            raise QueryValidationError(
                f"Invalid regex pattern: {e}", query_type="regex", context={"path": path}
            ) from e

    def _check(self, query: dict[str, Any], path: str, depth: int) -> None:
        if depth > self.max_depth:
            raise QueryValidationError(
                f"Query exceeds maximum nesting depth: {depth} > {self.max_depth}",
                query_type="filter",
                context={"depth": depth, "max_depth": self.max_depth, "path": path},
            )

        for key, value in query.items():
            current_path = f"{path}.{key}" if path else key

            if key in self.dangerous_operators:
                logger.warning(
                    f"Security: Dangerous operator '{key}' detected in query "
                    f"at path '{current_path}'"
                )
                raise QueryValidationError(
                    f"Dangerous operator '{key}' is not allowed. Found at path: {current_path}",
                    query_type="filter",
                    operator=key,
                )

            if key == "$regex" and isinstance(value, str):
                self.validate_regex(value, current_path)
            elif isinstance(value, dict):
                self._check(value, current_path, depth + 1)
            elif isinstance(value, list):
                for idx, item in enumerate(value):
                    if isinstance(item, dict):
                        self._check(item, f"{current_path}[{idx}]", depth + 1)
