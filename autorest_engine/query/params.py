"""
Parsing of the ``fields``, ``sort``, ``page`` and ``pageSize`` parameters.
"""

from typing import Any, Iterable

from ..constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, MAX_SORT_FIELDS
from ..exceptions import QueryValidationError

SORT_ASC = "asc"
SORT_DESC = "desc"


def _split_list(raw: str | Iterable[str] | None) -> list[str]:
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else list(raw)
    return [item.strip() for item in items if item and item.strip()]


def parse_sort(
    raw: str | Iterable[str] | None,
    columns: Iterable[str],
    strict: bool = True,
) -> list[tuple[str, str]]:
    """
    Parse a sort expression.

    Accepts ``name,-created_at`` and ``name:asc,created_at:desc``.

    Args:
        raw: Sort expression
        columns: Sortable column names
        strict: Raise on unknown columns instead of dropping them. Request
            parameters are strict; an entity's stored default sort is not,
            because its columns can change underneath it.

    Returns:
        List of (column, "asc" | "desc")

    Raises:
        QueryValidationError: On unknown columns (strict), bad directions or
            too many sort fields
    """
    allowed = set(columns)
    result: list[tuple[str, str]] = []
    seen = set()

    for item in _split_list(raw):
        direction = SORT_ASC
        name = item
        if item.startswith("-"):
            name, direction = item[1:], SORT_DESC
        elif item.startswith("+"):
            name = item[1:]
        elif ":" in item:
            name, direction = item.split(":", 1)
            direction = direction.strip().lower()
            if direction not in (SORT_ASC, SORT_DESC):
                raise QueryValidationError(
                    f"Invalid sort direction '{direction}' (use asc or desc)",
                    query_type="sort",
                    field=name,
                )
        name = name.strip()

        if name not in allowed:
            if strict:
                raise QueryValidationError(
                    f"Unknown sort field '{name}'", query_type="sort", field=name
                )
            continue
        if name in seen:
            continue
        seen.add(name)
        result.append((name, direction))

    if len(result) > MAX_SORT_FIELDS:
        raise QueryValidationError(
            f"Too many sort fields (max {MAX_SORT_FIELDS})", query_type="sort"
        )
    return result


def sanitize_fields(raw: str | Iterable[str] | None, allowed: Iterable[str]) -> list[str]:
    """
    Resolve the ``fields`` parameter to the columns to select.

    Without a selection every allowed column is returned, in table order.

    Raises:
        QueryValidationError: If a requested column is unknown or hidden
    """
    allowed_list = list(allowed)
    requested = _split_list(raw)
    if not requested:
        return allowed_list

    allowed_set = set(allowed_list)
    fields: list[str] = []
    for name in requested:
        if name not in allowed_set:
            raise QueryValidationError(
                f"Unknown or restricted field '{name}'", query_type="fields", field=name
            )
        if name not in fields:
            fields.append(name)
    return fields


def _to_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def normalize_pagination(
    page: Any = None,
    page_size: Any = None,
    default_page_size: int = DEFAULT_PAGE_SIZE,
    max_page_size: int = MAX_PAGE_SIZE,
) -> tuple[int, int]:
    """
    Clamp pagination input.

    Non-numeric values fall back to the defaults. The page is at least 1 and
    the page size is between 1 and ``max_page_size``.

    Returns:
        (page, page_size)
    """
    page_number = max(1, _to_int(page, 1))
    size = _to_int(page_size, default_page_size)
    if size < 1:
        size = default_page_size if size == 0 else 1
    size = min(size, max_page_size)
    return page_number, size


def has_next(page: int, page_size: int, returned: int, total: int) -> bool:
    """Whether rows exist after the current page."""
    return (page - 1) * page_size + returned < total
