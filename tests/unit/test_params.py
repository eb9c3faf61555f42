"""
Unit tests for sort, field selection and pagination parameters.
"""

import pytest

from autorest_engine.constants import MAX_SORT_FIELDS
from autorest_engine.exceptions import QueryValidationError
from autorest_engine.query import (has_next, normalize_pagination, parse_sort,
                                   sanitize_fields)

COLUMNS = ["id", "name", "created_at", "status"]


@pytest.mark.unit
class TestParseSort:
    def test_prefix_syntax(self):
        assert parse_sort("name,-created_at,+id", COLUMNS) == [
            ("name", "asc"),
            ("created_at", "desc"),
            ("id", "asc"),
        ]

    def test_colon_syntax(self):
        assert parse_sort("name:DESC, id:asc", COLUMNS) == [("name", "desc"), ("id", "asc")]

    def test_duplicates_keep_first(self):
        assert parse_sort("name,-name", COLUMNS) == [("name", "asc")]

    def test_unknown_column_strict(self):
        with pytest.raises(QueryValidationError, match="Unknown sort field"):
            parse_sort("password", COLUMNS)

    def test_unknown_column_lenient(self):
        assert parse_sort("-legacy,name", COLUMNS, strict=False) == [("name", "asc")]

    def test_bad_direction(self):
        with pytest.raises(QueryValidationError, match="Invalid sort direction"):
            parse_sort("name:sideways", COLUMNS)

    def test_too_many_fields(self):
        columns = [f"c{i}" for i in range(MAX_SORT_FIELDS + 1)]
        with pytest.raises(QueryValidationError, match="Too many sort fields"):
            parse_sort(",".join(columns), columns)

    def test_empty(self):
        assert parse_sort(None, COLUMNS) == []
        assert parse_sort("", COLUMNS) == []


@pytest.mark.unit
class TestSanitizeFields:
    def test_default_is_all_allowed(self):
        assert sanitize_fields(None, COLUMNS) == COLUMNS

    def test_selection_order_and_dedupe(self):
        assert sanitize_fields("status, id,status", COLUMNS) == ["status", "id"]

    def test_restricted_field(self):
        with pytest.raises(QueryValidationError, match="Unknown or restricted field 'secret'"):
            sanitize_fields("id,secret", COLUMNS)


@pytest.mark.unit
class TestPagination:
    @pytest.mark.parametrize(
        "page,page_size,expected",
        [
            (None, None, (1, 25)),
            ("3", "10", (3, 10)),
            ("0", "5000", (1, 1000)),
            ("-2", "-5", (1, 1)),
            ("abc", "0", (1, 25)),
        ],
    )
    def test_normalize(self, page, page_size, expected):
        assert normalize_pagination(page, page_size, default_page_size=25, max_page_size=1000) == expected

    def test_has_next(self):
        assert has_next(1, 10, 10, 25) is True
        assert has_next(3, 10, 5, 25) is False
        assert has_next(1, 10, 0, 0) is False
