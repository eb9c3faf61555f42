"""
Unit tests for compact and JSON filter parsing.
"""

from datetime import datetime, timezone

import pytest

from autorest_engine.exceptions import QueryValidationError
from autorest_engine.query import Condition, Logical, parse_filter
from autorest_engine.query.types import (CATEGORY_BOOLEAN, CATEGORY_DATETIME,
                                         CATEGORY_INTEGER, CATEGORY_NUMBER,
                                         CATEGORY_STRING, ColumnInfo)

COLUMNS = [
    ColumnInfo("id", "INTEGER", CATEGORY_INTEGER, primary_key=True),
    ColumnInfo("status", "TEXT", CATEGORY_STRING),
    ColumnInfo("total", "NUMERIC", CATEGORY_NUMBER),
    ColumnInfo("active", "BOOLEAN", CATEGORY_BOOLEAN),
    ColumnInfo("created_at", "TIMESTAMP", CATEGORY_DATETIME),
    ColumnInfo("region", "TEXT", CATEGORY_STRING),
]


@pytest.mark.unit
class TestCompactFilter:
    def test_empty(self):
        assert parse_filter(None, COLUMNS) is None
        assert parse_filter("  ", COLUMNS) is None
        assert parse_filter(",", COLUMNS) is None

    def test_equality(self):
        assert parse_filter("status:active", COLUMNS) == Condition("status", "eq", "active")

    def test_clauses_are_anded(self):
        node = parse_filter("status:active,total:gte:100", COLUMNS)
        assert node == Logical(
            "and",
            [Condition("status", "eq", "active"), Condition("total", "gte", 100.0)],
        )

    def test_in_list_coerced(self):
        assert parse_filter("id:in:1|2|3", COLUMNS) == Condition("id", "in", [1, 2, 3])

    def test_null_forms(self):
        assert parse_filter("region:null", COLUMNS) == Condition("region", "null", True)
        assert parse_filter("region:null:false", COLUMNS) == Condition("region", "null", False)
        assert parse_filter("region:eq:null", COLUMNS) == Condition("region", "null", True)
        assert parse_filter("region:ne:null", COLUMNS) == Condition("region", "null", False)

    def test_value_may_contain_colons(self):
        node = parse_filter("status:urn:x:1", COLUMNS)
        assert node == Condition("status", "eq", "urn:x:1")

    def test_datetime_value(self):
        node = parse_filter("created_at:gt:2024-01-02T03:04:05Z", COLUMNS)
        assert node == Condition(
            "created_at", "gt", datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        )

    def test_boolean_value(self):
        assert parse_filter("active:yes", COLUMNS) == Condition("active", "eq", True)

    def test_unknown_field(self):
        with pytest.raises(QueryValidationError, match="Unknown filter field 'secret'") as exc_info:
            parse_filter("secret:1", COLUMNS)
        assert exc_info.value.field == "secret"

    def test_bad_value_for_type(self):
        with pytest.raises(QueryValidationError, match="Invalid value"):
            parse_filter("id:abc", COLUMNS)

    def test_malformed_clause(self):
        with pytest.raises(QueryValidationError, match="Invalid filter clause"):
            parse_filter("status", COLUMNS)


@pytest.mark.unit
class TestJsonFilter:
    def test_operators(self):
        node = parse_filter('{"total": {"$gte": 10, "$lt": "20"}}', COLUMNS)
        assert node == Logical(
            "and", [Condition("total", "gte", 10.0), Condition("total", "lt", 20.0)]
        )

    def test_or_and_not(self):
        node = parse_filter(
            {"$or": [{"region": "eu"}, {"region": "us"}], "$not": {"status": "void"}},
            COLUMNS,
        )
        assert node == Logical(
            "and",
            [
                Logical("or", [Condition("region", "eq", "eu"), Condition("region", "eq", "us")]),
                Logical("not", [Condition("status", "eq", "void")]),
            ],
        )

    def test_exists_maps_to_null(self):
        assert parse_filter({"region": {"$exists": False}}, COLUMNS) == Condition(
            "region", "null", True
        )

    def test_field_level_not(self):
        node = parse_filter({"status": {"$not": {"$eq": "void"}}}, COLUMNS)
        assert node == Logical("not", [Condition("status", "eq", "void")])

    def test_null_equality(self):
        assert parse_filter({"region": None}, COLUMNS) == Condition("region", "null", True)

    def test_dangerous_operator_rejected(self):
        with pytest.raises(QueryValidationError, match="not allowed"):
            parse_filter({"status": {"$where": "1"}}, COLUMNS)

    def test_unknown_top_level_operator(self):
        with pytest.raises(QueryValidationError, match="Unsupported filter operator"):
            parse_filter({"$nor": []}, COLUMNS)

    def test_unknown_field_operator(self):
        with pytest.raises(QueryValidationError, match="Unsupported filter operator"):
            parse_filter({"status": {"$regex": "a"}}, COLUMNS)

    def test_empty_or(self):
        with pytest.raises(QueryValidationError, match="non-empty array"):
            parse_filter({"$or": []}, COLUMNS)

    def test_in_needs_list(self):
        with pytest.raises(QueryValidationError, match="non-empty list"):
            parse_filter({"id": {"$in": []}}, COLUMNS)

    def test_scalar_operator_rejects_objects(self):
        with pytest.raises(QueryValidationError, match="scalar"):
            parse_filter({"id": {"$gt": [1]}}, COLUMNS)

    def test_invalid_json(self):
        with pytest.raises(QueryValidationError, match="Invalid JSON filter"):
            parse_filter("{status", COLUMNS)
