"""
Unit tests for field and row policy resolution.
"""

import pytest

from autorest_engine.catalog.models import ExposedEntity, FieldPolicy, RowPolicy
from autorest_engine.exceptions import QueryValidationError
from autorest_engine.query import (Condition, Logical, apply_masks,
                                   build_query_context, policy_assignments,
                                   render_policy_template,
                                   select_effective_policy)
from autorest_engine.query.types import TableSchema

from conftest import ORDER_COLUMNS


def make_entity(field_policies=None, row_policies=None) -> ExposedEntity:
    return ExposedEntity(
        organization_id="acme",
        service_id="svc",
        connection_id="conn",
        name="orders",
        field_policies=field_policies or [],
        row_policies=row_policies or [],
    )


@pytest.fixture
def schema() -> TableSchema:
    return TableSchema(columns=list(ORDER_COLUMNS), primary_key="id")


@pytest.mark.unit
class TestSelectEffectivePolicy:
    def test_role_specific_wins(self):
        policies = [FieldPolicy(role_id=None), FieldPolicy(role_id="admin")]
        assert select_effective_policy(policies, "admin") is policies[1]

    def test_fallback_to_roleless(self):
        policies = [FieldPolicy(role_id="admin"), FieldPolicy(role_id=None)]
        assert select_effective_policy(policies, "viewer") is policies[1]
        assert select_effective_policy(policies, None) is policies[1]

    def test_none_when_nothing_applies(self):
        assert select_effective_policy([FieldPolicy(role_id="admin")], "viewer") is None
        assert select_effective_policy([], "viewer") is None


@pytest.mark.unit
class TestRenderTemplate:
    CONTEXT = {"user": {"id": "u1", "tenant": 7}, "organization": {"id": "acme"}}

    def test_exact_placeholder_keeps_type(self):
        rendered = render_policy_template({"tenant": "{{ user.tenant }}"}, self.CONTEXT)
        assert rendered == {"tenant": 7}

    def test_interpolation_in_text(self):
        rendered = render_policy_template("owner_id:{{user.id}},org:{{organization.id}}", self.CONTEXT)
        assert rendered == "owner_id:u1,org:acme"

    def test_json_string_template(self):
        rendered = render_policy_template('{"owner_id": {"$eq": "{{user.id}}"}}', self.CONTEXT)
        assert rendered == {"owner_id": {"$eq": "u1"}}

    def test_missing_path(self):
        missing = []
        rendered = render_policy_template({"owner_id": "{{user.email}}"}, self.CONTEXT, missing)
        assert rendered == {"owner_id": None}
        assert render_policy_template("owner_id:{{user.email}}", self.CONTEXT, missing) == "owner_id:null"
        assert missing == ["user.email", "user.email"]

    def test_empty_templates(self):
        assert render_policy_template(None, self.CONTEXT) is None
        assert render_policy_template({}, self.CONTEXT) is None

    def test_invalid_json(self):
        with pytest.raises(QueryValidationError, match="not valid JSON"):
            render_policy_template("{owner", self.CONTEXT)


@pytest.mark.unit
class TestBuildQueryContext:
    def test_no_policies_sees_everything(self, schema):
        context = build_query_context(make_entity(), None, schema, {})
        assert context.allowed_columns == schema.column_names
        assert context.masked_fields == []
        assert context.policy_filter is None

    def test_exclude_and_mask(self, schema):
        entity = make_entity(
            field_policies=[FieldPolicy(exclude_fields=["internal_note"], masked_fields=["card", "internal_note"])]
        )
        context = build_query_context(entity, None, schema, {})
        assert "internal_note" not in context.allowed_columns
        assert context.masked_fields == ["card"]

    def test_include_wins_over_exclude(self, schema):
        entity = make_entity(
            field_policies=[FieldPolicy(include_fields=["total", "id"], exclude_fields=["id"])]
        )
        context = build_query_context(entity, None, schema, {})
        assert context.allowed_columns == ["id", "total"]

    def test_row_policy_may_use_hidden_columns(self, schema):
        entity = make_entity(
            field_policies=[FieldPolicy(include_fields=["id", "status"])],
            row_policies=[RowPolicy(filter_template={"owner_id": "{{user.id}}"})],
        )
        context = build_query_context(entity, None, schema, {"user": {"id": "u1"}})
        assert context.policy_filter == Condition("owner_id", "eq", "u1")

    @pytest.mark.parametrize(
        "template",
        [
            {"owner_id": "{{user.id}}"},
            "owner_id:{{user.id}}",
            {"$or": [{"status": "open"}, {"owner_id": "{{user.id}}"}]},
        ],
    )
    def test_unresolved_placeholder_denies_all_rows(self, schema, template):
        entity = make_entity(row_policies=[RowPolicy(filter_template=template)])
        context = build_query_context(entity, None, schema, {"organization": {"id": "acme"}})
        assert context.deny_all is True
        assert context.policy_filter is None

    def test_resolved_context_does_not_deny(self, schema):
        entity = make_entity(row_policies=[RowPolicy(filter_template="owner_id:{{user.id}}")])
        context = build_query_context(entity, None, schema, {"user": {"id": "u1"}})
        assert context.deny_all is False
        assert context.policy_filter == Condition("owner_id", "eq", "u1")

    def test_role_policy(self, schema):
        entity = make_entity(
            row_policies=[
                RowPolicy(filter_template={"owner_id": "{{user.id}}"}),
                RowPolicy(role_id="auditor", filter_template="status:shipped"),
            ]
        )
        context = build_query_context(entity, "auditor", schema, {})
        assert context.policy_filter == Condition("status", "eq", "shipped")


@pytest.mark.unit
class TestAssignmentsAndMasks:
    def test_assignments_from_top_level_equalities(self):
        node = Logical(
            "and",
            [
                Condition("owner_id", "eq", "u1"),
                Condition("total", "gt", 5),
                Logical("or", [Condition("status", "eq", "open")]),
            ],
        )
        assert policy_assignments(node) == {"owner_id": "u1"}
        assert policy_assignments(Condition("owner_id", "eq", "u1")) == {"owner_id": "u1"}
        assert policy_assignments(Logical("or", [Condition("owner_id", "eq", "u1")])) == {}
        assert policy_assignments(None) == {}

    def test_apply_masks(self):
        row = {"id": 1, "card": "4111", "ssn": None}
        masked = apply_masks(row, ["card", "ssn"])
        assert masked == {"id": 1, "card": "****", "ssn": None}
        assert row["card"] == "4111"
