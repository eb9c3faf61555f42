"""
Field and row policies.

An exposed entity can carry one field policy and one row policy per role,
plus a fallback policy without a role. Field policies decide which columns
a caller sees and which are masked; row policies add a filter rendered from
the caller's context (``{{user.id}}``, ``{{organization.id}}``, ...).
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from ..catalog.models import ExposedEntity
from ..constants import MASK_VALUE
from ..exceptions import QueryValidationError
from .ast import LOGICAL_AND, OP_EQ, Condition, Logical, Node
from .filter_parser import parse_filter
from .types import TableSchema

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
_EXACT_PLACEHOLDER = re.compile(r"^\{\{\s*([^{}]+?)\s*\}\}$")


@dataclass
class QueryContext:
    """What one caller may see of one entity."""

    allowed_columns: list[str]
    masked_fields: list[str] = field(default_factory=list)
    policy_filter: Node | None = None
    # The row policy references context the caller does not have
    deny_all: bool = False


def select_effective_policy(policies: Sequence[Any] | None, role_id: str | None):
    """Return the policy for ``role_id``, else the role-less policy, else None."""
    if not policies:
        return None
    for policy in policies:
        if policy.role_id is not None and policy.role_id == role_id:
            return policy
    for policy in policies:
        if policy.role_id is None:
            return policy
    return None


def _lookup(context: Mapping[str, Any], path: str) -> Any:
    current: Any = context
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
        if current is None:
            return None
    return current


def _resolve(context: Mapping[str, Any], path: str, missing: list[str]) -> Any:
    value = _lookup(context, path)
    if value is None:
        missing.append(path)
    return value


def _render_text(text: str, context: Mapping[str, Any], missing: list[str]) -> Any:
    exact = _EXACT_PLACEHOLDER.match(text)
    if exact:
        return _resolve(context, exact.group(1), missing)

    def substitute(match: re.Match) -> str:
        value = _resolve(context, match.group(1), missing)
        return "null" if value is None else str(value)

    return _PLACEHOLDER.sub(substitute, text)


def _render(node: Any, context: Mapping[str, Any], missing: list[str]) -> Any:
    if isinstance(node, str):
        return _render_text(node, context, missing)
    if isinstance(node, Mapping):
        return {key: _render(value, context, missing) for key, value in node.items()}
    if isinstance(node, list):
        return [_render(item, context, missing) for item in node]
    return node


def render_policy_template(
    template: Any, context: Mapping[str, Any], missing: list[str] | None = None
) -> Any:
    """
    Render a row policy template.

    Templates are JSON filters (a dict, or a string holding a JSON object)
    or compact filter strings. A string value that is exactly ``{{path}}``
    is replaced by the raw context value, keeping its type; placeholders
    inside longer strings are interpolated as text. Missing paths render as
    ``None`` (or ``null`` inside text) and their paths are appended to
    ``missing`` when a list is given.
    """
    if template is None or template == "" or template == {}:
        return None
    if isinstance(template, str) and template.lstrip().startswith("{"):
        try:
            template = json.loads(template)
        except json.JSONDecodeError as e:
            raise QueryValidationError(
                f"Row policy template is not valid JSON: {e.msg}", query_type="policy"
            ) from e
    return _render(template, context, missing if missing is not None else [])


def build_query_context(
    entity: ExposedEntity,
    role_id: str | None,
    schema: TableSchema,
    context: Mapping[str, Any],
) -> QueryContext:
    """
    Resolve the effective field and row policies for a caller.

    A non-empty include list wins over the exclude list. The row policy is
    parsed against every column of the table, so it may test columns the
    caller cannot see. A row policy whose placeholders do not all resolve
    denies every row (``deny_all``); it is never compared against null.
    """
    field_policy = select_effective_policy(entity.field_policies, role_id)
    row_policy = select_effective_policy(entity.row_policies, role_id)

    columns = schema.column_names
    include = list(field_policy.include_fields) if field_policy else []
    exclude = list(field_policy.exclude_fields) if field_policy else []
    if include:
        allowed = [c for c in columns if c in include]
    else:
        allowed = [c for c in columns if c not in exclude]

    masked = list(field_policy.masked_fields) if field_policy else []
    masked = [c for c in masked if c in allowed]

    policy_filter = None
    if row_policy is not None:
        missing: list[str] = []
        rendered = render_policy_template(row_policy.filter_template, context, missing)
        if missing:
            logger.info(
                f"Row policy of '{entity.slug}' needs {', '.join(sorted(set(missing)))}; "
                f"denying all rows"
            )
            return QueryContext(allowed_columns=allowed, masked_fields=masked, deny_all=True)
        policy_filter = parse_filter(rendered, schema.columns)

    return QueryContext(allowed_columns=allowed, masked_fields=masked, policy_filter=policy_filter)


def policy_assignments(node: Node | None) -> dict[str, Any]:
    """
    Equality conditions at the top level of a row policy.

    Rows created through the API get these values so that a caller can only
    create rows it is allowed to read back.
    """
    if node is None:
        return {}
    if isinstance(node, Condition):
        nodes = [node]
    elif isinstance(node, Logical) and node.op == LOGICAL_AND:
        nodes = node.nodes
    else:
        return {}
    return {n.field: n.value for n in nodes if isinstance(n, Condition) and n.op == OP_EQ}


def apply_masks(row: Mapping[str, Any], masked_fields: Sequence[str]) -> dict[str, Any]:
    """Replace non-null masked values with the mask."""
    result = dict(row)
    for name in masked_fields:
        if result.get(name) is not None:
            result[name] = MASK_VALUE
    return result
