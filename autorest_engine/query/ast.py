"""
Filter AST.

Filters from request parameters and from row policies are parsed into the
same small tree so the SQL and MongoDB dialects only compile one shape.
"""

from dataclasses import dataclass, field
from typing import Any, Iterator, Union

# Comparison operators
OP_EQ = "eq"
OP_NE = "ne"
OP_GT = "gt"
OP_GTE = "gte"
OP_LT = "lt"
OP_LTE = "lte"
OP_IN = "in"
OP_NIN = "nin"
OP_CONTAINS = "contains"
OP_ICONTAINS = "icontains"
OP_STARTSWITH = "startswith"
OP_ENDSWITH = "endswith"
OP_LIKE = "like"
OP_NULL = "null"

COMPARISON_OPERATORS = frozenset(
    {
        OP_EQ,
        OP_NE,
        OP_GT,
        OP_GTE,
        OP_LT,
        OP_LTE,
        OP_IN,
        OP_NIN,
        OP_CONTAINS,
        OP_ICONTAINS,
        OP_STARTSWITH,
        OP_ENDSWITH,
        OP_LIKE,
        OP_NULL,
    }
)

LIST_OPERATORS = frozenset({OP_IN, OP_NIN})
TEXT_OPERATORS = frozenset({OP_CONTAINS, OP_ICONTAINS, OP_STARTSWITH, OP_ENDSWITH, OP_LIKE})

# Logical operators
LOGICAL_AND = "and"
LOGICAL_OR = "or"
LOGICAL_NOT = "not"


@dataclass
class Condition:
    """``field <op> value``. For ``null`` the value is a bool (is null / is not null)."""

    field: str
    op: str
    value: Any = None


@dataclass
class Logical:
    """``and``/``or`` over several nodes, or ``not`` over exactly one."""

    op: str
    nodes: list["Node"] = field(default_factory=list)


Node = Union[Condition, Logical]


def combine(*nodes: Node | None) -> Node | None:
    """AND together the given nodes, skipping ``None``."""
    present = [n for n in nodes if n is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return Logical(LOGICAL_AND, present)


def iter_conditions(node: Node | None) -> Iterator[Condition]:
    """Yield every leaf condition of a tree."""
    if node is None:
        return
    if isinstance(node, Condition):
        yield node
        return
    for child in node.nodes:
        yield from iter_conditions(child)


def depth(node: Node | None) -> int:
    """Nesting depth of logical groups (a bare condition has depth 0)."""
    if node is None or isinstance(node, Condition):
        return 0
    return 1 + max((depth(child) for child in node.nodes), default=0)
