"""
Compilation of filter ASTs and query specs into SQLAlchemy Core statements.

Statements are built against a reflected ``Table`` and rendered by the
engine's own dialect, so identifier quoting, parameter style and
pagination syntax (LIMIT/OFFSET, OFFSET/FETCH) come from SQLAlchemy.
"""

from typing import Any, Iterable

from sqlalchemy import (Column, String, Table, and_, cast, delete, func,
                        insert, not_, or_, select, update)
from sqlalchemy.sql.elements import ColumnElement

from ..exceptions import QueryValidationError
from ..query.ast import (LOGICAL_AND, LOGICAL_NOT, LOGICAL_OR, OP_CONTAINS,
                         OP_ENDSWITH, OP_EQ, OP_GT, OP_GTE, OP_ICONTAINS,
                         OP_IN, OP_LIKE, OP_LT, OP_LTE, OP_NE, OP_NIN,
                         OP_NULL, OP_STARTSWITH, Condition, Logical, Node)
from ..query.params import SORT_DESC
from ..query.types import QuerySpec


class SQLStatementBuilder:
    """
    Builds statements for one table.

    Example:
        builder = SQLStatementBuilder(table, primary_key="id")
        stmt = builder.list_statement(spec)
        count_stmt = builder.count_statement(spec.filter)
    """

    def __init__(self, table: Table, primary_key: str | None = None):
        self.table = table
        self.primary_key = primary_key

    def column(self, name: str) -> Column:
        try:
            return self.table.c[name]
        except KeyError as e:
            raise QueryValidationError(f"Unknown field '{name}'", field=name) from e

    def _text_target(self, column: Column) -> ColumnElement:
        if isinstance(column.type, String):
            return column
        return cast(column, String)

    def _condition(self, condition: Condition) -> ColumnElement:
        column = self.column(condition.field)
        op, value = condition.op, condition.value

        if op == OP_EQ:
            return column == value
        if op == OP_NE:
            return column != value
        if op == OP_GT:
            return column > value
        if op == OP_GTE:
            return column >= value
        if op == OP_LT:
            return column < value
        if op == OP_LTE:
            return column <= value
        if op == OP_NULL:
            return column.is_(None) if value else column.is_not(None)
        if op in (OP_IN, OP_NIN):
            values = [v for v in value if v is not None]
            has_null = len(values) != len(value)
            if op == OP_IN:
                clause = column.in_(values)
                return or_(clause, column.is_(None)) if has_null else clause
            clause = column.not_in(values)
            return and_(clause, column.is_not(None)) if has_null else clause

        target = self._text_target(column)
        if op == OP_CONTAINS:
            return target.contains(value, autoescape=True)
        if op == OP_ICONTAINS:
            return target.icontains(value, autoescape=True)
        if op == OP_STARTSWITH:
            return target.startswith(value, autoescape=True)
        if op == OP_ENDSWITH:
            return target.endswith(value, autoescape=True)
        if op == OP_LIKE:
            return target.like(value)

        raise QueryValidationError(
            f"Unsupported filter operator '{op}'", field=condition.field, operator=op
        )

    def where(self, node: Node | None) -> ColumnElement | None:
        """Compile a filter AST into a WHERE clause (None for no filter)."""
        if node is None:
            return None
        if isinstance(node, Condition):
            return self._condition(node)
        if isinstance(node, Logical):
            clauses = [self.where(child) for child in node.nodes]
            clauses = [c for c in clauses if c is not None]
            if node.op == LOGICAL_NOT:
                return not_(and_(*clauses)) if clauses else None
            if not clauses:
                return None
            if node.op == LOGICAL_AND:
                return and_(*clauses)
            if node.op == LOGICAL_OR:
                return or_(*clauses)
        raise QueryValidationError(f"Invalid filter node: {node!r}", query_type="filter")

    def order_by(self, sort: Iterable[tuple[str, str]] | None) -> list[ColumnElement]:
        """
        ORDER BY clauses.

        Results are always ordered: without a requested sort the primary key
        (or the first column) is used, and the primary key breaks ties so
        pages do not overlap.
        """
        clauses = []
        used = set()
        for name, direction in sort or []:
            column = self.column(name)
            clauses.append(column.desc() if direction == SORT_DESC else column.asc())
            used.add(name)

        tiebreaker = None
        if self.primary_key and self.primary_key in self.table.c:
            tiebreaker = self.primary_key
        if tiebreaker is None and not clauses:
            tiebreaker = next(iter(self.table.c.keys()))
        if tiebreaker is not None and tiebreaker not in used:
            clauses.append(self.table.c[tiebreaker].asc())
        return clauses

    def _apply_where(self, stmt, node: Node | None):
        clause = self.where(node)
        return stmt if clause is None else stmt.where(clause)

    def list_statement(self, spec: QuerySpec):
        """SELECT for one page of rows."""
        stmt = select(*[self.column(f) for f in spec.fields])
        stmt = self._apply_where(stmt, spec.filter)
        return stmt.order_by(*self.order_by(spec.sort)).limit(spec.page_size).offset(spec.offset)

    def count_statement(self, node: Node | None):
        """SELECT COUNT(*) with the same WHERE clause as the list query."""
        stmt = select(func.count()).select_from(self.table)
        return self._apply_where(stmt, node)

    def _pk_clause(self, row_id: Any) -> ColumnElement:
        if not self.primary_key:
            raise QueryValidationError("Entity has no primary key", query_type="id")
        return self.column(self.primary_key) == row_id

    def by_id_statement(self, fields: list[str], row_id: Any, node: Node | None = None):
        """SELECT one row by primary key, still scoped by ``node``."""
        stmt = select(*[self.column(f) for f in fields]).where(self._pk_clause(row_id))
        return self._apply_where(stmt, node).limit(1)

    def insert_statement(self, values: dict[str, Any]):
        for name in values:
            self.column(name)
        return insert(self.table).values(values)

    def update_statement(self, row_id: Any, values: dict[str, Any], node: Node | None = None):
        for name in values:
            self.column(name)
        stmt = update(self.table).where(self._pk_clause(row_id)).values(values)
        return self._apply_where(stmt, node)

    def delete_statement(self, row_id: Any, node: Node | None = None):
        stmt = delete(self.table).where(self._pk_clause(row_id))
        return self._apply_where(stmt, node)
