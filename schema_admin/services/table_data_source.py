"""
Compile a table schema plus module state into parameterized SQL and run it.

The WHERE clause is assembled in a fixed order: the active filter link, the
search term over searchable columns, the date range and then each dropdown
filter. Identifiers come from the compiled schema only; every request value is
bound as a ``?`` parameter.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Sequence

from schema_admin.services.module_state import (
    DATE_END_KEY,
    DATE_START_KEY,
    SEARCH_KEY,
    ModuleState,
    dropdown_key,
)
from schema_admin.services.schema_model import SortDirection, TableSchema
from schema_admin.services.sql_executor import SqlExecutor


@dataclass(frozen=True)
class WhereClause:
    conditions: tuple[str, ...] = ()
    params: tuple[Any, ...] = ()

    def sql(self) -> str:
        if not self.conditions:
            return ""
        return " WHERE " + " AND ".join(self.conditions)

    def extend(self, conditions: Sequence[str], params: Sequence[Any] = ()) -> "WhereClause":
        return WhereClause(self.conditions + tuple(conditions), self.params + tuple(params))


@dataclass(frozen=True)
class TableResult:
    rows: list[dict[str, Any]]
    page: int
    per_page: int
    total_rows: int
    total_pages: int
    per_page_options: tuple[int, ...] = field(default=())


def total_pages_for(total_rows: int, per_page: int) -> int:
    return math.ceil(total_rows / per_page) if per_page > 0 else 0


def build_where(
    schema: TableSchema,
    state: ModuleState,
    *,
    include_filter_link: bool = True,
    extra_conditions: Sequence[str] = (),
    extra_params: Sequence[Any] = (),
) -> WhereClause:
    conditions: list[str] = []
    params: list[Any] = []

    if include_filter_link:
        link = schema.filter_link(state.get_active_filter_link())
        if link is not None:
            conditions.append(f"({link.condition})")

    search_term = state.get_filter(SEARCH_KEY)
    if search_term:
        search_clauses: list[str] = []
        for column in schema.searchable_columns():
            search_clauses.append(f"({column.sql_expression} LIKE ?)")
            params.append(f"%{search_term}%")
        if search_clauses:
            conditions.append("(" + " OR ".join(search_clauses) + ")")

    date_column = schema.date_column
    if date_column:
        date_start = state.get_filter(DATE_START_KEY)
        date_end = state.get_filter(DATE_END_KEY)
        if date_start and date_end:
            conditions.append(f"{date_column} BETWEEN ? AND ?")
            params.extend([date_start, date_end])
        elif date_start:
            conditions.append(f"{date_column} >= ?")
            params.append(date_start)
        elif date_end:
            conditions.append(f"{date_column} <= ?")
            params.append(date_end)

    for index, definition in enumerate(schema.filters):
        selected = state.get_filter(dropdown_key(index))
        if selected not in (None, ""):
            conditions.append(f"{definition.column} = ?")
            params.append(selected)

    conditions.extend(extra_conditions)
    params.extend(extra_params)
    return WhereClause(tuple(conditions), tuple(params))


def build_select_sql(
    schema: TableSchema,
    where: WhereClause,
    *,
    order_by: str,
    direction: SortDirection,
    paginate: bool = True,
) -> str:
    select_list = schema.select_expressions()
    if not schema.has_primary_key_column():
        select_list.insert(0, schema.primary_key)
    sql = (
        f"SELECT {', '.join(select_list)} FROM {schema.from_clause()}{where.sql()}"
        f" ORDER BY {schema.order_by_target(order_by)} {direction.value}"
    )
    if paginate:
        sql += " LIMIT ? OFFSET ?"
    return sql


def build_count_sql(schema: TableSchema, where: WhereClause) -> str:
    return f"SELECT COUNT(*) AS cnt FROM {schema.from_clause()}{where.sql()}"


class QueryDataSource:
    """Fetch paginated listings and full exports for a table schema."""

    def __init__(self, executor: SqlExecutor) -> None:
        self.executor = executor

    def count(self, schema: TableSchema, where: WhereClause) -> int:
        return int(self.executor.fetch_scalar(build_count_sql(schema, where), where.params) or 0)

    def fetch(
        self,
        schema: TableSchema,
        state: ModuleState,
        extra_conditions: Sequence[str] = (),
        extra_params: Sequence[Any] = (),
    ) -> TableResult:
        where = build_where(schema, state, extra_conditions=extra_conditions, extra_params=extra_params)
        per_page = state.get_per_page(schema.pagination.per_page)
        total_rows = self.count(schema, where)
        total_pages = total_pages_for(total_rows, per_page)

        # Pages past the end are clamped to the last page.
        page = min(max(state.get_page(), 1), max(total_pages, 1))
        offset = (page - 1) * per_page

        sql = build_select_sql(
            schema,
            where,
            order_by=state.get_order_by(schema.default_order_by),
            direction=state.get_sort(schema.default_sort),
        )
        rows = self.executor.fetch_all(sql, [*where.params, per_page, offset])

        return TableResult(
            rows=rows,
            page=page,
            per_page=per_page,
            total_rows=total_rows,
            total_pages=total_pages,
            per_page_options=schema.pagination.per_page_options,
        )

    def stream(
        self,
        schema: TableSchema,
        state: ModuleState,
        *,
        batch_rows: int = 500,
        where: Optional[WhereClause] = None,
    ) -> Iterator[dict[str, Any]]:
        """Yield every matching row in listing order, ignoring pagination."""
        where = where if where is not None else build_where(schema, state)
        sql = build_select_sql(
            schema,
            where,
            order_by=state.get_order_by(schema.default_order_by),
            direction=state.get_sort(schema.default_sort),
            paginate=False,
        )
        return self.executor.stream(sql, where.params, batch_rows=batch_rows)


__all__ = [
    "QueryDataSource",
    "TableResult",
    "WhereClause",
    "build_count_sql",
    "build_select_sql",
    "build_where",
    "total_pages_for",
]
