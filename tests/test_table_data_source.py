from collections.abc import Generator

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from schema_admin.services.module_state import (
    DATE_END_KEY,
    DATE_START_KEY,
    SEARCH_KEY,
    MemoryModuleStateStore,
    ModuleState,
    dropdown_key,
)
from schema_admin.services.schema_builders import TableSchemaBuilder
from schema_admin.services.schema_model import SortDirection
from schema_admin.services.sql_executor import SqlExecutor, bind_positional
from schema_admin.services.table_data_source import (
    QueryDataSource,
    WhereClause,
    build_count_sql,
    build_select_sql,
    build_where,
    total_pages_for,
)


def _state(schema, store=None) -> ModuleState:
    return ModuleState(store or MemoryModuleStateStore(), "items", "session-a", schema.pagination)


def _items_schema():
    builder = TableSchemaBuilder("items").date_column("created_on")
    builder.column("id", "ID").sortable()
    builder.column("title", "Title").sortable().searchable()
    builder.column("status", "Status")
    builder.filter("status", "status")
    builder.filter_link("Open", "status = 'open'")
    builder.filter_link("Closed", "status = 'closed'")
    return builder.build()


@pytest.fixture()
def items_table(db_session: Session) -> Generator[Session, None, None]:
    db_session.execute(
        text(
            "CREATE TABLE IF NOT EXISTS items ("
            "id INTEGER PRIMARY KEY, title VARCHAR(100), status VARCHAR(20), created_on VARCHAR(10))"
        )
    )
    db_session.execute(text("DELETE FROM items"))
    for number in range(1, 16):
        db_session.execute(
            text("INSERT INTO items (id, title, status, created_on) VALUES (:id, :title, :status, :created_on)"),
            {
                "id": number,
                "title": f"Item {number:02d}",
                "status": "open" if number % 3 else "closed",
                "created_on": f"2024-01-{number:02d}",
            },
        )
    db_session.commit()
    try:
        yield db_session
    finally:
        db_session.execute(text("DROP TABLE IF EXISTS items"))
        db_session.commit()


def test_search_uses_like_with_wildcards() -> None:
    builder = TableSchemaBuilder("users")
    builder.column("email").searchable()
    schema = builder.build()
    state = _state(schema)
    state.set_filter(SEARCH_KEY, "alice")

    where = build_where(schema, state)

    assert "(email LIKE ?)" in where.sql()
    assert where.params == ("%alice%",)


def test_dropdown_filter_binds_selected_value() -> None:
    builder = TableSchemaBuilder("orders")
    builder.column("status")
    builder.filter("status", "status").options([{"value": "pending", "label": "Pending"}])
    schema = builder.build()
    state = _state(schema)
    state.set_filter(dropdown_key(0), "pending")

    where = build_where(schema, state)

    assert "status = ?" in where.sql()
    assert where.params == ("pending",)


def test_conditions_follow_fixed_order() -> None:
    schema = _items_schema()
    state = _state(schema)
    state.set_filter(dropdown_key(0), "open")
    state.set_filter(DATE_END_KEY, "2024-01-31")
    state.set_filter(DATE_START_KEY, "2024-01-01")
    state.set_filter(SEARCH_KEY, "Item")
    state.set_active_filter_link(1)

    where = build_where(schema, state, extra_conditions=["id > ?"], extra_params=[0])

    assert where.conditions == (
        "(status = 'closed')",
        "((title LIKE ?))",
        "created_on BETWEEN ? AND ?",
        "status = ?",
        "id > ?",
    )
    assert where.params == ("%Item%", "2024-01-01", "2024-01-31", "open", 0)


def test_same_state_yields_identical_sql() -> None:
    schema = _items_schema()
    state = _state(schema)
    state.set_active_filter_link(0)
    state.set_filter(SEARCH_KEY, "Item")

    first = build_where(schema, state)
    second = build_where(schema, state)

    assert first.sql() == second.sql()
    assert first.params == second.params


def test_open_ended_date_ranges() -> None:
    schema = _items_schema()
    state = _state(schema)
    state.set_filter(DATE_START_KEY, "2024-01-05")
    assert build_where(schema, state).conditions == ("created_on >= ?",)

    state.remove_filter(DATE_START_KEY)
    state.set_filter(DATE_END_KEY, "2024-01-05")
    assert build_where(schema, state).conditions == ("created_on <= ?",)


def test_empty_dropdown_and_undeclared_link_are_ignored() -> None:
    schema = _items_schema()
    state = _state(schema)
    state.set_filter(dropdown_key(0), "")
    state.set_active_filter_link(9)

    assert build_where(schema, state) == WhereClause()
    assert build_where(schema, state).sql() == ""


def test_select_sql_only_orders_by_known_columns() -> None:
    schema = _items_schema()
    sql = build_select_sql(
        schema,
        WhereClause(),
        order_by="title; DROP TABLE items",
        direction=SortDirection.ASC,
    )

    assert sql == "SELECT id, title, status FROM items ORDER BY id ASC LIMIT ? OFFSET ?"
    assert build_count_sql(schema, WhereClause(("status = ?",), ("open",))) == (
        "SELECT COUNT(*) AS cnt FROM items WHERE status = ?"
    )


def test_select_sql_prepends_missing_primary_key() -> None:
    builder = TableSchemaBuilder("items")
    builder.column("title")
    sql = build_select_sql(
        builder.build(), WhereClause(), order_by="title", direction=SortDirection.DESC, paginate=False
    )

    assert sql == "SELECT id, title FROM items ORDER BY title DESC"


def test_total_pages_rounds_up() -> None:
    assert total_pages_for(0, 10) == 0
    assert total_pages_for(10, 10) == 1
    assert total_pages_for(11, 10) == 2


def test_bind_positional_skips_quoted_question_marks() -> None:
    sql, binds = bind_positional("SELECT '?' AS q FROM t WHERE a = ? AND b = ?", ["x", 2])

    assert sql == "SELECT '?' AS q FROM t WHERE a = :p0 AND b = :p1"
    assert binds == {"p0": "x", "p1": 2}

    with pytest.raises(ValueError):
        bind_positional("SELECT 1 WHERE a = ?", [])


def test_fetch_clamps_page_to_last(items_table: Session) -> None:
    schema = _items_schema()
    state = _state(schema)
    state.set_page(5)

    result = QueryDataSource(SqlExecutor(items_table)).fetch(schema, state)

    assert result.total_rows == 15
    assert result.total_pages == 2
    assert result.page == 2
    assert len(result.rows) == 5
    assert result.per_page_options == (10, 25, 50, 100)


def test_fetch_applies_filters_and_sorting(items_table: Session) -> None:
    schema = _items_schema()
    state = _state(schema)
    state.set_active_filter_link(1)
    state.set_order_by("title")
    state.set_sort(SortDirection.ASC)

    result = QueryDataSource(SqlExecutor(items_table)).fetch(schema, state)

    assert result.total_rows == 5
    assert [row["title"] for row in result.rows] == ["Item 03", "Item 06", "Item 09", "Item 12", "Item 15"]


def test_fetch_with_no_matches(items_table: Session) -> None:
    schema = _items_schema()
    state = _state(schema)
    state.set_filter(SEARCH_KEY, "nothing like this")
    state.set_page(3)

    result = QueryDataSource(SqlExecutor(items_table)).fetch(schema, state)

    assert result.rows == []
    assert result.total_rows == 0
    assert result.total_pages == 0
    assert result.page == 1


def test_stream_ignores_pagination(items_table: Session) -> None:
    schema = _items_schema()
    state = _state(schema)
    state.set_per_page(10)

    rows = list(QueryDataSource(SqlExecutor(items_table)).stream(schema, state, batch_rows=4))

    assert len(rows) == 15
    assert rows[0]["id"] == 15
