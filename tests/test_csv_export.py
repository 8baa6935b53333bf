from schema_admin.services.csv_export import export_filename, iter_csv, sanitize_cell
from schema_admin.services.schema_builders import TableSchemaBuilder


def _columns(*names: str):
    builder = TableSchemaBuilder("posts")
    for name in names:
        builder.column(name, name)
    return builder.build().columns


def test_export_writes_header_then_rows() -> None:
    rows = [
        {"id": 1, "title": "First"},
        {"id": 2, "title": "Second"},
        {"id": 3, "title": "Third"},
    ]

    document = "".join(iter_csv(_columns("id", "title"), rows))

    assert document == "id,title\n1,First\n2,Second\n3,Third\n"


def test_export_with_no_rows_is_header_only() -> None:
    assert list(iter_csv(_columns("id", "title"), [])) == ["id,title\n"]


def test_formula_cells_are_neutralised() -> None:
    rows = [{"id": 1, "title": "=HYPERLINK(\"http://evil\")"}, {"id": 2, "title": "@SUM(A1)"}]

    lines = "".join(iter_csv(_columns("id", "title"), rows)).splitlines()

    assert lines[1] == "1,\"'=HYPERLINK(\"\"http://evil\"\")\""
    assert lines[2] == "2,'@SUM(A1)"


def test_sanitize_cell() -> None:
    assert sanitize_cell(None) == ""
    assert sanitize_cell("+1 555") == "'+1 555"
    assert sanitize_cell(-5) == "'-5"
    assert sanitize_cell("plain") == "plain"
    assert sanitize_cell(42) == "42"


def test_values_with_delimiters_are_quoted() -> None:
    document = "".join(iter_csv(_columns("title"), [{"title": "a,b"}]))

    assert document == "title\n\"a,b\"\n"


def test_row_hook_rewrites_each_row() -> None:
    def hook(row):
        return {**row, "title": row["title"].upper()}

    document = "".join(iter_csv(_columns("title"), [{"title": "draft"}], row_hook=hook))

    assert document == "title\nDRAFT\n"


def test_export_filename() -> None:
    assert export_filename("users") == "users_export.csv"
    assert export_filename("Sales Report") == "sales_report_export.csv"
