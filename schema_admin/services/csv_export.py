from __future__ import annotations

import csv
from io import StringIO
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Sequence

from schema_admin.services.schema_model import ColumnDefinition

RowHook = Callable[[dict[str, Any]], dict[str, Any]]

# Leading characters a spreadsheet would evaluate as a formula.
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def sanitize_cell(value: Any) -> str:
    if value is None:
        return ""
    text = str(value)
    if text.startswith(FORMULA_PREFIXES):
        return "'" + text
    return text


def export_filename(module_key: str) -> str:
    sanitized = "".join(ch if ch.isalnum() or ch in {"_", "-"} else "_" for ch in module_key.lower())
    return f"{sanitized or 'module'}_export.csv"


def iter_csv(
    columns: Sequence[ColumnDefinition],
    rows: Iterable[Mapping[str, Any]],
    row_hook: Optional[RowHook] = None,
) -> Iterator[str]:
    """Yield a CSV document one line at a time: a header of labels, then one line per row."""
    buffer = StringIO()
    writer = csv.writer(buffer, lineterminator="\n")

    def _flush() -> str:
        chunk = buffer.getvalue()
        buffer.seek(0)
        buffer.truncate(0)
        return chunk

    writer.writerow([sanitize_cell(column.label) for column in columns])
    yield _flush()

    for row in rows:
        data = dict(row)
        if row_hook is not None:
            data = row_hook(data)
        writer.writerow([sanitize_cell(data.get(column.name)) for column in columns])
        yield _flush()


__all__ = ["FORMULA_PREFIXES", "export_filename", "iter_csv", "sanitize_cell"]
