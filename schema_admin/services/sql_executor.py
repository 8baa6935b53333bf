from __future__ import annotations

import logging
import re
from typing import Any, Iterator, Mapping, Sequence

from sqlalchemy import column as sa_column
from sqlalchemy import delete, insert, literal_column, select, table as sa_table, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from schema_admin.services.module_errors import PersistenceError

logger = logging.getLogger(__name__)

# Quoted literals are matched first so a "?" inside them is left untouched.
_PLACEHOLDER_PATTERN = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|\?")


def bind_positional(sql: str, params: Sequence[Any]) -> tuple[str, dict[str, Any]]:
    """Rewrite ``?`` placeholders into named binds understood by ``text()``."""
    values = list(params)
    binds: dict[str, Any] = {}

    def _replace(match: re.Match[str]) -> str:
        token = match.group(0)
        if token != "?":
            return token
        index = len(binds)
        if index >= len(values):
            raise ValueError(f"SQL has more placeholders than the {len(values)} parameters supplied.")
        name = f"p{index}"
        binds[name] = values[index]
        return f":{name}"

    rewritten = _PLACEHOLDER_PATTERN.sub(_replace, sql)
    if len(binds) != len(values):
        raise ValueError(f"SQL has {len(binds)} placeholders but {len(values)} parameters were supplied.")
    return rewritten, binds


def _table_clause(name: str, columns: Sequence[str]):
    return sa_table(name, *(sa_column(column_name) for column_name in dict.fromkeys(columns)))


class SqlExecutor:
    """Run parameterized statements for the module engine on a SQLAlchemy session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _execute(self, sql: str, params: Sequence[Any] = (), **execution_options: Any):
        statement, binds = bind_positional(sql, params)
        try:
            if execution_options:
                return self.db.execute(text(statement), binds, execution_options=execution_options)
            return self.db.execute(text(statement), binds)
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        return [dict(row) for row in self._execute(sql, params).mappings().all()]

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        row = self._execute(sql, params).mappings().first()
        return dict(row) if row is not None else None

    def fetch_scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        return self._execute(sql, params).scalar()

    def stream(self, sql: str, params: Sequence[Any] = (), *, batch_rows: int = 500) -> Iterator[dict[str, Any]]:
        """Yield rows one at a time through a server-side cursor where the driver has one."""
        result = self._execute(sql, params, stream_results=True, yield_per=batch_rows)
        try:
            for row in result.mappings():
                yield dict(row)
        finally:
            result.close()

    def insert(self, table_name: str, values: Mapping[str, Any], primary_key: str) -> Any:
        table_clause = _table_clause(table_name, [primary_key, *values.keys()])
        stmt = insert(table_clause).values(**dict(values))
        dialect = self.db.get_bind().dialect
        try:
            if getattr(dialect, "insert_returning", False):
                result = self.db.execute(stmt.returning(table_clause.c[primary_key]))
                return result.scalar_one()
            result = self.db.execute(stmt)
            return result.lastrowid
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc

    def update(self, table_name: str, values: Mapping[str, Any], primary_key: str, record_id: Any) -> int:
        if not values:
            return 0
        table_clause = _table_clause(table_name, [primary_key, *values.keys()])
        stmt = update(table_clause).where(table_clause.c[primary_key] == record_id).values(**dict(values))
        try:
            return self.db.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc

    def delete(self, table_name: str, primary_key: str, record_id: Any) -> int:
        table_clause = _table_clause(table_name, [primary_key])
        stmt = delete(table_clause).where(table_clause.c[primary_key] == record_id)
        try:
            return self.db.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc

    def fetch_record(self, table_name: str, primary_key: str, record_id: Any) -> dict[str, Any] | None:
        """Return the full base-table row, as captured for audit diffs."""
        table_clause = _table_clause(table_name, [primary_key])
        stmt = (
            select(literal_column("*"))
            .select_from(table_clause)
            .where(table_clause.c[primary_key] == record_id)
        )
        try:
            row = self.db.execute(stmt).mappings().first()
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc
        return dict(row) if row is not None else None

    def commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError(str(exc)) from exc

    def rollback(self) -> None:
        self.db.rollback()


__all__ = ["SqlExecutor", "bind_positional"]
