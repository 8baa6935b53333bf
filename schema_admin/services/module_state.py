"""
Per-(module, session) listing state: paging, sorting, the active filter link
and the named filter values (``search``, ``date_start``, ``date_end``,
``dropdowns_<i>``).

State lives in a ``ModuleStateStore`` keyed by ``(module_key, session_id)`` so
two sessions, or two modules in one session, never share it. Concurrent writes
for the same key are last-write-wins.
"""

from __future__ import annotations

import logging
from copy import deepcopy
from threading import Lock
from typing import Any, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from schema_admin.models import ModuleStateRecord
from schema_admin.services.schema_model import PaginationConfig, SortDirection

logger = logging.getLogger(__name__)

SEARCH_KEY = "search"
DATE_START_KEY = "date_start"
DATE_END_KEY = "date_end"
DROPDOWN_KEY_PREFIX = "dropdowns_"


def dropdown_key(index: int) -> str:
    return f"{DROPDOWN_KEY_PREFIX}{index}"


class ModuleStateStore(Protocol):
    def get(self, module_key: str, session_id: str) -> dict[str, Any]:
        ...

    def put(self, module_key: str, session_id: str, data: dict[str, Any]) -> None:
        ...


class MemoryModuleStateStore:
    """Process-local store, suitable for single-worker hosts and tests."""

    def __init__(self) -> None:
        self._data: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = Lock()

    def get(self, module_key: str, session_id: str) -> dict[str, Any]:
        with self._lock:
            return deepcopy(self._data.get((module_key, session_id), {}))

    def put(self, module_key: str, session_id: str, data: dict[str, Any]) -> None:
        with self._lock:
            self._data[(module_key, session_id)] = deepcopy(data)


class SqlModuleStateStore:
    """Persist module state as one JSON document per (module, session) row."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _get_record(self, module_key: str, session_id: str) -> ModuleStateRecord | None:
        stmt = (
            select(ModuleStateRecord)
            .where(
                ModuleStateRecord.module_key == module_key,
                ModuleStateRecord.session_id == session_id,
            )
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def get(self, module_key: str, session_id: str) -> dict[str, Any]:
        record = self._get_record(module_key, session_id)
        return dict(record.data or {}) if record else {}

    def put(self, module_key: str, session_id: str, data: dict[str, Any]) -> None:
        record = self._get_record(module_key, session_id)
        if record:
            record.data = dict(data)
            self.db.commit()
            return

        self.db.add(ModuleStateRecord(module_key=module_key, session_id=session_id, data=dict(data)))
        try:
            self.db.commit()
        except IntegrityError:
            # Another request inserted the row first; overwrite it.
            self.db.rollback()
            logger.info("Module state for %s/%s inserted concurrently; updating", module_key, session_id)
            record = self._get_record(module_key, session_id)
            if record is None:
                raise
            record.data = dict(data)
            self.db.commit()


class ModuleState:
    def __init__(
        self,
        store: ModuleStateStore,
        module_key: str,
        session_id: str,
        pagination: PaginationConfig,
    ) -> None:
        self.store = store
        self.module_key = module_key
        self.session_id = session_id
        self.pagination = pagination

    # Paging

    def get_page(self) -> int:
        return int(self._get("page", 1))

    def set_page(self, page: int) -> None:
        self._set("page", int(page))

    def get_per_page(self, fallback: Optional[int] = None) -> int:
        default = fallback if fallback is not None else self.pagination.per_page
        stored = self._get("per_page", None)
        if stored is None or not self.pagination.allows(int(stored)):
            return default
        return int(stored)

    def set_per_page(self, count: int) -> bool:
        """Store a page size; values outside the allowed list are ignored without error."""
        if not self.pagination.allows(count):
            logger.info(
                "Ignoring page size %s for module %s; allowed values are %s",
                count,
                self.module_key,
                list(self.pagination.per_page_options),
            )
            return False
        self._set("per_page", int(count))
        return True

    # Sorting

    def get_order_by(self, fallback: str) -> str:
        return str(self._get("order_by", fallback))

    def set_order_by(self, column: str) -> None:
        self._set("order_by", column)

    def get_sort(self, fallback: SortDirection | str) -> SortDirection:
        raw = self._get("sort", None)
        try:
            return SortDirection(str(raw).upper()) if raw is not None else SortDirection(fallback)
        except ValueError:
            return SortDirection(fallback)

    def set_sort(self, direction: SortDirection | str) -> None:
        self._set("sort", SortDirection(str(getattr(direction, "value", direction)).upper()).value)

    # Filter links

    def get_active_filter_link(self) -> Optional[int]:
        value = self._get("filter_link", None)
        return int(value) if value is not None else None

    def set_active_filter_link(self, index: Optional[int]) -> None:
        self._set("filter_link", index)

    # Named filters

    def filters(self) -> dict[str, Any]:
        return dict(self._get("filters", {}) or {})

    def get_filter(self, key: str) -> Any:
        return self.filters().get(key)

    def set_filter(self, key: str, value: Any) -> None:
        filters = self.filters()
        filters[key] = value
        self._set("filters", filters)

    def remove_filter(self, key: str) -> None:
        filters = self.filters()
        if key in filters:
            del filters[key]
            self._set("filters", filters)

    def has_filters(self) -> bool:
        if self.get_active_filter_link() is not None:
            return True
        return any(value not in (None, "") for value in self.filters().values())

    def clear_filters(self) -> None:
        """Reset every filter dimension; paging and sorting are left alone."""
        data = self._load()
        data["filters"] = {}
        data["filter_link"] = None
        self.store.put(self.module_key, self.session_id, data)

    # Storage helpers

    def _load(self) -> dict[str, Any]:
        return self.store.get(self.module_key, self.session_id)

    def _get(self, key: str, default: Any) -> Any:
        value = self._load().get(key)
        return default if value is None else value

    def _set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self.store.put(self.module_key, self.session_id, data)


__all__ = [
    "DATE_END_KEY",
    "DATE_START_KEY",
    "DROPDOWN_KEY_PREFIX",
    "MemoryModuleStateStore",
    "ModuleState",
    "ModuleStateStore",
    "SEARCH_KEY",
    "SqlModuleStateStore",
    "dropdown_key",
]
