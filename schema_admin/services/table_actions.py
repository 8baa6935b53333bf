"""
Registry of table actions applied to selected rows.

A handler receives the controller and one record id and returns whether it
succeeded; handlers report their own notices through the controller.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional

from schema_admin.services.module_errors import RecordNotFoundError

if TYPE_CHECKING:
    from schema_admin.services.module_controller import ModuleController

logger = logging.getLogger(__name__)

TableActionHandler = Callable[["ModuleController", Any], bool]


def delete_record(controller: "ModuleController", record_id: Any) -> bool:
    if not controller.can_delete(record_id):
        controller.notify("warning", f"Cannot delete record {record_id}")
        return False
    try:
        return controller.perform_destroy(record_id)
    except RecordNotFoundError:
        controller.notify("warning", f"Record {record_id} no longer exists")
        return False


class TableActionRegistry:
    def __init__(self, handlers: Optional[dict[str, TableActionHandler]] = None) -> None:
        self._handlers: dict[str, TableActionHandler] = dict(handlers or {})

    def register(self, name: str, handler: TableActionHandler) -> "TableActionRegistry":
        self._handlers[name] = handler
        return self

    def with_action(self, name: str, handler: TableActionHandler) -> "TableActionRegistry":
        """Return a copy with ``name`` registered, leaving this registry untouched."""
        return self.copy().register(name, handler)

    def copy(self) -> "TableActionRegistry":
        return TableActionRegistry(self._handlers)

    def get(self, name: str) -> Optional[TableActionHandler]:
        return self._handlers.get(name)

    def names(self) -> list[str]:
        return list(self._handlers)

    def dispatch(self, controller: "ModuleController", name: str, ids: Iterable[Any]) -> dict[Any, bool]:
        handler = self.get(name)
        if handler is None:
            logger.warning("Unknown table action '%s' for module %s", name, controller.module_link)
            controller.notify("warning", "Unknown action")
            return {}
        return {record_id: handler(controller, record_id) for record_id in ids}


def default_table_actions() -> TableActionRegistry:
    return TableActionRegistry({"delete": delete_record})


__all__ = ["TableActionHandler", "TableActionRegistry", "default_table_actions", "delete_record"]
