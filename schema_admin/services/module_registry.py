from __future__ import annotations

import logging
import re
from typing import Optional, TypeVar

from sqlalchemy import inspect, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session

from schema_admin.config import Settings
from schema_admin.models import Module, User
from schema_admin.services.audit_logger import AuditContext
from schema_admin.services.module_controller import ModuleController
from schema_admin.services.module_errors import ConfigurationError, UnknownModuleError
from schema_admin.services.module_state import ModuleStateStore
from schema_admin.services.permissions import PermissionStore

logger = logging.getLogger(__name__)

ControllerType = TypeVar("ControllerType", bound=type[ModuleController])

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_JOINED_TABLE = re.compile(r"\bJOIN\s+([A-Za-z_][A-Za-z0-9_]*)", re.IGNORECASE)


class ModuleNotRegisteredError(UnknownModuleError):
    """Raised when a module row exists but no controller declares its link."""


class ModuleRegistry:
    """Maps module links to controller classes."""

    def __init__(self) -> None:
        self._controllers: dict[str, type[ModuleController]] = {}

    def register(self, controller_cls: ControllerType) -> ControllerType:
        link = controller_cls.module_link
        if not link:
            raise ConfigurationError(f"{controller_cls.__name__} must define module_link.")
        existing = self._controllers.get(link)
        if existing is not None and existing is not controller_cls:
            raise ConfigurationError(f"Module link '{link}' is already registered by {existing.__name__}.")
        self._controllers[link] = controller_cls
        return controller_cls

    def links(self) -> list[str]:
        return list(self._controllers)

    def controllers(self) -> list[type[ModuleController]]:
        return list(self._controllers.values())

    def controller_class(self, link: str) -> type[ModuleController]:
        try:
            return self._controllers[link]
        except KeyError:
            raise ModuleNotRegisteredError(f"No module is registered under '{link}'.") from None

    def require_module(self, db: Session, link: str) -> Module:
        self.controller_class(link)
        stmt = select(Module).where(Module.link == link, Module.enabled.is_(True)).limit(1)
        module = db.execute(stmt).scalars().first()
        if module is None:
            raise UnknownModuleError(f"Module '{link}' does not exist or is disabled.")
        return module

    def create(
        self,
        db: Session,
        link: str,
        *,
        session_id: str,
        user: Optional[User],
        state_store: Optional[ModuleStateStore] = None,
        audit_context: Optional[AuditContext] = None,
        settings: Optional[Settings] = None,
    ) -> ModuleController:
        module = self.require_module(db, link)
        controller_cls = self.controller_class(link)
        return controller_cls(
            db,
            session_id=session_id,
            user=user,
            module=module,
            state_store=state_store,
            audit_context=audit_context,
            settings=settings,
        )

    def modules_for(self, db: Session, user: Optional[User]) -> list[Module]:
        """Enabled, registered modules the user may open, in sidebar order."""
        if user is None:
            return []
        stmt = (
            select(Module)
            .where(Module.enabled.is_(True), Module.link.in_(self.links()))
            .order_by(Module.item_order, Module.title)
        )
        modules = list(db.execute(stmt).scalars().all())
        if user.is_admin:
            return modules
        permissions = PermissionStore(db)
        return [module for module in modules if permissions.has_module_access(user.id, module.id)]


def verify_module_schema(
    bind: Engine | Connection,
    controller_cls: type[ModuleController],
    settings: Optional[Settings] = None,
) -> None:
    """Fail fast when a module references a table or plain column the database lacks."""
    table_schema, form_schema = controller_cls.compile_schemas(settings)
    inspector = inspect(bind)
    label = f"module '{controller_cls.module_link}'"

    if not inspector.has_table(table_schema.table):
        raise ConfigurationError(f"Table '{table_schema.table}' used by {label} does not exist.")
    base_columns = {column["name"] for column in inspector.get_columns(table_schema.table)}

    known_columns = set(base_columns)
    for clause in table_schema.joins:
        for joined in _JOINED_TABLE.findall(clause):
            if not inspector.has_table(joined):
                raise ConfigurationError(f"Joined table '{joined}' used by {label} does not exist.")
            known_columns.update(column["name"] for column in inspector.get_columns(joined))

    if table_schema.primary_key_column not in base_columns:
        raise ConfigurationError(
            f"Primary key '{table_schema.primary_key}' of {label} is not a column of '{table_schema.table}'."
        )

    for column in table_schema.columns:
        if column.expression is None and _IDENTIFIER.match(column.name) and column.name not in known_columns:
            raise ConfigurationError(f"Column '{column.name}' of {label} does not exist.")

    if table_schema.date_column:
        date_column = table_schema.date_column.rsplit(".", 1)[-1]
        if date_column not in known_columns:
            raise ConfigurationError(f"Date column '{table_schema.date_column}' of {label} does not exist.")

    for definition in form_schema.fields:
        if definition.expression is None and definition.name not in base_columns:
            raise ConfigurationError(
                f"Form field '{definition.name}' of {label} is not a column of '{table_schema.table}'."
            )

    logger.debug("Verified schema of %s against table %s", label, table_schema.table)


def verify_registered_modules(bind: Engine | Connection, registry: ModuleRegistry, settings: Optional[Settings] = None) -> None:
    for controller_cls in registry.controllers():
        verify_module_schema(bind, controller_cls, settings)


module_registry = ModuleRegistry()


__all__ = [
    "ModuleNotRegisteredError",
    "ModuleRegistry",
    "module_registry",
    "verify_module_schema",
    "verify_registered_modules",
]
