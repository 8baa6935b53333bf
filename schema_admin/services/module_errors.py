from __future__ import annotations


class ModuleError(Exception):
    """Base class for errors raised by the module engine."""


class ConfigurationError(ModuleError):
    """Raised when a module schema is structurally invalid or does not match the database."""


class PermissionDeniedError(ModuleError):
    """Raised when the current user may not perform an operation on a module."""

    def __init__(self, module_key: str, operation: str, record_id: int | None = None) -> None:
        self.module_key = module_key
        self.operation = operation
        self.record_id = record_id
        target = f" on record {record_id}" if record_id is not None else ""
        super().__init__(f"Permission denied: {operation}{target} in module '{module_key}'.")


class UnknownModuleError(ModuleError):
    """Raised when a module link is unknown, unregistered or disabled."""


class RecordNotFoundError(ModuleError):
    """Raised when a record cannot be located in a module's base table."""

    def __init__(self, module_key: str, record_id: int) -> None:
        self.module_key = module_key
        self.record_id = record_id
        super().__init__(f"Record {record_id} not found in module '{module_key}'.")


class PersistenceError(ModuleError):
    """Raised when the underlying database rejects a statement."""


__all__ = [
    "ConfigurationError",
    "ModuleError",
    "UnknownModuleError",
    "PermissionDeniedError",
    "PersistenceError",
    "RecordNotFoundError",
]
