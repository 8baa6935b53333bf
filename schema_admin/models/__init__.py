from schema_admin.models.entities import (
    Audit,
    Module,
    ModuleStateRecord,
    TimestampMixin,
    User,
    UserPermission,
)

__all__ = [
    "Audit",
    "Module",
    "ModuleStateRecord",
    "TimestampMixin",
    "User",
    "UserPermission",
]
