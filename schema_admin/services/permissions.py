from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from schema_admin.models import UserPermission

GRANT_MODES = ("has_create", "has_edit", "has_delete", "has_export")


class PermissionStore:
    """Per-user module grants backed by the ``user_permissions`` table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _get_permission(self, user_id: int, module_id: int) -> Optional[UserPermission]:
        stmt = (
            select(UserPermission)
            .where(UserPermission.user_id == user_id, UserPermission.module_id == module_id)
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def has_module_access(self, user_id: Optional[int], module_id: int) -> bool:
        if user_id is None:
            return False
        return self._get_permission(user_id, module_id) is not None

    def has_module_grant(self, user_id: Optional[int], module_id: int, mode: str) -> bool:
        if mode not in GRANT_MODES:
            raise ValueError(f"Unknown permission mode '{mode}'. Expected one of {', '.join(GRANT_MODES)}.")
        if user_id is None:
            return False
        permission = self._get_permission(user_id, module_id)
        return bool(permission is not None and getattr(permission, mode))


__all__ = ["GRANT_MODES", "PermissionStore"]
