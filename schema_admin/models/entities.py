from datetime import datetime, timezone
from typing import Any, Optional

import sqlalchemy as sa
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from schema_admin.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=sa.func.now(),
        onupdate=_utcnow,
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="standard")
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    surname: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    password: Mapped[str | None] = mapped_column(String(255), nullable=True)

    permissions: Mapped[list["UserPermission"]] = relationship(
        "UserPermission",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_admin(self) -> bool:
        return (self.role or "").lower() == "admin"

    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.surname) if part)


class Module(Base, TimestampMixin):
    __tablename__ = "modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    link: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    icon: Mapped[str | None] = mapped_column(String(100), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    item_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    permissions: Mapped[list["UserPermission"]] = relationship(
        "UserPermission",
        back_populates="module",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class UserPermission(Base, TimestampMixin):
    __tablename__ = "user_permissions"
    __table_args__ = (sa.UniqueConstraint("user_id", "module_id", name="uq_user_permissions_user_module"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    module_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("modules.id", ondelete="CASCADE"), nullable=False
    )
    has_create: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_edit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_delete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_export: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    user: Mapped[User] = relationship("User", back_populates="permissions")
    module: Mapped[Module] = relationship("Module", back_populates="permissions")


class Audit(Base, TimestampMixin):
    __tablename__ = "audits"
    __table_args__ = (sa.Index("ix_audits_auditable", "auditable_type", "auditable_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    auditable_type: Mapped[str] = mapped_column(String(255), nullable=False)
    auditable_id: Mapped[int] = mapped_column(Integer, nullable=False)
    event: Mapped[str] = mapped_column(String(50), nullable=False)
    old_values: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    new_values: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user: Mapped[Optional[User]] = relationship("User")


class ModuleStateRecord(Base):
    __tablename__ = "module_states"
    __table_args__ = (
        sa.UniqueConstraint("module_key", "session_id", name="uq_module_states_module_session"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_key: Mapped[str] = mapped_column(String(100), nullable=False)
    session_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
