"""create module engine tables

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "20261017_000001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("role", sa.String(length=50), nullable=False, server_default="standard"),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("surname", sa.String(length=100), nullable=True),
        sa.Column("email", sa.String(length=200), nullable=False, unique=True),
        sa.Column("password", sa.String(length=255), nullable=True),
        *_timestamps(),
    )

    modules_table = op.create_table(
        "modules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("link", sa.String(length=100), nullable=False, unique=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("icon", sa.String(length=100), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("item_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )

    op.create_table(
        "user_permissions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("module_id", sa.Integer(), nullable=False),
        sa.Column("has_create", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_edit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_delete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_export", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["module_id"], ["modules.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "module_id", name="uq_user_permissions_user_module"),
    )

    op.create_table(
        "audits",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("auditable_type", sa.String(length=255), nullable=False),
        sa.Column("auditable_id", sa.Integer(), nullable=False),
        sa.Column("event", sa.String(length=50), nullable=False),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_audits_user_id", "audits", ["user_id"])
    op.create_index("ix_audits_auditable", "audits", ["auditable_type", "auditable_id"])

    op.create_table(
        "module_states",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("module_key", sa.String(length=100), nullable=False),
        sa.Column("session_id", sa.String(length=128), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("module_key", "session_id", name="uq_module_states_module_session"),
    )
    op.create_index("ix_module_states_session_id", "module_states", ["session_id"])

    op.bulk_insert(
        modules_table,
        [
            {"link": "users", "title": "Users", "icon": "bi-people", "enabled": True, "item_order": 10},
            {"link": "audits", "title": "Audits", "icon": "bi-journal-text", "enabled": True, "item_order": 20},
        ],
    )


def downgrade() -> None:
    op.drop_index("ix_module_states_session_id", table_name="module_states")
    op.drop_table("module_states")
    op.drop_index("ix_audits_auditable", table_name="audits")
    op.drop_index("ix_audits_user_id", table_name="audits")
    op.drop_table("audits")
    op.drop_table("user_permissions")
    op.drop_table("modules")
    op.drop_table("users")
