from __future__ import annotations

from typing import Any, Optional

from schema_admin.services.module_controller import ModuleController
from schema_admin.services.schema_builders import FormSchemaBuilder, TableSchemaBuilder

EVENT_OPTIONS = [
    {"value": "created", "label": "Created"},
    {"value": "updated", "label": "Updated"},
    {"value": "deleted", "label": "Deleted"},
]
EVENT_BADGES = {
    "created": "success",
    "updated": "warning",
    "deleted": "danger",
}


def format_event(column: str, value: Optional[str]) -> dict[str, str]:
    """Render an audit event as a badge descriptor."""
    event = value or "unknown"
    return {"label": event.capitalize(), "badge": EVENT_BADGES.get(event, "secondary")}


class AuditsController(ModuleController):
    """Read-only audit trail of every module mutation."""

    module_link = "audits"
    table_name = "audits"
    title = "Audits"

    has_create = False
    has_edit = False
    has_delete = False

    @classmethod
    def define_table(cls, builder: TableSchemaBuilder) -> None:
        (
            builder.primary_key("audits.id")
            .join("LEFT JOIN users ON users.id = audits.user_id")
            .date_column("audits.created_at")
            .default_sort("audits.id", "DESC")
        )

        builder.column("id", "ID", "audits.id").sortable()
        builder.column(
            "user_name",
            "User",
            "COALESCE(users.first_name || ' ' || COALESCE(users.surname, ''), 'System')",
        ).searchable()
        builder.column("auditable_type", "Type", "audits.auditable_type").searchable()
        builder.column("auditable_id", "Record ID", "audits.auditable_id")
        builder.column("event", "Event", "audits.event").sortable().format_using(format_event)
        builder.column("ip_address", "IP", "audits.ip_address").searchable()
        builder.column("created_at", "Created", "audits.created_at").sortable().format("datetime")

        builder.filter("event", "audits.event").label("Event").options(EVENT_OPTIONS)
        builder.filter("user", "audits.user_id").label("User").options_from(
            "SELECT id AS value, first_name || ' ' || COALESCE(surname, '') AS label FROM users ORDER BY label"
        )

        builder.filter_link("Created", "audits.event = 'created'")
        builder.filter_link("Updated", "audits.event = 'updated'")
        builder.filter_link("Deleted", "audits.event = 'deleted'")

        builder.row_action("show")
        builder.toolbar_action("export")

    @classmethod
    def define_form(cls, builder: FormSchemaBuilder) -> None:
        builder.field("auditable_type", "Type").readonly()
        builder.field("auditable_id", "Record ID").readonly()
        builder.field("event", "Event").readonly()
        builder.field("user_id", "User ID").readonly()
        builder.field("old_values", "Old values").readonly()
        builder.field("new_values", "New values").readonly()
        builder.field("ip_address", "IP").readonly()
        builder.field("user_agent", "User agent").readonly()
        builder.field("created_at", "Created").readonly()

    def export_row(self, row: dict[str, Any]) -> dict[str, Any]:
        row = dict(row)
        row["user_name"] = (row.get("user_name") or "System").strip() or "System"
        return row
