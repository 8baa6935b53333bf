from __future__ import annotations

from typing import Any

from schema_admin.services.module_controller import ModuleController
from schema_admin.services.passwords import hash_password
from schema_admin.services.schema_builders import FormSchemaBuilder, TableSchemaBuilder

ROLE_OPTIONS = [
    {"value": "standard", "label": "Standard"},
    {"value": "admin", "label": "Admin"},
]
PASSWORD_PATTERN = r"^(?=.*[A-Z])(?=.*\W)(?=.*\d).+$"


class UsersController(ModuleController):
    module_link = "users"
    table_name = "users"
    title = "Users"

    validation_messages = {
        "password.min_length": "Must be at least 10 characters",
        "password.regex": "Must contain 1 upper case, 1 digit, 1 symbol",
        "password_match.match": "Password does not match",
    }

    @classmethod
    def define_table(cls, builder: TableSchemaBuilder) -> None:
        builder.default_sort("id", "DESC")

        builder.column("id", "ID").sortable()
        builder.column("role", "Role").sortable()
        builder.column("name", "Name", "first_name || ' ' || COALESCE(surname, '')").sortable().searchable()
        builder.column("email", "Email").sortable().searchable()
        builder.column("created_at", "Created").sortable().format("datetime")

        builder.filter("role", "role").label("Role").options(ROLE_OPTIONS)

        builder.row_action("show")
        builder.row_action("edit")
        builder.row_action("delete")
        builder.toolbar_action("create")
        builder.toolbar_action("export")
        builder.bulk_action("delete", "Delete")

    @classmethod
    def define_form(cls, builder: FormSchemaBuilder) -> None:
        builder.field("role", "Role").dropdown().options(ROLE_OPTIONS).rules(["required", "in:standard,admin"])
        builder.field("first_name", "First Name").text().rules(["required", "max_length:100"])
        builder.field("surname", "Surname").text().rules(["max_length:100"])
        builder.field("email", "Email").email().rules(["required", "email", "unique:users"])
        builder.field("password", "Password", "'' AS password").password().required_on_create().rules(
            ["required", "min_length:10", f"regex:{PASSWORD_PATTERN}"]
        )
        builder.field("password_match", "Password (again)", "'' AS password_match").password().required_on_create().rules(
            ["required", "match:password"]
        )

    def can_delete(self, record_id: Any) -> bool:
        # Users may not delete their own account.
        if self.user is not None and str(record_id) == str(self.user.id):
            return False
        return super().can_delete(record_id)

    def handle_store(self, values: dict[str, Any]) -> Any:
        values = dict(values)
        values.pop("password_match", None)
        values["password"] = hash_password(values["password"])
        return super().handle_store(values)

    def handle_update(self, record_id: Any, values: dict[str, Any]) -> bool:
        values = dict(values)
        values.pop("password_match", None)
        if values.get("password"):
            values["password"] = hash_password(values["password"])
        else:
            values.pop("password", None)
        return super().handle_update(record_id, values)
