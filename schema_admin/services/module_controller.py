"""
Base controller for declarative admin modules.

A subclass names its ``module_link`` and base ``table_name``, declares its
listing in ``define_table`` and, optionally, its form in ``define_form``. The
controller compiles both schemas once, then serves every module operation:
listing with paging, sorting and filters; create/edit/show forms; audited
store/update/destroy; bulk table actions; and CSV export.

Every operation is gated by the module's capability flags and the current
user's grants. Denial raises ``PermissionDeniedError``. Persistence failures on
mutations are logged and reported as a ``danger`` notice instead of raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Iterator, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from schema_admin.config import Settings, get_settings
from schema_admin.models import Module, User
from schema_admin.schemas.admin import (
    ActionRead,
    ColumnRead,
    DropdownFilterRead,
    FilterFormResponse,
    FilterLinkRead,
    FormFieldRead,
    FormResponse,
    ListingResponse,
    ListingRow,
    NoticeRead,
    OptionRead,
    PaginationRead,
)
from schema_admin.services.audit_logger import AuditContext, AuditLogger
from schema_admin.services.csv_export import iter_csv
from schema_admin.services.form_validation import RuleValidator
from schema_admin.services.module_errors import (
    PermissionDeniedError,
    PersistenceError,
    RecordNotFoundError,
)
from schema_admin.services.module_state import (
    DATE_END_KEY,
    DATE_START_KEY,
    SEARCH_KEY,
    ModuleState,
    ModuleStateStore,
    SqlModuleStateStore,
    dropdown_key,
)
from schema_admin.services.permissions import PermissionStore
from schema_admin.services.schema_builders import FormSchemaBuilder, TableSchemaBuilder
from schema_admin.services.schema_model import (
    ActionDefinition,
    ActionScope,
    ControlType,
    FieldDefinition,
    FormSchema,
    FormType,
    OptionSource,
    SortDirection,
    TableSchema,
)
from schema_admin.services.sql_executor import SqlExecutor
from schema_admin.services.table_actions import TableActionRegistry, default_table_actions
from schema_admin.services.table_data_source import QueryDataSource, TableResult, build_where

logger = logging.getLogger(__name__)

_DATE_PATTERN_RULE = r"regex:^\d{4}-\d{2}-\d{2}"
FILTER_RULES: dict[str, list[str]] = {
    "search": ["max_length:255"],
    "date_start": [_DATE_PATTERN_RULE],
    "date_end": [_DATE_PATTERN_RULE],
}


@dataclass(frozen=True)
class Notice:
    level: str
    message: str


class ModuleController:
    module_link: ClassVar[str] = ""
    table_name: ClassVar[str] = ""
    title: ClassVar[str] = ""

    # Capability flags; a False flag denies the operation for every user.
    has_create: ClassVar[bool] = True
    has_edit: ClassVar[bool] = True
    has_delete: ClassVar[bool] = True
    has_export: ClassVar[bool] = True
    has_show: ClassVar[bool] = True

    validation_messages: ClassVar[dict[str, str]] = {}
    table_actions: ClassVar[TableActionRegistry] = default_table_actions()

    def __init__(
        self,
        db: Session,
        *,
        session_id: str,
        user: Optional[User] = None,
        module: Optional[Module] = None,
        state_store: Optional[ModuleStateStore] = None,
        audit_context: Optional[AuditContext] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        if not self.module_link:
            raise TypeError(f"{type(self).__name__} must define module_link")
        self.db = db
        self.user = user
        self.module = module
        self.settings = settings or get_settings()

        self.table_schema, self.form_schema = self.compile_schemas(self.settings)

        self.executor = SqlExecutor(db)
        self.data_source = QueryDataSource(self.executor)
        self.permission_store = PermissionStore(db)
        self.validator = RuleValidator(self.executor, self.validation_messages)
        self.audit_logger = AuditLogger(
            db,
            audit_context or AuditContext(user_id=user.id if user is not None else None),
            self.settings.audit_sensitive_fields,
        )
        self.state = ModuleState(
            state_store or SqlModuleStateStore(db),
            self.module_link,
            session_id,
            self.table_schema.pagination,
        )
        self.notices: list[Notice] = []
        self.errors: dict[str, list[str]] = {}

        self._ensure_access()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        # Each subclass owns a copy of the inherited action registry.
        if "table_actions" not in cls.__dict__:
            cls.table_actions = cls.table_actions.copy()

    # ------------------------------------------------------------------
    # Declaration hooks
    # ------------------------------------------------------------------

    @classmethod
    def define_table(cls, builder: TableSchemaBuilder) -> None:
        raise NotImplementedError

    @classmethod
    def define_form(cls, builder: FormSchemaBuilder) -> None:
        """Modules without a form leave this empty."""

    @classmethod
    def compile_schemas(cls, settings: Optional[Settings] = None) -> tuple[TableSchema, FormSchema]:
        settings = settings or get_settings()
        table_builder = TableSchemaBuilder(
            cls.table_name,
            per_page=settings.default_per_page,
            per_page_options=settings.per_page_options,
        )
        cls.define_table(table_builder)
        form_builder = FormSchemaBuilder()
        cls.define_form(form_builder)
        return table_builder.build(), form_builder.build()

    # ------------------------------------------------------------------
    # Customisation hooks
    # ------------------------------------------------------------------

    def scope_conditions(self) -> tuple[Sequence[str], Sequence[Any]]:
        """Extra WHERE conditions and params applied to every listing query."""
        return (), ()

    def format_row(self, row: dict[str, Any]) -> dict[str, Any]:
        return row

    def export_row(self, row: dict[str, Any]) -> dict[str, Any]:
        return row

    def form_override(self, record_id: Any, data: dict[str, Any]) -> dict[str, Any]:
        return data

    def validation_rules(self, form_type: FormType) -> dict[str, list[str]]:
        return self.form_schema.validation_rules(form_type)

    def handle_store(self, values: dict[str, Any]) -> Any:
        return self.executor.insert(self.table_schema.table, values, self.table_schema.primary_key_column)

    def handle_update(self, record_id: Any, values: dict[str, Any]) -> bool:
        if not values:
            return True
        return self.executor.update(
            self.table_schema.table, values, self.table_schema.primary_key_column, record_id
        ) > 0

    def handle_destroy(self, record_id: Any) -> bool:
        return self.executor.delete(self.table_schema.table, self.table_schema.primary_key_column, record_id) > 0

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.is_admin

    def _ensure_access(self) -> None:
        if self.user is None:
            raise PermissionDeniedError(self.module_link, "access")
        if self.is_admin:
            return
        if self.module is None or not self.permission_store.has_module_access(self.user.id, self.module.id):
            logger.warning("User %s has no access to module %s", self.user.id, self.module_link)
            raise PermissionDeniedError(self.module_link, "access")

    def has_grant(self, mode: str) -> bool:
        if self.user is None:
            return False
        if self.is_admin:
            return True
        if self.module is None:
            return False
        return self.permission_store.has_module_grant(self.user.id, self.module.id, mode)

    def _is_allowed(self, flag: bool, mode: Optional[str], requires_form: bool) -> bool:
        if not flag:
            return False
        if requires_form and not self.form_schema.has_fields:
            return False
        return mode is None or self.has_grant(mode)

    def can_create(self) -> bool:
        return self._is_allowed(self.has_create, "has_create", True)

    def can_edit(self, record_id: Any) -> bool:
        return self._is_allowed(self.has_edit, "has_edit", True)

    def can_show(self, record_id: Any) -> bool:
        return self._is_allowed(self.has_show, None, True)

    def can_delete(self, record_id: Any) -> bool:
        return self._is_allowed(self.has_delete, "has_delete", False)

    def can_export(self) -> bool:
        return self._is_allowed(self.has_export, "has_export", False)

    def _action_allowed(self, action: ActionDefinition, record_id: Any = None) -> bool:
        if action.scope is ActionScope.ROW:
            if action.name == "show":
                return self.can_show(record_id)
            if action.name == "edit":
                return self.can_edit(record_id)
            if action.name == "delete":
                return self.can_delete(record_id)
        elif action.scope is ActionScope.TOOLBAR:
            if action.name == "create":
                return self.can_create()
            if action.name == "export":
                return self.can_export()
        elif action.scope is ActionScope.BULK and action.name == "delete":
            return self._is_allowed(self.has_delete, "has_delete", False)
        if action.requires_form and not self.form_schema.has_fields:
            return False
        return action.permission is None or self.has_grant(action.permission)

    def _deny(self, operation: str, record_id: Any = None) -> PermissionDeniedError:
        logger.warning(
            "Denied %s%s in module %s for user %s",
            operation,
            f" on record {record_id}" if record_id is not None else "",
            self.module_link,
            self.user.id if self.user is not None else None,
        )
        return PermissionDeniedError(self.module_link, operation, record_id)

    # ------------------------------------------------------------------
    # Notices
    # ------------------------------------------------------------------

    def notify(self, level: str, message: str) -> None:
        self.notices.append(Notice(level, message))

    def notice_models(self) -> list[NoticeRead]:
        return [NoticeRead(level=notice.level, message=notice.message) for notice in self.notices]

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def _where(self, include_filter_link: bool = True):
        extra_conditions, extra_params = self.scope_conditions()
        return build_where(
            self.table_schema,
            self.state,
            include_filter_link=include_filter_link,
            extra_conditions=extra_conditions,
            extra_params=extra_params,
        )

    def fetch(self) -> TableResult:
        extra_conditions, extra_params = self.scope_conditions()
        return self.data_source.fetch(self.table_schema, self.state, extra_conditions, extra_params)

    def _row_id_key(self) -> str:
        schema = self.table_schema
        for column in schema.columns:
            if schema.primary_key in (column.name, column.expression):
                return column.name
        return schema.primary_key_column

    def format_cells(self, row: dict[str, Any]) -> dict[str, Any]:
        formatted = dict(row)
        for column in self.table_schema.columns:
            if column.name in formatted:
                formatted[column.name] = column.format_value(formatted[column.name])
        return formatted

    def _action_models(self, actions: Sequence[ActionDefinition]) -> list[ActionRead]:
        return [
            ActionRead(
                name=action.name,
                label=action.label,
                icon=action.icon,
                requires_form=action.requires_form,
                confirm=action.confirm,
            )
            for action in actions
        ]

    def list(self) -> ListingResponse:
        schema = self.table_schema
        result = self.fetch()
        id_key = self._row_id_key()
        row_actions = [
            action for action in schema.actions_for(ActionScope.ROW)
            if not (action.requires_form and not self.form_schema.has_fields)
        ]

        rows: list[ListingRow] = []
        for raw in result.rows:
            record_id = raw.get(id_key)
            values = self.format_cells(self.format_row(dict(raw)))
            rows.append(
                ListingRow(
                    id=record_id,
                    values=values,
                    actions=[action.name for action in row_actions if self._action_allowed(action, record_id)],
                )
            )

        caption = ""
        if result.total_pages > 1:
            start = (result.page - 1) * result.per_page + 1
            end = min(result.page * result.per_page, result.total_rows)
            caption = f"Showing {start}–{end} of {result.total_rows} results"

        active_link = self.state.get_active_filter_link()
        order_by = self.state.get_order_by(schema.default_order_by)
        return ListingResponse(
            module=self.module_link,
            title=self.module_title(),
            columns=[
                ColumnRead(
                    index=index,
                    name=column.name,
                    label=column.label,
                    sortable=column.sortable,
                    searchable=column.searchable,
                )
                for index, column in enumerate(schema.columns)
            ],
            rows=rows,
            caption=caption,
            order_by=schema.resolve_column_name(order_by),
            sort=self.state.get_sort(schema.default_sort).value,
            pagination=PaginationRead(
                page=result.page,
                per_page=result.per_page,
                per_page_options=list(result.per_page_options),
                total_pages=result.total_pages,
                total_rows=result.total_rows,
                links=schema.pagination.pagination_links,
            ),
            filter_links=[
                FilterLinkRead(index=index, label=link.label, active=index == active_link)
                for index, link in enumerate(schema.filter_links)
            ],
            toolbar_actions=self._action_models(
                [action for action in schema.actions_for(ActionScope.TOOLBAR) if self._action_allowed(action)]
            ),
            row_actions=self._action_models(row_actions),
            bulk_actions=self._action_models(
                [action for action in schema.actions_for(ActionScope.BULK) if self._action_allowed(action)]
            ),
            show_filters=bool(schema.searchable_columns() or schema.date_column or schema.filters),
            has_filters=self.state.has_filters(),
            notices=self.notice_models(),
        )

    def module_title(self) -> str:
        if self.module is not None:
            return self.module.title
        return self.title or self.module_link.replace("-", " ").title()

    def set_page(self, page: int) -> ListingResponse:
        self.state.set_page(page)
        return self.list()

    def set_sort(self, column_index: int) -> ListingResponse:
        column = self.table_schema.column_at(column_index)
        if column is None or not column.sortable:
            return self.list()

        schema = self.table_schema
        current = schema.resolve_column_name(self.state.get_order_by(schema.default_order_by))
        if current == column.name:
            self.state.set_sort(self.state.get_sort(schema.default_sort).flipped())
        else:
            self.state.set_order_by(column.name)
            self.state.set_sort(SortDirection.DESC)
        return self.list()

    def set_per_page(self, count: int) -> ListingResponse:
        if self.state.set_per_page(count):
            self.state.set_page(1)
        return self.list()

    def export_csv(self) -> Iterator[str]:
        if not self.can_export():
            raise self._deny("export")
        logger.info("Exporting module %s for user %s", self.module_link, self.user.id if self.user else None)
        rows = self.data_source.stream(
            self.table_schema,
            self.state,
            batch_rows=self.settings.export_batch_rows,
            where=self._where(),
        )
        return iter_csv(self.table_schema.columns, rows, row_hook=self.export_row)

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def resolve_options(self, source: OptionSource) -> list[OptionRead]:
        if source.is_query:
            return [
                OptionRead(value=row.get("value"), label=str(row.get("label", row.get("value"))))
                for row in self.executor.fetch_all(source.query or "")
            ]
        return [OptionRead(value=option.value, label=option.label) for option in source.static]

    def render_filter_form(self) -> FilterFormResponse:
        schema = self.table_schema
        return FilterFormResponse(
            module=self.module_link,
            show_search=bool(schema.searchable_columns()),
            search=self.state.get_filter(SEARCH_KEY) or "",
            show_date=bool(schema.date_column),
            date_start=self.state.get_filter(DATE_START_KEY) or "",
            date_end=self.state.get_filter(DATE_END_KEY) or "",
            dropdowns=[
                DropdownFilterRead(
                    index=index,
                    column=definition.column,
                    label=definition.label,
                    selected=self.state.get_filter(dropdown_key(index)),
                    options=self.resolve_options(definition.options),
                )
                for index, definition in enumerate(schema.filters)
            ],
            has_filters=self.state.has_filters(),
            errors=dict(self.errors),
            notices=self.notice_models(),
        )

    def filter_set(self, payload: Mapping[str, Any]) -> Optional[ListingResponse]:
        """Apply or clear filters; returns ``None`` when the payload is invalid."""
        outcome = self.validator.validate(FILTER_RULES, payload)
        if not outcome.ok:
            self.errors = outcome.errors
            self.notify("warning", "Validation error")
            return None

        if payload.get("clear"):
            self.state.clear_filters()
        else:
            for key in (SEARCH_KEY, DATE_START_KEY, DATE_END_KEY):
                value = payload.get(key)
                if value is None:
                    continue
                if value == "":
                    self.state.remove_filter(key)
                else:
                    self.state.set_filter(key, value)
            for raw_index, value in (payload.get("dropdowns") or {}).items():
                index = int(raw_index)
                if not 0 <= index < len(self.table_schema.filters):
                    continue
                if value in (None, "", "NULL"):
                    self.state.remove_filter(dropdown_key(index))
                else:
                    self.state.set_filter(dropdown_key(index), str(value))
        self.state.set_page(1)
        return self.list()

    def filter_clear(self) -> ListingResponse:
        self.state.clear_filters()
        self.state.set_page(1)
        return self.list()

    def filter_link_count(self, index: int) -> int:
        link = self.table_schema.filter_link(index)
        if link is None:
            return 0
        where = self._where(include_filter_link=False).extend([f"({link.condition})"])
        return self.data_source.count(self.table_schema, where)

    def set_active_filter_link(self, index: int) -> ListingResponse:
        if self.table_schema.filter_link(index) is not None:
            self.state.set_active_filter_link(index)
            self.state.set_page(1)
        return self.list()

    # ------------------------------------------------------------------
    # Forms
    # ------------------------------------------------------------------

    def _form_record(self, record_id: Any) -> dict[str, Any]:
        sql = (
            f"SELECT {', '.join(self.form_schema.select_expressions())} "
            f"FROM {self.table_schema.table} WHERE {self.table_schema.primary_key} = ?"
        )
        row = self.executor.fetch_one(sql, [record_id])
        if row is None:
            raise RecordNotFoundError(self.module_link, record_id)
        return {definition.name: row.get(definition.name) for definition in self.form_schema.fields}

    def _field_model(
        self,
        definition: FieldDefinition,
        value: Any,
        form_type: FormType,
        rules: Mapping[str, list[str]],
    ) -> FormFieldRead:
        readonly = definition.readonly or form_type is FormType.SHOW
        disabled = definition.disabled or form_type is FormType.SHOW
        field_rules = list(rules.get(definition.name, []))
        return FormFieldRead(
            name=definition.name,
            label=definition.label,
            control=definition.control.value,
            value=value,
            rendered=definition.render_custom(value) if definition.control is ControlType.CUSTOM else None,
            rules=field_rules,
            required="required" in field_rules and not readonly,
            readonly=readonly,
            disabled=disabled,
            options=self.resolve_options(definition.options),
            datalist=list(definition.datalist),
            accept=definition.accept,
        )

    def _form_response(self, record_id: Any, form_type: FormType, data: Mapping[str, Any]) -> FormResponse:
        rules = self.validation_rules(form_type)
        if form_type is FormType.CREATE:
            title, submit = "Create", "Create"
        elif form_type is FormType.EDIT:
            title, submit = f"Edit {record_id}", "Save Changes"
        else:
            title, submit = f"View {record_id}", None
        return FormResponse(
            module=self.module_link,
            form_type=form_type.value,
            record_id=record_id,
            title=title,
            submit_label=submit,
            readonly=form_type is FormType.SHOW,
            fields=[
                self._field_model(definition, data.get(definition.name), form_type, rules)
                for definition in self.form_schema.fields
            ],
            errors=dict(self.errors),
            notices=self.notice_models(),
        )

    def render_create_form(self, submitted: Optional[Mapping[str, Any]] = None) -> FormResponse:
        if not self.can_create():
            raise self._deny("create")
        data = {**self.form_schema.defaults(), **dict(submitted or {})}
        return self._form_response(None, FormType.CREATE, data)

    def render_edit_form(self, record_id: Any, submitted: Optional[Mapping[str, Any]] = None) -> FormResponse:
        if not self.can_edit(record_id):
            raise self._deny("edit", record_id)
        data = self.form_override(record_id, self._form_record(record_id))
        if submitted:
            data.update(submitted)
        return self._form_response(record_id, FormType.EDIT, data)

    def render_show_form(self, record_id: Any) -> FormResponse:
        if not self.can_show(record_id):
            raise self._deny("show", record_id)
        return self._form_response(record_id, FormType.SHOW, self._form_record(record_id))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def massage_payload(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Keep writable declared fields and normalise their values for persistence."""
        massaged: dict[str, Any] = {}
        for definition in self.form_schema.fields:
            if definition.readonly or definition.disabled:
                continue
            if definition.control in (ControlType.FILE, ControlType.IMAGE):
                continue
            if definition.control is ControlType.CHECKBOX:
                raw = values.get(definition.name)
                if isinstance(raw, str):
                    massaged[definition.name] = 0 if raw.strip().lower() in {"", "0", "false", "off", "no"} else 1
                else:
                    massaged[definition.name] = 1 if raw else 0
                continue
            if definition.name not in values:
                continue
            value = values[definition.name]
            massaged[definition.name] = None if value == "NULL" else value
        return massaged

    def _validate(self, form_type: FormType, payload: Mapping[str, Any], record_id: Any = None):
        outcome = self.validator.validate(
            self.validation_rules(form_type),
            payload,
            record_id=record_id,
            primary_key=self.table_schema.primary_key_column,
        )
        if not outcome.ok:
            self.errors = outcome.errors
            self.notify("warning", "Validation error")
        return outcome

    def _fetch_record(self, record_id: Any) -> Optional[dict[str, Any]]:
        return self.executor.fetch_record(
            self.table_schema.table, self.table_schema.primary_key_column, record_id
        )

    def _audit(self, log: Callable[..., Any], record_id: Any, *values: Any) -> None:
        # The mutation is already committed; a failed audit write does not undo it.
        try:
            log(self.table_schema.table, record_id, *values)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Audit write failed for %s #%s in module %s", self.table_schema.table, record_id, self.module_link)

    def store(self, payload: Mapping[str, Any]) -> Any:
        """Create a record; returns its id, or ``None`` on validation or persistence failure."""
        if not self.can_create():
            raise self._deny("create")
        outcome = self._validate(FormType.CREATE, payload)
        if not outcome.ok:
            return None

        values = self.massage_payload(outcome.values or {})
        try:
            record_id = self.handle_store(values)
            if record_id is None:
                self.executor.rollback()
                self.notify("danger", "Create record failed. Check logs.")
                return None
            self.executor.commit()
            new_values = self._fetch_record(record_id) or {}
        except PersistenceError:
            self.executor.rollback()
            logger.exception("Create failed in module %s", self.module_link)
            self.notify("danger", "Create record failed. Check logs.")
            return None

        self._audit(self.audit_logger.log_created, record_id, new_values)
        self.notify("success", "Successfully created record")
        return record_id

    def update(self, record_id: Any, payload: Mapping[str, Any]) -> bool:
        if not self.can_edit(record_id):
            raise self._deny("edit", record_id)
        outcome = self._validate(FormType.EDIT, payload, record_id)
        if not outcome.ok:
            return False

        values = self.massage_payload(outcome.values or {})
        try:
            old_values = self._fetch_record(record_id)
            if old_values is None:
                raise RecordNotFoundError(self.module_link, record_id)
            if not self.handle_update(record_id, values):
                self.executor.rollback()
                self.notify("danger", "Update record failed. Check logs.")
                return False
            self.executor.commit()
            new_values = self._fetch_record(record_id) or {}
        except PersistenceError:
            self.executor.rollback()
            logger.exception("Update of record %s failed in module %s", record_id, self.module_link)
            self.notify("danger", "Update record failed. Check logs.")
            return False

        self._audit(self.audit_logger.log_updated, record_id, old_values, new_values)
        self.notify("success", "Successfully updated record")
        return True

    def destroy(self, record_id: Any) -> bool:
        if not self.can_delete(record_id):
            raise self._deny("delete", record_id)
        return self.perform_destroy(record_id)

    def perform_destroy(self, record_id: Any) -> bool:
        """Delete and audit a record whose permission has already been checked."""
        try:
            old_values = self._fetch_record(record_id)
            if old_values is None:
                raise RecordNotFoundError(self.module_link, record_id)
            if not self.handle_destroy(record_id):
                self.executor.rollback()
                self.notify("danger", "Delete record failed. Check logs.")
                return False
            self.executor.commit()
        except PersistenceError:
            self.executor.rollback()
            logger.exception("Delete of record %s failed in module %s", record_id, self.module_link)
            self.notify("danger", "Delete record failed. Check logs.")
            return False

        self._audit(self.audit_logger.log_deleted, record_id, old_values)
        self.notify("success", "Successfully deleted record")
        return True

    def table_action(self, name: str, ids: Sequence[Any]) -> ListingResponse:
        self.table_actions.dispatch(self, name, ids)
        return self.list()


__all__ = ["FILTER_RULES", "ModuleController", "Notice"]
