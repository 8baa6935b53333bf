"""
Fluent builders that accumulate module declarations and compile them into the
immutable schema model.

Scalar setters follow "last call wins"; ``column``/``filter``/``filter_link``/
``*_action``/``field`` append in declaration order. ``build()`` is pure and
returns a fresh snapshot on every call.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Sequence

from schema_admin.services.module_errors import ConfigurationError
from schema_admin.services.schema_model import (
    ActionDefinition,
    ActionScope,
    CellCallback,
    CellFormatter,
    ColumnDefinition,
    ControlCallback,
    ControlType,
    FieldDefinition,
    FilterDefinition,
    FilterLinkDefinition,
    FormSchema,
    NamedFormat,
    Option,
    OptionSource,
    PaginationConfig,
    SortDirection,
    TableSchema,
    options_from_mappings,
)

DEFAULT_PER_PAGE = 10
DEFAULT_PER_PAGE_OPTIONS = (10, 25, 50, 100)

# name -> (label, icon, permission, requires_form, confirm)
_ROW_ACTION_DEFAULTS: dict[str, tuple[str, str, Optional[str], bool, Optional[str]]] = {
    "show": ("View", "bi-eye", None, True, None),
    "edit": ("Edit", "bi-pencil", "has_edit", True, None),
    "delete": ("Delete", "bi-trash", "has_delete", False, "Please confirm deletion"),
}
_TOOLBAR_ACTION_DEFAULTS: dict[str, tuple[str, str, Optional[str], bool, Optional[str]]] = {
    "create": ("New", "bi-plus-square", "has_create", True, None),
    "export": ("Export", "bi-download", "has_export", False, None),
}
_BULK_ACTION_DEFAULTS: dict[str, tuple[str, str, Optional[str], bool, Optional[str]]] = {
    "delete": ("Delete", "bi-trash", "has_delete", False, "Please confirm deletion"),
}


def humanize(name: str) -> str:
    text = name.replace("_", " ")
    return text[:1].upper() + text[1:]


def _coerce_options(options: Iterable[Option | Mapping[str, Any]]) -> tuple[Option, ...]:
    converted: list[Option] = []
    for option in options:
        if isinstance(option, Option):
            converted.append(option)
        else:
            converted.extend(options_from_mappings([option]))
    return tuple(converted)


def _ensure_unique(names: Sequence[str], kind: str) -> None:
    seen: set[str] = set()
    for name in names:
        if name in seen:
            raise ConfigurationError(f"Duplicate {kind} name '{name}' in module schema.")
        seen.add(name)


class TableColumnBuilder:
    def __init__(self, name: str, label: Optional[str] = None, expression: Optional[str] = None) -> None:
        if not name:
            raise ConfigurationError("Columns must have a name.")
        self._name = name
        self._label = label or humanize(name)
        self._expression = expression
        self._sortable = False
        self._searchable = False
        self._formatter: Optional[CellFormatter] = None

    def sortable(self, enabled: bool = True) -> "TableColumnBuilder":
        self._sortable = enabled
        return self

    def searchable(self, enabled: bool = True) -> "TableColumnBuilder":
        self._searchable = enabled
        return self

    def format(self, fmt: str | NamedFormat) -> "TableColumnBuilder":
        """Use a built-in formatter: ``check``, ``date`` or ``datetime``."""
        try:
            named = NamedFormat(fmt)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown column format '{fmt}' on column '{self._name}'.") from exc
        self._formatter = CellFormatter.named_format(named)
        return self

    def format_using(self, formatter: CellCallback) -> "TableColumnBuilder":
        """Use a custom formatter ``fn(column, value) -> value``."""
        self._formatter = CellFormatter.custom(formatter)
        return self

    def build(self) -> ColumnDefinition:
        return ColumnDefinition(
            name=self._name,
            label=self._label,
            expression=self._expression,
            sortable=self._sortable,
            searchable=self._searchable,
            formatter=self._formatter,
        )


class TableFilterBuilder:
    def __init__(self, name: str, column: str) -> None:
        self._name = name
        self._column = column
        self._label = humanize(name)
        self._options: tuple[Option, ...] = ()
        self._options_query: Optional[str] = None

    def label(self, label: str) -> "TableFilterBuilder":
        self._label = label
        return self

    def options(self, options: Iterable[Option | Mapping[str, Any]]) -> "TableFilterBuilder":
        """Static options: ``[{"value": "admin", "label": "Admin"}, ...]``."""
        self._options = _coerce_options(options)
        self._options_query = None
        return self

    def options_from(self, query: str) -> "TableFilterBuilder":
        """Options from SQL selecting ``value`` and ``label`` columns."""
        self._options_query = query
        self._options = ()
        return self

    def build(self) -> FilterDefinition:
        return FilterDefinition(
            name=self._name,
            column=self._column,
            label=self._label,
            options=OptionSource(static=self._options, query=self._options_query),
        )


class ActionBuilder:
    def __init__(self, name: str, scope: ActionScope, label: Optional[str] = None) -> None:
        defaults = {
            ActionScope.ROW: _ROW_ACTION_DEFAULTS,
            ActionScope.TOOLBAR: _TOOLBAR_ACTION_DEFAULTS,
            ActionScope.BULK: _BULK_ACTION_DEFAULTS,
        }[scope]
        default_label, icon, permission, requires_form, confirm = defaults.get(
            name, (humanize(name), "bi-gear", None, False, None)
        )
        self._name = name
        self._scope = scope
        self._label = label or default_label
        self._icon = icon
        self._permission = permission
        self._requires_form = requires_form
        self._confirm = confirm

    def label(self, label: str) -> "ActionBuilder":
        self._label = label
        return self

    def icon(self, icon: str) -> "ActionBuilder":
        self._icon = icon
        return self

    def permission(self, permission: Optional[str]) -> "ActionBuilder":
        self._permission = permission
        return self

    def requires_form(self, requires: bool = True) -> "ActionBuilder":
        self._requires_form = requires
        return self

    def confirm(self, message: Optional[str]) -> "ActionBuilder":
        self._confirm = message
        return self

    def build(self) -> ActionDefinition:
        return ActionDefinition(
            name=self._name,
            label=self._label,
            scope=self._scope,
            icon=self._icon,
            requires_form=self._requires_form,
            permission=self._permission,
            confirm=self._confirm,
        )


class TableSchemaBuilder:
    """Accumulates a module's listing declaration.

    Usage::

        builder.column("email", "Email").sortable().searchable()
        builder.column("name", "Name", "first_name || ' ' || surname")
        builder.join("LEFT JOIN users ON users.id = audits.user_id")
        builder.filter("role", "role").options([{"value": "admin", "label": "Admin"}])
        builder.filter_link("Created", "audits.event = 'created'")
    """

    def __init__(
        self,
        table: str,
        *,
        per_page: int = DEFAULT_PER_PAGE,
        per_page_options: Sequence[int] = DEFAULT_PER_PAGE_OPTIONS,
    ) -> None:
        self._table = table
        self._primary_key = "id"
        self._columns: list[TableColumnBuilder] = []
        self._filters: list[TableFilterBuilder] = []
        self._filter_links: list[tuple[str, str]] = []
        self._actions: list[ActionBuilder] = []
        self._joins: list[str] = []
        self._default_order_by = "id"
        self._default_sort = SortDirection.DESC
        self._date_column: Optional[str] = None
        self._per_page = per_page
        self._per_page_options = tuple(per_page_options)
        self._pagination_links = 2

    def primary_key(self, key: str) -> "TableSchemaBuilder":
        self._primary_key = key
        return self

    def column(self, name: str, label: Optional[str] = None, expression: Optional[str] = None) -> TableColumnBuilder:
        column_builder = TableColumnBuilder(name, label, expression)
        self._columns.append(column_builder)
        return column_builder

    def join(self, clause: str) -> "TableSchemaBuilder":
        """Add a raw JOIN clause, e.g. ``LEFT JOIN users ON users.id = audits.user_id``."""
        self._joins.append(clause)
        return self

    def filter(self, name: str, column: str) -> TableFilterBuilder:
        filter_builder = TableFilterBuilder(name, column)
        self._filters.append(filter_builder)
        return filter_builder

    def filter_link(self, label: str, condition: str) -> "TableSchemaBuilder":
        self._filter_links.append((label, condition))
        return self

    def row_action(self, name: str) -> ActionBuilder:
        action_builder = ActionBuilder(name, ActionScope.ROW)
        self._actions.append(action_builder)
        return action_builder

    def toolbar_action(self, name: str) -> ActionBuilder:
        action_builder = ActionBuilder(name, ActionScope.TOOLBAR)
        self._actions.append(action_builder)
        return action_builder

    def bulk_action(self, name: str, label: Optional[str] = None) -> ActionBuilder:
        action_builder = ActionBuilder(name, ActionScope.BULK, label)
        self._actions.append(action_builder)
        return action_builder

    def default_sort(self, column: str, direction: str | SortDirection = SortDirection.DESC) -> "TableSchemaBuilder":
        try:
            resolved = SortDirection(str(getattr(direction, "value", direction)).upper())
        except ValueError as exc:
            raise ConfigurationError(f"Unsupported sort direction '{direction}'.") from exc
        self._default_order_by = column
        self._default_sort = resolved
        return self

    def date_column(self, column: Optional[str]) -> "TableSchemaBuilder":
        self._date_column = column
        return self

    def per_page(self, count: int) -> "TableSchemaBuilder":
        self._per_page = count
        return self

    def per_page_options(self, options: Sequence[int]) -> "TableSchemaBuilder":
        self._per_page_options = tuple(options)
        return self

    def pagination_links(self, count: int) -> "TableSchemaBuilder":
        self._pagination_links = count
        return self

    def build(self) -> TableSchema:
        if not self._table or not self._table.strip():
            raise ConfigurationError("Table-backed modules must declare a table name.")
        if self._per_page not in self._per_page_options:
            raise ConfigurationError(
                f"Default page size {self._per_page} is not one of {list(self._per_page_options)}."
            )

        columns = tuple(column.build() for column in self._columns)
        filters = tuple(filter_builder.build() for filter_builder in self._filters)
        _ensure_unique([column.name for column in columns], "column")
        _ensure_unique([definition.name for definition in filters], "filter")

        return TableSchema(
            table=self._table.strip(),
            primary_key=self._primary_key,
            columns=columns,
            filters=filters,
            filter_links=tuple(FilterLinkDefinition(label, condition) for label, condition in self._filter_links),
            actions=tuple(action.build() for action in self._actions),
            joins=tuple(self._joins),
            default_order_by=self._default_order_by,
            default_sort=self._default_sort,
            date_column=self._date_column,
            pagination=PaginationConfig(
                per_page=self._per_page,
                per_page_options=self._per_page_options,
                pagination_links=self._pagination_links,
            ),
        )


class FormFieldBuilder:
    def __init__(self, name: str, label: Optional[str] = None, expression: Optional[str] = None) -> None:
        if not name:
            raise ConfigurationError("Form fields must have a name.")
        self._name = name
        self._label = label or humanize(name)
        self._expression = expression
        self._control = ControlType.TEXT
        self._rules: tuple[str, ...] = ()
        self._options: tuple[Option, ...] = ()
        self._options_query: Optional[str] = None
        self._datalist: tuple[str, ...] = ()
        self._accept: Optional[str] = None
        self._default: Any = None
        self._readonly = False
        self._disabled = False
        self._required_on_create = False
        self._custom_renderer: Optional[ControlCallback] = None

    # Control type setters

    def control(self, control: str | ControlType) -> "FormFieldBuilder":
        try:
            self._control = ControlType(control)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown control type '{control}' on field '{self._name}'.") from exc
        return self

    def text(self) -> "FormFieldBuilder":
        return self.control(ControlType.TEXT)

    def number(self) -> "FormFieldBuilder":
        return self.control(ControlType.NUMBER)

    def checkbox(self) -> "FormFieldBuilder":
        return self.control(ControlType.CHECKBOX)

    def email(self) -> "FormFieldBuilder":
        return self.control(ControlType.EMAIL)

    def password(self) -> "FormFieldBuilder":
        return self.control(ControlType.PASSWORD)

    def dropdown(self) -> "FormFieldBuilder":
        return self.control(ControlType.DROPDOWN)

    def image(self) -> "FormFieldBuilder":
        return self.control(ControlType.IMAGE)

    def file(self) -> "FormFieldBuilder":
        return self.control(ControlType.FILE)

    def render_using(self, renderer: ControlCallback) -> "FormFieldBuilder":
        self._custom_renderer = renderer
        self._control = ControlType.CUSTOM
        return self

    # Property setters

    def rules(self, rules: Iterable[str]) -> "FormFieldBuilder":
        self._rules = tuple(rules)
        return self

    def options(self, options: Iterable[Option | Mapping[str, Any]]) -> "FormFieldBuilder":
        self._options = _coerce_options(options)
        self._options_query = None
        return self

    def options_from(self, query: str) -> "FormFieldBuilder":
        self._options_query = query
        self._options = ()
        return self

    def datalist(self, values: Iterable[str]) -> "FormFieldBuilder":
        self._datalist = tuple(values)
        return self

    def accept(self, mime_pattern: str) -> "FormFieldBuilder":
        self._accept = mime_pattern
        return self

    def default(self, value: Any) -> "FormFieldBuilder":
        self._default = value
        return self

    def readonly(self, enabled: bool = True) -> "FormFieldBuilder":
        self._readonly = enabled
        return self

    def disabled(self, enabled: bool = True) -> "FormFieldBuilder":
        self._disabled = enabled
        return self

    def required_on_create(self, enabled: bool = True) -> "FormFieldBuilder":
        self._required_on_create = enabled
        return self

    def build(self) -> FieldDefinition:
        accept = self._accept
        if accept is None and self._control is ControlType.IMAGE:
            accept = "image/*"
        return FieldDefinition(
            name=self._name,
            label=self._label,
            expression=self._expression,
            control=self._control,
            rules=self._rules,
            options=OptionSource(static=self._options, query=self._options_query),
            datalist=self._datalist,
            accept=accept,
            default=self._default,
            readonly=self._readonly,
            disabled=self._disabled,
            required_on_create=self._required_on_create,
            custom_renderer=self._custom_renderer,
        )


class FormSchemaBuilder:
    """Accumulates a module's form declaration.

    Usage::

        builder.field("email", "Email").email().rules(["required", "email"])
        builder.field("password", "Password", "'' AS password").password().required_on_create()
    """

    def __init__(self) -> None:
        self._fields: list[FormFieldBuilder] = []

    def field(self, name: str, label: Optional[str] = None, expression: Optional[str] = None) -> FormFieldBuilder:
        field_builder = FormFieldBuilder(name, label, expression)
        self._fields.append(field_builder)
        return field_builder

    def build(self) -> FormSchema:
        fields = tuple(field_builder.build() for field_builder in self._fields)
        _ensure_unique([definition.name for definition in fields], "field")
        return FormSchema(fields=fields)


__all__ = [
    "ActionBuilder",
    "DEFAULT_PER_PAGE",
    "DEFAULT_PER_PAGE_OPTIONS",
    "FormFieldBuilder",
    "FormSchemaBuilder",
    "TableColumnBuilder",
    "TableFilterBuilder",
    "TableSchemaBuilder",
    "humanize",
]
