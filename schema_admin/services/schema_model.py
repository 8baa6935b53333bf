"""
Immutable schema model for declarative admin modules.

A module describes its listing with a ``TableSchema`` and its create/edit/show
form with a ``FormSchema``. Both are produced by the builders in
``schema_admin.services.schema_builders`` and never change afterwards.

Only identifiers and expressions held by these objects are ever interpolated
into SQL; request values are always bound as parameters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence

CellCallback = Callable[[str, Any], Any]
ControlCallback = Callable[[str, Any], Any]


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"

    def flipped(self) -> "SortDirection":
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


class NamedFormat(str, Enum):
    CHECK = "check"
    DATE = "date"
    DATETIME = "datetime"


class FormatKind(str, Enum):
    NAMED = "named"
    CUSTOM = "custom"


class ActionScope(str, Enum):
    ROW = "row"
    BULK = "bulk"
    TOOLBAR = "toolbar"


class ControlType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    CHECKBOX = "checkbox"
    EMAIL = "email"
    PASSWORD = "password"
    DROPDOWN = "dropdown"
    IMAGE = "image"
    FILE = "file"
    CUSTOM = "custom"


class FormType(str, Enum):
    CREATE = "create"
    EDIT = "edit"
    SHOW = "show"


def _apply_named_format(fmt: NamedFormat, value: Any) -> Any:
    if value is None:
        return None
    if fmt is NamedFormat.CHECK:
        if isinstance(value, str):
            return value.strip().lower() not in {"", "0", "false", "no", "off"}
        return bool(value)
    if fmt is NamedFormat.DATE:
        if isinstance(value, (datetime, date)):
            return value.strftime("%Y-%m-%d")
        return str(value)[:10]
    if fmt is NamedFormat.DATETIME:
        if isinstance(value, datetime):
            return value.strftime("%Y-%m-%d %H:%M:%S")
        return str(value).replace("T", " ")[:19]
    return value


@dataclass(frozen=True)
class CellFormatter:
    """Tagged formatting strategy: a built-in named format or a custom callable."""

    kind: FormatKind
    named: Optional[NamedFormat] = None
    func: Optional[CellCallback] = field(default=None, compare=False)

    @classmethod
    def named_format(cls, fmt: NamedFormat) -> "CellFormatter":
        return cls(kind=FormatKind.NAMED, named=fmt)

    @classmethod
    def custom(cls, func: CellCallback) -> "CellFormatter":
        return cls(kind=FormatKind.CUSTOM, func=func)

    def apply(self, column: str, value: Any) -> Any:
        if self.kind is FormatKind.CUSTOM and self.func is not None:
            return self.func(column, value)
        if self.kind is FormatKind.NAMED and self.named is not None:
            return _apply_named_format(self.named, value)
        return value


@dataclass(frozen=True)
class Option:
    value: Any
    label: str


@dataclass(frozen=True)
class OptionSource:
    """Options for a dropdown: either a static list or an author-written query.

    Queries must select ``value`` and ``label`` columns; they are executed by the
    SQL executor, never by the schema itself.
    """

    static: tuple[Option, ...] = ()
    query: Optional[str] = None

    @property
    def is_query(self) -> bool:
        return bool(self.query)


@dataclass(frozen=True)
class ColumnDefinition:
    name: str
    label: str
    expression: Optional[str] = None
    sortable: bool = False
    searchable: bool = False
    formatter: Optional[CellFormatter] = None

    @property
    def sql_expression(self) -> str:
        return self.expression or self.name

    @property
    def format(self) -> Optional[NamedFormat]:
        if self.formatter is not None and self.formatter.kind is FormatKind.NAMED:
            return self.formatter.named
        return None

    def select_expression(self) -> str:
        if self.expression:
            return f"{self.expression} AS {self.name}"
        return self.name

    def format_value(self, value: Any) -> Any:
        if self.formatter is None:
            return value
        return self.formatter.apply(self.name, value)


@dataclass(frozen=True)
class FilterDefinition:
    name: str
    column: str
    label: str
    options: OptionSource = OptionSource()


@dataclass(frozen=True)
class FilterLinkDefinition:
    label: str
    condition: str


@dataclass(frozen=True)
class ActionDefinition:
    name: str
    label: str
    scope: ActionScope
    icon: str = "bi-gear"
    requires_form: bool = False
    permission: Optional[str] = None
    confirm: Optional[str] = None


@dataclass(frozen=True)
class PaginationConfig:
    per_page: int = 10
    per_page_options: tuple[int, ...] = (10, 25, 50, 100)
    pagination_links: int = 2

    def allows(self, per_page: int) -> bool:
        return per_page in self.per_page_options


@dataclass(frozen=True)
class TableSchema:
    table: str
    primary_key: str = "id"
    columns: tuple[ColumnDefinition, ...] = ()
    filters: tuple[FilterDefinition, ...] = ()
    filter_links: tuple[FilterLinkDefinition, ...] = ()
    actions: tuple[ActionDefinition, ...] = ()
    joins: tuple[str, ...] = ()
    default_order_by: str = "id"
    default_sort: SortDirection = SortDirection.DESC
    date_column: Optional[str] = None
    pagination: PaginationConfig = PaginationConfig()

    @property
    def primary_key_column(self) -> str:
        """Primary key without any table qualifier, as used by write statements."""
        return self.primary_key.rsplit(".", 1)[-1]

    def from_clause(self) -> str:
        return " ".join([self.table, *self.joins])

    def select_expressions(self) -> list[str]:
        return [column.select_expression() for column in self.columns]

    def searchable_columns(self) -> list[ColumnDefinition]:
        return [column for column in self.columns if column.searchable]

    def column(self, name: str) -> Optional[ColumnDefinition]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def column_at(self, index: int) -> Optional[ColumnDefinition]:
        if 0 <= index < len(self.columns):
            return self.columns[index]
        return None

    def has_primary_key_column(self) -> bool:
        return any(
            column.name == self.primary_key or column.expression == self.primary_key
            for column in self.columns
        )

    def filter_link(self, index: Optional[int]) -> Optional[FilterLinkDefinition]:
        if index is None or not 0 <= index < len(self.filter_links):
            return None
        return self.filter_links[index]

    def actions_for(self, scope: ActionScope) -> list[ActionDefinition]:
        return [action for action in self.actions if action.scope is scope]

    def action(self, name: str, scope: ActionScope) -> Optional[ActionDefinition]:
        for action in self.actions:
            if action.name == name and action.scope is scope:
                return action
        return None

    def resolve_column_name(self, order_by: str) -> str:
        """Map an ORDER BY target (alias or expression) back to a column alias."""
        for column in self.columns:
            if column.name == order_by or column.expression == order_by:
                return column.name
        return order_by

    def order_by_target(self, order_by: str) -> str:
        """Return the ORDER BY token for a stored sort column.

        Only names known to the schema are returned; anything else falls back to
        the schema default so stored state can never inject SQL.
        """
        for column in self.columns:
            if order_by in (column.name, column.expression):
                return column.name if column.expression else column.sql_expression
        if order_by in (self.default_order_by, self.primary_key):
            return order_by
        return self.default_order_by


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    label: str
    expression: Optional[str] = None
    control: ControlType = ControlType.TEXT
    rules: tuple[str, ...] = ()
    options: OptionSource = OptionSource()
    datalist: tuple[str, ...] = ()
    accept: Optional[str] = None
    default: Any = None
    readonly: bool = False
    disabled: bool = False
    required_on_create: bool = False
    custom_renderer: Optional[ControlCallback] = field(default=None, compare=False)

    def select_expression(self) -> str:
        return self.expression or self.name

    def has_rule(self, rule: str) -> bool:
        wanted = rule.split(":", 1)[0]
        return any(existing.split(":", 1)[0] == wanted for existing in self.rules)

    def rules_for(self, form_type: FormType) -> list[str]:
        if self.required_on_create and form_type is not FormType.CREATE:
            return [rule for rule in self.rules if rule != "required"]
        return list(self.rules)

    def is_required(self, form_type: FormType = FormType.CREATE) -> bool:
        return "required" in self.rules_for(form_type)

    def render_custom(self, value: Any) -> Any:
        if self.custom_renderer is None:
            return value
        return self.custom_renderer(self.name, value)


@dataclass(frozen=True)
class FormSchema:
    fields: tuple[FieldDefinition, ...] = ()

    @property
    def has_fields(self) -> bool:
        return bool(self.fields)

    def field(self, name: str) -> Optional[FieldDefinition]:
        for definition in self.fields:
            if definition.name == name:
                return definition
        return None

    def labels(self) -> list[str]:
        return [definition.label for definition in self.fields]

    def select_expressions(self) -> list[str]:
        return [definition.select_expression() for definition in self.fields]

    def validation_rules(self, form_type: FormType | str = FormType.CREATE) -> dict[str, list[str]]:
        form_type = FormType(form_type)
        return {definition.name: definition.rules_for(form_type) for definition in self.fields}

    def defaults(self) -> dict[str, Any]:
        return {definition.name: definition.default for definition in self.fields}


def options_from_mappings(options: Sequence[Mapping[str, Any]]) -> tuple[Option, ...]:
    """Convert ``[{"value": ..., "label": ...}]`` declarations into ``Option`` values."""
    return tuple(Option(value=item["value"], label=str(item.get("label", item["value"]))) for item in options)


__all__ = [
    "ActionDefinition",
    "ActionScope",
    "CellFormatter",
    "ColumnDefinition",
    "ControlType",
    "FieldDefinition",
    "FilterDefinition",
    "FilterLinkDefinition",
    "FormSchema",
    "FormType",
    "FormatKind",
    "NamedFormat",
    "Option",
    "OptionSource",
    "PaginationConfig",
    "SortDirection",
    "TableSchema",
    "options_from_mappings",
]
