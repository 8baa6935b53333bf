from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    DANGER = "danger"
    INFO = "info"


class AdminModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NoticeRead(AdminModel):
    level: NoticeLevel
    message: str


class OptionRead(AdminModel):
    value: Any
    label: str


class ColumnRead(AdminModel):
    index: int
    name: str
    label: str
    sortable: bool = False
    searchable: bool = False


class ActionRead(AdminModel):
    name: str
    label: str
    icon: str
    requires_form: bool = False
    confirm: Optional[str] = None


class FilterLinkRead(AdminModel):
    index: int
    label: str
    active: bool = False


class PaginationRead(AdminModel):
    page: int
    per_page: int
    per_page_options: List[int]
    total_pages: int
    total_rows: int
    links: int


class ListingRow(AdminModel):
    id: Any
    values: Dict[str, Any]
    actions: List[str] = Field(default_factory=list)


class ListingResponse(AdminModel):
    module: str
    title: str
    columns: List[ColumnRead]
    rows: List[ListingRow]
    caption: str = ""
    order_by: str
    sort: str
    pagination: PaginationRead
    filter_links: List[FilterLinkRead] = Field(default_factory=list)
    toolbar_actions: List[ActionRead] = Field(default_factory=list)
    row_actions: List[ActionRead] = Field(default_factory=list)
    bulk_actions: List[ActionRead] = Field(default_factory=list)
    show_filters: bool = False
    has_filters: bool = False
    notices: List[NoticeRead] = Field(default_factory=list)


class DropdownFilterRead(AdminModel):
    index: int
    column: str
    label: str
    selected: Optional[str] = None
    options: List[OptionRead] = Field(default_factory=list)


class FilterFormResponse(AdminModel):
    module: str
    show_search: bool
    search: str = ""
    show_date: bool
    date_start: str = ""
    date_end: str = ""
    dropdowns: List[DropdownFilterRead] = Field(default_factory=list)
    has_filters: bool = False
    errors: Dict[str, List[str]] = Field(default_factory=dict)
    notices: List[NoticeRead] = Field(default_factory=list)


class FilterRequest(AdminModel):
    search: Optional[str] = None
    date_start: Optional[str] = None
    date_end: Optional[str] = None
    dropdowns: Dict[int, Optional[Union[str, int]]] = Field(default_factory=dict)
    clear: bool = False


class FilterLinkCountResponse(AdminModel):
    index: int
    count: int


class FormFieldRead(AdminModel):
    name: str
    label: str
    control: str
    value: Any = None
    rendered: Any = None
    rules: List[str] = Field(default_factory=list)
    required: bool = False
    readonly: bool = False
    disabled: bool = False
    options: List[OptionRead] = Field(default_factory=list)
    datalist: List[str] = Field(default_factory=list)
    accept: Optional[str] = None


class FormResponse(AdminModel):
    module: str
    form_type: str
    record_id: Optional[Any] = None
    title: str
    submit_label: Optional[str] = None
    readonly: bool = False
    fields: List[FormFieldRead]
    errors: Dict[str, List[str]] = Field(default_factory=dict)
    notices: List[NoticeRead] = Field(default_factory=list)


class TableActionRequest(AdminModel):
    action: str = Field(..., min_length=1)
    ids: List[int] = Field(default_factory=list)


class MutationResponse(AdminModel):
    success: bool
    record_id: Optional[Any] = None
    errors: Dict[str, List[str]] = Field(default_factory=dict)
    notices: List[NoticeRead] = Field(default_factory=list)
    listing: Optional[ListingResponse] = None


class ModuleRead(AdminModel):
    id: int
    link: str
    title: str
    icon: Optional[str] = None
    item_order: int = 0

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)
