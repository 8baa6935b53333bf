from schema_admin.schemas.admin import (
    ActionRead,
    ColumnRead,
    DropdownFilterRead,
    FilterFormResponse,
    FilterLinkCountResponse,
    FilterLinkRead,
    FilterRequest,
    FormFieldRead,
    FormResponse,
    ListingResponse,
    ListingRow,
    ModuleRead,
    MutationResponse,
    NoticeLevel,
    NoticeRead,
    OptionRead,
    PaginationRead,
    TableActionRequest,
)

__all__ = [
    "ActionRead",
    "ColumnRead",
    "DropdownFilterRead",
    "FilterFormResponse",
    "FilterLinkCountResponse",
    "FilterLinkRead",
    "FilterRequest",
    "FormFieldRead",
    "FormResponse",
    "ListingResponse",
    "ListingRow",
    "ModuleRead",
    "MutationResponse",
    "NoticeLevel",
    "NoticeRead",
    "OptionRead",
    "PaginationRead",
    "TableActionRequest",
]
