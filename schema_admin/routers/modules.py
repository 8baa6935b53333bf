from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

import schema_admin.modules  # noqa: F401  registers the bundled modules
from schema_admin.config import Settings, get_settings
from schema_admin.database import get_db
from schema_admin.models import User
from schema_admin.schemas.admin import (
    FilterFormResponse,
    FilterLinkCountResponse,
    FilterRequest,
    FormResponse,
    ListingResponse,
    ModuleRead,
    MutationResponse,
    TableActionRequest,
)
from schema_admin.services.audit_logger import AuditContext
from schema_admin.services.csv_export import export_filename
from schema_admin.services.module_controller import ModuleController
from schema_admin.services.module_errors import (
    ConfigurationError,
    PermissionDeniedError,
    RecordNotFoundError,
    UnknownModuleError,
)
from schema_admin.services.module_registry import module_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/modules", tags=["Modules"])


@contextmanager
def _module_errors() -> Iterator[None]:
    try:
        yield
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except (UnknownModuleError, RecordNotFoundError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ConfigurationError as exc:
        logger.exception("Module configuration error")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Module is misconfigured.") from exc


def get_session_id(request: Request, settings: Settings = Depends(get_settings)) -> str:
    session_id = (request.headers.get(settings.session_header) or "").strip()
    if not session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing {settings.session_header} header.",
        )
    return session_id


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Optional[User]:
    raw_user_id = (request.headers.get(settings.user_header) or "").strip()
    if not raw_user_id:
        return None
    try:
        user_id = int(raw_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {settings.user_header} header.",
        ) from None
    return db.get(User, user_id)


def get_controller(
    module_link: str,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: Optional[User] = Depends(get_current_user),
    session_id: str = Depends(get_session_id),
) -> ModuleController:
    audit_context = AuditContext(
        user_id=user.id if user is not None else None,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    with _module_errors():
        return module_registry.create(
            db,
            module_link,
            session_id=session_id,
            user=user,
            audit_context=audit_context,
            settings=settings,
        )


def _unprocessable(response: MutationResponse | FilterFormResponse) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=response.model_dump(mode="json", by_alias=True),
    )


@router.get("", response_model=List[ModuleRead])
def list_modules(
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_current_user),
) -> List[ModuleRead]:
    return [ModuleRead.model_validate(module) for module in module_registry.modules_for(db, user)]


@router.get("/{module_link}", response_model=ListingResponse)
def read_listing(controller: ModuleController = Depends(get_controller)) -> ListingResponse:
    with _module_errors():
        return controller.list()


@router.get("/{module_link}/page/{page}", response_model=ListingResponse)
def set_page(page: int, controller: ModuleController = Depends(get_controller)) -> ListingResponse:
    with _module_errors():
        return controller.set_page(page)


@router.get("/{module_link}/sort/{column_index}", response_model=ListingResponse)
def set_sort(column_index: int, controller: ModuleController = Depends(get_controller)) -> ListingResponse:
    with _module_errors():
        return controller.set_sort(column_index)


@router.get("/{module_link}/per-page/{count}", response_model=ListingResponse)
def set_per_page(count: int, controller: ModuleController = Depends(get_controller)) -> ListingResponse:
    with _module_errors():
        return controller.set_per_page(count)


@router.get("/{module_link}/export-csv")
def export_csv(controller: ModuleController = Depends(get_controller)) -> StreamingResponse:
    with _module_errors():
        content = controller.export_csv()

    headers = {
        "Content-Disposition": f"attachment; filename={export_filename(controller.module_link)}",
        "Cache-Control": "no-store",
    }
    return StreamingResponse(content, media_type="text/csv", headers=headers)


@router.get("/{module_link}/modal/create", response_model=FormResponse)
def render_create_form(controller: ModuleController = Depends(get_controller)) -> FormResponse:
    with _module_errors():
        return controller.render_create_form()


@router.get("/{module_link}/modal/filter", response_model=FilterFormResponse)
def render_filter_form(controller: ModuleController = Depends(get_controller)) -> FilterFormResponse:
    with _module_errors():
        return controller.render_filter_form()


@router.post("/{module_link}/modal/filter", response_model=ListingResponse)
def set_filters(request: FilterRequest, controller: ModuleController = Depends(get_controller)):
    with _module_errors():
        listing = controller.filter_set(request.model_dump())
        if listing is None:
            return _unprocessable(controller.render_filter_form())
    return listing


@router.post("/{module_link}/filter/clear", response_model=ListingResponse)
def clear_filters(controller: ModuleController = Depends(get_controller)) -> ListingResponse:
    with _module_errors():
        return controller.filter_clear()


@router.get("/{module_link}/filter/link/{index}", response_model=ListingResponse)
def set_active_filter_link(index: int, controller: ModuleController = Depends(get_controller)) -> ListingResponse:
    with _module_errors():
        return controller.set_active_filter_link(index)


@router.get("/{module_link}/filter/count/{index}", response_model=FilterLinkCountResponse)
def filter_link_count(index: int, controller: ModuleController = Depends(get_controller)) -> FilterLinkCountResponse:
    with _module_errors():
        return FilterLinkCountResponse(index=index, count=controller.filter_link_count(index))


@router.post("/{module_link}/table-action", response_model=ListingResponse)
def table_action(request: TableActionRequest, controller: ModuleController = Depends(get_controller)) -> ListingResponse:
    with _module_errors():
        return controller.table_action(request.action, request.ids)


@router.get("/{module_link}/modal/{record_id}", response_model=FormResponse)
def render_show_form(record_id: int, controller: ModuleController = Depends(get_controller)) -> FormResponse:
    with _module_errors():
        return controller.render_show_form(record_id)


@router.get("/{module_link}/modal/{record_id}/edit", response_model=FormResponse)
def render_edit_form(record_id: int, controller: ModuleController = Depends(get_controller)) -> FormResponse:
    with _module_errors():
        return controller.render_edit_form(record_id)


@router.post("/{module_link}", response_model=MutationResponse, status_code=status.HTTP_201_CREATED)
def store_record(
    payload: Dict[str, Any] = Body(...),
    controller: ModuleController = Depends(get_controller),
):
    with _module_errors():
        record_id = controller.store(payload)
        if controller.errors:
            return _unprocessable(
                MutationResponse(success=False, errors=controller.errors, notices=controller.notice_models())
            )
        if record_id is None:
            return JSONResponse(
                status_code=status.HTTP_200_OK,
                content=MutationResponse(success=False, notices=controller.notice_models()).model_dump(
                    mode="json", by_alias=True
                ),
            )
        return MutationResponse(
            success=True,
            record_id=record_id,
            notices=controller.notice_models(),
            listing=controller.list(),
        )


@router.post("/{module_link}/{record_id}/update", response_model=MutationResponse)
def update_record(
    record_id: int,
    payload: Dict[str, Any] = Body(...),
    controller: ModuleController = Depends(get_controller),
):
    with _module_errors():
        updated = controller.update(record_id, payload)
        if controller.errors:
            return _unprocessable(
                MutationResponse(success=False, record_id=record_id, errors=controller.errors, notices=controller.notice_models())
            )
        return MutationResponse(
            success=updated,
            record_id=record_id,
            notices=controller.notice_models(),
            listing=controller.list() if updated else None,
        )


@router.post("/{module_link}/{record_id}/destroy", response_model=MutationResponse)
def destroy_record(record_id: int, controller: ModuleController = Depends(get_controller)) -> MutationResponse:
    with _module_errors():
        destroyed = controller.destroy(record_id)
        return MutationResponse(
            success=destroyed,
            record_id=record_id,
            notices=controller.notice_models(),
            listing=controller.list(),
        )
