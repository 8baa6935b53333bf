from fastapi import APIRouter

from schema_admin.routers import modules

api_router = APIRouter()
api_router.include_router(modules.router)

__all__ = ["api_router"]
