import logging

from fastapi import FastAPI

from schema_admin.config import get_settings
from schema_admin.database import engine
from schema_admin.routers import api_router
from schema_admin.services.module_registry import module_registry, verify_registered_modules

settings = get_settings()
log_level_name = (settings.log_level or "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
logging.getLogger("schema_admin").setLevel(log_level)

app = FastAPI(title=settings.app_name)

logger = logging.getLogger(__name__)

app.include_router(api_router, prefix="/api")


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, str]:
    return {"status": "ok"}


@app.on_event("startup")
async def verify_module_schemas() -> None:
    if not settings.verify_module_schemas:
        return
    verify_registered_modules(engine, module_registry, settings)
    logger.info("Verified %d module schemas", len(module_registry.links()))
