from __future__ import annotations

from functools import lru_cache
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_name: str = Field("Schema Admin API", validation_alias="APP_NAME")
    database_url: str = Field(
        "sqlite:///./schema_admin.db",
        validation_alias="DATABASE_URL",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Python logging verbosity for application modules (e.g. INFO, DEBUG).",
    )
    session_header: str = Field(
        default="X-Session-Id",
        validation_alias="SESSION_HEADER",
        description="Request header carrying the client session id that scopes module state.",
    )
    user_header: str = Field(
        default="X-User-Id",
        validation_alias="USER_HEADER",
        description="Request header carrying the id of the user authenticated upstream.",
    )
    default_per_page: int = Field(
        default=10,
        validation_alias="DEFAULT_PER_PAGE",
        description="Page size applied by table schemas that do not declare their own.",
        ge=1,
        le=1000,
    )
    per_page_options: Annotated[List[int], NoDecode] = Field(
        default_factory=lambda: [10, 25, 50, 100],
        validation_alias="PER_PAGE_OPTIONS",
        description="Comma-separated list of page sizes a listing may switch to.",
    )
    export_batch_rows: int = Field(
        default=500,
        validation_alias="EXPORT_BATCH_ROWS",
        description="Number of rows fetched from the driver per batch while streaming CSV exports.",
        ge=1,
        le=100000,
    )
    audit_sensitive_fields: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        validation_alias="AUDIT_SENSITIVE_FIELDS",
        description="Additional comma-separated field name fragments that are never written to the audit log.",
    )
    verify_module_schemas: bool = Field(
        True,
        validation_alias="VERIFY_MODULE_SCHEMAS",
        description="When true every registered module schema is checked against the live database at startup.",
    )

    @field_validator("per_page_options", mode="before")
    @classmethod
    def _split_per_page_options(cls, raw_value):
        if isinstance(raw_value, str):
            return [int(part.strip()) for part in raw_value.split(",") if part.strip()]
        return raw_value

    @field_validator("audit_sensitive_fields", mode="before")
    @classmethod
    def _split_sensitive_fields(cls, raw_value):
        if isinstance(raw_value, str):
            return [part.strip().lower() for part in raw_value.split(",") if part.strip()]
        return raw_value


@lru_cache()
def get_settings() -> Settings:
    return Settings()
