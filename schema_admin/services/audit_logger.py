from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from schema_admin.models import Audit

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS: tuple[str, ...] = (
    "password",
    "password_hash",
    "password_match",
    "token",
    "secret",
    "api_key",
    "api_secret",
    "access_token",
    "refresh_token",
    "private_key",
    "credit_card",
    "card_number",
    "cvv",
    "ssn",
)


@dataclass(frozen=True)
class AuditContext:
    """Who performed a mutation and from where."""

    user_id: Optional[int] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditLogger:
    def __init__(
        self,
        db: Session,
        context: AuditContext | None = None,
        extra_sensitive_fields: Iterable[str] = (),
    ) -> None:
        self.db = db
        self.context = context or AuditContext()
        self.sensitive_fields = tuple(
            dict.fromkeys([*SENSITIVE_FIELDS, *(field.lower() for field in extra_sensitive_fields)])
        )

    def log_created(self, table: str, record_id: Any, new_values: Mapping[str, Any]) -> Audit:
        return self._log(table, record_id, "created", {}, new_values)

    def log_updated(
        self,
        table: str,
        record_id: Any,
        old_values: Mapping[str, Any],
        new_values: Mapping[str, Any],
    ) -> Audit:
        return self._log(table, record_id, "updated", old_values, new_values)

    def log_deleted(self, table: str, record_id: Any, old_values: Mapping[str, Any]) -> Audit:
        return self._log(table, record_id, "deleted", old_values, {})

    def is_sensitive(self, key: str) -> bool:
        lowered = key.lower()
        return any(fragment in lowered for fragment in self.sensitive_fields)

    def filter_sensitive(self, values: Mapping[str, Any]) -> dict[str, Any]:
        return {key: value for key, value in values.items() if not self.is_sensitive(key)}

    def _log(
        self,
        table: str,
        record_id: Any,
        event: str,
        old_values: Mapping[str, Any],
        new_values: Mapping[str, Any],
    ) -> Audit:
        filtered_old = self.filter_sensitive(old_values or {})
        filtered_new = self.filter_sensitive(new_values or {})

        audit = Audit(
            user_id=self.context.user_id,
            auditable_type=table,
            auditable_id=int(record_id),
            event=event,
            old_values=jsonable_encoder(filtered_old) if filtered_old else None,
            new_values=jsonable_encoder(filtered_new) if filtered_new else None,
            ip_address=self.context.ip_address,
            user_agent=self.context.user_agent,
        )
        self.db.add(audit)
        self.db.commit()
        logger.debug("Recorded %s audit for %s #%s", event, table, record_id)
        return audit


__all__ = ["AuditContext", "AuditLogger", "SENSITIVE_FIELDS"]
