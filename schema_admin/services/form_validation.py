"""
Rule validator for submitted module forms.

Rules are strings of the form ``name`` or ``name:argument`` as declared on form
fields. Supported rules:
- required: value present and not the literal ``NULL``
- email, numeric, integer
- min_length:n / max_length:n: string length bounds
- min:n / max:n: numeric bounds
- in:a,b,c: value is one of the listed choices
- match:other_field: equals another submitted field
- regex:pattern: value matches the pattern
- unique:table[.column]: no other row holds the value

Empty optional fields skip every rule. Each field stops at its first failing
rule. Failures are returned, never raised.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from schema_admin.services.module_errors import ConfigurationError
from schema_admin.services.sql_executor import SqlExecutor

DEFAULT_MESSAGES: dict[str, str] = {
    "required": "Required field",
    "unique": "Must be unique",
    "numeric": "Must be a numeric value",
    "email": "Invalid email address",
    "integer": "Must be an integer",
    "match": "Does not match",
    "min_length": "Input is too short",
    "max_length": "Input is too long",
    "min": "Value is too small",
    "max": "Value is too large",
    "in": "Invalid selection",
    "regex": "Does not match pattern",
}

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")
_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class ValidationOutcome:
    values: Optional[dict[str, Any]]
    errors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.values is not None


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_int_argument(rule: str, argument: Optional[str]) -> int:
    try:
        return int(argument or "")
    except ValueError as exc:
        raise ConfigurationError(f"Rule '{rule}' needs an integer argument, got '{argument}'.") from exc


class RuleValidator:
    """Evaluate rule lists against a submitted payload."""

    def __init__(self, executor: Optional[SqlExecutor] = None, messages: Optional[Mapping[str, str]] = None):
        self.executor = executor
        self.messages = {**DEFAULT_MESSAGES, **dict(messages or {})}

    def validate(
        self,
        rules: Mapping[str, Sequence[str]],
        submitted: Mapping[str, Any],
        record_id: Any = None,
        primary_key: str = "id",
    ) -> ValidationOutcome:
        """
        Validate ``submitted`` against ``rules``.

        Args:
            rules: field name -> ordered rule list
            submitted: raw request values
            record_id: id of the record being edited, ignored by ``unique``
            primary_key: column that ``record_id`` refers to

        Returns:
            ValidationOutcome with the validated values, or ``values=None`` and
            per-field messages when anything failed
        """
        values: dict[str, Any] = {}
        errors: dict[str, list[str]] = {}

        for field_name, field_rules in rules.items():
            value = submitted.get(field_name)
            # Fields absent from the payload pass through as absent, not as None.
            passed = field_name in submitted
            if not field_rules or ("required" not in field_rules and _is_empty(value)):
                if passed:
                    values[field_name] = value
                continue

            for rule in field_rules:
                rule_name, _, argument = rule.partition(":")
                if not self._apply_rule(rule_name, argument or None, field_name, value, submitted, record_id, primary_key):
                    errors.setdefault(field_name, []).append(self._message(field_name, rule_name))
                    break
            else:
                if passed:
                    values[field_name] = value

        if errors:
            return ValidationOutcome(values=None, errors=errors)
        return ValidationOutcome(values=values)

    def _message(self, field_name: str, rule_name: str) -> str:
        return self.messages.get(f"{field_name}.{rule_name}") or self.messages.get(rule_name) or "Invalid"

    def _apply_rule(
        self,
        rule_name: str,
        argument: Optional[str],
        field_name: str,
        value: Any,
        submitted: Mapping[str, Any],
        record_id: Any,
        primary_key: str,
    ) -> bool:
        """Dispatch to the check for ``rule_name``."""
        if rule_name == "required":
            return not _is_empty(value) and value != "NULL"
        elif rule_name == "email":
            return isinstance(value, str) and bool(_EMAIL_PATTERN.match(value))
        elif rule_name == "numeric":
            return _as_number(value) is not None
        elif rule_name == "integer":
            if isinstance(value, bool):
                return False
            return isinstance(value, int) or bool(_INTEGER_PATTERN.match(str(value).strip()))
        elif rule_name == "min_length":
            return len(str(value)) >= _as_int_argument(rule_name, argument)
        elif rule_name == "max_length":
            return len(str(value)) <= _as_int_argument(rule_name, argument)
        elif rule_name in ("min", "max"):
            number = _as_number(value)
            bound = _as_number(argument)
            if bound is None:
                raise ConfigurationError(f"Rule '{rule_name}' needs a numeric argument, got '{argument}'.")
            if number is None:
                return False
            return number >= bound if rule_name == "min" else number <= bound
        elif rule_name == "in":
            choices = [choice.strip() for choice in (argument or "").split(",")]
            return str(value) in choices
        elif rule_name == "match":
            if not argument:
                raise ConfigurationError(f"Rule 'match' on '{field_name}' needs the field to compare with.")
            return value == submitted.get(argument)
        elif rule_name == "regex":
            if not argument:
                raise ConfigurationError(f"Rule 'regex' on '{field_name}' needs a pattern.")
            return re.search(argument, str(value)) is not None
        elif rule_name == "unique":
            return self._validate_unique(argument, field_name, value, record_id, primary_key)
        raise ConfigurationError(f"Undefined validation rule '{rule_name}' on field '{field_name}'.")

    def _validate_unique(
        self,
        argument: Optional[str],
        field_name: str,
        value: Any,
        record_id: Any,
        primary_key: str,
    ) -> bool:
        if self.executor is None:
            raise ConfigurationError("The 'unique' rule needs a database connection.")
        table, _, column = (argument or "").partition(".")
        column = column or field_name
        for identifier in (table, column, primary_key):
            if not _IDENTIFIER_PATTERN.match(identifier):
                raise ConfigurationError(f"Invalid identifier '{identifier}' for unique validation.")

        sql = f"SELECT 1 FROM {table} WHERE {column} = ?"
        params: list[Any] = [value]
        if record_id is not None:
            sql += f" AND {primary_key} <> ?"
            params.append(record_id)
        return self.executor.fetch_one(sql, params) is None


__all__ = ["DEFAULT_MESSAGES", "RuleValidator", "ValidationOutcome"]
