import pytest
from sqlalchemy.orm import Session

from schema_admin.models import User
from schema_admin.services.form_validation import RuleValidator
from schema_admin.services.module_errors import ConfigurationError
from schema_admin.services.sql_executor import SqlExecutor


def test_valid_payload_returns_submitted_values() -> None:
    outcome = RuleValidator().validate(
        {"email": ["required", "email"], "age": ["integer", "min:18"]},
        {"email": "ada@example.com", "age": "36"},
    )

    assert outcome.ok
    assert outcome.values == {"email": "ada@example.com", "age": "36"}
    assert outcome.errors == {}


def test_first_failing_rule_wins() -> None:
    outcome = RuleValidator().validate(
        {"email": ["required", "email", "max_length:3"]},
        {"email": "not-an-email"},
    )

    assert not outcome.ok
    assert outcome.values is None
    assert outcome.errors == {"email": ["Invalid email address"]}


def test_required_rejects_empty_and_null_literal() -> None:
    validator = RuleValidator()

    assert validator.validate({"role": ["required"]}, {}).errors == {"role": ["Required field"]}
    assert validator.validate({"role": ["required"]}, {"role": ""}).errors == {"role": ["Required field"]}
    assert validator.validate({"role": ["required"]}, {"role": "NULL"}).errors == {"role": ["Required field"]}


def test_empty_optional_fields_skip_rules() -> None:
    outcome = RuleValidator().validate(
        {"surname": ["max_length:3"], "nickname": ["min_length:2"]},
        {"surname": ""},
    )

    assert outcome.ok
    assert outcome.values == {"surname": ""}


@pytest.mark.parametrize(
    ("rule", "good", "bad"),
    [
        ("numeric", "3.5", "three"),
        ("integer", "-4", "4.2"),
        ("min_length:3", "abc", "ab"),
        ("max_length:3", "abc", "abcd"),
        ("min:10", "10", "9.99"),
        ("max:10", "10", "10.01"),
        ("in:standard,admin", "admin", "root"),
        ("regex:^[A-Z]{3}$", "ABC", "AB1"),
    ],
)
def test_single_rules(rule: str, good: str, bad: str) -> None:
    validator = RuleValidator()

    assert validator.validate({"value": [rule]}, {"value": good}).ok
    assert not validator.validate({"value": [rule]}, {"value": bad}).ok


def test_match_compares_with_other_field() -> None:
    rules = {"password": ["required"], "password_match": ["required", "match:password"]}
    validator = RuleValidator()

    assert validator.validate(rules, {"password": "secret", "password_match": "secret"}).ok
    mismatch = validator.validate(rules, {"password": "secret", "password_match": "other"})
    assert mismatch.errors == {"password_match": ["Does not match"]}


def test_field_specific_messages_take_precedence() -> None:
    validator = RuleValidator(messages={"password.min_length": "Use at least 10 characters", "required": "Needed"})
    outcome = validator.validate(
        {"password": ["min_length:10"], "email": ["required"]},
        {"password": "short"},
    )

    assert outcome.errors == {"password": ["Use at least 10 characters"], "email": ["Needed"]}


def test_unknown_rule_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        RuleValidator().validate({"value": ["palindrome"]}, {"value": "abba"})


def test_unique_ignores_the_record_being_edited(db_session: Session, admin_user: User) -> None:
    validator = RuleValidator(SqlExecutor(db_session))
    rules = {"email": ["unique:users"]}

    assert not validator.validate(rules, {"email": admin_user.email}).ok
    assert validator.validate(rules, {"email": admin_user.email}, record_id=admin_user.id).ok
    assert validator.validate({"email": ["unique:users.email"]}, {"email": "new@example.com"}).ok


def test_unique_rejects_unsafe_identifiers(db_session: Session) -> None:
    validator = RuleValidator(SqlExecutor(db_session))

    with pytest.raises(ConfigurationError):
        validator.validate({"email": ["unique:users; DROP TABLE users"]}, {"email": "x@example.com"})
