"""Unit tests for schema type checks and identifier rules."""

from __future__ import annotations

import pytest

from mockbase.runtime.errors import ValidationError
from mockbase.runtime.models.enums import FieldType
from mockbase.runtime.validation import check_identifier, find_violation, matches_type, validate_payload


@pytest.mark.parametrize(
    ("value", "field_type", "expected"),
    [
        ("x", FieldType.STRING, True),
        (1, FieldType.STRING, False),
        (1, FieldType.NUMBER, True),
        (1.5, FieldType.NUMBER, True),
        (True, FieldType.NUMBER, False),
        ("1", FieldType.NUMBER, False),
        (False, FieldType.BOOLEAN, True),
        (0, FieldType.BOOLEAN, False),
        ("2024-05-01", FieldType.DATE, True),
        ("2024-05-01T10:00:00Z", FieldType.DATE, True),
        ("Wed, 01 May 2024 10:00:00 GMT", FieldType.DATE, True),
        (1714557600000, FieldType.DATE, True),
        ("not a date", FieldType.DATE, False),
        ("", FieldType.DATE, False),
        (True, FieldType.DATE, False),
    ],
)
def test_matches_type(value: object, field_type: FieldType, expected: bool) -> None:
    assert matches_type(value, field_type) is expected


def test_missing_and_null_fields_are_not_checked() -> None:
    schema = {"age": FieldType.NUMBER, "name": FieldType.STRING}
    assert find_violation({"name": None}, schema) is None
    assert find_violation({}, schema) is None


def test_undeclared_fields_are_free_form() -> None:
    assert find_violation({"extra": [1, 2]}, {"age": FieldType.NUMBER}) is None


def test_violation_names_the_field() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_payload({"age": "x"}, {"age": FieldType.NUMBER})
    assert exc_info.value.status_code == 400
    assert "age" in exc_info.value.message
    assert "Number" in exc_info.value.message


def test_date_violation_message() -> None:
    assert find_violation({"at": "soon"}, {"at": FieldType.DATE}) == "Field 'at' expects a valid ISO Date string"


@pytest.mark.parametrize("value", ["app", "my-table_1", "v1.2", "A" * 128])
def test_valid_identifiers(value: str) -> None:
    assert check_identifier(value, "table name") == value


@pytest.mark.parametrize("value", ["", ".", "..", "a/b", "a b", "x" * 129, "ünïcode"])
def test_invalid_identifiers(value: str) -> None:
    with pytest.raises(ValidationError):
        check_identifier(value, "table name")
