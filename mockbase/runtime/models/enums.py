"""Shared enumerations used across the server."""

from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    ADMIN = "admin"
    VIEWER = "viewer"


class FieldType(StrEnum):
    """Column types accepted in a table schema."""

    STRING = "String"
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    DATE = "Date"


HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
