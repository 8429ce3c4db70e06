"""Domain exceptions.

Managers and stores raise these; the application translates them into HTTP
responses in one place (see ``app.py``).  Each class carries the status code
it maps to, plus an optional machine-readable ``code``.
"""

from __future__ import annotations


class MockbaseError(Exception):
    """Base class for errors rendered to the caller."""

    status_code: int = 500
    code: str | None = None

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class AuthenticationError(MockbaseError):
    """Missing identity, or a required token is missing, invalid or expired."""

    status_code = 401


class AuthorizationError(MockbaseError):
    """Authenticated, but the role does not permit the operation."""

    status_code = 403


class NotFoundError(MockbaseError, LookupError):
    """Container, table, record or column does not exist."""

    status_code = 404


class ValidationError(MockbaseError, ValueError):
    """Bad input: type mismatch, duplicate name, duplicate unique value."""

    status_code = 400


class ConflictError(MockbaseError):
    """A custom path alias is already registered by another table."""

    status_code = 409


class QuotaExceededError(MockbaseError):
    """Request body exceeds the configured size limit."""

    status_code = 413


class StorageError(MockbaseError):
    """The storage backend failed to complete an operation."""

    status_code = 500


class StorageUnavailableError(StorageError):
    """The storage backend could not be reached at startup."""
