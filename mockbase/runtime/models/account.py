"""Workspace account document.

One account per workspace holds the append-only session list and the
selective-auth policy.  Containers are stored separately.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from mockbase.runtime.models.enums import HTTP_METHODS, Role


def _default_validation() -> dict[str, bool]:
    return dict.fromkeys(HTTP_METHODS, True)


class SessionRecord(BaseModel):
    """One issued login session."""

    token: str
    role: Role
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(tz=UTC)
        return now >= self.expires_at


class SecurityPolicy(BaseModel):
    """Per-method switch deciding whether a token is required at all."""

    validation: dict[str, bool] = Field(default_factory=_default_validation)

    def requires_token(self, method: str) -> bool:
        return self.validation.get(method.upper(), True)


class WorkspaceAccount(BaseModel):
    workspace_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    sessions: list[SessionRecord] = Field(default_factory=list)
    security: SecurityPolicy = Field(default_factory=SecurityPolicy)
