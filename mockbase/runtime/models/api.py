"""API request schemas.

Record payloads are free-form JSON objects and are taken as plain dicts; the
schemas here cover the management endpoints, whose bodies have a fixed shape.
Field aliases keep the camelCase wire names used by existing clients.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from mockbase.runtime.models.enums import FieldType


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(_Body):
    role: str = "viewer"
    expires_in: int | None = Field(default=None, alias="expiresIn", gt=0, description="Session lifetime in ms.")
    use_cookie: bool = Field(default=False, alias="useCookie")


class SecurityUpdate(_Body):
    """Per-method token requirement, merged into the stored policy."""

    validation: dict[str, bool]


# ---------------------------------------------------------------------------
# Table management
# ---------------------------------------------------------------------------


class TableRename(_Body):
    new_name: str = Field(alias="newName", min_length=1)


class SchemaTransform(_Body):
    """Bulk record transform; applied as ``rename``, then ``remove``, then ``set``."""

    remove: list[str] = Field(default_factory=list)
    rename: dict[str, str] = Field(default_factory=dict)
    set_: dict[str, Any] = Field(default_factory=dict, alias="set")


class SchemaDefinitionUpdate(_Body):
    """Add a typed column (``name`` + ``type``) or drop one (``remove``)."""

    name: str | None = None
    type: FieldType | None = None
    unique: bool = False
    remove: str | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> SchemaDefinitionUpdate:
        if self.remove is None and not (self.name and self.type):
            msg = "Either 'remove' or both 'name' and 'type' are required"
            raise ValueError(msg)
        return self


class CustomPathsUpdate(_Body):
    """Accepts ``{customPaths: {...}}``, ``{method, path}`` or ``{remove: method}``."""

    custom_paths: dict[str, str] | None = Field(default=None, alias="customPaths")
    method: str | None = None
    path: str | None = None
    remove: str | list[str] | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> CustomPathsUpdate:
        if (self.method is None) != (self.path is None):
            msg = "'method' and 'path' must be given together"
            raise ValueError(msg)
        if self.custom_paths is None and self.method is None and self.remove is None:
            msg = "One of 'customPaths', 'method'/'path' or 'remove' is required"
            raise ValueError(msg)
        return self

    def additions(self) -> dict[str, str]:
        added = dict(self.custom_paths or {})
        if self.method is not None and self.path is not None:
            added[self.method] = self.path
        return added

    def removals(self) -> list[str]:
        if self.remove is None:
            return []
        return [self.remove] if isinstance(self.remove, str) else list(self.remove)


class PrimaryKeyUpdate(_Body):
    primary_key: str = Field(alias="primaryKey", min_length=1)
