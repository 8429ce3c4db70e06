"""Data models for the mockbase server."""

from mockbase.runtime.models.account import SecurityPolicy, SessionRecord, WorkspaceAccount
from mockbase.runtime.models.api import (
    CustomPathsUpdate,
    LoginRequest,
    PrimaryKeyUpdate,
    SchemaDefinitionUpdate,
    SchemaTransform,
    SecurityUpdate,
    TableRename,
)
from mockbase.runtime.models.container import (
    DEFAULT_PRIMARY_KEY,
    ContainerData,
    Record,
    StructuredTable,
    Table,
)
from mockbase.runtime.models.enums import HTTP_METHODS, MUTATING_METHODS, FieldType, Role

__all__ = [
    "DEFAULT_PRIMARY_KEY",
    "HTTP_METHODS",
    "MUTATING_METHODS",
    "ContainerData",
    "CustomPathsUpdate",
    "FieldType",
    "LoginRequest",
    "PrimaryKeyUpdate",
    "Record",
    "Role",
    "SchemaDefinitionUpdate",
    "SchemaTransform",
    "SecurityPolicy",
    "SecurityUpdate",
    "SessionRecord",
    "StructuredTable",
    "Table",
    "TableRename",
    "WorkspaceAccount",
]
