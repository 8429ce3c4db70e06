"""Container document model.

A container is persisted as a single JSON document mapping table names to
tables.  A table is either a bare list of records, or a structured table
that additionally carries a type schema, custom path aliases and primary-key
metadata::

    {
      "todos": [{"id": "4f1c...", "title": "write docs"}],
      "users": {
        "_schema": {"age": "Number"},
        "customPaths": {"get": "/api/v1/users"},
        "primaryKey": "user_id",
        "unique": ["email"],
        "records": [{"user_id": "u-1", "email": "a@b.c", "age": 31}]
      }
    }

The first schema, alias or primary-key mutation upgrades a bare table to the
structured form in place, keeping its records untouched.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from mockbase.runtime.models.enums import FieldType

DEFAULT_PRIMARY_KEY = "id"

Record = dict[str, Any]


class StructuredTable(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schema_: dict[str, FieldType] = Field(default_factory=dict, alias="_schema")
    custom_paths: dict[str, str] = Field(default_factory=dict, alias="customPaths")
    primary_key: str | None = Field(default=None, alias="primaryKey")
    """Explicitly assigned primary-key field; ``None`` means the default ``id``."""
    unique: list[str] = Field(default_factory=list)
    records: list[Record] = Field(default_factory=list)

    @property
    def pk(self) -> str:
        return self.primary_key or DEFAULT_PRIMARY_KEY


Table = StructuredTable | list[Record]
ContainerData = dict[str, Table]

_container_adapter: TypeAdapter[ContainerData] = TypeAdapter(ContainerData)


# -- Serialisation ---------------------------------------------------------------


def parse_container(raw: str | bytes) -> ContainerData:
    return _container_adapter.validate_json(raw)


def container_from_python(obj: Any) -> ContainerData:
    return _container_adapter.validate_python(obj)


def dump_container(data: ContainerData) -> str:
    return _container_adapter.dump_json(data, by_alias=True, indent=2).decode("utf-8")


def container_to_python(data: ContainerData) -> dict[str, Any]:
    return _container_adapter.dump_python(data, mode="json", by_alias=True)


# -- Table accessors -------------------------------------------------------------


def table_records(table: Table) -> list[Record]:
    return table.records if isinstance(table, StructuredTable) else table


def table_primary_key(table: Table) -> str:
    return table.pk if isinstance(table, StructuredTable) else DEFAULT_PRIMARY_KEY


def table_schema(table: Table) -> dict[str, FieldType]:
    return table.schema_ if isinstance(table, StructuredTable) else {}


def table_unique_fields(table: Table) -> list[str]:
    return table.unique if isinstance(table, StructuredTable) else []


def table_custom_paths(table: Table) -> dict[str, str]:
    return table.custom_paths if isinstance(table, StructuredTable) else {}


def ensure_structured(data: ContainerData, name: str) -> StructuredTable:
    """Return the structured form of ``data[name]``, upgrading a bare list in place."""
    table = data[name]
    if isinstance(table, StructuredTable):
        return table
    upgraded = StructuredTable(records=table)
    data[name] = upgraded
    return upgraded
