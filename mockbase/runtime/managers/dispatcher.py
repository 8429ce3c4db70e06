"""Container, table and record operations.

Every mutation is a whole-container read-modify-write performed while
holding the ``(workspace, container)`` lock::

    read container -> change tables in memory -> write container -> refresh alias index

Operations that register custom path aliases first take the workspace-wide
alias lock, so two containers cannot claim the same alias at once.

If the change raises, nothing is written.  The primary-key field of a table
is resolved before each record operation: ``id`` unless the table assigns
another one explicitly.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import AbstractAsyncContextManager, asynccontextmanager, nullcontext
from dataclasses import dataclass
from typing import Any

from loguru import logger

from mockbase.runtime.errors import NotFoundError, ValidationError
from mockbase.runtime.locks import KeyedLocks
from mockbase.runtime.managers.paths import ALIAS_LOCK, CustomPathIndex, normalize_aliases
from mockbase.runtime.models.account import SecurityPolicy, SessionRecord
from mockbase.runtime.models.container import (
    ContainerData,
    Record,
    StructuredTable,
    Table,
    ensure_structured,
    table_primary_key,
    table_records,
    table_schema,
    table_unique_fields,
)
from mockbase.runtime.models.enums import FieldType, Role
from mockbase.runtime.store.base import StorageBackend
from mockbase.runtime.validation import check_identifier, validate_payload

CONTROL_KEYS = ("_init", "_schema", "_customPaths", "_primaryKey", "_unique")
"""Body keys that configure a table instead of becoming record fields."""

PAGINATION_KEYS = ("page", "limit")
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10


@dataclass(frozen=True)
class Page:
    page: int
    limit: int
    total: int
    data: list[Record]


def as_query_text(value: Any) -> str:
    """Render a stored value the way it appears in a query string."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, dict | list):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _parse_positive(raw: str | None, default: int) -> int:
    try:
        value = int(raw) if raw else default
    except ValueError:
        return default
    return value if value >= 1 else default


def split_control(payload: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split a POST body into (control options, record fields)."""
    control = {k: payload[k] for k in CONTROL_KEYS if k in payload}
    fields = {k: v for k, v in payload.items() if k not in CONTROL_KEYS}
    return control, fields


class Dispatcher:
    """Generic CRUD over workspace containers."""

    def __init__(self, backend: StorageBackend, locks: KeyedLocks, paths: CustomPathIndex) -> None:
        self._backend = backend
        self._locks = locks
        self._paths = paths

    # -- Plumbing --------------------------------------------------------------

    @asynccontextmanager
    async def _mutate(self, workspace_id: str, container: str, *, create: bool = False) -> AsyncIterator[ContainerData]:
        check_identifier(container, "container name")
        async with self._locks.hold((workspace_id, container)):
            data = await self._backend.read_container(workspace_id, container)
            if data is None:
                if not create:
                    raise NotFoundError(f"Container '{container}' not found")
                data = {}
            yield data
            await self._backend.write_container(workspace_id, container, data)
            self._paths.refresh_container(workspace_id, container, data)

    def _alias_guard(self, workspace_id: str, registering: bool) -> AbstractAsyncContextManager[None]:
        """Serialise alias registration across every container of a workspace.

        Taken before the container lock, so a check-then-write of aliases in
        one container cannot interleave with another container's.
        """
        if not registering:
            return nullcontext()
        return self._locks.hold((workspace_id, ALIAS_LOCK))

    async def _read(self, workspace_id: str, container: str) -> ContainerData:
        check_identifier(container, "container name")
        data = await self._backend.read_container(workspace_id, container)
        if data is None:
            raise NotFoundError(f"Container '{container}' not found")
        return data

    @staticmethod
    def _table(data: ContainerData, name: str) -> Table:
        table = data.get(name)
        if table is None:
            raise NotFoundError(f"Table '{name}' not found")
        return table

    @staticmethod
    def _find(records: list[Record], pk: str, record_id: str) -> int:
        for index, record in enumerate(records):
            if pk in record and as_query_text(record[pk]) == record_id:
                return index
        raise NotFoundError("Record not found")

    @staticmethod
    def _ensure_unique(
        records: list[Record],
        fields: Iterable[str],
        candidate: Record,
        skip: int | None = None,
    ) -> None:
        for field in fields:
            value = candidate.get(field)
            if value is None:
                continue
            text = as_query_text(value)
            for index, record in enumerate(records):
                if index != skip and record.get(field) is not None and as_query_text(record[field]) == text:
                    raise ValidationError(f"Validation Error: Field '{field}' must be unique")

    # -- Containers ------------------------------------------------------------

    async def list_containers(self, workspace_id: str) -> list[str]:
        return await self._backend.list_containers(workspace_id)

    async def delete_container(self, workspace_id: str, container: str) -> None:
        check_identifier(container, "container name")
        async with self._locks.hold((workspace_id, container)):
            existed = await self._backend.delete_container(workspace_id, container)
            self._paths.refresh_container(workspace_id, container, None)
        if not existed:
            raise NotFoundError(f"Container '{container}' not found")
        logger.info("Container {}/{} deleted", workspace_id, container)

    # -- Table configuration ---------------------------------------------------

    async def _configure(
        self,
        workspace_id: str,
        container: str,
        data: ContainerData,
        table: str,
        control: Mapping[str, Any],
    ) -> Table:
        """Create *table* if missing and apply ``_schema``/``_customPaths``/... options."""
        check_identifier(table, "table name")
        metadata = {k: v for k, v in control.items() if k != "_init"}
        if table not in data:
            data[table] = StructuredTable() if metadata else []
        if not metadata:
            return data[table]

        structured = ensure_structured(data, table)
        if "_schema" in metadata:
            structured.schema_.update(_parse_schema(metadata["_schema"]))
        if "_unique" in metadata:
            for field in _parse_field_list(metadata["_unique"], "_unique"):
                if field not in structured.unique:
                    structured.unique.append(field)
            self._ensure_unique_table(structured)
        if "_primaryKey" in metadata:
            _assign_primary_key(structured, _parse_field_name(metadata["_primaryKey"], "_primaryKey"))
        if "_customPaths" in metadata:
            raw = metadata["_customPaths"]
            if not isinstance(raw, dict):
                raise ValidationError("'_customPaths' must be an object")
            aliases = normalize_aliases(raw)
            await self._paths.ensure_available(workspace_id, container, table, aliases)
            structured.custom_paths.update(aliases)
        return structured

    async def init_table(self, workspace_id: str, container: str, table: str, control: Mapping[str, Any]) -> Table:
        async with (
            self._alias_guard(workspace_id, "_customPaths" in control),
            self._mutate(workspace_id, container, create=True) as data,
        ):
            result = await self._configure(workspace_id, container, data, table, control)
        logger.info("Table {}/{}/{} initialised", workspace_id, container, table)
        return result

    async def delete_table(self, workspace_id: str, container: str, table: str) -> None:
        async with self._mutate(workspace_id, container) as data:
            self._table(data, table)
            del data[table]

    async def rename_table(self, workspace_id: str, container: str, table: str, new_name: str) -> None:
        check_identifier(new_name, "table name")
        async with self._mutate(workspace_id, container) as data:
            self._table(data, table)
            if new_name in data:
                raise ValidationError(f"Table '{new_name}' already exists")
            data[new_name] = data.pop(table)

    async def transform_table(
        self,
        workspace_id: str,
        container: str,
        table: str,
        *,
        remove: list[str],
        rename: dict[str, str],
        set_: dict[str, Any],
    ) -> int:
        """Apply ``rename``, then ``remove``, then ``set`` to every record.  Returns the record count."""
        async with self._mutate(workspace_id, container) as data:
            current = self._table(data, table)
            pk = table_primary_key(current)
            if pk in rename or pk in rename.values() or pk in remove or pk in set_:
                raise ValidationError(f"Primary key field '{pk}' cannot be changed by a bulk transform")
            validate_payload(set_, table_schema(current))

            records = table_records(current)
            for record in records:
                for old, new in rename.items():
                    if old not in record or old == new:
                        continue
                    if new in record:
                        raise ValidationError(f"Cannot rename '{old}' to '{new}': field already exists")
                    record[new] = record.pop(old)
                for field in remove:
                    record.pop(field, None)
                record.update(set_)
            self._ensure_unique_table(current)
            return len(records)

    def _ensure_unique_table(self, table: Table) -> None:
        records = table_records(table)
        for field in (table_primary_key(table), *table_unique_fields(table)):
            seen = [r[field] for r in records if r.get(field) is not None]
            if len(seen) != len({as_query_text(v) for v in seen}):
                raise ValidationError(f"Validation Error: Field '{field}' must be unique")

    async def define_column(
        self,
        workspace_id: str,
        container: str,
        table: str,
        *,
        name: str | None = None,
        field_type: FieldType | None = None,
        unique: bool = False,
        remove: str | None = None,
    ) -> dict[str, FieldType]:
        """Add or drop a typed column.  Records are left untouched."""
        async with self._mutate(workspace_id, container) as data:
            self._table(data, table)
            structured = ensure_structured(data, table)
            if remove is not None:
                if remove not in structured.schema_:
                    raise NotFoundError(f"Column '{remove}' not found")
                del structured.schema_[remove]
                if remove in structured.unique:
                    structured.unique.remove(remove)
            else:
                if not name or field_type is None:
                    raise ValidationError("Either 'remove' or both 'name' and 'type' are required")
                if name in structured.schema_:
                    raise ValidationError(f"Column '{name}' already exists")
                structured.schema_[name] = field_type
                if unique and name not in structured.unique:
                    structured.unique.append(name)
                    self._ensure_unique_table(structured)
            return dict(structured.schema_)

    async def update_custom_paths(
        self,
        workspace_id: str,
        container: str,
        table: str,
        *,
        additions: dict[str, str],
        removals: list[str],
    ) -> dict[str, str]:
        aliases = normalize_aliases(additions)
        async with self._alias_guard(workspace_id, bool(aliases)), self._mutate(workspace_id, container) as data:
            self._table(data, table)
            structured = ensure_structured(data, table)
            await self._paths.ensure_available(workspace_id, container, table, aliases)
            for method in removals:
                structured.custom_paths.pop(method.strip().lower(), None)
            structured.custom_paths.update(aliases)
            result = dict(structured.custom_paths)
        logger.info("Custom paths for {}/{}/{}: {}", workspace_id, container, table, result)
        return result

    async def set_primary_key(self, workspace_id: str, container: str, table: str, field: str) -> str:
        field = _parse_field_name(field, "primaryKey")
        async with self._mutate(workspace_id, container) as data:
            self._table(data, table)
            _assign_primary_key(ensure_structured(data, table), field)
        return field

    # -- Records ---------------------------------------------------------------

    async def create_record(
        self,
        workspace_id: str,
        container: str,
        table: str,
        fields: Mapping[str, Any],
        control: Mapping[str, Any] | None = None,
    ) -> Record:
        control = control or {}
        async with (
            self._alias_guard(workspace_id, "_customPaths" in control),
            self._mutate(workspace_id, container, create=True) as data,
        ):
            current = await self._configure(workspace_id, container, data, table, control)
            records = table_records(current)
            pk = table_primary_key(current)
            validate_payload(fields, table_schema(current))

            supplied = fields.get(pk)
            explicit = isinstance(current, StructuredTable) and current.primary_key is not None
            if explicit and supplied is not None:
                _check_key_value(pk, supplied)
                self._ensure_unique(records, [pk], {pk: supplied})
                record_id = supplied
            else:
                record_id = str(uuid.uuid4())

            record: Record = {pk: record_id, **{k: v for k, v in fields.items() if k != pk}}
            self._ensure_unique(records, table_unique_fields(current), record)
            records.append(record)
        return record

    async def list_records(
        self,
        workspace_id: str,
        container: str,
        table: str,
        query: Iterable[tuple[str, str]] = (),
    ) -> list[Record] | Page:
        """Exact-match filters (AND), then optional ``page``/``limit`` slicing."""
        data = await self._read(workspace_id, container)
        records = table_records(self._table(data, table))

        filters: list[tuple[str, str]] = []
        paging: dict[str, str] = {}
        for key, value in query:
            if key in PAGINATION_KEYS:
                paging[key] = value
            else:
                filters.append((key, value))

        if filters:
            records = [
                r for r in records if all(k in r and as_query_text(r[k]) == v for k, v in filters)
            ]

        if not any(paging.values()):
            return records

        page = _parse_positive(paging.get("page"), DEFAULT_PAGE)
        limit = _parse_positive(paging.get("limit"), DEFAULT_LIMIT)
        start = (page - 1) * limit
        return Page(page=page, limit=limit, total=len(records), data=records[start : start + limit])

    async def get_record(self, workspace_id: str, container: str, table: str, record_id: str) -> Record:
        data = await self._read(workspace_id, container)
        current = self._table(data, table)
        records = table_records(current)
        return records[self._find(records, table_primary_key(current), record_id)]

    async def replace_record(
        self,
        workspace_id: str,
        container: str,
        table: str,
        record_id: str,
        fields: Mapping[str, Any],
    ) -> Record:
        """Overwrite every field except the primary key."""
        fields = {k: v for k, v in fields.items() if k not in CONTROL_KEYS}
        async with self._mutate(workspace_id, container) as data:
            current = self._table(data, table)
            records = table_records(current)
            pk = table_primary_key(current)
            index = self._find(records, pk, record_id)
            validate_payload(fields, table_schema(current))

            record: Record = {pk: records[index][pk], **{k: v for k, v in fields.items() if k != pk}}
            self._ensure_unique(records, table_unique_fields(current), record, skip=index)
            records[index] = record
        return record

    async def update_record(
        self,
        workspace_id: str,
        container: str,
        table: str,
        record_id: str,
        fields: Mapping[str, Any],
    ) -> Record:
        """Shallow-merge the supplied fields; the primary key is kept."""
        fields = {k: v for k, v in fields.items() if k not in CONTROL_KEYS}
        async with self._mutate(workspace_id, container) as data:
            current = self._table(data, table)
            records = table_records(current)
            pk = table_primary_key(current)
            index = self._find(records, pk, record_id)
            validate_payload(fields, table_schema(current))

            record = {**records[index], **{k: v for k, v in fields.items() if k != pk}}
            self._ensure_unique(records, [f for f in table_unique_fields(current) if f in fields], record, skip=index)
            records[index] = record
        return record

    async def delete_record(self, workspace_id: str, container: str, table: str, record_id: str) -> None:
        async with self._mutate(workspace_id, container) as data:
            current = self._table(data, table)
            records = table_records(current)
            del records[self._find(records, table_primary_key(current), record_id)]

    # -- Introspection ---------------------------------------------------------

    async def introspect(
        self,
        workspace_id: str,
        role: Role | None,
        sessions: list[SessionRecord],
        security: SecurityPolicy,
    ) -> dict[str, Any]:
        """Dump every container and table of the workspace.  Session tokens are omitted."""
        storage: dict[str, dict[str, Any]] = {}
        for name in await self._backend.list_containers(workspace_id):
            data = await self._backend.read_container(workspace_id, name)
            storage[name] = {}
            for table_name, table in (data or {}).items():
                records = table_records(table)
                storage[name][table_name] = {
                    "count": len(records),
                    "schema_preview": list(records[0].keys()) if records else [],
                    "schema": {k: str(v) for k, v in table_schema(table).items()},
                    "customPaths": dict(table.custom_paths) if isinstance(table, StructuredTable) else {},
                    "primaryKey": table_primary_key(table),
                    "unique": list(table_unique_fields(table)),
                    "data": records,
                }
        return {
            "workspaceId": workspace_id,
            "role": role.value if role is not None else None,
            "sessions": [
                {"role": s.role.value, "expires_at": s.expires_at.isoformat(), "expired": s.is_expired()}
                for s in sessions
            ],
            "security": security.model_dump(),
            "storage": storage,
        }


# -- Option parsing ------------------------------------------------------------


def _parse_schema(raw: Any) -> dict[str, FieldType]:
    if not isinstance(raw, dict):
        raise ValidationError("'_schema' must be an object mapping field names to types")
    schema: dict[str, FieldType] = {}
    for field, type_name in raw.items():
        try:
            schema[field] = FieldType(type_name)
        except ValueError:
            allowed = ", ".join(t.value for t in FieldType)
            msg = f"Unsupported type '{type_name}' for field '{field}' (expected one of {allowed})"
            raise ValidationError(msg) from None
    return schema


def _parse_field_name(raw: Any, option: str) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError(f"'{option}' must be a non-empty field name")
    return raw.strip()


def _parse_field_list(raw: Any, option: str) -> list[str]:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        raise ValidationError(f"'{option}' must be a list of field names")
    return [_parse_field_name(item, option) for item in raw]


def _check_key_value(field: str, value: Any) -> None:
    if isinstance(value, dict | list):
        raise ValidationError(f"Primary key '{field}' must be a string, number or boolean")


def _assign_primary_key(table: StructuredTable, field: str) -> None:
    """Make *field* the primary key, backfilling records that lack a value."""
    seen: set[str] = set()
    for record in table.records:
        value = record.get(field)
        if value is None:
            continue
        _check_key_value(field, value)
        text = as_query_text(value)
        if text in seen:
            raise ValidationError(f"Cannot use '{field}' as primary key: duplicate value '{text}'")
        seen.add(text)
    for record in table.records:
        if record.get(field) is None:
            record[field] = str(uuid.uuid4())
    table.primary_key = field
