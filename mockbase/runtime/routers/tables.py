"""Table and record endpoints.

Thin HTTP adapter -- delegates to the CRUD dispatcher.  Table management
sub-paths (``/rename``, ``/schema``, ...) are registered before the
``/{container}/{table}/{record_id}`` routes so they take precedence.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Annotated, Any

from fastapi import APIRouter, Body, Request, status

from mockbase.runtime.deps import CallerDep, Context
from mockbase.runtime.managers.dispatcher import Page, split_control
from mockbase.runtime.models.api import (
    CustomPathsUpdate,
    PrimaryKeyUpdate,
    SchemaDefinitionUpdate,
    SchemaTransform,
    TableRename,
)
from mockbase.runtime.models.container import Record, StructuredTable

router = APIRouter(tags=["tables"])

Payload = Annotated[dict[str, Any], Body()]


# -- Table management ---------------------------------------------------------


@router.patch("/{container}/{table}/rename")
async def rename_table(container: str, table: str, body: TableRename, ctx: Context, caller: CallerDep) -> dict:
    await ctx.dispatcher.rename_table(caller.workspace_id, container, table, body.new_name)
    return {"message": f"Table renamed to '{body.new_name}'", "newName": body.new_name}


@router.patch("/{container}/{table}/schema")
async def transform_table(container: str, table: str, body: SchemaTransform, ctx: Context, caller: CallerDep) -> dict:
    count = await ctx.dispatcher.transform_table(
        caller.workspace_id,
        container,
        table,
        remove=body.remove,
        rename=body.rename,
        set_=body.set_,
    )
    return {"message": "Schema bulk update applied", "count": count}


@router.patch("/{container}/{table}/schema-definition")
async def define_column(
    container: str,
    table: str,
    body: SchemaDefinitionUpdate,
    ctx: Context,
    caller: CallerDep,
) -> dict:
    schema = await ctx.dispatcher.define_column(
        caller.workspace_id,
        container,
        table,
        name=body.name,
        field_type=body.type,
        unique=body.unique,
        remove=body.remove,
    )
    return {"message": "Schema definition updated", "schema": {k: str(v) for k, v in schema.items()}}


@router.patch("/{container}/{table}/custom-paths")
async def update_custom_paths(
    container: str,
    table: str,
    body: CustomPathsUpdate,
    ctx: Context,
    caller: CallerDep,
) -> dict:
    custom_paths = await ctx.dispatcher.update_custom_paths(
        caller.workspace_id,
        container,
        table,
        additions=body.additions(),
        removals=body.removals(),
    )
    return {"message": "Custom paths updated", "customPaths": custom_paths}


@router.patch("/{container}/{table}/primary-key")
async def set_primary_key(container: str, table: str, body: PrimaryKeyUpdate, ctx: Context, caller: CallerDep) -> dict:
    field = await ctx.dispatcher.set_primary_key(caller.workspace_id, container, table, body.primary_key)
    return {"message": f"Primary key set to '{field}'", "primaryKey": field}


@router.delete("/{container}/{table}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_table(container: str, table: str, ctx: Context, caller: CallerDep) -> None:
    await ctx.dispatcher.delete_table(caller.workspace_id, container, table)


# -- Records ------------------------------------------------------------------


@router.post("/{container}/{table}", status_code=status.HTTP_201_CREATED)
async def create_record(container: str, table: str, payload: Payload, ctx: Context, caller: CallerDep) -> dict:
    """Insert a record, or only initialise the table when ``_init`` is set."""
    control, fields = split_control(payload)
    if control.get("_init") or (control and not fields):
        created = await ctx.dispatcher.init_table(caller.workspace_id, container, table, control)
        result: dict[str, Any] = {"message": "Table initialized", "table": table}
        if isinstance(created, StructuredTable):
            result.update(created.model_dump(mode="json", by_alias=True, exclude={"records"}))
        return result
    return await ctx.dispatcher.create_record(caller.workspace_id, container, table, fields, control)


@router.get("/{container}/{table}")
async def list_records(container: str, table: str, request: Request, ctx: Context, caller: CallerDep) -> Any:
    """Exact-match filters from the query string; ``page``/``limit`` paginate."""
    result = await ctx.dispatcher.list_records(
        caller.workspace_id,
        container,
        table,
        request.query_params.multi_items(),
    )
    if isinstance(result, Page):
        return asdict(result)
    return result


@router.get("/{container}/{table}/{record_id}")
async def get_record(container: str, table: str, record_id: str, ctx: Context, caller: CallerDep) -> Record:
    return await ctx.dispatcher.get_record(caller.workspace_id, container, table, record_id)


@router.put("/{container}/{table}/{record_id}")
async def replace_record(
    container: str,
    table: str,
    record_id: str,
    payload: Payload,
    ctx: Context,
    caller: CallerDep,
) -> Record:
    return await ctx.dispatcher.replace_record(caller.workspace_id, container, table, record_id, payload)


@router.patch("/{container}/{table}/{record_id}")
async def update_record(
    container: str,
    table: str,
    record_id: str,
    payload: Payload,
    ctx: Context,
    caller: CallerDep,
) -> Record:
    return await ctx.dispatcher.update_record(caller.workspace_id, container, table, record_id, payload)


@router.delete("/{container}/{table}/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_record(container: str, table: str, record_id: str, ctx: Context, caller: CallerDep) -> None:
    await ctx.dispatcher.delete_record(caller.workspace_id, container, table, record_id)
