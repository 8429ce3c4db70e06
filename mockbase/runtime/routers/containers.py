"""Workspace-level endpoints: introspection and container management."""

from __future__ import annotations

from fastapi import APIRouter, status

from mockbase.runtime.deps import CallerDep, Context

router = APIRouter(tags=["containers"])


@router.get("/introspect")
async def introspect(ctx: Context, caller: CallerDep) -> dict:
    """Dump the whole workspace: every container, table, schema and record."""
    sessions = await ctx.identity.list_sessions(caller.workspace_id)
    policy = await ctx.identity.get_policy(caller.workspace_id)
    return await ctx.dispatcher.introspect(caller.workspace_id, caller.role, sessions, policy)


@router.get("/containers")
async def list_containers(ctx: Context, caller: CallerDep) -> dict[str, list[str]]:
    return {"containers": await ctx.dispatcher.list_containers(caller.workspace_id)}


@router.delete("/containers/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_container(name: str, ctx: Context, caller: CallerDep) -> None:
    await ctx.dispatcher.delete_container(caller.workspace_id, name)
