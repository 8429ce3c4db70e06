"""Tests for idle workspace eviction."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from mockbase.runtime.context import AppContext
from mockbase.runtime.sweeper import sweep_idle_workspaces


async def test_recent_workspace_is_kept(context: AppContext) -> None:
    workspace_id = await context.identity.register()
    await context.dispatcher.create_record(workspace_id, "c", "t", {"a": 1})

    evicted = await sweep_idle_workspaces(context, timedelta(hours=1))

    assert evicted == []
    assert await context.dispatcher.list_containers(workspace_id) == ["c"]


async def test_idle_workspace_is_evicted(context: AppContext) -> None:
    workspace_id = await context.identity.register()
    await context.dispatcher.create_record(workspace_id, "c", "t", {"a": 1})
    later = datetime.now(tz=UTC) + timedelta(hours=2)

    evicted = await sweep_idle_workspaces(context, timedelta(hours=1), now=later)

    assert evicted == [workspace_id]
    assert await context.backend.read_account(workspace_id) is None
    assert await context.dispatcher.list_containers(workspace_id) == []


async def test_evicted_workspace_loses_aliases(context: AppContext) -> None:
    workspace_id = await context.identity.register()
    await context.dispatcher.init_table(workspace_id, "shop", "items", {"_customPaths": {"get": "/api/items"}})
    assert await context.paths.resolve(workspace_id, "GET", "/api/items") == "/shop/items"

    later = datetime.now(tz=UTC) + timedelta(days=1)
    await sweep_idle_workspaces(context, timedelta(hours=1), now=later)

    assert await context.paths.resolve(workspace_id, "GET", "/api/items") is None
