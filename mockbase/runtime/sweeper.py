"""Idle workspace eviction.

When ``MOCKBASE_IDLE_TTL_SECONDS`` is set, a background task started in the
application lifespan periodically deletes workspaces whose most recent write
is older than the TTL.  Best effort: a failed sweep is logged and retried on
the next interval.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from loguru import logger

from mockbase.runtime.context import AppContext


async def sweep_idle_workspaces(ctx: AppContext, ttl: timedelta, now: datetime | None = None) -> list[str]:
    """Delete every workspace idle for longer than *ttl*.  Returns the deleted ids."""
    cutoff = (now or datetime.now(tz=UTC)) - ttl
    evicted: list[str] = []
    for activity in await ctx.backend.list_workspaces():
        if activity.last_activity >= cutoff:
            continue
        await ctx.identity.delete(activity.workspace_id)
        ctx.paths.drop_workspace(activity.workspace_id)
        evicted.append(activity.workspace_id)
    if evicted:
        logger.info("Evicted {} idle workspace(s)", len(evicted))
    return evicted


async def run_sweeper(ctx: AppContext, ttl_seconds: int, interval_seconds: int) -> None:
    """Sweep forever; cancel the task to stop."""
    ttl = timedelta(seconds=ttl_seconds)
    logger.info("Idle sweeper started (ttl={}s, interval={}s)", ttl_seconds, interval_seconds)
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await sweep_idle_workspaces(ctx, ttl)
        except Exception:
            logger.exception("Idle workspace sweep failed")
