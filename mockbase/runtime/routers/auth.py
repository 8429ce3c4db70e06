"""Workspace identity endpoints.

Thin HTTP adapter -- delegates to the identity store.
"""

from __future__ import annotations

import math

from fastapi import APIRouter, Request, Response, status

from mockbase.runtime.deps import TOKEN_COOKIE, AdminDep, CallerDep, Context, require_workspace_id
from mockbase.runtime.errors import ValidationError
from mockbase.runtime.managers.identity import parse_role
from mockbase.runtime.models.account import SessionRecord
from mockbase.runtime.models.api import LoginRequest, SecurityUpdate
from mockbase.runtime.models.enums import Role

router = APIRouter(prefix="/auth", tags=["auth"])


def _session_body(session: SessionRecord) -> dict[str, str]:
    return {"token": session.token, "expires_at": session.expires_at.isoformat(), "role": session.role.value}


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(ctx: Context) -> dict[str, str]:
    workspace_id = await ctx.identity.register()
    return {"message": "Registration successful", "workspaceId": workspace_id, "x-user-id": workspace_id}


@router.post("/login")
async def login(
    request: Request,
    response: Response,
    ctx: Context,
    body: LoginRequest | None = None,
) -> dict[str, str]:
    if not request.headers.get("x-user-id"):
        raise ValidationError("x-user-id header required")
    workspace_id = require_workspace_id(request)
    body = body or LoginRequest()

    session = await ctx.identity.login(workspace_id, parse_role(body.role), body.expires_in)
    if body.use_cookie:
        ttl_ms = body.expires_in or ctx.settings.session_ttl_ms
        response.set_cookie(
            TOKEN_COOKIE,
            session.token,
            max_age=math.ceil(ttl_ms / 1000),
            httponly=True,
            samesite="lax",
        )
    return {"message": "Login successful", **_session_body(session)}


@router.get("/security")
async def get_security(ctx: Context, caller: CallerDep) -> dict:
    policy = await ctx.identity.get_policy(caller.workspace_id)
    return policy.model_dump()


@router.patch("/security")
async def update_security(ctx: Context, caller: AdminDep, body: SecurityUpdate) -> dict:
    policy = await ctx.identity.update_policy(caller.workspace_id, body.validation)
    return {"message": "Security settings updated", **policy.model_dump()}


@router.patch("/update-uuid")
async def update_uuid(ctx: Context, caller: AdminDep) -> dict[str, str]:
    """Move the workspace to a fresh identifier; the old one stops resolving."""
    new_id, session = await ctx.identity.rotate(caller.workspace_id, Role.ADMIN)
    ctx.paths.rename_workspace(caller.workspace_id, new_id)
    return {
        "message": "UUID updated successfully",
        "workspaceId": new_id,
        "x-user-id": new_id,
        **_session_body(session),
    }


@router.delete("/account", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(ctx: Context, caller: AdminDep) -> None:
    await ctx.identity.delete(caller.workspace_id)
    ctx.paths.drop_workspace(caller.workspace_id)
