"""FastAPI dependencies: application context and request identity.

Usage in route handlers::

    @router.get("/containers")
    async def list_containers(ctx: Context, caller: CallerDep) -> dict:
        ...

    @router.patch("/auth/security")
    async def update_security(ctx: Context, caller: AdminDep, body: SecurityUpdate) -> dict:
        ...

Identity arrives in the ``x-user-id`` header.  A session token may be sent as
``Authorization: Bearer <token>``, as a ``CSRF-Token``/``x-csrf-token``
header or as the ``auth_token`` cookie, checked in that order.  An
``x-api-key`` equal to the workspace id grants admin without a token.

Whether a token is required at all depends on the workspace's selective-auth
policy for the request method.  When it is not required, a missing or
unusable token yields an anonymous caller (``role is None``).  Mutating
methods are refused for callers whose role is ``viewer``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request
from loguru import logger

from mockbase.runtime.context import AppContext
from mockbase.runtime.errors import AuthenticationError, AuthorizationError, MockbaseError
from mockbase.runtime.models.enums import MUTATING_METHODS, Role
from mockbase.runtime.validation import check_identifier

USER_ID_HEADER = "x-user-id"
API_KEY_HEADER = "x-api-key"
TOKEN_COOKIE = "auth_token"
_TOKEN_HEADERS = ("csrf-token", "x-csrf-token")


@dataclass(frozen=True)
class Caller:
    """The resolved identity of one request."""

    workspace_id: str
    role: Role | None = None


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def extract_token(request: Request) -> str | None:
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    for header in _TOKEN_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return request.cookies.get(TOKEN_COOKIE) or None


def require_workspace_id(request: Request) -> str:
    workspace_id = request.headers.get(USER_ID_HEADER)
    if not workspace_id:
        raise AuthenticationError("Unauthorized: Missing User ID")
    return check_identifier(workspace_id, "workspace id")


async def _authenticate(request: Request, ctx: AppContext, *, strict: bool) -> Caller:
    workspace_id = require_workspace_id(request)

    if request.headers.get(API_KEY_HEADER) == workspace_id:
        return Caller(workspace_id, Role.ADMIN)

    required = strict or (await ctx.identity.get_policy(workspace_id)).requires_token(request.method)
    token = extract_token(request)
    if token is None:
        if required:
            raise AuthenticationError("Unauthorized: Missing Token")
        return Caller(workspace_id)

    try:
        session = await ctx.identity.validate(workspace_id, token)
    except MockbaseError as exc:
        if required:
            logger.debug("Rejected token for workspace {}: {}", workspace_id, exc.message)
            raise
        return Caller(workspace_id)
    return Caller(workspace_id, session.role)


def _check_role(request: Request, caller: Caller) -> None:
    if request.method in MUTATING_METHODS and caller.role is Role.VIEWER:
        raise AuthorizationError("Forbidden: viewer role is read-only")


async def get_caller(request: Request, ctx: Annotated[AppContext, Depends(get_context)]) -> Caller:
    """Authenticate per the workspace policy, then apply RBAC."""
    caller = await _authenticate(request, ctx, strict=False)
    _check_role(request, caller)
    return caller


async def get_admin(request: Request, ctx: Annotated[AppContext, Depends(get_context)]) -> Caller:
    """Like ``get_caller``, but a valid token or API key is always required."""
    caller = await _authenticate(request, ctx, strict=True)
    if caller.role is not Role.ADMIN:
        raise AuthorizationError("Forbidden: admin role required")
    return caller


# -- Annotated type aliases for concise route signatures ---------------------

Context = Annotated[AppContext, Depends(get_context)]
"""Annotated dependency: the application context built at startup."""

CallerDep = Annotated[Caller, Depends(get_caller)]
"""Annotated dependency: caller identity under the workspace's auth policy."""

AdminDep = Annotated[Caller, Depends(get_admin)]
"""Annotated dependency: an authenticated admin caller."""
