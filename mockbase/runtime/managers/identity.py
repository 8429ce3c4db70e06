"""Workspace identity and session store.

Workspaces are opaque UUIDs.  Each login appends a session (token, role,
expiry) to the workspace account; sessions are never edited in place.

Tokens are HS256 JWTs bound to the workspace (``sub``) and role.  A token is
accepted only when its signature verifies *and* it is present in the stored
session list *and* the stored expiry (millisecond precision) lies in the
future.  The JWT ``exp`` claim is rounded up to whole seconds, so the stored
expiry is the authoritative one.
"""

from __future__ import annotations

import hmac
import math
import uuid
from datetime import UTC, datetime, timedelta

import jwt
from loguru import logger

from mockbase.runtime.errors import AuthenticationError, ValidationError
from mockbase.runtime.locks import KeyedLocks
from mockbase.runtime.models.account import SecurityPolicy, SessionRecord, WorkspaceAccount
from mockbase.runtime.models.enums import HTTP_METHODS, Role
from mockbase.runtime.store.base import StorageBackend

ALGORITHM = "HS256"

TOKEN_EXPIRED = "token_expired"
INVALID_TOKEN = "invalid_token"


def parse_role(raw: str | None) -> Role:
    """Anything other than ``admin`` (case-insensitive) is a viewer."""
    return Role.ADMIN if (raw or "").strip().lower() == Role.ADMIN else Role.VIEWER


class IdentityStore:
    """Register workspaces, issue sessions and validate tokens."""

    def __init__(
        self,
        backend: StorageBackend,
        locks: KeyedLocks,
        *,
        secret: str,
        default_ttl_ms: int,
    ) -> None:
        self._backend = backend
        self._locks = locks
        self._secret = secret
        self._default_ttl_ms = default_ttl_ms

    def _lock(self, workspace_id: str):
        # Account writes share the lock namespace with containers; ``None``
        # can never be a container name.
        return self._locks.hold((workspace_id, None))

    # -- Registration ----------------------------------------------------------

    async def register(self) -> str:
        workspace_id = str(uuid.uuid4())
        await self._backend.write_account(WorkspaceAccount(workspace_id=workspace_id))
        logger.info("Registered workspace {}", workspace_id)
        return workspace_id

    # -- Sessions --------------------------------------------------------------

    async def login(self, workspace_id: str, role: Role, ttl_ms: int | None = None) -> SessionRecord:
        """Issue a new session, creating the account if the workspace has none."""
        ttl_ms = ttl_ms or self._default_ttl_ms
        now = datetime.now(tz=UTC)
        expires_at = now + timedelta(milliseconds=ttl_ms)
        session = SessionRecord(
            token=self._issue_token(workspace_id, role, now, expires_at),
            role=role,
            expires_at=expires_at,
        )
        async with self._lock(workspace_id):
            account = await self._backend.read_account(workspace_id) or WorkspaceAccount(workspace_id=workspace_id)
            account.sessions.append(session)
            await self._backend.write_account(account)
        logger.debug("Session issued for workspace {} (role={}, ttl={}ms)", workspace_id, role, ttl_ms)
        return session

    def _issue_token(self, workspace_id: str, role: Role, issued_at: datetime, expires_at: datetime) -> str:
        claims = {
            "sub": workspace_id,
            "role": role.value,
            "iat": int(issued_at.timestamp()),
            "exp": math.ceil(expires_at.timestamp()),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    async def validate(self, workspace_id: str, token: str) -> SessionRecord:
        """Return the live session for *token*.

        Raises ``AuthenticationError`` with code ``token_expired`` or
        ``invalid_token``.
        """
        try:
            claims = jwt.decode(token, self._secret, algorithms=[ALGORITHM], options={"require": ["sub", "exp"]})
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Session expired", code=TOKEN_EXPIRED) from None
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid or expired session", code=INVALID_TOKEN) from None

        if claims.get("sub") != workspace_id:
            raise AuthenticationError("Invalid or expired session", code=INVALID_TOKEN)

        account = await self._backend.read_account(workspace_id)
        sessions = account.sessions if account is not None else []
        session = next((s for s in sessions if hmac.compare_digest(s.token, token)), None)
        if session is None:
            raise AuthenticationError("Invalid or expired session", code=INVALID_TOKEN)
        if session.is_expired():
            raise AuthenticationError("Session expired", code=TOKEN_EXPIRED)
        return session

    async def list_sessions(self, workspace_id: str) -> list[SessionRecord]:
        account = await self._backend.read_account(workspace_id)
        return list(account.sessions) if account is not None else []

    # -- Selective auth policy -------------------------------------------------

    async def get_policy(self, workspace_id: str) -> SecurityPolicy:
        account = await self._backend.read_account(workspace_id)
        return account.security if account is not None else SecurityPolicy()

    async def update_policy(self, workspace_id: str, validation: dict[str, bool]) -> SecurityPolicy:
        changes = {method.upper(): enabled for method, enabled in validation.items()}
        unknown = sorted(set(changes) - set(HTTP_METHODS))
        if unknown:
            msg = f"Unknown HTTP method(s): {', '.join(unknown)}"
            raise ValidationError(msg)
        async with self._lock(workspace_id):
            account = await self._backend.read_account(workspace_id) or WorkspaceAccount(workspace_id=workspace_id)
            account.security.validation.update(changes)
            await self._backend.write_account(account)
        logger.info("Security policy updated for workspace {}: {}", workspace_id, account.security.validation)
        return account.security

    # -- Workspace lifecycle ---------------------------------------------------

    async def rotate(self, workspace_id: str, role: Role) -> tuple[str, SessionRecord]:
        """Move the workspace to a fresh identifier and issue a session for it."""
        new_id = str(uuid.uuid4())
        async with self._lock(workspace_id):
            await self._backend.rename_workspace(workspace_id, new_id)
        session = await self.login(new_id, role)
        logger.info("Workspace {} rotated to {}", workspace_id, new_id)
        return new_id, session

    async def delete(self, workspace_id: str) -> None:
        async with self._lock(workspace_id):
            await self._backend.delete_workspace(workspace_id)
        logger.info("Workspace {} deleted", workspace_id)
