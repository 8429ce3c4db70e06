"""Unit tests for IdentityStore (local backend, no HTTP)."""

from __future__ import annotations

import asyncio

import jwt
import pytest

from mockbase.runtime.errors import AuthenticationError, ValidationError
from mockbase.runtime.locks import KeyedLocks
from mockbase.runtime.managers.identity import ALGORITHM, TOKEN_EXPIRED, IdentityStore, parse_role
from mockbase.runtime.models.enums import Role
from mockbase.runtime.store.local import LocalStorageBackend

SECRET = "identity-test-secret-0123456789abcdef"


@pytest.fixture
def store(tmp_path) -> LocalStorageBackend:
    return LocalStorageBackend(tmp_path)


@pytest.fixture
def identity(store: LocalStorageBackend) -> IdentityStore:
    return IdentityStore(store, KeyedLocks(), secret=SECRET, default_ttl_ms=60_000)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("admin", Role.ADMIN),
        ("ADMIN", Role.ADMIN),
        ("viewer", Role.VIEWER),
        ("owner", Role.VIEWER),
        (None, Role.VIEWER),
    ],
)
def test_parse_role(raw: str | None, expected: Role) -> None:
    assert parse_role(raw) is expected


async def test_register_creates_account(identity: IdentityStore, store: LocalStorageBackend) -> None:
    workspace_id = await identity.register()

    account = await store.read_account(workspace_id)
    assert account is not None
    assert account.sessions == []


async def test_login_issues_bound_token(identity: IdentityStore) -> None:
    workspace_id = await identity.register()
    session = await identity.login(workspace_id, Role.ADMIN)

    claims = jwt.decode(session.token, SECRET, algorithms=[ALGORITHM])
    assert claims["sub"] == workspace_id
    assert claims["role"] == "admin"

    validated = await identity.validate(workspace_id, session.token)
    assert validated.role is Role.ADMIN


async def test_login_upserts_unknown_workspace(identity: IdentityStore, store: LocalStorageBackend) -> None:
    session = await identity.login("adhoc-ws", Role.VIEWER)

    account = await store.read_account("adhoc-ws")
    assert account is not None
    assert [s.token for s in account.sessions] == [session.token]


async def test_sessions_are_appended(identity: IdentityStore) -> None:
    workspace_id = await identity.register()
    first = await identity.login(workspace_id, Role.ADMIN)
    second = await identity.login(workspace_id, Role.VIEWER)

    sessions = await identity.list_sessions(workspace_id)
    assert [s.token for s in sessions] == [first.token, second.token]
    # Both stay valid.
    assert (await identity.validate(workspace_id, first.token)).role is Role.ADMIN
    assert (await identity.validate(workspace_id, second.token)).role is Role.VIEWER


async def test_token_rejected_for_other_workspace(identity: IdentityStore) -> None:
    session = await identity.login("ws-a", Role.ADMIN)
    await identity.login("ws-b", Role.ADMIN)

    with pytest.raises(AuthenticationError):
        await identity.validate("ws-b", session.token)


async def test_foreign_signature_rejected(identity: IdentityStore) -> None:
    await identity.login("ws-a", Role.ADMIN)
    claims = {"sub": "ws-a", "role": "admin", "exp": 9999999999}
    forged = jwt.encode(claims, "another-secret-0123456789abcdef", algorithm=ALGORITHM)

    with pytest.raises(AuthenticationError):
        await identity.validate("ws-a", forged)


async def test_unknown_session_rejected(identity: IdentityStore) -> None:
    # Correctly signed, but never issued through login.
    token = jwt.encode({"sub": "ws-a", "role": "admin", "exp": 9999999999}, SECRET, algorithm=ALGORITHM)

    with pytest.raises(AuthenticationError):
        await identity.validate("ws-a", token)


async def test_session_expires_with_millisecond_precision(identity: IdentityStore) -> None:
    session = await identity.login("ws-a", Role.ADMIN, ttl_ms=100)
    assert (await identity.validate("ws-a", session.token)).role is Role.ADMIN

    await asyncio.sleep(0.2)

    with pytest.raises(AuthenticationError) as exc_info:
        await identity.validate("ws-a", session.token)
    assert exc_info.value.code == TOKEN_EXPIRED


async def test_policy_defaults_and_update(identity: IdentityStore) -> None:
    workspace_id = await identity.register()
    policy = await identity.get_policy(workspace_id)
    assert all(policy.requires_token(m) for m in ("GET", "POST", "PUT", "PATCH", "DELETE"))

    updated = await identity.update_policy(workspace_id, {"get": False})
    assert updated.requires_token("GET") is False
    assert updated.requires_token("POST") is True
    assert (await identity.get_policy(workspace_id)).requires_token("GET") is False


async def test_policy_rejects_unknown_method(identity: IdentityStore) -> None:
    with pytest.raises(ValidationError):
        await identity.update_policy("ws-a", {"TRACE": False})


async def test_rotate_moves_workspace(identity: IdentityStore, store: LocalStorageBackend) -> None:
    workspace_id = await identity.register()
    old = await identity.login(workspace_id, Role.ADMIN)
    await store.write_container(workspace_id, "app", {"t": [{"id": "1"}]})

    new_id, session = await identity.rotate(workspace_id, Role.ADMIN)

    assert new_id != workspace_id
    assert await store.read_container(new_id, "app") == {"t": [{"id": "1"}]}
    assert await store.read_container(workspace_id, "app") is None
    assert (await identity.validate(new_id, session.token)).role is Role.ADMIN
    # Old tokens were bound to the old identifier.
    with pytest.raises(AuthenticationError):
        await identity.validate(new_id, old.token)


async def test_delete_wipes_workspace(identity: IdentityStore, store: LocalStorageBackend) -> None:
    workspace_id = await identity.register()
    session = await identity.login(workspace_id, Role.ADMIN)
    await store.write_container(workspace_id, "app", {})

    await identity.delete(workspace_id)

    assert await store.read_account(workspace_id) is None
    assert await store.list_containers(workspace_id) == []
    with pytest.raises(AuthenticationError):
        await identity.validate(workspace_id, session.token)
