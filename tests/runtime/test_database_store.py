"""Integration tests for DatabaseStorageBackend against real PostgreSQL."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mockbase.runtime.errors import StorageError
from mockbase.runtime.models.account import SessionRecord, WorkspaceAccount
from mockbase.runtime.models.container import StructuredTable
from mockbase.runtime.models.enums import FieldType, Role
from mockbase.runtime.store.database import DatabaseStorageBackend

pytestmark = pytest.mark.integration


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> DatabaseStorageBackend:
    return DatabaseStorageBackend(session_factory)


async def test_startup(store: DatabaseStorageBackend) -> None:
    await store.startup()


async def test_container_upsert_and_read(store: DatabaseStorageBackend) -> None:
    await store.write_container("ws-1", "app", {"todos": [{"id": "1"}]})
    await store.write_container(
        "ws-1",
        "app",
        {"users": StructuredTable(schema_={"age": FieldType.NUMBER}, records=[{"id": "u", "age": 3}])},
    )

    result = await store.read_container("ws-1", "app")
    assert result is not None
    assert set(result) == {"users"}
    users = result["users"]
    assert isinstance(users, StructuredTable)
    assert users.schema_ == {"age": FieldType.NUMBER}
    assert users.records == [{"id": "u", "age": 3}]


async def test_read_missing_container(store: DatabaseStorageBackend) -> None:
    assert await store.read_container("ws-1", "nope") is None


async def test_delete_and_list_containers(store: DatabaseStorageBackend) -> None:
    await store.write_container("ws-1", "b", {})
    await store.write_container("ws-1", "a", {})
    await store.write_container("ws-2", "c", {})

    assert await store.list_containers("ws-1") == ["a", "b"]
    assert await store.delete_container("ws-1", "a") is True
    assert await store.delete_container("ws-1", "a") is False
    assert await store.list_containers("ws-1") == ["b"]


async def test_account_round_trip(store: DatabaseStorageBackend) -> None:
    expires = datetime.now(tz=UTC) + timedelta(minutes=5)
    account = WorkspaceAccount(
        workspace_id="ws-1",
        sessions=[SessionRecord(token="t1", role=Role.VIEWER, expires_at=expires)],
    )
    await store.write_account(account)
    account.security.validation["DELETE"] = False
    await store.write_account(account)

    result = await store.read_account("ws-1")
    assert result is not None
    assert [s.token for s in result.sessions] == ["t1"]
    assert result.sessions[0].role is Role.VIEWER
    assert result.security.requires_token("DELETE") is False


async def test_rename_workspace(store: DatabaseStorageBackend) -> None:
    await store.write_account(WorkspaceAccount(workspace_id="old"))
    await store.write_container("old", "app", {"t": [{"id": "1"}]})

    await store.rename_workspace("old", "new")

    assert await store.read_account("old") is None
    assert await store.read_container("old", "app") is None
    assert await store.read_account("new") is not None
    assert await store.read_container("new", "app") == {"t": [{"id": "1"}]}


async def test_rename_workspace_refuses_existing_target(store: DatabaseStorageBackend) -> None:
    await store.write_container("old", "app", {})
    await store.write_container("taken", "app", {})

    with pytest.raises(StorageError):
        await store.rename_workspace("old", "taken")

    assert await store.list_containers("old") == ["app"]


async def test_delete_workspace_and_list_workspaces(store: DatabaseStorageBackend) -> None:
    await store.write_account(WorkspaceAccount(workspace_id="ws-1"))
    await store.write_container("ws-1", "app", {})
    await store.write_container("ws-2", "app", {})

    assert {a.workspace_id for a in await store.list_workspaces()} >= {"ws-1", "ws-2"}

    await store.delete_workspace("ws-1")

    assert await store.read_account("ws-1") is None
    assert await store.list_containers("ws-1") == []
    assert "ws-1" not in {a.workspace_id for a in await store.list_workspaces()}
