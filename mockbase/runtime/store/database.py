"""PostgreSQL storage backend.

Accounts and containers live in two tables (see ``db/tables.py``), with the
documents themselves held in JSONB columns::

    workspaces(workspace_id PK, sessions, security, created_at, updated_at)
    containers(workspace_id, name, data, created_at, updated_at)  PK (workspace_id, name)

A container write is a single ``INSERT ... ON CONFLICT DO UPDATE``, which
replaces the document atomically.  Workspace rename and delete touch both
tables inside one transaction, so a failure leaves the old state intact.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from mockbase.runtime.db.tables import Container, Workspace
from mockbase.runtime.errors import StorageError, StorageUnavailableError
from mockbase.runtime.models.account import WorkspaceAccount
from mockbase.runtime.models.container import ContainerData, container_from_python, container_to_python
from mockbase.runtime.store.base import WorkspaceActivity


class DatabaseStorageBackend:
    """SQLAlchemy (async) implementation of the StorageBackend protocol.

    *session_factory* is used for every operation.  When *engine* is given it
    is disposed on ``close()``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine

    # -- Lifecycle -------------------------------------------------------------

    async def startup(self) -> None:
        try:
            async with self._session_factory() as db:
                await db.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            msg = f"Database is not reachable: {exc}"
            raise StorageUnavailableError(msg) from exc

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    # -- Accounts --------------------------------------------------------------

    async def read_account(self, workspace_id: str) -> WorkspaceAccount | None:
        async with self._session_factory() as db:
            row = await db.get(Workspace, workspace_id)
            if row is None:
                return None
            return WorkspaceAccount.model_validate(
                {
                    "workspace_id": row.workspace_id,
                    "created_at": row.created_at,
                    "sessions": row.sessions,
                    "security": row.security,
                }
            )

    async def write_account(self, account: WorkspaceAccount) -> None:
        payload = account.model_dump(mode="json")
        stmt = pg_insert(Workspace).values(
            workspace_id=account.workspace_id,
            sessions=payload["sessions"],
            security=payload["security"],
            created_at=account.created_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Workspace.workspace_id],
            set_={
                "sessions": stmt.excluded.sessions,
                "security": stmt.excluded.security,
                "updated_at": func.now(),
            },
        )
        async with self._session_factory() as db:
            await db.execute(stmt)
            await db.commit()

    # -- Containers ------------------------------------------------------------

    async def read_container(self, workspace_id: str, name: str) -> ContainerData | None:
        async with self._session_factory() as db:
            row = await db.get(Container, (workspace_id, name))
            if row is None:
                return None
            return container_from_python(row.data)

    async def write_container(self, workspace_id: str, name: str, data: ContainerData) -> None:
        stmt = pg_insert(Container).values(workspace_id=workspace_id, name=name, data=container_to_python(data))
        stmt = stmt.on_conflict_do_update(
            index_elements=[Container.workspace_id, Container.name],
            set_={"data": stmt.excluded.data, "updated_at": func.now()},
        )
        async with self._session_factory() as db:
            await db.execute(stmt)
            await db.commit()

    async def delete_container(self, workspace_id: str, name: str) -> bool:
        stmt = delete(Container).where(Container.workspace_id == workspace_id, Container.name == name)
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            await db.commit()
        return result.rowcount > 0

    async def list_containers(self, workspace_id: str) -> list[str]:
        stmt = select(Container.name).where(Container.workspace_id == workspace_id).order_by(Container.name)
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    # -- Workspaces ------------------------------------------------------------

    async def delete_workspace(self, workspace_id: str) -> None:
        async with self._session_factory() as db:
            await db.execute(delete(Container).where(Container.workspace_id == workspace_id))
            await db.execute(delete(Workspace).where(Workspace.workspace_id == workspace_id))
            await db.commit()

    async def rename_workspace(self, old_id: str, new_id: str) -> None:
        async with self._session_factory() as db:
            try:
                taken = await db.execute(
                    select(Container.name).where(Container.workspace_id == new_id).limit(1),
                )
                if await db.get(Workspace, new_id) is not None or taken.first() is not None:
                    msg = f"Target workspace already exists: {new_id}"
                    raise StorageError(msg)
                await db.execute(
                    update(Workspace)
                    .where(Workspace.workspace_id == old_id)
                    .values(workspace_id=new_id)
                    .execution_options(synchronize_session=False)
                )
                await db.execute(
                    update(Container)
                    .where(Container.workspace_id == old_id)
                    .values(workspace_id=new_id)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
            except SQLAlchemyError as exc:
                # Closing the session rolls the transaction back.
                msg = f"Failed to rename workspace {old_id}: {exc}"
                raise StorageError(msg) from exc

    async def list_workspaces(self) -> list[WorkspaceActivity]:
        async with self._session_factory() as db:
            accounts = await db.execute(select(Workspace.workspace_id, Workspace.updated_at))
            containers = await db.execute(
                select(Container.workspace_id, func.max(Container.updated_at)).group_by(Container.workspace_id)
            )
            rows = [*accounts.all(), *containers.all()]

        latest: dict[str, datetime] = {}
        for workspace_id, updated_at in rows:
            if workspace_id not in latest or updated_at > latest[workspace_id]:
                latest[workspace_id] = updated_at
        return [WorkspaceActivity(ws, ts) for ws, ts in latest.items()]
