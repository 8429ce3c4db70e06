"""Storage backend interface.

Every backend persists two kinds of JSON documents scoped to a workspace:

- the **account** (session list and selective-auth policy), and
- one document per **container** (all of its tables).

Handlers only ever talk to this protocol; which implementation sits behind
it is decided once at startup (``MOCKBASE_STORAGE``).  Writes replace a whole
document atomically so concurrent readers never observe a torn write.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from mockbase.runtime.models.account import WorkspaceAccount
from mockbase.runtime.models.container import ContainerData


@dataclass(frozen=True)
class WorkspaceActivity:
    """A stored workspace and the time of its most recent write."""

    workspace_id: str
    last_activity: datetime


@runtime_checkable
class StorageBackend(Protocol):
    """Async protocol for workspace-scoped document storage."""

    async def startup(self) -> None:
        """Verify the backend is reachable.  Raises ``StorageUnavailableError``."""
        ...

    async def close(self) -> None:
        """Release connections and clients."""
        ...

    # -- Accounts --------------------------------------------------------------

    async def read_account(self, workspace_id: str) -> WorkspaceAccount | None:
        """Return the account, or ``None`` if the workspace has none."""
        ...

    async def write_account(self, account: WorkspaceAccount) -> None:
        """Create or replace the account document."""
        ...

    # -- Containers ------------------------------------------------------------

    async def read_container(self, workspace_id: str, name: str) -> ContainerData | None:
        """Return the container, or ``None`` if it does not exist."""
        ...

    async def write_container(self, workspace_id: str, name: str, data: ContainerData) -> None:
        """Create or atomically replace a container document."""
        ...

    async def delete_container(self, workspace_id: str, name: str) -> bool:
        """Delete a container.  Returns ``False`` if it did not exist."""
        ...

    async def list_containers(self, workspace_id: str) -> list[str]:
        """Return container names, sorted."""
        ...

    # -- Workspaces ------------------------------------------------------------

    async def delete_workspace(self, workspace_id: str) -> None:
        """Irreversibly remove the account and all containers.  No-op if absent."""
        ...

    async def rename_workspace(self, old_id: str, new_id: str) -> None:
        """Move every document from ``old_id`` to ``new_id``, all-or-nothing.

        On failure the old identifier remains authoritative.  A workspace with
        nothing stored is a no-op.
        """
        ...

    async def list_workspaces(self) -> list[WorkspaceActivity]:
        """Return every stored workspace with its last write time."""
        ...
