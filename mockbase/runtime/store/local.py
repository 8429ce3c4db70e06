"""Local filesystem storage backend.

Stores documents as JSON files under a data root with optional namespace
prefix::

    {data_root}/{prefix}/workspaces/{workspace_id}/account.json
    {data_root}/{prefix}/workspaces/{workspace_id}/containers/{name}.json

When prefix is None, the ``{prefix}`` segment is omitted.

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.

Writes are atomic: data is written to a temporary file in the same directory,
then renamed to the target path.  Readers see either the old or the new
document, never a partial one.  Renaming a workspace is a single directory
rename, so it either happens completely or not at all.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from datetime import UTC, datetime
from functools import partial
from pathlib import Path

from anyio import to_thread

from mockbase.runtime.errors import StorageError, StorageUnavailableError
from mockbase.runtime.models.account import WorkspaceAccount
from mockbase.runtime.models.container import ContainerData, dump_container, parse_container
from mockbase.runtime.store.base import WorkspaceActivity

_ACCOUNT_FILE = "account.json"
_CONTAINERS_DIR = "containers"
_SUFFIX = ".json"


class LocalStorageBackend:
    """Local filesystem implementation of the StorageBackend protocol.

    Layout::

        {base}/workspaces/{workspace_id}/...

    Where ``base`` is ``data_root / prefix`` (or just ``data_root`` if no prefix).
    """

    def __init__(self, data_root: str | Path, prefix: str | None = None) -> None:
        base = Path(data_root)
        if prefix:
            base = base / prefix
        self._base = base / "workspaces"

    @property
    def root(self) -> Path:
        return self._base

    def _workspace_dir(self, workspace_id: str) -> Path:
        return self._base / workspace_id

    def _account_path(self, workspace_id: str) -> Path:
        return self._workspace_dir(workspace_id) / _ACCOUNT_FILE

    def _container_path(self, workspace_id: str, name: str) -> Path:
        return self._workspace_dir(workspace_id) / _CONTAINERS_DIR / f"{name}{_SUFFIX}"

    # -- Lifecycle -------------------------------------------------------------

    async def startup(self) -> None:
        try:
            await to_thread.run_sync(partial(self._base.mkdir, parents=True, exist_ok=True))
        except OSError as exc:
            msg = f"Data directory {self._base} is not usable: {exc}"
            raise StorageUnavailableError(msg) from exc

    async def close(self) -> None:
        return None

    # -- Accounts --------------------------------------------------------------

    async def read_account(self, workspace_id: str) -> WorkspaceAccount | None:
        try:
            raw = await to_thread.run_sync(partial(_read_file, self._account_path(workspace_id)))
        except FileNotFoundError:
            return None
        return WorkspaceAccount.model_validate_json(raw)

    async def write_account(self, account: WorkspaceAccount) -> None:
        data = account.model_dump_json(indent=2)
        await to_thread.run_sync(partial(_atomic_write, self._account_path(account.workspace_id), data))

    # -- Containers ------------------------------------------------------------

    async def read_container(self, workspace_id: str, name: str) -> ContainerData | None:
        try:
            raw = await to_thread.run_sync(partial(_read_file, self._container_path(workspace_id, name)))
        except FileNotFoundError:
            return None
        return parse_container(raw)

    async def write_container(self, workspace_id: str, name: str, data: ContainerData) -> None:
        path = self._container_path(workspace_id, name)
        await to_thread.run_sync(partial(_atomic_write, path, dump_container(data)))

    async def delete_container(self, workspace_id: str, name: str) -> bool:
        path = self._container_path(workspace_id, name)
        return await to_thread.run_sync(partial(_unlink, path))

    async def list_containers(self, workspace_id: str) -> list[str]:
        directory = self._workspace_dir(workspace_id) / _CONTAINERS_DIR
        return await to_thread.run_sync(partial(_list_documents, directory))

    # -- Workspaces ------------------------------------------------------------

    async def delete_workspace(self, workspace_id: str) -> None:
        await to_thread.run_sync(partial(_rmtree, self._workspace_dir(workspace_id)))

    async def rename_workspace(self, old_id: str, new_id: str) -> None:
        src = self._workspace_dir(old_id)
        dst = self._workspace_dir(new_id)
        try:
            await to_thread.run_sync(partial(_rename_dir, src, dst))
        except OSError as exc:
            msg = f"Failed to rename workspace {old_id}: {exc}"
            raise StorageError(msg) from exc

    async def list_workspaces(self) -> list[WorkspaceActivity]:
        return await to_thread.run_sync(partial(_scan_workspaces, self._base))


# -- Sync helpers (run in thread pool) -----------------------------------------


def _atomic_write(path: Path, data: str) -> None:
    """Write data atomically: temp file + rename.

    The temp file is created in the same directory so ``os.replace`` is
    atomic on POSIX.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def _read_file(path: Path) -> str:
    """Read file contents.  Raises ``FileNotFoundError`` if missing."""
    return path.read_text(encoding="utf-8")


def _unlink(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def _list_documents(directory: Path) -> list[str]:
    if not directory.is_dir():
        return []
    return sorted(p.stem for p in directory.iterdir() if p.is_file() and p.suffix == _SUFFIX)


def _rmtree(path: Path) -> None:
    """Remove directory tree.  No-op if path doesn't exist."""
    if path.exists():
        shutil.rmtree(path)


def _rename_dir(src: Path, dst: Path) -> None:
    if not src.exists():
        return
    if dst.exists():
        msg = f"Target workspace directory already exists: {dst.name}"
        raise FileExistsError(msg)
    os.rename(src, dst)


def _scan_workspaces(base: Path) -> list[WorkspaceActivity]:
    if not base.is_dir():
        return []
    result = []
    for workspace_dir in base.iterdir():
        if not workspace_dir.is_dir():
            continue
        mtimes = [p.stat().st_mtime for p in workspace_dir.rglob(f"*{_SUFFIX}") if p.is_file()]
        latest = max(mtimes, default=workspace_dir.stat().st_mtime)
        result.append(WorkspaceActivity(workspace_dir.name, datetime.fromtimestamp(latest, tz=UTC)))
    return result
