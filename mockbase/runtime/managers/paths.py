"""Custom path aliases.

A structured table may expose per-method alias URIs next to its canonical
``/{container}/{table}[/{id}]`` path, e.g. ``customPaths = {"get":
"/api/v1/list-items"}``.  Inbound requests are rewritten before routing:

- ``GET /api/v1/list-items``      -> ``GET /{container}/{table}``
- ``GET /api/v1/list-items/42``   -> ``GET /{container}/{table}/42``

Every segment after the longest matching alias is carried over, so a deeper
path reaches the router and fails there like its canonical twin would.

Aliases live inside container documents.  This module keeps an in-process
index ``workspace -> {(method, path): (container, table)}`` so resolving is a
dictionary lookup instead of a scan over every table.  A workspace's index is
built from storage the first time it is needed, then refreshed for a single
container after every write of that container.

Management sub-paths and the fixed API prefixes are never rewritten, and
aliases that would collide with them are refused.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from loguru import logger

from mockbase.runtime.errors import ConflictError, ValidationError
from mockbase.runtime.models.container import ContainerData, table_custom_paths
from mockbase.runtime.models.enums import HTTP_METHODS
from mockbase.runtime.store.base import StorageBackend

RESERVED_PREFIXES = frozenset({"auth", "introspect", "containers", "health"})
"""First path segments owned by the fixed API surface."""

RESERVED_SUFFIXES = frozenset({"custom-paths", "schema", "schema-definition", "rename", "primary-key"})
"""Table management sub-paths."""

ALIAS_METHODS = tuple(m.lower() for m in HTTP_METHODS)

ALIAS_LOCK = "/aliases"
"""Second half of the ``KeyedLocks`` key guarding alias registration in a workspace.

Container names never contain ``/``, so it cannot clash with a container lock.
"""


@dataclass(frozen=True)
class AliasTarget:
    container: str
    table: str

    @property
    def canonical(self) -> str:
        return f"/{self.container}/{self.table}"


AliasKey = tuple[str, str]
"""(lower-case method, normalised path)"""


def normalize_path(path: str) -> str:
    path = path.strip()
    if not path.startswith("/"):
        path = "/" + path
    return path.rstrip("/") or "/"


def is_reserved(path: str) -> bool:
    segments = [s for s in path.split("/") if s]
    if not segments:
        return True
    return segments[0] in RESERVED_PREFIXES or segments[-1] in RESERVED_SUFFIXES


def normalize_aliases(aliases: dict[str, str]) -> dict[str, str]:
    """Validate and normalise a ``method -> path`` mapping."""
    result: dict[str, str] = {}
    for method, path in aliases.items():
        key = method.strip().lower()
        if key not in ALIAS_METHODS:
            msg = f"Unsupported method for custom path: '{method}'"
            raise ValidationError(msg)
        if not isinstance(path, str) or not path.strip():
            msg = f"Custom path for '{key}' must be a non-empty string"
            raise ValidationError(msg)
        normalized = normalize_path(path)
        if is_reserved(normalized):
            msg = f"Custom path '{normalized}' collides with a reserved path"
            raise ValidationError(msg)
        result[key] = normalized
    return result


def _container_entries(container: str, data: ContainerData) -> dict[AliasKey, AliasTarget]:
    entries: dict[AliasKey, AliasTarget] = {}
    for table_name, table in data.items():
        for method, path in table_custom_paths(table).items():
            # First registration wins if stored data already holds a duplicate.
            entries.setdefault((method.lower(), normalize_path(path)), AliasTarget(container, table_name))
    return entries


class CustomPathIndex:
    """Per-workspace ``(method, path) -> table`` index."""

    def __init__(self, backend: StorageBackend) -> None:
        self._backend = backend
        self._entries: dict[str, dict[AliasKey, AliasTarget]] = {}
        self._build_lock = asyncio.Lock()

    # -- Loading ---------------------------------------------------------------

    async def _workspace(self, workspace_id: str) -> dict[AliasKey, AliasTarget]:
        entries = self._entries.get(workspace_id)
        if entries is not None:
            return entries
        async with self._build_lock:
            entries = self._entries.get(workspace_id)
            if entries is None:
                names = await self._backend.list_containers(workspace_id)
                entries = await self._build(workspace_id, names)
                # A workspace without containers (or an unknown id) is not
                # cached; its first container write is picked up on next use.
                if names:
                    self._entries[workspace_id] = entries
        return entries

    async def _build(self, workspace_id: str, names: list[str]) -> dict[AliasKey, AliasTarget]:
        entries: dict[AliasKey, AliasTarget] = {}
        for name in names:
            data = await self._backend.read_container(workspace_id, name)
            if data is None:
                continue
            for key, target in _container_entries(name, data).items():
                entries.setdefault(key, target)
        logger.debug("Custom path index built for workspace {} ({} aliases)", workspace_id, len(entries))
        return entries

    # -- Resolution ------------------------------------------------------------

    async def resolve(self, workspace_id: str, method: str, path: str) -> str | None:
        """Return the canonical path for an aliased request, or ``None``."""
        path = normalize_path(path)
        if is_reserved(path):
            return None
        entries = await self._workspace(workspace_id)
        if not entries:
            return None
        method = method.lower()

        target = entries.get((method, path))
        if target is not None:
            return target.canonical

        # Longest registered alias that is a segment prefix of the path; the
        # remainder is carried over onto the canonical path.
        prefix, suffix = path, ""
        while True:
            prefix, _, segment = prefix.rpartition("/")
            if not prefix:
                return None
            suffix = f"/{segment}{suffix}"
            target = entries.get((method, prefix))
            if target is not None:
                return f"{target.canonical}{suffix}"

    async def ensure_available(
        self,
        workspace_id: str,
        container: str,
        table: str,
        aliases: dict[str, str],
    ) -> None:
        """Raise ``ConflictError`` if another table already owns one of *aliases*."""
        entries = await self._workspace(workspace_id)
        owner = AliasTarget(container, table)
        for method, path in aliases.items():
            existing = entries.get((method, path))
            if existing is not None and existing != owner:
                msg = (
                    f"Custom path {method.upper()} {path} is already used by "
                    f"'{existing.container}/{existing.table}'"
                )
                raise ConflictError(msg)

    # -- Maintenance -----------------------------------------------------------

    def refresh_container(self, workspace_id: str, container: str, data: ContainerData | None) -> None:
        """Replace the index entries of one container after it was written or deleted."""
        entries = self._entries.get(workspace_id)
        if entries is None:
            # Not loaded yet; the lazy build will read the current state.
            return
        for key in [k for k, target in entries.items() if target.container == container]:
            del entries[key]
        if data is not None:
            for key, target in _container_entries(container, data).items():
                entries.setdefault(key, target)

    @property
    def loaded_count(self) -> int:
        """Number of workspaces whose index is held in memory."""
        return len(self._entries)

    def drop_workspace(self, workspace_id: str) -> None:
        self._entries.pop(workspace_id, None)

    def rename_workspace(self, old_id: str, new_id: str) -> None:
        entries = self._entries.pop(old_id, None)
        if entries is not None:
            self._entries[new_id] = entries
