"""S3 storage backend.

Stores documents as JSON objects in S3 with optional namespace prefix::

    s3://{bucket}/{prefix}/workspaces/{workspace_id}/account.json
    s3://{bucket}/{prefix}/workspaces/{workspace_id}/containers/{name}.json

When prefix is None, the path collapses to ``s3://{bucket}/workspaces/...``.

``put_object`` replaces an object atomically, so readers never see a partial
document.  S3 has no rename: a workspace rename copies every object to the
new key prefix and only then deletes the originals.  If a copy fails, the
copies made so far are removed and the old prefix stays authoritative.

Uses ``anyio.to_thread.run_sync`` to run boto3 calls in the thread pool,
matching the same async pattern as LocalStorageBackend.
"""

from __future__ import annotations

from datetime import datetime
from functools import partial
from typing import Any

import boto3
from anyio import to_thread
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from mockbase.runtime.errors import StorageError, StorageUnavailableError
from mockbase.runtime.models.account import WorkspaceAccount
from mockbase.runtime.models.container import ContainerData, dump_container, parse_container
from mockbase.runtime.store.base import WorkspaceActivity

_ACCOUNT_KEY = "account.json"
_CONTAINERS_SEGMENT = "containers/"
_SUFFIX = ".json"
_DELETE_BATCH = 1000


def _create_s3_client(
    endpoint_url: str | None,
    access_key: str | None,
    secret_key: str | None,
    region: str | None = None,
    path_style: bool = False,
) -> Any:
    """Create a boto3 S3 client.

    Args:
        endpoint_url: S3 endpoint URL (``None`` for AWS).
        access_key: AWS access key ID.
        secret_key: AWS secret access key.
        region: AWS region name (optional, some endpoints require it).
        path_style: Use path-style addressing instead of virtual-hosted.
            Required by MinIO and some S3-compatible services.
    """
    config = Config(
        request_checksum_calculation="when_required",
        response_checksum_validation="when_required",
        s3={"addressing_style": "path" if path_style else "auto"},
    )

    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        region_name=region,
        config=config,
    )


class S3StorageBackend:
    """S3 implementation of the StorageBackend protocol.

    Layout::

        s3://{bucket}/{key_prefix}workspaces/{workspace_id}/...

    Where ``key_prefix`` is ``{prefix}/`` if prefix is set, or empty string.
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        prefix: str | None = None,
        region: str | None = None,
        path_style: bool = False,
        client: Any = None,
    ) -> None:
        self._bucket = bucket
        self._client = client or _create_s3_client(
            endpoint_url, access_key, secret_key, region=region, path_style=path_style
        )
        self._root = f"{prefix}/workspaces/" if prefix else "workspaces/"

    def _workspace_prefix(self, workspace_id: str) -> str:
        return f"{self._root}{workspace_id}/"

    def _account_key(self, workspace_id: str) -> str:
        return f"{self._workspace_prefix(workspace_id)}{_ACCOUNT_KEY}"

    def _container_prefix(self, workspace_id: str) -> str:
        return f"{self._workspace_prefix(workspace_id)}{_CONTAINERS_SEGMENT}"

    def _container_key(self, workspace_id: str, name: str) -> str:
        return f"{self._container_prefix(workspace_id)}{name}{_SUFFIX}"

    # -- Lifecycle -------------------------------------------------------------

    async def startup(self) -> None:
        try:
            await to_thread.run_sync(partial(self._client.head_bucket, Bucket=self._bucket))
        except (ClientError, BotoCoreError) as exc:
            msg = f"S3 bucket '{self._bucket}' is not reachable: {exc}"
            raise StorageUnavailableError(msg) from exc

    async def close(self) -> None:
        await to_thread.run_sync(self._client.close)

    # -- Accounts --------------------------------------------------------------

    async def read_account(self, workspace_id: str) -> WorkspaceAccount | None:
        body = await to_thread.run_sync(partial(self._get_object_body, self._account_key(workspace_id)))
        if body is None:
            return None
        return WorkspaceAccount.model_validate_json(body)

    async def write_account(self, account: WorkspaceAccount) -> None:
        key = self._account_key(account.workspace_id)
        await to_thread.run_sync(partial(self._put_json, key, account.model_dump_json(indent=2)))

    # -- Containers ------------------------------------------------------------

    async def read_container(self, workspace_id: str, name: str) -> ContainerData | None:
        body = await to_thread.run_sync(partial(self._get_object_body, self._container_key(workspace_id, name)))
        if body is None:
            return None
        return parse_container(body)

    async def write_container(self, workspace_id: str, name: str, data: ContainerData) -> None:
        key = self._container_key(workspace_id, name)
        await to_thread.run_sync(partial(self._put_json, key, dump_container(data)))

    async def delete_container(self, workspace_id: str, name: str) -> bool:
        key = self._container_key(workspace_id, name)
        existed = await to_thread.run_sync(partial(self._exists, key))
        if existed:
            # S3 delete is idempotent -- no error if key doesn't exist.
            await to_thread.run_sync(partial(self._client.delete_object, Bucket=self._bucket, Key=key))
        return existed

    async def list_containers(self, workspace_id: str) -> list[str]:
        prefix = self._container_prefix(workspace_id)
        objects = await to_thread.run_sync(partial(self._list_objects, prefix))
        names = [obj["Key"][len(prefix) :] for obj in objects]
        return sorted(n[: -len(_SUFFIX)] for n in names if n.endswith(_SUFFIX) and "/" not in n)

    # -- Workspaces ------------------------------------------------------------

    async def delete_workspace(self, workspace_id: str) -> None:
        objects = await to_thread.run_sync(partial(self._list_objects, self._workspace_prefix(workspace_id)))
        await to_thread.run_sync(partial(self._delete_keys, [obj["Key"] for obj in objects]))

    async def rename_workspace(self, old_id: str, new_id: str) -> None:
        await to_thread.run_sync(partial(self._rename_prefix, old_id, new_id))

    async def list_workspaces(self) -> list[WorkspaceActivity]:
        objects = await to_thread.run_sync(partial(self._list_objects, self._root))
        latest: dict[str, datetime] = {}
        for obj in objects:
            workspace_id, _, _ = obj["Key"][len(self._root) :].partition("/")
            modified = obj["LastModified"]
            if workspace_id not in latest or modified > latest[workspace_id]:
                latest[workspace_id] = modified
        return [WorkspaceActivity(ws, ts) for ws, ts in latest.items()]

    # -- Sync helpers (run in thread pool) -------------------------------------

    def _get_object_body(self, key: str) -> str | None:
        """Get object and read body in the same thread.

        Reading the streaming body must happen in the same thread as
        get_object to avoid issues with chunked transfer encoding.
        """
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=key)
        except self._client.exceptions.NoSuchKey:
            return None
        return resp["Body"].read().decode("utf-8")

    def _put_json(self, key: str, data: str) -> None:
        self._client.put_object(
            Bucket=self._bucket,
            Key=key,
            Body=data.encode("utf-8"),
            ContentType="application/json",
        )

    def _exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
        except ClientError as e:
            if e.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def _list_objects(self, prefix: str) -> list[dict[str, Any]]:
        paginator = self._client.get_paginator("list_objects_v2")
        objects: list[dict[str, Any]] = []
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
            objects.extend(page.get("Contents", []))
        return objects

    def _delete_keys(self, keys: list[str]) -> None:
        for start in range(0, len(keys), _DELETE_BATCH):
            batch = keys[start : start + _DELETE_BATCH]
            self._client.delete_objects(
                Bucket=self._bucket,
                Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
            )

    def _rename_prefix(self, old_id: str, new_id: str) -> None:
        old_prefix = self._workspace_prefix(old_id)
        new_prefix = self._workspace_prefix(new_id)
        if self._list_objects(new_prefix):
            msg = f"Target workspace already exists: {new_id}"
            raise StorageError(msg)

        old_keys = [obj["Key"] for obj in self._list_objects(old_prefix)]
        copied: list[str] = []
        try:
            for key in old_keys:
                new_key = new_prefix + key[len(old_prefix) :]
                self._client.copy_object(
                    Bucket=self._bucket,
                    Key=new_key,
                    CopySource={"Bucket": self._bucket, "Key": key},
                )
                copied.append(new_key)
        except (ClientError, BotoCoreError) as exc:
            logger.warning("S3 rename {} -> {} failed after {} copies, rolling back", old_id, new_id, len(copied))
            self._delete_keys(copied)
            msg = f"Failed to rename workspace {old_id}: {exc}"
            raise StorageError(msg) from exc

        self._delete_keys(old_keys)
