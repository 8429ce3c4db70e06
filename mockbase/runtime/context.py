"""Application context.

Everything a request handler needs is built once at startup and attached to
``app.state.context``.  The context itself is immutable; the managers it
holds front the mutable workspace data.
"""

from __future__ import annotations

from dataclasses import dataclass

from mockbase.runtime.locks import KeyedLocks
from mockbase.runtime.managers.dispatcher import Dispatcher
from mockbase.runtime.managers.identity import IdentityStore
from mockbase.runtime.managers.paths import CustomPathIndex
from mockbase.runtime.settings import MockbaseSettings
from mockbase.runtime.store.base import StorageBackend
from mockbase.runtime.store.local import LocalStorageBackend


@dataclass(frozen=True)
class AppContext:
    settings: MockbaseSettings
    backend: StorageBackend
    identity: IdentityStore
    paths: CustomPathIndex
    locks: KeyedLocks
    dispatcher: Dispatcher


def create_storage_backend(settings: MockbaseSettings) -> StorageBackend:
    """Create the storage backend selected by ``MOCKBASE_STORAGE``."""
    if settings.storage == "database":
        if not settings.database_url:
            msg = "MOCKBASE_DATABASE_URL is required when MOCKBASE_STORAGE=database"
            raise ValueError(msg)
        from mockbase.runtime.db.engine import create_engine, create_session_factory
        from mockbase.runtime.store.database import DatabaseStorageBackend

        engine = create_engine(settings.database_url)
        return DatabaseStorageBackend(create_session_factory(engine), engine=engine)

    if settings.storage == "s3":
        if not settings.s3_bucket:
            msg = "MOCKBASE_S3_BUCKET is required when MOCKBASE_STORAGE=s3"
            raise ValueError(msg)
        from mockbase.runtime.store.s3 import S3StorageBackend

        return S3StorageBackend(
            bucket=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key.get_secret_value() if settings.s3_secret_key else None,
            prefix=settings.data_prefix,
            region=settings.s3_region,
            path_style=settings.s3_path_style,
        )

    return LocalStorageBackend(settings.data_root, prefix=settings.data_prefix)


def build_context(
    settings: MockbaseSettings,
    *,
    backend: StorageBackend | None = None,
    jwt_secret: str | None = None,
) -> AppContext:
    """Wire the managers around one backend and one lock table."""
    backend = backend or create_storage_backend(settings)
    locks = KeyedLocks()
    paths = CustomPathIndex(backend)
    identity = IdentityStore(
        backend,
        locks,
        secret=jwt_secret or settings.resolve_jwt_secret(),
        default_ttl_ms=settings.session_ttl_ms,
    )
    return AppContext(
        settings=settings,
        backend=backend,
        identity=identity,
        paths=paths,
        locks=locks,
        dispatcher=Dispatcher(backend, locks, paths),
    )
