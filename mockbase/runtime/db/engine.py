"""Engine and session factory for the ``database`` storage backend.

The backend keeps one JSONB row per workspace account and one per
container, and every request touches at most a couple of rows inside a
short transaction.  A small pool is plenty; long-lived sessions are never
held across requests.

``MOCKBASE_DATABASE_URL`` may be given in any of the usual PostgreSQL
spellings; it is normalised to the psycopg3 dialect, which serves both the
async server and the synchronous Alembic migrations.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

PSYCOPG_SCHEME = "postgresql+psycopg://"
_OTHER_SCHEMES = ("postgresql+asyncpg://", "postgresql+psycopg2://", "postgresql://", "postgres://")


def to_psycopg_url(url: str) -> str:
    """Rewrite a PostgreSQL URL to the ``postgresql+psycopg`` dialect."""
    for scheme in _OTHER_SCHEMES:
        if url.startswith(scheme):
            return PSYCOPG_SCHEME + url[len(scheme) :]
    return url


def create_engine(database_url: str, **kwargs: object) -> AsyncEngine:
    """Create the async engine behind ``DatabaseStorageBackend``.

    Pool defaults (``pool_size=5``, ``max_overflow=10``) cover one lock-holding
    writer per container plus concurrent readers.  ``pool_pre_ping`` lets the
    service survive a PostgreSQL restart without failing the first request
    afterwards.  Anything can be overridden via *kwargs*.
    """
    options: dict[str, object] = {
        "echo": False,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }
    options.update(kwargs)
    return create_async_engine(to_psycopg_url(database_url), **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded rows usable after commit (``expire_on_commit=False``)."""
    return async_sessionmaker(engine, expire_on_commit=False)
