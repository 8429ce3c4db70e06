"""Alembic environment for the ``workspaces`` and ``containers`` tables.

Only the ``database`` storage backend uses PostgreSQL, so migrations are run
explicitly with ``mockbase db upgrade`` rather than at server startup.  The
connection string comes from ``MOCKBASE_DATABASE_URL``.
"""

from __future__ import annotations

from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import create_engine, pool

from mockbase.runtime.db.engine import to_psycopg_url
from mockbase.runtime.db.tables import Base
from mockbase.runtime.settings import MockbaseSettings

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata

# A URL set on the Config (tests, programmatic use) wins over the environment.
_url = config.get_main_option("sqlalchemy.url") or MockbaseSettings().database_url
if not _url:
    msg = "MOCKBASE_DATABASE_URL is not set; only the database storage backend needs migrations."
    raise RuntimeError(msg)
DATABASE_URL = to_psycopg_url(_url)


def include_object(obj: Any, name: str | None, type_: str, reflected: bool, compare_to: Any) -> bool:
    """Leave alone tables that share the database but are not mockbase's."""
    return not (type_ == "table" and reflected and compare_to is None)


def _configure(**kwargs: Any) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
        compare_server_default=True,
        **kwargs,
    )


if context.is_offline_mode():
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()
else:
    engine = create_engine(DATABASE_URL, poolclass=pool.NullPool)
    with engine.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()
