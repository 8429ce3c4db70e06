import click


@click.group()
def main() -> None:
    """Mockbase - self-hosted mock JSON database service."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from MOCKBASE_HOST or 0.0.0.0).")
@click.option("--port", default=None, type=int, help="Bind port (default: from MOCKBASE_PORT or 3000).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the Mockbase HTTP server."""
    import uvicorn

    from mockbase.runtime.settings import MockbaseSettings

    settings = MockbaseSettings()

    uvicorn.run(
        "mockbase.runtime.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
    )


# ---------------------------------------------------------------------------
# Database management (MOCKBASE_STORAGE=database)
# ---------------------------------------------------------------------------


def _alembic_config():
    """Build an Alembic Config from the package's alembic.ini.

    Both alembic.ini and the alembic/ directory live inside the package,
    so this works whether running from source or from an installed package.
    """
    from pathlib import Path

    from alembic.config import Config

    ini_path = Path(__file__).parent / "runtime" / "alembic.ini"
    return Config(str(ini_path))


@main.group()
def db() -> None:
    """Database migration commands for the PostgreSQL backend."""


@db.command()
@click.option("--revision", default="head", help="Target revision (default: head).")
def upgrade(revision: str) -> None:
    """Create or migrate the workspace and container tables."""
    from alembic import command

    command.upgrade(_alembic_config(), revision)
    click.echo(f"Database upgraded to {revision}.")


@db.command()
@click.option("--revision", default="-1", help="Target revision (default: -1, one step back).")
def downgrade(revision: str) -> None:
    """Roll back database migrations."""
    from alembic import command

    command.downgrade(_alembic_config(), revision)
    click.echo(f"Database downgraded to {revision}.")


@db.command()
def current() -> None:
    """Show current database revision."""
    from alembic import command

    command.current(_alembic_config(), verbose=True)


@db.command()
def history() -> None:
    """Show migration history."""
    from alembic import command

    command.history(_alembic_config(), verbose=True)


if __name__ == "__main__":
    main()
