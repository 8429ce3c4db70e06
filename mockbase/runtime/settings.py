"""Service configuration loaded from MOCKBASE_* environment variables."""

from __future__ import annotations

import secrets
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class MockbaseSettings(BaseSettings):
    """Mockbase server settings.

    All fields are read from environment variables with the ``MOCKBASE_``
    prefix.  For example, ``MOCKBASE_LOG_LEVEL=DEBUG`` maps to ``log_level``.
    """

    model_config = SettingsConfigDict(
        env_prefix="MOCKBASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Storage ---------------------------------------------------------------
    storage: Literal["local", "database", "s3"] = "local"

    data_root: str = "./data"
    """Root directory for the local backend."""

    data_prefix: str | None = None
    """Optional namespace prefix inserted into all data paths and object keys.

    When set, local paths become ``{data_root}/{data_prefix}/workspaces/...``
    and S3 keys ``{data_prefix}/workspaces/...``.
    """

    database_url: str | None = None
    """PostgreSQL connection string (psycopg3).  Required when storage = "database"."""

    # S3 (only when storage = "s3")
    s3_endpoint: str | None = None
    s3_bucket: str | None = None
    s3_region: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: SecretStr | None = None
    s3_path_style: bool = False
    """Use path-style addressing (required by MinIO and some S3-compatible services)."""

    # -- Auth ------------------------------------------------------------------
    jwt_secret: SecretStr | None = None
    """HMAC secret for session tokens.  Auto-generated at startup if empty."""

    session_ttl_ms: int = 3600 * 1000
    """Default session lifetime when the login request omits ``expiresIn``."""

    # -- Limits ----------------------------------------------------------------
    max_body_bytes: int = 5 * 1024 * 1024

    # -- Idle eviction ---------------------------------------------------------
    idle_ttl_seconds: int | None = None
    """Delete workspaces with no writes for this long.  ``None`` disables the sweeper."""

    sweep_interval_seconds: int = 600

    # -- Server ----------------------------------------------------------------
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000

    # -- Helpers ---------------------------------------------------------------

    def resolve_jwt_secret(self) -> str:
        """Return the configured secret or generate a random one."""
        if self.jwt_secret:
            return self.jwt_secret.get_secret_value()
        return secrets.token_urlsafe(32)


def get_settings() -> MockbaseSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``get_settings.cache_clear()`` in tests to force a
    re-read after overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> MockbaseSettings:
    """Inner function wrapped by lru_cache (allows type-safe cache_clear)."""
    return MockbaseSettings()


# Apply lru_cache at runtime so the function is only called once.
from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)
