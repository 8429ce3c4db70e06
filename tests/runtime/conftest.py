"""Shared fixtures for runtime tests.

HTTP tests run the app over ``ASGITransport`` against the local backend in
``tmp_path``.  The app lifespan does NOT run under ``ASGITransport``, so the
application context is built here and set on ``app.state`` directly.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from mockbase.runtime.app import app
from mockbase.runtime.context import AppContext, build_context
from mockbase.runtime.settings import MockbaseSettings
from mockbase.runtime.store.local import LocalStorageBackend

TEST_SECRET = "test-secret-0123456789abcdef0123456789abcdef"


@pytest.fixture
def settings(tmp_path) -> MockbaseSettings:
    return MockbaseSettings(_env_file=None, data_root=str(tmp_path), jwt_secret=TEST_SECRET)


@pytest.fixture
def backend(tmp_path) -> LocalStorageBackend:
    return LocalStorageBackend(tmp_path)


@pytest.fixture
def context(settings: MockbaseSettings, backend: LocalStorageBackend) -> AppContext:
    return build_context(settings, backend=backend)


@pytest.fixture
async def client(context: AppContext) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to the app with a fresh local-storage context."""
    await context.backend.startup()
    app.state.context = context

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await context.backend.close()


LoginFn = Callable[..., Awaitable[dict[str, Any]]]


@pytest.fixture
def login_as(client: AsyncClient) -> LoginFn:
    """Return ``login(workspace_id, **body)`` posting to /auth/login."""

    async def _login(workspace_id: str, **body: Any) -> dict[str, Any]:
        resp = await client.post("/auth/login", headers={"x-user-id": workspace_id}, json=body)
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _login


@pytest.fixture
async def workspace_id(client: AsyncClient) -> str:
    resp = await client.post("/auth/register")
    assert resp.status_code == 201
    return resp.json()["workspaceId"]


@pytest.fixture
async def admin(login_as: LoginFn, workspace_id: str) -> dict[str, str]:
    """Request headers of an admin session in a freshly registered workspace."""
    session = await login_as(workspace_id, role="admin")
    return {"x-user-id": workspace_id, "authorization": f"Bearer {session['token']}"}


@pytest.fixture
async def viewer(login_as: LoginFn, workspace_id: str) -> dict[str, str]:
    """Request headers of a viewer session in the same workspace as ``admin``."""
    session = await login_as(workspace_id, role="viewer")
    return {"x-user-id": workspace_id, "authorization": f"Bearer {session['token']}"}
