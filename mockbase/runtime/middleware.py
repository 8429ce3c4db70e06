"""Raw ASGI middleware.

``CustomPathMiddleware`` rewrites aliased URIs to their canonical
``/{container}/{table}[/{id}]`` path before routing, so the aliased request
goes through exactly the same handlers, auth and validation as the canonical
one.

``BodyLimitMiddleware`` refuses request bodies over the configured size,
both by ``Content-Length`` and, for chunked uploads, while reading the body.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote

from loguru import logger

from mockbase.runtime.errors import QuotaExceededError
from mockbase.runtime.validation import is_identifier

_USER_ID_HEADER = b"x-user-id"


class CustomPathMiddleware:
    """ASGI middleware resolving per-table custom path aliases.

    The alias index is read from ``app.state.context.paths``; requests
    without a valid ``x-user-id`` are passed through untouched.
    """

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: dict[str, Any], receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        workspace_id = headers.get(_USER_ID_HEADER, b"").decode("latin-1")
        context = getattr(scope["app"].state, "context", None)
        if context is not None and workspace_id and is_identifier(workspace_id):
            canonical = await context.paths.resolve(workspace_id, scope["method"], scope["path"])
            if canonical is not None:
                logger.debug("{} {} -> {}", scope["method"], scope["path"], canonical)
                scope = dict(scope)
                scope["path"] = canonical
                scope["raw_path"] = quote(canonical).encode("ascii")

        await self.app(scope, receive, send)


class BodyLimitMiddleware:
    """ASGI middleware answering 413 for oversized request bodies.

    The limit is ``max_bytes`` when given, otherwise the
    ``max_body_bytes`` setting of ``app.state.context``.  A body sent
    without ``Content-Length`` is read up to the limit before the app runs.
    """

    def __init__(self, app: Any, max_bytes: int | None = None) -> None:
        self.app = app
        self.max_bytes = max_bytes

    def _limit(self, scope: dict[str, Any]) -> int | None:
        if self.max_bytes is not None:
            return self.max_bytes
        context = getattr(scope["app"].state, "context", None)
        return context.settings.max_body_bytes if context is not None else None

    async def __call__(self, scope: dict[str, Any], receive: Any, send: Any) -> None:
        limit = self._limit(scope) if scope["type"] == "http" else None
        if limit is None:
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        declared = headers.get(b"content-length")
        if declared is not None and declared.isdigit():
            if int(declared) > limit:
                await _reject(send, limit)
                return
            await self.app(scope, receive, send)
            return

        chunks: list[bytes] = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] != "http.request":
                # Client went away mid-body; there is nobody to answer.
                return
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > limit:
                await _reject(send, limit)
                return
            chunks.append(chunk)
            more_body = message.get("more_body", False)

        body = b"".join(chunks)
        replayed = False

        async def replay_receive() -> dict[str, Any]:
            nonlocal replayed
            if replayed:
                return await receive()
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}

        await self.app(scope, replay_receive, send)


async def _reject(send: Any, limit: int) -> None:
    exc = QuotaExceededError(f"Request body exceeds {limit} bytes")
    logger.debug("Rejected request body: {}", exc.message)
    body = json.dumps({"error": exc.message}).encode("utf-8")
    await send(
        {
            "type": "http.response.start",
            "status": exc.status_code,
            "headers": [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode("ascii")),
            ],
        }
    )
    await send({"type": "http.response.body", "body": body})
