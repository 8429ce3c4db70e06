import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from mockbase.runtime.context import build_context
from mockbase.runtime.errors import MockbaseError, StorageError, StorageUnavailableError
from mockbase.runtime.log import setup_logging
from mockbase.runtime.middleware import BodyLimitMiddleware, CustomPathMiddleware
from mockbase.runtime.responses import error_response
from mockbase.runtime.settings import get_settings
from mockbase.runtime.sweeper import run_sweeper


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level)

    jwt_secret = settings.resolve_jwt_secret()
    if not settings.jwt_secret:
        logger.warning("No MOCKBASE_JWT_SECRET set -- generated an ephemeral secret; sessions end on restart")

    logger.info("Mockbase starting (host={}, port={})", settings.host, settings.port)
    prefix_info = f", prefix={settings.data_prefix}" if settings.data_prefix else ""
    if settings.storage == "local":
        logger.info("Storage: local (data_root={}{})", settings.data_root, prefix_info)
    else:
        logger.info("Storage: {}{}", settings.storage, prefix_info)

    context = build_context(settings, jwt_secret=jwt_secret)
    try:
        await context.backend.startup()
    except StorageUnavailableError as exc:
        logger.critical("Storage backend unavailable: {}", exc.message)
        raise
    _app.state.context = context

    # -- Idle sweeper ----------------------------------------------------------
    sweeper: asyncio.Task[None] | None = None
    if settings.idle_ttl_seconds:
        sweeper = asyncio.create_task(
            run_sweeper(context, settings.idle_ttl_seconds, settings.sweep_interval_seconds),
        )

    yield

    # -- Shutdown --------------------------------------------------------------
    logger.info("Mockbase shutting down")
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper

    await context.backend.close()
    logger.info("Storage: closed")


app = FastAPI(title="Mockbase", lifespan=lifespan)

# Starlette runs the last-added middleware first: CORS -> body limit -> alias rewrite.
app.add_middleware(CustomPathMiddleware)
app.add_middleware(BodyLimitMiddleware)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------


@app.exception_handler(MockbaseError)
async def handle_mockbase_error(request: Request, exc: MockbaseError) -> Response:
    if isinstance(exc, StorageError):
        logger.opt(exception=exc).error("Storage failure on {} {}", request.method, request.url.path)
    return error_response(request, exc.status_code, exc.message, exc.code)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> Response:
    return error_response(request, exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> Response:
    errors = exc.errors()
    if any(err.get("type") == "json_invalid" for err in errors):
        return error_response(request, 400, "Malformed JSON body")
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return error_response(request, 400, f"{location}: {message}" if location else message)


@app.exception_handler(Exception)
async def handle_unexpected(request: Request, exc: Exception) -> Response:
    logger.opt(exception=exc).error("Unhandled error on {} {}", request.method, request.url.path)
    return error_response(request, 500, "Internal server error")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


# -- Routers -----------------------------------------------------------------
from mockbase.runtime.routers.auth import router as auth_router  # noqa: E402
from mockbase.runtime.routers.containers import router as containers_router  # noqa: E402
from mockbase.runtime.routers.tables import router as tables_router  # noqa: E402

app.include_router(auth_router)
app.include_router(containers_router)
# Catch-all ``/{container}/{table}`` routes go last.
app.include_router(tables_router)
