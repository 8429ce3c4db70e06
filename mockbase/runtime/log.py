"""Logging for the mockbase server.

loguru is the only sink.  Records from the standard ``logging`` module
(uvicorn, SQLAlchemy, botocore, alembic) are bridged into it, and uvicorn's
own handlers are detached so each line is written exactly once.

``MOCKBASE_LOG_LEVEL=DEBUG`` additionally shows rejected tokens, alias
rewrites, alias index builds and refused request bodies.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Loggers that are chatty at INFO and below.
QUIET_LOGGERS = ("uvicorn.access", "botocore", "boto3", "urllib3", "sqlalchemy.engine")

# uvicorn installs handlers on these when it configures logging itself.
_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


class _InterceptHandler(logging.Handler):
    """Forward a stdlib ``LogRecord`` to loguru at the originating call site."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO") -> None:
    """Install the loguru sink and bridge stdlib logging into it.

    Called from the application lifespan, so it also runs under
    ``mockbase serve --reload`` in every reloaded worker.
    """
    level = level.upper()

    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name in _UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging initialised (level={})", level)
