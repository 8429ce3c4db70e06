"""Tests for loguru setup and the stdlib bridge."""

from __future__ import annotations

import logging

from loguru import logger

from mockbase.runtime.log import QUIET_LOGGERS, setup_logging


def test_stdlib_records_reach_loguru() -> None:
    setup_logging("debug")
    messages: list[str] = []
    sink_id = logger.add(messages.append, format="{level} {message}")
    try:
        logging.getLogger("uvicorn.error").warning("port already in use")
        logging.getLogger("mockbase.test").debug("fine detail")
    finally:
        logger.remove(sink_id)

    assert any(m.startswith("WARNING port already in use") for m in messages)
    assert any(m.startswith("DEBUG fine detail") for m in messages)


def test_uvicorn_handlers_are_detached() -> None:
    uvicorn_logger = logging.getLogger("uvicorn")
    uvicorn_logger.addHandler(logging.StreamHandler())
    uvicorn_logger.propagate = False

    setup_logging()

    assert uvicorn_logger.handlers == []
    assert uvicorn_logger.propagate is True
    for name in QUIET_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING
