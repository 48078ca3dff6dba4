"""Logging configuration using loguru.

Intercepts stdlib logging so that httpx, openai and pydantic-ai flow through
loguru too.  Run events (records bound with ``event`` by the event hub) show
their event type and input label where other records show their call-site::

    12:00:01.250 | INFO     | input_started [src/main.rs] - Running input: src/main.rs
    12:00:01.251 | DEBUG    | agentloop.agent_runtime.execution.resolver:120 - Loaded agent ...
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from loguru import Record

_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic")


def format_record(record: Record) -> str:
    """Build the loguru format string for *record*."""
    extra = record["extra"]
    if "event" in extra:
        origin = "<magenta>{extra[event]}</magenta>"
        if extra.get("label"):
            origin += " <cyan>[{extra[label]}]</cyan>"
    else:
        origin = "<cyan>{name}</cyan>:<cyan>{line}</cyan>"
    return (
        "<green>{time:HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        f"{origin} - "
        "<level>{message}</level>\n{exception}"
    )


class _InterceptHandler(logging.Handler):
    """Bridge stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk past the logging module so loguru reports the real call-site
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", *, colorize: bool | None = None) -> None:
    """Configure loguru as the sole logging sink (stderr).

    Call once per process, before the first run.  ``colorize=None`` lets
    loguru decide based on whether stderr is a TTY.
    """
    level = level.upper()

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format=format_record,
    )

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Logging initialised (level={})", level)
