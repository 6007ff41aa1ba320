"""Single loguru pipeline for the application and the libraries it drives.

The API lifespan and the CLI both call :func:`setup_logging` with the loaded
:class:`~course_assistant.config.Settings`. ``LOG_LEVEL`` sets the sink level and
``LOG_JSON`` switches the sink to serialized records. Every stdlib record
(uvicorn, openai, httpx, sqlalchemy) goes to the root logger and is forwarded
to loguru from there.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

from course_assistant.config import Settings

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> <level>{level: <8}</level> "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> {message}"
)

# uvicorn installs its own handlers and stops propagation
_SELF_HANDLING_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error")

# Held at WARNING unless the app itself runs at DEBUG
_CHATTY_LOGGERS = ("sqlalchemy.engine", "httpx", "openai")


class InterceptHandler(logging.Handler):
    """Forward a stdlib record to loguru, attributed to the code that logged it."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        logger.opt(depth=_caller_depth(), exception=record.exc_info).log(level, record.getMessage())


def _caller_depth() -> int:
    depth = 0
    frame = sys._getframe(1)
    while frame is not None and frame.f_code.co_filename in (logging.__file__, __file__):
        frame = frame.f_back
        depth += 1
    return depth


def setup_logging(settings: Settings, *, level: str | None = None) -> None:
    """Install the loguru sink and route stdlib logging into it.

    ``level`` overrides ``settings.log_level`` (the CLI ``--log-level`` flag).
    """
    level = (level or settings.log_level).upper()

    logger.remove()
    if settings.log_json:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _SELF_HANDLING_LOGGERS:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers.clear()
        stdlib_logger.propagate = True

    library_level = logging.DEBUG if level == "DEBUG" else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    logger.debug("Logging configured | level={} json={}", level, settings.log_json)
