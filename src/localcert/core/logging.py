"""
Loguru setup for localcert.

localcert logs through loguru's global logger. Applications that already
configure loguru need nothing from this module; the rest can call
configure_logger() once, which get_local_cert_service() does for them.

Records carry an ``operation_id`` extra so that lines written on worker
threads can be matched with the get-or-create or remove call that caused
them.
"""

import inspect
import logging
import sys
from typing import Any, TextIO

from loguru import logger

from localcert.config import Settings, get_settings
from localcert.core.operation_context import operation_id_context

# Standard library loggers that report worker pool and event loop failures
INTERCEPTED_LOGGERS = ("asyncio", "concurrent.futures")

NO_OPERATION = "N/A"


def add_operation_id(record: dict[str, Any]) -> bool:
    """
    Loguru filter that tags a record with the running operation id.

    Args:
        record: Loguru record

    Returns:
        Always True
    """
    record["extra"]["operation_id"] = operation_id_context.get() or NO_OPERATION
    return True


def configure_logger(
    settings: Settings | None = None, sink: TextIO | None = None
) -> int:
    """
    Replace loguru's handlers with a single localcert handler.

    Level, format and enqueueing come from settings. Colors are left to
    loguru, which only emits them for a terminal.

    Args:
        settings: Settings to use (defaults to get_settings())
        sink: Stream to write to (defaults to stderr)

    Returns:
        Loguru handler id of the new sink
    """
    settings = settings or get_settings()

    logger.remove()
    return logger.add(
        sink=sink or sys.stderr,
        level=settings.log_level.upper(),
        format=settings.log_format,
        filter=add_operation_id,
        backtrace=True,
        # Locals may hold key material
        diagnose=False,
        enqueue=settings.logger_enqueue,
    )


class InterceptHandler(logging.Handler):
    """
    Standard logging handler that re-emits records through loguru.

    Levels loguru does not know are passed on by number. The caller
    location is taken from the first frame outside the logging package.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = inspect.currentframe(), 0
        while frame is not None and (
            depth == 0 or frame.f_code.co_filename == logging.__file__
        ):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def intercept_standard_logging(
    logger_names: tuple[str, ...] = INTERCEPTED_LOGGERS,
) -> None:
    """
    Route the given standard library loggers to loguru.

    Their records stop propagating to the root logger, so they are not
    printed twice when the host application also logs to stderr.

    Args:
        logger_names: Names of the loggers to take over
    """
    for name in logger_names:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False


__all__ = [
    "INTERCEPTED_LOGGERS",
    "InterceptHandler",
    "add_operation_id",
    "configure_logger",
    "intercept_standard_logging",
    "logger",
]
