"""Logging configuration using loguru.

Intercepts stdlib logging so that uvicorn, the execution pipeline, etc. all
flow through loguru with a unified format.  Also owns the last-resort fault
handlers: an uncaught defect is logged and then terminates the process after
a short grace delay.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import threading
import time
from typing import Any

from loguru import logger


class _InterceptHandler(logging.Handler):
    """Bridge stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Map stdlib level name -> loguru level
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk the call stack so loguru reports the real call-site
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru as the sole logging sink.

    Call this once at process startup (before uvicorn starts).
    """
    level = level.upper()

    # Remove default loguru handler and add ours
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
    )

    # Intercept all stdlib logging
    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    # Quiet down noisy libraries
    for name in ("uvicorn.access", "httpx", "httpcore", "multipart"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging initialised (level={})", level)


# ---------------------------------------------------------------------------
# Fatal fault handling
# ---------------------------------------------------------------------------


def _terminate(grace_seconds: float) -> None:
    """Give sinks a moment to flush, then exit without unwinding."""
    time.sleep(grace_seconds)
    logger.complete()
    os._exit(1)


def install_crash_handlers(grace_seconds: float = 1.0) -> None:
    """Log uncaught exceptions in the main thread and worker threads, then exit.

    In-flight jobs are not preserved; their workspaces are swept on the next
    startup.
    """

    def _excepthook(exc_type: type[BaseException], exc: BaseException, tb: Any) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc, tb)
            return
        logger.opt(exception=(exc_type, exc, tb)).critical("Uncaught exception, terminating in {}s", grace_seconds)
        _terminate(grace_seconds)

    def _thread_excepthook(args: threading.ExceptHookArgs) -> None:
        if args.exc_type is SystemExit:
            return
        logger.opt(exception=(args.exc_type, args.exc_value, args.exc_traceback)).critical(
            "Uncaught exception in thread {}, terminating in {}s",
            args.thread.name if args.thread else "?",
            grace_seconds,
        )
        _terminate(grace_seconds)

    sys.excepthook = _excepthook
    threading.excepthook = _thread_excepthook


def install_loop_crash_handler(loop: asyncio.AbstractEventLoop, grace_seconds: float = 1.0) -> None:
    """Treat exceptions nobody awaited (orphaned tasks, callbacks) as fatal."""

    def _handler(_loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        message = context.get("message", "Unhandled exception in event loop")
        if exc is None:
            # Warnings such as unclosed transports; not a defect.
            logger.warning("Event loop: {}", message)
            return
        logger.opt(exception=exc).critical("{} -- terminating in {}s", message, grace_seconds)
        _loop.call_later(grace_seconds, os._exit, 1)

    loop.set_exception_handler(_handler)
