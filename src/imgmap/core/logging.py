"""
imgmap structured logging.

Provides structured logging for the decode and attach steps so that
every external command and its outcome ends up in the build log.
"""

from __future__ import annotations

import logging
import sys
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from imgmap.core.config import LoggingConfig


_configured = False


def setup_logging(config: LoggingConfig) -> None:
    """Configure structured logging for imgmap."""
    global _configured

    if _configured:
        return

    handlers: list[logging.Handler] = []

    if config.console_enabled:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, config.level))
        handlers.append(console_handler)

    if config.file_enabled:
        config.log_directory.mkdir(parents=True, exist_ok=True)
        log_file = config.log_directory / f"imgmap_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        handlers.append(file_handler)

    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=logging.DEBUG,
        handlers=handlers,
        format="%(message)s",
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if config.json_format:
        renderers: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    structlog.configure(
        processors=shared_processors + renderers,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name or "imgmap")


class OperationLogger:
    """
    Times one step and logs how it ended.

    Context passed in, or added later through ``update``, is bound to every
    event. Exceptions are logged and then propagate.
    """

    def __init__(
        self,
        operation: str,
        logger: structlog.stdlib.BoundLogger | None = None,
        **context: Any,
    ):
        self.operation = operation
        self.context = context
        self._logger = logger or get_logger()
        self._started: float | None = None

    def __enter__(self) -> OperationLogger:
        self._started = time.monotonic()
        self._logger.debug(f"{self.operation} started", **self.context)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        elapsed = round(time.monotonic() - (self._started or time.monotonic()), 3)
        log = self._logger.bind(operation=self.operation, elapsed_seconds=elapsed, **self.context)

        if exc_type is None:
            log.info(f"{self.operation} finished")
        elif issubclass(exc_type, Exception):
            log.error(f"{self.operation} failed", error_type=exc_type.__name__, error=str(exc_val))
        else:
            log.warning(f"{self.operation} interrupted", error_type=exc_type.__name__)

    def update(self, **additional_context: Any) -> None:
        self.context.update(additional_context)
