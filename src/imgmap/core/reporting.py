"""
Status reporting sinks.

The decoder and the mapper announce what they are doing through a
``Reporter``. Callers that do not care pass nothing and get a
``NullReporter``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import structlog

from imgmap.core.exceptions import ReporterUnavailableError
from imgmap.core.logging import get_logger


class Reporter(ABC):
    """Capability interface for surfacing progress text to a user."""

    @abstractmethod
    def say(self, text: str) -> None:
        """Announce a step that is about to happen."""

    @abstractmethod
    def message(self, text: str) -> None:
        """Report a detail or a result."""

    @abstractmethod
    def error(self, text: str) -> None:
        """Report a failure."""

    @abstractmethod
    def ask(self, question: str) -> str:
        """Ask the user a question and return the answer."""


class NullReporter(Reporter):
    """Reporter that discards everything."""

    def say(self, text: str) -> None:
        pass

    def message(self, text: str) -> None:
        pass

    def error(self, text: str) -> None:
        pass

    def ask(self, question: str) -> str:
        raise ReporterUnavailableError("no ui available")


class LoggingReporter(Reporter):
    """Reporter that forwards everything to structlog."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self.logger = logger or get_logger("imgmap.report")

    def say(self, text: str) -> None:
        self.logger.info(text)

    def message(self, text: str) -> None:
        self.logger.debug(text)

    def error(self, text: str) -> None:
        self.logger.error(text)

    def ask(self, question: str) -> str:
        raise ReporterUnavailableError(f"cannot ask '{question}' through the log")


def ensure_reporter(reporter: Reporter | None) -> Reporter:
    """Return ``reporter`` or a ``NullReporter`` when none was supplied."""
    return reporter if reporter is not None else NullReporter()
