"""Diagnostic sink for invalid arguments and swallowed exceptions.

Every pkgindex component receives its sink explicitly instead of reaching
for a process-wide logger. Reporting is fire-and-forget: a sink that fails
is logged at DEBUG level and never breaks the calling operation.
"""

from __future__ import annotations

import logging
from typing import Protocol

_logger = logging.getLogger(__name__)


class DiagnosticSink(Protocol):
    """Structural interface for diagnostic reporting."""

    def report_invalid_argument(self, name: str) -> None:
        ...

    def report_exception(self, exc: BaseException, context: str = "") -> None:
        ...


class LoggingDiagnosticSink:
    """Default sink that forwards reports to a :class:`logging.Logger`."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("pkgindex")

    def report_invalid_argument(self, name: str) -> None:
        self._logger.warning("Invalid argument: %s", name)

    def report_exception(self, exc: BaseException, context: str = "") -> None:
        self._logger.error(
            "%s failed: %s",
            context or type(exc).__name__,
            exc,
            exc_info=(type(exc), exc, exc.__traceback__),
        )


def report_invalid_argument(sink: DiagnosticSink, name: str) -> None:
    """Forward an invalid-argument report, never raising."""
    try:
        sink.report_invalid_argument(name)
    except Exception:
        _logger.debug("Diagnostic sink failed for invalid argument %s", name, exc_info=True)


def report_exception(sink: DiagnosticSink, exc: BaseException, context: str = "") -> None:
    """Forward an exception report, never raising."""
    try:
        sink.report_exception(exc, context)
    except Exception:
        _logger.debug("Diagnostic sink failed for %s", context, exc_info=True)
