"""Diagnostic sinks."""

import logging

from run_events.delivery.base import DiagnosticSink, Severity
from run_events.runs.models import RunObject

logger = logging.getLogger(__name__)

__all__ = ["LoggingDiagnosticSink"]

_SEVERITY_LEVELS = {
    Severity.NORMAL: logging.INFO,
    Severity.WARNING: logging.WARNING,
}


class LoggingDiagnosticSink(DiagnosticSink):
    """Write diagnostic records to a dedicated logger.

    Each record names the run as ``Kind namespace/name`` so that operators can
    grep for a run's delivery failures.
    """

    def __init__(self, logger_name: str = "run_events.diagnostics") -> None:
        self._logger = logging.getLogger(logger_name)

    def record(
        self,
        subject: RunObject,
        severity: Severity,
        reason: str,
        message: str,
    ) -> None:
        meta = subject.metadata
        ref = f"{meta.namespace}/{meta.name}" if meta.namespace else meta.name
        self._logger.log(
            _SEVERITY_LEVELS[severity],
            "%s %s [%s] %s: %s",
            severity.value,
            f"{subject.kind} {ref}",
            meta.uid or "-",
            reason,
            message,
        )
