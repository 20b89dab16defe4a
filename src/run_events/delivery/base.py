"""Collaborator interfaces used by the delivery pipeline.

Transports put envelopes on a wire and decide which failures are worth
retrying. Diagnostic sinks receive a best-effort, human-visible record when
delivery ultimately fails. Both must be safe for concurrent use by several
delivery tasks.
"""

from abc import ABC, abstractmethod
from enum import Enum

from pydantic import BaseModel, ConfigDict

from run_events.events.envelope import CloudEventEnvelope
from run_events.runs.models import RunObject

__all__ = ["DiagnosticSink", "SendResult", "Severity", "Transport"]


class SendResult(BaseModel):
    """Outcome of a single send attempt.

    Attributes:
        acknowledged: True if the receiver accepted the event.
        retryable: For rejections, whether another attempt may succeed.
        error: Human-readable rejection reason (empty when acknowledged).

    """

    model_config = ConfigDict(frozen=True)

    acknowledged: bool
    retryable: bool = False
    error: str = ""

    @classmethod
    def ack(cls) -> "SendResult":
        return cls(acknowledged=True)

    @classmethod
    def rejected(cls, error: str, *, retryable: bool) -> "SendResult":
        return cls(acknowledged=False, retryable=retryable, error=error)


class Severity(str, Enum):
    """Diagnostic record severity (Kubernetes event types)."""

    NORMAL = "Normal"
    WARNING = "Warning"


class Transport(ABC):
    """Abstract event transport."""

    @property
    @abstractmethod
    def transport_name(self) -> str:
        """Short name used in log lines."""

    @abstractmethod
    async def send(self, envelope: CloudEventEnvelope) -> SendResult:
        """Send one envelope once.

        Implementations report failures through SendResult instead of raising.
        Retries are driven by the caller.
        """

    async def aclose(self) -> None:  # noqa: B027
        """Release transport resources. Default is a no-op."""


class DiagnosticSink(ABC):
    """Side channel for human-visible delivery failure reports."""

    @abstractmethod
    def record(
        self,
        subject: RunObject,
        severity: Severity,
        reason: str,
        message: str,
    ) -> None:
        """Record a diagnostic about ``subject``. Best-effort."""
