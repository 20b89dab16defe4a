"""Event delivery: transports, diagnostic sinks and the delivery pipeline.

Example:
    >>> from run_events.delivery import (
    ...     DeliveryPipeline,
    ...     HttpTransport,
    ...     LoggingDiagnosticSink,
    ... )
    >>> pipeline = DeliveryPipeline(
    ...     transport=HttpTransport("https://events.example.com/"),
    ...     diagnostic_sink=LoggingDiagnosticSink(),
    ... )

"""

from .base import DiagnosticSink, SendResult, Severity, Transport
from .http import HttpTransport
from .masking import mask_url
from .pipeline import (
    DELIVERY_FAILURE_REASON,
    DeliveryHandle,
    DeliveryPipeline,
    DeliveryState,
    build_pipeline,
    get_pipeline,
    init_pipeline,
    reset_pipeline,
    send_event_with_retries,
)
from .retry import backoff_delay, send_with_backoff
from .sinks import LoggingDiagnosticSink

__all__ = [
    # Interfaces
    "Transport",
    "DiagnosticSink",
    "SendResult",
    "Severity",
    # Implementations
    "HttpTransport",
    "LoggingDiagnosticSink",
    "mask_url",
    # Retry
    "backoff_delay",
    "send_with_backoff",
    # Pipeline
    "DeliveryPipeline",
    "DeliveryHandle",
    "DeliveryState",
    "DELIVERY_FAILURE_REASON",
    "build_pipeline",
    # Global accessor
    "init_pipeline",
    "get_pipeline",
    "reset_pipeline",
    "send_event_with_retries",
]
