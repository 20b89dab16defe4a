"""run-events: CloudEvents for TaskRun and PipelineRun lifecycle transitions.

Observes the Succeeded condition of runs, derives a CDEvents event type and
lifecycle status, and delivers the resulting envelope asynchronously with
exponential-backoff retries.

Example:
    >>> from run_events import DeliveryPipeline, HttpTransport, TaskRun
    >>> pipeline = DeliveryPipeline(transport=HttpTransport("https://events.example.com/"))
    >>> handle = await pipeline.deliver(task_run)  # returns before the send completes

"""

from .core.config import EventsConfig, RetryConfig, TransportConfig, load_config
from .core.exceptions import (
    ClassificationError,
    ConfigError,
    MissingConditionError,
    NoTransportConfiguredError,
    PreconditionError,
    RunEventsError,
    SerializationError,
    UnknownConditionStateError,
    UnrecognizedReasonError,
    UnsupportedObjectTypeError,
)
from .delivery import (
    DeliveryHandle,
    DeliveryPipeline,
    DeliveryState,
    DiagnosticSink,
    HttpTransport,
    LoggingDiagnosticSink,
    SendResult,
    Severity,
    Transport,
    send_event_with_retries,
)
from .events import (
    CloudEventEnvelope,
    EventClassification,
    EventStatus,
    EventType,
    assemble,
    build_payload,
    classify,
    event_for_run,
)
from .runs import Condition, ObjectMeta, PipelineRun, RunKind, RunObject, TaskRun

__version__ = "0.1.0"

__all__ = [
    # Runs
    "RunKind",
    "RunObject",
    "TaskRun",
    "PipelineRun",
    "Condition",
    "ObjectMeta",
    # Events
    "EventType",
    "EventStatus",
    "EventClassification",
    "CloudEventEnvelope",
    "classify",
    "build_payload",
    "assemble",
    "event_for_run",
    # Delivery
    "Transport",
    "DiagnosticSink",
    "SendResult",
    "Severity",
    "HttpTransport",
    "LoggingDiagnosticSink",
    "DeliveryPipeline",
    "DeliveryHandle",
    "DeliveryState",
    "send_event_with_retries",
    # Config
    "EventsConfig",
    "RetryConfig",
    "TransportConfig",
    "load_config",
    # Errors
    "RunEventsError",
    "ConfigError",
    "ClassificationError",
    "MissingConditionError",
    "UnrecognizedReasonError",
    "UnknownConditionStateError",
    "SerializationError",
    "PreconditionError",
    "NoTransportConfiguredError",
    "UnsupportedObjectTypeError",
]
