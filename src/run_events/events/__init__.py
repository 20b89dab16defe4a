"""Event classification, payload building and envelope assembly."""

from .classifier import FINISHED_EVENT_TYPES, RUNNING_REASON_EVENT_TYPES, classify
from .envelope import (
    SOURCE_TEMPLATE,
    CloudEventEnvelope,
    assemble,
    build_source,
    event_for_run,
)
from .payload import PAYLOAD_KEYS, build_payload
from .types import EventClassification, EventStatus, EventType

__all__ = [
    # Vocabulary
    "EventType",
    "EventStatus",
    "EventClassification",
    # Classifier
    "classify",
    "RUNNING_REASON_EVENT_TYPES",
    "FINISHED_EVENT_TYPES",
    # Payload
    "build_payload",
    "PAYLOAD_KEYS",
    # Envelope
    "CloudEventEnvelope",
    "SOURCE_TEMPLATE",
    "assemble",
    "build_source",
    "event_for_run",
]
