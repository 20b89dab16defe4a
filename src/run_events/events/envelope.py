"""Event envelope and assembly.

An envelope is the immutable, fully assembled notification handed to a
transport. It is built once per emission attempt by event_for_run():

    classify(run) -> build_payload(run) -> assemble(run, classification, data)

Source falls back to a path synthesized from the run's group, version,
namespace, kind and name when the run has no selfLink, so every envelope has
a non-empty, reproducible source.
"""

import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from run_events.events.classifier import classify
from run_events.events.payload import build_payload
from run_events.events.types import EventClassification, EventStatus, EventType
from run_events.runs.models import RunKind, RunObject

logger = logging.getLogger(__name__)

__all__ = [
    "CLOUDEVENTS_SPEC_VERSION",
    "SOURCE_TEMPLATE",
    "CloudEventEnvelope",
    "assemble",
    "build_source",
    "event_for_run",
]

CLOUDEVENTS_SPEC_VERSION = "1.0"
SOURCE_TEMPLATE = "/apis/{group}/{version}/namespaces/{namespace}/{kind}/{name}"


class CloudEventEnvelope(BaseModel):
    """Immutable notification ready for transport.

    Attributes:
        id: Unique event id (UUID4).
        type: Event type from the CDEvents vocabulary.
        status: Lifecycle status; the only field telling success from failure.
        subject: Run name.
        source: Run selfLink or synthesized API path.
        data: Payload bundle (payload key -> serialized run).
        time: UTC timestamp of assembly.
        extensions: CloudEvents extension attributes identifying the run.

    data and extensions are read-only mappings.

    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: EventType
    status: EventStatus
    subject: str
    source: str
    data: Mapping[str, str] = Field(default_factory=dict, validate_default=True)
    time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    extensions: Mapping[str, str] = Field(default_factory=dict, validate_default=True)

    @field_validator("data", "extensions")
    @classmethod
    def read_only_mapping(cls, value: Mapping[str, str]) -> Mapping[str, str]:
        """Copy into a read-only view."""
        return MappingProxyType(dict(value))

    @field_serializer("data", "extensions")
    def plain_dict(self, value: Mapping[str, str]) -> dict[str, str]:
        return dict(value)

    def to_structured(self) -> dict[str, Any]:
        """Render as a CloudEvents structured-mode JSON object."""
        event: dict[str, Any] = {
            "specversion": CLOUDEVENTS_SPEC_VERSION,
            "id": self.id,
            "source": self.source,
            "type": self.type.value,
            "subject": self.subject,
            "time": self.time.isoformat(),
            "datacontenttype": "application/json",
        }
        event.update(self.extensions)
        event["data"] = dict(self.data)
        return event


def build_source(run: RunObject) -> str:
    """Return the run's selfLink, or the synthesized API path if it has none."""
    if run.metadata.self_link:
        return run.metadata.self_link
    group, version, kind = run.group_version_kind()
    return SOURCE_TEMPLATE.format(
        group=group,
        version=version,
        namespace=run.metadata.namespace,
        kind=kind,
        name=run.metadata.name,
    )


def _task_run_extensions(run: RunObject, _status: EventStatus) -> dict[str, str]:
    return {
        "taskrunid": run.metadata.uid,
        "taskrunname": run.metadata.name,
    }


def _pipeline_run_extensions(run: RunObject, status: EventStatus) -> dict[str, str]:
    return {
        "pipelinerunid": run.metadata.uid,
        "pipelinerunname": run.metadata.name,
        "pipelinerunstatus": status.value,
    }


# Builders share one signature; TaskRun extensions do not carry the status.
_EXTENSION_BUILDERS: dict[RunKind, Callable[[RunObject, EventStatus], dict[str, str]]] = {
    RunKind.TASK_RUN: _task_run_extensions,
    RunKind.PIPELINE_RUN: _pipeline_run_extensions,
}


def assemble(
    run: RunObject,
    classification: EventClassification,
    data: dict[str, str],
) -> CloudEventEnvelope:
    """Combine classification, payload and run identity into an envelope."""
    extensions = _EXTENSION_BUILDERS[run.run_kind](run, classification.status)
    return CloudEventEnvelope(
        type=classification.type,
        status=classification.status,
        subject=run.metadata.name,
        source=build_source(run),
        data=data,
        extensions=extensions,
    )


def event_for_run(run: RunObject) -> CloudEventEnvelope:
    """Build the envelope for a run's current condition.

    Raises:
        ClassificationError: Condition missing, unknown or unmapped.
        SerializationError: Run could not be serialized.

    """
    data = build_payload(run)
    classification = classify(run)
    return assemble(run, classification, data)
