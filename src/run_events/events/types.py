"""Event vocabulary: event types and lifecycle statuses.

Event type values follow the CDEvents continuous-delivery core vocabulary.
Finished types are shared by successful and failed runs; consumers must read
EventStatus to tell them apart.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict

__all__ = ["EventClassification", "EventStatus", "EventType"]


class EventType(str, Enum):
    """Versioned event types emitted for run lifecycle transitions."""

    TASK_RUN_STARTED = "cd.taskrun.started.v1"
    TASK_RUN_FINISHED = "cd.taskrun.finished.v1"
    PIPELINE_RUN_QUEUED = "cd.pipelinerun.queued.v1"
    PIPELINE_RUN_STARTED = "cd.pipelinerun.started.v1"
    PIPELINE_RUN_FINISHED = "cd.pipelinerun.finished.v1"


class EventStatus(str, Enum):
    """Lifecycle status derived from a run's Succeeded condition."""

    RUNNING = "Running"
    FINISHED = "Finished"
    ERROR = "Error"


class EventClassification(BaseModel):
    """Event type and status computed for one run observation."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    status: EventStatus
