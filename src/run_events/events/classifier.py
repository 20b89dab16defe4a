"""Condition classifier.

Maps a run's Succeeded condition to an (EventType, EventStatus) pair:

- Unknown -> Running, event type chosen from the condition reason. PipelineRuns
  distinguish "queued" (reason Started) from "started" (reason Running);
  TaskRuns report both as started.
- True -> Finished, kind-specific finished type.
- False -> Error, the same finished type as True.
- Anything else -> UnknownConditionStateError.

Reason matching is exact and case-sensitive; the first entry in a kind's
reason table wins.
"""

import logging

from run_events.core.exceptions import (
    MissingConditionError,
    UnknownConditionStateError,
    UnrecognizedReasonError,
)
from run_events.events.types import EventClassification, EventStatus, EventType
from run_events.runs.models import CONDITION_SUCCEEDED, RunKind, RunObject

logger = logging.getLogger(__name__)

__all__ = [
    "FINISHED_EVENT_TYPES",
    "RUNNING_REASON_EVENT_TYPES",
    "classify",
]

# Reason code -> event type for runs whose condition is Unknown, in priority order.
RUNNING_REASON_EVENT_TYPES: dict[RunKind, tuple[tuple[str, EventType], ...]] = {
    RunKind.TASK_RUN: (
        ("Started", EventType.TASK_RUN_STARTED),
        ("Running", EventType.TASK_RUN_STARTED),
    ),
    RunKind.PIPELINE_RUN: (
        ("Started", EventType.PIPELINE_RUN_QUEUED),
        ("Running", EventType.PIPELINE_RUN_STARTED),
    ),
}

# Used for both True (Finished) and False (Error) conditions.
FINISHED_EVENT_TYPES: dict[RunKind, EventType] = {
    RunKind.TASK_RUN: EventType.TASK_RUN_FINISHED,
    RunKind.PIPELINE_RUN: EventType.PIPELINE_RUN_FINISHED,
}


def _running_event_type(run_kind: RunKind, reason: str) -> EventType:
    for known_reason, event_type in RUNNING_REASON_EVENT_TYPES[run_kind]:
        if reason == known_reason:
            return event_type
    raise UnrecognizedReasonError(
        f"unknown status with unknown reason {reason}",
        kind=run_kind.value,
        reason=reason,
    )


def classify(run: RunObject) -> EventClassification:
    """Derive event type and status from the run's Succeeded condition.

    Args:
        run: TaskRun or PipelineRun to classify.

    Returns:
        EventClassification with the event type and lifecycle status.

    Raises:
        MissingConditionError: Run has no Succeeded condition.
        UnrecognizedReasonError: Unknown condition with an unmapped reason.
        UnknownConditionStateError: Condition status outside True/False/Unknown.

    """
    run_kind = run.run_kind
    condition = run.get_succeeded_condition()
    if condition is None:
        raise MissingConditionError(
            f"no condition for {CONDITION_SUCCEEDED} in {run_kind.value}",
            kind=run_kind.value,
        )

    if condition.is_unknown():
        event_type = _running_event_type(run_kind, condition.reason)
        status = EventStatus.RUNNING
    elif condition.is_true():
        event_type = FINISHED_EVENT_TYPES[run_kind]
        status = EventStatus.FINISHED
    elif condition.is_false():
        event_type = FINISHED_EVENT_TYPES[run_kind]
        status = EventStatus.ERROR
    else:
        raise UnknownConditionStateError(
            f"unknown condition for {run_kind.value}.Status {condition.status}",
            kind=run_kind.value,
            status=condition.status,
        )

    logger.debug(
        "Classified %s %s (%s/%s) as %s, %s",
        run_kind.value,
        run.name,
        condition.status,
        condition.reason,
        event_type.value,
        status.value,
    )
    return EventClassification(type=event_type, status=status)
