"""Run object models (TaskRun, PipelineRun) and their conditions."""

from .models import (
    API_VERSION,
    CONDITION_SUCCEEDED,
    RUN_MODELS,
    Condition,
    ConditionStatus,
    ObjectMeta,
    PipelineRun,
    RunKind,
    RunObject,
    RunStatus,
    TaskRun,
    parse_run,
)

__all__ = [
    "API_VERSION",
    "CONDITION_SUCCEEDED",
    "RUN_MODELS",
    "Condition",
    "ConditionStatus",
    "ObjectMeta",
    "PipelineRun",
    "RunKind",
    "RunObject",
    "RunStatus",
    "TaskRun",
    "parse_run",
]
