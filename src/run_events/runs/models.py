"""Run object models.

Read-only views of the runs whose lifecycle is reported. Runs are owned and
mutated by their controller; this package only reads them, so every model is
frozen.

The set of run kinds is closed (see RunKind). Every table keyed by RunKind
elsewhere in the package must cover all members.

Example:
    >>> run = TaskRun.model_validate({
    ...     "metadata": {"name": "build-1", "namespace": "ci", "uid": "abc"},
    ...     "status": {"conditions": [
    ...         {"type": "Succeeded", "status": "Unknown", "reason": "Running"},
    ...     ]},
    ... })
    >>> run.get_succeeded_condition().is_unknown()
    True

"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field

from run_events.core.exceptions import UnsupportedObjectTypeError

logger = logging.getLogger(__name__)

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

API_VERSION = "tekton.dev/v1beta1"
CONDITION_SUCCEEDED = "Succeeded"


class RunKind(str, Enum):
    """Closed set of supported run kinds."""

    TASK_RUN = "TaskRun"
    PIPELINE_RUN = "PipelineRun"


class ConditionStatus(str, Enum):
    """Tri-state condition status values."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class _K8sModel(BaseModel):
    """Base for manifest-shaped models (camelCase aliases, extra fields kept)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")


class Condition(_K8sModel):
    """Single status condition.

    ``status`` is kept as a plain string so that values outside the
    True/False/Unknown trichotomy survive parsing and can be reported.
    """

    type: str
    status: str
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = Field(default=None, alias="lastTransitionTime")

    def is_true(self) -> bool:
        return self.status == ConditionStatus.TRUE.value

    def is_false(self) -> bool:
        return self.status == ConditionStatus.FALSE.value

    def is_unknown(self) -> bool:
        return self.status == ConditionStatus.UNKNOWN.value


class ObjectMeta(_K8sModel):
    """Identity metadata of a run."""

    name: str
    namespace: str = ""
    uid: str = ""
    self_link: str = Field(default="", alias="selfLink")
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class RunStatus(_K8sModel):
    """Observed status of a run."""

    conditions: list[Condition] = Field(default_factory=list)

    def get_condition(self, condition_type: str) -> Condition | None:
        """Return the first condition of the given type, or None."""
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None


class RunObject(_K8sModel):
    """Base for every object that exposes a Succeeded condition.

    Not deliverable on its own: only the RUN_MODELS subclasses, which pin
    ``run_kind`` and ``kind``, are accepted by the delivery pipeline.
    """

    run_kind: ClassVar[RunKind]

    api_version: str = Field(default=API_VERSION, alias="apiVersion")
    kind: str
    metadata: ObjectMeta
    spec: dict[str, Any] = Field(default_factory=dict)
    status: RunStatus = Field(default_factory=RunStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    def get_succeeded_condition(self) -> Condition | None:
        return self.status.get_condition(CONDITION_SUCCEEDED)

    def group_version_kind(self) -> tuple[str, str, str]:
        """Split apiVersion into (group, version, kind).

        Core API objects have no group: "v1" yields ("", "v1", kind).
        """
        group, _, version = self.api_version.rpartition("/")
        return group, version, self.kind


class TaskRun(RunObject):
    """Leaf run: a single task execution."""

    run_kind: ClassVar[RunKind] = RunKind.TASK_RUN

    kind: Literal["TaskRun"] = "TaskRun"


class PipelineRun(RunObject):
    """Composite run: a pipeline of tasks that may be queued before it starts."""

    run_kind: ClassVar[RunKind] = RunKind.PIPELINE_RUN

    kind: Literal["PipelineRun"] = "PipelineRun"


RUN_MODELS: dict[RunKind, type[RunObject]] = {
    RunKind.TASK_RUN: TaskRun,
    RunKind.PIPELINE_RUN: PipelineRun,
}


def parse_run(data: dict[str, Any]) -> RunObject:
    """Validate a run manifest into the model matching its ``kind``.

    Args:
        data: Parsed manifest (YAML or JSON).

    Returns:
        TaskRun or PipelineRun instance.

    Raises:
        UnsupportedObjectTypeError: If ``kind`` is missing or unsupported.
        pydantic.ValidationError: If the manifest does not match the model.

    """
    kind = data.get("kind", "")
    try:
        run_kind = RunKind(kind)
    except ValueError:
        raise UnsupportedObjectTypeError(
            f"Unsupported run kind: {kind!r}", type_name=str(kind)
        ) from None
    model = RUN_MODELS[run_kind]
    logger.debug("Parsing %s manifest", run_kind.value)
    return model.model_validate(data)
