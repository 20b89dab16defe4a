"""Event payload builder.

Serializes a whole run to JSON and stores it under a single key named after
the run kind, e.g. ``{"taskrun": "{...}"}``.
"""

import logging

from pydantic_core import PydanticSerializationError

from run_events.core.exceptions import SerializationError
from run_events.runs.models import RunKind, RunObject

logger = logging.getLogger(__name__)

__all__ = ["PAYLOAD_KEYS", "build_payload"]

PAYLOAD_KEYS: dict[RunKind, str] = {
    RunKind.TASK_RUN: "taskrun",
    RunKind.PIPELINE_RUN: "pipelinerun",
}


def build_payload(run: RunObject) -> dict[str, str]:
    """Build the event data bundle for a run.

    Args:
        run: Run to serialize.

    Returns:
        One-entry mapping of payload key to the run's JSON serialization.

    Raises:
        SerializationError: If any field of the run cannot be encoded.

    """
    key = PAYLOAD_KEYS[run.run_kind]
    try:
        data = run.model_dump_json(by_alias=True)
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise SerializationError(
            f"Failed to serialize {run.kind} {run.name}: {e}", kind=run.kind
        ) from e
    return {key: data}
