"""Exception hierarchy for run-events.

Everything detectable before a delivery task starts is raised to the caller
as one of these exceptions. Transport failures that happen after dispatch are
never raised; they surface as log lines and diagnostic records.
"""

__all__ = [
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


class RunEventsError(Exception):
    """Base exception for all run-events errors."""


class ConfigError(RunEventsError):
    """Configuration could not be loaded or failed validation."""


class ClassificationError(RunEventsError):
    """Run condition could not be mapped to an event type.

    Indicates a malformed or out-of-vocabulary run, never a transient fault,
    so it is never retried.

    Attributes:
        kind: Run kind (e.g., "TaskRun").
        reason: Condition reason code, if relevant.
        status: Condition status string, if relevant.

    """

    def __init__(
        self,
        message: str,
        *,
        kind: str = "",
        reason: str = "",
        status: str = "",
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.reason = reason
        self.status = status


class MissingConditionError(ClassificationError):
    """Run has no Succeeded condition."""


class UnrecognizedReasonError(ClassificationError):
    """Unknown condition carries a reason code outside the known set."""


class UnknownConditionStateError(ClassificationError):
    """Condition status is none of True, False or Unknown."""


class SerializationError(RunEventsError):
    """Run could not be serialized into an event payload.

    Attributes:
        kind: Run kind that failed to serialize.

    """

    def __init__(self, message: str, *, kind: str = "") -> None:
        super().__init__(message)
        self.kind = kind


class PreconditionError(RunEventsError):
    """Delivery was refused before any background task started."""


class NoTransportConfiguredError(PreconditionError):
    """No transport client is available to send events."""


class UnsupportedObjectTypeError(PreconditionError):
    """Object passed for delivery does not expose a condition.

    Attributes:
        type_name: Name of the rejected object's type.

    """

    def __init__(self, message: str, *, type_name: str = "") -> None:
        super().__init__(message)
        self.type_name = type_name
