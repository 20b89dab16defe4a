"""Delivery pipeline for run lifecycle events.

deliver() validates its input, builds the envelope, starts one background
asyncio task per event and returns as soon as that task has started. The
returned DeliveryHandle says nothing about delivery success at that point;
await DeliveryHandle.wait() to learn the final state.

Delivery states:

    CREATED -> DISPATCHED -> ACKNOWLEDGED
                          -> FAILED
                          -> CANCELLED

On FAILED a warning is logged and one best-effort record is written to the
diagnostic sink. Nothing is ever raised back to the caller once the task has
started.

Example:
    >>> pipeline = DeliveryPipeline(
    ...     transport=HttpTransport("https://events.example.com/"),
    ...     diagnostic_sink=LoggingDiagnosticSink(),
    ... )
    >>> handle = await pipeline.deliver(task_run)
    >>> handle.state
    <DeliveryState.DISPATCHED: 'dispatched'>

"""

import asyncio
import logging
from enum import Enum
from types import TracebackType
from typing import Self

from run_events.core.config import EventsConfig, RetryConfig
from run_events.core.exceptions import NoTransportConfiguredError, UnsupportedObjectTypeError
from run_events.delivery.base import DiagnosticSink, SendResult, Severity, Transport
from run_events.delivery.http import HttpTransport
from run_events.delivery.retry import send_with_backoff
from run_events.delivery.sinks import LoggingDiagnosticSink
from run_events.events.envelope import CloudEventEnvelope, event_for_run
from run_events.runs.models import RUN_MODELS, RunObject

logger = logging.getLogger(__name__)

__all__ = [
    "DELIVERY_FAILURE_REASON",
    "DeliveryHandle",
    "DeliveryPipeline",
    "DeliveryState",
    "build_pipeline",
    "get_pipeline",
    "init_pipeline",
    "reset_pipeline",
    "send_event_with_retries",
]

DELIVERY_FAILURE_REASON = "delivery failure"


class DeliveryState(str, Enum):
    """Lifecycle of a single event delivery."""

    CREATED = "created"
    DISPATCHED = "dispatched"
    ACKNOWLEDGED = "acknowledged"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DeliveryHandle:
    """Caller-side view of one in-flight delivery."""

    def __init__(self, run: RunObject, envelope: CloudEventEnvelope) -> None:
        self.run = run
        self.envelope = envelope
        self.state = DeliveryState.CREATED
        self.result: SendResult | None = None
        self._task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return (
            f"DeliveryHandle(type={self.envelope.type.value!r}, "
            f"subject={self.envelope.subject!r}, state={self.state.value!r})"
        )

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> DeliveryState:
        """Wait for the delivery task to finish and return its final state."""
        if self._task is not None:
            # gather() keeps the caller alive if the delivery task was cancelled.
            await asyncio.gather(self._task, return_exceptions=True)
        return self.state

    def cancel(self) -> bool:
        """Stop further send attempts. Returns False if already finished."""
        if self._task is None:
            return False
        return self._task.cancel()


class DeliveryPipeline:
    """Send envelopes asynchronously with retries and failure diagnostics.

    Collaborators are passed explicitly. A missing transport is only detected
    when deliver() is called; a missing diagnostic sink only means failures
    are logged and not recorded.

    Use as an async context manager to cancel in-flight deliveries and close
    the transport on exit.
    """

    def __init__(
        self,
        transport: Transport | None = None,
        diagnostic_sink: DiagnosticSink | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self._transport = transport
        self._diagnostic_sink = diagnostic_sink
        self._retry = retry if retry is not None else RetryConfig()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def diagnostic_sink(self) -> DiagnosticSink | None:
        return self._diagnostic_sink

    @property
    def retry(self) -> RetryConfig:
        return self._retry

    @property
    def in_flight(self) -> int:
        """Number of deliveries whose task has not finished yet."""
        return len(self._tasks)

    async def deliver(self, run: object) -> DeliveryHandle:
        """Schedule delivery of the event describing ``run``'s current condition.

        Returns once the background task has started, before any send
        completes.

        Args:
            run: TaskRun or PipelineRun.

        Returns:
            Handle for the scheduled delivery.

        Raises:
            UnsupportedObjectTypeError: ``run`` is not a TaskRun or PipelineRun.
            NoTransportConfiguredError: No transport was configured.
            ClassificationError: Condition missing, unknown or unmapped.
            SerializationError: Run could not be serialized.

        """
        if not isinstance(run, RunObject):
            raise UnsupportedObjectTypeError(
                f"input object of type {type(run).__name__} does not expose a condition",
                type_name=type(run).__name__,
            )
        if not isinstance(run, tuple(RUN_MODELS.values())):
            raise UnsupportedObjectTypeError(
                f"input object of type {type(run).__name__} is not a supported run kind",
                type_name=type(run).__name__,
            )
        if self._transport is None:
            raise NoTransportConfiguredError("no event transport configured")

        envelope = event_for_run(run)
        handle = DeliveryHandle(run, envelope)

        started = asyncio.Event()
        task = asyncio.create_task(
            self._run_delivery(handle, self._transport, started),
            name=f"deliver-{envelope.id}",
        )
        handle._task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        # Also release the caller if the task is cancelled before its first step.
        task.add_done_callback(lambda _: started.set())

        await started.wait()
        if task.cancelled():
            handle.state = DeliveryState.CANCELLED
        return handle

    async def _run_delivery(
        self,
        handle: DeliveryHandle,
        transport: Transport,
        started: asyncio.Event,
    ) -> None:
        envelope = handle.envelope
        handle.state = DeliveryState.DISPATCHED
        started.set()

        label = f"{envelope.type.value} for {envelope.subject}"
        try:
            # Yield so the caller resumes before the first send.
            await asyncio.sleep(0)
            logger.debug(
                "Sending cloudevent of type %r via %s",
                envelope.type.value,
                transport.transport_name,
            )
            result = await send_with_backoff(
                lambda: transport.send(envelope),
                policy=self._retry,
                label=label,
            )
        except asyncio.CancelledError:
            handle.state = DeliveryState.CANCELLED
            logger.debug("Delivery of %s cancelled", label)
            raise

        handle.result = result
        if result.acknowledged:
            handle.state = DeliveryState.ACKNOWLEDGED
            return

        handle.state = DeliveryState.FAILED
        logger.warning("Failed to send cloudevent %s: %s", label, result.error)
        self._record_failure(handle.run, result.error)

    def _record_failure(self, run: RunObject, error: str) -> None:
        sink = self._diagnostic_sink
        if sink is None:
            logger.warning("No diagnostic sink configured, cannot record delivery failure")
            return
        try:
            sink.record(run, Severity.WARNING, DELIVERY_FAILURE_REASON, error)
        except Exception:
            logger.warning(
                "Diagnostic sink failed to record delivery failure for %s",
                run.name,
                exc_info=True,
            )

    async def aclose(self) -> None:
        """Cancel in-flight deliveries and close the transport."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            logger.debug("Cancelled %d in-flight deliveries", len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._transport is not None:
            await self._transport.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def build_pipeline(config: EventsConfig) -> DeliveryPipeline:
    """Create a pipeline from configuration.

    No transport is created when no sink URL is configured; deliver() then
    raises NoTransportConfiguredError.
    """
    transport: Transport | None = None
    if config.transport.sink_url:
        transport = HttpTransport(
            config.transport.sink_url,
            timeout=config.transport.timeout,
            headers=config.transport.headers,
        )
    else:
        logger.warning("No sink URL configured, events cannot be delivered")

    sink: DiagnosticSink | None = None
    if config.diagnostics == "log":
        sink = LoggingDiagnosticSink()

    return DeliveryPipeline(transport=transport, diagnostic_sink=sink, retry=config.retry)


# Global pipeline instance
_pipeline: DeliveryPipeline | None = None


def init_pipeline(config: EventsConfig | None) -> None:
    """Initialize the global delivery pipeline.

    Args:
        config: Events configuration. None or disabled leaves no pipeline.

    """
    global _pipeline
    if _pipeline is not None:
        logger.warning("Delivery pipeline already initialized, replacing it")
    if config is None or not config.enabled:
        _pipeline = None
        logger.debug("Run events disabled")
        return
    _pipeline = build_pipeline(config)


def get_pipeline() -> DeliveryPipeline | None:
    """Return the global pipeline, or None if not initialized."""
    return _pipeline


def reset_pipeline() -> None:
    """Drop the global pipeline (for tests and shutdown)."""
    global _pipeline
    _pipeline = None


async def send_event_with_retries(
    run: object,
    pipeline: DeliveryPipeline | None = None,
) -> DeliveryHandle:
    """Send the event for ``run`` without waiting for delivery.

    Uses ``pipeline`` when given, else the global pipeline.

    Raises:
        NoTransportConfiguredError: No pipeline or no transport available.
        UnsupportedObjectTypeError: ``run`` is not a TaskRun or PipelineRun.
        ClassificationError: Condition missing, unknown or unmapped.
        SerializationError: Run could not be serialized.

    """
    if pipeline is None:
        pipeline = get_pipeline()
    if pipeline is None:
        raise NoTransportConfiguredError("no delivery pipeline initialized")
    return await pipeline.deliver(run)
