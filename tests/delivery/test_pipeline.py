"""Tests for DeliveryPipeline and the global pipeline accessor."""

import asyncio
import logging

import pytest

from run_events.core.config import EventsConfig, RetryConfig
from run_events.core.exceptions import (
    MissingConditionError,
    NoTransportConfiguredError,
    SerializationError,
    UnrecognizedReasonError,
    UnsupportedObjectTypeError,
)
from run_events.delivery.base import DiagnosticSink, SendResult, Severity
from run_events.delivery.http import HttpTransport
from run_events.delivery.pipeline import (
    DELIVERY_FAILURE_REASON,
    DeliveryPipeline,
    DeliveryState,
    build_pipeline,
    get_pipeline,
    init_pipeline,
    reset_pipeline,
    send_event_with_retries,
)
from run_events.delivery.sinks import LoggingDiagnosticSink
from run_events.events.types import EventType
from run_events.runs.models import RunObject, TaskRun

RETRYABLE = SendResult.rejected("HTTP 503: unavailable", retryable=True)
FATAL = SendResult.rejected("HTTP 400: bad request", retryable=False)
FAST = RetryConfig(base_delay_ms=1, max_attempts=5)


class TestPreconditions:
    """Errors raised synchronously before any task starts."""

    @pytest.mark.asyncio
    async def test_unsupported_object_type(self, make_transport) -> None:
        transport = make_transport()
        pipeline = DeliveryPipeline(transport=transport)
        with pytest.raises(UnsupportedObjectTypeError) as exc_info:
            await pipeline.deliver({"kind": "TaskRun"})
        assert exc_info.value.type_name == "dict"
        assert pipeline.in_flight == 0
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_bare_run_object_rejected(self, make_transport) -> None:
        """Only registered run kinds are deliverable."""
        transport = make_transport()
        pipeline = DeliveryPipeline(transport=transport)
        run = RunObject(
            kind="TaskRun",
            metadata={"name": "x"},
            status={"conditions": [{"type": "Succeeded", "status": "True"}]},
        )
        with pytest.raises(UnsupportedObjectTypeError) as exc_info:
            await pipeline.deliver(run)
        assert exc_info.value.type_name == "RunObject"
        assert pipeline.in_flight == 0
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_type_guard_checked_before_transport(self) -> None:
        pipeline = DeliveryPipeline()
        with pytest.raises(UnsupportedObjectTypeError):
            await pipeline.deliver("not a run")

    @pytest.mark.asyncio
    async def test_no_transport_configured(self, make_task_run) -> None:
        pipeline = DeliveryPipeline(transport=None)
        with pytest.raises(NoTransportConfiguredError):
            await pipeline.deliver(make_task_run())
        assert pipeline.in_flight == 0

    @pytest.mark.asyncio
    async def test_missing_condition(self, make_task_run, make_transport) -> None:
        transport = make_transport()
        pipeline = DeliveryPipeline(transport=transport)
        with pytest.raises(MissingConditionError):
            await pipeline.deliver(make_task_run(status=None))
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_unrecognized_reason(self, make_pipeline_run, make_transport) -> None:
        pipeline = DeliveryPipeline(transport=make_transport())
        with pytest.raises(UnrecognizedReasonError):
            await pipeline.deliver(make_pipeline_run("Unknown", "Pending"))

    @pytest.mark.asyncio
    async def test_serialization_error(self, make_transport, recording_sink) -> None:
        run = TaskRun(
            metadata={"name": "bad"},
            spec={"handle": object()},
            status={"conditions": [{"type": "Succeeded", "status": "True"}]},
        )
        pipeline = DeliveryPipeline(transport=make_transport(), diagnostic_sink=recording_sink)
        with pytest.raises(SerializationError):
            await pipeline.deliver(run)
        assert recording_sink.records == []


class TestNonBlockingDelivery:
    """deliver() returns once the task has started, not when it finishes."""

    @pytest.mark.asyncio
    async def test_returns_before_slow_send_completes(self, make_task_run, make_transport) -> None:
        transport = make_transport(SendResult.ack(), delay=10.0)
        pipeline = DeliveryPipeline(transport=transport, retry=FAST)

        handle = await asyncio.wait_for(pipeline.deliver(make_task_run()), timeout=1.0)

        assert handle.state is DeliveryState.DISPATCHED
        assert handle.done is False
        assert pipeline.in_flight == 1
        await pipeline.aclose()

    @pytest.mark.asyncio
    async def test_returns_before_instant_send(self, make_task_run, make_transport) -> None:
        """Even a zero-latency transport has not been called when deliver returns."""
        transport = make_transport(SendResult.ack())
        pipeline = DeliveryPipeline(transport=transport, retry=FAST)

        handle = await pipeline.deliver(make_task_run())

        assert handle.state is DeliveryState.DISPATCHED
        assert transport.sent == []
        assert await handle.wait() is DeliveryState.ACKNOWLEDGED
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_handle_exposes_envelope(self, make_pipeline_run, make_transport) -> None:
        pipeline = DeliveryPipeline(transport=make_transport(), retry=FAST)
        run = make_pipeline_run("Unknown", "Started")
        handle = await pipeline.deliver(run)
        assert handle.run is run
        assert handle.envelope.type is EventType.PIPELINE_RUN_QUEUED
        assert "release-7" in repr(handle)
        await handle.wait()

    @pytest.mark.asyncio
    async def test_independent_concurrent_deliveries(
        self, make_task_run, make_pipeline_run, make_transport
    ) -> None:
        transport = make_transport(SendResult.ack(), delay=0.01)
        pipeline = DeliveryPipeline(transport=transport, retry=FAST)

        handles = [
            await pipeline.deliver(make_task_run(name=f"build-{i}")) for i in range(3)
        ] + [await pipeline.deliver(make_pipeline_run())]
        states = await asyncio.gather(*(h.wait() for h in handles))

        assert states == [DeliveryState.ACKNOWLEDGED] * 4
        assert len({h.envelope.id for h in handles}) == 4
        assert pipeline.in_flight == 0


class TestRetries:
    """Retry and terminal failure behavior."""

    @pytest.mark.asyncio
    async def test_ack_after_rejections_records_nothing(
        self, make_task_run, make_transport, recording_sink
    ) -> None:
        """N-1 retryable rejections then an ack, N <= max_attempts."""
        transport = make_transport(RETRYABLE, RETRYABLE, RETRYABLE, RETRYABLE, SendResult.ack())
        pipeline = DeliveryPipeline(
            transport=transport, diagnostic_sink=recording_sink, retry=FAST
        )

        handle = await pipeline.deliver(make_task_run())
        state = await handle.wait()

        assert state is DeliveryState.ACKNOWLEDGED
        assert handle.result is not None and handle.result.acknowledged
        assert len(transport.sent) == 5
        assert recording_sink.records == []

    @pytest.mark.asyncio
    async def test_same_envelope_on_every_attempt(
        self, make_task_run, make_transport
    ) -> None:
        transport = make_transport(RETRYABLE, SendResult.ack())
        pipeline = DeliveryPipeline(transport=transport, retry=FAST)
        handle = await pipeline.deliver(make_task_run())
        await handle.wait()
        assert [e.id for e in transport.sent] == [handle.envelope.id] * 2

    @pytest.mark.asyncio
    async def test_exhaustion_records_one_diagnostic(
        self, make_task_run, make_transport, recording_sink, caplog: pytest.LogCaptureFixture
    ) -> None:
        transport = make_transport(RETRYABLE)
        pipeline = DeliveryPipeline(
            transport=transport, diagnostic_sink=recording_sink, retry=FAST
        )
        run = make_task_run()

        handle = await pipeline.deliver(run)
        state = await handle.wait()

        assert state is DeliveryState.FAILED
        assert len(transport.sent) == FAST.max_attempts
        assert recording_sink.records == [
            (run, Severity.WARNING, DELIVERY_FAILURE_REASON, "HTTP 503: unavailable")
        ]
        assert "Failed to send cloudevent" in caplog.text

        # No further retries after the terminal failure
        await asyncio.sleep(0.05)
        assert len(transport.sent) == FAST.max_attempts
        assert len(recording_sink.records) == 1

    @pytest.mark.asyncio
    async def test_non_retryable_fails_after_one_attempt(
        self, make_pipeline_run, make_transport, recording_sink
    ) -> None:
        transport = make_transport(FATAL)
        pipeline = DeliveryPipeline(
            transport=transport, diagnostic_sink=recording_sink, retry=FAST
        )
        handle = await pipeline.deliver(make_pipeline_run())
        assert await handle.wait() is DeliveryState.FAILED
        assert len(transport.sent) == 1
        assert recording_sink.records[0][3] == "HTTP 400: bad request"

    @pytest.mark.asyncio
    async def test_missing_sink_is_logged(
        self, make_task_run, make_transport, caplog: pytest.LogCaptureFixture
    ) -> None:
        pipeline = DeliveryPipeline(transport=make_transport(FATAL), diagnostic_sink=None)
        handle = await pipeline.deliver(make_task_run())
        assert await handle.wait() is DeliveryState.FAILED
        assert "No diagnostic sink configured" in caplog.text

    @pytest.mark.asyncio
    async def test_failing_sink_is_logged_and_dropped(
        self, make_task_run, make_transport, caplog: pytest.LogCaptureFixture
    ) -> None:
        class BrokenSink(DiagnosticSink):
            def record(self, subject, severity, reason, message) -> None:
                raise RuntimeError("sink down")

        pipeline = DeliveryPipeline(transport=make_transport(FATAL), diagnostic_sink=BrokenSink())
        handle = await pipeline.deliver(make_task_run())

        assert await handle.wait() is DeliveryState.FAILED
        assert handle.done
        assert "Diagnostic sink failed" in caplog.text

    @pytest.mark.asyncio
    async def test_transport_exception_is_terminal_failure(
        self, make_task_run, recording_sink
    ) -> None:
        class ExplodingTransport(HttpTransport):
            async def send(self, envelope):
                raise RuntimeError("socket gone")

        pipeline = DeliveryPipeline(
            transport=ExplodingTransport("https://events.example.com/"),
            diagnostic_sink=recording_sink,
            retry=FAST,
        )
        handle = await pipeline.deliver(make_task_run())
        assert await handle.wait() is DeliveryState.FAILED
        assert "socket gone" in recording_sink.records[0][3]


class TestCancellation:
    """Cancelling a delivery stops retries without diagnostics."""

    @pytest.mark.asyncio
    async def test_cancel_mid_retry(self, make_task_run, make_transport, recording_sink) -> None:
        transport = make_transport(RETRYABLE)
        pipeline = DeliveryPipeline(
            transport=transport,
            diagnostic_sink=recording_sink,
            retry=RetryConfig(base_delay_ms=10_000, max_attempts=10),
        )
        handle = await pipeline.deliver(make_task_run())
        while not transport.sent:
            await asyncio.sleep(0)

        assert handle.cancel() is True
        state = await handle.wait()

        assert state is DeliveryState.CANCELLED
        assert len(transport.sent) == 1
        assert recording_sink.records == []

    @pytest.mark.asyncio
    async def test_aclose_cancels_in_flight(
        self, make_task_run, make_transport, recording_sink
    ) -> None:
        transport = make_transport(SendResult.ack(), delay=10.0)
        pipeline = DeliveryPipeline(transport=transport, diagnostic_sink=recording_sink)
        handles = [await pipeline.deliver(make_task_run(name=f"b-{i}")) for i in range(3)]

        await pipeline.aclose()

        assert all(h.state is DeliveryState.CANCELLED for h in handles)
        assert pipeline.in_flight == 0
        assert recording_sink.records == []
        assert transport.closed is True

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, make_task_run, make_transport) -> None:
        transport = make_transport(SendResult.ack(), delay=10.0)
        async with DeliveryPipeline(transport=transport) as pipeline:
            handle = await pipeline.deliver(make_task_run())
        assert handle.state is DeliveryState.CANCELLED
        assert transport.closed is True

    @pytest.mark.asyncio
    async def test_cancel_after_completion_returns_false(
        self, make_task_run, make_transport
    ) -> None:
        pipeline = DeliveryPipeline(transport=make_transport(), retry=FAST)
        handle = await pipeline.deliver(make_task_run())
        await handle.wait()
        assert handle.cancel() is False
        assert handle.state is DeliveryState.ACKNOWLEDGED


class TestBuildPipeline:
    """Pipeline construction from configuration."""

    def test_with_sink_url(self) -> None:
        config = EventsConfig.model_validate(
            {"transport": {"sink_url": "https://events.example.com/"}, "retry": {"max_attempts": 3}}
        )
        pipeline = build_pipeline(config)
        assert isinstance(pipeline.transport, HttpTransport)
        assert isinstance(pipeline.diagnostic_sink, LoggingDiagnosticSink)
        assert pipeline.retry.max_attempts == 3

    def test_without_sink_url(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.WARNING)
        pipeline = build_pipeline(EventsConfig())
        assert pipeline.transport is None
        assert "No sink URL configured" in caplog.text

    def test_diagnostics_off(self) -> None:
        pipeline = build_pipeline(EventsConfig(diagnostics="off"))
        assert pipeline.diagnostic_sink is None


class TestGlobalAccessor:
    """Tests for global accessor functions."""

    def test_get_pipeline_returns_none_when_not_initialized(self) -> None:
        reset_pipeline()
        assert get_pipeline() is None

    def test_init_pipeline_creates_instance(self) -> None:
        init_pipeline(EventsConfig())
        assert isinstance(get_pipeline(), DeliveryPipeline)

    def test_init_pipeline_with_none_disables(self) -> None:
        init_pipeline(None)
        assert get_pipeline() is None

    def test_init_pipeline_with_disabled_config(self) -> None:
        init_pipeline(EventsConfig(enabled=False))
        assert get_pipeline() is None

    def test_double_init_logs_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.WARNING)
        init_pipeline(EventsConfig())
        init_pipeline(EventsConfig())
        assert "already initialized" in caplog.text

    def test_reset_pipeline_clears_instance(self) -> None:
        init_pipeline(EventsConfig())
        reset_pipeline()
        assert get_pipeline() is None

    @pytest.mark.asyncio
    async def test_send_without_pipeline_raises(self, make_task_run) -> None:
        with pytest.raises(NoTransportConfiguredError):
            await send_event_with_retries(make_task_run())

    @pytest.mark.asyncio
    async def test_send_uses_explicit_pipeline(self, make_task_run, make_transport) -> None:
        transport = make_transport()
        pipeline = DeliveryPipeline(transport=transport, retry=FAST)
        handle = await send_event_with_retries(make_task_run(), pipeline=pipeline)
        assert await handle.wait() is DeliveryState.ACKNOWLEDGED
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_send_uses_global_pipeline(self, make_task_run, monkeypatch) -> None:
        import run_events.delivery.pipeline as pipeline_module

        pipeline = DeliveryPipeline(transport=None)
        monkeypatch.setattr(pipeline_module, "_pipeline", pipeline)
        with pytest.raises(NoTransportConfiguredError, match="no event transport configured"):
            await send_event_with_retries(make_task_run())
