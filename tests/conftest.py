"""Pytest configuration and fixtures for run-events tests."""

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from run_events.delivery.base import DiagnosticSink, SendResult, Severity, Transport
from run_events.events.envelope import CloudEventEnvelope
from run_events.runs.models import PipelineRun, RunObject, TaskRun


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch: pytest.MonkeyPatch):
    """Reset config and pipeline singletons before and after each test.

    Also clears the sink URL environment override so a developer's shell
    cannot leak into tests.
    """
    from run_events.core.config import SINK_URL_ENV, _reset_config
    from run_events.delivery.pipeline import reset_pipeline

    monkeypatch.delenv(SINK_URL_ENV, raising=False)
    _reset_config()
    reset_pipeline()
    yield
    _reset_config()
    reset_pipeline()


def _manifest(
    kind: str,
    *,
    name: str,
    namespace: str,
    uid: str,
    status: str | None,
    reason: str,
    self_link: str,
) -> dict[str, Any]:
    conditions = []
    if status is not None:
        conditions.append(
            {"type": "Succeeded", "status": status, "reason": reason, "message": ""}
        )
    metadata = {"name": name, "namespace": namespace, "uid": uid}
    if self_link:
        metadata["selfLink"] = self_link
    return {
        "apiVersion": "tekton.dev/v1beta1",
        "kind": kind,
        "metadata": metadata,
        "spec": {"serviceAccountName": "default"},
        "status": {"conditions": conditions},
    }


@pytest.fixture
def make_task_run() -> Callable[..., TaskRun]:
    """Factory for TaskRuns with a single Succeeded condition.

    Pass status=None for a TaskRun without conditions.
    """

    def _make(
        status: str | None = "Unknown",
        reason: str = "Running",
        *,
        name: str = "build-1",
        namespace: str = "ci",
        uid: str = "tr-uid-1",
        self_link: str = "",
    ) -> TaskRun:
        return TaskRun.model_validate(
            _manifest(
                "TaskRun",
                name=name,
                namespace=namespace,
                uid=uid,
                status=status,
                reason=reason,
                self_link=self_link,
            )
        )

    return _make


@pytest.fixture
def make_pipeline_run() -> Callable[..., PipelineRun]:
    """Factory for PipelineRuns with a single Succeeded condition."""

    def _make(
        status: str | None = "Unknown",
        reason: str = "Running",
        *,
        name: str = "release-7",
        namespace: str = "ci",
        uid: str = "pr-uid-7",
        self_link: str = "",
    ) -> PipelineRun:
        return PipelineRun.model_validate(
            _manifest(
                "PipelineRun",
                name=name,
                namespace=namespace,
                uid=uid,
                status=status,
                reason=reason,
                self_link=self_link,
            )
        )

    return _make


class ScriptedTransport(Transport):
    """Transport replaying a scripted list of results.

    The last result repeats once the script is exhausted. ``delay`` is slept
    before each result to simulate network latency.
    """

    def __init__(self, results: list[SendResult], delay: float = 0.0) -> None:
        self.results = list(results)
        self.delay = delay
        self.sent: list[CloudEventEnvelope] = []
        self.closed = False

    @property
    def transport_name(self) -> str:
        return "scripted"

    async def send(self, envelope: CloudEventEnvelope) -> SendResult:
        self.sent.append(envelope)
        if self.delay:
            await asyncio.sleep(self.delay)
        index = min(len(self.sent), len(self.results)) - 1
        return self.results[index]

    async def aclose(self) -> None:
        self.closed = True


class RecordingSink(DiagnosticSink):
    """Diagnostic sink keeping every record in memory."""

    def __init__(self) -> None:
        self.records: list[tuple[RunObject, Severity, str, str]] = []

    def record(
        self,
        subject: RunObject,
        severity: Severity,
        reason: str,
        message: str,
    ) -> None:
        self.records.append((subject, severity, reason, message))


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_transport() -> Callable[..., ScriptedTransport]:
    """Factory for ScriptedTransport instances."""

    def _make(*results: SendResult, delay: float = 0.0) -> ScriptedTransport:
        return ScriptedTransport(list(results) or [SendResult.ack()], delay=delay)

    return _make
