try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio

import httpx
import pytest

from ai_analytics.clients import AnalyticsApiClient
from ai_analytics.core.config import ApiSettings
from ai_analytics.schemas import ServiceStatus
from ai_analytics.services.analysis_types import UnknownAnalysisTypeError
from ai_analytics.services.dispatcher import (
    DispatchFailure,
    DispatchSuccess,
    RequestDispatcher,
)
from ai_analytics.services.errors import FailureKind
from ai_analytics.services.jobs import JobState


class SlowBackend:
    """Answers after ``seconds`` of virtual time."""

    def __init__(self, clock, payload, seconds: float) -> None:
        self._clock = clock
        self._payload = payload
        self._seconds = seconds
        self.calls: list[tuple[str, float]] = []

    async def fetch_analysis(self, endpoint: str, *, timeout: float):
        self.calls.append((endpoint, timeout))
        self._clock.advance(self._seconds)
        return self._payload


class HangingBackend:
    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.aborted = False

    async def fetch_analysis(self, endpoint: str, *, timeout: float):
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.aborted = True
            raise


class StubbornBackend:
    """Keeps going after being cancelled, like a driver that ignores aborts."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.saw_cancel = False

    async def fetch_analysis(self, endpoint: str, *, timeout: float):
        self.started.set()
        while True:
            try:
                await self.release.wait()
                return {"occupancySummary": "late"}
            except asyncio.CancelledError:
                self.saw_cancel = True


class StubProbe:
    def __init__(self, status: ServiceStatus) -> None:
        self._status = status
        self.calls = 0

    async def check_availability(self) -> ServiceStatus:
        self.calls += 1
        return self._status


class RecordingNotifier:
    def __init__(self) -> None:
        self.notifications: list[tuple[str, str, str]] = []

    def notify(self, *, title: str, body: str, level: str = "info") -> None:
        self.notifications.append((title, body, level))


def _http_backend(response: httpx.Response) -> AnalyticsApiClient:
    return AnalyticsApiClient(
        ApiSettings(base_url="http://analytics.test"),
        transport=httpx.MockTransport(lambda request: response),
    )


@pytest.mark.asyncio
async def test_occupancy_scenario_reports_measured_duration(fake_clock) -> None:
    clock = fake_clock
    backend = SlowBackend(clock, {"occupancySummary": "ok", "metrics": []}, seconds=2.0)
    dispatcher = RequestDispatcher(backend, clock=clock)

    handle = dispatcher.start("occupancy", timeout_ms=360000)
    assert handle.job.state is JobState.DISPATCHED
    result = await handle.result

    assert isinstance(result, DispatchSuccess)
    assert result.success is True
    assert result.data.type == "occupancy"
    assert result.data.summary == "ok"
    assert result.data.metadata.processing_time_ms == pytest.approx(2000, abs=5)
    assert backend.calls == [("/occupancy-analysis", 360.0)]
    assert handle.job.state is JobState.COMPLETED
    assert handle.job.report is result.report
    assert handle.job.progress_percent == 100
    assert dispatcher.progress.has_pending_timer(handle.job) is False


@pytest.mark.asyncio
async def test_default_timeout_comes_from_type_table(fake_clock) -> None:
    backend = SlowBackend(fake_clock, {"overallPerformance": "fine"}, seconds=0)
    dispatcher = RequestDispatcher(backend)

    handle = dispatcher.start("business")
    await handle.result

    assert handle.job.timeout_ms == 900000
    assert backend.calls == [("/business-insights", 900.0)]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("response", "kind", "retry_after"),
    [
        (httpx.Response(429, headers={"retry-after": "120"}), FailureKind.RATE_LIMITED, 120),
        (httpx.Response(429), FailureKind.RATE_LIMITED, 300),
        (httpx.Response(503), FailureKind.QUOTA_EXHAUSTED, None),
        (httpx.Response(402), FailureKind.BILLING_ISSUE, None),
        (httpx.Response(500, json={"message": "model crashed"}), FailureKind.GENERIC, None),
    ],
)
async def test_http_failures_are_classified(response, kind, retry_after) -> None:
    dispatcher = RequestDispatcher(_http_backend(response))

    handle = dispatcher.start("revenue")
    result = await handle.result

    assert isinstance(result, DispatchFailure)
    assert result.success is False
    assert result.classification.kind is kind
    assert result.classification.http_status == response.status_code
    assert result.classification.retry_after_sec == retry_after
    assert result.error.startswith(f"API request failed with status {response.status_code}")
    assert handle.job.state is JobState.FAILED
    assert handle.job.failure == result.classification
    assert dispatcher.progress.has_pending_timer(handle.job) is False


@pytest.mark.asyncio
async def test_generic_failure_carries_backend_message() -> None:
    dispatcher = RequestDispatcher(
        _http_backend(httpx.Response(500, json={"message": "model crashed"}))
    )

    result = await dispatcher.run("performance")

    assert result.error == "API request failed with status 500: model crashed"


@pytest.mark.asyncio
async def test_transport_error_is_generic() -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = AnalyticsApiClient(
        ApiSettings(base_url="http://analytics.test"),
        transport=httpx.MockTransport(_refuse),
    )
    result = await RequestDispatcher(client).run("trends")

    assert isinstance(result, DispatchFailure)
    assert result.classification.kind is FailureKind.GENERIC
    assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_timeout_is_classified_and_aborts_the_call() -> None:
    backend = HangingBackend()
    dispatcher = RequestDispatcher(backend)

    handle = dispatcher.start("occupancy", timeout_ms=20)
    result = await handle.result

    assert isinstance(result, DispatchFailure)
    assert result.classification.kind is FailureKind.TIMEOUT
    assert handle.job.state is JobState.FAILED
    assert backend.aborted is True


@pytest.mark.asyncio
async def test_cancel_aborts_in_flight_call() -> None:
    backend = HangingBackend()
    dispatcher = RequestDispatcher(backend)
    handle = dispatcher.start("occupancy")
    await asyncio.wait_for(backend.started.wait(), timeout=1)

    assert dispatcher.cancel(handle.job) is True
    assert handle.job.state is JobState.CANCELLED
    result = await handle.result

    assert isinstance(result, DispatchFailure)
    assert result.classification.kind is FailureKind.CANCELLED
    assert backend.aborted is True
    assert dispatcher.progress.has_pending_timer(handle.job) is False
    assert dispatcher.cancel(handle.job) is False


@pytest.mark.asyncio
async def test_cancel_before_request_starts() -> None:
    backend = HangingBackend()
    dispatcher = RequestDispatcher(backend)
    handle = dispatcher.start("recommendations")

    dispatcher.cancel(handle.job)
    result = await handle.result

    assert result.classification.kind is FailureKind.CANCELLED
    assert backend.started.is_set() is False
    assert handle.job.state is JobState.CANCELLED


@pytest.mark.asyncio
async def test_late_response_after_cancel_is_discarded() -> None:
    backend = StubbornBackend()
    notifier = RecordingNotifier()
    dispatcher = RequestDispatcher(backend, notifier=notifier)
    handle = dispatcher.start("occupancy")
    await asyncio.wait_for(backend.started.wait(), timeout=1)

    dispatcher.cancel(handle.job)
    await asyncio.sleep(0)
    backend.release.set()
    result = await handle.result

    assert backend.saw_cancel is True
    assert result.success is False
    assert result.classification.kind is FailureKind.CANCELLED
    assert handle.job.state is JobState.CANCELLED
    assert handle.job.report is None
    assert notifier.notifications == []


@pytest.mark.asyncio
async def test_unknown_and_composite_types_raise() -> None:
    dispatcher = RequestDispatcher(HangingBackend())

    with pytest.raises(UnknownAnalysisTypeError):
        dispatcher.start("weather")
    with pytest.raises(UnknownAnalysisTypeError):
        dispatcher.start("comprehensive")
    assert dispatcher.active_jobs() == []


@pytest.mark.asyncio
async def test_offline_gate_short_circuits_without_calling_backend(fake_clock) -> None:
    clock = fake_clock
    backend = SlowBackend(clock, {"occupancySummary": "ok"}, seconds=0)
    probe = StubProbe(
        ServiceStatus(available=False, status="offline", message="Service is offline")
    )
    dispatcher = RequestDispatcher(backend, probe=probe, check_availability=True)

    result = await dispatcher.run("occupancy")

    assert result.classification.kind is FailureKind.OFFLINE
    assert result.job.state is JobState.FAILED
    assert backend.calls == []
    assert probe.calls == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, []])
async def test_empty_json_payload_normalizes_to_empty_report(fake_clock, payload) -> None:
    backend = SlowBackend(fake_clock, payload, seconds=0)

    result = await RequestDispatcher(backend).run("occupancy")

    assert isinstance(result, DispatchSuccess)
    assert result.job.state is JobState.COMPLETED
    assert result.report.summary == ""
    assert result.report.insights == ()
    assert result.report.raw_payload == payload


@pytest.mark.asyncio
async def test_empty_response_body_is_a_generic_failure() -> None:
    result = await RequestDispatcher(_http_backend(httpx.Response(200))).run("occupancy")

    assert result.classification.kind is FailureKind.GENERIC
    assert result.error == "Invalid response from AI analytics service"
    assert result.job.state is JobState.FAILED


@pytest.mark.asyncio
async def test_notifier_hears_completion_and_failure(fake_clock) -> None:
    clock = fake_clock
    notifier = RecordingNotifier()
    ok = RequestDispatcher(
        SlowBackend(clock, {"occupancySummary": "ok"}, seconds=3), clock=clock, notifier=notifier
    )
    failing = RequestDispatcher(_http_backend(httpx.Response(503)), notifier=notifier)

    await ok.run("occupancy")
    await failing.run("occupancy")

    assert notifier.notifications[0] == (
        "AI analysis complete",
        "occupancy insights generated in 3s",
        "info",
    )
    assert notifier.notifications[1][0] == "AI analysis failed"
    assert notifier.notifications[1][2] == "error"


@pytest.mark.asyncio
async def test_concurrent_jobs_are_independent() -> None:
    hanging = HangingBackend()
    dispatcher = RequestDispatcher(hanging)
    first = dispatcher.start("occupancy")
    second = dispatcher.start("revenue")
    await asyncio.wait_for(hanging.started.wait(), timeout=1)

    dispatcher.cancel(first.job)
    await first.result

    assert first.job.state is JobState.CANCELLED
    assert second.job.state is JobState.RUNNING
    assert dispatcher.active_jobs() == [second.job]

    assert dispatcher.cancel_all() == 1
    await second.result
    assert second.job.state is JobState.CANCELLED
