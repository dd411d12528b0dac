"""
Dispatch long-running analysis requests to the AI analytics backend.

Each job owns its network call, cancellation token, timeout and progress
timeline. Expected failure modes are returned as ``DispatchFailure`` values,
never raised; only a bad analysis type raises.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Literal, Optional, Union

from ai_analytics.clients import AnalyticsApiClient
from ai_analytics.schemas import AnalysisReport
from ai_analytics.services.analysis_types import (
    AnalysisType,
    UnknownAnalysisTypeError,
    default_timeout_ms,
    get_type_spec,
)
from ai_analytics.services.availability import ServiceAvailabilityProbe
from ai_analytics.services.errors import (
    FailureClassification,
    FailureKind,
    classify_failure,
)
from ai_analytics.services.jobs import AnalysisJob, JobState
from ai_analytics.services.notifications import NotificationSink
from ai_analytics.services.progress import ProgressEstimator
from ai_analytics.services.transformer import ResultTransformer

logger = logging.getLogger(__name__)

_CANCELLED = FailureClassification(FailureKind.CANCELLED, "Request was cancelled")


@dataclass(slots=True)
class DispatchSuccess:
    job: AnalysisJob
    report: AnalysisReport
    success: Literal[True] = True

    @property
    def data(self) -> AnalysisReport:
        return self.report


@dataclass(slots=True)
class DispatchFailure:
    job: AnalysisJob
    error: str
    classification: FailureClassification
    success: Literal[False] = False


DispatchResult = Union[DispatchSuccess, DispatchFailure]


@dataclass(slots=True)
class DispatchHandle:
    """A started job and the task resolving to its ``DispatchResult``."""

    job: AnalysisJob
    result: "asyncio.Task[DispatchResult]"


class RequestDispatcher:
    """Start, track, time out and cancel analysis jobs."""

    def __init__(
        self,
        client: AnalyticsApiClient,
        *,
        transformer: Optional[ResultTransformer] = None,
        progress: Optional[ProgressEstimator] = None,
        probe: Optional[ServiceAvailabilityProbe] = None,
        check_availability: bool = False,
        notifier: Optional[NotificationSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._transformer = transformer or ResultTransformer()
        self._progress = progress or ProgressEstimator()
        self._probe = probe
        self._check_availability = check_availability and probe is not None
        self._notifier = notifier
        self._clock = clock
        self._handles: Dict[str, DispatchHandle] = {}
        self._requests: Dict[str, "asyncio.Future[Any]"] = {}

    @property
    def progress(self) -> ProgressEstimator:
        return self._progress

    def start(
        self, job_type: str | AnalysisType, timeout_ms: Optional[int] = None
    ) -> DispatchHandle:
        """Create a job and begin its request; must be called inside a running loop."""
        spec = get_type_spec(job_type)
        if spec.endpoint is None:
            raise UnknownAnalysisTypeError(
                f"{spec.type.value!r} is a composite analysis; dispatch its components instead"
            )
        timeout = default_timeout_ms(spec.type) if timeout_ms is None else int(timeout_ms)
        if timeout <= 0:
            raise ValueError("timeout_ms must be positive")

        job = AnalysisJob(
            type=spec.type,
            timeout_ms=timeout,
            estimated_duration_sec=spec.estimated_duration_sec,
            clock=self._clock,
        )
        job.transition(JobState.DISPATCHED)
        job.cancel_token.add_callback(lambda: self._abort(job))
        self._progress.start(job)

        task = asyncio.create_task(
            self._execute(job, spec.endpoint), name=f"analysis-{job.id}"
        )
        handle = DispatchHandle(job=job, result=task)
        self._handles[job.id] = handle
        task.add_done_callback(lambda _: self._handles.pop(job.id, None))
        logger.info(
            "Dispatched %s analysis (timeout %sms)",
            spec.type.value,
            timeout,
            extra={"job_id": job.id},
        )
        return handle

    async def run(
        self, job_type: str | AnalysisType, timeout_ms: Optional[int] = None
    ) -> DispatchResult:
        return await self.start(job_type, timeout_ms).result

    def cancel(self, job: AnalysisJob) -> bool:
        """Cancel ``job``; returns False when it had already finished."""
        if job.is_terminal:
            return False
        return job.cancel_token.cancel()

    def cancel_all(self) -> int:
        cancelled = 0
        for handle in list(self._handles.values()):
            if self.cancel(handle.job):
                cancelled += 1
        return cancelled

    def pause(self, job: AnalysisJob) -> bool:
        """Pause the simulated progress only; the backend call keeps running."""
        if job.is_terminal:
            return False
        return self._progress.pause(job)

    def resume(self, job: AnalysisJob) -> bool:
        if job.is_terminal:
            return False
        return self._progress.resume(job)

    def active_jobs(self) -> list[AnalysisJob]:
        return [handle.job for handle in self._handles.values()]

    def _abort(self, job: AnalysisJob) -> None:
        request = self._requests.pop(job.id, None)
        if request is not None:
            request.cancel()
        self._progress.cancel(job)
        if not job.is_terminal:
            job.failure = _CANCELLED
            job.transition(JobState.CANCELLED)
        logger.info("Cancelled analysis job", extra={"job_id": job.id})

    async def _execute(self, job: AnalysisJob, endpoint: str) -> DispatchResult:
        if job.is_terminal:
            return self._cancelled(job)

        if self._check_availability and self._probe is not None:
            status = await self._probe.check_availability()
            if job.is_terminal:
                return self._cancelled(job)
            if status.status == "offline":
                return self._fail(
                    job,
                    FailureClassification(FailureKind.OFFLINE, status.message),
                )

        job.transition(JobState.RUNNING)
        timeout_sec = job.timeout_ms / 1000
        request = asyncio.ensure_future(
            self._client.fetch_analysis(endpoint, timeout=timeout_sec)
        )
        self._requests[job.id] = request
        try:
            payload = await asyncio.wait_for(request, timeout=timeout_sec)
        except asyncio.CancelledError:
            if not job.cancel_token.cancelled:
                # The dispatch task itself is being torn down.
                job.cancel_token.cancel()
                raise
            return self._cancelled(job)
        except Exception as exc:
            classification = classify_failure(
                exc, cancelled=job.cancel_token.cancelled, endpoint=endpoint
            )
            if classification.kind is FailureKind.TIMEOUT:
                request.cancel()
            return self._fail(job, classification)
        finally:
            self._requests.pop(job.id, None)

        return self._handle_response(job, payload)

    def _handle_response(self, job: AnalysisJob, payload: Any) -> DispatchResult:
        # A cancel may have landed while the response was in flight.
        if job.is_terminal:
            logger.info("Discarding late analysis response", extra={"job_id": job.id})
            return self._cancelled(job)
        if payload is None:
            return self._fail(
                job,
                FailureClassification(
                    FailureKind.GENERIC, "Invalid response from AI analytics service"
                ),
            )

        processing_time_ms = int(round(job.elapsed_sec * 1000))
        report = self._transformer.normalize(
            job.type, payload, processing_time_ms=processing_time_ms
        )
        job.report = report
        self._progress.complete(job)
        job.transition(JobState.COMPLETED)
        logger.info(
            "Completed %s analysis in %sms",
            job.type.value,
            processing_time_ms,
            extra={"job_id": job.id},
        )
        if self._notifier is not None:
            self._notifier.notify(
                title="AI analysis complete",
                body=f"{job.type.value} insights generated in {round(processing_time_ms / 1000)}s",
            )
        return DispatchSuccess(job=job, report=report)

    def _fail(
        self, job: AnalysisJob, classification: FailureClassification
    ) -> DispatchResult:
        if job.is_terminal:
            return self._cancelled(job)

        self._progress.cancel(job)
        job.failure = classification
        job.transition(JobState.FAILED)
        logger.warning(
            "Analysis job failed (%s): %s",
            classification.kind.value,
            classification.message,
            extra={"job_id": job.id},
        )
        if self._notifier is not None:
            self._notifier.notify(
                title="AI analysis failed",
                body=classification.message,
                level="error",
            )
        return DispatchFailure(
            job=job, error=classification.message, classification=classification
        )

    @staticmethod
    def _cancelled(job: AnalysisJob) -> DispatchFailure:
        return DispatchFailure(job=job, error=_CANCELLED.message, classification=_CANCELLED)


__all__ = [
    "DispatchFailure",
    "DispatchHandle",
    "DispatchResult",
    "DispatchSuccess",
    "RequestDispatcher",
]
