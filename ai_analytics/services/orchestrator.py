"""
Facade tying the dispatcher, probe and aggregator together for the HTTP layer.

Jobs are tracked in memory only; completed reports are kept in a short-lived
response cache so dashboards can re-read them without re-running the model.
Finished jobs stay readable for the same retention window and are then
evicted from the registry.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Sequence

from ai_analytics.schemas import AnalysisReport, ServiceStatus
from ai_analytics.services.aggregator import MultiAnalysisResult, MultiAnalysisRunner
from ai_analytics.services.analysis_types import AnalysisType, resolve_type
from ai_analytics.services.availability import ServiceAvailabilityProbe
from ai_analytics.services.cache import TTLCache
from ai_analytics.services.dispatcher import (
    DispatchHandle,
    DispatchResult,
    DispatchSuccess,
    RequestDispatcher,
)
from ai_analytics.services.jobs import AnalysisJob

logger = logging.getLogger(__name__)

REPORT_CACHE_TTL_SECONDS = 300.0


class JobNotFoundError(LookupError):
    """Raised when a job id is not tracked by the orchestrator."""


class AnalyticsOrchestrator:
    """Start, observe and cancel analysis jobs; cache their reports."""

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        probe: ServiceAvailabilityProbe,
        *,
        runner: Optional[MultiAnalysisRunner] = None,
        report_cache: Optional[TTLCache[AnalysisReport]] = None,
        job_retention_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._dispatcher = dispatcher
        self._probe = probe
        self._runner = runner or MultiAnalysisRunner(dispatcher)
        self._reports: TTLCache[AnalysisReport] = (
            report_cache if report_cache is not None else TTLCache(REPORT_CACHE_TTL_SECONDS)
        )
        self._job_retention = (
            self._reports.default_ttl_seconds
            if job_retention_seconds is None
            else job_retention_seconds
        )
        self._clock = clock
        self._jobs: Dict[str, DispatchHandle] = {}
        self._finished_at: Dict[str, float] = {}

    def start_analysis(
        self, job_type: str | AnalysisType, timeout_ms: Optional[int] = None
    ) -> AnalysisJob:
        self._evict_expired_jobs()
        handle = self._dispatcher.start(job_type, timeout_ms)
        job_id = handle.job.id
        self._jobs[job_id] = handle
        handle.result.add_done_callback(lambda task: self._on_job_done(job_id, task))
        return handle.job

    def get_job(self, job_id: str) -> AnalysisJob:
        return self.get_handle(job_id).job

    def get_handle(self, job_id: str) -> DispatchHandle:
        self._evict_expired_jobs()
        handle = self._jobs.get(job_id)
        if handle is None:
            raise JobNotFoundError(job_id)
        return handle

    def cancel(self, job_id: str) -> AnalysisJob:
        job = self.get_job(job_id)
        self._dispatcher.cancel(job)
        return job

    def pause(self, job_id: str) -> AnalysisJob:
        job = self.get_job(job_id)
        self._dispatcher.pause(job)
        return job

    def resume(self, job_id: str) -> AnalysisJob:
        job = self.get_job(job_id)
        self._dispatcher.resume(job)
        return job

    def forget(self, job_id: str) -> bool:
        """Drop a finished job from the registry; running jobs are kept."""
        job = self.get_job(job_id)
        if not job.is_terminal:
            return False
        del self._jobs[job_id]
        self._finished_at.pop(job_id, None)
        return True

    async def run_multiple(self, types: Sequence[str | AnalysisType]) -> MultiAnalysisResult:
        result = await self._runner.run(types)
        if result.report is not None and not result.partial:
            self._reports.set(AnalysisType.COMPREHENSIVE.value, result.report)
        return result

    async def service_status(self, *, refresh: bool = False) -> ServiceStatus:
        if refresh:
            self._probe.clear_cache()
        return await self._probe.check_availability()

    def cached_report(self, job_type: str | AnalysisType) -> Optional[AnalysisReport]:
        return self._reports.get(resolve_type(job_type).value)

    def shutdown(self) -> int:
        cancelled = self._dispatcher.cancel_all()
        if cancelled:
            logger.info("Cancelled %s running analysis jobs on shutdown", cancelled)
        return cancelled

    def _evict_expired_jobs(self) -> None:
        cutoff = self._clock() - self._job_retention
        expired = [
            job_id for job_id, finished_at in self._finished_at.items() if finished_at <= cutoff
        ]
        for job_id in expired:
            del self._finished_at[job_id]
            self._jobs.pop(job_id, None)
        if expired:
            logger.debug("Evicted %s finished analysis jobs", len(expired))

    def _on_job_done(self, job_id: str, task: "asyncio.Task[DispatchResult]") -> None:
        if job_id in self._jobs:
            self._finished_at[job_id] = self._clock()
        if task.cancelled() or task.exception() is not None:
            return
        result = task.result()
        if isinstance(result, DispatchSuccess):
            self._reports.set(result.report.type, result.report)


__all__ = ["AnalyticsOrchestrator", "JobNotFoundError", "REPORT_CACHE_TTL_SECONDS"]
