"""
Simulated progress for analysis jobs.

The backend reports no progress of its own, so each job walks a fixed staged
timeline. Stage timers live in a registry keyed by job id; every operation
(pause, resume, cancel, complete) works on that registry and a job never has
more than one pending timer.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol, Tuple

from ai_analytics.services.analysis_types import (
    BASELINE_DURATION_SEC,
    AnalysisType,
    get_type_spec,
)
from ai_analytics.services.jobs import AnalysisJob

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def time(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Schedule callbacks on the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._explicit_loop = loop

    def _loop(self) -> asyncio.AbstractEventLoop:
        return self._explicit_loop or asyncio.get_running_loop()

    def time(self) -> float:
        return self._loop().time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self._loop().call_later(delay, callback)


@dataclass(frozen=True, slots=True)
class StageDefinition:
    index: int
    label: str
    target_progress_percent: int
    planned_duration_ms: int


_BASE_STAGES: Tuple[Tuple[str, int, int], ...] = (
    ("Initializing reasoning model", 3, 5000),
    ("Collecting and validating analytics data", 10, 15000),
    ("Reasoning over complex patterns", 30, 180000),
    ("Identifying trends and anomalies", 60, 120000),
    ("Composing strategic insights and recommendations", 85, 60000),
    ("Finalizing and validating results", 98, 15000),
)
COMPLETED_LABEL = "Analysis complete"


def build_stages(job_type: AnalysisType) -> Tuple[StageDefinition, ...]:
    """Stage plan for ``job_type``; durations scale with the type's estimate."""
    scale = get_type_spec(job_type).estimated_duration_sec / BASELINE_DURATION_SEC
    return tuple(
        StageDefinition(
            index=index,
            label=label,
            target_progress_percent=target,
            planned_duration_ms=int(duration_ms * scale),
        )
        for index, (label, target, duration_ms) in enumerate(_BASE_STAGES)
    )


@dataclass(slots=True)
class _Timeline:
    job: AnalysisJob
    stages: Tuple[StageDefinition, ...]
    next_index: int = 0
    handle: Optional[TimerHandle] = None
    due_at: Optional[float] = None
    remaining: Optional[float] = None


class ProgressEstimator:
    """Drive ``progress_percent``/``stage_index`` of jobs on a fixed schedule."""

    def __init__(self, scheduler: Optional[Scheduler] = None) -> None:
        self._scheduler: Scheduler = scheduler or LoopScheduler()
        self._timelines: Dict[str, _Timeline] = {}

    def start(self, job: AnalysisJob) -> None:
        self.cancel(job)
        job.reset_progress()
        timeline = _Timeline(job=job, stages=build_stages(job.type))
        self._timelines[job.id] = timeline
        self._enter_next_stage(timeline)

    def pause(self, job: AnalysisJob) -> bool:
        """Freeze the simulated progress. The backend call is not affected."""
        timeline = self._timelines.get(job.id)
        if timeline is None or job.paused:
            return False
        if timeline.handle is not None and timeline.due_at is not None:
            timeline.remaining = max(timeline.due_at - self._scheduler.time(), 0.0)
            timeline.handle.cancel()
            timeline.handle = None
            timeline.due_at = None
        job.set_paused(True)
        logger.info("Progress paused", extra={"job_id": job.id})
        return True

    def resume(self, job: AnalysisJob) -> bool:
        timeline = self._timelines.get(job.id)
        if timeline is None or not job.paused:
            return False
        job.set_paused(False)
        if timeline.remaining is not None:
            remaining, timeline.remaining = timeline.remaining, None
            self._schedule(timeline, remaining)
        logger.info("Progress resumed", extra={"job_id": job.id})
        return True

    def cancel(self, job: AnalysisJob) -> None:
        timeline = self._timelines.pop(job.id, None)
        if timeline is not None:
            self._clear_timer(timeline)

    def complete(self, job: AnalysisJob) -> None:
        timeline = self._timelines.pop(job.id, None)
        if timeline is not None:
            self._clear_timer(timeline)
            last_index = len(timeline.stages) - 1
        else:
            last_index = len(_BASE_STAGES) - 1
        job.advance_progress(100, last_index, COMPLETED_LABEL)

    def has_pending_timer(self, job: AnalysisJob) -> bool:
        timeline = self._timelines.get(job.id)
        return timeline is not None and timeline.handle is not None

    def _enter_next_stage(self, timeline: _Timeline) -> None:
        if self._timelines.get(timeline.job.id) is not timeline:
            return
        timeline.handle = None
        timeline.due_at = None
        stage = timeline.stages[timeline.next_index]
        timeline.job.advance_progress(
            stage.target_progress_percent, stage.index, stage.label
        )
        timeline.next_index += 1
        if timeline.next_index < len(timeline.stages):
            self._schedule(timeline, stage.planned_duration_ms / 1000)

    def _schedule(self, timeline: _Timeline, delay: float) -> None:
        self._clear_timer(timeline)
        timeline.due_at = self._scheduler.time() + delay
        timeline.handle = self._scheduler.call_later(
            delay, lambda: self._enter_next_stage(timeline)
        )

    @staticmethod
    def _clear_timer(timeline: _Timeline) -> None:
        if timeline.handle is not None:
            timeline.handle.cancel()
        timeline.handle = None
        timeline.due_at = None


__all__ = [
    "COMPLETED_LABEL",
    "LoopScheduler",
    "ProgressEstimator",
    "Scheduler",
    "StageDefinition",
    "TimerHandle",
    "build_stages",
]
