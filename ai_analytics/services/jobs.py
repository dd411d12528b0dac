"""
Analysis job state, its transition table and the cancellation token.

Jobs are mutated only by the dispatcher and the progress estimator. Observers
subscribe to a job and are called after every state or progress change.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional

from ai_analytics.schemas import AnalysisJobSnapshot, AnalysisReport, FailureSnapshot
from ai_analytics.services.analysis_types import AnalysisType
from ai_analytics.services.errors import FailureClassification

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a job is asked to move to a state its current state forbids."""


class JobState(str, Enum):
    IDLE = "idle"
    DISPATCHED = "dispatched"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES: FrozenSet[JobState] = frozenset(
    {JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED}
)

_TRANSITIONS: Dict[JobState, FrozenSet[JobState]] = {
    JobState.IDLE: frozenset({JobState.DISPATCHED, JobState.CANCELLED}),
    JobState.DISPATCHED: frozenset(
        {JobState.RUNNING, JobState.FAILED, JobState.CANCELLED}
    ),
    JobState.RUNNING: frozenset(
        {JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED}
    ),
    JobState.COMPLETED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.CANCELLED: frozenset(),
}


def next_job_state(current: JobState, target: JobState) -> JobState:
    """Validate ``current -> target`` and return ``target``."""
    if target not in _TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot move analysis job from {current.value} to {target.value}"
        )
    return target


class CancelToken:
    """Cooperative cancellation handle; ``cancel`` is idempotent."""

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, callback: Callable[[], None]) -> None:
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def cancel(self) -> bool:
        """Fire the token. Returns False when it had already fired."""
        if self._cancelled:
            return False
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        return True


JobListener = Callable[["AnalysisJob"], None]


@dataclass(slots=True, eq=False)
class AnalysisJob:
    """One dispatched analysis request and its lifecycle."""

    type: AnalysisType
    timeout_ms: int
    estimated_duration_sec: int
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: JobState = JobState.IDLE
    started_at: Optional[datetime] = None
    progress_percent: int = 0
    stage_index: int = 0
    stage_label: Optional[str] = None
    paused: bool = False
    cancel_token: CancelToken = field(default_factory=CancelToken)
    report: Optional[AnalysisReport] = None
    failure: Optional[FailureClassification] = None
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    _started_monotonic: Optional[float] = field(default=None, repr=False)
    _finished_monotonic: Optional[float] = field(default=None, repr=False)
    _listeners: List[JobListener] = field(default_factory=list, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def elapsed_sec(self) -> float:
        if self._started_monotonic is None:
            return 0.0
        end = self._finished_monotonic if self._finished_monotonic is not None else self.clock()
        return max(end - self._started_monotonic, 0.0)

    def subscribe(self, listener: JobListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def transition(self, target: JobState) -> None:
        self.state = next_job_state(self.state, target)
        if target is JobState.DISPATCHED:
            self.started_at = datetime.now(timezone.utc)
            self._started_monotonic = self.clock()
        if target in TERMINAL_STATES:
            self._finished_monotonic = self.clock()
            self.paused = False
        logger.debug(
            "Analysis job state -> %s", target.value, extra={"job_id": self.id}
        )
        self._notify()

    def advance_progress(self, percent: int, stage_index: int, label: Optional[str]) -> None:
        """Move progress forward; regressions are ignored."""
        if self.is_terminal and self.state is not JobState.COMPLETED:
            return
        if percent < self.progress_percent or stage_index < self.stage_index:
            return
        self.progress_percent = percent
        self.stage_index = stage_index
        self.stage_label = label
        self._notify()

    def reset_progress(self) -> None:
        self.progress_percent = 0
        self.stage_index = 0
        self.stage_label = None
        self.paused = False
        self._notify()

    def set_paused(self, paused: bool) -> None:
        if self.paused != paused:
            self.paused = paused
            self._notify()

    def to_snapshot(self) -> AnalysisJobSnapshot:
        failure = None
        if self.failure is not None:
            failure = FailureSnapshot(
                kind=self.failure.kind.value,
                message=self.failure.message,
                http_status=self.failure.http_status,
                retry_after_sec=self.failure.retry_after_sec,
            )
        return AnalysisJobSnapshot(
            job_id=self.id,
            type=self.type.value,
            state=self.state.value,
            started_at=self.started_at,
            estimated_duration_sec=self.estimated_duration_sec,
            elapsed_sec=round(self.elapsed_sec, 3),
            progress_percent=self.progress_percent,
            stage_index=self.stage_index,
            stage_label=self.stage_label,
            paused=self.paused,
            timeout_ms=self.timeout_ms,
            report=self.report,
            failure=failure,
        )

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:  # pragma: no cover - observer bugs must not break jobs
                logger.exception("Analysis job listener failed", extra={"job_id": self.id})


__all__ = [
    "AnalysisJob",
    "CancelToken",
    "InvalidTransitionError",
    "JobListener",
    "JobState",
    "TERMINAL_STATES",
    "next_job_state",
]
