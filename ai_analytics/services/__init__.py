"""Service layer exports."""

from .aggregator import MultiAnalysisResult, MultiAnalysisRunner, ResultAggregator
from .analysis_types import AnalysisType, UnknownAnalysisTypeError
from .availability import ServiceAvailabilityProbe
from .cache import TTLCache
from .dispatcher import (
    DispatchFailure,
    DispatchHandle,
    DispatchResult,
    DispatchSuccess,
    RequestDispatcher,
)
from .errors import FailureClassification, FailureKind
from .jobs import AnalysisJob, CancelToken, JobState
from .notifications import LoggingNotificationSink, NotificationSink
from .orchestrator import AnalyticsOrchestrator, JobNotFoundError
from .progress import LoopScheduler, ProgressEstimator
from .stream_consumer import StreamConsumer, StreamState
from .transformer import ResultTransformer

__all__ = [
    "AnalysisJob",
    "AnalysisType",
    "AnalyticsOrchestrator",
    "CancelToken",
    "DispatchFailure",
    "DispatchHandle",
    "DispatchResult",
    "DispatchSuccess",
    "FailureClassification",
    "FailureKind",
    "JobNotFoundError",
    "JobState",
    "LoggingNotificationSink",
    "LoopScheduler",
    "MultiAnalysisResult",
    "MultiAnalysisRunner",
    "NotificationSink",
    "ProgressEstimator",
    "RequestDispatcher",
    "ResultAggregator",
    "ResultTransformer",
    "ServiceAvailabilityProbe",
    "StreamConsumer",
    "StreamState",
    "TTLCache",
    "UnknownAnalysisTypeError",
]
