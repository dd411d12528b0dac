"""Public schema exports."""

from .analysis import (
    AnalysisCatalogResponse,
    AnalysisJobRequest,
    AnalysisJobSnapshot,
    AnalysisReport,
    AnalysisTypeInfo,
    FailureSnapshot,
    MultiAnalysisRequest,
    MultiAnalysisResponse,
    ReportMetadata,
    ServiceStatus,
)
from .stream import StreamMessage

__all__ = [
    "AnalysisCatalogResponse",
    "AnalysisJobRequest",
    "AnalysisJobSnapshot",
    "AnalysisReport",
    "AnalysisTypeInfo",
    "FailureSnapshot",
    "MultiAnalysisRequest",
    "MultiAnalysisResponse",
    "ReportMetadata",
    "ServiceStatus",
    "StreamMessage",
]
