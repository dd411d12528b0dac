"""
Pydantic models describing service status, canonical analysis reports and the
request/response bodies of the orchestrator HTTP surface.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

ServiceState = Literal["online", "degraded", "offline", "no-health-endpoint", "error"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ServiceStatus(BaseModel):
    """Outcome of a health probe against the analytics backend."""

    available: bool
    status: ServiceState
    message: str = ""
    checked_at: datetime = Field(default_factory=_utcnow)
    http_status: Optional[int] = None
    error: Optional[str] = None
    cached: bool = False


class ReportMetadata(BaseModel):
    """Provenance of a canonical report."""

    model_config = ConfigDict(frozen=True)

    model_used: str = "unknown"
    confidence: float = 0.0
    processing_time_ms: int = 0
    generated_at: datetime = Field(default_factory=_utcnow)
    response_status: str = "unknown"
    analysis_types: Tuple[str, ...] = ()
    failed_types: Tuple[str, ...] = ()


class AnalysisReport(BaseModel):
    """Normalized, type-uniform representation of a backend analysis payload.

    Collections are tuples and nested payload data is deep-copied on
    construction, so a report shares no mutable state with its inputs.
    """

    model_config = ConfigDict(frozen=True)

    type: str
    summary: str = ""
    insights: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()
    details: Dict[str, Any] = Field(default_factory=dict)
    metrics: Tuple[Any, ...] = ()
    trends: Tuple[Any, ...] = ()
    structured_recommendations: Tuple[Dict[str, Any], ...] = ()
    raw_payload: Any = None
    metadata: ReportMetadata = Field(default_factory=ReportMetadata)

    @field_validator("details", "metrics", "trends", "structured_recommendations", "raw_payload")
    @classmethod
    def _detach(cls, value: Any) -> Any:
        return copy.deepcopy(value)


class AnalysisJobRequest(BaseModel):
    """Payload to start an analysis job."""

    type: str = Field(..., description="Analysis type, e.g. 'occupancy' or 'business'.")
    timeout_ms: Optional[int] = Field(
        None,
        gt=0,
        description="Overrides the per-type default timeout in milliseconds.",
    )


class MultiAnalysisRequest(BaseModel):
    """Payload to run several analysis types concurrently."""

    types: List[str] = Field(
        default_factory=lambda: ["business", "performance", "revenue", "occupancy"],
        min_length=1,
    )


class FailureSnapshot(BaseModel):
    kind: str
    message: str
    http_status: Optional[int] = None
    retry_after_sec: Optional[int] = None


class AnalysisJobSnapshot(BaseModel):
    """Read-only view of an analysis job returned to HTTP callers."""

    job_id: str
    type: str
    state: str
    started_at: Optional[datetime] = None
    estimated_duration_sec: int
    elapsed_sec: float
    progress_percent: int
    stage_index: int
    stage_label: Optional[str] = None
    paused: bool = False
    timeout_ms: int
    report: Optional[AnalysisReport] = None
    failure: Optional[FailureSnapshot] = None


class AnalysisTypeInfo(BaseModel):
    type: str
    endpoint: Optional[str] = None
    default_timeout_ms: int
    estimated_duration_sec: int
    dispatchable: bool
    components: List[str] = Field(default_factory=list)


class AnalysisCatalogResponse(BaseModel):
    """Analysis types offered by the backend and how this deployment dispatches them."""

    environment: str
    check_availability: bool
    types: List[AnalysisTypeInfo]


class MultiAnalysisResponse(BaseModel):
    success: bool
    partial: bool = False
    report: Optional[AnalysisReport] = None
    failed_types: List[str] = Field(default_factory=list)
    errors: Dict[str, str] = Field(default_factory=dict)
    error: Optional[str] = None


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
    "ServiceState",
    "ServiceStatus",
]
