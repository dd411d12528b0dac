"""
Catalog of analysis types offered by the backend.

Each type maps to an endpoint, a default timeout, a duration estimate used by
the progress simulation, and the field-mapping table the transformer uses to
read that endpoint's payload shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

DEFAULT_TIMEOUT_MS = 600000
BASELINE_DURATION_SEC = 600


class UnknownAnalysisTypeError(ValueError):
    """Raised when a caller asks for an analysis type the backend does not offer."""


class AnalysisType(str, Enum):
    BUSINESS = "business"
    PERFORMANCE = "performance"
    REVENUE = "revenue"
    OCCUPANCY = "occupancy"
    TRENDS = "trends"
    RECOMMENDATIONS = "recommendations"
    COMPREHENSIVE = "comprehensive"


_ALIASES: Dict[str, AnalysisType] = {"overall": AnalysisType.BUSINESS}


@dataclass(frozen=True, slots=True)
class FieldMapping:
    """Where a payload keeps its summary, insights and recommendations."""

    summary_fields: Tuple[str, ...]
    insight_fields: Tuple[str, ...] = ()
    insight_list_field: Optional[str] = None
    insight_item_key: Optional[str] = None
    recommendation_field: Optional[str] = None
    detail_fields: Tuple[str, ...] = ()
    metrics_field: Optional[str] = None
    trends_field: Optional[str] = None
    excluded_insights: FrozenSet[str] = frozenset()
    model_used: str = "DeepSeek R1"
    confidence: float = 0.8


@dataclass(frozen=True, slots=True)
class AnalysisTypeSpec:
    type: AnalysisType
    endpoint: Optional[str]
    estimated_duration_sec: int
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    mapping: Optional[FieldMapping] = None
    components: Tuple[AnalysisType, ...] = field(default=())

    @property
    def is_composite(self) -> bool:
        return bool(self.components)


_CATALOG: Dict[AnalysisType, AnalysisTypeSpec] = {
    AnalysisType.BUSINESS: AnalysisTypeSpec(
        type=AnalysisType.BUSINESS,
        endpoint="/business-insights",
        timeout_ms=900000,
        estimated_duration_sec=900,
        mapping=FieldMapping(
            summary_fields=("overallPerformance", "keyMetricsSummary"),
            insight_fields=("revenueInsight", "occupancyInsight", "paymentInsight"),
            recommendation_field="recommendations",
            detail_fields=(
                "overallPerformance",
                "revenueInsight",
                "occupancyInsight",
                "paymentInsight",
                "keyMetricsSummary",
            ),
            # Placeholder heading the model emits when it has nothing to say.
            excluded_insights=frozenset({"**Anomali Data Operasional**"}),
            model_used="DeepSeek R1 (Reasoning Model)",
            confidence=0.85,
        ),
    ),
    AnalysisType.PERFORMANCE: AnalysisTypeSpec(
        type=AnalysisType.PERFORMANCE,
        endpoint="/performance-analysis",
        timeout_ms=480000,
        estimated_duration_sec=480,
        mapping=FieldMapping(
            summary_fields=("performanceSummary",),
            insight_list_field="insights",
            detail_fields=(
                "performanceSummary",
                "growthAnalysis",
                "efficiencyMetrics",
                "insights",
                "metrics",
            ),
            metrics_field="metrics",
            confidence=0.83,
        ),
    ),
    AnalysisType.REVENUE: AnalysisTypeSpec(
        type=AnalysisType.REVENUE,
        endpoint="/revenue-analysis",
        timeout_ms=720000,
        estimated_duration_sec=720,
        mapping=FieldMapping(
            summary_fields=("revenueSummary",),
            insight_list_field="insights",
            insight_item_key="description",
            recommendation_field="recommendations",
            detail_fields=(
                "revenueSummary",
                "paymentMethodAnalysis",
                "revenueTrends",
                "insights",
            ),
            confidence=0.82,
        ),
    ),
    AnalysisType.OCCUPANCY: AnalysisTypeSpec(
        type=AnalysisType.OCCUPANCY,
        endpoint="/occupancy-analysis",
        timeout_ms=360000,
        estimated_duration_sec=360,
        mapping=FieldMapping(
            summary_fields=("occupancySummary",),
            insight_fields=("utilizationAnalysis", "capacityInsights"),
            recommendation_field="optimizationSuggestions",
            detail_fields=(
                "occupancySummary",
                "utilizationAnalysis",
                "capacityInsights",
                "metrics",
            ),
            metrics_field="metrics",
            confidence=0.80,
        ),
    ),
    AnalysisType.TRENDS: AnalysisTypeSpec(
        type=AnalysisType.TRENDS,
        endpoint="/trend-analysis",
        timeout_ms=480000,
        estimated_duration_sec=480,
        mapping=FieldMapping(
            summary_fields=("trendSummary",),
            insight_list_field="strategicInsights",
            detail_fields=(
                "trendSummary",
                "seasonalPatterns",
                "forecastPrediction",
                "strategicInsights",
                "trendData",
            ),
            trends_field="trendData",
            confidence=0.78,
        ),
    ),
    AnalysisType.RECOMMENDATIONS: AnalysisTypeSpec(
        type=AnalysisType.RECOMMENDATIONS,
        endpoint="/recommendations",
        estimated_duration_sec=600,
        mapping=FieldMapping(
            summary_fields=("executiveSummary",),
            recommendation_field="recommendations",
            detail_fields=(
                "executiveSummary",
                "recommendations",
                "riskAssessment",
                "opportunityAnalysis",
            ),
            confidence=0.85,
        ),
    ),
    AnalysisType.COMPREHENSIVE: AnalysisTypeSpec(
        type=AnalysisType.COMPREHENSIVE,
        endpoint=None,
        timeout_ms=1200000,
        estimated_duration_sec=1200,
        components=(
            AnalysisType.BUSINESS,
            AnalysisType.PERFORMANCE,
            AnalysisType.REVENUE,
            AnalysisType.OCCUPANCY,
        ),
    ),
}


def resolve_type(value: str | AnalysisType) -> AnalysisType:
    """Return the ``AnalysisType`` for ``value`` or raise ``UnknownAnalysisTypeError``."""
    if isinstance(value, AnalysisType):
        return value
    normalized = str(value).strip().lower()
    if normalized in _ALIASES:
        return _ALIASES[normalized]
    try:
        return AnalysisType(normalized)
    except ValueError as exc:
        raise UnknownAnalysisTypeError(f"Unknown analysis type: {value!r}") from exc


def get_type_spec(value: str | AnalysisType) -> AnalysisTypeSpec:
    return _CATALOG[resolve_type(value)]


def default_timeout_ms(value: str | AnalysisType) -> int:
    return _CATALOG[resolve_type(value)].timeout_ms


def dispatchable_types() -> Tuple[AnalysisType, ...]:
    """Types that map to a single backend endpoint."""
    return tuple(spec.type for spec in _CATALOG.values() if spec.endpoint)


__all__ = [
    "AnalysisType",
    "AnalysisTypeSpec",
    "BASELINE_DURATION_SEC",
    "DEFAULT_TIMEOUT_MS",
    "FieldMapping",
    "UnknownAnalysisTypeError",
    "default_timeout_ms",
    "dispatchable_types",
    "get_type_spec",
    "resolve_type",
]
