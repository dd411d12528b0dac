try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import json

import pydantic
import pytest

from ai_analytics.services.analysis_types import UnknownAnalysisTypeError
from ai_analytics.services.transformer import ResultTransformer


@pytest.fixture()
def transformer() -> ResultTransformer:
    return ResultTransformer()


def test_business_payload_skips_blank_and_placeholder_insights(transformer) -> None:
    payload = {
        "overallPerformance": "Occupancy is healthy.",
        "revenueInsight": "Revenue grew 12% month over month.",
        "occupancyInsight": "**Anomali Data Operasional**",
        "paymentInsight": "   ",
        "recommendations": ["Raise weekend rates", ""],
        "status": {"status": "success"},
    }

    report = transformer.normalize("business", payload, processing_time_ms=1500)

    assert report.type == "business"
    assert report.summary == "Occupancy is healthy."
    assert report.insights == ("Revenue grew 12% month over month.",)
    assert report.recommendations == ("Raise weekend rates",)
    assert report.metadata.response_status == "success"
    assert report.metadata.processing_time_ms == 1500
    assert report.metadata.confidence == pytest.approx(0.85)
    assert report.metadata.analysis_types == ("business",)


def test_summary_falls_back_to_secondary_field(transformer) -> None:
    report = transformer.normalize(
        "overall", {"keyMetricsSummary": "42 bookings"}, processing_time_ms=0
    )

    assert report.type == "business"
    assert report.summary == "42 bookings"


def test_revenue_insights_use_item_descriptions(transformer) -> None:
    payload = {
        "revenueSummary": "Stable",
        "insights": [
            {"title": "Cash", "description": "Cash payments dropped"},
            {"title": "Empty", "description": ""},
            "Card payments rose",
        ],
        "recommendations": [{"title": "Promote transfers", "priority": "high"}],
    }

    report = transformer.normalize("revenue", payload, processing_time_ms=10)

    assert report.insights == ("Cash payments dropped", "Card payments rose")
    assert report.recommendations == ("Promote transfers",)
    assert report.structured_recommendations == (
        {"title": "Promote transfers", "priority": "high"},
    )


def test_performance_insights_accept_strings_and_objects(transformer) -> None:
    payload = {
        "performanceSummary": "Good quarter",
        "insights": ["Check-ins are faster", {"title": "Fewer vacancies"}],
        "metrics": [{"name": "adr", "value": 31}],
    }

    report = transformer.normalize("performance", payload, processing_time_ms=10)

    assert report.insights == ("Check-ins are faster", "Fewer vacancies")
    assert report.metrics == ({"name": "adr", "value": 31},)
    assert json.loads(report.details["metrics"]) == [{"name": "adr", "value": 31}]


def test_recommendations_from_description_when_title_missing(transformer) -> None:
    payload = {
        "executiveSummary": "Act now",
        "recommendations": [{"description": "Renovate block B"}, "Hire a cleaner"],
    }

    report = transformer.normalize("recommendations", payload, processing_time_ms=1)

    assert report.recommendations == ("Renovate block B", "Hire a cleaner")


def test_missing_fields_default_to_empty(transformer) -> None:
    report = transformer.normalize("trends", {}, processing_time_ms=5)

    assert report.summary == ""
    assert report.insights == ()
    assert report.recommendations == ()
    assert report.trends == ()
    assert report.details["trendSummary"] == ""
    assert report.metadata.response_status == "unknown"


def test_non_mapping_payload_is_preserved(transformer) -> None:
    payload = ["unexpected", "list"]

    report = transformer.normalize("occupancy", payload, processing_time_ms=5)

    assert report.summary == ""
    assert report.raw_payload == payload


def test_raw_payload_is_kept_verbatim_and_report_is_frozen(transformer) -> None:
    payload = {"occupancySummary": "ok", "metrics": [], "extra": {"nested": True}}

    report = transformer.normalize("occupancy", payload, processing_time_ms=2000)

    assert report.raw_payload == payload
    assert report.metadata.generated_at.tzinfo is not None
    with pytest.raises(pydantic.ValidationError):
        report.summary = "changed"  # type: ignore[misc]


def test_composite_type_cannot_be_normalized(transformer) -> None:
    with pytest.raises(UnknownAnalysisTypeError):
        transformer.normalize("comprehensive", {}, processing_time_ms=0)
