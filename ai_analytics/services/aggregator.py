"""Merge reports from several analysis types into one comprehensive report."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from ai_analytics.schemas import AnalysisReport, ReportMetadata
from ai_analytics.services.analysis_types import (
    AnalysisType,
    get_type_spec,
    resolve_type,
)
from ai_analytics.services.dispatcher import (
    DispatchFailure,
    DispatchResult,
    RequestDispatcher,
)

logger = logging.getLogger(__name__)

SUMMARY_SEPARATOR = "\n\n"
ALL_FAILED_MESSAGE = "All analysis requests failed"


def _unique(values: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for value in values:
        text = (value or "").strip()
        if text and text not in seen:
            seen[text] = None
    return list(seen)


class ResultAggregator:
    """Combine canonical reports; output follows the order reports were supplied."""

    def merge(
        self,
        reports: Sequence[AnalysisReport],
        failed_types: Iterable[str] = (),
    ) -> AnalysisReport:
        summaries = [report.summary.strip() for report in reports if report.summary.strip()]
        details = {report.type: report.details for report in reports}
        confidences = [report.metadata.confidence for report in reports]
        models = _unique(report.metadata.model_used for report in reports)

        return AnalysisReport(
            type=AnalysisType.COMPREHENSIVE.value,
            summary=SUMMARY_SEPARATOR.join(summaries),
            insights=_unique(item for report in reports for item in report.insights),
            recommendations=_unique(
                item for report in reports for item in report.recommendations
            ),
            details=details,
            metrics=[item for report in reports for item in report.metrics],
            trends=[item for report in reports for item in report.trends],
            structured_recommendations=[
                item for report in reports for item in report.structured_recommendations
            ],
            raw_payload={report.type: report.raw_payload for report in reports},
            metadata=ReportMetadata(
                model_used=", ".join(models) if models else "unknown",
                confidence=sum(confidences) / len(confidences) if confidences else 0.0,
                processing_time_ms=max(
                    (report.metadata.processing_time_ms for report in reports), default=0
                ),
                generated_at=datetime.now(timezone.utc),
                response_status="partial" if failed_types else "success",
                analysis_types=[report.type for report in reports],
                failed_types=list(dict.fromkeys(failed_types)),
            ),
        )


@dataclass(slots=True)
class MultiAnalysisResult:
    success: bool
    report: Optional[AnalysisReport] = None
    partial: bool = False
    failed_types: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None


class MultiAnalysisRunner:
    """Dispatch several analysis types concurrently and merge what succeeds."""

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        aggregator: Optional[ResultAggregator] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._aggregator = aggregator or ResultAggregator()

    async def run(self, types: Sequence[str | AnalysisType]) -> MultiAnalysisResult:
        requested = self._expand(types)
        handles = [self._dispatcher.start(job_type) for job_type in requested]
        results: List[DispatchResult] = list(
            await asyncio.gather(*(handle.result for handle in handles))
        )

        reports: List[AnalysisReport] = []
        failed: List[str] = []
        errors: Dict[str, str] = {}
        for job_type, result in zip(requested, results):
            if isinstance(result, DispatchFailure):
                failed.append(job_type.value)
                errors[job_type.value] = result.error
            else:
                reports.append(result.report)

        if not reports:
            logger.warning("All %s analysis requests failed", len(requested))
            return MultiAnalysisResult(
                success=False,
                failed_types=failed,
                errors=errors,
                error=ALL_FAILED_MESSAGE,
            )

        if failed:
            logger.info("Partial comprehensive analysis; failed types: %s", ", ".join(failed))
        return MultiAnalysisResult(
            success=True,
            report=self._aggregator.merge(reports, failed),
            partial=bool(failed),
            failed_types=failed,
            errors=errors,
        )

    @staticmethod
    def _expand(types: Sequence[str | AnalysisType]) -> List[AnalysisType]:
        expanded: List[AnalysisType] = []
        for value in types:
            job_type = resolve_type(value)
            spec = get_type_spec(job_type)
            members = spec.components if spec.is_composite else (job_type,)
            for member in members:
                if member not in expanded:
                    expanded.append(member)
        return expanded


__all__ = [
    "ALL_FAILED_MESSAGE",
    "MultiAnalysisResult",
    "MultiAnalysisRunner",
    "ResultAggregator",
    "SUMMARY_SEPARATOR",
]
