"""Normalize per-endpoint analysis payloads into canonical reports."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping

from ai_analytics.schemas import AnalysisReport, ReportMetadata
from ai_analytics.services.analysis_types import (
    AnalysisType,
    FieldMapping,
    UnknownAnalysisTypeError,
    get_type_spec,
)


class ResultTransformer:
    """Build an ``AnalysisReport`` from a raw backend payload.

    Missing fields become empty strings/lists; the payload itself is kept
    verbatim under ``raw_payload``.
    """

    def normalize(
        self,
        job_type: str | AnalysisType,
        raw_payload: Any,
        *,
        processing_time_ms: int,
    ) -> AnalysisReport:
        spec = get_type_spec(job_type)
        if spec.mapping is None:
            raise UnknownAnalysisTypeError(
                f"Analysis type {spec.type.value!r} has no payload mapping"
            )
        mapping = spec.mapping
        data: Mapping[str, Any] = raw_payload if isinstance(raw_payload, Mapping) else {}

        recommendations, structured = _recommendations(data, mapping)
        return AnalysisReport(
            type=spec.type.value,
            summary=_first_text(data, mapping.summary_fields),
            insights=_insights(data, mapping),
            recommendations=recommendations,
            details=_details(data, mapping.detail_fields),
            metrics=_as_list(data.get(mapping.metrics_field)) if mapping.metrics_field else [],
            trends=_as_list(data.get(mapping.trends_field)) if mapping.trends_field else [],
            structured_recommendations=structured,
            raw_payload=raw_payload,
            metadata=ReportMetadata(
                model_used=mapping.model_used,
                confidence=mapping.confidence,
                processing_time_ms=max(int(processing_time_ms), 0),
                generated_at=datetime.now(timezone.utc),
                response_status=_response_status(data),
                analysis_types=[spec.type.value],
            ),
        )


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def _first_text(data: Mapping[str, Any], fields: Iterable[str]) -> str:
    for name in fields:
        value = _text(data.get(name))
        if value:
            return value
    return ""


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _item_text(item: Any, key: str | None) -> str:
    if isinstance(item, Mapping):
        if key:
            return _text(item.get(key))
        return _text(item.get("title") or item.get("description"))
    return _text(item)


def _insights(data: Mapping[str, Any], mapping: FieldMapping) -> List[str]:
    candidates = [_text(data.get(name)) for name in mapping.insight_fields]
    if mapping.insight_list_field:
        candidates.extend(
            _item_text(item, mapping.insight_item_key)
            for item in _as_list(data.get(mapping.insight_list_field))
        )
    return [
        insight
        for insight in candidates
        if insight and insight not in mapping.excluded_insights
    ]


def _recommendations(
    data: Mapping[str, Any], mapping: FieldMapping
) -> tuple[List[str], List[Dict[str, Any]]]:
    if not mapping.recommendation_field:
        return [], []
    items = _as_list(data.get(mapping.recommendation_field))
    texts = [text for text in (_item_text(item, None) for item in items) if text]
    structured = [dict(item) for item in items if isinstance(item, Mapping)]
    return texts, structured


def _details(data: Mapping[str, Any], fields: Iterable[str]) -> Dict[str, str]:
    details: Dict[str, str] = {}
    for name in fields:
        value = data.get(name)
        if value is None:
            details[name] = ""
        elif isinstance(value, str):
            details[name] = value
        else:
            details[name] = json.dumps(value, ensure_ascii=False, default=str)
    return details


def _response_status(data: Mapping[str, Any]) -> str:
    status = data.get("status")
    if isinstance(status, Mapping) and status.get("status"):
        return str(status["status"])
    return "unknown"


__all__ = ["ResultTransformer"]
