"""
FastAPI routes exposing the AI analytics orchestrator to dashboards.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ai_analytics.dependencies import get_app_settings, get_orchestrator
from ai_analytics.schemas import (
    AnalysisCatalogResponse,
    AnalysisJobRequest,
    AnalysisJobSnapshot,
    AnalysisReport,
    AnalysisTypeInfo,
    MultiAnalysisRequest,
    MultiAnalysisResponse,
    ServiceStatus,
)
from ai_analytics.services import AnalysisType, JobNotFoundError, UnknownAnalysisTypeError
from ai_analytics.services.analysis_types import dispatchable_types, get_type_spec

router = APIRouter()
logger = logging.getLogger(__name__)


def _job_or_404(orchestrator: Any, action: str, job_id: str) -> AnalysisJobSnapshot:
    try:
        job = getattr(orchestrator, action)(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Job not found.") from exc
    return job.to_snapshot()


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get(
    "/analytics/service-status",
    response_model=ServiceStatus,
    status_code=HTTPStatus.OK,
)
async def get_service_status(
    orchestrator: Annotated[Any, Depends(get_orchestrator)],
    refresh: bool = Query(
        default=False, description="Bypass the cached status and probe the backend now."
    ),
) -> ServiceStatus:
    return await orchestrator.service_status(refresh=refresh)


@router.get(
    "/analytics/catalog",
    response_model=AnalysisCatalogResponse,
    status_code=HTTPStatus.OK,
)
async def get_analysis_catalog(
    settings: Annotated[Any, Depends(get_app_settings)],
) -> AnalysisCatalogResponse:
    """List analysis types with their endpoints and default timeouts."""
    dispatchable = set(dispatchable_types())
    types = []
    for analysis_type in AnalysisType:
        spec = get_type_spec(analysis_type)
        types.append(
            AnalysisTypeInfo(
                type=analysis_type.value,
                endpoint=spec.endpoint,
                default_timeout_ms=spec.timeout_ms,
                estimated_duration_sec=spec.estimated_duration_sec,
                dispatchable=analysis_type in dispatchable,
                components=[member.value for member in spec.components],
            )
        )
    return AnalysisCatalogResponse(
        environment=settings.environment,
        check_availability=settings.dispatch.check_availability,
        types=types,
    )


@router.post(
    "/analytics/jobs",
    response_model=AnalysisJobSnapshot,
    status_code=HTTPStatus.ACCEPTED,
)
async def start_analysis_job(
    payload: AnalysisJobRequest,
    orchestrator: Annotated[Any, Depends(get_orchestrator)],
) -> AnalysisJobSnapshot:
    """Dispatch a long-running analysis; poll the job endpoint for progress."""
    try:
        job = orchestrator.start_analysis(payload.type, payload.timeout_ms)
    except UnknownAnalysisTypeError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
    logger.info("Accepted %s analysis job", job.type.value, extra={"job_id": job.id})
    return job.to_snapshot()


@router.get(
    "/analytics/jobs/{job_id}",
    response_model=AnalysisJobSnapshot,
    status_code=HTTPStatus.OK,
)
async def get_analysis_job(
    job_id: str,
    orchestrator: Annotated[Any, Depends(get_orchestrator)],
) -> AnalysisJobSnapshot:
    return _job_or_404(orchestrator, "get_job", job_id)


@router.delete(
    "/analytics/jobs/{job_id}",
    status_code=HTTPStatus.NO_CONTENT,
)
async def forget_analysis_job(
    job_id: str,
    orchestrator: Annotated[Any, Depends(get_orchestrator)],
) -> None:
    """Remove a finished job from the registry."""
    try:
        removed = orchestrator.forget(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Job not found.") from exc
    if not removed:
        raise HTTPException(
            status_code=HTTPStatus.CONFLICT,
            detail="Job is still running; cancel it before removing.",
        )


@router.post(
    "/analytics/jobs/{job_id}/cancel",
    response_model=AnalysisJobSnapshot,
    status_code=HTTPStatus.OK,
)
async def cancel_analysis_job(
    job_id: str,
    orchestrator: Annotated[Any, Depends(get_orchestrator)],
) -> AnalysisJobSnapshot:
    return _job_or_404(orchestrator, "cancel", job_id)


@router.post(
    "/analytics/jobs/{job_id}/pause",
    response_model=AnalysisJobSnapshot,
    status_code=HTTPStatus.OK,
)
async def pause_analysis_job(
    job_id: str,
    orchestrator: Annotated[Any, Depends(get_orchestrator)],
) -> AnalysisJobSnapshot:
    """Freeze the progress display; the backend request keeps running."""
    return _job_or_404(orchestrator, "pause", job_id)


@router.post(
    "/analytics/jobs/{job_id}/resume",
    response_model=AnalysisJobSnapshot,
    status_code=HTTPStatus.OK,
)
async def resume_analysis_job(
    job_id: str,
    orchestrator: Annotated[Any, Depends(get_orchestrator)],
) -> AnalysisJobSnapshot:
    return _job_or_404(orchestrator, "resume", job_id)


@router.post(
    "/analytics/comprehensive",
    response_model=MultiAnalysisResponse,
    status_code=HTTPStatus.OK,
)
async def run_comprehensive_analysis(
    payload: MultiAnalysisRequest,
    orchestrator: Annotated[Any, Depends(get_orchestrator)],
) -> MultiAnalysisResponse:
    """Run several analyses concurrently and merge their reports."""
    try:
        result = await orchestrator.run_multiple(payload.types)
    except UnknownAnalysisTypeError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
    return MultiAnalysisResponse(
        success=result.success,
        partial=result.partial,
        report=result.report,
        failed_types=result.failed_types,
        errors=result.errors,
        error=result.error,
    )


@router.get(
    "/analytics/reports/{analysis_type}",
    response_model=AnalysisReport,
    status_code=HTTPStatus.OK,
)
async def get_cached_report(
    analysis_type: str,
    orchestrator: Annotated[Any, Depends(get_orchestrator)],
) -> AnalysisReport:
    try:
        report = orchestrator.cached_report(analysis_type)
    except UnknownAnalysisTypeError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
    if report is None:
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND, detail="No recent report for this analysis type."
        )
    return report
