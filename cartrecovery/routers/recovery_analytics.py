"""
Recovery analytics router
-------------------------
Purpose:
- GET /recovery/analytics: the combined analytics report (cohorts, funnel,
  UTM / hour / weekday / value cross-tabs, Meta Ads ROI, email-cost ROI).
- GET /recovery/analytics/export: the same report as a CSV section or a PDF.
Design choices:
- The tenant comes from the session JWT, never from the query string.
- A malformed `period` falls back to the default instead of failing.
- Section-level fetch failures come back in `degraded`; only unexpected
  errors turn into a 500 with {success: false, error}.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response

from cartrecovery.analytics.orchestrator import AnalyticsOrchestrator, parse_period
from cartrecovery.deps import Settings, get_analytics_orchestrator, get_current_user_id, get_settings
from cartrecovery.schemas import AnalyticsReportOut
from cartrecovery.services.report_export import (
    EXPORT_SECTIONS,
    export_filename,
    export_section_csv,
    render_report_pdf,
)
from cartrecovery.telemetry.sentry import capture_exception, set_user_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recovery/analytics", tags=["recovery-analytics"])


def _server_error(exc: Exception, user_id: str) -> JSONResponse:
    logger.exception(f"[ANALYTICS] Report failed for user {user_id}: {exc}")
    capture_exception(exc, extra={"user_id": user_id})
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


@router.get(
    "",
    response_model=AnalyticsReportOut,
    summary="Recovery analytics report",
    responses={500: {"description": "Unexpected failure: {success: false, error}"}},
)
async def get_recovery_analytics(
    period: Optional[str] = Query(None, description="Window size in days (default 30)"),
    user_id: str = Depends(get_current_user_id),
    orchestrator: AnalyticsOrchestrator = Depends(get_analytics_orchestrator),
    settings: Settings = Depends(get_settings),
):
    set_user_context(user_id)
    days = parse_period(period, settings.DEFAULT_PERIOD_DAYS)

    try:
        return await orchestrator.build_report(user_id, days)
    except Exception as exc:
        return _server_error(exc, user_id)


@router.get(
    "/export",
    summary="Download the analytics report",
    responses={
        200: {"content": {"text/csv": {}, "application/pdf": {}}},
        400: {"description": "Unknown section"},
        404: {"description": "Nothing to export for this section"},
    },
)
async def export_recovery_analytics(
    period: Optional[str] = Query(None, description="Window size in days (default 30)"),
    fmt: str = Query("csv", alias="format", pattern="^(csv|pdf)$"),
    section: Optional[str] = Query(None, description=f"CSV section: {', '.join(EXPORT_SECTIONS)}"),
    user_id: str = Depends(get_current_user_id),
    orchestrator: AnalyticsOrchestrator = Depends(get_analytics_orchestrator),
    settings: Settings = Depends(get_settings),
):
    if fmt == "csv" and section not in EXPORT_SECTIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid section. Must be one of: {', '.join(EXPORT_SECTIONS)}",
        )

    set_user_context(user_id)
    days = parse_period(period, settings.DEFAULT_PERIOD_DAYS)

    try:
        report = await orchestrator.build_report(user_id, days)
    except Exception as exc:
        return _server_error(exc, user_id)

    if fmt == "pdf":
        pdf = await asyncio.to_thread(render_report_pdf, report)
        return Response(
            content=pdf,
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{export_filename(None, "pdf")}"'},
        )

    try:
        content = export_section_csv(report, section)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(section, "csv")}"'},
    )
