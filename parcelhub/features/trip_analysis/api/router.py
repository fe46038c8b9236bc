"""
Trip analysis routes.

Operators paste a table copied from the courier or Shopee portal and get
back per-courier rollups, per-day rollups for weekly dispatch reports, and
the couriers missing from the roster.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, PlainTextResponse

from parcelhub.features.trip_analysis.summary.service import (
    TripAnalysisService,
    format_copy_column,
    format_daily_counts,
    format_weekly_report,
)
from parcelhub.infrastructure.observability.logging import get_logger
from parcelhub.models.api.trip_request import TripAnalysisRequest, TripReportRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/trips", tags=["trip-analysis"])


def get_trip_analysis_service() -> TripAnalysisService:
    return TripAnalysisService()


@router.post("/analyze")
async def analyze_trips(
    request: TripAnalysisRequest,
    service: TripAnalysisService = Depends(get_trip_analysis_service),
):
    try:
        analysis = await service.analyze(request.text, request.mode)
    except Exception as e:
        logger.error("Trip analysis failed", mode=request.mode, error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Failed to analyze trip table"},
        )

    return {"success": True, **analysis.to_dict()}


@router.post("/report", response_class=PlainTextResponse)
async def trip_report(
    request: TripReportRequest,
    service: TripAnalysisService = Depends(get_trip_analysis_service),
):
    """Paste-ready text: the weekly summary, daily courier counts or one copy column."""
    try:
        analysis = await service.analyze(request.text, request.mode)
    except Exception as e:
        logger.error("Trip report failed", mode=request.mode, error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Failed to build trip report"},
        )

    if request.format == "column":
        return PlainTextResponse(format_copy_column(analysis.summaries, request.field, request.with_type))
    if request.format == "daily_counts":
        return PlainTextResponse(format_daily_counts(analysis.days))
    return PlainTextResponse(format_weekly_report(analysis))
