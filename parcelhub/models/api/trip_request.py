"""
Trip analysis request models.
Used by the trip routes for input validation.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TripAnalysisRequest(BaseModel):
    """Pasted portal table to analyze."""

    text: str = Field(..., min_length=1, description="Table text copied from the portal")
    mode: Literal["auto", "courier", "shopee", "weekly"] = Field(
        default="auto", description="Table layout; auto detects courier vs Shopee"
    )


class TripReportRequest(TripAnalysisRequest):
    """Same input as analysis, rendered as paste-ready text."""

    model_config = ConfigDict(populate_by_name=True)

    format: Literal["weekly", "daily_counts", "column"] = Field(
        default="weekly", description="Report layout"
    )
    field: Literal[
        "name", "total_parcels", "total_successful", "total_failed", "trip_count", "vehicle_type"
    ] = Field(default="name", description="Column to copy when format is column")
    with_type: bool = Field(
        default=False, alias="withType", description="Suffix each value with its vehicle type"
    )
