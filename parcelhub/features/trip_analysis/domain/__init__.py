"""
Domain subpackage for trip analysis.
"""

from .models import (
    CourierSummary,
    DaySummary,
    MissingEntity,
    ParsedTripRecord,
    TripAnalysis,
    TripTotals,
    VehicleTypeStats,
    success_rate,
)

__all__ = [
    "CourierSummary",
    "DaySummary",
    "MissingEntity",
    "ParsedTripRecord",
    "TripAnalysis",
    "TripTotals",
    "VehicleTypeStats",
    "success_rate",
]
