"""
Domain models for trip analysis.

Everything here is transient: trip records are extracted from pasted
portal tables, rolled up and returned to the caller. Nothing is persisted.
"""

from dataclasses import dataclass, field
from typing import Any

PLATFORM_COURIER = "courier"
PLATFORM_SHOPEE = "shopee"
PLATFORM_WEEKLY = "weekly"

VEHICLE_4W = "4w"
VEHICLE_3W = "3w"
VEHICLE_2W = "2w"


def success_rate(successful: int, failed: int) -> float:
    """Percentage of attempted parcels delivered; 0.0 when nothing was attempted."""
    attempted = successful + failed
    if attempted <= 0:
        return 0.0
    return round(successful / attempted * 100, 1)


@dataclass(slots=True)
class ParsedTripRecord:
    """One trip row lifted out of a pasted table."""

    entity_name: str
    platform: str
    entity_id: str = ""
    reference: str = ""  # runsheet id or task id
    trip_type: str = ""
    total: int = 0
    successful: int = 0
    failed: int = 0
    date: str | None = None  # dd/mm/yyyy, weekly tables only
    details: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class CourierSummary:
    name: str
    entity_id: str
    vehicle_type: str
    in_roster: bool
    trip_count: int = 0
    total_parcels: int = 0
    total_successful: int = 0
    total_failed: int = 0
    has_duplicates: bool = False
    references: list[str] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        return success_rate(self.total_successful, self.total_failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "courier": self.name,
            "courierId": self.entity_id,
            "vehicleType": self.vehicle_type,
            "inDatabase": self.in_roster,
            "tripCount": self.trip_count,
            "totalParcels": self.total_parcels,
            "totalSuccessful": self.total_successful,
            "totalFailed": self.total_failed,
            "successRate": self.success_rate,
            "hasDuplicates": self.has_duplicates,
            "references": list(self.references),
        }


@dataclass(slots=True)
class VehicleTypeStats:
    parcels: int = 0
    successful: int = 0
    failed: int = 0

    @property
    def success_rate(self) -> float:
        return success_rate(self.successful, self.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "parcels": self.parcels,
            "successful": self.successful,
            "failed": self.failed,
            "successRate": self.success_rate,
        }


@dataclass(slots=True)
class DaySummary:
    """Rollup of one calendar day; vehicle-type keys are upper-case ("2W")."""

    date: str
    formatted_date: str
    courier_summaries: list[CourierSummary] = field(default_factory=list)
    vehicle_type_counts: dict[str, int] = field(default_factory=dict)
    vehicle_type_stats: dict[str, VehicleTypeStats] = field(default_factory=dict)
    total_parcels: int = 0
    total_successful: int = 0
    total_failed: int = 0

    @property
    def courier_count(self) -> int:
        return len(self.courier_summaries)

    @property
    def success_rate(self) -> float:
        return success_rate(self.total_successful, self.total_failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "formattedDate": self.formatted_date,
            "courierCount": self.courier_count,
            "totalParcels": self.total_parcels,
            "totalSuccessful": self.total_successful,
            "totalFailed": self.total_failed,
            "successRate": self.success_rate,
            "vehicleTypeCounts": dict(self.vehicle_type_counts),
            "vehicleTypeStats": {k: v.to_dict() for k, v in self.vehicle_type_stats.items()},
            "courierSummaries": [s.to_dict() for s in self.courier_summaries],
        }


@dataclass(slots=True)
class TripTotals:
    total_couriers: int = 0
    total_days: int = 0
    total_parcels: int = 0
    total_successful: int = 0
    total_failed: int = 0
    vehicle_type_counts: dict[str, int] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        return success_rate(self.total_successful, self.total_failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCouriers": self.total_couriers,
            "totalDays": self.total_days,
            "totalParcels": self.total_parcels,
            "totalSuccessful": self.total_successful,
            "totalFailed": self.total_failed,
            "successRate": self.success_rate,
            "vehicleTypeCounts": dict(self.vehicle_type_counts),
        }


@dataclass(slots=True)
class MissingEntity:
    """A name seen in the input but absent from the roster."""

    name: str
    estimated_type: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "estimatedType": self.estimated_type}


@dataclass(slots=True)
class TripAnalysis:
    platform: str
    trips: list[ParsedTripRecord] = field(default_factory=list)
    summaries: list[CourierSummary] = field(default_factory=list)
    missing: list[MissingEntity] = field(default_factory=list)
    days: list[DaySummary] = field(default_factory=list)
    totals: TripTotals | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "tripCount": len(self.trips),
            "courierSummaries": [s.to_dict() for s in self.summaries],
            "missingCouriers": [m.to_dict() for m in self.missing],
            "days": [d.to_dict() for d in self.days],
            "totals": self.totals.to_dict() if self.totals else None,
        }
