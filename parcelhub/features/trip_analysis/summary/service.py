"""
Trip rollups.

Turns extracted trip records into per-courier and per-day summaries,
classifies vehicles against the courier roster and renders the plain-text
blocks operators paste into their spreadsheets. All ordering is
deterministic: vehicle type (4w, 3w, 2w, unknown) then name.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime

from parcelhub.config import settings
from parcelhub.features.trip_analysis.domain.models import (
    PLATFORM_SHOPEE,
    PLATFORM_WEEKLY,
    VEHICLE_2W,
    VEHICLE_3W,
    VEHICLE_4W,
    CourierSummary,
    DaySummary,
    MissingEntity,
    ParsedTripRecord,
    TripAnalysis,
    TripTotals,
    VehicleTypeStats,
)
from parcelhub.features.trip_analysis.parsing.extractors import detect_platform, extractor_for
from parcelhub.features.trip_analysis.summary.roster import (
    Roster,
    classify_vehicle_type,
    vehicle_sort_key,
)
from parcelhub.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ANALYSIS_MODES = ("auto", "courier", "shopee", "weekly")

COPY_GROUPS = (VEHICLE_4W, VEHICLE_3W, VEHICLE_2W)
COPY_FIELDS = {
    "name": lambda s: s.name,
    "total_parcels": lambda s: str(s.total_parcels),
    "total_successful": lambda s: str(s.total_successful),
    "total_failed": lambda s: str(s.total_failed),
    "trip_count": lambda s: str(s.trip_count),
    "vehicle_type": lambda s: s.vehicle_type.upper(),
}


def _fuzzy_for(trip: ParsedTripRecord) -> bool:
    # Shopee spells driver names differently from the courier roster
    return trip.platform == PLATFORM_SHOPEE


def _sort_summaries(summaries: Iterable[CourierSummary]) -> list[CourierSummary]:
    return sorted(summaries, key=lambda s: vehicle_sort_key(s.vehicle_type, s.name))


def _add_trip(summaries: dict[str, CourierSummary], trip: ParsedTripRecord, roster: Roster) -> None:
    summary = summaries.get(trip.entity_name)
    if summary is None:
        fuzzy = _fuzzy_for(trip)
        summary = CourierSummary(
            name=trip.entity_name,
            entity_id=trip.entity_id,
            vehicle_type=classify_vehicle_type(trip.entity_name, roster, fuzzy=fuzzy),
            in_roster=roster.find(trip.entity_name, fuzzy=fuzzy) is not None,
        )
        summaries[trip.entity_name] = summary
    else:
        summary.has_duplicates = True

    summary.trip_count += 1
    summary.total_parcels += trip.total
    summary.total_successful += trip.successful
    summary.total_failed += trip.failed
    if trip.reference:
        summary.references.append(trip.reference)


def collect_missing(trips: Iterable[ParsedTripRecord], roster: Roster) -> list[MissingEntity]:
    """Each distinct name absent from the roster, once, in first-seen order."""
    missing: dict[str, MissingEntity] = {}
    for trip in trips:
        name = trip.entity_name
        if not name or name in missing:
            continue
        fuzzy = _fuzzy_for(trip)
        if roster.find(name, fuzzy=fuzzy) is None:
            missing[name] = MissingEntity(
                name=name, estimated_type=classify_vehicle_type(name, roster, fuzzy=fuzzy)
            )
    return list(missing.values())


def aggregate_by_entity(
    trips: Iterable[ParsedTripRecord], roster: Roster, skip_empty: bool = True
) -> tuple[list[CourierSummary], list[MissingEntity]]:
    """
    Roll trips up per courier.

    With skip_empty, trips carrying zero parcels are dropped before
    aggregation and couriers left with no parcels are not listed.
    """
    trips = [t for t in trips if t.entity_name and (t.total > 0 or not skip_empty)]

    summaries: dict[str, CourierSummary] = {}
    for trip in trips:
        _add_trip(summaries, trip, roster)

    result = list(summaries.values())
    if skip_empty:
        result = [s for s in result if s.total_parcels > 0]

    return _sort_summaries(result), collect_missing(trips, roster)


def parse_table_date(value: str) -> date | None:
    try:
        return datetime.strptime(value, "%d/%m/%Y").date()
    except ValueError:
        return None


def format_display_date(value: str) -> str:
    """'15/06/2025' -> 'June 15, 2025'; unparseable input is returned as is."""
    parsed = parse_table_date(value)
    if parsed is None:
        return value
    return f"{parsed:%B} {parsed.day}, {parsed.year}"


def aggregate_by_day(trips: Iterable[ParsedTripRecord], roster: Roster) -> list[DaySummary]:
    """Per-day courier rollups, most recent day first. Undated trips are ignored."""
    by_day: dict[str, dict[str, CourierSummary]] = {}
    for trip in trips:
        if not trip.date or not trip.entity_name:
            continue
        _add_trip(by_day.setdefault(trip.date, {}), trip, roster)

    days: list[DaySummary] = []
    for day_key, couriers in by_day.items():
        day = DaySummary(date=day_key, formatted_date=format_display_date(day_key))
        day.courier_summaries = _sort_summaries(s for s in couriers.values() if s.total_parcels > 0)

        for summary in day.courier_summaries:
            day.total_parcels += summary.total_parcels
            day.total_successful += summary.total_successful
            day.total_failed += summary.total_failed

            vehicle = summary.vehicle_type.upper()
            day.vehicle_type_counts[vehicle] = day.vehicle_type_counts.get(vehicle, 0) + 1
            stats = day.vehicle_type_stats.setdefault(vehicle, VehicleTypeStats())
            stats.parcels += summary.total_parcels
            stats.successful += summary.total_successful
            stats.failed += summary.total_failed

        days.append(day)

    days.sort(key=lambda d: parse_table_date(d.date) or date.min, reverse=True)
    return days


def calculate_totals(days: Iterable[DaySummary]) -> TripTotals:
    totals = TripTotals()
    couriers: set[str] = set()

    for day in days:
        totals.total_days += 1
        totals.total_parcels += day.total_parcels
        totals.total_successful += day.total_successful
        totals.total_failed += day.total_failed
        for summary in day.courier_summaries:
            couriers.add(summary.name)
            vehicle = summary.vehicle_type.upper()
            totals.vehicle_type_counts[vehicle] = totals.vehicle_type_counts.get(vehicle, 0) + 1

    totals.total_couriers = len(couriers)
    return totals


def format_copy_column(summaries: Iterable[CourierSummary], field: str = "name", with_type: bool = False) -> str:
    """
    One value per courier, grouped 4w, 3w, 2w and then every other type,
    with a blank line between groups, ready to paste into a spreadsheet column.
    """
    try:
        getter = COPY_FIELDS[field]
    except KeyError:
        raise ValueError(f"Unknown copy field: {field}") from None

    def render(summary: CourierSummary) -> str:
        if not with_type:
            return getter(summary)
        return f"{getter(summary)} ({(summary.vehicle_type or 'unknown').upper()})"

    groups: dict[str, list[str]] = {vehicle: [] for vehicle in COPY_GROUPS}
    others: list[str] = []
    for summary in summaries:
        group = groups.get((summary.vehicle_type or "").lower(), others)
        group.append(render(summary))

    blocks = [*groups.values(), others]
    return "\n\n".join("\n".join(values) for values in blocks if values)


def _vehicle_breakdown(counts: dict[str, int]) -> str:
    return ", ".join(f"{count} {vehicle}" for vehicle, count in sorted(counts.items()))


def format_daily_counts(days: Iterable[DaySummary]) -> str:
    return "".join(
        f"{day.formatted_date}: {day.courier_count} couriers ({_vehicle_breakdown(day.vehicle_type_counts)})\n"
        for day in days
    )


def format_weekly_report(analysis: TripAnalysis) -> str:
    totals = analysis.totals or calculate_totals(analysis.days)
    lines = [
        "Weekly Courier Summary",
        "======================",
        "",
        "OVERALL TOTALS",
        "==============",
        f"Total Days: {totals.total_days}",
        f"Unique Couriers: {totals.total_couriers}",
    ]
    lines += [f"{vehicle} Vehicles: {count}" for vehicle, count in sorted(totals.vehicle_type_counts.items())]
    lines += [
        f"Total Parcels: {totals.total_parcels}",
        f"Total Successful: {totals.total_successful}",
        f"Total Failed: {totals.total_failed}",
        f"Overall Success Rate: {totals.success_rate:.1f}%",
        "",
    ]

    for day in analysis.days:
        lines += [
            day.formatted_date,
            f"Couriers: {day.courier_count} ({_vehicle_breakdown(day.vehicle_type_counts)})",
            f"Total Parcels: {day.total_parcels}",
            f"Successful: {day.total_successful}",
            f"Failed: {day.total_failed}",
            f"Success Rate: {day.success_rate:.1f}%",
            "",
        ]

    if analysis.missing:
        lines += ["MISSING COURIERS", "================"]
        lines += [f"{m.name} (estimated: {m.estimated_type})" for m in analysis.missing]

    return "\n".join(lines) + "\n"


def build_analysis(text: str, mode: str, roster: Roster) -> TripAnalysis:
    """Extract and roll up a pasted table; pure given the roster."""
    if mode not in ANALYSIS_MODES:
        raise ValueError(f"Unsupported analysis mode: {mode}")

    platform = detect_platform(text) if mode == "auto" else mode
    trips = extractor_for(platform).extract(text, roster)
    summaries, missing = aggregate_by_entity(trips, roster)

    analysis = TripAnalysis(platform=platform, trips=trips, summaries=summaries, missing=missing)
    if platform == PLATFORM_WEEKLY:
        analysis.days = aggregate_by_day(trips, roster)
        analysis.totals = calculate_totals(analysis.days)
    return analysis


class TripAnalysisService:
    """Loads the courier roster and runs extraction plus aggregation."""

    def __init__(self, repository=None, fallback_names: list[str] | None = None):
        if repository is None:
            from parcelhub.features.reconciliation.repository.parcel_repository import parcel_repository

            repository = parcel_repository
        self.repository = repository
        self.fallback_names = (
            fallback_names if fallback_names is not None else settings.FALLBACK_DRIVER_NAMES
        )

    async def load_roster(self) -> Roster:
        couriers = await self.repository.list_couriers()
        return Roster(couriers, fallback_names=self.fallback_names)

    async def analyze(self, text: str, mode: str = "auto") -> TripAnalysis:
        roster = await self.load_roster()
        analysis = build_analysis(text, mode, roster)
        logger.info(
            "Trip table analyzed",
            mode=mode,
            platform=analysis.platform,
            trip_count=len(analysis.trips),
            courier_count=len(analysis.summaries),
            missing_count=len(analysis.missing),
            roster_size=len(roster),
        )
        return analysis
