"""
Trip extractors for tables pasted from the courier and Shopee portals.

Copying a table out of a portal flattens it into one cell per line (or
tab/space separated columns for the dispatch report). Each extractor
looks for an anchor line and reads fields at fixed offsets around it.
Lines that are not anchors are ignored, so headers, page furniture and
pagination text pass through harmlessly.
"""

from __future__ import annotations

import re
from typing import Protocol

from parcelhub.features.trip_analysis.domain.models import (
    PLATFORM_COURIER,
    PLATFORM_SHOPEE,
    PLATFORM_WEEKLY,
    ParsedTripRecord,
)
from parcelhub.features.trip_analysis.summary.roster import Roster
from parcelhub.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

TASK_ID_RE = re.compile(r"^AT\d+[A-Z0-9]+$")
TASK_ID_SEARCH_RE = re.compile(r"AT\d+[A-Z0-9]+")
DRIVER_LINE_RE = re.compile(r"^\[(\d+)\]\s*(.+)$")
LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")
DISPATCH_COLUMN_SPLIT_RE = re.compile(r"\t+|\s{2,}")
DISPATCH_DATE_RE = re.compile(r"(\d{2}/\d{2}/\d{4})")

DRIVER_SEARCH_WINDOW = 5
DISPATCH_MIN_COLUMNS = 11


class TripExtractor(Protocol):
    platform: str

    def extract(self, text: str, roster: Roster) -> list[ParsedTripRecord]: ...


def table_lines(text: str) -> list[str]:
    return [line.strip() for line in (text or "").strip().splitlines() if line.strip()]


def to_int(value: str | None) -> int:
    """Leading integer of a cell ("12 parcels" -> 12); anything else is 0."""
    match = LEADING_INT_RE.match(value or "")
    return int(match.group(1)) if match else 0


def _line_at(lines: list[str], index: int, default: str = "") -> str:
    if 0 <= index < len(lines):
        return lines[index]
    return default


class CourierRunsheetExtractor:
    """
    Courier portal runsheet list.

    Anchor: a line equal (ignoring case) to a known courier name. Around it:
    -1 runsheet id, +1 courier id, +3 trip type, +4 total, +5 successful,
    +6 failed.
    """

    platform = PLATFORM_COURIER

    def extract(self, text: str, roster: Roster) -> list[ParsedTripRecord]:
        lines = table_lines(text)
        known = set(roster.known_names())
        trips: list[ParsedTripRecord] = []

        for i, line in enumerate(lines):
            name = line.upper()
            if name not in known:
                continue

            trips.append(
                ParsedTripRecord(
                    entity_name=name,
                    platform=self.platform,
                    entity_id=_line_at(lines, i + 1),
                    reference=_line_at(lines, i - 1),
                    trip_type=_line_at(lines, i + 3, "Delivery"),
                    total=to_int(_line_at(lines, i + 4)),
                    successful=to_int(_line_at(lines, i + 5)),
                    failed=to_int(_line_at(lines, i + 6)),
                )
            )

        logger.debug("Courier runsheets extracted", line_count=len(lines), trip_count=len(trips))
        return trips


class ShopeeTaskExtractor:
    """
    Shopee fleet task list.

    Anchor: a task id line (AT + digits + [A-Z0-9]). The driver line,
    "[<driver id>] <name>", sits within DRIVER_SEARCH_WINDOW lines of it.
    Fields sit at fixed offsets after the task id.
    """

    platform = PLATFORM_SHOPEE

    FIELD_OFFSETS = {
        "station": 2,
        "delivery_date": 3,
        "point_code": 4,
        "town": 5,
        "zone": 6,
        "journey_type": 7,
        "assigned_orders": 9,
        "operator": 10,
        "create_time": 11,
        "assigned_time": 12,
        "complete_time": 13,
        "status": 14,
        "action": 15,
    }
    ORDERS_OFFSET = 8

    def _find_driver(self, lines: list[str], anchor: int) -> tuple[str, str] | None:
        # Nearest driver line wins when two tasks sit close together
        for distance in range(1, DRIVER_SEARCH_WINDOW + 1):
            for index in (anchor + distance, anchor - distance):
                match = DRIVER_LINE_RE.match(_line_at(lines, index))
                if match:
                    return match.group(1), match.group(2).strip()
        return None

    def extract(self, text: str, roster: Roster) -> list[ParsedTripRecord]:
        lines = table_lines(text)
        trips: list[ParsedTripRecord] = []

        for i, line in enumerate(lines):
            if not TASK_ID_RE.match(line):
                continue

            driver = self._find_driver(lines, i)
            if driver is None:
                logger.debug("Task without driver line skipped", task_id=line)
                continue

            driver_id, raw_name = driver
            courier = roster.find(raw_name, fuzzy=True)
            orders = to_int(_line_at(lines, i + self.ORDERS_OFFSET))
            details = {key: _line_at(lines, i + offset) for key, offset in self.FIELD_OFFSETS.items()}

            trips.append(
                ParsedTripRecord(
                    entity_name=courier.name if courier else raw_name,
                    platform=self.platform,
                    entity_id=driver_id,
                    reference=line,
                    trip_type=details["journey_type"],
                    total=orders,
                    # The task list has no failure column; every order counts as handled
                    successful=orders,
                    failed=0,
                    details=details,
                )
            )

        logger.debug("Shopee tasks extracted", line_count=len(lines), trip_count=len(trips))
        return trips


class DispatchTableExtractor:
    """
    Weekly dispatch report, one runsheet per row.

    Columns: runsheet, courier, courier id, helper, type, total, successful,
    failed, checked-in parcels, dispatched ("dd/mm/yyyy hh:mm:ss"),
    check-in status, action. Rows without a dispatch date are ignored.
    """

    platform = PLATFORM_WEEKLY

    def extract(self, text: str, roster: Roster) -> list[ParsedTripRecord]:
        lines = table_lines(text)
        if not lines:
            return []

        start = 1 if "Runsheet" in lines[0] else 0
        trips: list[ParsedTripRecord] = []

        for line in lines[start:]:
            columns = [col.strip() for col in DISPATCH_COLUMN_SPLIT_RE.split(line) if col.strip()]
            if len(columns) < DISPATCH_MIN_COLUMNS:
                continue

            dispatched = columns[9]
            date_match = DISPATCH_DATE_RE.search(dispatched)
            courier_name = columns[1]
            if not date_match or not courier_name:
                continue

            trips.append(
                ParsedTripRecord(
                    entity_name=courier_name,
                    platform=self.platform,
                    entity_id=columns[2],
                    reference=columns[0],
                    trip_type=columns[4],
                    total=to_int(columns[5]),
                    successful=to_int(columns[6]),
                    failed=to_int(columns[7]),
                    date=date_match.group(1),
                    details={
                        "helper": columns[3],
                        "checked_in": columns[8],
                        "dispatched": dispatched,
                        "check_in_status": columns[10],
                        "action": columns[11] if len(columns) > 11 else "",
                    },
                )
            )

        logger.debug("Dispatch rows extracted", line_count=len(lines), trip_count=len(trips))
        return trips


_EXTRACTORS: dict[str, type] = {
    PLATFORM_COURIER: CourierRunsheetExtractor,
    PLATFORM_SHOPEE: ShopeeTaskExtractor,
    PLATFORM_WEEKLY: DispatchTableExtractor,
}


def detect_platform(text: str) -> str:
    """Shopee tables carry "[id]" driver tags or AT task ids; anything else is a courier runsheet."""
    if not text:
        return PLATFORM_COURIER
    if "[" in text and "]" in text:
        return PLATFORM_SHOPEE
    if TASK_ID_SEARCH_RE.search(text):
        return PLATFORM_SHOPEE
    return PLATFORM_COURIER


def extractor_for(platform: str) -> TripExtractor:
    try:
        return _EXTRACTORS[platform]()
    except KeyError:
        raise ValueError(f"Unsupported trip table platform: {platform}") from None
