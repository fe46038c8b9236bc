"""
Reconciliation engine.

Matches one incoming update record to the stored parcel(s) and applies a
partial, audited mutation. The decision about *what* to write lives in
plan_update(), a pure function of the current status and the incoming
record; Reconciler.apply() wraps it with the store round-trips
(lookup, update, optional event-log insert).

Applying the same record twice is safe: the second pass finds the status
already equal to the incoming one and writes no event-log entry.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from dateutil import parser as date_parser

from parcelhub.features.reconciliation.repository.parcel_repository import ParcelStore
from parcelhub.infrastructure.observability.logging import get_logger
from parcelhub.models.domain.parcel_domain import ParcelEventLogEntry, UpdateRecord

logger = get_logger(__name__)

FORWARD = "forward"
REVERSE = "reverse"

_DIRECTION_TOKENS = {
    "forward": FORWARD,
    "reverse": REVERSE,
    "backward": REVERSE,
}

# Parcel column the mapped direction token is written to
DIRECTION_FIELD = "sub_direction"


class ReconcileStatus(enum.Enum):
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"
    UPDATED = "updated"


@dataclass(frozen=True, slots=True)
class EventLogDraft:
    from_status: str
    new_status: str
    updated_by: str


@dataclass(frozen=True, slots=True)
class UpdatePlan:
    fields: dict[str, Any] = field(default_factory=dict)
    event: EventLogDraft | None = None


@dataclass(frozen=True, slots=True)
class ReconcileOutcome:
    status: ReconcileStatus
    tracking_number: str
    rows_updated: int = 0
    event_logged: bool = False
    new_status: str | None = None


def normalize_tracking_number(raw: str | None, *, uppercase: bool = False) -> str:
    """Strip wrapping quotes and whitespace; optionally upper-case."""
    if raw is None:
        return ""
    cleaned = raw.replace('"', "").strip()
    return cleaned.upper() if uppercase else cleaned


def map_direction(raw: str | None) -> str | None:
    """
    Map a free-text direction token to forward/reverse.

    Returns None for anything unrecognised, meaning "leave the stored
    direction alone".
    """
    if not raw:
        return None
    return _DIRECTION_TOKENS.get(raw.replace('"', "").strip().lower())


def parse_timestamp(raw: str | datetime | None) -> datetime | None:
    """Best-effort timestamp parsing; None when absent or unparseable."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=UTC)

    text = raw.replace('"', "").strip()
    if not text:
        return None

    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def plan_update(
    current_status: str | None,
    record: UpdateRecord,
    *,
    default_updated_by: str,
    now: datetime | None = None,
) -> UpdatePlan:
    """
    Decide the partial update and audit entry for one found parcel.

    Only fields present in the record are written; a column missing from
    the source never nulls out stored data. updated_by and updated_at are
    always written, falling back to the sentinel actor and to now.
    """
    fields: dict[str, Any] = {}

    new_status = _clean(record.status)
    if new_status:
        fields["status"] = new_status

    direction = map_direction(record.direction)
    if direction is not None:
        fields[DIRECTION_FIELD] = direction

    port_code = _clean(record.port_code)
    if port_code:
        fields["port_code"] = port_code

    package_type = _clean(record.package_type)
    if package_type:
        fields["package_type"] = package_type

    updated_by = _clean(record.updated_by) or default_updated_by
    fields["updated_by"] = updated_by
    fields["updated_at"] = parse_timestamp(record.updated_at) or now or datetime.now(UTC)

    event = None
    if new_status and current_status is not None and current_status != new_status:
        event = EventLogDraft(
            from_status=current_status,
            new_status=new_status,
            updated_by=updated_by,
        )

    return UpdatePlan(fields=fields, event=event)


class Reconciler:
    """Applies update records against a ParcelStore."""

    def __init__(self, store: ParcelStore, *, default_updated_by: str, uppercase: bool = False):
        self.store = store
        self.default_updated_by = default_updated_by
        self.uppercase = uppercase

    async def apply(self, record: UpdateRecord, handover_id: int | None = None) -> ReconcileOutcome:
        """
        Reconcile one record, scoped to a handover when handover_id is given.

        Store errors propagate; the caller decides whether they abort the
        batch.
        """
        tracking_number = normalize_tracking_number(record.tracking_number, uppercase=self.uppercase)
        if not tracking_number:
            return ReconcileOutcome(status=ReconcileStatus.SKIPPED, tracking_number="")

        parcels = await self.store.find_parcels(tracking_number, handover_id)
        if not parcels:
            return ReconcileOutcome(status=ReconcileStatus.NOT_FOUND, tracking_number=tracking_number)

        # With duplicate rows the first one's status is the audited "before"
        current_status = parcels[0].status
        plan = plan_update(current_status, record, default_updated_by=self.default_updated_by)

        rows_updated = await self.store.update_parcels(tracking_number, plan.fields, handover_id)

        event_logged = False
        if plan.event is not None and rows_updated > 0:
            await self.store.append_event_log(
                ParcelEventLogEntry(
                    tracking_number=tracking_number,
                    updated_by=plan.event.updated_by,
                    from_status=plan.event.from_status,
                    new_status=plan.event.new_status,
                )
            )
            event_logged = True

        if len(parcels) > 1:
            logger.debug(
                "Multiple parcels share tracking number",
                tracking_number=tracking_number,
                matched=len(parcels),
                handover_id=handover_id,
            )

        return ReconcileOutcome(
            status=ReconcileStatus.UPDATED,
            tracking_number=tracking_number,
            rows_updated=rows_updated,
            event_logged=event_logged,
            new_status=plan.fields.get("status"),
        )
