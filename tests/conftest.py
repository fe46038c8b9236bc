from datetime import UTC, datetime

import pytest

from parcelhub.features.reconciliation.jobs.job_store import InMemoryJobStore
from parcelhub.models.domain.parcel_domain import (
    CourierRecord,
    ExportRecord,
    HandoverRecord,
    ParcelEventLogEntry,
    ParcelRecord,
)


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl_s
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def ping(self) -> bool:
        return True


class InMemoryParcelStore:
    """ParcelStore double backed by plain lists."""

    def __init__(self, parcels=None, couriers=None, handovers=None):
        self.parcels: list[ParcelRecord] = list(parcels or [])
        self.couriers: list[CourierRecord] = list(couriers or [])
        self.handovers: dict[int, HandoverRecord] = {h.id: h for h in handovers or []}
        self.event_logs: list[ParcelEventLogEntry] = []
        self.exports: list[ExportRecord] = []
        self.failing: set[str] = set()
        self.update_calls: list[tuple[str, dict, int | None]] = []

    def _matches(self, parcel: ParcelRecord, tracking_number: str, handover_id: int | None) -> bool:
        if parcel.tracking_number != tracking_number:
            return False
        return handover_id is None or parcel.handover_id == handover_id

    def get(self, tracking_number: str) -> ParcelRecord | None:
        return next((p for p in self.parcels if p.tracking_number == tracking_number), None)

    async def find_parcels(self, tracking_number, handover_id=None):
        if tracking_number in self.failing:
            raise RuntimeError(f"store unavailable for {tracking_number}")
        return [p for p in self.parcels if self._matches(p, tracking_number, handover_id)]

    async def update_parcels(self, tracking_number, fields, handover_id=None):
        self.update_calls.append((tracking_number, dict(fields), handover_id))
        count = 0
        for parcel in self.parcels:
            if self._matches(parcel, tracking_number, handover_id):
                for column, value in fields.items():
                    setattr(parcel, column, value)
                count += 1
        return count

    async def append_event_log(self, entry):
        entry.id = len(self.event_logs) + 1
        entry.created_at = entry.created_at or datetime.now(UTC)
        self.event_logs.append(entry)

    async def create_export(self, export_name, export_dir):
        export = ExportRecord(id=len(self.exports) + 1, export_name=export_name, export_dir=export_dir)
        self.exports.append(export)
        return export

    async def list_event_logs(self, tracking_number):
        entries = [e for e in self.event_logs if e.tracking_number == tracking_number]
        return sorted(entries, key=lambda e: (e.created_at, e.id), reverse=True)

    async def list_couriers(self):
        return list(self.couriers)

    async def get_handover(self, handover_id, platform=None):
        handover = self.handovers.get(handover_id)
        if handover is None or (platform is not None and handover.platform != platform):
            return None
        return handover

    async def find_existing_tracking_numbers(self, tracking_numbers):
        wanted = set(tracking_numbers)
        return {p.tracking_number for p in self.parcels if p.tracking_number in wanted}

    async def add_parcels_to_handover(self, handover_id, tracking_numbers):
        for number in tracking_numbers:
            self.parcels.append(
                ParcelRecord(
                    tracking_number=number,
                    status="pending",
                    updated_by="system",
                    port_code="",
                    package_type="",
                    handover_id=handover_id,
                )
            )
        self.handovers[handover_id].quantity += len(tracking_numbers)
        return len(tracking_numbers)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def parcel_store():
    return InMemoryParcelStore(
        parcels=[
            ParcelRecord(tracking_number="ABC123", status="Pending", handover_id=7),
            ParcelRecord(tracking_number="DEF456", status="In Transit", handover_id=7),
            ParcelRecord(tracking_number="GHI789", status="Pending", handover_id=8),
        ],
        handovers=[
            HandoverRecord(id=7, file_name="h7.csv", handover_date=None, status="pending", platform="shopee"),
            HandoverRecord(id=8, file_name="h8.csv", handover_date=None, status="pending", platform="lazada"),
        ],
    )


@pytest.fixture
def job_store():
    return InMemoryJobStore(retention_seconds=3600)
