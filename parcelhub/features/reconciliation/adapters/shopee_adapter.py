"""
Shopee status-query adapter.

Translates a fleet API tracking-list response into UpdateRecords and runs
them through the Reconciler in global scope (no handover restriction).
"""

from dataclasses import dataclass
from typing import Any

from parcelhub.features.reconciliation.engine.reconcile import Reconciler, ReconcileStatus
from parcelhub.features.reconciliation.repository.parcel_repository import ParcelStore
from parcelhub.infrastructure.observability.logging import get_logger
from parcelhub.models.domain.parcel_domain import UpdateRecord

logger = get_logger(__name__)

ORDER_STATUS_MAP: dict[int, str] = {
    1: "LMHub_Received",
    4: "Delivered",
    5: "OnHold",
    6: "Return_SOC_Returned",
    10: "Return_LMHub_Received",
    50: "LMHub_Assigned",
    53: "Return_LMHub_Packed",
    64: "Return_SOC_LHTransport",
    65: "Return_SOC_LHTransported",
    73: "Return_FMHub_Returned",
    116: "Return_FMHub_Assigned",
}

BULKY_TYPE_MAP: dict[int, str] = {
    1: "Bulky",
    2: "Pouch",
}


def map_order_status(code: int) -> str:
    # Unmapped codes stay visible to operators instead of being dropped
    return ORDER_STATUS_MAP.get(code, f"Unknown_Status_{code}")


def map_bulky_type(value: Any) -> str | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return BULKY_TYPE_MAP.get(value)


def shipment_items(payload: Any) -> list[dict]:
    """The data.list array of a tracking-list response, or []."""
    if not isinstance(payload, dict):
        return []
    data = payload.get("data")
    if not isinstance(data, dict):
        return []
    items = data.get("list")
    return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []


def translate_shipment(item: dict, default_actor: str) -> UpdateRecord | None:
    shipment_id = item.get("shipment_id")
    order_status = item.get("order_status")
    if not shipment_id or not isinstance(shipment_id, str):
        return None
    if isinstance(order_status, bool) or not isinstance(order_status, int):
        return None

    driver_name = item.get("driver_name")
    updated_by = driver_name.strip() if isinstance(driver_name, str) and driver_name.strip() else default_actor
    station = item.get("current_station_name")

    return UpdateRecord(
        tracking_number=shipment_id.strip().upper(),
        status=map_order_status(order_status),
        updated_by=updated_by,
        port_code=station.strip() if isinstance(station, str) and station.strip() else None,
        package_type=map_bulky_type(item.get("bulky_type")),
    )


def translate_shipments(payload: Any, default_actor: str = "system") -> list[UpdateRecord]:
    """UpdateRecords for every item with a shipment id and an integer status."""
    records = []
    for item in shipment_items(payload):
        record = translate_shipment(item, default_actor)
        if record is not None:
            records.append(record)
    return records


@dataclass(slots=True)
class ProcessedParcel:
    tracking_number: str
    status: str | None
    updated_by: str | None
    port_code: str | None
    package_type: str | None
    found: bool = False
    updated: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tracking_number": self.tracking_number,
            "status": self.status,
            "updated_by": self.updated_by,
            "port_code": self.port_code,
            "package_type": self.package_type,
            "found": self.found,
            "updated": self.updated,
            "error": self.error,
        }


@dataclass(slots=True)
class ShopeeUpdateResult:
    updated_count: int
    total_found: int
    processed_parcels: list[ProcessedParcel]
    api_response: Any


class ShopeeUpdateAdapter:
    def __init__(self, store: ParcelStore, *, default_actor: str = "system"):
        self.default_actor = default_actor
        self.reconciler = Reconciler(store, default_updated_by=default_actor, uppercase=True)

    async def apply(self, payload: Any) -> ShopeeUpdateResult:
        """
        Reconcile every shipment in a tracking-list response.

        A failure on one shipment is logged and reported on that item; the
        remaining shipments are still processed.
        """
        items = shipment_items(payload)
        records = translate_shipments(payload, self.default_actor)
        logger.info("Shopee response received", item_count=len(items), usable=len(records))

        updated_count = 0
        processed: list[ProcessedParcel] = []

        for record in records:
            entry = ProcessedParcel(
                tracking_number=record.tracking_number,
                status=record.status,
                updated_by=record.updated_by,
                port_code=record.port_code,
                package_type=record.package_type,
            )
            try:
                outcome = await self.reconciler.apply(record)
            except Exception as e:
                entry.error = str(e)
                logger.error(
                    "Error updating parcel from Shopee",
                    tracking_number=record.tracking_number,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                entry.found = outcome.status is ReconcileStatus.UPDATED
                entry.updated = outcome.rows_updated > 0
                updated_count += outcome.rows_updated
                if not entry.found:
                    logger.info("No parcel found for shipment", tracking_number=record.tracking_number)
            processed.append(entry)

        logger.info("Shopee update finished", updated_count=updated_count, total_found=len(items))
        return ShopeeUpdateResult(
            updated_count=updated_count,
            total_found=len(items),
            processed_parcels=processed,
            api_response=payload,
        )
