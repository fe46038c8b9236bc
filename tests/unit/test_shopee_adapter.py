import pytest

from parcelhub.features.reconciliation.adapters.shopee_adapter import (
    ShopeeUpdateAdapter,
    map_bulky_type,
    map_order_status,
    shipment_items,
    translate_shipments,
)


def _payload(*items):
    return {"retcode": 0, "data": {"list": list(items)}}


def test_map_order_status_known_and_unknown_codes():
    assert map_order_status(1) == "LMHub_Received"
    assert map_order_status(4) == "Delivered"
    assert map_order_status(116) == "Return_FMHub_Assigned"
    assert map_order_status(999) == "Unknown_Status_999"


def test_map_bulky_type():
    assert map_bulky_type(1) == "Bulky"
    assert map_bulky_type(2) == "Pouch"
    assert map_bulky_type(3) is None
    assert map_bulky_type("1") is None
    assert map_bulky_type(True) is None


@pytest.mark.parametrize("payload", [None, [], {"data": None}, {"data": {"list": "x"}}, {"data": {}}])
def test_shipment_items_tolerates_malformed_payloads(payload):
    assert shipment_items(payload) == []


def test_translate_shipments_skips_unusable_items():
    payload = _payload(
        {"shipment_id": "ph123", "order_status": 4, "driver_name": "  ", "current_station_name": "North"},
        {"shipment_id": "", "order_status": 4},
        {"shipment_id": "PH2", "order_status": "4"},
        {"order_status": 1},
        "not-a-dict",
    )

    records = translate_shipments(payload)

    assert len(records) == 1
    record = records[0]
    assert record.tracking_number == "PH123"
    assert record.status == "Delivered"
    assert record.updated_by == "system"
    assert record.port_code == "North"
    assert record.package_type is None


@pytest.mark.asyncio
async def test_apply_updates_matching_parcel(parcel_store):
    adapter = ShopeeUpdateAdapter(parcel_store)
    payload = _payload(
        {
            "shipment_id": "abc123",
            "order_status": 1,
            "driver_name": "Rico",
            "current_station_name": "Hub 3",
            "bulky_type": 2,
        }
    )

    result = await adapter.apply(payload)

    assert result.updated_count == 1
    assert result.total_found == 1
    assert result.api_response is payload
    parcel = parcel_store.get("ABC123")
    assert parcel.status == "LMHub_Received"
    assert parcel.updated_by == "Rico"
    assert parcel.port_code == "Hub 3"
    assert parcel.package_type == "Pouch"
    entry = result.processed_parcels[0].to_dict()
    assert entry["tracking_number"] == "ABC123"
    assert entry["found"] is True
    assert entry["updated"] is True
    assert entry["error"] is None


@pytest.mark.asyncio
async def test_apply_reports_not_found_and_unknown_status(parcel_store):
    adapter = ShopeeUpdateAdapter(parcel_store)

    result = await adapter.apply(_payload({"shipment_id": "NOPE1", "order_status": 77}))

    assert result.updated_count == 0
    entry = result.processed_parcels[0]
    assert entry.status == "Unknown_Status_77"
    assert entry.found is False
    assert entry.updated is False
    assert parcel_store.update_calls == []


@pytest.mark.asyncio
async def test_apply_ignores_handover_scope(parcel_store):
    adapter = ShopeeUpdateAdapter(parcel_store)

    result = await adapter.apply(
        _payload({"shipment_id": "ABC123", "order_status": 4}, {"shipment_id": "GHI789", "order_status": 4})
    )

    assert result.updated_count == 2
    assert parcel_store.get("GHI789").status == "Delivered"


@pytest.mark.asyncio
async def test_apply_continues_after_item_error(parcel_store):
    parcel_store.failing.add("ABC123")
    adapter = ShopeeUpdateAdapter(parcel_store, default_actor="fleet-sync")

    result = await adapter.apply(
        _payload({"shipment_id": "ABC123", "order_status": 4}, {"shipment_id": "DEF456", "order_status": 4})
    )

    failed, ok = result.processed_parcels
    assert failed.error == "store unavailable for ABC123"
    assert failed.found is False
    assert ok.updated is True
    assert result.updated_count == 1
    assert parcel_store.get("DEF456").updated_by == "fleet-sync"


@pytest.mark.asyncio
async def test_apply_empty_list(parcel_store):
    result = await ShopeeUpdateAdapter(parcel_store).apply(_payload())

    assert result.updated_count == 0
    assert result.total_found == 0
    assert result.processed_parcels == []
