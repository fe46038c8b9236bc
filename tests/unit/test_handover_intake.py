import pytest

from parcelhub.features.reconciliation.services.handover_intake import (
    HandoverIntakeService,
    HandoverNotFoundError,
    TrackingIntakeResult,
    dedupe_tracking_numbers,
)


def test_dedupe_trims_uppercases_and_counts_repeats():
    unique, repeats = dedupe_tracking_numbers([" ph1 ", "PH1", "", "ph2", "  ", "Ph2", "ph3"])

    assert unique == ["PH1", "PH2", "PH3"]
    assert repeats == 2


def test_result_messages():
    assert TrackingIntakeResult(3, 0, 0).message == "3 tracking numbers added successfully."
    assert (
        TrackingIntakeResult(2, 1, 1).message
        == "2 tracking numbers added successfully. 2 duplicates were skipped."
    )
    assert TrackingIntakeResult(0, 1, 2).message == "No new tracking numbers were added (all were duplicates)."


@pytest.mark.asyncio
async def test_add_tracking_skips_existing_and_repeated(parcel_store):
    service = HandoverIntakeService(parcel_store)

    result = await service.add_tracking(7, ["new1", "NEW1", "abc123", "new2"])

    assert result.added_count == 2
    assert result.internal_duplicates == 1
    assert result.database_duplicates == 1
    added = [p for p in parcel_store.parcels if p.tracking_number in {"NEW1", "NEW2"}]
    assert {p.handover_id for p in added} == {7}
    assert {p.status for p in added} == {"pending"}
    assert parcel_store.handovers[7].quantity == 2


@pytest.mark.asyncio
async def test_add_tracking_all_duplicates_writes_nothing(parcel_store):
    service = HandoverIntakeService(parcel_store)
    before = len(parcel_store.parcels)

    result = await service.add_tracking(7, ["ABC123", "def456"])

    assert result.added_count == 0
    assert result.database_duplicates == 2
    assert len(parcel_store.parcels) == before


@pytest.mark.asyncio
@pytest.mark.parametrize("handover_id", [8, 999])
async def test_add_tracking_requires_shopee_handover(parcel_store, handover_id):
    service = HandoverIntakeService(parcel_store)

    with pytest.raises(HandoverNotFoundError):
        await service.add_tracking(handover_id, ["PH1"])
