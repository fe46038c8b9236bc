import pytest

from parcelhub.features.trip_analysis.parsing.extractors import (
    CourierRunsheetExtractor,
    DispatchTableExtractor,
    ShopeeTaskExtractor,
    detect_platform,
    extractor_for,
    to_int,
)
from parcelhub.features.trip_analysis.summary.roster import Roster
from parcelhub.models.domain.parcel_domain import CourierRecord

ROSTER = Roster(
    [
        CourierRecord(id=1, name="Juan Dela Cruz", type="4w"),
        CourierRecord(id=2, name="Maria Santos", type="2w"),
    ],
    fallback_names=["Pedro Reyes"],
)


def _runsheet(reference, name, courier_id, total, successful, failed, trip_type="Delivery"):
    return [reference, name, courier_id, "helper", trip_type, str(total), str(successful), str(failed)]


def _task(task_id, driver, orders, journey="Line Haul"):
    return [
        task_id,
        driver,
        "North Hub",
        "15/06/2025",
        "PT01",
        "Quezon City",
        "Zone A",
        journey,
        str(orders),
        str(orders),
        "ops@example.com",
        "2025-06-15 06:00",
        "2025-06-15 06:10",
        "2025-06-15 18:00",
        "Completed",
        "View",
    ]


def test_to_int_reads_leading_integer():
    assert to_int("12 parcels") == 12
    assert to_int(" 7") == 7
    assert to_int("n/a") == 0
    assert to_int(None) == 0


def test_courier_runsheet_reads_fields_around_name():
    lines = ["Runsheet", "Courier", *_runsheet("RS-1", "juan dela cruz", "C01", 10, 8, 2)]

    trips = CourierRunsheetExtractor().extract("\n".join(lines), ROSTER)

    assert len(trips) == 1
    trip = trips[0]
    assert trip.entity_name == "JUAN DELA CRUZ"
    assert trip.reference == "RS-1"
    assert trip.entity_id == "C01"
    assert trip.trip_type == "Delivery"
    assert (trip.total, trip.successful, trip.failed) == (10, 8, 2)


def test_courier_runsheet_accepts_fallback_names_and_ignores_unknown():
    lines = [
        *_runsheet("RS-1", "PEDRO REYES", "C09", 5, 5, 0),
        *_runsheet("RS-2", "Nobody Known", "C10", 9, 9, 0),
    ]

    trips = CourierRunsheetExtractor().extract("\n".join(lines), ROSTER)

    assert [t.entity_name for t in trips] == ["PEDRO REYES"]


def test_courier_runsheet_truncated_tail_defaults():
    trips = CourierRunsheetExtractor().extract("RS-1\nMaria Santos\nC02", ROSTER)

    assert trips[0].trip_type == "Delivery"
    assert trips[0].total == 0


def test_shopee_task_uses_roster_name_on_fuzzy_match():
    lines = _task("AT2025061500A1", "[4411] JUAN CRUZ", 25)

    trips = ShopeeTaskExtractor().extract("\n".join(lines), ROSTER)

    assert len(trips) == 1
    trip = trips[0]
    assert trip.entity_name == "Juan Dela Cruz"
    assert trip.entity_id == "4411"
    assert trip.reference == "AT2025061500A1"
    assert trip.trip_type == "Line Haul"
    assert (trip.total, trip.successful, trip.failed) == (25, 25, 0)
    assert trip.details["station"] == "North Hub"
    assert trip.details["status"] == "Completed"


def test_shopee_task_keeps_raw_name_when_not_in_roster():
    trips = ShopeeTaskExtractor().extract("\n".join(_task("AT1X", "[77] Stranger Danger", 3)), ROSTER)

    assert trips[0].entity_name == "Stranger Danger"


def test_shopee_task_without_driver_line_is_skipped():
    text = "\n".join(["AT99Z", "North Hub", "15/06/2025", "PT01", "QC", "Zone", "Haul", "3"])

    assert ShopeeTaskExtractor().extract(text, ROSTER) == []


def test_shopee_adjacent_tasks_pick_nearest_driver():
    lines = _task("AT1A", "[1] Maria Santos", 4) + _task("AT2B", "[2] Juan Dela Cruz", 6)

    trips = ShopeeTaskExtractor().extract("\n".join(lines), ROSTER)

    assert [(t.reference, t.entity_id) for t in trips] == [("AT1A", "1"), ("AT2B", "2")]


def test_dispatch_table_parses_rows_and_skips_header():
    header = "Runsheet\tCourier\tID\tHelper\tType\tTotal\tSuccess\tFailed\tChecked\tDispatched\tStatus\tAction"
    row = "RS-9\tJuan Dela Cruz\tC01\t-\tDelivery\t12\t10\t2\t12\t15/06/2025 07:00:00\tDone\tView"
    short = "RS-10\tMaria Santos\tC02"
    undated = "RS-11\tMaria Santos\tC02\t-\tDelivery\t3\t3\t0\t3\tpending\tDone\tView"

    trips = DispatchTableExtractor().extract("\n".join([header, row, short, undated]), ROSTER)

    assert len(trips) == 1
    trip = trips[0]
    assert trip.entity_name == "Juan Dela Cruz"
    assert trip.date == "15/06/2025"
    assert (trip.total, trip.successful, trip.failed) == (12, 10, 2)
    assert trip.details["check_in_status"] == "Done"


def test_dispatch_table_accepts_space_separated_columns():
    row = "RS-9  Maria Santos  C02  -  Delivery  4  3  1  4  16/06/2025 07:00:00  Done  View"

    trips = DispatchTableExtractor().extract(row, ROSTER)

    assert trips[0].date == "16/06/2025"
    assert trips[0].failed == 1


@pytest.mark.parametrize(
    "text, expected",
    [
        ("[12] Juan", "shopee"),
        ("task AT123ABC done", "shopee"),
        ("RS-1\nJUAN", "courier"),
        ("", "courier"),
    ],
)
def test_detect_platform(text, expected):
    assert detect_platform(text) == expected


def test_extractor_for_unknown_platform():
    with pytest.raises(ValueError):
        extractor_for("lazada")
