import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from parcelhub.features.trip_analysis.api.router import get_trip_analysis_service, router
from parcelhub.features.trip_analysis.summary.service import TripAnalysisService
from parcelhub.models.domain.parcel_domain import CourierRecord

RUNSHEETS = "\n".join(
    [
        "RS-1", "ALICE VAN", "C01", "-", "Delivery", "10", "9", "1",
        "RS-2", "CARLA", "C03", "-", "Delivery", "6", "6", "0",
        "RS-3", "CARLA", "C03", "-", "Pickup", "4", "3", "1",
    ]
)  # fmt: skip

WEEKLY = "\n".join(
    [
        "Runsheet\tCourier\tID\tHelper\tType\tTotal\tSuccess\tFailed\tChecked\tDispatched\tStatus\tAction",
        "RS-1\tALICE VAN\tC01\t-\tDelivery\t10\t9\t1\t10\t14/06/2025 07:00:00\tDone\tView",
        "RS-2\tCARLA\tC03\t-\tDelivery\t6\t6\t0\t6\t15/06/2025 07:00:00\tDone\tView",
        "RS-3\tMYSTERY MOTOR\tC99\t-\tDelivery\t2\t1\t1\t2\t15/06/2025 09:00:00\tDone\tView",
    ]
)


@pytest.fixture
def client(parcel_store):
    parcel_store.couriers = [
        CourierRecord(id=1, name="Alice Van", type="4w"),
        CourierRecord(id=3, name="Carla", type="2w"),
    ]
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_trip_analysis_service] = lambda: TripAnalysisService(
        parcel_store, fallback_names=[]
    )
    return TestClient(app)


def test_analyze_courier_runsheets(client):
    response = client.post("/trips/analyze", json={"text": RUNSHEETS})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["platform"] == "courier"
    assert data["tripCount"] == 3
    alice, carla = data["courierSummaries"]
    assert alice["courier"] == "ALICE VAN"
    assert alice["vehicleType"] == "4w"
    assert carla["tripCount"] == 2
    assert carla["totalParcels"] == 10
    assert carla["successRate"] == 90.0
    assert carla["hasDuplicates"] is True
    assert carla["references"] == ["RS-2", "RS-3"]
    assert data["missingCouriers"] == []
    assert data["days"] == []
    assert data["totals"] is None


def test_analyze_weekly_table(client):
    response = client.post("/trips/analyze", json={"text": WEEKLY, "mode": "weekly"})

    data = response.json()
    assert data["platform"] == "weekly"
    assert [d["date"] for d in data["days"]] == ["15/06/2025", "14/06/2025"]
    assert data["days"][0]["formattedDate"] == "June 15, 2025"
    assert data["days"][0]["courierCount"] == 2
    assert data["totals"]["totalCouriers"] == 3
    assert data["totals"]["totalParcels"] == 18
    assert data["missingCouriers"] == [{"name": "MYSTERY MOTOR", "estimatedType": "2w"}]


def test_analyze_rejects_unknown_mode(client):
    response = client.post("/trips/analyze", json={"text": RUNSHEETS, "mode": "monthly"})

    assert response.status_code == 422


def test_analyze_roster_failure_returns_500(parcel_store):
    class BrokenRoster:
        async def list_couriers(self):
            raise ConnectionError("db down")

    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_trip_analysis_service] = lambda: TripAnalysisService(
        BrokenRoster(), fallback_names=[]
    )

    response = TestClient(app).post("/trips/analyze", json={"text": RUNSHEETS})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Failed to analyze trip table"}


def test_report_copy_column(client):
    response = client.post(
        "/trips/report",
        json={"text": RUNSHEETS, "format": "column", "field": "total_parcels", "withType": True},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "10 (4W)\n\n10 (2W)"


def test_report_daily_counts(client):
    response = client.post(
        "/trips/report", json={"text": WEEKLY, "mode": "weekly", "format": "daily_counts"}
    )

    assert response.text == (
        "June 15, 2025: 2 couriers (2 2W)\n"
        "June 14, 2025: 1 couriers (1 4W)\n"
    )


def test_report_weekly_summary(client):
    response = client.post("/trips/report", json={"text": WEEKLY, "mode": "weekly"})

    text = response.text
    assert text.startswith("Weekly Courier Summary")
    assert "Total Days: 2" in text
    assert "Total Parcels: 18" in text
    assert "MISSING COURIERS" in text
    assert "MYSTERY MOTOR (estimated: 2w)" in text
