import time

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from parcelhub.features.reconciliation.api.dependencies import get_parcel_store, get_upload_runner
from parcelhub.features.reconciliation.api.router import router
from parcelhub.features.reconciliation.jobs.upload_job import UploadJobRunner

CSV = "TrackingNumber,TPLStatus,LastStatusUpdatedByName\nDEF456,Delivered,Jane\nZZZ999,Delivered,Jane\n"


@pytest.fixture
def runner(parcel_store, job_store):
    return UploadJobRunner(parcel_store, job_store)


@pytest.fixture
def client(runner, parcel_store):
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_upload_runner] = lambda: runner
    app.dependency_overrides[get_parcel_store] = lambda: parcel_store

    # Keep one event loop alive so background upload tasks survive between requests
    with TestClient(app) as test_client:
        yield test_client


def _upload(client, path, content=CSV, name="updates.csv"):
    return client.post(path, files={"file": (name, content.encode(), "text/csv")})


def _wait_for_job(client, path, job_id, attempts=200):
    for _ in range(attempts):
        response = client.get(path, params={"jobId": job_id})
        if response.status_code != 200 or response.json()["status"] != "processing":
            return response
        time.sleep(0.01)
    raise AssertionError(f"job {job_id} still processing")


def test_global_upload_runs_in_background_and_completes(client, parcel_store):
    response = _upload(client, "/upload-updates")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["scope"] == "global"
    assert body["handoverId"] is None
    job_id = body["jobId"]

    final = _wait_for_job(client, "/upload-updates", job_id)

    assert final.status_code == 200
    data = final.json()
    assert data["status"] == "completed"
    assert data["progress"] == 100
    result = data["result"]
    assert result["updatedCount"] == 1
    assert result["notFoundCount"] == 1
    assert result["errorCount"] == 0
    assert result["totalProcessed"] == 2
    assert result["sampleNotFound"] == ["ZZZ999"]
    assert result["exportName"] == "updates.csv - Global Update"
    assert parcel_store.get("DEF456").status == "Delivered"


def test_handover_upload_is_scoped(client, parcel_store):
    content = "TrackingNumber,TPLStatus\nABC123,Delivered\nGHI789,Delivered\n"

    response = _upload(client, "/handovers/7/upload-updates", content, name="h7.csv")

    assert response.status_code == 200
    body = response.json()
    assert body["scope"] == "handover"
    assert body["handoverId"] == 7

    data = _wait_for_job(client, "/handovers/7/upload-updates", body["jobId"]).json()

    assert data["handoverId"] == 7
    assert data["result"]["updatedCount"] == 1
    assert data["result"]["sampleNotFound"] == ["GHI789"]
    assert data["result"]["exportName"] == "h7.csv - Handover 7"
    assert parcel_store.get("GHI789").status == "Pending"


def test_job_not_visible_from_other_scope(client):
    job_id = _upload(client, "/handovers/7/upload-updates").json()["jobId"]
    _wait_for_job(client, "/handovers/7/upload-updates", job_id)

    assert client.get("/upload-updates", params={"jobId": job_id}).status_code == 404
    assert client.get("/handovers/8/upload-updates", params={"jobId": job_id}).status_code == 404


def test_upload_without_file(client):
    response = client.post("/upload-updates")

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "No file provided"}


def test_upload_header_only_rejected_without_job(client, job_store):
    response = _upload(client, "/upload-updates", "TrackingNumber,TPLStatus\n")

    assert response.status_code == 400
    assert response.json()["error"] == "CSV file must contain headers and at least one data row"
    assert job_store._jobs == {}


def test_poll_requires_job_id(client):
    response = client.get("/upload-updates")

    assert response.status_code == 400
    assert response.json()["error"] == "Job ID is required"


def test_poll_unknown_job(client):
    response = client.get("/upload-updates", params={"jobId": "does-not-exist"})

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Job not found"}


def test_submit_failure_returns_500(client, runner, monkeypatch):
    async def broken_create(*args, **kwargs):
        raise RuntimeError("store offline")

    monkeypatch.setattr(runner.job_store, "create", broken_create)

    response = _upload(client, "/upload-updates")

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to start upload process"


def test_upload_strips_utf8_bom(client, parcel_store):
    content = "\ufeffTrackingNumber,TPLStatus\nABC123,Delivered\n"

    job_id = _upload(client, "/upload-updates", content).json()["jobId"]
    data = _wait_for_job(client, "/upload-updates", job_id).json()

    assert data["result"]["updatedCount"] == 1
    assert parcel_store.get("ABC123").status == "Delivered"
