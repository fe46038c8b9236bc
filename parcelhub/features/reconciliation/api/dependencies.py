"""
FastAPI dependencies for the reconciliation routes.

The lifespan handler calls configure() once the infrastructure is up.
Without it (scripts, bare TestClient) an in-memory job store is used.
Tests swap any of these through app.dependency_overrides.
"""

from parcelhub.config import settings
from parcelhub.features.reconciliation.adapters.shopee_client import ShopeeFleetClient
from parcelhub.features.reconciliation.jobs.job_store import InMemoryJobStore, JobStore
from parcelhub.features.reconciliation.jobs.upload_job import UploadJobRunner
from parcelhub.features.reconciliation.repository.parcel_repository import parcel_repository

_job_store: JobStore | None = None
_upload_runner: UploadJobRunner | None = None
_shopee_client: ShopeeFleetClient | None = None


def configure(job_store: JobStore, store=None) -> UploadJobRunner:
    """Install the job store and build the upload runner around it."""
    global _job_store, _upload_runner
    _job_store = job_store
    _upload_runner = UploadJobRunner(
        store or parcel_repository,
        job_store,
        default_updated_by=settings.CSV_DEFAULT_UPDATED_BY,
        progress_updates=settings.JOB_PROGRESS_UPDATES,
    )
    return _upload_runner


def get_parcel_store():
    return parcel_repository


def get_job_store() -> JobStore:
    global _job_store
    if _job_store is None:
        _job_store = InMemoryJobStore(retention_seconds=settings.JOB_RETENTION_SECONDS)
    return _job_store


def get_upload_runner() -> UploadJobRunner:
    if _upload_runner is None:
        return configure(get_job_store())
    return _upload_runner


def get_shopee_client() -> ShopeeFleetClient:
    global _shopee_client
    if _shopee_client is None:
        _shopee_client = ShopeeFleetClient()
    return _shopee_client


async def shutdown() -> None:
    """Wait for running uploads and release the upstream HTTP client."""
    global _shopee_client
    if _upload_runner is not None:
        await _upload_runner.wait_for_idle()
    if _shopee_client is not None:
        await _shopee_client.close()
        _shopee_client = None
