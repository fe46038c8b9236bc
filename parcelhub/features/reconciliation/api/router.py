"""
Reconciliation routes.

Bulk CSV uploads (global and handover scoped) run as background jobs and
are polled by job id. Shopee status queries are proxied and applied
inline. Error bodies are {"success": false, "error": ...}.
"""

import httpx
from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import JSONResponse

from parcelhub.config import settings
from parcelhub.features.reconciliation.adapters.shopee_adapter import ShopeeUpdateAdapter
from parcelhub.features.reconciliation.adapters.shopee_client import (
    ShopeeApiError,
    ShopeeFleetClient,
    ShopeeProxyNotAllowedError,
)
from parcelhub.features.reconciliation.api.dependencies import (
    get_parcel_store,
    get_shopee_client,
    get_upload_runner,
)
from parcelhub.features.reconciliation.jobs.job_store import JobNotFoundError
from parcelhub.features.reconciliation.jobs.upload_job import UploadInputError, UploadJobRunner
from parcelhub.features.reconciliation.services.handover_intake import (
    HandoverIntakeService,
    HandoverNotFoundError,
)
from parcelhub.infrastructure.observability.logging import get_logger
from parcelhub.models.api.parcel_response import ParcelEventLogResponse, ParcelEventLogsResponse
from parcelhub.models.api.shopee_request import AddTrackingRequest, ShopeeProxyRequest
from parcelhub.models.api.shopee_response import (
    AddTrackingResponse,
    ProcessedParcelResponse,
    ShopeeUpdateResponse,
)
from parcelhub.models.api.upload_response import UploadJobStatusResponse, UploadSubmitResponse

logger = get_logger(__name__)

router = APIRouter(tags=["reconciliation"])


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message, **extra})


async def _read_upload(file: UploadFile) -> str:
    raw = await file.read()
    # Portal exports are UTF-8, sometimes with a BOM
    return raw.decode("utf-8-sig", errors="replace")


async def _submit_upload(
    runner: UploadJobRunner, file: UploadFile | None, handover_id: int | None
):
    if file is None:
        return _error(status.HTTP_400_BAD_REQUEST, "No file provided")

    content = await _read_upload(file)
    file_name = file.filename or "upload.csv"

    try:
        job = await runner.submit(content, file_name, handover_id=handover_id)
    except UploadInputError as e:
        logger.warning("Upload rejected", file_name=file_name, handover_id=handover_id, reason=str(e))
        return _error(status.HTTP_400_BAD_REQUEST, str(e))
    except Exception as e:
        logger.error("Failed to start upload", file_name=file_name, error=str(e))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to start upload process")

    return UploadSubmitResponse(job_id=job.job_id, scope=job.scope, handover_id=handover_id)


async def _poll_upload(runner: UploadJobRunner, job_id: str | None, handover_id: int | None):
    if not job_id:
        return _error(status.HTTP_400_BAD_REQUEST, "Job ID is required")

    try:
        job = await runner.poll(job_id)
    except JobNotFoundError:
        return _error(status.HTTP_404_NOT_FOUND, "Job not found")

    # A job is only visible under the scope it was submitted with
    if job.handover_id != handover_id:
        return _error(status.HTTP_404_NOT_FOUND, "Job not found")

    return UploadJobStatusResponse.from_domain(job)


@router.post("/upload-updates", response_model=UploadSubmitResponse)
async def upload_updates(
    file: UploadFile | None = File(None),
    runner: UploadJobRunner = Depends(get_upload_runner),
):
    """Start a global bulk status update from a CSV export."""
    return await _submit_upload(runner, file, handover_id=None)


@router.get("/upload-updates", response_model=UploadJobStatusResponse)
async def get_upload_status(
    job_id: str | None = Query(None, alias="jobId"),
    runner: UploadJobRunner = Depends(get_upload_runner),
):
    return await _poll_upload(runner, job_id, handover_id=None)


@router.post("/handovers/{handover_id}/upload-updates", response_model=UploadSubmitResponse)
async def upload_handover_updates(
    handover_id: int,
    file: UploadFile | None = File(None),
    runner: UploadJobRunner = Depends(get_upload_runner),
):
    """Start a bulk status update restricted to one handover's parcels."""
    return await _submit_upload(runner, file, handover_id=handover_id)


@router.get("/handovers/{handover_id}/upload-updates", response_model=UploadJobStatusResponse)
async def get_handover_upload_status(
    handover_id: int,
    job_id: str | None = Query(None, alias="jobId"),
    runner: UploadJobRunner = Depends(get_upload_runner),
):
    return await _poll_upload(runner, job_id, handover_id=handover_id)


@router.post("/shopee/update-parcels", response_model=ShopeeUpdateResponse)
async def update_parcels_from_shopee(
    request: ShopeeProxyRequest,
    client: ShopeeFleetClient = Depends(get_shopee_client),
    store=Depends(get_parcel_store),
):
    """
    Proxy a captured fleet API status query and apply the shipments it returns.

    Upstream failures are returned with the upstream status code;
    isAuthError tells the caller to refresh the portal session rather
    than retry.
    """
    try:
        payload = await client.proxy(request.url, request.method, request.headers, request.data)
    except ShopeeProxyNotAllowedError as e:
        return _error(status.HTTP_400_BAD_REQUEST, str(e))
    except ShopeeApiError as e:
        return _error(
            e.status_code or status.HTTP_502_BAD_GATEWAY,
            str(e),
            isAuthError=e.is_auth_error,
            details=e.details,
        )
    except httpx.RequestError as e:
        logger.error("Shopee API unreachable", error=str(e))
        return _error(status.HTTP_502_BAD_GATEWAY, "Failed to reach external API")

    try:
        adapter = ShopeeUpdateAdapter(store, default_actor=settings.SHOPEE_DEFAULT_ACTOR)
        result = await adapter.apply(payload)
    except Exception as e:
        logger.error("Failed to apply Shopee response", error=str(e))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to process update request")

    return ShopeeUpdateResponse(
        message=f"Successfully processed API response. Updated {result.updated_count} parcels.",
        updated_count=result.updated_count,
        total_found=result.total_found,
        processed_parcels=[ProcessedParcelResponse(**p.to_dict()) for p in result.processed_parcels],
        api_response=result.api_response,
    )


@router.post("/shopee/handovers/{handover_id}/add-tracking", response_model=AddTrackingResponse)
async def add_tracking_to_handover(
    handover_id: int,
    request: AddTrackingRequest,
    store=Depends(get_parcel_store),
):
    try:
        result = await HandoverIntakeService(store).add_tracking(handover_id, request.tracking_numbers)
    except HandoverNotFoundError as e:
        return _error(status.HTTP_404_NOT_FOUND, str(e))
    except Exception as e:
        logger.error("Failed to add tracking numbers", handover_id=handover_id, error=str(e))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to add tracking numbers to handover")

    return AddTrackingResponse(
        added_count=result.added_count,
        duplicates_skipped=result.duplicates_skipped,
        internal_duplicates=result.internal_duplicates,
        database_duplicates=result.database_duplicates,
        message=result.message,
    )


@router.get("/parcels/{tracking_number}/event-logs", response_model=ParcelEventLogsResponse)
async def get_parcel_event_logs(tracking_number: str, store=Depends(get_parcel_store)):
    """Status transitions recorded for one parcel, newest first."""
    try:
        entries = await store.list_event_logs(tracking_number)
    except Exception as e:
        logger.error("Failed to fetch event logs", tracking_number=tracking_number, error=str(e))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch parcel event logs")

    return ParcelEventLogsResponse(
        data=[
            ParcelEventLogResponse(
                id=entry.id,
                tracking_number=entry.tracking_number,
                updated_by=entry.updated_by,
                from_status=entry.from_status,
                new_status=entry.new_status,
                created_at=entry.created_at,
            )
            for entry in entries
        ]
    )
