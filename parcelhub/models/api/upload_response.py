"""
Bulk upload API response models.
Used by the upload routes for output formatting; field names are
camelCase on the wire.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from parcelhub.models.domain.job_domain import UploadJob, UploadJobResult


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UploadSubmitResponse(_CamelModel):
    """Returned as soon as the upload job is registered."""

    success: bool = Field(default=True, description="Whether the job was started")
    job_id: str = Field(..., alias="jobId", description="Id to poll with")
    scope: str = Field(..., description="global or handover")
    handover_id: int | None = Field(None, alias="handoverId", description="Handover the job is bound to")
    message: str = Field(default="Upload started in background", description="Status message")


class UploadResultResponse(_CamelModel):
    """Counters of a completed upload job."""

    updated_count: int = Field(..., alias="updatedCount", description="Parcel rows changed")
    not_found_count: int = Field(..., alias="notFoundCount", description="Records with no matching parcel")
    error_count: int = Field(0, alias="errorCount", description="Records skipped after a store error")
    total_processed: int = Field(..., alias="totalProcessed", description="Data rows read")
    sample_not_found: list[str] = Field(
        default_factory=list, alias="sampleNotFound", description="First unmatched tracking numbers"
    )
    export_id: int | None = Field(None, alias="exportId", description="Export marker id")
    export_name: str | None = Field(None, alias="exportName", description="Export marker name")
    scope: str = Field(..., description="global or handover")
    handover_id: int | None = Field(None, alias="handoverId", description="Handover the job was bound to")

    @classmethod
    def from_domain(cls, result: UploadJobResult) -> "UploadResultResponse":
        return cls(
            updated_count=result.updated_count,
            not_found_count=result.not_found_count,
            error_count=result.error_count,
            total_processed=result.total_processed,
            sample_not_found=list(result.sample_not_found),
            export_id=result.export_id,
            export_name=result.export_name,
            scope=result.scope,
            handover_id=result.handover_id,
        )


class UploadJobStatusResponse(_CamelModel):
    """Poll response; result is set once completed, error once failed."""

    success: bool = Field(default=True, description="Whether the job was found")
    job_id: str = Field(..., alias="jobId", description="Job id")
    status: str = Field(..., description="processing, completed or failed")
    progress: int = Field(..., ge=0, le=100, description="Percent complete")
    scope: str = Field(..., description="global or handover")
    handover_id: int | None = Field(None, alias="handoverId", description="Handover the job is bound to")
    result: UploadResultResponse | None = Field(None, description="Counters, once completed")
    error: str | None = Field(None, description="Failure message, once failed")
    start_time: datetime = Field(..., alias="startTime", description="When the job was submitted")

    @classmethod
    def from_domain(cls, job: UploadJob) -> "UploadJobStatusResponse":
        return cls(
            job_id=job.job_id,
            status=job.status,
            progress=job.progress,
            scope=job.scope,
            handover_id=job.handover_id,
            result=UploadResultResponse.from_domain(job.result) if job.result else None,
            error=job.error,
            start_time=job.start_time,
        )
