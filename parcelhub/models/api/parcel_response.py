"""
Parcel API response models.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class ParcelEventLogResponse(BaseModel):
    """One status transition in a parcel's audit trail."""

    id: int | None = Field(None, description="Event log id")
    tracking_number: str = Field(..., description="Parcel tracking number")
    updated_by: str = Field(..., description="Actor that reported the change")
    from_status: str = Field(..., description="Status before the update")
    new_status: str = Field(..., description="Status after the update")
    created_at: datetime | None = Field(None, description="When the change was recorded")


class ParcelEventLogsResponse(BaseModel):
    success: bool = Field(default=True)
    data: list[ParcelEventLogResponse] = Field(default_factory=list, description="Newest first")
