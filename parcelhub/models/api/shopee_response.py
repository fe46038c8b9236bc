"""
Shopee API response models.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProcessedParcelResponse(BaseModel):
    tracking_number: str = Field(..., description="Upper-cased shipment id")
    status: str | None = Field(None, description="Mapped status name")
    updated_by: str | None = Field(None, description="Driver name or fallback actor")
    port_code: str | None = Field(None, description="Current station")
    package_type: str | None = Field(None, description="Bulky or Pouch")
    found: bool = Field(False, description="A parcel matched the shipment id")
    updated: bool = Field(False, description="At least one parcel row changed")
    error: str | None = Field(None, description="Store error for this shipment")


class ShopeeUpdateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(default=True)
    message: str = Field(..., description="Summary message")
    updated_count: int = Field(..., alias="updatedCount", description="Parcel rows changed")
    total_found: int = Field(..., alias="totalFound", description="Items in the upstream response")
    processed_parcels: list[ProcessedParcelResponse] = Field(
        default_factory=list, alias="processedParcels", description="Per-shipment outcome"
    )
    api_response: Any = Field(None, alias="apiResponse", description="Raw upstream body")


class AddTrackingResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(default=True)
    added_count: int = Field(..., alias="addedCount")
    duplicates_skipped: int = Field(..., alias="duplicatesSkipped")
    internal_duplicates: int = Field(..., alias="internalDuplicates")
    database_duplicates: int = Field(..., alias="databaseDuplicates")
    message: str
