"""
Shopee API request models.
Used by the Shopee routes for input validation.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ShopeeProxyRequest(BaseModel):
    """A status query captured from the Shopee fleet portal."""

    url: str = Field(..., min_length=1, description="Fleet API URL to call")
    method: str | None = Field(default="GET", description="HTTP method")
    headers: dict[str, str] | None = Field(
        default=None, description="Portal session headers, forwarded as-is"
    )
    data: Any = Field(default=None, description="JSON body to forward")


class AddTrackingRequest(BaseModel):
    """Tracking numbers to attach to a Shopee handover."""

    model_config = ConfigDict(populate_by_name=True)

    tracking_numbers: list[str] = Field(
        ..., min_length=1, alias="trackingNumbers", description="Tracking numbers, any case"
    )
