"""
Domain models for parcels, handovers and the reconciliation audit trail.

These dataclasses mirror the rows of the parcel store and the shapes the
reconciliation engine passes around. They carry no persistence logic so
repositories, services and routes can share them.
"""

from dataclasses import dataclass
from datetime import date, datetime


@dataclass(slots=True)
class ParcelRecord:
    """A parcels row. tracking_number is upper-case by convention."""

    tracking_number: str
    status: str | None = None
    direction: str | None = None  # "forward" or "reverse"
    sub_direction: str | None = None  # "forward" or "reverse"
    updated_by: str | None = None
    updated_at: datetime | None = None
    port_code: str | None = None
    package_type: str | None = None
    handover_id: int | None = None  # None until assigned to a handover
    id: int | None = None


@dataclass(slots=True)
class ParcelEventLogEntry:
    """Append-only record of one observed status transition."""

    tracking_number: str
    updated_by: str
    from_status: str
    new_status: str
    created_at: datetime | None = None
    id: int | None = None


@dataclass(slots=True)
class HandoverRecord:
    """A batch of parcels exchanged with one platform on one date."""

    id: int
    file_name: str
    handover_date: date | None
    status: str  # "pending" or "done"
    platform: str
    quantity: int = 0


@dataclass(slots=True)
class ExportRecord:
    """Marker written once per bulk upload."""

    id: int
    export_name: str
    export_dir: str


@dataclass(slots=True)
class CourierRecord:
    """Reference roster entry used for vehicle-type lookup."""

    id: int
    name: str
    type: str  # "2w", "3w" or "4w"
    is_lazada: bool = False
    is_shopee: bool = False
    laz_rate: float | None = None
    shopee_rate: float | None = None


@dataclass(slots=True)
class UpdateRecord:
    """
    One incoming update, from a CSV row or a platform API item.

    Fields left as None were absent from the source and must not be
    written to the parcel.
    """

    tracking_number: str
    status: str | None = None
    direction: str | None = None  # raw token, mapped by the engine
    updated_by: str | None = None
    updated_at: str | datetime | None = None  # raw value, parsed by the engine
    port_code: str | None = None
    package_type: str | None = None
