"""
Upload job domain models.

Jobs are ephemeral: they live in the job store for the duration of a run
plus a fixed retention window and are never written to Postgres.
"""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

JOB_PROCESSING = "processing"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"

TERMINAL_STATUSES = frozenset({JOB_COMPLETED, JOB_FAILED})

SCOPE_GLOBAL = "global"
SCOPE_HANDOVER = "handover"


@dataclass(frozen=True, slots=True)
class UploadJobResult:
    updated_count: int
    not_found_count: int
    error_count: int
    total_processed: int
    sample_not_found: list[str]
    export_id: int | None
    export_name: str | None
    scope: str
    handover_id: int | None = None


@dataclass(frozen=True, slots=True)
class UploadJob:
    """
    Snapshot of one upload job.

    Snapshots are immutable; the store replaces the whole snapshot on every
    write so readers never observe a half-updated job.
    """

    job_id: str
    status: str = JOB_PROCESSING
    progress: int = 0
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    handover_id: int | None = None
    file_name: str | None = None
    result: UploadJobResult | None = None
    error: str | None = None
    finished_at: datetime | None = None

    @property
    def scope(self) -> str:
        return SCOPE_GLOBAL if self.handover_id is None else SCOPE_HANDOVER

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["start_time"] = self.start_time.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UploadJob":
        result = data.get("result")
        finished_at = data.get("finished_at")
        return cls(
            job_id=data["job_id"],
            status=data["status"],
            progress=int(data.get("progress", 0)),
            start_time=datetime.fromisoformat(data["start_time"]),
            handover_id=data.get("handover_id"),
            file_name=data.get("file_name"),
            result=UploadJobResult(**result) if result else None,
            error=data.get("error"),
            finished_at=datetime.fromisoformat(finished_at) if finished_at else None,
        )
