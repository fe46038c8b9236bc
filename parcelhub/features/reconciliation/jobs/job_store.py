"""
Upload job stores.

Jobs are written only by the background task that owns them; pollers only
read. Every write replaces the whole immutable UploadJob snapshot, so a
reader never sees a job with a half-applied update.

Two backends share the JobStore protocol:
- InMemoryJobStore: per-process dict guarded by an asyncio.Lock.
- RedisJobStore: JSON snapshots in Redis, expiry delegated to key TTLs so
  several API instances can poll the same job.
"""

from __future__ import annotations

import asyncio
import json
import secrets
import time
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Protocol

from parcelhub.infrastructure.observability.logging import get_logger
from parcelhub.models.domain.job_domain import (
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PROCESSING,
    UploadJob,
    UploadJobResult,
)

logger = get_logger(__name__)

DEFAULT_RETENTION_SECONDS = 3600

# Upper bound for a processing job left behind by a crashed worker
PROCESSING_TTL_SECONDS = 24 * 3600


class JobNotFoundError(LookupError):
    """Job id never existed or its retention window has passed."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class JobStateError(RuntimeError):
    """Illegal write to a job (terminal job, unknown status, ...)."""


def new_job_id() -> str:
    """Millisecond timestamp plus a random suffix; unique enough across submissions."""
    return f"{int(time.time() * 1000)}{secrets.token_hex(5)}"


class JobStore(Protocol):
    async def create(
        self, job_id: str, *, handover_id: int | None = None, file_name: str | None = None
    ) -> UploadJob: ...

    async def get(self, job_id: str) -> UploadJob | None: ...

    async def update_progress(self, job_id: str, progress: int) -> UploadJob: ...

    async def set_terminal(
        self,
        job_id: str,
        status: str,
        *,
        result: UploadJobResult | None = None,
        error: str | None = None,
    ) -> UploadJob: ...

    async def sweep_expired(self) -> int: ...


def _advance(job: UploadJob, progress: int) -> UploadJob:
    if job.is_terminal:
        raise JobStateError(f"Job {job.job_id} is already {job.status}")
    # Progress never moves backwards and 100 is reserved for completion
    clamped = max(job.progress, min(int(progress), 99))
    return replace(job, progress=clamped)


def _finish(
    job: UploadJob, status: str, result: UploadJobResult | None, error: str | None
) -> UploadJob:
    if job.is_terminal:
        raise JobStateError(f"Job {job.job_id} is already {job.status}")
    if status == JOB_COMPLETED:
        return replace(
            job, status=status, progress=100, result=result, finished_at=datetime.now(UTC)
        )
    if status == JOB_FAILED:
        return replace(job, status=status, error=error, finished_at=datetime.now(UTC))
    raise JobStateError(f"Not a terminal status: {status}")


class InMemoryJobStore:
    """Process-local job table."""

    def __init__(self, retention_seconds: int = DEFAULT_RETENTION_SECONDS):
        self.retention = timedelta(seconds=retention_seconds)
        self._jobs: dict[str, UploadJob] = {}
        self._lock = asyncio.Lock()

    def _expired(self, job: UploadJob, now: datetime) -> bool:
        return job.finished_at is not None and now - job.finished_at >= self.retention

    async def create(
        self, job_id: str, *, handover_id: int | None = None, file_name: str | None = None
    ) -> UploadJob:
        job = UploadJob(job_id=job_id, handover_id=handover_id, file_name=file_name)
        async with self._lock:
            if job_id in self._jobs:
                raise JobStateError(f"Duplicate job id: {job_id}")
            self._jobs[job_id] = job
        return job

    async def get(self, job_id: str) -> UploadJob | None:
        job = self._jobs.get(job_id)
        if job is None or self._expired(job, datetime.now(UTC)):
            return None
        return job

    async def _require(self, job_id: str) -> UploadJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def update_progress(self, job_id: str, progress: int) -> UploadJob:
        async with self._lock:
            job = _advance(await self._require(job_id), progress)
            self._jobs[job_id] = job
        return job

    async def set_terminal(
        self,
        job_id: str,
        status: str,
        *,
        result: UploadJobResult | None = None,
        error: str | None = None,
    ) -> UploadJob:
        async with self._lock:
            job = _finish(await self._require(job_id), status, result, error)
            self._jobs[job_id] = job
        return job

    async def sweep_expired(self) -> int:
        now = datetime.now(UTC)
        async with self._lock:
            expired = [job_id for job_id, job in self._jobs.items() if self._expired(job, now)]
            for job_id in expired:
                del self._jobs[job_id]

        if expired:
            logger.info("Expired upload jobs removed", count=len(expired))
        return len(expired)


class RedisJobStore:
    """
    Job snapshots stored as JSON under "upload_job:<id>".

    Terminal snapshots are written with TTL = retention, so expiry needs no
    sweeping; sweep_expired() is a no-op kept for interface parity.
    """

    KEY_PREFIX = "upload_job:"

    def __init__(self, redis_client, retention_seconds: int = DEFAULT_RETENTION_SECONDS):
        self.redis = redis_client
        self.retention_seconds = retention_seconds

    def _key(self, job_id: str) -> str:
        return f"{self.KEY_PREFIX}{job_id}"

    async def _write(self, job: UploadJob) -> None:
        ttl = self.retention_seconds if job.is_terminal else PROCESSING_TTL_SECONDS
        ok = await self.redis.set_with_ttl(self._key(job.job_id), json.dumps(job.to_dict()), ttl)
        if not ok:
            raise JobStateError(f"Failed to persist job {job.job_id}")

    async def create(
        self, job_id: str, *, handover_id: int | None = None, file_name: str | None = None
    ) -> UploadJob:
        job = UploadJob(job_id=job_id, handover_id=handover_id, file_name=file_name)
        await self._write(job)
        return job

    async def get(self, job_id: str) -> UploadJob | None:
        raw = await self.redis.get(self._key(job_id))
        if not raw:
            return None
        job = UploadJob.from_dict(json.loads(raw))
        if job.finished_at is not None:
            age = (datetime.now(UTC) - job.finished_at).total_seconds()
            if age >= self.retention_seconds:
                return None
        return job

    async def _require(self, job_id: str) -> UploadJob:
        job = await self.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def update_progress(self, job_id: str, progress: int) -> UploadJob:
        # Single writer per job, so read-modify-write needs no lock
        job = _advance(await self._require(job_id), progress)
        await self._write(job)
        return job

    async def set_terminal(
        self,
        job_id: str,
        status: str,
        *,
        result: UploadJobResult | None = None,
        error: str | None = None,
    ) -> UploadJob:
        job = _finish(await self._require(job_id), status, result, error)
        await self._write(job)
        return job

    async def sweep_expired(self) -> int:
        return 0


def build_job_store(config: dict, redis_client=None) -> JobStore:
    """Pick the job store backend from settings.get_job_store_config()."""
    retention = config.get("retention_seconds", DEFAULT_RETENTION_SECONDS)
    if config.get("backend") == "redis":
        if redis_client is None:
            raise ValueError("Redis job store requires a redis client")
        logger.info("Using Redis job store", retention_seconds=retention)
        return RedisJobStore(redis_client, retention_seconds=retention)

    logger.info("Using in-memory job store", retention_seconds=retention)
    return InMemoryJobStore(retention_seconds=retention)


__all__ = [
    "JOB_COMPLETED",
    "JOB_FAILED",
    "JOB_PROCESSING",
    "InMemoryJobStore",
    "JobNotFoundError",
    "JobStateError",
    "JobStore",
    "RedisJobStore",
    "build_job_store",
    "new_job_id",
]
