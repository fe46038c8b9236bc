"""
Background runner for bulk CSV status uploads.

submit() validates the upload, registers a job (processing, 0%) and spawns
a detached asyncio task, returning before any row is reconciled. The task
parses the file, reconciles rows one at a time, reports progress to the
job store and finishes the job as completed or failed. The job store is
the only channel back to pollers.

Rows are processed sequentially: progress stays monotonic, load on the
parcel store stays bounded, and event-log entries are appended in file
order. Row-level store errors are counted and skipped; already-applied
rows are never rolled back.
"""

from __future__ import annotations

import asyncio
import functools
import math
from dataclasses import dataclass, field

import structlog

from parcelhub.features.reconciliation.engine.reconcile import Reconciler, ReconcileStatus
from parcelhub.features.reconciliation.jobs.job_store import (
    JOB_COMPLETED,
    JOB_FAILED,
    JobNotFoundError,
    JobStore,
    new_job_id,
)
from parcelhub.features.reconciliation.parsing.csv_parser import parse_update_csv, split_lines
from parcelhub.features.reconciliation.repository.parcel_repository import ParcelStore
from parcelhub.infrastructure.observability.logging import get_logger
from parcelhub.models.domain.job_domain import UploadJob, UploadJobResult

logger = get_logger(__name__)

NOT_FOUND_SAMPLE_SIZE = 5

PROGRESS_PARSED = 10
PROGRESS_LOOP_END = 95

MISSING_ROWS_ERROR = "CSV file must contain headers and at least one data row"
GENERIC_FAILURE_ERROR = "Failed to process CSV file"


class UploadInputError(ValueError):
    """Upload rejected before a job was created."""


@dataclass(slots=True)
class _BatchCounters:
    updated: int = 0
    not_found: int = 0
    errors: int = 0
    processed: int = 0
    sample_not_found: list[str] = field(default_factory=list)


def export_marker_for(file_name: str, handover_id: int | None) -> tuple[str, str]:
    """Export name and directory recorded for a finished upload."""
    if handover_id is None:
        return f"{file_name} - Global Update", "uploads/global/"
    return f"{file_name} - Handover {handover_id}", f"uploads/handover_{handover_id}/"


def progress_interval(total: int, target_updates: int) -> int:
    return max(1, math.ceil(total / max(1, target_updates)))


def loop_progress(index: int, total: int) -> int:
    """Map the (0-based) row index into the PROGRESS_PARSED..PROGRESS_LOOP_END band."""
    span = PROGRESS_LOOP_END - PROGRESS_PARSED
    return PROGRESS_PARSED + math.floor(((index + 1) / total) * span)


class UploadJobRunner:
    def __init__(
        self,
        store: ParcelStore,
        job_store: JobStore,
        *,
        default_updated_by: str = "CSV Upload",
        progress_updates: int = 15,
    ):
        self.store = store
        self.job_store = job_store
        self.reconciler = Reconciler(store, default_updated_by=default_updated_by)
        self.progress_updates = progress_updates
        self._tasks: dict[str, asyncio.Task] = {}

    async def submit(
        self, content: str, file_name: str, handover_id: int | None = None
    ) -> UploadJob:
        """
        Validate the upload, register a job and start it in the background.

        Raises:
            UploadInputError: empty content or no data rows; no job exists
        """
        if not content or not content.strip():
            raise UploadInputError("No file content provided")
        if len(split_lines(content)) < 2:
            raise UploadInputError(MISSING_ROWS_ERROR)

        job = await self.job_store.create(new_job_id(), handover_id=handover_id, file_name=file_name)
        logger.info(
            "Upload job submitted",
            job_id=job.job_id,
            scope=job.scope,
            handover_id=handover_id,
            file_name=file_name,
        )

        task = asyncio.create_task(self.run(job.job_id, content, file_name, handover_id))
        self._tasks[job.job_id] = task
        task.add_done_callback(functools.partial(self._on_task_done, job.job_id))
        return job

    def _on_task_done(self, job_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(job_id, None)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            # run() could not even record the failure, e.g. the job store is down
            logger.error(
                "Upload job task crashed, job left unfinished",
                job_id=job_id,
                error=str(error),
                error_type=type(error).__name__,
            )

    async def poll(self, job_id: str) -> UploadJob:
        job = await self.job_store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def wait_for_idle(self) -> None:
        """Wait for every upload task spawned so far to finish."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def run(
        self, job_id: str, content: str, file_name: str, handover_id: int | None = None
    ) -> UploadJob:
        with structlog.contextvars.bound_contextvars(job_id=job_id, handover_id=handover_id):
            try:
                return await self._run(job_id, content, file_name, handover_id)
            except Exception as e:
                logger.exception("Upload job failed", error=str(e))
                current = await self.job_store.get(job_id)
                if current is not None and current.is_terminal:
                    return current
                return await self.job_store.set_terminal(
                    job_id, JOB_FAILED, error=GENERIC_FAILURE_ERROR
                )

    async def _run(
        self, job_id: str, content: str, file_name: str, handover_id: int | None
    ) -> UploadJob:
        parsed = parse_update_csv(content)
        if not parsed.has_data_rows:
            logger.warning("Upload rejected, no data rows", line_count=parsed.line_count)
            return await self.job_store.set_terminal(job_id, JOB_FAILED, error=MISSING_ROWS_ERROR)

        logger.info(
            "Upload parsed",
            headers=parsed.headers,
            columns=parsed.columns.as_dict(),
            record_count=len(parsed.records),
        )
        await self.job_store.update_progress(job_id, PROGRESS_PARSED)

        counters = await self._reconcile_all(job_id, parsed.records, handover_id)

        export_name, export_dir = export_marker_for(file_name, handover_id)
        export = await self.store.create_export(export_name, export_dir)

        result = UploadJobResult(
            updated_count=counters.updated,
            not_found_count=counters.not_found,
            error_count=counters.errors,
            total_processed=counters.processed,
            sample_not_found=counters.sample_not_found,
            export_id=export.id,
            export_name=export.export_name,
            scope="global" if handover_id is None else "handover",
            handover_id=handover_id,
        )

        logger.info(
            "Upload job completed",
            updated_count=counters.updated,
            not_found_count=counters.not_found,
            error_count=counters.errors,
            total_processed=counters.processed,
            sample_not_found=counters.sample_not_found,
        )
        return await self.job_store.set_terminal(job_id, JOB_COMPLETED, result=result)

    async def _reconcile_all(self, job_id: str, records, handover_id: int | None) -> _BatchCounters:
        counters = _BatchCounters()
        total = len(records)
        interval = progress_interval(total, self.progress_updates)

        for index, record in enumerate(records):
            counters.processed += 1
            try:
                outcome = await self.reconciler.apply(record, handover_id)
            except Exception as e:
                counters.errors += 1
                logger.error(
                    "Row update failed, skipping",
                    tracking_number=record.tracking_number,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                # One incoming record counts once, however many stored parcels it touched
                if outcome.status is ReconcileStatus.UPDATED and outcome.rows_updated > 0:
                    counters.updated += 1
                elif outcome.status is ReconcileStatus.NOT_FOUND:
                    counters.not_found += 1
                    if len(counters.sample_not_found) < NOT_FOUND_SAMPLE_SIZE:
                        counters.sample_not_found.append(outcome.tracking_number)

            if index % interval == 0 or index == total - 1:
                await self.job_store.update_progress(job_id, loop_progress(index, total))

        return counters
