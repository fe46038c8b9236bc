import json
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from parcelhub.features.reconciliation.jobs.job_store import (
    PROCESSING_TTL_SECONDS,
    InMemoryJobStore,
    JobNotFoundError,
    JobStateError,
    RedisJobStore,
    build_job_store,
    new_job_id,
)
from parcelhub.models.domain.job_domain import JOB_COMPLETED, JOB_FAILED, UploadJobResult

RESULT = UploadJobResult(
    updated_count=1,
    not_found_count=0,
    error_count=0,
    total_processed=1,
    sample_not_found=[],
    export_id=1,
    export_name="f.csv - Global Update",
    scope="global",
)


def test_new_job_ids_are_unique():
    ids = {new_job_id() for _ in range(200)}
    assert len(ids) == 200


@pytest.mark.asyncio
async def test_create_starts_processing_at_zero(job_store):
    job = await job_store.create("job-1", file_name="f.csv")

    assert job.status == "processing"
    assert job.progress == 0
    assert job.scope == "global"
    assert (await job_store.get("job-1")) == job


@pytest.mark.asyncio
async def test_duplicate_job_id_rejected(job_store):
    await job_store.create("job-1")
    with pytest.raises(JobStateError):
        await job_store.create("job-1")


@pytest.mark.asyncio
async def test_progress_never_decreases_and_stays_below_100(job_store):
    await job_store.create("job-1")

    await job_store.update_progress("job-1", 40)
    assert (await job_store.update_progress("job-1", 20)).progress == 40
    assert (await job_store.update_progress("job-1", 150)).progress == 99


@pytest.mark.asyncio
async def test_completed_job_is_immutable(job_store):
    await job_store.create("job-1")
    done = await job_store.set_terminal("job-1", JOB_COMPLETED, result=RESULT)

    assert done.progress == 100
    assert done.result == RESULT
    assert done.finished_at is not None

    with pytest.raises(JobStateError):
        await job_store.update_progress("job-1", 50)
    with pytest.raises(JobStateError):
        await job_store.set_terminal("job-1", JOB_FAILED, error="late")


@pytest.mark.asyncio
async def test_failed_job_keeps_progress_and_error(job_store):
    await job_store.create("job-1")
    await job_store.update_progress("job-1", 30)

    failed = await job_store.set_terminal("job-1", JOB_FAILED, error="boom")

    assert failed.status == "failed"
    assert failed.error == "boom"
    assert failed.progress == 30


@pytest.mark.asyncio
async def test_unknown_job_write_raises_not_found(job_store):
    with pytest.raises(JobNotFoundError):
        await job_store.update_progress("missing", 10)
    assert await job_store.get("missing") is None


@pytest.mark.asyncio
async def test_expired_job_reads_as_missing_and_is_swept():
    store = InMemoryJobStore(retention_seconds=60)
    await store.create("old")
    await store.create("fresh")
    await store.set_terminal("old", JOB_FAILED, error="x")
    await store.set_terminal("fresh", JOB_FAILED, error="x")

    # Backdate the finished job past the retention window
    store._jobs["old"] = replace(
        store._jobs["old"], finished_at=datetime.now(UTC) - timedelta(seconds=61)
    )

    assert await store.get("old") is None
    assert await store.get("fresh") is not None
    assert await store.sweep_expired() == 1
    assert "old" not in store._jobs


@pytest.mark.asyncio
async def test_processing_jobs_are_never_swept():
    store = InMemoryJobStore(retention_seconds=0)
    await store.create("running")

    assert await store.sweep_expired() == 0
    assert await store.get("running") is not None


@pytest.mark.asyncio
async def test_redis_store_round_trips_job_with_ttls(fake_redis):
    store = RedisJobStore(fake_redis, retention_seconds=3600)

    await store.create("job-1", handover_id=7, file_name="f.csv")
    assert fake_redis.ttls["upload_job:job-1"] == PROCESSING_TTL_SECONDS

    await store.update_progress("job-1", 55)
    done = await store.set_terminal("job-1", JOB_COMPLETED, result=RESULT)

    assert fake_redis.ttls["upload_job:job-1"] == 3600
    loaded = await store.get("job-1")
    assert loaded == done
    assert loaded.handover_id == 7
    assert loaded.result.export_name == "f.csv - Global Update"
    assert json.loads(fake_redis.store["upload_job:job-1"])["status"] == "completed"


@pytest.mark.asyncio
async def test_redis_store_treats_stale_snapshot_as_missing(fake_redis):
    store = RedisJobStore(fake_redis, retention_seconds=60)
    await store.create("job-1")
    job = await store.set_terminal("job-1", JOB_FAILED, error="x")

    stale = replace(job, finished_at=datetime.now(UTC) - timedelta(seconds=120))
    fake_redis.store["upload_job:job-1"] = json.dumps(stale.to_dict())

    assert await store.get("job-1") is None


def test_build_job_store_selects_backend(fake_redis):
    assert isinstance(build_job_store({"backend": "memory"}), InMemoryJobStore)
    assert isinstance(build_job_store({"backend": "redis"}, redis_client=fake_redis), RedisJobStore)
    with pytest.raises(ValueError):
        build_job_store({"backend": "redis"})
