from storyjobs.v1.jobs.lifecycle import JobOutcome
from storyjobs.v1.jobs.lock import UNKNOWN_OWNER, ProcessingLock
from storyjobs.v1.jobs.models import JobStatus


async def test_acquire_when_idle(store):
    result = await ProcessingLock(store).acquire("sweeper-1")

    assert result.locked is False
    assert result.acquired is True
    assert result.owner == "sweeper-1"
    assert result.to_dict() == {
        "locked": False,
        "acquired": True,
        "released": False,
        "owner": "sweeper-1",
    }


async def test_held_while_any_job_processing(store, lifecycle, image_params):
    record = await lifecycle.create("image", image_params)
    await lifecycle.claim(record.id, "worker-7")

    result = await ProcessingLock(store).acquire("sweeper-1")

    assert result.locked is True
    assert result.acquired is False
    assert result.owner == "worker-7"
    assert result.reason == "Jobs are currently being processed"


async def test_unknown_owner_reported(store, lifecycle, image_params):
    record = await lifecycle.create("image", image_params)
    await lifecycle.claim(record.id, "worker-7")
    await store.update_where(record.id, JobStatus.PROCESSING, {"locked_by": None})

    result = await ProcessingLock(store).acquire("sweeper-1")

    assert result.owner == UNKNOWN_OWNER


async def test_lock_frees_itself_when_work_finishes(store, lifecycle, image_params):
    lock = ProcessingLock(store)
    record = await lifecycle.create("image", image_params)
    await lifecycle.claim(record.id, "worker-7")
    assert (await lock.acquire("sweeper-1")).locked

    await lifecycle.finalize(record.id, JobOutcome.completed("done"))

    assert (await lock.acquire("sweeper-1")).acquired


async def test_release_is_acknowledged(store):
    result = await ProcessingLock(store).release("sweeper-1")

    assert result.released is True
    assert result.to_dict()["owner"] == "sweeper-1"
