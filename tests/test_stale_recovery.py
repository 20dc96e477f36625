from storyjobs.v1.core.exceptions import ConflictError
from storyjobs.v1.jobs.lifecycle import JobOutcome
from storyjobs.v1.jobs.models import JobStatus
from storyjobs.v1.jobs.retry import Decision

import pytest

WORKER = "worker-1"


async def _processing_job(lifecycle, params):
    record = await lifecycle.create("image", params)
    return await lifecycle.claim(record.id, WORKER)


async def test_fresh_claims_are_left_alone(lifecycle, clock, image_params):
    record = await _processing_job(lifecycle, image_params)
    clock.advance(seconds=60)

    assert await lifecycle.recover_stale() == []
    assert (await lifecycle.get(record.id)).status == JobStatus.PROCESSING.value


async def test_stale_claim_is_failed_and_requeued(lifecycle, clock, image_params):
    record = await _processing_job(lifecycle, image_params)
    clock.advance(seconds=121)

    decisions = await lifecycle.recover_stale()

    assert len(decisions) == 1
    assert decisions[0].decision == Decision.RETRY
    recovered = await lifecycle.get(record.id)
    assert recovered.status == JobStatus.PENDING.value
    assert recovered.retry_count == 1
    assert recovered.locked_by is None
    assert recovered.heartbeat_at is None


async def test_heartbeat_keeps_claim_alive(lifecycle, clock, image_params):
    record = await _processing_job(lifecycle, image_params)
    clock.advance(seconds=100)
    await lifecycle.heartbeat(record.id, WORKER)
    clock.advance(seconds=100)

    assert await lifecycle.recover_stale() == []


async def test_stale_claim_without_budget_stays_failed(lifecycle, store, clock, image_params):
    record = await _processing_job(lifecycle, image_params)
    await store.update_where(record.id, JobStatus.PROCESSING, {"max_retries": 0})
    clock.advance(seconds=300)

    decisions = await lifecycle.recover_stale()

    assert decisions[0].decision == Decision.EXHAUST
    stored = await lifecycle.get(record.id)
    assert stored.status == JobStatus.FAILED.value
    assert stored.error_message == "Worker lease expired after 120s"


async def test_late_result_from_expired_owner_is_rejected(lifecycle, clock, image_params):
    record = await _processing_job(lifecycle, image_params)
    clock.advance(seconds=200)
    await lifecycle.recover_stale()

    with pytest.raises(ConflictError):
        await lifecycle.finalize(record.id, JobOutcome.completed("late"), owner_id=WORKER)

    assert (await lifecycle.get(record.id)).result_ref is None
