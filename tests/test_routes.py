from fastapi.testclient import TestClient
from httpx import AsyncClient

WORKER = "worker-1"


async def _start(client: AsyncClient, kind: str, params: dict, **kwargs) -> str:
    response = await client.post(f"/v1/jobs/{kind}/start", json=params, **kwargs)
    assert response.status_code == 200, response.text
    return response.json()["data"]["jobId"]


async def test_start_job(async_client: AsyncClient, image_params):
    response = await async_client.post(
        "/v1/jobs/image/start", json=image_params, headers={"X-User-ID": "user-9"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    data = body["data"]
    assert data["jobId"].startswith("job_")
    assert data["status"] == "pending"
    assert data["estimatedMinutes"] == 2
    assert data["estimatedCompletion"].startswith("2026-03-01T09:02:00")
    assert data["pollingUrl"] == f"http://jobs.test/v1/jobs/{data['jobId']}"


def test_start_unknown_kind(simple_client: TestClient, image_params):
    response = simple_client.post("/v1/jobs/video/start", json=image_params)

    assert response.status_code == 422
    body = response.json()
    assert body["ok"] is False
    assert body["error"]["message"] == "Unknown job kind: video"
    assert "X-Request-ID" in response.headers


def test_start_with_invalid_parameters(simple_client: TestClient):
    response = simple_client.post(
        "/v1/jobs/story/start", json={"title": "A", "story": "short"}
    )

    assert response.status_code == 422
    errors = response.json()["error"]["details"]["errors"]
    assert {"title", "story"} <= {error["field"] for error in errors}


def test_lock_rejects_unknown_action(simple_client: TestClient):
    response = simple_client.post(
        "/v1/jobs/lock", json={"processingId": "sweeper", "action": "steal"}
    )
    assert response.status_code == 422


async def test_status_of_pending_job(async_client: AsyncClient, image_params):
    job_id = await _start(async_client, "image", image_params)

    response = await async_client.get(f"/v1/jobs/{job_id}")

    assert response.status_code == 200
    assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"
    data = response.json()["data"]
    assert data["jobId"] == job_id
    assert data["status"] == "pending"
    assert data["progress"] == 0
    assert data["currentStep"] == "Initializing image generation"
    assert data["cacheable"] is False
    assert data["currentPhase"] is None


async def test_status_of_missing_job(async_client: AsyncClient):
    response = await async_client.get("/v1/jobs/job_0_nothing")

    assert response.status_code == 404
    assert response.json()["error"]["details"] == {"job_id": "job_0_nothing"}


async def test_worker_flow_over_http(async_client: AsyncClient, clock, image_params):
    job_id = await _start(async_client, "image", image_params)

    lock = await async_client.post(
        "/v1/jobs/lock", json={"processingId": WORKER, "action": "acquire"}
    )
    assert lock.json()["data"] == {
        "locked": False,
        "acquired": True,
        "released": False,
        "owner": WORKER,
    }

    claim = await async_client.post(f"/v1/jobs/{job_id}/claim", json={"ownerId": WORKER})
    assert claim.status_code == 200
    assert claim.json()["data"]["status"] == "processing"

    held = await async_client.post(
        "/v1/jobs/lock", json={"processingId": "sweeper-2", "action": "acquire"}
    )
    assert held.json()["data"]["locked"] is True
    assert held.json()["data"]["owner"] == WORKER

    clock.advance(seconds=15)
    progress = await async_client.post(
        f"/v1/jobs/{job_id}/progress",
        json={"ownerId": WORKER, "progress": 40, "currentStep": "Drawing"},
    )
    assert progress.status_code == 200

    status = (await async_client.get(f"/v1/jobs/{job_id}")).json()["data"]
    assert status["currentPhase"] == "Generating illustrations"
    assert status["estimatedTimeRemaining"] == 2
    assert status["currentStep"] == "Drawing"

    finalize = await async_client.post(
        f"/v1/jobs/{job_id}/finalize",
        params={"ownerId": WORKER},
        json={"outcome": "completed", "resultRef": "illustration_7", "resultData": {"w": 1024}},
    )
    assert finalize.status_code == 200

    response = await async_client.get(f"/v1/jobs/{job_id}")
    assert response.headers["Cache-Control"] == "public, max-age=3600"
    data = response.json()["data"]
    assert data["status"] == "completed"
    assert data["progress"] == 100
    assert data["result"] == {"resultRef": "illustration_7", "data": {"w": 1024}}
    assert data["processingTimeSeconds"] == 15
    assert data["cacheable"] is True

    release = await async_client.post(
        "/v1/jobs/lock", json={"processingId": WORKER, "action": "release"}
    )
    assert release.json()["data"] == {
        "locked": False,
        "acquired": False,
        "released": True,
        "owner": WORKER,
    }


async def test_conflicting_finalize_returns_409(async_client: AsyncClient, image_params):
    job_id = await _start(async_client, "image", image_params)
    await async_client.post(f"/v1/jobs/{job_id}/claim", json={"ownerId": WORKER})
    await async_client.post(
        f"/v1/jobs/{job_id}/finalize", json={"outcome": "failed", "errorMessage": "boom"}
    )

    response = await async_client.post(
        f"/v1/jobs/{job_id}/finalize", json={"outcome": "completed", "resultRef": "x"}
    )

    assert response.status_code == 409
    assert response.json()["ok"] is False


async def test_finalize_failed_requires_error(async_client: AsyncClient, image_params):
    job_id = await _start(async_client, "image", image_params)

    response = await async_client.post(
        f"/v1/jobs/{job_id}/finalize", json={"outcome": "failed"}
    )
    assert response.status_code == 422


async def test_second_claim_conflicts(async_client: AsyncClient, image_params):
    job_id = await _start(async_client, "image", image_params)
    await async_client.post(f"/v1/jobs/{job_id}/claim", json={"ownerId": WORKER})

    response = await async_client.post(f"/v1/jobs/{job_id}/claim", json={"ownerId": "w2"})

    assert response.status_code == 409
    assert response.json()["error"]["details"]["actual_status"] == "processing"


async def test_retry_endpoint(async_client: AsyncClient, image_params):
    job_id = await _start(async_client, "image", image_params)
    await async_client.post(f"/v1/jobs/{job_id}/claim", json={"ownerId": WORKER})
    await async_client.post(
        f"/v1/jobs/{job_id}/finalize", json={"outcome": "failed", "errorMessage": "boom"}
    )

    failed = (await async_client.get(f"/v1/jobs/{job_id}")).json()["data"]
    assert failed["error"] == "boom"
    assert failed["retryCount"] == 0
    assert failed["maxRetries"] == 3
    assert failed["retriesExhausted"] is False

    response = await async_client.post(f"/v1/jobs/{job_id}/retry")

    assert response.status_code == 200
    assert response.json()["data"] == {
        "jobId": job_id,
        "decision": "retry",
        "status": "pending",
        "retryCount": 1,
        "maxRetries": 3,
    }

    conflict = await async_client.post(f"/v1/jobs/{job_id}/retry")
    assert conflict.status_code == 409


async def test_cancel_endpoint(async_client: AsyncClient, image_params):
    job_id = await _start(async_client, "image", image_params)

    response = await async_client.post(f"/v1/jobs/{job_id}/cancel")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "cancelled"

    again = await async_client.post(f"/v1/jobs/{job_id}/cancel")
    assert again.status_code == 200

    status = await async_client.get(f"/v1/jobs/{job_id}")
    assert status.json()["data"]["currentStep"] == "Cancelled by user"
    assert status.headers["Cache-Control"] == "public, max-age=3600"


async def test_list_and_stats(async_client: AsyncClient, image_params, story_params):
    image_id = await _start(async_client, "image", image_params)
    await _start(async_client, "story", story_params)
    await async_client.post(f"/v1/jobs/{image_id}/cancel")

    listing = (await async_client.get("/v1/jobs", params={"kind": "image"})).json()["data"]
    assert listing["total"] == 1
    assert listing["jobs"][0]["id"] == image_id
    assert listing["jobs"][0]["status"] == "cancelled"
    assert listing["jobs"][0]["retryCount"] == 0
    assert listing["jobs"][0]["currentStep"] == "Cancelled by user"
    assert "current_step" not in listing["jobs"][0]

    pending = (await async_client.get("/v1/jobs", params={"status": "pending"})).json()["data"]
    assert pending["total"] == 1
    assert pending["jobs"][0]["kind"] == "story"

    stats = (await async_client.get("/v1/jobs/stats/overview")).json()["data"]
    assert stats["total"] == 2
    assert stats["pending"] == 1
    assert stats["cancelled"] == 1
    assert stats["byKind"] == {"image": 1, "story": 1}
    assert stats["queueDepth"] == 1
    assert stats["oldestPendingAt"].startswith("2026-03-01T09:00:00")
    assert stats["successRate"] == 0.0
    assert stats["averageProcessingSeconds"] is None


async def test_list_rejects_bad_paging(async_client: AsyncClient):
    response = await async_client.get("/v1/jobs", params={"limit": 0})
    assert response.status_code == 422
