from httpx import AsyncClient


async def test_health_check_success(async_client: AsyncClient):
    """Test health check endpoint returns correct format."""
    response = await async_client.get("/v1/healthz")

    assert response.status_code == 200

    data = response.json()
    assert data["ok"] is True

    health_data = data["data"]
    assert health_data["ok"] is True
    assert health_data["version"] == "1.0.0"
    assert health_data["environment"] == "development"
    assert health_data["database"]["connected"] is True


async def test_health_check_response_structure(async_client: AsyncClient):
    """Test health check response envelope structure."""
    response = await async_client.get("/v1/healthz")

    data = response.json()
    for key in ["ok", "data", "message", "request_id"]:
        assert key in data

    assert "X-Request-ID" in response.headers


async def test_health_check_reports_queue(async_client: AsyncClient, lifecycle, clock, image_params):
    pending = await lifecycle.create("image", image_params)
    stale = await lifecycle.create("image", image_params)
    await lifecycle.claim(stale.id, "worker-gone")

    # Claims carry the test clock, far behind the wall clock used by the check
    queue = (await async_client.get("/v1/healthz")).json()["data"]["queue"]

    assert pending.status == "pending"
    assert queue["queue_depth"] == 1
    assert queue["processing"] == 1
    assert queue["stale_jobs_count"] == 1
    assert queue["active_workers"] == 0
