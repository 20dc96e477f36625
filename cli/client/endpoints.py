"""API Endpoint Wrappers - Typed calls against the jobs API"""

from typing import Any

from ..utils.config_manager import config
from .base import APIClient, StoryJobsError

__all__ = ["StoryJobsClient", "StoryJobsError"]


class StoryJobsClient:
    """High-level client with typed endpoint methods"""

    def __init__(
        self,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        api_config = config.load_config().get("api", {})
        final_base_url = base_url or api_config.get("base_url", "http://localhost:8000")
        final_headers = headers or api_config.get("headers", {})

        self.api = APIClient(
            base_url=final_base_url,
            timeout=int(api_config.get("timeout", 30)),
            headers=final_headers,
        )

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API health status"""
        return self.api.get("/healthz")

    # Jobs Endpoints
    def start_job(
        self, kind: str, parameters: dict[str, Any], user_id: str | None = None
    ) -> dict[str, Any]:
        """Create a job of the given kind"""
        headers = {"X-User-ID": user_id} if user_id else None
        return self.api.post(f"/jobs/{kind}/start", json=parameters, headers=headers)

    def get_job(self, job_id: str) -> dict[str, Any]:
        """Get the status projection of a job"""
        return self.api.get(f"/jobs/{job_id}")

    def list_jobs(
        self,
        kind: str | None = None,
        status: list[str] | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        """List jobs with filters"""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if kind:
            params["kind"] = kind
        if status:
            params["status"] = status
        return self.api.get("/jobs", params)

    def job_stats(self) -> dict[str, Any]:
        """Get job counts by status and kind"""
        return self.api.get("/jobs/stats/overview")

    def cancel_job(self, job_id: str) -> dict[str, Any]:
        return self.api.post(f"/jobs/{job_id}/cancel")

    def retry_job(self, job_id: str) -> dict[str, Any]:
        return self.api.post(f"/jobs/{job_id}/retry")

    # Processing lock
    def processing_lock(self, owner_id: str, action: str) -> dict[str, Any]:
        """Acquire or release the processing lock"""
        return self.api.post(
            "/jobs/lock", json={"processingId": owner_id, "action": action}
        )
