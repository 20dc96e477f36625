"""Tests for CLI commands"""

from unittest.mock import Mock, patch

import pytest
from typer.testing import CliRunner

from cli.client.base import StoryJobsError
from cli.commands.jobs import parse_params
from cli.main import app
from cli.utils.config_manager import ConfigManager


@pytest.fixture
def runner():
    """CLI test runner"""
    return CliRunner()


def _mock_client(mock_client_class) -> Mock:
    client = Mock()
    client.__enter__ = Mock(return_value=client)
    client.__exit__ = Mock(return_value=None)
    mock_client_class.return_value = client
    return client


class TestMainCommands:
    @patch("cli.main.StoryJobsClient")
    def test_status_success(self, mock_client_class, runner):
        client = _mock_client(mock_client_class)
        client.health_check.return_value = {
            "ok": True,
            "version": "1.0.0",
            "environment": "development",
            "database": {"connected": True},
            "queue": {"queue_depth": 4, "processing": 1, "stale_jobs_count": 0},
        }

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Healthy" in result.stdout
        assert "Pending: 4" in result.stdout

    @patch("cli.main.StoryJobsClient")
    def test_status_failure(self, mock_client_class, runner):
        client = _mock_client(mock_client_class)
        client.health_check.side_effect = StoryJobsError("Connection failed")

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 1
        assert "Connection Failed" in result.stdout


class TestJobsCommands:
    def test_parse_params(self):
        params = parse_params(["title=The Lost Lantern", "pages=[]", "is_reused_image=true"])

        assert params == {"title": "The Lost Lantern", "pages": [], "is_reused_image": True}

    @patch("cli.commands.jobs.StoryJobsClient")
    def test_start(self, mock_client_class, runner):
        client = _mock_client(mock_client_class)
        client.start_job.return_value = {
            "jobId": "job_1_abc",
            "estimatedMinutes": 2,
            "pollingUrl": "http://localhost:8000/v1/jobs/job_1_abc",
        }

        result = runner.invoke(
            app,
            ["jobs", "start", "image", "-p", "image_prompt=A fox", "-p", "emotion=calm", "--user", "u1"],
        )

        assert result.exit_code == 0
        assert "job_1_abc" in result.stdout
        client.start_job.assert_called_once_with(
            "image", {"image_prompt": "A fox", "emotion": "calm"}, user_id="u1"
        )

    def test_start_rejects_malformed_param(self, runner):
        result = runner.invoke(app, ["jobs", "start", "image", "-p", "no-equals-sign"])
        assert result.exit_code != 0

    @patch("cli.commands.jobs.StoryJobsClient")
    def test_show(self, mock_client_class, runner):
        client = _mock_client(mock_client_class)
        client.get_job.return_value = {
            "jobId": "job_1_abc",
            "kind": "image",
            "status": "processing",
            "progress": 40,
            "currentStep": "Drawing",
            "currentPhase": "Generating illustrations",
            "estimatedTimeRemaining": 2,
        }

        result = runner.invoke(app, ["jobs", "show", "job_1_abc"])

        assert result.exit_code == 0
        assert "Generating illustrations" in result.stdout
        assert "40%" in result.stdout

    @patch("cli.commands.jobs.StoryJobsClient")
    def test_show_missing_job(self, mock_client_class, runner):
        client = _mock_client(mock_client_class)
        client.get_job.side_effect = StoryJobsError("API Error 404: Job not found", 404)

        result = runner.invoke(app, ["jobs", "show", "job_0_missing"])

        assert result.exit_code == 1
        assert "Failed to fetch job" in result.stdout

    @patch("cli.commands.jobs.StoryJobsClient")
    def test_list_empty(self, mock_client_class, runner):
        client = _mock_client(mock_client_class)
        client.list_jobs.return_value = {"jobs": [], "total": 0}

        result = runner.invoke(app, ["jobs", "list"])

        assert result.exit_code == 0
        assert "No jobs found" in result.stdout

    @patch("cli.commands.jobs.StoryJobsClient")
    def test_stats_shows_queue_metrics(self, mock_client_class, runner):
        client = _mock_client(mock_client_class)
        client.job_stats.return_value = {
            "total": 4,
            "pending": 1,
            "completed": 2,
            "failed": 1,
            "queueDepth": 1,
            "averageProcessingSeconds": 42.5,
            "peakProcessingSeconds": 60.0,
            "successRate": 66.67,
            "errorRate": 25.0,
            "retryRate": 50.0,
        }

        result = runner.invoke(app, ["jobs", "stats"])

        assert result.exit_code == 0
        assert "42.5s" in result.stdout
        assert "66.7%" in result.stdout

    @patch("cli.commands.jobs.StoryJobsClient")
    def test_retry_exhausted(self, mock_client_class, runner):
        client = _mock_client(mock_client_class)
        client.retry_job.return_value = {
            "jobId": "job_1_abc",
            "decision": "exhaust",
            "status": "failed",
            "retryCount": 2,
            "maxRetries": 2,
        }

        result = runner.invoke(app, ["jobs", "retry", "job_1_abc"])

        assert result.exit_code == 0
        assert "exhausted its retries (2/2)" in result.stdout

    @patch("cli.commands.jobs.StoryJobsClient")
    def test_cancel(self, mock_client_class, runner):
        client = _mock_client(mock_client_class)
        client.cancel_job.return_value = {"id": "job_1_abc", "status": "cancelled"}

        result = runner.invoke(app, ["jobs", "cancel", "job_1_abc"])

        assert result.exit_code == 0
        assert "cancelled" in result.stdout


class TestLockCommands:
    @patch("cli.commands.lock.StoryJobsClient")
    def test_acquire(self, mock_client_class, runner):
        client = _mock_client(mock_client_class)
        client.processing_lock.return_value = {"locked": False, "acquired": True, "owner": "s1"}

        result = runner.invoke(app, ["lock", "acquire", "--owner", "s1"])

        assert result.exit_code == 0
        client.processing_lock.assert_called_once_with("s1", "acquire")

    @patch("cli.commands.lock.StoryJobsClient")
    def test_acquire_while_held(self, mock_client_class, runner):
        client = _mock_client(mock_client_class)
        client.processing_lock.return_value = {
            "locked": True,
            "owner": "another-process",
            "reason": "Jobs are currently being processed",
        }

        result = runner.invoke(app, ["lock", "acquire", "--owner", "s1"])

        assert result.exit_code == 2
        assert "another-process" in result.stdout


class TestConfigManager:
    def test_defaults_without_file(self, tmp_path):
        manager = ConfigManager(config_dir=tmp_path / "cfg")

        assert manager.get("api.timeout") == 30
        assert manager.get("api.missing", "fallback") == "fallback"
        assert not manager.config_file.exists()

    def test_set_persists_yaml(self, tmp_path):
        manager = ConfigManager(config_dir=tmp_path / "cfg")

        manager.set("api.base_url", "https://jobs.example.com")

        assert manager.config_file.exists()
        reloaded = ConfigManager(config_dir=tmp_path / "cfg")
        assert reloaded.get("api.base_url") == "https://jobs.example.com"
        assert reloaded.get("api.timeout") == 30

    def test_reset(self, tmp_path):
        manager = ConfigManager(config_dir=tmp_path / "cfg")
        manager.set("api.timeout", 5)

        manager.reset()

        assert manager.get("api.timeout") == 30
