"""Jobs Commands - Start, inspect and manage generation jobs"""

import json
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel

from ..client.endpoints import StoryJobsClient, StoryJobsError
from ..utils.config_manager import config
from ..utils.formatting import (
    create_job_panel,
    create_jobs_table,
    create_metrics_table,
    create_stats_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)

console = Console()
app = typer.Typer(name="jobs", help="Generation job commands")


def parse_params(pairs: list[str]) -> dict[str, Any]:
    """Parse key=value pairs; values are read as JSON when they parse as JSON."""
    params: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got '{pair}'")
        try:
            params[key] = json.loads(raw)
        except ValueError:
            params[key] = raw
    return params


@app.command("start")
def start_job(
    kind: str = typer.Argument(..., help="Job kind (image, story, auto-story, cartoonize, scene)"),
    param: list[str] = typer.Option([], "--param", "-p", help="Job parameter as key=value"),
    user_id: str | None = typer.Option(None, "--user", "-u", help="Requesting user id"),
):
    """🚀 Start a generation job"""
    parameters = parse_params(param)
    base_url = config.get("api.base_url")

    try:
        with StoryJobsClient(base_url) as client:
            created = client.start_job(kind, parameters, user_id=user_id)

        print_success(f"Started {kind} job {created.get('jobId')}")
        console.print(
            f"• Estimated: ~{created.get('estimatedMinutes')} min\n"
            f"• Poll: [blue]{created.get('pollingUrl')}[/blue]"
        )

    except StoryJobsError as e:
        print_error(f"Failed to start job: {e}")
        raise typer.Exit(1) from None


@app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Job ID to show"),
):
    """🔍 Show the status of a job"""
    base_url = config.get("api.base_url")

    try:
        with StoryJobsClient(base_url) as client:
            job = client.get_job(job_id)
        console.print(create_job_panel(job))

    except StoryJobsError as e:
        print_error(f"Failed to fetch job: {e}")
        raise typer.Exit(1) from None


@app.command("list")
def list_jobs(
    kind: str | None = typer.Option(None, "--kind", "-k", help="Filter by kind"),
    status: list[str] = typer.Option([], "--status", "-s", help="Filter by status"),
    limit: int = typer.Option(20, "--limit", "-l", help="Number of jobs to show"),
    offset: int = typer.Option(0, "--offset", "-o", help="Skip first N jobs"),
):
    """📋 List jobs"""
    base_url = config.get("api.base_url")

    try:
        with StoryJobsClient(base_url) as client:
            data = client.list_jobs(kind=kind, status=status or None, limit=limit, offset=offset)

        jobs = data.get("jobs", [])
        total = data.get("total", len(jobs))
        if not jobs:
            console.print(Panel(
                "📭 [yellow]No jobs found![/yellow]",
                title="Empty Results",
                border_style="yellow",
            ))
            return

        console.print(create_jobs_table(jobs))
        console.print(f"\n📊 Showing [cyan]{len(jobs)}[/cyan] of [yellow]{total}[/yellow] jobs")

    except StoryJobsError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None


@app.command("stats")
def job_stats():
    """📊 Show job counts and queue metrics"""
    base_url = config.get("api.base_url")

    try:
        with StoryJobsClient(base_url) as client:
            stats = client.job_stats()
        console.print(create_stats_table(stats))
        console.print(create_metrics_table(stats))

    except StoryJobsError as e:
        print_error(f"Failed to fetch stats: {e}")
        raise typer.Exit(1) from None


@app.command("cancel")
def cancel_job(
    job_id: str = typer.Argument(..., help="Job ID to cancel"),
):
    """🛑 Cancel a pending or processing job"""
    base_url = config.get("api.base_url")

    try:
        with StoryJobsClient(base_url) as client:
            job = client.cancel_job(job_id)
        print_success(f"Job {job_id} is {job.get('status')}")

    except StoryJobsError as e:
        print_error(f"Failed to cancel job: {e}")
        raise typer.Exit(1) from None


@app.command("retry")
def retry_job(
    job_id: str = typer.Argument(..., help="Job ID to retry"),
):
    """🔁 Re-queue a failed job"""
    base_url = config.get("api.base_url")

    try:
        with StoryJobsClient(base_url) as client:
            decision = client.retry_job(job_id)

        attempts = f"{decision.get('retryCount')}/{decision.get('maxRetries')}"
        if decision.get("decision") == "retry":
            print_success(f"Job {job_id} re-queued (retry {attempts})")
        else:
            print_warning(f"Job {job_id} has exhausted its retries ({attempts})")
            print_info("Start a new job to try again")

    except StoryJobsError as e:
        print_error(f"Failed to retry job: {e}")
        raise typer.Exit(1) from None
