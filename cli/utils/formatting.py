"""Rich Formatting Utilities for CLI Output"""

from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "processing": "blue",
    "completed": "green",
    "failed": "red",
    "cancelled": "dim",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def progress_bar(progress: int, width: int = 20) -> str:
    """Render a text progress bar for a 0-100 value"""
    filled = max(0, min(width, round(progress * width / 100)))
    return f"{'█' * filled}{'░' * (width - filled)} {progress}%"


def create_jobs_table(jobs: list[dict[str, Any]]) -> Table:
    """Create a formatted table for a jobs listing"""
    table = Table(title="Jobs", box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Kind", justify="center", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Progress", justify="right")
    table.add_column("Retries", justify="center")
    table.add_column("Step", justify="left", style="white")

    for job in jobs:
        table.add_row(
            job.get("id", ""),
            job.get("kind", ""),
            styled_status(job.get("status", "")),
            f"{job.get('progress', 0)}%",
            f"{job.get('retryCount', 0)}/{job.get('maxRetries', 0)}",
            job.get("currentStep") or "—",
        )

    return table


def create_job_panel(job: dict[str, Any]) -> Panel:
    """Create formatted panel for a job status projection"""
    status = job.get("status", "")
    lines = [
        f"• Kind: [magenta]{job.get('kind', '')}[/magenta]",
        f"• Status: {styled_status(status)}",
        f"• Progress: {progress_bar(job.get('progress', 0))}",
        f"• Step: {job.get('currentStep') or '—'}",
    ]

    if job.get("currentPhase"):
        lines.append(f"• Phase: [cyan]{job['currentPhase']}[/cyan]")
    if job.get("estimatedTimeRemaining") is not None:
        lines.append(f"• Remaining: ~{job['estimatedTimeRemaining']} min")
    if job.get("retryCount") is not None:
        lines.append(f"• Retries: {job['retryCount']}/{job.get('maxRetries')}")
    if job.get("error"):
        lines.append(f"• Error: [red]{job['error']}[/red]")
    if job.get("retriesExhausted"):
        lines.append("• [red]Retries exhausted[/red]")

    result = job.get("result") or {}
    if result.get("resultRef"):
        lines.append(f"• Result: [green]{result['resultRef']}[/green]")
    if job.get("processingTimeSeconds") is not None:
        lines.append(f"• Took: {job['processingTimeSeconds']}s")

    return Panel(
        "\n".join(lines),
        title=f"Job {job.get('jobId', '')}",
        border_style=STATUS_STYLES.get(status, "white"),
    )


def create_stats_table(stats: dict[str, Any]) -> Table:
    """Create formatted table for job statistics"""
    table = Table(title=f"Jobs ({stats.get('total', 0)} total)", box=box.ROUNDED)

    table.add_column("Status", justify="left")
    table.add_column("Count", justify="right", style="cyan")

    for status in STATUS_STYLES:
        table.add_row(styled_status(status), str(stats.get(status, 0)))

    return table


def create_metrics_table(stats: dict[str, Any]) -> Table:
    """Create formatted table for queue and timing metrics"""
    table = Table(title="Queue Metrics", box=box.ROUNDED)

    table.add_column("Metric", justify="left")
    table.add_column("Value", justify="right", style="cyan")

    average = stats.get("averageProcessingSeconds")
    peak = stats.get("peakProcessingSeconds")
    table.add_row("Queue depth", str(stats.get("queueDepth", 0)))
    table.add_row("Oldest pending", stats.get("oldestPendingAt") or "—")
    table.add_row("Avg processing", f"{average:.1f}s" if average is not None else "—")
    table.add_row("Peak processing", f"{peak:.1f}s" if peak is not None else "—")
    table.add_row("Success rate", f"{stats.get('successRate', 0.0):.1f}%")
    table.add_row("Error rate", f"{stats.get('errorRate', 0.0):.1f}%")
    table.add_row("Retry rate", f"{stats.get('retryRate', 0.0):.1f}%")

    return table
