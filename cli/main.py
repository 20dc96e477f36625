"""Story Jobs CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

from .client.endpoints import StoryJobsClient, StoryJobsError
from .commands import config, jobs, lock
from .utils.config_manager import config as config_manager
from .utils.formatting import print_error, print_info

console = Console()

app = typer.Typer(
    name="storyjobs",
    help="📚 Story Jobs - background generation job CLI",
    rich_markup_mode="rich",
)

app.add_typer(jobs.app, name="jobs")
app.add_typer(lock.app, name="lock")
app.add_typer(config.app, name="config")


@app.command()
def status():
    """📊 Check service health and queue status"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with StoryJobsClient(base_url) as client:
            health = client.health_check()

    except StoryJobsError as e:
        print_error(f"Failed to connect: {e}")
        console.print(Panel(
            f"🚫 [red]Connection Failed[/red]\n\n"
            f"Make sure the Story Jobs API is running at:\n"
            f"[blue]{base_url}[/blue]\n\n"
            f"You can update the API URL with:\n"
            f"[cyan]storyjobs config set api.base_url <url>[/cyan]",
            title="Connection Error",
            border_style="red",
        ))
        raise typer.Exit(1) from None

    database = health.get("database") or {}
    queue = health.get("queue") or {}
    healthy = health.get("ok", False)
    console.print(Panel(
        f"{'🚀 [green]Healthy[/green]' if healthy else '⚠️ [red]Degraded[/red]'}\n\n"
        f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
        f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
        f"• Database: {'connected' if database.get('connected') else 'unreachable'}\n"
        f"• Pending: [yellow]{queue.get('queue_depth', 0)}[/yellow]  "
        f"Processing: [blue]{queue.get('processing', 0)}[/blue]  "
        f"Stale: [red]{queue.get('stale_jobs_count', 0)}[/red]\n"
        f"• API URL: [blue]{base_url}[/blue]",
        title="System Status",
        border_style="green" if healthy else "red",
    ))
    if not healthy:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
