"""Lock Commands - Inspect the coarse processing lock"""

import typer

from ..client.endpoints import StoryJobsClient, StoryJobsError
from ..utils.config_manager import config
from ..utils.formatting import print_error, print_success, print_warning

app = typer.Typer(name="lock", help="Processing lock commands")


def _lock(action: str, owner: str) -> dict:
    base_url = config.get("api.base_url")
    with StoryJobsClient(base_url) as client:
        return client.processing_lock(owner, action)


@app.command("acquire")
def acquire(
    owner: str = typer.Option(..., "--owner", help="Processing id of the caller"),
):
    """🔒 Try to acquire the processing lock"""
    try:
        result = _lock("acquire", owner)
    except StoryJobsError as e:
        print_error(f"Lock request failed: {e}")
        raise typer.Exit(1) from None

    if result.get("locked"):
        print_warning(f"Lock held by {result.get('owner')}: {result.get('reason')}")
        raise typer.Exit(2)

    print_success(f"Lock acquired by {result.get('owner')}")


@app.command("release")
def release(
    owner: str = typer.Option(..., "--owner", help="Processing id of the caller"),
):
    """🔓 Release the processing lock"""
    try:
        result = _lock("release", owner)
    except StoryJobsError as e:
        print_error(f"Lock request failed: {e}")
        raise typer.Exit(1) from None

    print_success(f"Lock released by {result.get('owner')}")
