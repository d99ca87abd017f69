"""CLI interface for resumable video uploads."""

import logging
import sys
from typing import Callable, Optional

import click
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.prompt import Confirm, Prompt
from rich.table import Table

from ..core.auth import StaticCredentialProvider
from ..core.config import UploaderConfig
from ..core.exceptions import AuthExpiredError
from ..core.models import LocalFile, ProgressEvent, RetryEvent, UploadStatus
from ..core.session import UploadSession

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    elif size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    elif size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    return f"{size / (1024 * 1024 * 1024):.1f} GB"


def get_credentials_interactively(access_token: Optional[str], user_id: Optional[str]):
    """Prompt for whatever part of the credentials is missing."""
    if not access_token or not user_id:
        console.print("\n[yellow]Uploading requires a signed-in session.[/yellow]")
        console.print("Set VIDUPLOAD_ACCESS_TOKEN and VIDUPLOAD_USER_ID to skip this prompt.\n")
    if not access_token:
        access_token = Prompt.ask("Access token", password=True)
    if not user_id:
        user_id = Prompt.ask("User ID")
    return StaticCredentialProvider(access_token, user_id)


def build_session(ctx, interactive: bool = False) -> UploadSession:
    overrides = {}
    if ctx.obj.get("storage_url"):
        overrides["storage_url"] = ctx.obj["storage_url"]
    if ctx.obj.get("state_dir"):
        overrides["state_dir"] = ctx.obj["state_dir"]
    config = UploaderConfig.from_env(**overrides)

    access_token = ctx.obj.get("access_token")
    user_id = ctx.obj.get("user_id")
    if interactive:
        credentials = get_credentials_interactively(access_token, user_id)
    else:
        credentials = StaticCredentialProvider(access_token, user_id)
    return UploadSession(config, credentials)


def run_with_progress(session: UploadSession, launch: Callable, description: str) -> Optional[str]:
    """Run an upload with a progress bar; Ctrl+C pauses instead of killing it."""
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(description, total=None)

        def on_event(event) -> None:
            if isinstance(event, ProgressEvent):
                progress.update(task, completed=event.bytes_uploaded, total=event.bytes_total)
            elif isinstance(event, RetryEvent):
                progress.console.print(
                    f"[yellow]Connection problem ({event.message}), "
                    f"retrying in {event.delay:g}s (attempt {event.attempt})[/yellow]"
                )

        unsubscribe = session.events.subscribe(on_event)
        try:
            future = launch()
            try:
                return future.result()
            except KeyboardInterrupt:
                session.pause()
                progress.console.print("[yellow]Pausing after the current chunk...[/yellow]")
                return future.result()
        finally:
            unsubscribe()


@click.group()
@click.option(
    "--storage-url",
    envvar="VIDUPLOAD_STORAGE_URL",
    help="Storage service base URL (or set VIDUPLOAD_STORAGE_URL env var)",
)
@click.option(
    "--access-token",
    envvar="VIDUPLOAD_ACCESS_TOKEN",
    help="Bearer access token (or set VIDUPLOAD_ACCESS_TOKEN env var)",
)
@click.option("--user-id", envvar="VIDUPLOAD_USER_ID", help="Uploading user's ID")
@click.option(
    "--state-dir",
    envvar="VIDUPLOAD_STATE_DIR",
    type=click.Path(file_okay=False),
    help="Where resumable upload state is kept (default: ~/.vidupload)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx, storage_url, access_token, user_id, state_dir, verbose):
    """Resumable video uploads - upload, pause with Ctrl+C, resume later."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    ctx.ensure_object(dict)
    ctx.obj.update(
        storage_url=storage_url,
        access_token=access_token,
        user_id=user_id,
        state_dir=state_dir,
    )


@cli.command()
@click.argument("local_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--path", "destination", help="Destination object path (default: <user>/<time>-<name>)")
@click.pass_context
def upload(ctx, local_path, destination):
    """Start uploading a file."""
    try:
        file = LocalFile.from_path(local_path)
        with build_session(ctx, interactive=True) as session:
            credentials = session.credentials.get_credentials()
            if credentials is None:
                raise AuthExpiredError()

            console.print(f"Uploading [cyan]{file.name}[/cyan] ({format_size(file.size)})")
            remote_path = run_with_progress(
                session,
                lambda: session.start(file, credentials.user_id, destination),
                file.name,
            )
            _report_outcome(session, remote_path)

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.argument("local_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def resume(ctx, local_path):
    """Resume the interrupted upload of a file."""
    try:
        file = LocalFile.from_path(local_path)
        with build_session(ctx, interactive=True) as session:
            snapshot = session.snapshot
            console.print(
                f"Resuming [cyan]{file.name}[/cyan] from {snapshot.progress}% "
                f"({format_size(snapshot.bytes_uploaded)} of {format_size(snapshot.bytes_total)})"
            )
            remote_path = run_with_progress(session, lambda: session.resume(file), file.name)
            _report_outcome(session, remote_path)

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx):
    """Show the resumable upload, if any."""
    try:
        with build_session(ctx) as session:
            state = session.snapshot.resumable_state

        if state is None:
            console.print("[yellow]No resumable upload.[/yellow]")
            return

        table = Table(title="Resumable Upload")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("File", state.file_name)
        table.add_row("Size", format_size(state.file_size))
        table.add_row(
            "Uploaded", f"{format_size(state.bytes_uploaded)} ({state.progress}%)"
        )
        table.add_row("Destination", state.remote_object_path)
        table.add_row("Upload URL", state.remote_upload_url or "-")
        table.add_row("Started", state.created_at.strftime("%Y-%m-%d %H:%M"))
        console.print(table)
        console.print("Continue with: [bold]vidupload resume <file>[/bold]")

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def clear(ctx, yes):
    """Forget the resumable upload."""
    try:
        with build_session(ctx) as session:
            state = session.snapshot.resumable_state
            if state is None:
                console.print("[yellow]No resumable upload.[/yellow]")
                return
            if not yes and not Confirm.ask(
                f"Forget the upload of {state.file_name} ({state.progress}% done)?"
            ):
                console.print("Cancelled.")
                return
            session.clear_resumable_upload()
        console.print("[green]✓[/green] Resumable upload cleared")

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def _report_outcome(session: UploadSession, remote_path: Optional[str]) -> None:
    if remote_path:
        console.print(f"[green]✓[/green] Upload completed: [green]{remote_path}[/green]")
    elif session.status == UploadStatus.PAUSED:
        console.print("[yellow]Upload paused.[/yellow] Continue with: [bold]vidupload resume <file>[/bold]")


def main():
    """Main entry point."""
    cli()
