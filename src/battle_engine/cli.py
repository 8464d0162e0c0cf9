"""Command-line interface using Typer."""

import asyncio
import time
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from battle_engine import __version__
from battle_engine.domain.models import AdvanceResult
from battle_engine.logging import setup_logging

# Setup logging
setup_logging()

app = typer.Typer(
    name="battle-engine",
    help="Battle Engine - multi-segment battle video CLI",
    add_completion=False,
)

console = Console()

STATUS_STYLES = {"processing": "yellow", "completed": "green", "failed": "red"}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Battle Engine v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Battle Engine - Generate two-player battle videos with fal.ai."""
    pass


def _orchestrator():
    from battle_engine.services.providers import build_orchestrator

    return build_orchestrator()


def _print_result(result: AdvanceResult) -> None:
    table = Table(title="Session Progress")
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    style = STATUS_STYLES.get(result.status, "white")
    table.add_row("Session", result.session_id or "-")
    table.add_row("Status", f"[{style}]{result.status}[/{style}]")
    table.add_row("Segment", f"{result.current_segment + 1}/{result.total_segments}")
    table.add_row("Completed", str(result.completed_segments))
    if result.progress_message:
        table.add_row("Progress", result.progress_message)
    if result.video_url:
        table.add_row("Video", result.video_url)
    if result.error:
        table.add_row("Error", result.error)
    if result.recoverable is not None:
        table.add_row("Recoverable", "yes" if result.recoverable else "no")

    console.print(table)


@app.command()
def start(
    seed_image_url: str = typer.Argument(..., help="Battle arena image used to seed segment 1"),
) -> None:
    """Create a session and submit its first segment."""
    console.print("[bold blue]Starting battle video session...[/bold blue]")

    try:
        result = asyncio.run(_orchestrator().start_session(seed_image_url))
    except Exception as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1)

    console.print(f"[green]Session created: {result.session_id}[/green]")
    console.print(f"[dim]Segments: {result.total_segments}[/dim]")


@app.command()
def poll(
    session_id: str = typer.Argument(..., help="Session ID (or single-job request ID)"),
) -> None:
    """Advance a session by one step and show its progress."""
    try:
        result = asyncio.run(_orchestrator().poll_session(session_id))
    except Exception as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1)

    _print_result(result)
    if result.status == "failed":
        raise typer.Exit(code=1)


async def _watch(session_id: str, interval: float, timeout: float) -> AdvanceResult:
    orchestrator = _orchestrator()
    deadline = time.monotonic() + timeout
    result = await orchestrator.poll_session(session_id)

    with console.status("[bold blue]Generating...[/bold blue]") as spinner:
        while result.status == "processing" or (result.status == "failed" and result.recoverable):
            if time.monotonic() >= deadline:
                break
            if result.progress_message:
                spinner.update(f"[bold blue]{result.progress_message}[/bold blue]")
            await asyncio.sleep(max(interval, result.retry_after_seconds or 0))
            result = await orchestrator.poll_session(session_id)
            if result.status == "failed" and result.recoverable:
                console.print(f"[yellow]{result.error}; retrying[/yellow]")

    return result


@app.command()
def watch(
    session_id: str = typer.Argument(..., help="Session ID to drive to completion"),
    interval: float = typer.Option(5.0, "--interval", "-i", help="Seconds between polls"),
    timeout: float = typer.Option(900.0, "--timeout", "-t", help="Give up after this many seconds"),
) -> None:
    """Poll a session until it completes, fails, or the timeout is reached."""
    try:
        result = asyncio.run(_watch(session_id, interval, timeout))
    except Exception as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1)

    _print_result(result)
    if result.status == "completed":
        console.print("[bold green]✓ Battle video ready![/bold green]")
    elif result.status == "processing":
        console.print("[bold yellow]Timed out; the session can be resumed later[/bold yellow]")
        raise typer.Exit(code=2)
    else:
        console.print(f"[bold red]✗ Session failed: {result.error}[/bold red]")
        raise typer.Exit(code=1)


@app.command()
def sessions() -> None:
    """List sessions that are still processing."""
    active = _orchestrator().store.list_active()
    if not active:
        console.print("[dim]No active sessions[/dim]")
        return

    table = Table(title="Active Sessions")
    table.add_column("ID", style="cyan")
    table.add_column("Segment")
    table.add_column("Completed")
    table.add_column("Age")
    table.add_column("Last Error")

    for session in active:
        table.add_row(
            session.id,
            f"{session.current_segment_index + 1}/{session.total_segments}",
            str(len(session.completed_segments)),
            f"{session.age_seconds() / 60:.1f} min",
            (session.error or "")[:50],
        )

    console.print(table)


@app.command()
def cleanup(
    max_age: Optional[float] = typer.Option(
        None, "--max-age", help="Remove finished sessions older than this many seconds"
    ),
) -> None:
    """Expire finished sessions."""
    removed = asyncio.run(_orchestrator().cleanup(max_age))
    console.print(f"[green]Removed {removed} session(s)[/green]")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
) -> None:
    """Run the HTTP API server."""
    import uvicorn

    from battle_engine.config import settings

    uvicorn.run(
        "battle_engine.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload or settings.api_reload,
    )


if __name__ == "__main__":
    app()
