"""CLI commands for vidcast using Typer and Rich.

Implements the CLI commands:
- run: Run the pipeline in this process (script, render, upload)
- status: Show runs reported by a running API server
- trigger: Ask a running API server to start a manual run

Exit codes for run/trigger: 0 success, 1 run failed, 2 invalid input,
3 another run already in flight.
"""

import asyncio
import json
import logging
from typing import Any, List, Optional

import httpx
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from vidcast import validate_dependencies
from vidcast.config import settings
from vidcast.orchestrator.errors import ConcurrentRunError
from vidcast.orchestrator.ledger import RunLedger
from vidcast.orchestrator.models import Run, Trigger
from vidcast.orchestrator.pipeline import PipelineOrchestrator
from vidcast.steps import build_default_steps

EXIT_RUN_FAILED = 1
EXIT_INVALID_INPUT = 2
EXIT_CONCURRENT_RUN = 3

app = typer.Typer(name="vidcast", help="Automated script, render and publish pipeline for short videos")
console = Console()


def _default_server() -> str:
    return f"http://{settings.server.host}:{settings.server.port}"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """vidcast command line."""
    level = logging.DEBUG if verbose else settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _build_orchestrator() -> PipelineOrchestrator:
    """Build an orchestrator over the production pipeline for this process."""
    validate_dependencies(settings.render.ffmpeg_binary)
    ledger = RunLedger(max_runs=settings.ledger.max_runs)
    return PipelineOrchestrator(
        ledger,
        build_default_steps(settings),
        step_timeout=settings.pipeline.step_timeout_seconds,
    )


@app.command()
def run(
    topic: Optional[List[str]] = typer.Argument(None, help="Optional topic hint (free text)"),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Time budget for the whole run in seconds"
    ),
):
    """Run the full pipeline now: script, render and upload.

    Exits 0 when the run succeeds and non-zero otherwise.
    """
    topic_text = " ".join(topic) if topic else None

    try:
        orchestrator = _build_orchestrator()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=EXIT_RUN_FAILED)

    try:
        with console.status("[bold green]Starting pipeline...") as status:
            def progress_callback(msg: str):
                status.update(f"[bold green]{msg}")

            result = asyncio.run(orchestrator.start_run(
                Trigger.CLI,
                topic_text,
                deadline=timeout or settings.pipeline.run_timeout_seconds,
                progress_callback=progress_callback,
            ))
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid input: {e.errors()[0]['msg']}")
        raise typer.Exit(code=EXIT_INVALID_INPUT)
    except ConcurrentRunError as e:
        console.print(f"[yellow]Skipped:[/yellow] {str(e)}")
        raise typer.Exit(code=EXIT_CONCURRENT_RUN)
    except KeyboardInterrupt:
        console.print()
        console.print("[yellow]Pipeline interrupted.[/yellow]")
        raise typer.Exit(code=130)

    _print_run(result)
    if result.status.value != "success":
        raise typer.Exit(code=EXIT_RUN_FAILED)


@app.command()
def status(
    server: str = typer.Option(None, "--server", "-s", help="API base URL"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON response"),
):
    """Show runs reported by a running vidcast API server."""
    base = (server or _default_server()).rstrip("/")
    try:
        response = httpx.get(f"{base}/api/status", timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"[red]Error:[/red] Could not load status from {base}: {e}")
        raise typer.Exit(code=1)

    data = response.json()
    if as_json:
        console.print_json(json.dumps(data))
        return

    runs = data.get("runs", [])
    if not runs:
        console.print("[yellow]No runs yet[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("ID", style="dim")
    table.add_column("Trigger")
    table.add_column("Status")
    table.add_column("Title")
    table.add_column("Started")
    table.add_column("Steps")

    for item in runs:
        status_color = _get_status_color(item["status"])
        steps_display = " > ".join(
            f"[{_get_status_color(s['status'])}]{s['name']}[/{_get_status_color(s['status'])}]"
            for s in item.get("steps", [])
        )
        table.add_row(
            item["id"][:8] + "...",
            item["trigger"],
            f"[{status_color}]{item['status']}[/{status_color}]",
            _truncate(item.get("videoTitle") or "Title pending", 40),
            item["startedAt"][:19].replace("T", " "),
            steps_display,
        )

    console.print(table)


@app.command()
def trigger(
    topic: Optional[List[str]] = typer.Argument(None, help="Optional topic hint (free text)"),
    server: str = typer.Option(None, "--server", "-s", help="API base URL"),
):
    """Ask a running vidcast API server to start a manual run and wait for it."""
    base = (server or _default_server()).rstrip("/")
    body: dict[str, Any] = {}
    if topic:
        body["topic"] = " ".join(topic)

    try:
        with console.status("[bold green]Waiting for run to finish..."):
            response = httpx.post(f"{base}/api/trigger", json=body, timeout=None)
    except httpx.HTTPError as e:
        console.print(f"[red]Error:[/red] Could not reach {base}: {e}")
        raise typer.Exit(code=1)

    if response.status_code == 409:
        console.print("[yellow]Skipped:[/yellow] another run is already in progress")
        raise typer.Exit(code=EXIT_CONCURRENT_RUN)
    if response.status_code == 422:
        console.print(f"[red]Error:[/red] Invalid input: {response.text}")
        raise typer.Exit(code=EXIT_INVALID_INPUT)
    if response.is_error:
        console.print(f"[red]Error:[/red] HTTP {response.status_code}: {response.text}")
        raise typer.Exit(code=1)

    result = Run.model_validate(response.json()["run"])
    _print_run(result)
    if result.status.value != "success":
        raise typer.Exit(code=EXIT_RUN_FAILED)


def _print_run(result: Run) -> None:
    """Print one run's outcome and its step table."""
    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Details")
    for step in result.steps:
        color = _get_status_color(step.status.value)
        details = step.error or " | ".join(f"{k}: {v}" for k, v in step.meta.items())
        table.add_row(step.name, f"[{color}]{step.status.value}[/{color}]", details)
    console.print(table)

    if result.status.value == "success":
        console.print(f"[green]✓[/green] Run {result.id} complete!")
        if result.video_title:
            console.print(f"[green]Title:[/green] {result.video_title}")
        if result.published_url:
            console.print(f"[green]Published:[/green] {result.published_url}")
    else:
        console.print(f"[red]✗ Run {result.id} failed[/red]")


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit - 3] + "..."


def _get_status_color(status: str) -> str:
    """Get Rich color for a run or step status.

    Color coding:
    - success: green
    - error: red
    - running: yellow
    - pending: dim
    """
    if status == "success":
        return "green"
    elif status == "error":
        return "red"
    elif status == "running":
        return "yellow"
    elif status == "pending":
        return "dim"
    else:
        return "white"
