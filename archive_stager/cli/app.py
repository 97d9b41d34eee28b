"""Typer CLI for staging archives in cloud storage."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from archive_stager import __version__
from archive_stager.api import upload_archive
from archive_stager.chunker import chunk
from archive_stager.config_manager.config import ConfigManager
from archive_stager.config_manager.helpers import format_size, parse_bytes
from archive_stager.config_manager.upload_config import UploaderConfig
from archive_stager.event_emitter import UploadEmitter
from archive_stager.models import Completed, UploadOutcome, UploadState

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    help="Stage large archives in cloud storage with multipart uploads.",
)
console = Console()

_STATE_LABELS = {
    UploadState.SESSION_OPENING: "Getting upload URL...",
    UploadState.AUTHORIZING: "Signing part URLs...",
    UploadState.FINALIZING: "Finalizing upload...",
    UploadState.ABORTING: "Cancelling upload...",
}


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging with a concise, consistent format."""
    if logging.getLogger().handlers:
        logging.getLogger().setLevel(level)
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[handler])


def _version_callback(value: bool) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


@app.callback()
def callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show the archive-stager version and exit.",
        callback=_version_callback,
        is_eager=True,
        is_flag=True,
    ),
) -> None:
    """Handle global CLI option for --version."""
    return None


def _resolve_config(**cli_values: Any) -> UploaderConfig:
    """Merge CLI values over environment and defaults, exiting on bad input."""
    try:
        if cli_values.get("chunk_size") is not None:
            cli_values["chunk_size"] = parse_bytes(cli_values["chunk_size"])
        return ConfigManager().resolve_effective_config(cli_values)
    except (ValueError, ValidationError) as exc:
        logger.error("Invalid configuration: %s", exc)
        raise typer.Exit(code=1) from exc


@app.command("plan")
def plan(
    path: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Archive to inspect."
    ),
    chunk_size: str | None = typer.Option(
        None, "--chunk-size", "-c", help="Part size, e.g. 10mb (default 10 MiB)."
    ),
) -> None:
    """Show how an archive would be split into parts, without uploading."""
    config = _resolve_config(chunk_size=chunk_size)
    file_size = path.stat().st_size
    parts = chunk(file_size, config.chunk_size)

    table = Table(title=f"{path.name} ({format_size(file_size)})")
    table.add_column("Part", justify="right")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Size", justify="right")
    for part in parts:
        table.add_row(
            str(part.part_number),
            str(part.start),
            str(part.end),
            format_size(part.size),
        )
    console.print(table)
    console.print(f"{len(parts)} parts of up to {format_size(config.chunk_size)}")


async def _upload_with_progress(path: Path, config: UploaderConfig) -> UploadOutcome:
    """Run the upload under a progress bar, mapping Ctrl+C to cancellation."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        signal_installed = True
    except (NotImplementedError, RuntimeError):
        # Windows event loops do not support signal handlers.
        signal_installed = False

    emitter = UploadEmitter()
    upload_label = f"Uploading {path.name}"

    with Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task_id: TaskID = progress.add_task(upload_label, total=100)

        def on_state_changed(previous: UploadState, new_state: UploadState) -> None:
            progress.update(
                task_id, description=_STATE_LABELS.get(new_state, upload_label)
            )

        def on_progress(percent: int) -> None:
            progress.update(task_id, completed=percent)

        emitter.on(UploadEmitter.STATE_CHANGED, on_state_changed)
        try:
            return await upload_archive(
                path,
                config,
                on_progress=on_progress,
                cancel_event=cancel_event,
                emitter=emitter,
            )
        finally:
            if signal_installed:
                loop.remove_signal_handler(signal.SIGINT)


@app.command("upload")
def upload(
    path: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Archive to upload."
    ),
    chunk_size: str | None = typer.Option(
        None, "--chunk-size", "-c", help="Part size, e.g. 10mb (default 10 MiB)."
    ),
    concurrency: int | None = typer.Option(
        None, "--concurrency", "-j", help="Maximum simultaneous part transfers."
    ),
    retries: int | None = typer.Option(
        None, "--retries", help="Retries per part before the upload is aborted."
    ),
    api_url: str | None = typer.Option(
        None, "--api-url", help="Base URL of the multipart upload routes."
    ),
    content_type: str | None = typer.Option(
        None, "--content-type", help="MIME type stored with the object."
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    """Upload an archive as one multipart object."""
    configure_logging(logging.DEBUG if verbose else logging.WARNING)
    config = _resolve_config(
        chunk_size=chunk_size,
        max_concurrency=concurrency,
        part_max_retries=retries,
        api_url=api_url,
        content_type=content_type,
    )

    try:
        outcome = asyncio.run(_upload_with_progress(path, config))
    except Exception:
        logger.exception("Unexpected error during upload.")
        raise typer.Exit(code=1) from None

    if isinstance(outcome, Completed):
        console.print(outcome.message, style="green", markup=False)
        return
    console.print(outcome.message, style="red", markup=False)
    raise typer.Exit(code=1)


def main() -> None:
    """CLI entrypoint for archive-stager."""
    app()


if __name__ == "__main__":
    main()
