"""newsarchive ingest — load the manifest and convert every newsletter."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from newsarchive.models import ContentMode

EMPTY_STATE_HELP = (
    "No newsletters could be loaded.\n\n"
    "To fix this:\n"
    "  1. Put your .docx files in the content folder ({content_dir}/).\n"
    "  2. List them in {manifest} as {{\"{key}\": [\"My Newsletter.docx\"]}}.\n"
    "  3. Check that every file name in the manifest matches exactly.\n"
    "  4. Run 'newsarchive doctor' to check the setup."
)


def load_archive(
    *,
    tolerant: bool = False,
    mode: ContentMode | None = None,
    verbose: bool = False,
):
    """Build the archive from the current settings (shared by all commands)."""
    from newsarchive.config import get_settings
    from newsarchive.ingest.pipeline import build_archive
    from newsarchive.models import FailurePolicy

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(message)s",
    )

    settings = get_settings()
    updates: dict = {}
    if tolerant:
        updates["failure_policy"] = FailurePolicy.PLACEHOLDER
    if mode is not None:
        updates["content_mode"] = mode
    if updates:
        settings = settings.model_copy(
            update={"ingest": settings.ingest.model_copy(update=updates)}
        )

    return settings, asyncio.run(build_archive(settings))


def print_empty_state(console: Console, settings, report) -> None:
    body = EMPTY_STATE_HELP.format(
        content_dir=settings.source.content_dir,
        manifest=settings.source.manifest_path,
        key=settings.source.manifest_key,
    )
    if report.manifest_error:
        body = f"[red]{escape(report.manifest_error)}[/red]\n\n" + body
    console.print(Panel(body, title="No content", border_style="yellow"))


def ingest_cmd(
    tolerant: Annotated[
        bool,
        typer.Option("--tolerant", "-t", help="Keep placeholder entries for files that fail"),
    ] = False,
    mode: Annotated[
        Optional[ContentMode], typer.Option("--mode", "-m", help="Content mode: markup or text")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
):
    """Ingest every newsletter listed in the manifest."""
    from newsarchive.cli.app import is_json

    settings, archive = load_archive(tolerant=tolerant, mode=mode, verbose=verbose)
    report = archive.report

    if is_json():
        print(
            json.dumps(
                {
                    "status": "empty" if archive.is_empty else "ok",
                    "ingested": len(archive.store),
                    "failed": report.failed,
                    "manifest_unavailable": report.manifest_unavailable,
                    "documents": [
                        {
                            "id": d.id,
                            "title": d.title,
                            "date": d.date.isoformat(),
                            "source_ref": d.source_ref,
                            "is_placeholder": d.is_placeholder,
                        }
                        for d in archive.store
                    ],
                    "failures": [f.model_dump() for f in report.failures],
                },
                indent=2,
            )
        )
        return

    console = Console()
    if archive.is_empty:
        print_empty_state(console, settings, report)
        return

    table = Table(title=f"Ingested {len(archive.store)} newsletter(s)")
    table.add_column("Date")
    table.add_column("Id")
    table.add_column("Title")
    table.add_column("Source")

    for d in archive.store:
        title = escape(d.title)
        if d.is_placeholder:
            title = f"[yellow]{title} (placeholder)[/yellow]"
        table.add_row(d.date.isoformat(), escape(d.id), title, escape(d.source_ref))

    console.print(table)
    if report.failed:
        console.print(f"[yellow]{report.failed} file(s) could not be loaded:[/yellow]")
        for f in report.failures:
            console.print(f"  {escape(f.identifier)} [dim]({f.kind}: {escape(f.detail)})[/dim]")
