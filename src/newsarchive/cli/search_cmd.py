"""newsarchive search / show — query the archive and read one newsletter."""

from __future__ import annotations

import json
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


def search_cmd(
    query: Annotated[str, typer.Argument(help="Text to look for (case-insensitive)")] = "",
    tolerant: Annotated[
        bool, typer.Option("--tolerant", "-t", help="Include placeholders for failed files")
    ] = False,
):
    """Search newsletters by title, excerpt, or text."""
    from newsarchive.cli.app import is_json
    from newsarchive.cli.ingest_cmd import load_archive, print_empty_state

    settings, archive = load_archive(tolerant=tolerant)
    results = archive.store.filter(query)
    limit = settings.search.max_results
    snippet_length = settings.search.snippet_length

    if is_json():
        print(
            json.dumps(
                {
                    "query": query,
                    "total": len(results),
                    "results": [
                        {
                            "id": d.id,
                            "title": d.title,
                            "date": d.date.isoformat(),
                            "excerpt": d.excerpt,
                        }
                        for d in results[:limit]
                    ],
                },
                indent=2,
            )
        )
        return

    console = Console()
    if archive.is_empty:
        print_empty_state(console, settings, archive.report)
        return
    if not results:
        console.print(f"[yellow]No newsletters match '{escape(query)}'.[/yellow]")
        return

    table = Table(title=f"{len(results)} match(es)")
    table.add_column("Date")
    table.add_column("Id")
    table.add_column("Title")
    table.add_column("Excerpt")
    for d in results[:limit]:
        table.add_row(
            d.date.isoformat(),
            escape(d.id),
            escape(d.title),
            escape(d.excerpt[:snippet_length]),
        )
    console.print(table)


def show_cmd(
    doc_id: Annotated[str, typer.Argument(help="Newsletter id (see 'newsarchive ingest')")],
    html: Annotated[bool, typer.Option("--html", help="Print the stored content as-is")] = False,
):
    """Show one newsletter by id."""
    from newsarchive.cli.app import is_json
    from newsarchive.cli.ingest_cmd import load_archive

    _, archive = load_archive()
    doc = archive.store.get_by_id(doc_id)
    if doc is None:
        typer.echo(f"Newsletter not found: {doc_id}", err=True)
        raise typer.Exit(code=1)

    if is_json():
        print(json.dumps(doc.model_dump(mode="json"), indent=2))
        return

    if html:
        print(doc.content)
        return

    console = Console()
    console.print(
        Panel(
            Text(doc.raw_text),
            title=f"{escape(doc.title)} [dim]({doc.date.isoformat()})[/dim]",
            subtitle=escape(doc.source_ref),
        )
    )
