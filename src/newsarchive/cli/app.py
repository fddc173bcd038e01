"""newsarchive CLI — Typer entrypoint with global options."""

from __future__ import annotations

import os
from typing import Annotated, Optional

import typer

app = typer.Typer(
    name="newsarchive",
    help="Newsletter archive — ingest, search, and read converted newsletters.",
    no_args_is_help=True,
)

# Global state shared across subcommands
_state: dict = {"json": False}


def is_json() -> bool:
    """Check if --json output mode is active."""
    return _state["json"]


@app.callback()
def main(
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON (agent-friendly)")
    ] = False,
    root: Annotated[
        Optional[str], typer.Option("--root", help="Override project root directory")
    ] = None,
    base: Annotated[
        Optional[str], typer.Option("--base", help="Override the content base (folder or URL)")
    ] = None,
):
    """Global options applied before any subcommand."""
    from newsarchive.config import reset_settings

    _state["json"] = json_output
    if root:
        os.environ["NEWSARCHIVE_ROOT"] = root
    if base:
        os.environ["NEWSARCHIVE_SOURCE__BASE"] = base
    reset_settings()


# Register subcommands -------------------------------------------------------

from newsarchive.cli.doctor import doctor_cmd  # noqa: E402
from newsarchive.cli.ingest_cmd import ingest_cmd  # noqa: E402
from newsarchive.cli.search_cmd import search_cmd, show_cmd  # noqa: E402

app.command(name="doctor", help="Check configuration and content reachability.")(doctor_cmd)
app.command(name="ingest", help="Ingest every newsletter listed in the manifest.")(ingest_cmd)
app.command(name="search", help="Search newsletters by title, excerpt, or text.")(search_cmd)
app.command(name="show", help="Show one newsletter by id.")(show_cmd)
