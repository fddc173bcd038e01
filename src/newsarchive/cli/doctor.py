"""newsarchive doctor — validate config, manifest, and content reachability."""

from __future__ import annotations

import asyncio
import json

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table


async def _check_config() -> tuple[bool, str]:
    """Verify config loads without error."""
    try:
        from newsarchive.config import get_settings
        settings = get_settings()
        return True, (
            f"base={settings.source.base}, mode={settings.ingest.content_mode.value}, "
            f"policy={settings.ingest.failure_policy.value}"
        )
    except Exception as e:
        return False, str(e)


async def _check_manifest() -> tuple[bool, str]:
    """Fetch and parse the manifest."""
    from newsarchive.config import get_settings
    from newsarchive.errors import ManifestUnavailable
    from newsarchive.ingest.fetchers import make_fetcher
    from newsarchive.ingest.manifest import load_manifest

    settings = get_settings()
    fetcher = make_fetcher(settings.base_location, timeout=settings.source.timeout)
    try:
        identifiers = await load_manifest(
            fetcher, settings.manifest_ref, key=settings.source.manifest_key
        )
        return True, f"{len(identifiers)} file(s) listed in {settings.manifest_ref}"
    except ManifestUnavailable as e:
        return False, str(e)
    finally:
        await fetcher.aclose()


async def _check_content() -> tuple[bool, str]:
    """Fetch every listed file (bytes only, no conversion)."""
    from newsarchive.config import get_settings
    from newsarchive.errors import ArchiveError
    from newsarchive.ingest.fetchers import make_fetcher
    from newsarchive.ingest.manifest import load_manifest

    settings = get_settings()
    fetcher = make_fetcher(settings.base_location, timeout=settings.source.timeout)
    try:
        identifiers = await load_manifest(
            fetcher, settings.manifest_ref, key=settings.source.manifest_key
        )
        results = await asyncio.gather(
            *(fetcher.fetch(settings.content_ref(i)) for i in identifiers),
            return_exceptions=True,
        )
    except ArchiveError as e:
        return False, str(e)
    finally:
        await fetcher.aclose()

    missing = [i for i, r in zip(identifiers, results) if isinstance(r, Exception)]
    if missing:
        return False, f"unreachable: {', '.join(missing)}"
    return True, f"all {len(identifiers)} file(s) reachable"


async def _check_converters() -> tuple[bool, str]:
    """Verify python-docx and lxml import."""
    try:
        import docx  # noqa: F401
        import lxml  # noqa: F401
        return True, "python-docx and lxml available"
    except ImportError as e:
        return False, str(e)


async def _run_checks() -> list[dict]:
    """Run all checks and return results."""
    checks = [
        ("Config", _check_config),
        ("Converters", _check_converters),
        ("Manifest", _check_manifest),
        ("Content", _check_content),
    ]
    results = []
    for name, check_fn in checks:
        ok, detail = await check_fn()
        results.append({"check": name, "ok": ok, "detail": detail})
    return results


def doctor_cmd():
    """Check configuration and content reachability."""
    from newsarchive.cli.app import is_json

    results = asyncio.run(_run_checks())

    if is_json():
        print(json.dumps(results, indent=2))
        return

    console = Console()
    table = Table(title="newsarchive doctor", show_lines=True)
    table.add_column("Check", style="bold")
    table.add_column("Status")
    table.add_column("Detail")

    all_ok = True
    for r in results:
        status = "[green]PASS[/green]" if r["ok"] else "[red]FAIL[/red]"
        if not r["ok"]:
            all_ok = False
        table.add_row(r["check"], status, escape(r["detail"]))

    console.print(table)
    if all_ok:
        console.print("\n[bold green]All checks passed.[/bold green]")
    else:
        console.print("\n[bold yellow]Some checks failed. See details above.[/bold yellow]")
        raise typer.Exit(code=1)
