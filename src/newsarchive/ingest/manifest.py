"""Manifest loading — the list of newsletter files to ingest."""

from __future__ import annotations

import json
import logging

from newsarchive.errors import FetchFailed, ManifestUnavailable
from newsarchive.ingest.fetchers import ByteFetcher

log = logging.getLogger(__name__)


def parse_manifest(data: bytes, *, key: str = "files") -> list[str]:
    """Parse ``{"files": [...]}`` into a de-duplicated list of identifiers.

    Raises ManifestUnavailable if the payload is not JSON, has no list under
    *key*, or yields no usable identifiers.
    """
    try:
        payload = json.loads(data.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestUnavailable(f"manifest is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ManifestUnavailable("manifest must be a JSON object")
    entries = payload.get(key)
    if not isinstance(entries, list):
        raise ManifestUnavailable(f"manifest has no '{key}' list")

    identifiers: list[str] = []
    seen: set[str] = set()
    for entry in entries:
        if not isinstance(entry, str) or not entry.strip():
            log.warning("Skipping invalid manifest entry: %r", entry)
            continue
        entry = entry.strip()
        if entry in seen:
            log.warning("Skipping duplicate manifest entry: %s", entry)
            continue
        seen.add(entry)
        identifiers.append(entry)

    if not identifiers:
        raise ManifestUnavailable("manifest lists no files")
    return identifiers


async def load_manifest(
    fetcher: ByteFetcher,
    path: str = "newsletters.json",
    *,
    key: str = "files",
) -> list[str]:
    """Fetch and parse the manifest. One attempt, no retry."""
    try:
        data = await fetcher.fetch(path)
    except FetchFailed as e:
        raise ManifestUnavailable(f"manifest not found: {e.detail or path}") from e

    identifiers = parse_manifest(data, key=key)
    log.info("Manifest lists %d file(s)", len(identifiers))
    return identifiers
