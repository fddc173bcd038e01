"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import base64
import io
import json
from pathlib import Path

import pytest

from newsarchive.errors import FetchFailed

# Ensure tests run from the project root so config.default.yaml is found
PROJECT_ROOT = Path(__file__).parent.parent

# 1x1 PNG
PNG_1PX = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


@pytest.fixture(autouse=True)
def _set_project_root(monkeypatch):
    """Point NEWSARCHIVE_ROOT at the project root and reset settings."""
    monkeypatch.setenv("NEWSARCHIVE_ROOT", str(PROJECT_ROOT))
    for var in ("NEWSARCHIVE_SOURCE__BASE", "NEWSARCHIVE_INGEST__FAILURE_POLICY"):
        monkeypatch.delenv(var, raising=False)

    from newsarchive.config import reset_settings
    reset_settings()
    yield
    reset_settings()


class FakeFetcher:
    """In-memory fetcher that records concurrency."""

    def __init__(self, files: dict[str, bytes], *, fail=(), delays: dict[str, float] | None = None):
        self.files = files
        self.fail = set(fail)
        self.delays = delays or {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def fetch(self, ref: str) -> bytes:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(ref, 0))
            if ref in self.fail or ref not in self.files:
                raise FetchFailed(ref, "HTTP 404")
            return self.files[ref]
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_fetcher():
    return FakeFetcher


def make_docx(paragraphs: list[str], *, heading: str | None = None, image: bool = False) -> bytes:
    """Build a .docx in memory using python-docx."""
    from docx import Document

    doc = Document()
    if heading:
        doc.add_heading(heading, level=1)
    for text in paragraphs:
        doc.add_paragraph(text)
    if image:
        doc.add_picture(io.BytesIO(PNG_1PX))
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


@pytest.fixture
def docx_bytes():
    return make_docx


@pytest.fixture
def site(tmp_path):
    """A content folder with a manifest and two plain-text newsletters."""
    content = tmp_path / "newsletters"
    content.mkdir()
    (content / "2024-08-22 Update.txt").write_text(
        "Summer Cooperative Update\n"
        "Published August 22, 2024\n"
        "This month the cooperative welcomed twelve new members and opened the garden.\n"
    )
    (content / "Welcome.txt").write_text(
        "Welcome to Femme Futures Cooperative\n"
        "We are a member-owned cooperative supporting local makers and growers.\n"
    )
    (tmp_path / "newsletters.json").write_text(
        json.dumps({"files": ["2024-08-22 Update.txt", "Welcome.txt"]})
    )
    return tmp_path
