"""Tests for newsarchive.ingest.pipeline."""

from __future__ import annotations

import datetime as dt
import json

import pytest

from newsarchive.config import IngestConfig, Settings
from newsarchive.ingest.converters import PlainTextConverter
from newsarchive.ingest.pipeline import build_archive, build_document, ingest
from newsarchive.models import Conversion, ContentMode, DateSource, FailurePolicy

TODAY = dt.date(2026, 10, 19)

UPDATE_BODY = (
    "Summer Cooperative Update\n"
    "Published August 22, 2024\n"
    "This month the cooperative welcomed twelve new members and opened the garden.\n"
)
WELCOME_BODY = (
    "Welcome to Femme Futures Cooperative\n"
    "We are a member-owned cooperative supporting local makers and growers.\n"
)


def _text_converter(identifier: str):
    """Treat every identifier as UTF-8 text so tests need no real .docx."""
    return PlainTextConverter()


class _HtmlConverter:
    def extract_text(self, data: bytes) -> str:
        return data.decode()

    def extract_markup(self, data, *, style_map=None, inline_images=True) -> Conversion:
        text = data.decode()
        html = "".join(f"<p>{line}</p>" for line in text.splitlines())
        return Conversion(text=text, html=html, warnings=["converted by test"])


class _BrokenConverter:
    def extract_text(self, data: bytes) -> str:
        raise ValueError("corrupt document")

    def extract_markup(self, data, *, style_map=None, inline_images=True) -> Conversion:
        raise ValueError("corrupt document")


async def _ingest(fetcher, identifiers, **kwargs):
    kwargs.setdefault("converter_for", _text_converter)
    kwargs.setdefault("today", TODAY)
    return await ingest(identifiers, fetcher, **kwargs)


# --- archive scenarios ------------------------------------------------------


@pytest.mark.asyncio
async def test_example_scenario_sorted_by_date(fake_fetcher):
    fetcher = fake_fetcher(
        {"2024-08-22 Update.docx": UPDATE_BODY.encode(), "Welcome.docx": WELCOME_BODY.encode()}
    )
    report = await _ingest(
        fetcher, ["2024-08-22 Update.docx", "Welcome.docx"], today=dt.date(2024, 1, 1)
    )

    assert [d.source_ref for d in report.documents] == ["2024-08-22 Update.docx", "Welcome.docx"]
    update, welcome = report.documents
    assert update.title == "Summer Cooperative Update"
    assert update.date == dt.date(2024, 8, 22)
    assert update.date_source == DateSource.BODY
    assert welcome.title == "Welcome to Femme Futures Cooperative"
    assert welcome.date == dt.date(2024, 1, 1)
    assert all(len(d.excerpt) <= 200 for d in report.documents)
    assert report.failed == 0


@pytest.mark.asyncio
async def test_undated_document_sorts_first_when_today_is_later(fake_fetcher):
    fetcher = fake_fetcher(
        {"2024-08-22 Update.docx": UPDATE_BODY.encode(), "Welcome.docx": WELCOME_BODY.encode()}
    )
    report = await _ingest(fetcher, ["2024-08-22 Update.docx", "Welcome.docx"])
    assert [d.id for d in report.documents] == ["welcome", "2024-08-22-update"]


@pytest.mark.asyncio
async def test_failing_identifier_is_isolated(fake_fetcher):
    files = {
        "a.docx": b"First newsletter body line\n",
        "b.docx": b"Second newsletter body line\n",
        "c.docx": b"Third newsletter body line\n",
    }
    fetcher = fake_fetcher(files, fail={"b.docx"})
    report = await _ingest(fetcher, ["a.docx", "b.docx", "c.docx"])

    assert sorted(d.source_ref for d in report.documents) == ["a.docx", "c.docx"]
    assert report.failed == 1
    assert report.failures[0].identifier == "b.docx"
    assert report.failures[0].kind == "fetch"


@pytest.mark.asyncio
async def test_placeholder_policy(fake_fetcher):
    fetcher = fake_fetcher({"a.docx": b"A perfectly fine newsletter\n"}, fail={"broken_upload.docx"})
    cfg = IngestConfig(failure_policy=FailurePolicy.PLACEHOLDER)
    report = await _ingest(fetcher, ["a.docx", "broken_upload.docx"], cfg=cfg)

    placeholders = [d for d in report.documents if d.is_placeholder]
    assert len(placeholders) == 1
    stub = placeholders[0]
    assert stub.title == "Broken Upload"
    assert "broken_upload.docx" in stub.excerpt
    assert stub.source_ref == "broken_upload.docx"
    assert report.failed == 1
    assert report.placeholders == 1


@pytest.mark.asyncio
async def test_drop_policy(fake_fetcher):
    fetcher = fake_fetcher({"a.docx": b"A perfectly fine newsletter\n"}, fail={"broken.docx"})
    report = await _ingest(fetcher, ["a.docx", "broken.docx"], cfg=IngestConfig())
    assert [d.source_ref for d in report.documents] == ["a.docx"]
    assert not any(d.is_placeholder for d in report.documents)


@pytest.mark.asyncio
async def test_sorted_non_increasing(fake_fetcher):
    files = {
        "2023-01-05 a.docx": b"January newsletter body\n",
        "b.docx": b"Body mentions December 1, 2024 somewhere\n",
        "2024-06-30 c.docx": b"June newsletter body\n",
        "d.docx": b"No date in here at all\n",
    }
    report = await _ingest(fake_fetcher(files), list(files))
    dates = [d.date for d in report.documents]
    assert dates == sorted(dates, reverse=True)


@pytest.mark.asyncio
async def test_equal_dates_keep_manifest_order(fake_fetcher):
    files = {f"{name}.docx": b"Undated newsletter body\n" for name in ("one", "two", "three")}
    report = await _ingest(fake_fetcher(files), list(files))
    assert [d.id for d in report.documents] == ["one", "two", "three"]


# --- failure kinds ----------------------------------------------------------


@pytest.mark.asyncio
async def test_empty_bytes_fail(fake_fetcher):
    report = await _ingest(fake_fetcher({"empty.docx": b""}), ["empty.docx"])
    assert report.documents == []
    assert report.failures[0].kind == "empty"


@pytest.mark.asyncio
async def test_blank_text_fails(fake_fetcher):
    report = await _ingest(fake_fetcher({"blank.docx": b"  \n\n  "}), ["blank.docx"])
    assert report.failures[0].kind == "empty"


@pytest.mark.asyncio
async def test_conversion_error(fake_fetcher):
    report = await _ingest(
        fake_fetcher({"x.docx": b"bytes"}), ["x.docx"], converter_for=lambda i: _BrokenConverter()
    )
    assert report.failures[0].kind == "conversion"
    assert "corrupt document" in report.failures[0].detail


@pytest.mark.asyncio
async def test_unsupported_type(fake_fetcher):
    report = await ingest(["scan.pdf"], fake_fetcher({"scan.pdf": b"%PDF"}), today=TODAY)
    assert report.failures[0].kind == "conversion"
    assert "unsupported" in report.failures[0].detail


@pytest.mark.asyncio
async def test_duplicate_ids_made_unique(fake_fetcher):
    files = {"Update.docx": b"Newsletter one body\n", "update.txt": b"Newsletter two body\n"}
    report = await _ingest(fake_fetcher(files), list(files))
    assert sorted(d.id for d in report.documents) == ["update", "update-2"]


# --- concurrency ------------------------------------------------------------


@pytest.mark.asyncio
async def test_fetches_run_concurrently(fake_fetcher):
    files = {f"{n}.docx": b"Some newsletter body\n" for n in "abc"}
    fetcher = fake_fetcher(files, delays={"a.docx": 0.05, "b.docx": 0.05, "c.docx": 0.05})
    await _ingest(fetcher, list(files))
    assert fetcher.max_in_flight == 3


@pytest.mark.asyncio
async def test_max_concurrency_limits_fan_out(fake_fetcher):
    files = {f"{n}.docx": b"Some newsletter body\n" for n in "abc"}
    fetcher = fake_fetcher(files, delays={"a.docx": 0.02, "b.docx": 0.02, "c.docx": 0.02})
    await _ingest(fetcher, list(files), cfg=IngestConfig(max_concurrency=1))
    assert fetcher.max_in_flight == 1


@pytest.mark.asyncio
async def test_slow_failure_does_not_block_siblings(fake_fetcher):
    files = {"fast.docx": b"Fast newsletter body\n"}
    fetcher = fake_fetcher(files, fail={"slow.docx"}, delays={"slow.docx": 0.05})
    report = await _ingest(fetcher, ["slow.docx", "fast.docx"])
    assert [d.source_ref for d in report.documents] == ["fast.docx"]


# --- content modes ----------------------------------------------------------


@pytest.mark.asyncio
async def test_markup_mode_normalizes_html(fake_fetcher):
    body = b"Garden Report for the Month\nWe planted tomatoes and beans along the south fence this week."
    report = await _ingest(
        fake_fetcher({"g.docx": body}), ["g.docx"], converter_for=lambda i: _HtmlConverter()
    )
    doc = report.documents[0]
    assert doc.content.startswith('<p class="centered">Garden Report for the Month</p>\n<p>')
    assert doc.raw_text == body.decode()
    assert "converted by test" in doc.warnings


@pytest.mark.asyncio
async def test_text_mode_keeps_plain_text(fake_fetcher):
    body = b"Hi there\nshort"
    cfg = IngestConfig(content_mode=ContentMode.TEXT)
    report = await _ingest(
        fake_fetcher({"g.docx": body}), ["g.docx"], cfg=cfg, converter_for=lambda i: _HtmlConverter()
    )
    doc = report.documents[0]
    assert doc.content == "Hi there\nshort"
    assert doc.title == "Hi there"


def test_build_document_whitespace_body_has_fallbacks():
    doc = build_document(
        "monthly_notes.docx", "   \n \n\t", None, cfg=IngestConfig(), today=TODAY
    )
    assert doc.title == "Monthly Notes"
    assert doc.excerpt == "Click to read this newsletter..."
    assert doc.date == TODAY


def test_build_document_date_fallback_warning():
    cfg = IngestConfig(date_fallback_warning=True)
    doc = build_document("x.docx", "Some body text", None, cfg=cfg, today=TODAY)
    assert any("No date found" in w for w in doc.warnings)

    quiet = build_document("x.docx", "Some body text", None, cfg=IngestConfig(), today=TODAY)
    assert quiet.warnings == ()


def test_build_document_is_deterministic():
    args = ("a.docx", UPDATE_BODY, None)
    first = build_document(*args, cfg=IngestConfig(), today=TODAY)
    second = build_document(*args, cfg=IngestConfig(), today=TODAY)
    assert first == second


# --- build_archive ----------------------------------------------------------


@pytest.mark.asyncio
async def test_build_archive_from_folder(site):
    settings = Settings(source={"base": str(site)})
    archive = await build_archive(settings, today=TODAY)

    assert len(archive.store) == 2
    assert archive.store.get_by_id("2024-08-22-update").date == dt.date(2024, 8, 22)
    assert [d.id for d in archive.store.filter("makers")] == ["welcome"]
    assert not archive.report.manifest_unavailable


@pytest.mark.asyncio
async def test_build_archive_missing_manifest(tmp_path):
    settings = Settings(source={"base": str(tmp_path)})
    archive = await build_archive(settings, today=TODAY)

    assert archive.is_empty
    assert archive.report.manifest_unavailable
    assert "not found" in archive.report.manifest_error


@pytest.mark.asyncio
async def test_build_archive_with_docx(tmp_path, docx_bytes):
    (tmp_path / "newsletters").mkdir()
    (tmp_path / "newsletters" / "2024-05-01 Spring.docx").write_bytes(
        docx_bytes(
            ["Our spring gathering brought together more than forty members from the valley."],
            heading="Spring Gathering Recap",
            image=True,
        )
    )
    (tmp_path / "newsletters.json").write_text(json.dumps({"files": ["2024-05-01 Spring.docx"]}))

    archive = await build_archive(Settings(source={"base": str(tmp_path)}), today=TODAY)
    doc = archive.store.get_by_id("2024-05-01-spring")
    assert doc.title == "Spring Gathering Recap"
    assert doc.date == dt.date(2024, 5, 1)
    assert doc.date_source == DateSource.IDENTIFIER
    assert doc.excerpt.startswith("Our spring gathering")
    assert "<h1>Spring Gathering Recap</h1>" in doc.content
    assert '<div class="image-block centered"><img src="data:image/png;base64,' in doc.content


@pytest.mark.asyncio
async def test_build_archive_closes_injected_fetcher_only_when_owned(site, fake_fetcher):
    fetcher = fake_fetcher({"newsletters.json": b'{"files": []}'})
    archive = await build_archive(Settings(source={"base": str(site)}), fetcher=fetcher)
    assert archive.report.manifest_unavailable
    assert fetcher.closed is False
