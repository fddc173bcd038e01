"""Ingestion pipeline — orchestrates manifest → fetch → convert → derive → store."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from newsarchive.config import ConverterConfig, IngestConfig, Settings, get_settings
from newsarchive.errors import ConversionFailed, EmptyDocument, IngestionError, ManifestUnavailable
from newsarchive.ingest.converters import DocumentConverter, convert, get_converter
from newsarchive.ingest.fetchers import ByteFetcher, make_fetcher
from newsarchive.ingest.formatting import normalize_html
from newsarchive.ingest.heuristics import (
    derive_date,
    derive_excerpt,
    derive_title,
    identifier_to_id,
    title_from_identifier,
    truncate,
)
from newsarchive.ingest.manifest import load_manifest
from newsarchive.models import ContentMode, DateSource, Document, FailurePolicy, IngestFailure, IngestReport
from newsarchive.stores.collection import CollectionStore

log = logging.getLogger(__name__)

ConverterLookup = Callable[[str], "DocumentConverter | None"]


def build_document(
    identifier: str,
    text: str,
    html: str | None,
    *,
    cfg: IngestConfig,
    today: dt.date,
    warnings: Iterable[str] = (),
) -> Document:
    """Derive title, excerpt, and date and assemble a Document."""
    if cfg.content_mode == ContentMode.TEXT:
        min_len, max_len = cfg.text_title_min_length, cfg.text_title_max_length
        content = text
    else:
        min_len, max_len = cfg.title_min_length, cfg.title_max_length
        content = normalize_html(html) if html else text

    title = derive_title(
        text, identifier, min_length=min_len, max_length=max_len, truncate_to=cfg.title_truncate
    )
    excerpt = derive_excerpt(
        text,
        min_length=cfg.excerpt_min_length,
        max_length=cfg.excerpt_max_length,
        truncate_to=cfg.excerpt_truncate,
    )
    date, date_source = derive_date(text, identifier, today=today)

    notes = list(warnings)
    if date_source == DateSource.DEFAULT:
        if cfg.date_fallback_warning:
            log.warning("No date found for %s, using %s", identifier, date.isoformat())
            notes.append(f"No date found; defaulted to {date.isoformat()}")
        else:
            log.debug("No date found for %s, using %s", identifier, date.isoformat())

    return Document(
        id=identifier_to_id(identifier),
        title=title,
        date=date,
        excerpt=excerpt,
        content=content,
        raw_text=text,
        source_ref=identifier,
        date_source=date_source,
        warnings=tuple(notes),
    )


def make_placeholder(identifier: str, error: IngestionError, *, cfg: IngestConfig, today: dt.date) -> Document:
    """Stand-in record so a failed upload stays visible."""
    reason = error.detail or error.kind
    excerpt = truncate(f"Could not load {identifier}: {reason}", cfg.excerpt_truncate)
    return Document(
        id=identifier_to_id(identifier),
        title=truncate(title_from_identifier(identifier), cfg.title_truncate),
        date=today,
        excerpt=excerpt,
        content=excerpt,
        raw_text=excerpt,
        source_ref=identifier,
        is_placeholder=True,
        warnings=(str(error),),
    )


async def ingest_one(
    identifier: str,
    fetcher: ByteFetcher,
    *,
    cfg: IngestConfig,
    converter_cfg: ConverterConfig,
    content_ref: Callable[[str], str] = lambda identifier: identifier,
    converter_for: ConverterLookup = get_converter,
    today: dt.date,
) -> Document:
    """Fetch, convert, and structure one identifier.

    Raises:
        FetchFailed, ConversionFailed, EmptyDocument
    """
    converter = converter_for(identifier)
    if converter is None:
        raise ConversionFailed(identifier, "unsupported file type")

    data = await fetcher.fetch(content_ref(identifier))
    if not data:
        raise EmptyDocument(identifier, "file is empty")

    try:
        conversion = await asyncio.to_thread(
            convert,
            converter,
            data,
            markup=cfg.content_mode == ContentMode.MARKUP,
            style_map=converter_cfg.style_map,
            inline_images=converter_cfg.inline_images,
        )
    except Exception as e:
        raise ConversionFailed(identifier, f"{type(e).__name__}: {e}") from e

    if not conversion.text.strip():
        raise EmptyDocument(identifier, "no text extracted")

    for warning in conversion.warnings:
        log.debug("Converter warning for %s: %s", identifier, warning)

    return build_document(
        identifier,
        conversion.text,
        conversion.html,
        cfg=cfg,
        today=today,
        warnings=conversion.warnings,
    )


async def ingest(
    identifiers: Iterable[str],
    fetcher: ByteFetcher,
    *,
    cfg: IngestConfig | None = None,
    converter_cfg: ConverterConfig | None = None,
    content_ref: Callable[[str], str] = lambda identifier: identifier,
    converter_for: ConverterLookup = get_converter,
    today: dt.date | None = None,
) -> IngestReport:
    """Ingest every identifier concurrently; never raises for a single file.

    Returns an IngestReport whose documents are sorted newest first.
    """
    cfg = cfg or IngestConfig()
    converter_cfg = converter_cfg or ConverterConfig()
    today = today or dt.date.today()
    identifiers = list(identifiers)
    semaphore = asyncio.Semaphore(cfg.max_concurrency) if cfg.max_concurrency else None

    async def _run(identifier: str) -> tuple[Document | None, IngestFailure | None]:
        try:
            if semaphore is None:
                doc = await _ingest(identifier)
            else:
                async with semaphore:
                    doc = await _ingest(identifier)
            return doc, None
        except IngestionError as e:
            log.warning("Failed to ingest %s (%s): %s", identifier, e.kind, e.detail)
            error = e
        except Exception as e:
            log.exception("Unexpected error ingesting %s", identifier)
            error = ConversionFailed(identifier, f"{type(e).__name__}: {e}")

        failure = IngestFailure(identifier=identifier, kind=error.kind, detail=error.detail)
        if cfg.failure_policy == FailurePolicy.PLACEHOLDER:
            return make_placeholder(identifier, error, cfg=cfg, today=today), failure
        return None, failure

    def _ingest(identifier: str):
        return ingest_one(
            identifier,
            fetcher,
            cfg=cfg,
            converter_cfg=converter_cfg,
            content_ref=content_ref,
            converter_for=converter_for,
            today=today,
        )

    log.info("Ingesting %d file(s)", len(identifiers))
    results = await asyncio.gather(*(_run(i) for i in identifiers))

    report = IngestReport()
    documents: list[Document] = []
    for doc, failure in results:
        if failure is not None:
            report.failures.append(failure)
        if doc is not None:
            documents.append(doc)

    report.documents = CollectionStore(documents).get_all()
    log.info(
        "Ingested %d document(s), %d failure(s)",
        len(report.documents) - report.placeholders,
        report.failed,
    )
    return report


# ---------------------------------------------------------------------------
# Composition root
# ---------------------------------------------------------------------------

@dataclass
class Archive:
    """Result of one ingestion run: the store plus its diagnostics."""

    store: CollectionStore
    report: IngestReport = field(default_factory=IngestReport)

    @property
    def is_empty(self) -> bool:
        return self.store.is_empty


async def build_archive(
    settings: Settings | None = None,
    *,
    fetcher: ByteFetcher | None = None,
    today: dt.date | None = None,
) -> Archive:
    """Load the manifest, ingest every listed file, and build the store.

    A missing or unusable manifest yields an empty archive with
    ``report.manifest_unavailable`` set; nothing is raised.
    """
    settings = settings or get_settings()
    owns_fetcher = fetcher is None
    if fetcher is None:
        fetcher = make_fetcher(settings.base_location, timeout=settings.source.timeout)

    try:
        try:
            identifiers = await load_manifest(
                fetcher, settings.manifest_ref, key=settings.source.manifest_key
            )
        except ManifestUnavailable as e:
            log.warning("Manifest unavailable: %s", e)
            report = IngestReport(manifest_unavailable=True, manifest_error=str(e))
            return Archive(store=CollectionStore(), report=report)

        report = await ingest(
            identifiers,
            fetcher,
            cfg=settings.ingest,
            converter_cfg=settings.converter,
            content_ref=settings.content_ref,
            today=today,
        )
    finally:
        if owns_fetcher:
            await fetcher.aclose()

    return Archive(store=CollectionStore(report.documents), report=report)
