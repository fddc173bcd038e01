"""Error taxonomy for manifest loading and document ingestion."""

from __future__ import annotations


class ArchiveError(Exception):
    """Base class for all archive errors."""


class ManifestUnavailable(ArchiveError):
    """The manifest could not be fetched, parsed, or listed no files."""


class IngestionError(ArchiveError):
    """Ingestion of a single identifier failed."""

    kind = "error"

    def __init__(self, identifier: str, detail: str = ""):
        self.identifier = identifier
        self.detail = detail
        message = f"{identifier}: {detail}" if detail else identifier
        super().__init__(message)


class FetchFailed(IngestionError):
    """Network, HTTP-status, or file-system error while fetching bytes."""

    kind = "fetch"


class ConversionFailed(IngestionError):
    """The converter rejected the document."""

    kind = "conversion"


class EmptyDocument(IngestionError):
    """Bytes were empty or the extracted text was blank."""

    kind = "empty"
