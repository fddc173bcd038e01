"""Shared domain models used across the system."""

from __future__ import annotations

import datetime as dt
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ContentMode(str, Enum):
    MARKUP = "markup"
    TEXT = "text"


class FailurePolicy(str, Enum):
    DROP = "drop"
    PLACEHOLDER = "placeholder"


class DateSource(str, Enum):
    BODY = "body"
    IDENTIFIER = "identifier"
    DEFAULT = "default"


class Document(BaseModel):
    """One newsletter after conversion and heuristic structuring.

    Immutable: use ``model_copy(update=...)`` to produce a replacement.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = Field(min_length=1)
    date: dt.date
    excerpt: str = Field(min_length=1)
    content: str
    raw_text: str
    source_ref: str
    is_placeholder: bool = False
    date_source: DateSource = DateSource.DEFAULT
    warnings: tuple[str, ...] = ()


class Conversion(BaseModel):
    """Output of a document converter."""

    text: str
    html: str | None = None
    warnings: list[str] = []


class IngestFailure(BaseModel):
    """Diagnostic record for one identifier that could not be ingested."""

    identifier: str
    kind: str
    detail: str = ""


class IngestReport(BaseModel):
    """Everything a page load produces: documents plus diagnostics."""

    documents: list[Document] = []
    failures: list[IngestFailure] = []
    manifest_unavailable: bool = False
    manifest_error: str | None = None

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def placeholders(self) -> int:
        return sum(1 for d in self.documents if d.is_placeholder)
