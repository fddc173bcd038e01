"""Search/filter over an in-memory list of newsletters."""

from __future__ import annotations

from collections.abc import Iterable

from newsarchive.models import Document


def matches(doc: Document, query: str) -> bool:
    """Case-insensitive substring match on title, excerpt, or raw text."""
    needle = query.casefold()
    return (
        needle in doc.title.casefold()
        or needle in doc.excerpt.casefold()
        or needle in doc.raw_text.casefold()
    )


def filter_documents(documents: Iterable[Document], query: str) -> list[Document]:
    """Return the documents matching *query*, in their original order.

    An empty query returns everything. Any other query, whitespace
    included, is matched as given. Each call is a linear scan with no
    index, which is fine for one archive's worth of newsletters but will
    not scale to large collections.
    """
    if query == "":
        return list(documents)
    return [d for d in documents if matches(d, query)]
