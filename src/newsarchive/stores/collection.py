"""In-memory collection of ingested newsletters."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from newsarchive.models import Document
from newsarchive.search import filter_documents


class CollectionStore:
    """Holds newsletters sorted by date, newest first.

    Written once per ingestion run and read-only afterwards. Ties on date
    keep arrival order. Ids are made unique on insertion by appending
    ``-2``, ``-3``... to later duplicates.
    """

    def __init__(self, documents: Iterable[Document] = ()):
        unique: list[Document] = []
        taken: set[str] = set()
        for doc in documents:
            if doc.id in taken:
                doc = doc.model_copy(update={"id": self._free_id(doc.id, taken)})
            taken.add(doc.id)
            unique.append(doc)
        # list.sort is stable, so equal dates stay in arrival order
        unique.sort(key=lambda d: d.date, reverse=True)
        self._docs: tuple[Document, ...] = tuple(unique)
        self._by_id = {d.id: d for d in self._docs}

    @staticmethod
    def _free_id(doc_id: str, taken: set[str]) -> str:
        n = 2
        while f"{doc_id}-{n}" in taken:
            n += 1
        return f"{doc_id}-{n}"

    def get_all(self) -> list[Document]:
        """Snapshot of every document in display order."""
        return list(self._docs)

    def get_by_id(self, doc_id: str) -> Document | None:
        return self._by_id.get(doc_id)

    def filter(self, query: str) -> list[Document]:
        return filter_documents(self._docs, query)

    @property
    def is_empty(self) -> bool:
        return not self._docs

    def __len__(self) -> int:
        return len(self._docs)

    def __iter__(self) -> Iterator[Document]:
        return iter(self._docs)
