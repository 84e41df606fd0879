"""In-memory library state and client-side search."""

from __future__ import annotations

from typing import Iterable, Iterator, List, Optional

from docshelf.models import DEFAULT_SOURCE, DocumentMetadata


def matches(doc: DocumentMetadata, term: str) -> bool:
    """Case-insensitive substring match over name, author, source and edition.

    The default "File Upload" source is not searchable.
    """
    needle = term.lower()
    if needle in (doc.name or "").lower():
        return True
    if doc.author and needle in doc.author.lower():
        return True
    if doc.source and doc.source.lower() != DEFAULT_SOURCE.lower() and needle in doc.source.lower():
        return True
    if doc.edition and needle in doc.edition.lower():
        return True
    return False


def filter_documents(documents: Iterable[DocumentMetadata], term: Optional[str]) -> List[DocumentMetadata]:
    docs = list(documents)
    if not term:
        return docs
    return [doc for doc in docs if matches(doc, term)]


class Library:
    """Ordered list of document metadata shown to the user, newest first.

    Local writes update it optimistically; the remote subscription converges
    it to the shared state afterwards (last write wins).
    """

    def __init__(self, documents: Iterable[DocumentMetadata] = ()) -> None:
        self._documents: List[DocumentMetadata] = list(documents)

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[DocumentMetadata]:
        return iter(list(self._documents))

    def __contains__(self, doc_id: object) -> bool:
        return any(doc.id == doc_id for doc in self._documents)

    @property
    def documents(self) -> List[DocumentMetadata]:
        return list(self._documents)

    def index_of(self, doc_id: str) -> int:
        for index, doc in enumerate(self._documents):
            if doc.id == doc_id:
                return index
        return -1

    def get(self, doc_id: str) -> Optional[DocumentMetadata]:
        index = self.index_of(doc_id)
        return self._documents[index] if index > -1 else None

    def upsert(self, doc: DocumentMetadata) -> None:
        index = self.index_of(doc.id)
        if index > -1:
            self._documents[index] = doc
        else:
            self._documents.insert(0, doc)

    def insert(self, position: int, doc: DocumentMetadata) -> None:
        self._documents.insert(position, doc)

    def remove(self, doc_id: str) -> bool:
        index = self.index_of(doc_id)
        if index == -1:
            return False
        del self._documents[index]
        return True

    def replace_all(self, documents: Iterable[DocumentMetadata]) -> None:
        self._documents = list(documents)

    def extend(self, documents: Iterable[DocumentMetadata]) -> None:
        for doc in documents:
            if doc.id not in self:
                self._documents.append(doc)

    def search(self, term: Optional[str]) -> List[DocumentMetadata]:
        return filter_documents(self._documents, term)
