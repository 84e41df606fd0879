"""Exception hierarchy for docshelf."""

from __future__ import annotations


class DocShelfError(Exception):
    """Base class for all docshelf errors."""


class FileTooLargeError(DocShelfError):
    """Raised at intake when a file exceeds the upload ceiling."""

    def __init__(self, name: str, size: int, limit: int) -> None:
        super().__init__(
            f"{name} is {size} bytes; files must be smaller than {limit // (1024 * 1024)}MB"
        )
        self.name = name
        self.size = size
        self.limit = limit


class QuotaExceededError(DocShelfError):
    """Raised by the local cache when a write would exceed its byte quota."""


class AIServiceError(DocShelfError):
    """Raised when an AI service call fails or returns an unusable response."""


class RecordNotFoundError(DocShelfError):
    """Raised when a remote record targeted by an update does not exist."""

    def __init__(self, doc_id: str) -> None:
        super().__init__(f"Record '{doc_id}' not found")
        self.doc_id = doc_id
