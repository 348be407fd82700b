from __future__ import annotations


class IngestError(Exception):
    """Base class for failures surfaced by the ingestion pipeline."""

    def __init__(self, reason: str, message: str | None = None):
        super().__init__(message or reason)
        self.reason = reason


class InputError(IngestError):
    """The payload was missing, oversized, malformed or of a disallowed type."""


class DecodeError(IngestError):
    """The payload claimed to be an image but could not be decoded or re-encoded."""


class StoreError(IngestError):
    """A metadata or blob store operation failed."""


class OrphanedBlobError(StoreError):
    """Blob and metadata stores are known to disagree after a partial failure."""

    def __init__(self, reason: str, *, filenames: tuple[str, ...], message: str | None = None):
        super().__init__(reason, message)
        self.filenames = filenames


__all__ = ["IngestError", "InputError", "DecodeError", "StoreError", "OrphanedBlobError"]
