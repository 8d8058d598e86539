"""Exception hierarchy for parsing, embedding and block synchronization.

The parser never raises for document content. Everything else that can go
wrong during a synchronization pass surfaces as a :class:`BlockSyncError`
subclass so callers can tell a provider outage from a store failure and
decide whether a retry makes sense.
"""

from __future__ import annotations

__all__ = [
    "BlockSyncError",
    "ConfigurationError",
    "EmbeddingProviderError",
    "BlockStoreError",
    "DocumentNotFoundError",
    "SyncCancelledError",
]


class BlockSyncError(RuntimeError):
    """Base exception for block synchronization failures."""


class ConfigurationError(BlockSyncError):
    """Raised when settings name an unknown provider or strategy."""


class EmbeddingProviderError(BlockSyncError):
    """Raised when the embedding provider cannot return a usable vector."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class BlockStoreError(BlockSyncError):
    """Raised when the block store cannot read or atomically commit a pass."""


class DocumentNotFoundError(BlockSyncError):
    """Raised when the content source has nothing for a document id."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id


class SyncCancelledError(BlockSyncError):
    """Raised when a pass observes a cancellation request before committing."""
