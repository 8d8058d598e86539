import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from blocksync.models.document import PersistedBlock, SyncChangeSet
from blocksync.core.errors import BlockStoreError

class BlockStore(ABC):
    """
    Durable block + embedding state per document.
    Implementations must make commit() all-or-nothing.
    """

    def __init__(self):
        self._locks_guard = threading.Lock()
        self._document_locks: Dict[str, threading.Lock] = {}

    @abstractmethod
    def load_blocks(self, document_id: str) -> List[PersistedBlock]:
        """Returns all non-deleted blocks of a document with their embedding attached (if any)."""
        pass

    @abstractmethod
    def commit(self, changes: SyncChangeSet) -> None:
        """Applies inserts, updates and soft-deletes of one pass atomically."""
        pass

    @abstractmethod
    def delete_document(self, document_id: str) -> None:
        pass

    def document_lock(self, document_id: str) -> threading.Lock:
        """Per-document mutex; synchronization passes for one document must hold it."""
        with self._locks_guard:
            if document_id not in self._document_locks:
                self._document_locks[document_id] = threading.Lock()
            return self._document_locks[document_id]

class DocumentContentSource(ABC):
    @abstractmethod
    def get_content(self, document_id: str) -> Optional[str]:
        """Returns the current raw markdown of a document, or None if it does not exist."""
        pass

def apply_changes(blocks: Dict[str, PersistedBlock], changes: SyncChangeSet) -> Dict[str, PersistedBlock]:
    """
    Returns a new id -> block mapping with the change set applied.
    The input mapping is left untouched so a failed validation leaves the store as it was.
    """
    result = dict(blocks)

    for block in changes.created:
        if block.id in result:
            raise BlockStoreError(f"Block {block.id} already exists in document {changes.document_id}")
        result[block.id] = block

    for block in changes.updated:
        current = result.get(block.id)
        if current is None or current.deleted_at is not None:
            raise BlockStoreError(f"Cannot update missing or deleted block {block.id}")
        result[block.id] = block

    for block in changes.deleted:
        current = result.get(block.id)
        if current is None:
            raise BlockStoreError(f"Cannot delete missing block {block.id}")
        if block.deleted_at is None:
            raise BlockStoreError(f"Deleted block {block.id} carries no deleted_at")
        result[block.id] = current.model_copy(update={
            "deleted_at": block.deleted_at,
            "updated_at": block.updated_at,
            "embedding": None
        })

    for block in result.values():
        if block.document_id != changes.document_id:
            raise BlockStoreError(f"Block {block.id} belongs to document {block.document_id}, not {changes.document_id}")

    return result
