import threading
from typing import Dict, List
from blocksync.models.document import PersistedBlock, SyncChangeSet
from blocksync.storage.base import BlockStore, apply_changes

class InMemoryBlockStore(BlockStore):
    """
    Process-local BlockStore.
    - Reads return deep copies so callers cannot mutate committed state.
    - A commit swaps in a fully built document state, so it either lands whole or not at all.
    """

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()
        self._documents: Dict[str, Dict[str, PersistedBlock]] = {}

    def load_blocks(self, document_id: str) -> List[PersistedBlock]:
        with self._lock:
            blocks = self._documents.get(document_id, {}).values()
            live = [b.model_copy(deep=True) for b in blocks if b.deleted_at is None]
        return sorted(live, key=lambda b: (b.start_line, b.end_line))

    def all_blocks(self, document_id: str) -> List[PersistedBlock]:
        """Every block of a document, soft-deleted ones included."""
        with self._lock:
            return [b.model_copy(deep=True) for b in self._documents.get(document_id, {}).values()]

    def commit(self, changes: SyncChangeSet) -> None:
        with self._lock:
            current = self._documents.get(changes.document_id, {})
            self._documents[changes.document_id] = apply_changes(current, changes.model_copy(deep=True))

    def delete_document(self, document_id: str) -> None:
        with self._lock:
            self._documents.pop(document_id, None)
