import os
import json
import tempfile
import threading
from typing import Dict, List, Optional
from blocksync.config.settings import StorageConfig, settings
from blocksync.models.document import PersistedBlock, SyncChangeSet
from blocksync.storage.base import BlockStore, DocumentContentSource, apply_changes
from blocksync.core.errors import BlockStoreError

def _safe_name(document_id: str) -> str:
    if not document_id or os.path.basename(document_id) != document_id or document_id in (".", ".."):
        raise BlockStoreError(f"Invalid document id for file storage: {document_id!r}")
    return document_id

class LocalBlockStore(BlockStore):
    """
    Implements BlockStore on the local disk.
    - One JSON file per document: {block_id: block}.
    - Commits write a temp file and os.replace() it, so readers never see half a pass.
    """

    def __init__(self, blocks_path: Optional[str] = None):
        super().__init__()
        self.blocks_path = blocks_path or settings.storage.blocks_path
        self._io_lock = threading.Lock()
        os.makedirs(self.blocks_path, exist_ok=True)

    def _path(self, document_id: str) -> str:
        return os.path.join(self.blocks_path, f"{_safe_name(document_id)}.json")

    def _read(self, document_id: str) -> Dict[str, PersistedBlock]:
        path = self._path(document_id)
        if not os.path.exists(path):
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return {bid: PersistedBlock.model_validate(b) for bid, b in data.items()}
        except (OSError, ValueError) as e:
            raise BlockStoreError(f"Could not read blocks for {document_id}: {e}") from e

    def load_blocks(self, document_id: str) -> List[PersistedBlock]:
        with self._io_lock:
            blocks = self._read(document_id)
        live = [b for b in blocks.values() if b.deleted_at is None]
        return sorted(live, key=lambda b: (b.start_line, b.end_line))

    def all_blocks(self, document_id: str) -> List[PersistedBlock]:
        with self._io_lock:
            return list(self._read(document_id).values())

    def commit(self, changes: SyncChangeSet) -> None:
        with self._io_lock:
            blocks = apply_changes(self._read(changes.document_id), changes)
            data = {bid: b.model_dump(mode="json") for bid, b in blocks.items()}
            path = self._path(changes.document_id)

            fd, tmp_path = tempfile.mkstemp(dir=self.blocks_path, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, path)
            except OSError as e:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise BlockStoreError(f"Could not commit blocks for {changes.document_id}: {e}") from e

    def delete_document(self, document_id: str) -> None:
        with self._io_lock:
            path = self._path(document_id)
            if os.path.exists(path):
                os.remove(path)

class LocalDocumentSource(DocumentContentSource):
    """Reads document markdown from {documents_path}/{document_id}.md."""

    def __init__(self, config: Optional[StorageConfig] = None):
        self.documents_path = (config or settings.storage).documents_path
        os.makedirs(self.documents_path, exist_ok=True)

    def _path(self, document_id: str) -> str:
        return os.path.join(self.documents_path, f"{_safe_name(document_id)}.md")

    def get_content(self, document_id: str) -> Optional[str]:
        path = self._path(document_id)
        if not os.path.exists(path):
            return None
        # newline="" keeps \r so line numbers match what the editor sees
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()

    def save_document(self, document_id: str, content: str) -> str:
        path = self._path(document_id)
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        return path
