from datetime import datetime
from typing import Tuple
from pydantic import BaseModel, Field
from blocksync.models.block import BlockType

class BlockEmbedding(BaseModel):
    block_id: str
    vector: list[float]
    model: str                       # provider identifier, e.g. "nomic-embed-text"
    version: int = 1                 # bumped on every regeneration
    created_at: datetime

class PersistedBlock(BaseModel):
    # Identity
    id: str
    document_id: str
    # Content
    block_type: BlockType
    start_line: int
    end_line: int
    raw_text: str
    normalized_text: str
    content_hash: str
    # Lifecycle
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None   # soft delete
    embedding: BlockEmbedding | None = None

    @property
    def line_range(self) -> Tuple[int, int]:
        return (self.start_line, self.end_line)

class SyncChangeSet(BaseModel):
    """All writes of one synchronization pass, committed as a unit."""
    document_id: str
    created: list[PersistedBlock] = Field(default_factory=list)
    updated: list[PersistedBlock] = Field(default_factory=list)   # includes moved blocks
    deleted: list[PersistedBlock] = Field(default_factory=list)   # deleted_at set, embedding cleared

    def is_empty(self) -> bool:
        return not (self.created or self.updated or self.deleted)
