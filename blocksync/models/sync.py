from pydantic import BaseModel, Field
from blocksync.models.block import ParsedBlock
from blocksync.models.document import PersistedBlock

class BlockMatch(BaseModel):
    parsed: ParsedBlock
    existing: PersistedBlock | None = None   # None = no counterpart, create

class MatchResult(BaseModel):
    matches: list[BlockMatch]
    unclaimed: list[PersistedBlock]          # existing blocks nothing claimed, delete

class SyncSummary(BaseModel):
    document_id: str
    created: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    moved: int = 0                           # hash_then_range only
    embeddings_generated: int = 0
    # Timings
    parse_ms: float = 0.0
    embed_ms: float = 0.0
    commit_ms: float = 0.0
    total_ms: float = 0.0

class LineCoverageStatus(BaseModel):
    line_number: int                         # 0-based
    is_covered: bool
    block_id: str | None = None
    is_empty: bool

class CoverageReport(BaseModel):
    document_id: str
    percentage: float                        # 0-100 over non-blank lines
    total_non_empty_lines: int
    covered_non_empty_lines: int
    line_statuses: list[LineCoverageStatus] = Field(default_factory=list)
