import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from blocksync.config.settings import SyncConfig, settings
from blocksync.core.cancellation import CancellationToken
from blocksync.core.embed.base import EmbeddingProvider
from blocksync.core.sync.matcher import create_matcher
from blocksync.models.block import ParsedBlock
from blocksync.models.document import BlockEmbedding, PersistedBlock, SyncChangeSet
from blocksync.models.sync import SyncSummary
from blocksync.storage.base import BlockStore

logger = logging.getLogger(__name__)

def select_embedding_text(normalized_text: str, raw_text: str, min_length: int = 1) -> str:
    """
    Text sent to the embedding provider.
    Normalized text when long enough, else trimmed raw text, else normalized text as-is (maybe empty).
    """
    if normalized_text and normalized_text.strip() and len(normalized_text.strip()) >= min_length:
        return normalized_text

    raw_trimmed = (raw_text or "").strip()
    if raw_trimmed:
        return raw_trimmed

    return normalized_text or ""

class BlockReconciler:
    """
    Decides create/update/skip/move/delete for a fresh parse against the persisted blocks,
    generates embeddings only for created and changed blocks, then commits once.
    Nothing is written if the provider, the store or a cancellation interrupts the pass.
    """

    def __init__(self,
                 embedding_provider: EmbeddingProvider,
                 block_store: BlockStore,
                 config: Optional[SyncConfig] = None):
        self.embedding_provider = embedding_provider
        self.block_store = block_store
        self.config = config or settings.sync
        self.matcher = create_matcher(self.config.match_strategy)

    def reconcile(self,
                  document_id: str,
                  parsed_blocks: List[ParsedBlock],
                  existing: List[PersistedBlock],
                  cancellation: Optional[CancellationToken] = None) -> SyncSummary:
        summary = SyncSummary(document_id=document_id)
        changes = SyncChangeSet(document_id=document_id)
        now = datetime.now(timezone.utc)

        # 1. Match and plan; existing blocks are copied, never mutated
        result = self.matcher.match(parsed_blocks, existing)
        to_embed: List[Tuple[PersistedBlock, ParsedBlock]] = []

        for match in result.matches:
            parsed, current = match.parsed, match.existing

            if current is None:
                block = PersistedBlock(
                    id=str(uuid.uuid4()),
                    document_id=document_id,
                    block_type=parsed.block_type,
                    start_line=parsed.start_line,
                    end_line=parsed.end_line,
                    raw_text=parsed.raw_text,
                    normalized_text=parsed.normalized_text,
                    content_hash=parsed.content_hash,
                    created_at=now,
                    updated_at=now
                )
                changes.created.append(block)
                to_embed.append((block, parsed))
                summary.created += 1

            elif current.content_hash != parsed.content_hash:
                block = current.model_copy(deep=True, update={
                    "block_type": parsed.block_type,
                    "start_line": parsed.start_line,
                    "end_line": parsed.end_line,
                    "raw_text": parsed.raw_text,
                    "normalized_text": parsed.normalized_text,
                    "content_hash": parsed.content_hash,
                    "updated_at": now
                })
                changes.updated.append(block)
                to_embed.append((block, parsed))
                summary.updated += 1

            elif current.line_range != parsed.line_range:
                # Same content at a new position: keep the embedding
                block = current.model_copy(deep=True, update={
                    "start_line": parsed.start_line,
                    "end_line": parsed.end_line,
                    "raw_text": parsed.raw_text,
                    "updated_at": now
                })
                changes.updated.append(block)
                summary.moved += 1

            else:
                summary.skipped += 1

        for current in result.unclaimed:
            changes.deleted.append(current.model_copy(update={"deleted_at": now, "updated_at": now, "embedding": None}))
            summary.deleted += 1

        # 2. Embeddings for created/changed blocks only
        embed_start = time.perf_counter()
        texts = [
            select_embedding_text(parsed.normalized_text, parsed.raw_text, self.config.min_text_length_for_embedding)
            for _, parsed in to_embed
        ]
        vectors = self._generate_embeddings(texts, cancellation)
        summary.embed_ms = (time.perf_counter() - embed_start) * 1000
        summary.embeddings_generated = len(vectors)

        embedded_at = datetime.now(timezone.utc)
        for (block, _), vector in zip(to_embed, vectors):
            if block.embedding is None:
                block.embedding = BlockEmbedding(
                    block_id=block.id,
                    vector=vector,
                    model=self.embedding_provider.model,
                    version=1,
                    created_at=embedded_at
                )
            else:
                block.embedding = block.embedding.model_copy(update={
                    "vector": vector,
                    "model": self.embedding_provider.model,
                    "version": block.embedding.version + 1,
                    "created_at": embedded_at
                })

        # 3. One atomic commit; a no-op pass writes nothing
        if cancellation is not None:
            cancellation.raise_if_cancelled(f"before commit of {document_id}")
        if not changes.is_empty():
            commit_start = time.perf_counter()
            self.block_store.commit(changes)
            summary.commit_ms = (time.perf_counter() - commit_start) * 1000

        return summary

    def _generate_embeddings(self, texts: List[str], cancellation: Optional[CancellationToken]) -> List[List[float]]:
        if not texts:
            return []

        if self.config.embedding_workers <= 1 or len(texts) == 1:
            vectors = []
            for text in texts:
                if cancellation is not None:
                    cancellation.raise_if_cancelled("embedding generation")
                vectors.append(self.embedding_provider.generate(text, cancellation))
            return vectors

        # Blocks are independent, so only the provider calls run concurrently
        workers = min(self.config.embedding_workers, len(texts))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="blocksync-embed") as pool:
            futures = [pool.submit(self._generate_one, text, cancellation) for text in texts]
            try:
                return [f.result() for f in futures]
            except BaseException:
                for f in futures:
                    f.cancel()
                raise

    def _generate_one(self, text: str, cancellation: Optional[CancellationToken]) -> List[float]:
        if cancellation is not None:
            cancellation.raise_if_cancelled("embedding generation")
        return self.embedding_provider.generate(text, cancellation)
