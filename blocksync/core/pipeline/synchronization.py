import logging
import time
from typing import Callable, List, Optional
from blocksync.config.settings import SyncConfig
from blocksync.core.cancellation import CancellationToken
from blocksync.core.coverage.reporter import CoverageReporter
from blocksync.core.embed.base import EmbeddingProvider
from blocksync.core.errors import DocumentNotFoundError
from blocksync.core.parse.markdown_parser import MarkdownBlockParser
from blocksync.core.sync.reconciler import BlockReconciler
from blocksync.models.block import ParsedBlock
from blocksync.models.sync import CoverageReport, SyncSummary
from blocksync.storage.base import BlockStore, DocumentContentSource

logger = logging.getLogger(__name__)

class BlockSyncPipeline:
    """
    Orchestrates one synchronization pass:
    parse -> load persisted blocks -> reconcile (embed changed blocks) -> atomic commit
    Passes for the same document are serialized through the store's per-document lock.
    """

    def __init__(self,
                 block_store: BlockStore,
                 embedding_provider: EmbeddingProvider,
                 content_source: Optional[DocumentContentSource] = None,
                 parser: Optional[MarkdownBlockParser] = None,
                 sync_config: Optional[SyncConfig] = None):
        self.block_store = block_store
        self.content_source = content_source

        # Initialize components
        self.parser = parser or MarkdownBlockParser()
        self.reconciler = BlockReconciler(embedding_provider, block_store, sync_config)
        self.coverage_reporter = CoverageReporter()

    def parse(self, markdown: str) -> List[ParsedBlock]:
        """Pure parse, no I/O."""
        return self.parser.parse(markdown)

    def synchronize(self,
                    document_id: str,
                    content: str,
                    cancellation: Optional[CancellationToken] = None,
                    progress_callback: Optional[Callable[[int, str], None]] = None) -> SyncSummary:
        """
        Brings the persisted blocks and embeddings of a document in line with its content.
        Raises on provider/store failure or cancellation; nothing from the pass is committed then.
        """
        def update_progress(progress: int, message: str):
            if progress_callback:
                progress_callback(progress, message)
            logger.info(f"[{document_id}] {progress}%: {message}")

        start_time = time.perf_counter()
        content = content or ""
        try:
            with self.block_store.document_lock(document_id):
                update_progress(5, f"Parsing document ({len(content)} chars)")
                parse_start = time.perf_counter()
                parsed_blocks = self.parser.parse(content)
                parse_ms = (time.perf_counter() - parse_start) * 1000
                update_progress(25, f"Parsed {len(parsed_blocks)} blocks in {parse_ms:.1f}ms")

                existing = self.block_store.load_blocks(document_id)
                update_progress(35, f"Loaded {len(existing)} persisted blocks")

                summary = self.reconciler.reconcile(document_id, parsed_blocks, existing, cancellation)

            summary.parse_ms = parse_ms
            summary.total_ms = (time.perf_counter() - start_time) * 1000
            update_progress(
                100,
                f"Synchronized: created={summary.created} updated={summary.updated} "
                f"skipped={summary.skipped} moved={summary.moved} deleted={summary.deleted} "
                f"embeddings={summary.embeddings_generated} embed={summary.embed_ms:.1f}ms "
                f"commit={summary.commit_ms:.1f}ms total={summary.total_ms:.1f}ms"
            )
            return summary

        except Exception as e:
            logger.exception(f"Synchronization failed for {document_id}; nothing was committed")
            if progress_callback:
                progress_callback(-1, str(e))  # -1 signals failure
            raise

    def synchronize_document(self,
                             document_id: str,
                             cancellation: Optional[CancellationToken] = None,
                             progress_callback: Optional[Callable[[int, str], None]] = None) -> SyncSummary:
        """Whole-document refresh: loads the content first, then synchronizes."""
        if self.content_source is None:
            raise ValueError("synchronize_document requires a DocumentContentSource")

        content = self.content_source.get_content(document_id)
        if content is None:
            logger.warning(f"Document {document_id} not found in content source")
            raise DocumentNotFoundError(document_id)

        logger.info(f"Loaded document {document_id} ({len(content)} chars)")
        return self.synchronize(document_id, content, cancellation, progress_callback)

    def coverage_status(self, document_id: str, content: str) -> CoverageReport:
        blocks = self.block_store.load_blocks(document_id)
        return self.coverage_reporter.report(document_id, content, blocks)
