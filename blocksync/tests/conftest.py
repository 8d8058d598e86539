import pytest

from blocksync.config.settings import ParserConfig, SyncConfig
from blocksync.core.embed.base import EmbeddingProvider
from blocksync.core.parse.markdown_parser import MarkdownBlockParser
from blocksync.core.pipeline.synchronization import BlockSyncPipeline
from blocksync.storage.memory_store import InMemoryBlockStore
from blocksync.tests.fakes import FakeEmbeddingProvider


@pytest.fixture
def provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def store():
    return InMemoryBlockStore()


@pytest.fixture
def parser():
    return MarkdownBlockParser(ParserConfig())


@pytest.fixture
def make_pipeline(store, parser):
    """Pipeline factory sharing one store, so a pass can be retried with another provider."""

    def _make(provider: EmbeddingProvider, **sync_overrides) -> BlockSyncPipeline:
        return BlockSyncPipeline(
            store,
            provider,
            parser=parser,
            sync_config=SyncConfig(**sync_overrides),
        )

    return _make


@pytest.fixture
def pipeline(make_pipeline, provider):
    return make_pipeline(provider)
