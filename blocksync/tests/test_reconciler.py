import threading
from datetime import datetime, timezone

import pytest

from blocksync.core.cancellation import CancellationToken
from blocksync.core.errors import BlockStoreError, EmbeddingProviderError, SyncCancelledError
from blocksync.core.sync.reconciler import select_embedding_text
from blocksync.models.block import BlockType
from blocksync.models.document import PersistedBlock, SyncChangeSet
from blocksync.tests.fakes import FakeEmbeddingProvider, fake_vector

DOC = "# Title\n\nSome *bold* text.\n\n- a\n- b\n"


def ranges(blocks):
    return [b.line_range for b in blocks]


def test_first_pass_creates_and_embeds_every_block(pipeline, provider, store):
    summary = pipeline.synchronize("doc-1", DOC)

    assert (summary.created, summary.updated, summary.skipped, summary.deleted) == (3, 0, 0, 0)
    assert summary.embeddings_generated == 3
    assert provider.calls == [
        "HEADING(1): Title",
        "Some bold text.",
        "LIST_ITEM(level=1): a LIST_ITEM(level=1): b",
    ]

    blocks = store.load_blocks("doc-1")
    assert ranges(blocks) == [(0, 0), (2, 2), (4, 5)]
    for block in blocks:
        assert block.document_id == "doc-1"
        assert block.embedding is not None
        assert block.embedding.block_id == block.id
        assert block.embedding.version == 1
        assert block.embedding.model == "fake-embed"
        assert block.embedding.vector == fake_vector(block.normalized_text)


def test_unchanged_document_is_a_no_op(pipeline, provider, store):
    pipeline.synchronize("doc-1", DOC)
    before = store.load_blocks("doc-1")
    provider.calls.clear()

    summary = pipeline.synchronize("doc-1", DOC)

    assert (summary.created, summary.updated, summary.skipped, summary.deleted) == (0, 0, 3, 0)
    assert summary.embeddings_generated == 0
    assert summary.commit_ms == 0.0
    assert provider.calls == []
    assert store.load_blocks("doc-1") == before


def test_appending_a_paragraph_embeds_only_the_new_block(pipeline, provider, store):
    pipeline.synchronize("doc-1", DOC)
    before = {b.id for b in store.load_blocks("doc-1")}
    provider.calls.clear()

    summary = pipeline.synchronize("doc-1", DOC + "\nNew para.\n")

    assert (summary.created, summary.updated, summary.skipped, summary.deleted) == (1, 0, 3, 0)
    assert provider.calls == ["New para."]
    blocks = store.load_blocks("doc-1")
    assert ranges(blocks) == [(0, 0), (2, 2), (4, 5), (7, 7)]
    assert before < {b.id for b in blocks}


def test_editing_a_block_keeps_its_id_and_bumps_the_embedding_version(pipeline, provider, store):
    pipeline.synchronize("doc-1", DOC)
    original = store.load_blocks("doc-1")[1]
    provider.calls.clear()

    summary = pipeline.synchronize("doc-1", DOC.replace("bold* text", "bold* words"))

    assert (summary.created, summary.updated, summary.skipped, summary.deleted) == (0, 1, 2, 0)
    assert provider.calls == ["Some bold words."]

    edited = store.load_blocks("doc-1")[1]
    assert edited.id == original.id
    assert edited.created_at == original.created_at
    assert edited.updated_at >= original.updated_at
    assert edited.content_hash != original.content_hash
    assert edited.raw_text == "Some *bold* words."
    assert edited.embedding.version == 2
    assert edited.embedding.vector == fake_vector("Some bold words.")


def test_formatting_only_edit_is_skipped(pipeline, provider):
    pipeline.synchronize("doc-1", DOC)
    provider.calls.clear()

    summary = pipeline.synchronize("doc-1", DOC.replace("*bold*", "**bold**"))

    assert summary.skipped == 3
    assert summary.updated == 0
    assert provider.calls == []


def test_removed_block_is_soft_deleted(pipeline, provider, store):
    pipeline.synchronize("doc-1", DOC)
    list_block = store.load_blocks("doc-1")[2]
    provider.calls.clear()

    summary = pipeline.synchronize("doc-1", "# Title\n\nSome *bold* text.\n")

    assert (summary.created, summary.updated, summary.skipped, summary.deleted) == (0, 0, 2, 1)
    assert provider.calls == []
    assert ranges(store.load_blocks("doc-1")) == [(0, 0), (2, 2)]

    retired = next(b for b in store.all_blocks("doc-1") if b.id == list_block.id)
    assert retired.deleted_at is not None
    assert retired.embedding is None


def test_emptying_a_document_retires_every_block(pipeline, store):
    pipeline.synchronize("doc-1", DOC)
    summary = pipeline.synchronize("doc-1", "")

    assert summary.deleted == 3
    assert store.load_blocks("doc-1") == []
    assert len(store.all_blocks("doc-1")) == 3


def test_inserted_lines_shift_every_range_under_range_matching(pipeline, provider, store):
    pipeline.synchronize("doc-1", DOC)
    provider.calls.clear()

    summary = pipeline.synchronize("doc-1", "Intro.\n\n" + DOC)

    # (0,0) and (2,2) are re-keyed onto different content, the rest is new
    assert (summary.created, summary.updated, summary.skipped, summary.deleted) == (2, 2, 0, 1)
    assert summary.moved == 0
    assert summary.embeddings_generated == 4
    assert ranges(store.load_blocks("doc-1")) == [(0, 0), (2, 2), (4, 4), (6, 7)]


def test_hash_then_range_reports_moved_blocks_without_re_embedding(make_pipeline, provider, store):
    pipeline = make_pipeline(provider, match_strategy="hash_then_range")
    pipeline.synchronize("doc-1", DOC)
    before = {b.normalized_text: b for b in store.load_blocks("doc-1")}
    provider.calls.clear()

    summary = pipeline.synchronize("doc-1", "Intro.\n\n" + DOC)

    assert (summary.created, summary.updated, summary.moved, summary.deleted) == (1, 0, 3, 0)
    assert summary.embeddings_generated == 1
    assert provider.calls == ["Intro."]

    after = {b.normalized_text: b for b in store.load_blocks("doc-1")}
    for text, block in before.items():
        moved = after[text]
        assert moved.id == block.id
        assert moved.start_line == block.start_line + 2
        assert moved.embedding.version == 1
        assert moved.embedding.vector == block.embedding.vector


def test_hash_then_range_falls_back_to_overlap_for_edited_blocks(make_pipeline, provider, store):
    pipeline = make_pipeline(provider, match_strategy="hash_then_range")
    pipeline.synchronize("doc-1", DOC)
    paragraph_id = store.load_blocks("doc-1")[1].id

    summary = pipeline.synchronize("doc-1", "# Title\n\nSome *bold* text.\nAnd more.\n\n- a\n- b\n")

    assert summary.updated == 1
    assert summary.moved == 1
    assert summary.skipped == 1
    paragraph = store.load_blocks("doc-1")[1]
    assert paragraph.id == paragraph_id
    assert paragraph.line_range == (2, 3)
    assert paragraph.embedding.version == 2


def test_provider_failure_commits_nothing(make_pipeline, store):
    failing = FakeEmbeddingProvider(fail_on_call=2)
    progress = []

    with pytest.raises(EmbeddingProviderError):
        make_pipeline(failing).synchronize("doc-1", DOC, progress_callback=lambda p, m: progress.append(p))

    assert store.load_blocks("doc-1") == []
    assert progress[-1] == -1

    summary = make_pipeline(FakeEmbeddingProvider()).synchronize("doc-1", DOC)
    assert summary.created == 3


def test_provider_failure_during_update_leaves_previous_state(make_pipeline, pipeline, store):
    pipeline.synchronize("doc-1", DOC)
    before = store.load_blocks("doc-1")

    edited = DOC.replace("Title", "Renamed").replace("- b", "- c")
    with pytest.raises(EmbeddingProviderError):
        make_pipeline(FakeEmbeddingProvider(fail_on_call=2)).synchronize("doc-1", edited)

    assert store.load_blocks("doc-1") == before


def test_store_failure_propagates(pipeline, store, monkeypatch):
    def broken_commit(changes):
        raise BlockStoreError("disk full")

    monkeypatch.setattr(store, "commit", broken_commit)

    with pytest.raises(BlockStoreError, match="disk full"):
        pipeline.synchronize("doc-1", DOC)
    assert store.load_blocks("doc-1") == []


def test_cancelled_before_start_calls_no_provider(pipeline, provider, store):
    token = CancellationToken()
    token.cancel()

    with pytest.raises(SyncCancelledError):
        pipeline.synchronize("doc-1", DOC, cancellation=token)

    assert provider.calls == []
    assert store.load_blocks("doc-1") == []


def test_cancelled_mid_pass_commits_nothing(make_pipeline, store):
    token = CancellationToken()
    provider = FakeEmbeddingProvider(on_call=lambda n: token.cancel())

    with pytest.raises(SyncCancelledError):
        make_pipeline(provider).synchronize("doc-1", DOC, cancellation=token)

    assert len(provider.calls) == 1
    assert store.load_blocks("doc-1") == []


def test_parallel_embedding_matches_sequential_result(make_pipeline, store):
    document = "\n\n".join(f"Paragraph number {n}." for n in range(12))
    provider = FakeEmbeddingProvider()

    summary = make_pipeline(provider, embedding_workers=4).synchronize("doc-1", document)

    assert summary.created == 12
    assert sorted(provider.calls) == sorted(f"Paragraph number {n}." for n in range(12))
    for block in store.load_blocks("doc-1"):
        assert block.embedding.vector == fake_vector(block.normalized_text)


def test_parallel_embedding_failure_commits_nothing(make_pipeline, store):
    document = "\n\n".join(f"Paragraph number {n}." for n in range(6))

    with pytest.raises(EmbeddingProviderError):
        make_pipeline(FakeEmbeddingProvider(fail_on_call=3), embedding_workers=3).synchronize("doc-1", document)

    assert store.load_blocks("doc-1") == []


def test_short_normalized_text_falls_back_to_raw_text(make_pipeline):
    provider = FakeEmbeddingProvider()
    make_pipeline(provider, min_text_length_for_embedding=100).synchronize("doc-1", "# Title\n")
    assert provider.calls == ["# Title"]


@pytest.mark.parametrize("normalized,raw,min_length,expected", [
    ("Some text", "*Some* text", 1, "Some text"),
    ("ab", "  **ab**  ", 5, "**ab**"),
    ("", "  raw  ", 1, "raw"),
    ("", "", 1, ""),
])
def test_select_embedding_text(normalized, raw, min_length, expected):
    assert select_embedding_text(normalized, raw, min_length) == expected


def test_changed_block_without_embedding_gets_first_version(pipeline, store):
    now = datetime.now(timezone.utc)
    store.commit(SyncChangeSet(document_id="doc-1", created=[PersistedBlock(
        id="legacy",
        document_id="doc-1",
        block_type=BlockType.heading,
        start_line=0,
        end_line=0,
        raw_text="# Old",
        normalized_text="HEADING(1): Old",
        content_hash="stale",
        created_at=now,
        updated_at=now,
    )]))

    summary = pipeline.synchronize("doc-1", "# Title")

    assert summary.updated == 1
    block = store.load_blocks("doc-1")[0]
    assert block.id == "legacy"
    assert block.embedding.version == 1


def test_concurrent_passes_on_one_document_are_serialized(pipeline, provider, store):
    barrier = threading.Barrier(2)
    errors = []

    def run():
        barrier.wait()
        try:
            pipeline.synchronize("doc-1", DOC)
        except Exception as e:  # surfaced through the assertion below
            errors.append(e)

    threads = [threading.Thread(target=run) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(store.load_blocks("doc-1")) == 3
    assert len(provider.calls) == 3


def test_summary_and_progress_reporting(pipeline):
    progress = []
    summary = pipeline.synchronize("doc-1", DOC, progress_callback=lambda p, m: progress.append((p, m)))

    assert summary.document_id == "doc-1"
    assert summary.parse_ms >= 0.0
    assert summary.total_ms >= summary.parse_ms
    assert progress[0][0] == 5
    assert progress[-1][0] == 100
    assert "created=3" in progress[-1][1]


def test_synchronize_document_without_content_source(pipeline):
    with pytest.raises(ValueError):
        pipeline.synchronize_document("doc-1")
