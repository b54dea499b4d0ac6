from __future__ import annotations

import math
from typing import List

import pytest

from trustrag.corpus import InMemoryCorpusStore
from trustrag.errors import InvalidInputError, StoreUnavailableError
from trustrag.ingest.chunking import segment_text
from trustrag.ingest.models import (
    GLOBAL_SCOPE,
    SYSTEM_ACTOR,
    ChunkRecord,
    Provenance,
    SourceType,
    Tenant,
    UserActor,
    UserDocumentMeta,
    VerifiedSource,
    VerifiedSourceMeta,
)
from trustrag.ingest.pipeline import IngestPipeline, IngestPipelineConfig


class _RecordingStore:
    def __init__(self) -> None:
        self.records: List[ChunkRecord] = []

    def put_chunk(self, record: ChunkRecord) -> None:
        self.records.append(record)

    def query_by_keyword(self, scope, keyword, source_type=None):
        return []


class _FlakyStore(_RecordingStore):
    def __init__(self, fail_after: int) -> None:
        super().__init__()
        self.fail_after = fail_after

    def put_chunk(self, record: ChunkRecord) -> None:
        if len(self.records) >= self.fail_after:
            raise StoreUnavailableError("disk full")
        super().put_chunk(record)


class _RejectingSourceStore(InMemoryCorpusStore):
    def put_chunk(self, record: ChunkRecord) -> None:
        if record.source_id == "bad" and record.chunk_index == 1:
            raise StoreUnavailableError("constraint violated")
        super().put_chunk(record)


def _source(source_id: str, content: str) -> VerifiedSource:
    return VerifiedSource(
        source_id=source_id,
        title=f"Source {source_id}",
        content=content,
        category="statute",
        jurisdiction="US-CA",
        effective_date="2024-01-01",
        url="https://example.org/" + source_id,
    )


def test_ingest_persists_chunks_in_index_order():
    store = _RecordingStore()
    pipeline = IngestPipeline(store)
    content = "x" * 1200

    chunk_ids = pipeline.ingest(
        Tenant("trust-1"),
        UserActor("user-1"),
        "user_document",
        content,
        provenance=Provenance(source_doc_id="doc-1", source_evidence_id="ev-1"),
    )

    assert len(chunk_ids) == math.ceil((1200 - 50) / (500 - 50)) == 3
    assert [record.id for record in store.records] == chunk_ids
    assert len(set(chunk_ids)) == 3
    assert [record.chunk_index for record in store.records] == [0, 1, 2]
    for record in store.records:
        assert isinstance(record.metadata, UserDocumentMeta)
        assert record.metadata.total_chunks == 3
        assert record.metadata.chunk_index == record.chunk_index
        assert record.metadata.char_length == len(record.content)
        assert record.scope == Tenant("trust-1")
        assert record.actor == UserActor("user-1")
        assert record.source_type is SourceType.USER_DOCUMENT
        assert record.source_doc_id == "doc-1"
        assert record.source_evidence_id == "ev-1"


def test_chunk_count_matches_segmenter():
    store = _RecordingStore()
    content = "The settlor funded the trust. " * 90

    chunk_ids = IngestPipeline(store).ingest(Tenant("t"), UserActor("u"), SourceType.USER_DOCUMENT, content)

    assert [record.content for record in store.records] == segment_text(content)
    assert len(chunk_ids) == len(store.records)


def test_config_controls_segmentation():
    store = _RecordingStore()
    pipeline = IngestPipeline(store, IngestPipelineConfig(chunk_size=100, overlap=0))

    pipeline.ingest(Tenant("t"), UserActor("u"), "user_document", "y" * 250)

    assert [len(record.content) for record in store.records] == [100, 100, 50]


@pytest.mark.parametrize("content", ["", "   \n\t"])
def test_blank_content_is_rejected_without_writes(content):
    store = _RecordingStore()

    with pytest.raises(InvalidInputError):
        IngestPipeline(store).ingest(Tenant("t"), UserActor("u"), "user_document", content)

    assert store.records == []


def test_unknown_source_type_is_rejected():
    with pytest.raises(InvalidInputError):
        IngestPipeline(_RecordingStore()).ingest(Tenant("t"), UserActor("u"), "email", "text")


@pytest.mark.parametrize("source_type", [" user_document", "USER_DOCUMENT", "Verified_Source"])
def test_source_type_must_match_exactly(source_type):
    store = _RecordingStore()

    with pytest.raises(InvalidInputError):
        IngestPipeline(store).ingest(Tenant("t"), UserActor("u"), source_type, "text")

    assert store.records == []


def test_verified_source_requires_descriptive_metadata():
    with pytest.raises(InvalidInputError):
        IngestPipeline(_RecordingStore()).ingest(GLOBAL_SCOPE, SYSTEM_ACTOR, "verified_source", "text")


def test_store_failure_keeps_written_prefix():
    store = _FlakyStore(fail_after=2)

    with pytest.raises(StoreUnavailableError):
        IngestPipeline(store).ingest(Tenant("t"), UserActor("u"), "user_document", "z" * 1200)

    assert [record.chunk_index for record in store.records] == [0, 1]


def test_verified_sources_land_in_global_scope():
    store = _RecordingStore()

    report = IngestPipeline(store).ingest_verified_sources([_source("utc-602", "A revocable trust may be amended.")])

    assert report.ok
    assert report.chunk_count == 1
    record = store.records[0]
    assert report.ingested == {"utc-602": [record.id]}
    assert record.scope == GLOBAL_SCOPE
    assert record.actor == SYSTEM_ACTOR
    assert record.source_type is SourceType.VERIFIED_SOURCE
    assert record.source_id == "utc-602"
    assert isinstance(record.metadata, VerifiedSourceMeta)
    assert record.metadata.title == "Source utc-602"
    assert record.metadata.category == "statute"
    assert record.metadata.jurisdiction == "US-CA"
    assert record.metadata.url == "https://example.org/utc-602"


def test_failed_source_is_rolled_back_and_others_continue():
    store = _RejectingSourceStore()
    sources = [
        _source("good-1", "Spendthrift clauses protect beneficiaries."),
        _source("bad", "w" * 1200),
        _source("empty", "   "),
        _source("good-2", "Trustees owe a duty of loyalty."),
    ]

    report = IngestPipeline(store).ingest_verified_sources(sources)

    assert not report.ok
    assert sorted(report.ingested) == ["good-1", "good-2"]
    assert sorted(report.failed) == ["bad", "empty"]
    assert "constraint violated" in report.failed["bad"]
    assert store.count(GLOBAL_SCOPE) == 2
    assert store.query_by_keyword(GLOBAL_SCOPE, "www") == []


def test_repeated_source_id_is_reported_not_reingested():
    store = InMemoryCorpusStore()
    sources = [
        _source("utc-602", "A revocable trust may be amended."),
        _source("utc-602", "A second text reusing the same identifier."),
        _source("utc-603", "Trustees owe a duty of loyalty."),
    ]

    report = IngestPipeline(store).ingest_verified_sources(sources)

    assert not report.ok
    assert sorted(report.ingested) == ["utc-602", "utc-603"]
    assert report.failed == {"utc-602": "duplicate source_id in batch"}
    assert report.chunk_count == store.count(GLOBAL_SCOPE) == 2
    assert store.query_by_keyword(GLOBAL_SCOPE, "identifier") == []
