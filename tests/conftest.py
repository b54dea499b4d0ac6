"""Shared fixtures: isolated settings, an in-memory corpus and chunk builders."""
from __future__ import annotations

import uuid
from typing import Callable, Optional

import pytest

from trustrag.config import RAGSettings, reset_settings_cache
from trustrag.corpus import InMemoryCorpusStore, reset_corpus_store_cache
from trustrag.ingest.models import (
    GLOBAL_SCOPE,
    SYSTEM_ACTOR,
    ChunkRecord,
    Provenance,
    SourceType,
    Tenant,
    TenantScope,
    UserActor,
    UserDocumentMeta,
    VerifiedSourceMeta,
)
from trustrag.retrieval.engine import RetrievalEngine
from trustrag.services.rag import reset_rag_service

_ENV_VARS = (
    "RAG_CHUNK_SIZE",
    "RAG_CHUNK_OVERLAP",
    "RAG_BOUNDARY_RATIO",
    "RAG_DATA_GAP_THRESHOLD",
    "RAG_DEFAULT_LIMIT",
    "RAG_MAX_LIMIT",
    "RAG_SNIPPET_CHARS",
    "RAG_READ_WORKERS",
    "RAG_READ_TIMEOUT",
    "CORPUS_STORE",
    "CORPUS_PATH",
    "DATABASE_URL",
)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("RAG_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("CORPUS_PATH", str(tmp_path / "data" / "corpus.json"))
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'data' / 'corpus.db'}")
    reset_settings_cache()
    reset_corpus_store_cache()
    reset_rag_service()
    yield
    reset_settings_cache()
    reset_corpus_store_cache()
    reset_rag_service()


@pytest.fixture
def settings() -> RAGSettings:
    return RAGSettings()


@pytest.fixture
def store() -> InMemoryCorpusStore:
    return InMemoryCorpusStore()


@pytest.fixture
def engine(store: InMemoryCorpusStore, settings: RAGSettings) -> RetrievalEngine:
    return RetrievalEngine(store, settings)


def make_record(
    content: str,
    *,
    chunk_id: Optional[str] = None,
    scope: TenantScope = Tenant("trust-1"),
    source_type: SourceType = SourceType.USER_DOCUMENT,
    source_id: Optional[str] = None,
    source_doc_id: Optional[str] = None,
    chunk_index: int = 0,
) -> ChunkRecord:
    """Build a standalone chunk record, bypassing the segmenter."""

    if source_type is SourceType.VERIFIED_SOURCE:
        metadata = VerifiedSourceMeta(
            chunk_index=chunk_index,
            total_chunks=1,
            char_length=len(content),
            title="Uniform Trust Code",
            category="statute",
        )
    else:
        metadata = UserDocumentMeta(chunk_index=chunk_index, total_chunks=1, char_length=len(content))
    return ChunkRecord(
        id=chunk_id or uuid.uuid4().hex,
        scope=scope,
        actor=SYSTEM_ACTOR if scope == GLOBAL_SCOPE else UserActor("user-1"),
        source_type=source_type,
        chunk_index=chunk_index,
        content=content,
        metadata=metadata,
        provenance=Provenance(source_id=source_id, source_doc_id=source_doc_id),
    )


@pytest.fixture
def add_chunk(store: InMemoryCorpusStore) -> Callable[..., ChunkRecord]:
    def _add(content: str, **kwargs) -> ChunkRecord:
        record = make_record(content, **kwargs)
        store.put_chunk(record)
        return record

    return _add
