"""High level ingestion pipeline entry point."""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ContextManager, Dict, Iterable, List, Optional

from trustrag.config import RAGSettings
from trustrag.errors import InvalidInputError, StoreUnavailableError
from trustrag.telemetry import emit_exception, emit_ingest_event

from .chunking import BoundaryAwareSegmenter, SegmenterConfig
from .models import (
    GLOBAL_SCOPE,
    SYSTEM_ACTOR,
    Actor,
    ChunkMetadata,
    ChunkRecord,
    Provenance,
    SourceType,
    TenantScope,
    UserDocumentMeta,
    VerifiedSource,
    VerifiedSourceMeta,
)

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from trustrag.corpus import CorpusStore

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestPipelineConfig:
    chunk_size: int = 500
    overlap: int = 50
    boundary_ratio: float = 0.3

    @classmethod
    def from_settings(cls, settings: RAGSettings) -> "IngestPipelineConfig":
        return cls(
            chunk_size=settings.chunk_size,
            overlap=settings.chunk_overlap,
            boundary_ratio=settings.boundary_ratio,
        )


@dataclass(slots=True)
class BulkIngestReport:
    """Outcome of :meth:`IngestPipeline.ingest_verified_sources`."""

    ingested: Dict[str, List[str]] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def chunk_count(self) -> int:
        return sum(len(chunk_ids) for chunk_ids in self.ingested.values())

    @property
    def ok(self) -> bool:
        return not self.failed


class IngestPipeline:
    """Segment text and append the resulting chunks to a corpus store."""

    def __init__(self, store: "CorpusStore", config: Optional[IngestPipelineConfig] = None) -> None:
        self.store = store
        self.config = config or IngestPipelineConfig()
        self.segmenter = BoundaryAwareSegmenter(
            SegmenterConfig(
                chunk_size=self.config.chunk_size,
                overlap=self.config.overlap,
                boundary_ratio=self.config.boundary_ratio,
            )
        )

    def ingest(
        self,
        scope: TenantScope,
        actor: Actor,
        source_type: SourceType | str,
        content: str,
        provenance: Optional[Provenance] = None,
        source: Optional[VerifiedSource] = None,
    ) -> List[str]:
        """Chunk ``content`` and persist every piece, returning chunk ids in index order.

        Chunks are written one at a time; when the store fails midway the
        already written prefix stays persisted and the error propagates.
        """

        kind = SourceType.parse(source_type)
        if not content or not content.strip():
            raise InvalidInputError("content is required and must not be empty")
        if kind is SourceType.VERIFIED_SOURCE and source is None:
            raise InvalidInputError("verified sources require title and category metadata")

        provenance = provenance or Provenance()
        curated = source if kind is SourceType.VERIFIED_SOURCE else None
        started = time.perf_counter()
        pieces = self.segmenter.segment(content)
        total_chunks = len(pieces)
        chunk_ids: List[str] = []

        for index, piece in enumerate(pieces):
            record = ChunkRecord(
                id=uuid.uuid4().hex,
                scope=scope,
                actor=actor,
                source_type=kind,
                chunk_index=index,
                content=piece,
                metadata=self._build_metadata(index, total_chunks, piece, curated),
                provenance=provenance,
            )
            LOGGER.debug("Persisting chunk %s/%s (%s chars)", index + 1, total_chunks, len(piece))
            self.store.put_chunk(record)
            chunk_ids.append(record.id)

        duration_ms = (time.perf_counter() - started) * 1000.0
        LOGGER.info("Ingested %s chunks (%s) for scope %s", total_chunks, kind.value, scope.key or "global")
        emit_ingest_event(
            "ingest.complete",
            tenant_id=scope.key,
            source_type=kind.value,
            source_id=provenance.source_id,
            chunks=total_chunks,
            duration_ms=duration_ms,
        )
        return chunk_ids

    def ingest_verified_sources(self, sources: Iterable[VerifiedSource]) -> BulkIngestReport:
        """Ingest curated sources into the global scope, each one independently.

        A source that fails is rolled back when the store supports
        transactions, recorded in the report, and does not stop the others.
        A repeated ``source_id`` is not ingested again and is reported as failed.
        """

        report = BulkIngestReport()
        seen: set[str] = set()
        for source in sources:
            if source.source_id in seen:
                LOGGER.warning("Skipping duplicate verified source id %s", source.source_id)
                report.failed.setdefault(source.source_id, "duplicate source_id in batch")
                continue
            seen.add(source.source_id)
            try:
                with self._transaction():
                    chunk_ids = self.ingest(
                        GLOBAL_SCOPE,
                        SYSTEM_ACTOR,
                        SourceType.VERIFIED_SOURCE,
                        source.content,
                        provenance=Provenance(source_id=source.source_id),
                        source=source,
                    )
            except (InvalidInputError, StoreUnavailableError) as error:
                LOGGER.warning("Failed to ingest verified source %s: %s", source.source_id, error)
                emit_exception(module=f"{__name__}.verified_sources", error=error)
                report.failed[source.source_id] = str(error)
                continue
            report.ingested[source.source_id] = chunk_ids

        LOGGER.info(
            "Verified source ingestion finished: %s ingested, %s failed, %s chunks",
            len(report.ingested),
            len(report.failed),
            report.chunk_count,
        )
        return report

    def _transaction(self) -> ContextManager[None]:
        atomic = getattr(self.store, "atomic", None)
        return atomic() if callable(atomic) else nullcontext()

    @staticmethod
    def _build_metadata(
        index: int,
        total_chunks: int,
        piece: str,
        source: Optional[VerifiedSource],
    ) -> ChunkMetadata:
        if source is None:
            return UserDocumentMeta(chunk_index=index, total_chunks=total_chunks, char_length=len(piece))
        return VerifiedSourceMeta(
            chunk_index=index,
            total_chunks=total_chunks,
            char_length=len(piece),
            title=source.title,
            category=source.category,
            jurisdiction=source.jurisdiction,
            effective_date=source.effective_date,
            url=source.url,
        )
