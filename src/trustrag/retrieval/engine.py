"""Keyword retrieval over the corpus store with match-count ranking and citations."""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from trustrag.config import RAGSettings, get_settings
from trustrag.errors import InvalidInputError, StoreUnavailableError
from trustrag.ingest.models import GLOBAL_SCOPE, ChunkRecord, SourceType, TenantScope
from trustrag.telemetry import emit_retriever_event

from .keywords import extract_keywords
from .policy import LEGAL_DISCLAIMER, NO_KEYWORDS_MESSAGE, data_gap_message, is_data_gap

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from trustrag.corpus import CorpusStore

LOGGER = logging.getLogger(__name__)

SNIPPET_ELLIPSIS = "..."
MIN_LIMIT = 1


@dataclass(slots=True)
class ScoredChunk:
    """A retrieved chunk with the terms it matched and its normalised relevance."""

    chunk_id: str
    source_type: str
    source_id: Optional[str]
    source_doc_id: Optional[str]
    content: str
    relevance_score: float
    match_count: int
    matched_terms: List[str]
    metadata: Dict[str, Any]


@dataclass(slots=True)
class Citation:
    chunk_id: str
    source_id: Optional[str]
    text_snippet: str


@dataclass(slots=True)
class RetrievalResult:
    """Structured result returned from :meth:`RetrievalEngine.query`."""

    chunks: List[ScoredChunk]
    citations: List[Citation]
    has_data_gap: bool
    data_gap_message: Optional[str]
    disclaimer: str = LEGAL_DISCLAIMER
    keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunks": [asdict(chunk) for chunk in self.chunks],
            "citations": [asdict(citation) for citation in self.citations],
            "has_data_gap": self.has_data_gap,
            "data_gap_message": self.data_gap_message,
            "disclaimer": self.disclaimer,
            "keywords": list(self.keywords),
        }


@dataclass(slots=True)
class _Match:
    record: ChunkRecord
    terms: List[str] = field(default_factory=list)


def build_snippet(content: str, max_chars: int = 200) -> str:
    """Return the first ``max_chars`` characters, marking truncation with an ellipsis."""

    if len(content) <= max_chars:
        return content
    return content[:max_chars] + SNIPPET_ELLIPSIS


class RetrievalEngine:
    """Rank chunks by how many distinct query keywords they contain.

    The engine performs no writes and holds no per-query state, so a failed
    or timed out query can simply be retried.
    """

    def __init__(self, store: "CorpusStore", settings: Optional[RAGSettings] = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    def query(
        self,
        scope: TenantScope,
        query_text: str,
        source_type: SourceType | str | None = None,
        limit: Optional[int] = None,
        *,
        include_global: bool = False,
    ) -> RetrievalResult:
        """Search ``scope`` for ``query_text`` and return ranked chunks with citations."""

        if query_text is None or not query_text.strip():
            raise InvalidInputError("query is required and must not be empty")
        effective_limit = self.settings.default_limit if limit is None else limit
        if isinstance(effective_limit, bool) or not isinstance(effective_limit, int):
            raise InvalidInputError("limit must be an integer")
        if not MIN_LIMIT <= effective_limit <= self.settings.max_limit:
            raise InvalidInputError(f"limit must be between {MIN_LIMIT} and {self.settings.max_limit}")
        kind = SourceType.parse(source_type) if source_type is not None else None

        keywords = extract_keywords(query_text)
        if not keywords:
            LOGGER.info("No keywords extracted for scope %s", scope.key or "global")
            return RetrievalResult(
                chunks=[],
                citations=[],
                has_data_gap=True,
                data_gap_message=NO_KEYWORDS_MESSAGE,
                keywords=[],
            )

        started = time.perf_counter()
        reads = self._plan_reads(scope, keywords, kind, include_global)
        matches = self._merge(self._fan_out(reads))

        ranked = sorted(matches.values(), key=lambda match: (-len(match.terms), match.record.id))
        ranked = ranked[:effective_limit]
        max_matches = len(ranked[0].terms) if ranked else 1

        chunks = [self._score(match, max_matches) for match in ranked]
        citations = [
            Citation(
                chunk_id=chunk.chunk_id,
                source_id=chunk.source_id,
                text_snippet=build_snippet(chunk.content, self.settings.snippet_chars),
            )
            for chunk in chunks
        ]
        threshold = self.settings.data_gap_threshold
        has_gap = is_data_gap(len(chunks), threshold)

        emit_retriever_event(
            tenant_id=scope.key,
            query=query_text,
            keywords=keywords,
            limit=effective_limit,
            results=[
                {"id": chunk.chunk_id, "match_count": chunk.match_count, "terms": chunk.matched_terms}
                for chunk in chunks
            ],
            has_data_gap=has_gap,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return RetrievalResult(
            chunks=chunks,
            citations=citations,
            has_data_gap=has_gap,
            data_gap_message=data_gap_message(len(chunks), threshold),
            keywords=keywords,
        )

    @staticmethod
    def _plan_reads(
        scope: TenantScope,
        keywords: List[str],
        source_type: Optional[SourceType],
        include_global: bool,
    ) -> List[Tuple[TenantScope, str, Optional[SourceType]]]:
        reads: List[Tuple[TenantScope, str, Optional[SourceType]]] = [
            (scope, keyword, source_type) for keyword in keywords
        ]
        wants_verified = source_type in (None, SourceType.VERIFIED_SOURCE)
        if include_global and wants_verified and scope != GLOBAL_SCOPE:
            reads.extend((GLOBAL_SCOPE, keyword, SourceType.VERIFIED_SOURCE) for keyword in keywords)
        return reads

    def _fan_out(
        self, reads: List[Tuple[TenantScope, str, Optional[SourceType]]]
    ) -> List[Tuple[str, List[ChunkRecord]]]:
        workers = min(self.settings.read_workers, len(reads))
        timeout = self.settings.read_timeout_seconds
        if workers <= 1:
            return [(keyword, self._read(scope, keyword, kind)) for scope, keyword, kind in reads]

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="corpus-read")
        try:
            futures = [
                (keyword, executor.submit(self._read, scope, keyword, kind)) for scope, keyword, kind in reads
            ]
            deadline = time.monotonic() + timeout if timeout else None
            results: List[Tuple[str, List[ChunkRecord]]] = []
            for keyword, future in futures:
                remaining = max(0.0, deadline - time.monotonic()) if deadline is not None else None
                try:
                    results.append((keyword, future.result(timeout=remaining)))
                except FutureTimeoutError as exc:
                    raise StoreUnavailableError("Corpus read timed out", cause=exc) from exc
            return results
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _read(self, scope: TenantScope, keyword: str, kind: Optional[SourceType]) -> List[ChunkRecord]:
        try:
            return list(self.store.query_by_keyword(scope, keyword, kind))
        except StoreUnavailableError:
            raise
        except Exception as exc:  # pragma: no cover - unexpected backend failure
            LOGGER.exception("Unexpected error while reading keyword %r", keyword)
            raise StoreUnavailableError("Corpus keyword query failed", cause=exc) from exc

    @staticmethod
    def _merge(results: List[Tuple[str, List[ChunkRecord]]]) -> Dict[str, _Match]:
        matches: Dict[str, _Match] = {}
        for keyword, records in results:
            for record in records:
                match = matches.setdefault(record.id, _Match(record=record))
                if keyword not in match.terms:
                    match.terms.append(keyword)
        return matches

    @staticmethod
    def _score(match: _Match, max_matches: int) -> ScoredChunk:
        record = match.record
        return ScoredChunk(
            chunk_id=record.id,
            source_type=record.source_type.value,
            source_id=record.source_id,
            source_doc_id=record.source_doc_id,
            content=record.content,
            relevance_score=round(len(match.terms) / max_matches, 3),
            match_count=len(match.terms),
            matched_terms=list(match.terms),
            metadata=record.metadata.to_dict(),
        )
