from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Tuple

from trustrag.config import RAGSettings, get_settings
from trustrag.corpus import CorpusStore, get_corpus_store
from trustrag.errors import AccessDeniedError, StoreUnavailableError
from trustrag.ingest.models import Provenance, SourceType, Tenant, UserActor
from trustrag.ingest.pipeline import IngestPipeline, IngestPipelineConfig
from trustrag.logging_config import AUDIT_LOGGER_NAME
from trustrag.retrieval.engine import RetrievalEngine, RetrievalResult
from trustrag.telemetry import emit_exception

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)


class TenantAccessCheck(Protocol):
    """Decides whether a caller may act on a tenant's corpus."""

    def has_access(self, tenant_id: str, caller_id: str) -> bool:
        ...


class OpenTenantAccess:
    """Access check for deployments where routing already enforced ownership."""

    def has_access(self, tenant_id: str, caller_id: str) -> bool:
        return bool(tenant_id) and bool(caller_id)


@dataclass(slots=True)
class StaticTenantAccess:
    """Access check backed by an explicit set of ``(tenant_id, caller_id)`` grants."""

    grants: set[Tuple[str, str]] = field(default_factory=set)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, str]]) -> "StaticTenantAccess":
        return cls(grants=set(pairs))

    def grant(self, tenant_id: str, caller_id: str) -> None:
        self.grants.add((tenant_id, caller_id))

    def has_access(self, tenant_id: str, caller_id: str) -> bool:
        return (tenant_id, caller_id) in self.grants


@dataclass(slots=True)
class IngestResult:
    """Structured result returned from :meth:`RAGService.ingest`."""

    tenant_id: str
    chunk_ids: List[str]

    @property
    def chunk_count(self) -> int:
        return len(self.chunk_ids)


class RAGService:
    """Front door for the ingest and query operations.

    Checks tenant access, delegates to the pipeline and the engine, and
    records the audit trail the engine itself never writes.
    """

    def __init__(
        self,
        *,
        store: CorpusStore | None = None,
        access_check: TenantAccessCheck | None = None,
        settings: RAGSettings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store or get_corpus_store()
        self.access_check = access_check or OpenTenantAccess()
        self.pipeline = IngestPipeline(self.store, IngestPipelineConfig.from_settings(self.settings))
        self.engine = RetrievalEngine(self.store, self.settings)

    def ingest(
        self,
        tenant_id: str,
        caller_id: str,
        content: str,
        *,
        source_doc_id: Optional[str] = None,
        source_evidence_id: Optional[str] = None,
    ) -> IngestResult:
        self._require_access(tenant_id, caller_id)
        try:
            chunk_ids = self.pipeline.ingest(
                Tenant(tenant_id),
                UserActor(caller_id),
                SourceType.USER_DOCUMENT,
                content,
                provenance=Provenance(source_doc_id=source_doc_id, source_evidence_id=source_evidence_id),
            )
        except StoreUnavailableError as error:
            emit_exception(module=f"{__name__}.ingest", error=error, tenant_id=tenant_id)
            raise

        AUDIT_LOGGER.info(
            {
                "event": "ingest",
                "action": "create",
                "tenant_id": tenant_id,
                "user_id": caller_id,
                "entity_type": "doc_chunk",
                "entity_id": chunk_ids[0] if chunk_ids else "",
                "chunk_count": len(chunk_ids),
                "source_doc_id": source_doc_id,
                "source_evidence_id": source_evidence_id,
            }
        )
        return IngestResult(tenant_id=tenant_id, chunk_ids=chunk_ids)

    def query(
        self,
        tenant_id: str,
        caller_id: str,
        query_text: str,
        *,
        source_type: Optional[str] = None,
        limit: Optional[int] = None,
        include_global: bool = False,
    ) -> RetrievalResult:
        self._require_access(tenant_id, caller_id)
        try:
            result = self.engine.query(
                Tenant(tenant_id),
                query_text,
                source_type=source_type,
                limit=limit,
                include_global=include_global,
            )
        except StoreUnavailableError as error:
            emit_exception(
                module=f"{__name__}.query",
                error=error,
                tenant_id=tenant_id,
                suggestion="Retrieval performs no writes; the query can be retried.",
            )
            raise

        LOGGER.debug(
            "Query for tenant %s returned %d chunks (data gap=%s)",
            tenant_id,
            len(result.chunks),
            result.has_data_gap,
        )
        return result

    def _require_access(self, tenant_id: str, caller_id: str) -> None:
        if not self.access_check.has_access(tenant_id, caller_id):
            LOGGER.warning("Denied access to tenant %s for caller %s", tenant_id, caller_id)
            raise AccessDeniedError(tenant_id, caller_id)


_rag_service: RAGService | None = None


def get_rag_service() -> RAGService:
    """FastAPI dependency returning the shared :class:`RAGService` instance."""

    global _rag_service
    if _rag_service is None:
        _rag_service = RAGService()
    return _rag_service


def reset_rag_service() -> None:
    global _rag_service
    _rag_service = None
