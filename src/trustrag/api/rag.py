"""API router exposing ingest and query endpoints for the retrieval service."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, Field

from trustrag.errors import AccessDeniedError, InvalidInputError, StoreUnavailableError
from trustrag.retrieval.engine import RetrievalResult
from trustrag.services.rag import IngestResult, RAGService, get_rag_service

router = APIRouter(prefix="/trusts", tags=["rag"])


class IngestRequest(BaseModel):
    """Request body accepted by the ingest endpoint."""

    content: str = Field(..., description="Full text content to split into searchable chunks.")
    source_doc_id: Optional[str] = Field(None, description="Document the content was taken from.")
    source_evidence_id: Optional[str] = Field(None, description="Evidence record the content was taken from.")


class IngestResponse(BaseModel):
    chunk_ids: list[str]


class QueryRequest(BaseModel):
    """Request body accepted by the query endpoint."""

    query: str = Field(..., description="Natural-language search query.")
    source_type: Optional[str] = Field(None, description='Either "user_document" or "verified_source".')
    limit: Optional[int] = Field(None, description="Maximum number of chunks to return (1-50, default 10).")
    include_global: bool = Field(False, description="Also search curated verified sources.")


class ChunkPayload(BaseModel):
    chunk_id: str
    source_type: str
    source_id: Optional[str]
    source_doc_id: Optional[str]
    content: str
    relevance_score: float
    match_count: int
    matched_terms: list[str]
    metadata: dict[str, Any]


class CitationPayload(BaseModel):
    chunk_id: str
    source_id: Optional[str]
    text_snippet: str


class QueryResponse(BaseModel):
    """Response payload for the query endpoint; the disclaimer is always present."""

    chunks: list[ChunkPayload]
    citations: list[CitationPayload]
    has_data_gap: bool
    data_gap_message: Optional[str]
    disclaimer: str
    keywords: list[str]


def translate_error(exc: Exception) -> HTTPException:
    """Map a service error onto the HTTP status the API promises for it."""

    if isinstance(exc, InvalidInputError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, AccessDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.post("/{trust_id}/rag/ingest", response_model=IngestResponse, status_code=status.HTTP_201_CREATED)
def ingest_content(
    trust_id: str,
    request: IngestRequest,
    caller_id: str = Header(..., alias="X-User-Id"),
    rag_service: RAGService = Depends(get_rag_service),
) -> IngestResponse:
    """Chunk the supplied text into the trust's searchable corpus."""

    try:
        result: IngestResult = rag_service.ingest(
            trust_id,
            caller_id,
            request.content,
            source_doc_id=request.source_doc_id,
            source_evidence_id=request.source_evidence_id,
        )
    except (InvalidInputError, AccessDeniedError, StoreUnavailableError) as exc:
        raise translate_error(exc) from exc
    return IngestResponse(chunk_ids=result.chunk_ids)


@router.post("/{trust_id}/rag/query", response_model=QueryResponse)
def query_corpus(
    trust_id: str,
    request: QueryRequest,
    caller_id: str = Header(..., alias="X-User-Id"),
    rag_service: RAGService = Depends(get_rag_service),
) -> QueryResponse:
    """Return matching chunks with citations, data-gap flags and the legal disclaimer."""

    try:
        result: RetrievalResult = rag_service.query(
            trust_id,
            caller_id,
            request.query,
            source_type=request.source_type,
            limit=request.limit,
            include_global=request.include_global,
        )
    except (InvalidInputError, AccessDeniedError, StoreUnavailableError) as exc:
        raise translate_error(exc) from exc
    return QueryResponse(**result.to_dict())
