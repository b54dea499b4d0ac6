"""Corpus store contract and the pluggable backends that implement it."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import List, Optional, Protocol, runtime_checkable

from trustrag.config import get_settings
from trustrag.errors import StoreUnavailableError
from trustrag.ingest.models import ChunkRecord, SourceType, TenantScope

from .memory_store import InMemoryCorpusStore, PersistentCorpusStore

LOGGER = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ("memory", "json", "sql")


@runtime_checkable
class CorpusStore(Protocol):
    """The two operations the engine needs from a chunk store."""

    def put_chunk(self, record: ChunkRecord) -> None:
        """Append one immutable chunk record."""

    def query_by_keyword(
        self,
        scope: TenantScope,
        keyword: str,
        source_type: Optional[SourceType] = None,
    ) -> List[ChunkRecord]:
        """Return chunks in ``scope`` whose content contains ``keyword``, ignoring case."""


def create_corpus_store(backend: str | None = None) -> CorpusStore:
    """Instantiate the backend named by ``backend`` or the ``CORPUS_STORE`` setting."""

    settings = get_settings()
    name = (backend or settings.corpus_store).strip().lower()
    LOGGER.info("Initialising corpus store backend %s", name)

    if name == "memory":
        return InMemoryCorpusStore()

    if name == "json":
        return PersistentCorpusStore(settings.corpus_path)

    if name == "sql":
        from .sql_store import SQLCorpusStore

        return SQLCorpusStore.from_url(settings.database_url)

    raise StoreUnavailableError(
        f"Unsupported CORPUS_STORE backend: {name!r} (expected one of {', '.join(SUPPORTED_BACKENDS)})"
    )


@lru_cache()
def get_corpus_store() -> CorpusStore:
    """Return a lazily initialised corpus store shared by the process."""

    return create_corpus_store()


def reset_corpus_store_cache() -> None:
    """Clear the cached corpus store (primarily for testing)."""

    get_corpus_store.cache_clear()


__all__ = [
    "CorpusStore",
    "InMemoryCorpusStore",
    "PersistentCorpusStore",
    "StoreUnavailableError",
    "create_corpus_store",
    "get_corpus_store",
    "reset_corpus_store_cache",
]
