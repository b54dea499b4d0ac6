"""In-memory and JSON file backed corpus stores."""
from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from trustrag.errors import StoreUnavailableError
from trustrag.ingest.models import ChunkRecord, SourceType, TenantScope
from trustrag.telemetry import emit_corpus_event

LOGGER = logging.getLogger(__name__)


class InMemoryCorpusStore:
    """Append-only chunk store kept in process memory."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._records: List[ChunkRecord] = []
        self._ids: set[str] = set()
        self._lock = threading.RLock()
        self._local = threading.local()

    def put_chunk(self, record: ChunkRecord) -> None:
        """Persist a single chunk, or stage it when inside :meth:`atomic`."""

        staged: Optional[List[ChunkRecord]] = getattr(self._local, "staged", None)
        if staged is not None:
            staged.append(record)
            return
        with self._lock:
            self._append([record])

    def query_by_keyword(
        self,
        scope: TenantScope,
        keyword: str,
        source_type: Optional[SourceType] = None,
    ) -> List[ChunkRecord]:
        """Return chunks in ``scope`` whose content contains ``keyword`` (case-insensitive)."""

        needle = keyword.lower()
        with self._lock:
            snapshot = list(self._records)
        return [
            record
            for record in snapshot
            if record.scope == scope
            and (source_type is None or record.source_type is source_type)
            and needle in record.content.lower()
        ]

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Buffer writes made on this thread and publish them only on success."""

        if getattr(self._local, "staged", None) is not None:
            yield
            return
        self._local.staged = []
        try:
            yield
            staged = self._local.staged
        finally:
            self._local.staged = None
        with self._lock:
            self._append(staged)

    def count(self, scope: Optional[TenantScope] = None) -> int:
        with self._lock:
            if scope is None:
                return len(self._records)
            return sum(1 for record in self._records if record.scope == scope)

    def _append(self, records: List[ChunkRecord]) -> None:
        for record in records:
            if record.id in self._ids:
                raise StoreUnavailableError(f"Chunk {record.id} already exists")
        self._records.extend(records)
        self._ids.update(record.id for record in records)


class PersistentCorpusStore(InMemoryCorpusStore):
    """Corpus store that mirrors its state into a JSON file for reuse."""

    backend_name = "json"

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._data_path = Path(path)
        try:
            self._data_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot create corpus directory for {self._data_path}", cause=exc) from exc
        self._load()

    @property
    def data_path(self) -> Path:
        return self._data_path

    def _append(self, records: List[ChunkRecord]) -> None:
        if not records:
            return
        super()._append(records)
        try:
            self._save()
        except OSError as exc:
            del self._records[-len(records):]
            self._ids.difference_update(record.id for record in records)
            emit_corpus_event("corpus.save", backend=self.backend_name, count=len(self._records), error=exc)
            raise StoreUnavailableError(f"Failed to write corpus file {self._data_path}", cause=exc) from exc

    def _load(self) -> None:
        if not self._data_path.exists():
            return
        try:
            payload = json.loads(self._data_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreUnavailableError(f"Failed to load corpus file {self._data_path}", cause=exc) from exc
        entries = payload.get("chunks", []) if isinstance(payload, dict) else None
        if not isinstance(entries, list):
            raise StoreUnavailableError(f"Corpus file {self._data_path} does not hold a chunk list")

        loaded: Dict[str, ChunkRecord] = {}
        for entry in entries:
            try:
                record = ChunkRecord.from_dict(entry)
            except (KeyError, TypeError, ValueError):
                LOGGER.warning("Skipping malformed chunk entry in %s", self._data_path)
                continue
            loaded[record.id] = record
        self._records = list(loaded.values())
        self._ids = set(loaded)
        LOGGER.info("Loaded %s chunks from %s", len(self._records), self._data_path)
        emit_corpus_event("corpus.load", backend=self.backend_name, count=len(self._records))

    def _save(self) -> None:
        payload = {"chunks": [record.to_dict() for record in self._records]}
        tmp_path = self._data_path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self._data_path)


__all__ = ["InMemoryCorpusStore", "PersistentCorpusStore"]
