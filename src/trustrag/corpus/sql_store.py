"""
Relational corpus store backed by SQLAlchemy.

Chunks live in a single ``doc_chunk`` table. The global scope is stored as a
NULL ``tenant_id`` and the system actor as a NULL ``user_id``.

Dependencies: sqlalchemy
"""
from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from sqlalchemy import DateTime, Engine, Integer, String, Text, create_engine, func, make_url, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from trustrag.errors import StoreUnavailableError
from trustrag.ingest.models import (
    ChunkRecord,
    Provenance,
    SourceType,
    TenantScope,
    actor_from_key,
    metadata_from_dict,
    scope_from_key,
)

LOGGER = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for the corpus tables."""

    pass


class DocChunkModel(Base):
    """ORM row for one stored chunk."""

    __tablename__ = "doc_chunk"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    source_doc_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    source_evidence_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    source_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    source_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_json: Mapped[str] = mapped_column("metadata", Text, nullable=False, default="{}")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


def create_corpus_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""

    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(url, echo=echo, pool_pre_ping=True)

    if not url.database or url.database == ":memory:":
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, echo=echo, connect_args={"check_same_thread": False})


class SQLCorpusStore:
    """Append-only chunk store on a relational database."""

    backend_name = "sql"

    def __init__(self, engine: Engine, *, create_tables: bool = True) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        self._local = threading.local()
        if create_tables:
            try:
                Base.metadata.create_all(engine)
            except SQLAlchemyError as exc:
                raise StoreUnavailableError("Failed to initialise corpus tables", cause=exc) from exc

    @classmethod
    def from_url(cls, database_url: str) -> "SQLCorpusStore":
        try:
            engine = create_corpus_engine(database_url)
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailableError("Failed to create database engine", cause=exc) from exc
        return cls(engine)

    def put_chunk(self, record: ChunkRecord) -> None:
        row = DocChunkModel(
            id=record.id,
            tenant_id=record.scope.key,
            user_id=record.actor.key,
            source_doc_id=record.source_doc_id,
            source_evidence_id=record.source_evidence_id,
            source_type=record.source_type.value,
            source_id=record.source_id,
            chunk_index=record.chunk_index,
            content=record.content,
            metadata_json=json.dumps(record.metadata.to_dict(), ensure_ascii=False),
        )

        session: Optional[Session] = getattr(self._local, "session", None)
        if session is not None:
            try:
                session.add(row)
                session.flush()
            except SQLAlchemyError as exc:
                raise StoreUnavailableError("Failed to insert chunk", cause=exc) from exc
            return

        with self._session_factory() as session:
            try:
                session.add(row)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise StoreUnavailableError("Failed to insert chunk", cause=exc) from exc

    def query_by_keyword(
        self,
        scope: TenantScope,
        keyword: str,
        source_type: Optional[SourceType] = None,
    ) -> List[ChunkRecord]:
        tenant_id = scope.key
        statement = select(DocChunkModel)
        if tenant_id is None:
            statement = statement.where(DocChunkModel.tenant_id.is_(None))
        else:
            statement = statement.where(DocChunkModel.tenant_id == tenant_id)
        if source_type is not None:
            statement = statement.where(DocChunkModel.source_type == source_type.value)
        statement = statement.where(
            func.lower(DocChunkModel.content, type_=Text).contains(keyword.lower(), autoescape=True)
        )

        try:
            with self._session_factory() as session:
                rows = session.scalars(statement).all()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError("Corpus keyword query failed", cause=exc) from exc
        return [self._to_record(row) for row in rows]

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run the enclosed ``put_chunk`` calls of this thread in one transaction."""

        if getattr(self._local, "session", None) is not None:
            yield
            return
        session = self._session_factory()
        self._local.session = session
        try:
            yield
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreUnavailableError("Failed to commit corpus transaction", cause=exc) from exc
        except BaseException:
            session.rollback()
            raise
        finally:
            self._local.session = None
            session.close()

    def count(self, scope: Optional[TenantScope] = None) -> int:
        statement = select(func.count()).select_from(DocChunkModel)
        if scope is not None:
            if scope.key is None:
                statement = statement.where(DocChunkModel.tenant_id.is_(None))
            else:
                statement = statement.where(DocChunkModel.tenant_id == scope.key)
        try:
            with self._session_factory() as session:
                return int(session.scalar(statement) or 0)
        except SQLAlchemyError as exc:
            raise StoreUnavailableError("Corpus count failed", cause=exc) from exc

    @staticmethod
    def _to_record(row: DocChunkModel) -> ChunkRecord:
        source_type = SourceType.parse(row.source_type)
        return ChunkRecord(
            id=row.id,
            scope=scope_from_key(row.tenant_id),
            actor=actor_from_key(row.user_id),
            source_type=source_type,
            chunk_index=row.chunk_index,
            content=row.content,
            metadata=metadata_from_dict(source_type, json.loads(row.metadata_json or "{}")),
            provenance=Provenance(
                source_id=row.source_id,
                source_doc_id=row.source_doc_id,
                source_evidence_id=row.source_evidence_id,
            ),
        )


__all__ = ["Base", "DocChunkModel", "SQLCorpusStore", "create_corpus_engine"]
