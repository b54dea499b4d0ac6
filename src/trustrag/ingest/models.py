"""Data models shared by the ingestion pipeline, the corpus stores and retrieval."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Union

from trustrag.errors import InvalidInputError


class SourceType(str, Enum):
    """Where the text of a chunk came from."""

    USER_DOCUMENT = "user_document"
    VERIFIED_SOURCE = "verified_source"

    @classmethod
    def parse(cls, value: "SourceType | str") -> "SourceType":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as exc:
            allowed = ", ".join(f'"{member.value}"' for member in cls)
            raise InvalidInputError(f"source_type must be one of {allowed}") from exc


@dataclass(frozen=True, slots=True)
class Tenant:
    """Chunks owned by a single trust."""

    tenant_id: str

    @property
    def key(self) -> Optional[str]:
        return self.tenant_id


@dataclass(frozen=True, slots=True)
class GlobalScope:
    """Curated reference material visible to every tenant."""

    @property
    def key(self) -> Optional[str]:
        return None


TenantScope = Union[Tenant, GlobalScope]
GLOBAL_SCOPE = GlobalScope()


def scope_from_key(tenant_id: Optional[str]) -> TenantScope:
    """Rebuild a scope from its persisted key (``None`` is the global scope)."""

    return GLOBAL_SCOPE if tenant_id is None else Tenant(tenant_id)


@dataclass(frozen=True, slots=True)
class UserActor:
    """A signed-in user that triggered an ingestion."""

    user_id: str

    @property
    def key(self) -> Optional[str]:
        return self.user_id


@dataclass(frozen=True, slots=True)
class SystemActor:
    """Ingestion performed by the system itself, e.g. seeding curated sources."""

    @property
    def key(self) -> Optional[str]:
        return None


Actor = Union[UserActor, SystemActor]
SYSTEM_ACTOR = SystemActor()


def actor_from_key(user_id: Optional[str]) -> Actor:
    return SYSTEM_ACTOR if user_id is None else UserActor(user_id)


@dataclass(frozen=True, slots=True)
class UserDocumentMeta:
    """Positional metadata attached to chunks of user supplied documents."""

    chunk_index: int
    total_chunks: int
    char_length: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class VerifiedSourceMeta:
    """Positional metadata plus the descriptive fields of a curated source."""

    chunk_index: int
    total_chunks: int
    char_length: int
    title: str
    category: str
    jurisdiction: Optional[str] = None
    effective_date: Optional[str] = None
    url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


ChunkMetadata = Union[UserDocumentMeta, VerifiedSourceMeta]


def metadata_from_dict(source_type: SourceType | str, data: Mapping[str, Any]) -> ChunkMetadata:
    """Rebuild the metadata variant matching ``source_type`` from a plain mapping."""

    kind = SourceType.parse(source_type)
    base = {
        "chunk_index": int(data.get("chunk_index", 0)),
        "total_chunks": int(data.get("total_chunks", 0)),
        "char_length": int(data.get("char_length", 0)),
    }
    if kind is SourceType.VERIFIED_SOURCE:
        return VerifiedSourceMeta(
            **base,
            title=str(data.get("title", "")),
            category=str(data.get("category", "")),
            jurisdiction=data.get("jurisdiction"),
            effective_date=data.get("effective_date"),
            url=data.get("url"),
        )
    return UserDocumentMeta(**base)


@dataclass(frozen=True, slots=True)
class Provenance:
    """Optional identifiers linking chunks back to the records they came from."""

    source_id: Optional[str] = None
    source_doc_id: Optional[str] = None
    source_evidence_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class VerifiedSource:
    """A curated reference text, ingested into the global scope."""

    source_id: str
    title: str
    content: str
    category: str
    jurisdiction: Optional[str] = None
    effective_date: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VerifiedSource":
        try:
            return cls(
                source_id=str(data["source_id"]),
                title=str(data["title"]),
                content=str(data["content"]),
                category=str(data["category"]),
                jurisdiction=data.get("jurisdiction"),
                effective_date=data.get("effective_date"),
                url=data.get("url"),
            )
        except KeyError as exc:
            raise InvalidInputError(f"verified source is missing field {exc.args[0]!r}") from exc


@dataclass(frozen=True, slots=True)
class ChunkRecord:
    """A persisted, immutable unit of searchable text."""

    id: str
    scope: TenantScope
    actor: Actor
    source_type: SourceType
    chunk_index: int
    content: str
    metadata: ChunkMetadata
    provenance: Provenance = field(default_factory=Provenance)

    @property
    def source_id(self) -> Optional[str]:
        return self.provenance.source_id

    @property
    def source_doc_id(self) -> Optional[str]:
        return self.provenance.source_doc_id

    @property
    def source_evidence_id(self) -> Optional[str]:
        return self.provenance.source_evidence_id

    def to_dict(self) -> dict[str, Any]:
        """Flat JSON representation used by the file backed store."""

        return {
            "id": self.id,
            "tenant_id": self.scope.key,
            "user_id": self.actor.key,
            "source_type": self.source_type.value,
            "source_id": self.source_id,
            "source_doc_id": self.source_doc_id,
            "source_evidence_id": self.source_evidence_id,
            "chunk_index": self.chunk_index,
            "content": self.content,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChunkRecord":
        source_type = SourceType.parse(data["source_type"])
        return cls(
            id=str(data["id"]),
            scope=scope_from_key(data.get("tenant_id")),
            actor=actor_from_key(data.get("user_id")),
            source_type=source_type,
            chunk_index=int(data["chunk_index"]),
            content=str(data["content"]),
            metadata=metadata_from_dict(source_type, data.get("metadata") or {}),
            provenance=Provenance(
                source_id=data.get("source_id"),
                source_doc_id=data.get("source_doc_id"),
                source_evidence_id=data.get("source_evidence_id"),
            ),
        )
