"""Environment driven configuration for the ingestion and retrieval engine."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

LOGGER = logging.getLogger(__name__)


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


def _optional_float_from_env(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    try:
        parsed = float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; ignoring", name, value)
        return None
    return parsed if parsed > 0 else None


@dataclass(slots=True)
class RAGSettings:
    """Tunable parameters shared by the segmenter, the engine and the stores."""

    chunk_size: int = 500
    chunk_overlap: int = 50
    boundary_ratio: float = 0.3
    data_gap_threshold: int = 2
    default_limit: int = 10
    max_limit: int = 50
    snippet_chars: int = 200
    read_workers: int = 1
    read_timeout_seconds: Optional[float] = None
    corpus_store: str = "memory"
    corpus_path: str = "data/corpus.json"
    database_url: str = "sqlite:///data/corpus.db"
    log_dir: str = "logs"


def load_settings() -> RAGSettings:
    """Build :class:`RAGSettings` from the current environment."""

    defaults = RAGSettings()
    return RAGSettings(
        chunk_size=_int_from_env("RAG_CHUNK_SIZE", defaults.chunk_size),
        chunk_overlap=_int_from_env("RAG_CHUNK_OVERLAP", defaults.chunk_overlap),
        boundary_ratio=_float_from_env("RAG_BOUNDARY_RATIO", defaults.boundary_ratio),
        data_gap_threshold=_int_from_env("RAG_DATA_GAP_THRESHOLD", defaults.data_gap_threshold),
        default_limit=_int_from_env("RAG_DEFAULT_LIMIT", defaults.default_limit),
        max_limit=_int_from_env("RAG_MAX_LIMIT", defaults.max_limit),
        snippet_chars=_int_from_env("RAG_SNIPPET_CHARS", defaults.snippet_chars),
        read_workers=max(1, _int_from_env("RAG_READ_WORKERS", defaults.read_workers)),
        read_timeout_seconds=_optional_float_from_env("RAG_READ_TIMEOUT"),
        corpus_store=os.getenv("CORPUS_STORE", defaults.corpus_store).strip().lower(),
        corpus_path=os.getenv("CORPUS_PATH", defaults.corpus_path),
        database_url=os.getenv("DATABASE_URL", defaults.database_url),
        log_dir=os.getenv("RAG_LOG_DIR", defaults.log_dir),
    )


@lru_cache()
def get_settings() -> RAGSettings:
    """Return the process-wide settings, read once from the environment."""

    return load_settings()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for testing)."""

    get_settings.cache_clear()
