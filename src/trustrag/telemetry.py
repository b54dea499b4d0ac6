"""Structured lifecycle events for ingestion, corpus access and retrieval."""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
import traceback
from pathlib import Path
from typing import Any, Optional

LOGGER = logging.getLogger("trustrag.telemetry")

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "RAG_CHUNK_SIZE",
    "RAG_CHUNK_OVERLAP",
    "RAG_BOUNDARY_RATIO",
    "RAG_DATA_GAP_THRESHOLD",
    "RAG_READ_WORKERS",
    "RAG_READ_TIMEOUT",
    "CORPUS_STORE",
    "CORPUS_PATH",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    tenant_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if tenant_id:
        event["tenant_id"] = tenant_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    details = {
        "env": {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None},
        "python": sys.version.split()[0],
        "platform": platform.platform(),
    }
    log_event(
        LOGGER,
        "app.startup",
        details=details,
        pid=os.getpid(),
        hostname=socket.gethostname(),
        cwd=str(Path.cwd()),
    )


def emit_ingest_event(
    step: str,
    *,
    tenant_id: str | None,
    source_type: str,
    chunks: int | None = None,
    source_id: str | None = None,
    duration_ms: float | None = None,
) -> None:
    details = {"source_type": source_type, "source_id": source_id, "chunks": chunks}
    log_event(LOGGER, step, tenant_id=tenant_id, duration_ms=duration_ms, details=details)


def emit_corpus_event(
    step: str,
    *,
    backend: str,
    count: int,
    error: BaseException | None = None,
) -> None:
    details = {"backend": backend, "count": count}
    level = "error" if error else "debug"
    log_event(LOGGER, step, level=level, details=details, exc=error)


def emit_retriever_event(
    *,
    tenant_id: str | None,
    query: str,
    keywords: list[str],
    limit: int,
    results: list[dict[str, Any]],
    has_data_gap: bool,
    duration_ms: float,
) -> None:
    details = {
        "query_preview": query[:120],
        "keywords": keywords,
        "limit": limit,
        "results": results,
        "has_data_gap": has_data_gap,
    }
    log_event(LOGGER, "retriever.search", tenant_id=tenant_id, duration_ms=duration_ms, details=details)


def emit_exception(
    *,
    module: str,
    error: BaseException,
    tenant_id: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module}
    if suggestion:
        details["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        tenant_id=tenant_id,
        details=details,
        exc=error,
    )
