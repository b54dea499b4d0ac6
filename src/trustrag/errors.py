"""Exception types raised by the ingestion and retrieval operations."""
from __future__ import annotations


class RAGError(Exception):
    """Base class for every error raised by :mod:`trustrag`."""


class InvalidInputError(RAGError, ValueError):
    """Raised when a caller supplies content, queries or limits that cannot be processed."""


class StoreUnavailableError(RAGError, RuntimeError):
    """Raised when the corpus store backend cannot be initialised, read or written."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class AccessDeniedError(RAGError, PermissionError):
    """Raised when a caller is not allowed to act on the requested tenant."""

    def __init__(self, tenant_id: str, caller_id: str) -> None:
        super().__init__(f"Caller {caller_id!r} has no access to tenant {tenant_id!r}")
        self.tenant_id = tenant_id
        self.caller_id = caller_id
