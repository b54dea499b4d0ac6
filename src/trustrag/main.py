import logging
from typing import Any, Callable, TypeVar

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from trustrag.api.rag import router as rag_router
from trustrag.api.rag import translate_error
from trustrag.corpus import get_corpus_store
from trustrag.errors import RAGError, StoreUnavailableError
from trustrag.ingest.models import GLOBAL_SCOPE
from trustrag.logging_config import configure_logging
from trustrag.telemetry import emit_app_startup_event

configure_logging()

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Trust RAG API")
app.include_router(rag_router)


@app.on_event("startup")
async def _log_startup() -> None:
    emit_app_startup_event()


@app.exception_handler(RAGError)
async def _rag_error_handler(request: Request, exc: RAGError) -> JSONResponse:
    """Translate service errors raised outside the route bodies, e.g. while resolving dependencies."""

    LOGGER.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    http_error = translate_error(exc)
    return JSONResponse(status_code=http_error.status_code, content={"detail": http_error.detail})


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


T = TypeVar("T")


def _resolve_dependency(factory: Callable[[], T]) -> T:
    """Resolve a dependency while respecting FastAPI overrides."""

    override: Any | None = app.dependency_overrides.get(factory)
    resolved: Any = override if override is not None else factory
    return resolved() if callable(resolved) else resolved


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Liveness probe used by container orchestrators."""
    return "ok"


@app.get("/readyz", response_class=PlainTextResponse)
def readiness_probe() -> str:
    """Readiness probe that ensures the corpus store answers a keyword read."""

    try:
        store = _resolve_dependency(get_corpus_store)
        store.query_by_keyword(GLOBAL_SCOPE, "readyz")
    except StoreUnavailableError as exc:
        LOGGER.warning("Corpus store not ready: %s", exc)
        raise HTTPException(status_code=503, detail=f"corpus_store_unavailable: {exc}") from exc

    return "ok"
