from fastapi.testclient import TestClient

from trustrag.corpus import InMemoryCorpusStore, get_corpus_store
from trustrag.errors import StoreUnavailableError
from trustrag.main import app


class _BrokenStore(InMemoryCorpusStore):
    def query_by_keyword(self, scope, keyword, source_type=None):
        raise StoreUnavailableError("connection refused")


def test_root_returns_ok() -> None:
    client = TestClient(app)
    response = client.get("/")
    assert response.status_code == 200
    assert response.text == "ok"


def test_healthz_returns_ok() -> None:
    client = TestClient(app)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.text == "ok"


def test_readyz_returns_ok_with_default_store() -> None:
    client = TestClient(app)
    response = client.get("/readyz")
    assert response.status_code == 200
    assert response.text == "ok"


def test_readyz_reports_store_outage() -> None:
    app.dependency_overrides[get_corpus_store] = lambda: _BrokenStore()
    try:
        client = TestClient(app)
        response = client.get("/readyz")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert "corpus_store_unavailable" in response.json()["detail"]
