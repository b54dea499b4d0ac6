from __future__ import annotations

import importlib.util
import json
from pathlib import Path

import pytest

from trustrag.corpus import PersistentCorpusStore
from trustrag.ingest.models import GLOBAL_SCOPE

SCRIPT_PATH = Path(__file__).resolve().parents[1] / "scripts" / "seed_verified_sources.py"


@pytest.fixture
def seed_module():
    spec = importlib.util.spec_from_file_location("seed_verified_sources", SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    assert spec.loader is not None
    spec.loader.exec_module(module)
    return module


def _write_sources(path: Path, sources) -> Path:
    path.write_text(json.dumps(sources), encoding="utf-8")
    return path


def test_seeds_sources_into_global_scope(seed_module, tmp_path):
    sources = _write_sources(
        tmp_path / "sources.json",
        [
            {
                "source_id": "utc-602",
                "title": "Revocation or amendment of revocable trust",
                "content": "The settlor may revoke or amend a revocable trust.",
                "category": "statute",
                "jurisdiction": "US",
            }
        ],
    )

    exit_code = seed_module.main([str(sources), "--backend", "json"])

    assert exit_code == 0
    store = PersistentCorpusStore(tmp_path / "data" / "corpus.json")
    [record] = store.query_by_keyword(GLOBAL_SCOPE, "revocable")
    assert record.source_id == "utc-602"
    assert record.metadata.jurisdiction == "US"


def test_partial_failure_returns_non_zero(seed_module, tmp_path):
    sources = _write_sources(
        tmp_path / "sources.json",
        [
            {"source_id": "ok", "title": "Duty of loyalty", "content": "Trustees owe loyalty.", "category": "statute"},
            {"source_id": "empty", "title": "Blank", "content": "  ", "category": "statute"},
        ],
    )

    assert seed_module.main([str(sources), "--backend", "memory"]) == 1


def test_unreadable_input_returns_usage_error(seed_module, tmp_path):
    missing_field = _write_sources(tmp_path / "sources.json", [{"source_id": "x", "content": "text"}])

    assert seed_module.main([str(tmp_path / "absent.json")]) == 2
    assert seed_module.main([str(missing_field)]) == 2
