#!/usr/bin/env python3
"""Seed the corpus with curated verified sources from a JSON file."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("sources", type=Path, help="JSON file holding an array of verified sources.")
    parser.add_argument(
        "--backend",
        choices=("memory", "json", "sql"),
        default=None,
        help="Corpus store backend; defaults to the CORPUS_STORE setting.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    env_file = PROJECT_ROOT / ".env"
    load_dotenv(dotenv_path=env_file if env_file.exists() else None)
    args = _parse_args(sys.argv[1:] if argv is None else argv)

    from trustrag.config import get_settings
    from trustrag.corpus import create_corpus_store
    from trustrag.errors import StoreUnavailableError
    from trustrag.ingest.models import VerifiedSource
    from trustrag.ingest.pipeline import IngestPipeline, IngestPipelineConfig
    from trustrag.logging_config import configure_logging

    configure_logging()

    try:
        payload = json.loads(args.sources.read_text(encoding="utf-8"))
        sources = [VerifiedSource.from_dict(entry) for entry in payload]
    except (OSError, ValueError, TypeError) as error:
        logging.error("Cannot read verified sources from %s: %s", args.sources, error)
        return 2

    try:
        store = create_corpus_store(args.backend)
    except StoreUnavailableError as error:
        logging.error("Corpus store unavailable: %s", error)
        return 1

    pipeline = IngestPipeline(store, IngestPipelineConfig.from_settings(get_settings()))
    report = pipeline.ingest_verified_sources(sources)

    logging.info(
        "Seeded %s sources (%s chunks); %s failed",
        len(report.ingested),
        report.chunk_count,
        len(report.failed),
    )
    for source_id, reason in report.failed.items():
        logging.warning("Source %s failed: %s", source_id, reason)
    return 0 if report.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
