"""Service layer combining access checks, ingestion, retrieval and auditing."""
