"""Keyword retrieval engine for trust documents and curated legal sources."""

__version__ = "0.1.0"
