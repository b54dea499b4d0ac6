"""Keyword extraction, match-count ranking and the data-gap policy."""
