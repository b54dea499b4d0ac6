"""Query normalisation into a deduplicated list of significant search terms."""
from __future__ import annotations

import re
from typing import FrozenSet, List

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")

MIN_KEYWORD_LENGTH = 2

# Common English function words that add no search value.
STOP_WORDS: FrozenSet[str] = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "is", "it", "as", "be", "was", "were",
        "been", "being", "have", "has", "had", "do", "does", "did", "will",
        "would", "could", "should", "may", "might", "shall", "can", "this",
        "that", "these", "those", "am", "are", "not", "no", "if", "so",
        "what", "which", "who", "whom", "how", "when", "where", "why",
        "all", "each", "every", "both", "few", "more", "most", "other",
        "some", "such", "than", "too", "very", "just", "about", "above",
        "after", "before", "between", "into", "through", "during", "out",
        "up", "down", "then", "once", "here", "there", "any", "its", "my",
        "your", "our", "their", "his", "her", "i", "me", "we", "you", "he",
        "she", "they", "them", "us",
    }
)


def extract_keywords(query: str) -> List[str]:
    """Return the lowercase search terms of *query* in first-occurrence order.

    Punctuation becomes whitespace, tokens shorter than two characters and
    stop words are dropped, and repeated terms are kept only once.
    """

    if not query:
        return []
    normalised = _NON_ALNUM_RE.sub(" ", query.lower())
    tokens = (
        token
        for token in normalised.split()
        if len(token) >= MIN_KEYWORD_LENGTH and token not in STOP_WORDS
    )
    return list(dict.fromkeys(tokens))
