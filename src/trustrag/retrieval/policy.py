"""Data-gap decision rule and the fixed messages attached to every result."""
from __future__ import annotations

from typing import Optional

DEFAULT_DATA_GAP_THRESHOLD = 2

LEGAL_DISCLAIMER = (
    "This information is for educational purposes only and does not constitute "
    "legal advice. Consult a qualified attorney for guidance specific to your situation."
)

NO_KEYWORDS_MESSAGE = (
    "No meaningful search terms could be extracted from the query. "
    "Please try rephrasing with more specific terms."
)

LIMITED_RESULTS_MESSAGE = (
    "Limited information found for this query. Results may be incomplete. "
    "Consider uploading additional documents or refining your search terms."
)


def is_data_gap(result_count: int, threshold: int = DEFAULT_DATA_GAP_THRESHOLD) -> bool:
    """Return ``True`` when too few chunks matched to present them without a caveat."""

    return result_count < threshold


def data_gap_message(result_count: int, threshold: int = DEFAULT_DATA_GAP_THRESHOLD) -> Optional[str]:
    return LIMITED_RESULTS_MESSAGE if is_data_gap(result_count, threshold) else None
