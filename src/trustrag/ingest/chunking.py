"""Chunking utilities for breaking text into overlapping, boundary-aware segments."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterator, List, Tuple

from trustrag.errors import InvalidInputError

_SENTENCE_PREFIX_RE = re.compile(r".*[.!?]\s", re.DOTALL)
LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 500
DEFAULT_OVERLAP = 50
DEFAULT_BOUNDARY_RATIO = 0.3


@dataclass(slots=True)
class SegmenterConfig:
    chunk_size: int = DEFAULT_CHUNK_SIZE
    overlap: int = DEFAULT_OVERLAP
    boundary_ratio: float = DEFAULT_BOUNDARY_RATIO


class BoundaryAwareSegmenter:
    """Split text into chunks, preferring paragraph, sentence and word boundaries.

    A boundary only counts when it lies further than ``boundary_ratio`` of the
    chunk size into the window; otherwise the next, finer boundary kind is
    tried and finally the text is cut at exactly ``chunk_size`` characters.
    Consecutive chunks share ``overlap`` characters of context.
    """

    def __init__(self, config: SegmenterConfig | None = None) -> None:
        self.config = config or SegmenterConfig()
        if self.config.chunk_size <= 0:
            raise InvalidInputError("chunk_size must be a positive integer")
        if self.config.overlap < 0:
            raise InvalidInputError("overlap must be a non-negative integer")

    def segment(self, text: str) -> List[str]:
        """Return the ordered, non-empty chunks of ``text``."""

        return [piece for piece, _, _ in self.iter_spans(text)]

    def iter_spans(self, text: str) -> Iterator[Tuple[str, int, int]]:
        """Yield ``(chunk, start, end)`` with offsets into the trimmed text."""

        if not text:
            return
        trimmed = text.strip()
        if not trimmed:
            return

        chunk_size = self.config.chunk_size
        text_length = len(trimmed)
        if text_length <= chunk_size:
            yield trimmed, 0, text_length
            return

        position = 0
        while position < text_length:
            end = min(position + chunk_size, text_length)
            if end < text_length:
                end = position + self._find_break(trimmed[position:end])

            raw_chunk = trimmed[position:end]
            stripped_chunk = raw_chunk.strip()
            if stripped_chunk:
                start_offset = position + (len(raw_chunk) - len(raw_chunk.lstrip()))
                LOGGER.debug("Chunk offsets %s-%s", start_offset, start_offset + len(stripped_chunk))
                yield stripped_chunk, start_offset, start_offset + len(stripped_chunk)

            if end >= text_length:
                break
            step = end - position
            position += max(step - self.config.overlap, 1)

    def _find_break(self, window: str) -> int:
        """Return the cut offset inside ``window`` according to the boundary preference."""

        threshold = self.config.chunk_size * self.config.boundary_ratio

        paragraph_break = window.rfind("\n\n")
        if paragraph_break > threshold:
            return paragraph_break + 2

        sentence_match = _SENTENCE_PREFIX_RE.match(window)
        if sentence_match is not None and sentence_match.end() > threshold:
            return sentence_match.end()

        word_break = window.rfind(" ")
        if word_break > threshold:
            return word_break + 1

        return len(window)


def segment_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
    boundary_ratio: float = DEFAULT_BOUNDARY_RATIO,
) -> List[str]:
    """Split *text* into overlapping chunks of roughly ``chunk_size`` characters."""

    segmenter = BoundaryAwareSegmenter(
        SegmenterConfig(chunk_size=chunk_size, overlap=overlap, boundary_ratio=boundary_ratio)
    )
    return segmenter.segment(text)
