"""
Overlapping Character Chunker
═════════════════════════════

Splits plain text into bounded, overlapping segments for embedding.

Algorithm
─────────
  start = 0
  loop:
    end = start + max_chars
    if end falls inside the text:
        cut at the last "\\n" at or before end, if it lies past the window midpoint
        else cut at the last " " at or before end, same midpoint rule
        else hard cut at end
    emit text[start:end].strip()
    start = end - overlap
  until the window reaches the end of the text

Empty segments (whitespace-only windows) are dropped, so chunk indices are
always contiguous 0..N-1.

Why the midpoint rule?
  A newline 10 characters into the window would produce a tiny chunk and a
  lot of duplicated overlap. Breaking only in the second half of the window
  keeps every chunk at least max_chars/2 long.

Why overlap?
  A sentence that straddles a cut appears whole in at least one of the two
  neighbouring chunks, so retrieval never loses it to the boundary.

Character-based (not token-based) to avoid a tokenizer dependency:
  2000 chars ≈ 500 tokens for text-embedding-3-small.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from knowledge_factory.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 2000
DEFAULT_OVERLAP   = 200


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclass
class Chunk:
    """
    A single chunk ready for embedding.

    content          : trimmed chunk text (never empty)
    index            : 0-based position within the source document
    source_file_name : file the chunk was cut from
    char_start       : offset of the untrimmed window in the extracted text
    char_end         : exclusive end offset of the untrimmed window
    """
    content:          str
    index:            int
    source_file_name: str
    char_start:       int
    char_end:         int

    @property
    def char_count(self) -> int:
        return len(self.content)


# ---------------------------------------------------------------------------
# Window computation
# ---------------------------------------------------------------------------

def compute_windows(text: str, max_chars: int, overlap: int) -> list[tuple[int, int]]:
    """
    Return the (start, end) offsets of every chunk window, in order.

    Consecutive windows overlap by ``overlap`` characters (fewer when the
    window was cut short), and together they cover the whole text.
    """
    windows: list[tuple[int, int]] = []
    text_length = len(text)
    start = 0

    while start < text_length:
        end = start + max_chars
        midpoint = start + max_chars / 2

        if end < text_length:
            last_newline = text.rfind("\n", 0, end + 1)
            if last_newline > midpoint:
                end = last_newline
            else:
                last_space = text.rfind(" ", 0, end + 1)
                if last_space > midpoint:
                    end = last_space

        windows.append((start, min(end, text_length)))

        if end >= text_length:
            break

        next_start = end - overlap
        # Overlap wider than the window just cut: skip the overlap for this step
        if next_start <= start:
            next_start = end
        start = next_start

    return windows


def chunk_text(
    text:      str,
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap:   int = DEFAULT_OVERLAP,
) -> list[str]:
    """Split ``text`` into trimmed, non-empty, overlapping chunk strings."""
    pieces = (text[start:end].strip() for start, end in compute_windows(text, max_chars, overlap))
    return [piece for piece in pieces if piece]


# ---------------------------------------------------------------------------
# Chunker
# ---------------------------------------------------------------------------

class TextChunker:
    """
    Character-based chunker with overlap.

    Usage:
        chunker = TextChunker()                         # sizes from settings
        chunks  = chunker.chunk(text, source="faq.md")  # list[Chunk]
    """

    def __init__(
        self,
        max_chars: int | None = None,
        overlap:   int | None = None,
    ) -> None:
        self.max_chars = max_chars if max_chars is not None else settings.chunk_max_chars
        self.overlap   = overlap if overlap is not None else settings.chunk_overlap

        if self.max_chars <= 0:
            raise ValueError(f"max_chars must be positive, got {self.max_chars}")
        if self.overlap < 0:
            raise ValueError(f"overlap must not be negative, got {self.overlap}")
        if self.overlap >= self.max_chars:
            raise ValueError(
                f"Overlap ({self.overlap}) must be less than "
                f"max_chars ({self.max_chars})"
            )

    def chunk(self, text: str, source: str) -> list[Chunk]:
        chunks: list[Chunk] = []

        for start, end in compute_windows(text, self.max_chars, self.overlap):
            content = text[start:end].strip()
            if not content:
                continue
            chunks.append(Chunk(
                content=content,
                index=len(chunks),
                source_file_name=source,
                char_start=start,
                char_end=end,
            ))

        logger.info(
            "Chunker | source=%s text_chars=%d chunks=%d avg_chars=%.0f",
            source, len(text), len(chunks),
            sum(c.char_count for c in chunks) / max(1, len(chunks)),
        )
        return chunks

    def split(self, text: str) -> list[str]:
        return chunk_text(text, self.max_chars, self.overlap)
