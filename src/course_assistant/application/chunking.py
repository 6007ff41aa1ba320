"""Sentence-respecting text chunking for course content."""

from __future__ import annotations

import re

DEFAULT_CHUNK_SIZE = 1000

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def split_sentences(text: str) -> list[str]:
    """Split *text* after terminal punctuation (``.``, ``!``, ``?``) followed by whitespace."""
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text.strip()) if s.strip()]


def split_into_chunks(text: str, max_chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Group consecutive sentences into chunks of at most *max_chunk_size* characters.

    A sentence is never split: one longer than the limit ends up alone in an
    oversized chunk. Every sentence lands in exactly one chunk, in order.

    Args:
        text: Raw course text.
        max_chunk_size: Soft character limit per chunk.

    Returns:
        Non-empty, trimmed chunks. Empty or whitespace-only text yields ``[]``.
    """
    if max_chunk_size < 1:
        raise ValueError("max_chunk_size must be positive")

    chunks: list[str] = []
    current = ""

    for sentence in split_sentences(text):
        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) > max_chunk_size and current:
            chunks.append(current.strip())
            current = sentence
        else:
            current = candidate

    if current.strip():
        chunks.append(current.strip())

    return chunks
