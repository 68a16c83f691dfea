"""Text helpers including paragraph/sentence-aware chunking."""

from __future__ import annotations

import re
from typing import Iterable, Iterator

from localrag.errors import InvalidArgumentError

DEFAULT_CHUNK_CHARS = 1000
MIN_CHUNK_CHARS = 10

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


def chunk_text(text: str, max_chunk_chars: int = DEFAULT_CHUNK_CHARS) -> Iterator[str]:
    """Split text into passages of at most ``max_chunk_chars`` characters.

    Paragraphs are kept whole when they fit. Oversized paragraphs fall back to
    greedy sentence packing, and a sentence that is still too long is cut into
    fixed-size slices. Passages shorter than ``MIN_CHUNK_CHARS`` once stripped
    are dropped wherever they come from, including the tail slice of a hard
    split, so ``"a" * 1005`` at a limit of 1000 yields a single chunk.

    Arguments are validated eagerly; the chunks themselves are produced lazily.
    """
    if isinstance(max_chunk_chars, bool) or not isinstance(max_chunk_chars, int):
        raise InvalidArgumentError(f"max_chunk_chars must be an int, got {max_chunk_chars!r}")
    if max_chunk_chars <= 0:
        raise InvalidArgumentError(f"max_chunk_chars must be positive, got {max_chunk_chars}")
    if not isinstance(text, str):
        raise InvalidArgumentError(f"text must be a str, got {type(text).__name__}")

    return (
        chunk
        for chunk in _iter_passages(text, max_chunk_chars)
        if len(chunk.strip()) >= MIN_CHUNK_CHARS
    )


def _iter_passages(text: str, limit: int) -> Iterator[str]:
    for paragraph in split_paragraphs(text):
        if len(paragraph) <= limit:
            yield paragraph
        else:
            yield from _pack_sentences(split_sentences(paragraph), limit)


def _pack_sentences(sentences: Iterable[str], limit: int) -> Iterator[str]:
    buffer = ""
    for sentence in sentences:
        if len(sentence) > limit:
            if buffer:
                yield buffer
                buffer = ""
            yield from hard_split(sentence, limit)
            continue

        candidate = f"{buffer} {sentence}" if buffer else sentence
        if len(candidate) > limit:
            yield buffer
            buffer = sentence
        else:
            buffer = candidate

    if buffer:
        yield buffer


def split_paragraphs(text: str) -> list[str]:
    """Split on blank lines, dropping empty paragraphs."""
    return [part.strip() for part in _PARAGRAPH_BREAK.split(text) if part.strip()]


def split_sentences(paragraph: str) -> list[str]:
    """Split after ``.``, ``!`` or ``?`` when followed by whitespace."""
    return [part for part in _SENTENCE_BREAK.split(paragraph.strip()) if part]


def hard_split(text: str, size: int) -> Iterator[str]:
    """Cut text into slices of exactly ``size`` characters (last may be shorter)."""
    for start in range(0, len(text), size):
        yield text[start : start + size]

