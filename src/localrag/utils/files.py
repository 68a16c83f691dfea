"""Utility helpers for working with files."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator

TEXT_SUFFIXES = frozenset({".txt", ".md", ".markdown"})


def iter_text_paths(inputs: Iterable[Path]) -> Iterator[Path]:
    """Yield plain-text and Markdown paths from input paths, descending into directories."""
    for item in inputs:
        if item.is_dir():
            yield from iter_text_paths(
                sorted(child for child in item.rglob("*") if child.is_file())
            )
        elif item.is_file() and item.suffix.lower() in TEXT_SUFFIXES:
            yield item


def read_text(path: Path) -> str:
    """Read a text file, normalizing line endings so paragraph breaks survive."""
    return path.read_text(encoding="utf-8", errors="replace").replace("\r\n", "\n")
