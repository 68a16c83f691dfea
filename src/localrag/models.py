"""Core localrag data models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np


@dataclass(slots=True, frozen=True)
class Chunk:
    """Indexed passage of text paired with its embedding and caller metadata."""

    id: str
    content: str
    embedding: np.ndarray
    metadata: Any = None

    @property
    def dimension(self) -> int:
        return int(self.embedding.shape[0])


@dataclass(slots=True, frozen=True)
class ScoredChunk:
    chunk: Chunk
    score: float


@dataclass(slots=True)
class SearchResult:
    """What a query hands back to callers: the passage and its untouched metadata."""

    content: str
    metadata: Any


@dataclass(slots=True, frozen=True)
class PullProgress:
    """One event of a model download stream."""

    status: str
    digest: str | None = None
    total: int | None = None
    completed: int | None = None

    @property
    def done(self) -> bool:
        return self.status == "success"

    @property
    def fraction(self) -> float | None:
        if not self.total or self.completed is None:
            return None
        return min(self.completed / self.total, 1.0)
