"""In-memory vector store with exact cosine ranking."""

from __future__ import annotations

import threading
import uuid
from typing import Any, List, Sequence

import numpy as np

from localrag.errors import EmbeddingError
from localrag.models import Chunk, ScoredChunk


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine of the angle between two vectors; 0.0 when either has no magnitude."""
    left = np.asarray(a, dtype="float64")
    right = np.asarray(b, dtype="float64")
    if left.shape != right.shape:
        raise ValueError(f"Vector shapes differ: {left.shape} vs {right.shape}")
    denominator = float(np.linalg.norm(left) * np.linalg.norm(right))
    if denominator == 0.0:
        return 0.0
    return float(np.clip(np.dot(left, right) / denominator, -1.0, 1.0))


def cosine_scores(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Score every row of ``matrix`` against ``query``; zero-magnitude rows score 0."""
    denominators = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.divide(dots, denominators, out=np.zeros_like(dots), where=denominators > 0)
    return np.clip(scores, -1.0, 1.0)


class InMemoryVectorStore:
    """Append-only collection of embedded chunks for the lifetime of the process.

    Appends are serialized by a lock; readers work on a snapshot taken under
    the same lock, so a search never observes a half-written record.
    """

    def __init__(self) -> None:
        self._chunks: List[Chunk] = []
        self._dimension: int | None = None
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._chunks)

    @property
    def dimension(self) -> int | None:
        return self._dimension

    def snapshot(self) -> tuple[Chunk, ...]:
        with self._lock:
            return tuple(self._chunks)

    def add(self, content: str, embedding: Sequence[float], metadata: Any = None) -> Chunk:
        """Store one chunk and return it with its freshly generated id."""
        if not content or not content.strip():
            raise ValueError("Chunk content must not be empty")

        try:
            vector = np.array(embedding, dtype="float64")
        except (TypeError, ValueError) as exc:
            raise EmbeddingError(f"Embedding is not numeric: {exc}") from exc
        if vector.ndim != 1 or vector.size == 0:
            raise EmbeddingError(f"Embedding must be a non-empty 1-D vector, got shape {vector.shape}")
        if not np.isfinite(vector).all():
            raise EmbeddingError("Embedding contains NaN or infinite values")
        vector.flags.writeable = False

        chunk = Chunk(id=uuid.uuid4().hex, content=content, embedding=vector, metadata=metadata)
        with self._lock:
            if self._dimension is None:
                self._dimension = chunk.dimension
            elif chunk.dimension != self._dimension:
                raise EmbeddingError(
                    f"Embedding dimension {chunk.dimension} does not match index dimension "
                    f"{self._dimension}"
                )
            self._chunks.append(chunk)
        return chunk

    def search(self, embedding: Sequence[float] | np.ndarray, *, top_k: int = 3) -> List[ScoredChunk]:
        """Rank all chunks by cosine similarity; ties keep insertion order."""
        chunks = self.snapshot()
        if not chunks or top_k <= 0:
            return []

        query = np.asarray(embedding, dtype="float64")
        if query.shape != (chunks[0].dimension,):
            raise EmbeddingError(
                f"Query embedding shape {query.shape} does not match index dimension "
                f"{chunks[0].dimension}"
            )
        if not np.isfinite(query).all():
            raise EmbeddingError("Query embedding contains NaN or infinite values")

        matrix = np.vstack([chunk.embedding for chunk in chunks])
        scores = cosine_scores(matrix, query)
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [ScoredChunk(chunk=chunks[idx], score=float(scores[idx])) for idx in order]
