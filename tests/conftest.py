"""Shared fixtures: a deterministic in-process embedding provider."""

from __future__ import annotations

import hashlib
import re
from typing import Iterator, List, Set

import pytest

from localrag.engine import RetrievalEngine
from localrag.errors import EmbeddingError
from localrag.models import PullProgress

DIMENSION = 512


def bag_of_words(text: str, dimension: int = DIMENSION) -> List[float]:
    """Hash lowercase words into a fixed-size count vector."""
    vector = [0.0] * dimension
    for word in re.findall(r"[a-z0-9]+", text.lower()):
        bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % dimension
        vector[bucket] += 1.0
    return vector


class FakeProvider:
    """Embedding provider double that records every call it receives."""

    def __init__(self, models: Set[str] | None = None) -> None:
        self.models = set(models or ())
        self.fail_on: Set[str] = set()
        self.list_error: Exception | None = None
        self.pull_error: Exception | None = None
        self.embed_calls: List[str] = []
        self.list_calls = 0
        self.pull_calls: List[str] = []

    def list_models(self) -> set[str]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return set(self.models)

    def pull_model(self, model: str) -> Iterator[PullProgress]:
        self.pull_calls.append(model)
        yield PullProgress(status="pulling manifest")
        if self.pull_error is not None:
            raise self.pull_error
        yield PullProgress(status="downloading", digest="sha256:abc", total=100, completed=100)
        self.models.add(f"{model}:latest")
        yield PullProgress(status="success")

    def generate_embedding(self, model: str, text: str) -> List[float]:
        self.embed_calls.append(text)
        if text in self.fail_on:
            raise EmbeddingError(f"cannot embed {text[:20]!r}")
        return bag_of_words(text)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider(models={"nomic-embed-text:latest"})


@pytest.fixture
def engine(provider: FakeProvider) -> RetrievalEngine:
    return RetrievalEngine(provider, embedding_model="nomic-embed-text", chunk_chars=100)
