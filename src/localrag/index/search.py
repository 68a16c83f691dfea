"""Semantic search interface."""

from __future__ import annotations

import logging
from typing import List

from localrag.embedding.provider import EmbeddingProvider
from localrag.errors import InvalidArgumentError, ModelNotFoundError
from localrag.index.provisioner import ModelProvisioner
from localrag.index.storage import InMemoryVectorStore
from localrag.models import SearchResult

LOGGER = logging.getLogger(__name__)

DEFAULT_TOP_K = 3


class Searcher:
    """High-level API to query the vector store."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        store: InMemoryVectorStore,
        provisioner: ModelProvisioner,
    ) -> None:
        self.provider = provider
        self.store = store
        self.provisioner = provisioner

    def search(self, query: str, *, top_k: int = DEFAULT_TOP_K) -> List[SearchResult]:
        if not isinstance(query, str) or not query.strip():
            raise InvalidArgumentError("Empty query")
        if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k <= 0:
            raise InvalidArgumentError(f"top_k must be a positive int, got {top_k!r}")

        if len(self.store) == 0:
            return []

        self.provisioner.ensure_model()
        try:
            embedding = self.provider.generate_embedding(self.provisioner.model_name, query)
        except ModelNotFoundError:
            self.provisioner.invalidate()
            raise

        hits = self.store.search(embedding, top_k=top_k)
        LOGGER.debug("Query matched %d chunks (best score %s)", len(hits), hits[0].score if hits else None)
        return [SearchResult(content=hit.chunk.content, metadata=hit.chunk.metadata) for hit in hits]
