"""Retrieval engine tying chunking, embedding and search together."""

from __future__ import annotations

from typing import Any, List, Optional

from localrag.config import DEFAULT_EMBEDDING_MODEL, AppConfig
from localrag.embedding.provider import EmbeddingProvider, build_provider
from localrag.index.indexer import Indexer, IngestStats
from localrag.index.provisioner import ModelProvisioner, ProgressCallback
from localrag.index.search import DEFAULT_TOP_K, Searcher
from localrag.index.storage import InMemoryVectorStore
from localrag.models import SearchResult
from localrag.utils.text import DEFAULT_CHUNK_CHARS


class RetrievalEngine:
    """Owns one index and answers ingestion and similarity queries against it."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        embedding_model: str = DEFAULT_EMBEDDING_MODEL,
        chunk_chars: int = DEFAULT_CHUNK_CHARS,
    ) -> None:
        self.provider = provider
        self.store = InMemoryVectorStore()
        self.provisioner = ModelProvisioner(provider, embedding_model)
        self.indexer = Indexer(provider, self.store, self.provisioner, chunk_chars=chunk_chars)
        self.searcher = Searcher(provider, self.store, self.provisioner)

    @classmethod
    def from_config(cls, config: AppConfig) -> "RetrievalEngine":
        return cls(build_provider(config), embedding_model=config.embedding_model)

    @property
    def embedding_model(self) -> str:
        return self.provisioner.model_name

    def __len__(self) -> int:
        return len(self.store)

    def ensure_model(self, on_progress: Optional[ProgressCallback] = None) -> None:
        self.provisioner.ensure_model(on_progress)

    def add_document(self, content: str, metadata: Any = None) -> IngestStats:
        return self.indexer.add_document(content, metadata)

    def search(self, query: str, k: int = DEFAULT_TOP_K) -> List[SearchResult]:
        return self.searcher.search(query, top_k=k)
