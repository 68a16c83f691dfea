"""Document ingestion pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List

from localrag.embedding.provider import EmbeddingProvider
from localrag.errors import EmbeddingError, InvalidArgumentError, ModelNotFoundError
from localrag.index.provisioner import ModelProvisioner
from localrag.index.storage import InMemoryVectorStore
from localrag.utils.text import DEFAULT_CHUNK_CHARS, chunk_text

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestStats:
    chunks: int = 0
    embedded: int = 0
    skipped: int = 0
    chunk_ids: List[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return self.skipped > 0

    def record(self, chunk_id: str | None) -> None:
        self.chunks += 1
        if chunk_id is None:
            self.skipped += 1
        else:
            self.embedded += 1
            self.chunk_ids.append(chunk_id)


class Indexer:
    """Chunks documents, embeds every chunk and appends it to the store."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        store: InMemoryVectorStore,
        provisioner: ModelProvisioner,
        *,
        chunk_chars: int = DEFAULT_CHUNK_CHARS,
    ) -> None:
        self.provider = provider
        self.store = store
        self.provisioner = provisioner
        self.chunk_chars = chunk_chars

    @property
    def model_name(self) -> str:
        return self.provisioner.model_name

    def add_document(self, content: str, metadata: Any = None) -> IngestStats:
        """Index one document.

        A chunk that fails to embed is logged and skipped, so a document may
        end up partially indexed; the returned stats say how much made it in.
        Provisioning failures abort before anything is stored.
        """
        if not isinstance(content, str):
            raise InvalidArgumentError(f"content must be a str, got {type(content).__name__}")
        chunks = chunk_text(content, self.chunk_chars)

        self.provisioner.ensure_model()

        stats = IngestStats()
        for position, chunk in enumerate(chunks):
            stats.record(self._embed_and_store(position, chunk, metadata))

        if stats.partial:
            LOGGER.warning(
                "Indexed %d of %d chunks (%d skipped)", stats.embedded, stats.chunks, stats.skipped
            )
        else:
            LOGGER.info("Indexed %d chunks", stats.embedded)
        return stats

    def _embed_and_store(self, position: int, chunk: str, metadata: Any) -> str | None:
        try:
            embedding = self.provider.generate_embedding(self.model_name, chunk)
            return self.store.add(chunk, embedding, metadata).id
        except ModelNotFoundError as exc:
            self.provisioner.invalidate()
            LOGGER.warning("Skipping chunk %d: %s", position, exc)
        except EmbeddingError as exc:
            LOGGER.warning("Skipping chunk %d: %s", position, exc)
        return None
