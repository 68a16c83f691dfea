"""Local embedding provider built on sentence-transformers."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterator

import numpy as np
from huggingface_hub import scan_cache_dir, snapshot_download
from huggingface_hub.utils import CacheNotFound
from sentence_transformers import SentenceTransformer

from localrag.errors import EmbeddingError, ProviderError
from localrag.models import PullProgress

logger = logging.getLogger(__name__)


class SentenceTransformerProvider:
    """Embed text in-process with models from the Hugging Face hub.

    "Listing" reports model repositories already present in the local hub
    cache and "pulling" downloads a snapshot into it, so the provisioner can
    treat this provider exactly like a remote model server.
    """

    def __init__(
        self,
        *,
        device: str | None = None,
        normalize: bool = True,
        cache_dir: str | None = None,
    ) -> None:
        self.device = device
        self.normalize = normalize
        self.cache_dir = cache_dir
        self._models: Dict[str, SentenceTransformer] = {}
        self._lock = threading.Lock()

    def list_models(self) -> set[str]:
        try:
            cache = scan_cache_dir(self.cache_dir)
        except CacheNotFound:
            return set()
        except OSError as exc:
            raise ProviderError(f"Unable to scan model cache: {exc}") from exc
        return {repo.repo_id for repo in cache.repos if repo.repo_type == "model"}

    def pull_model(self, model: str) -> Iterator[PullProgress]:
        logger.info("Downloading %s into the local model cache", model)
        yield PullProgress(status=f"pulling {model}")
        try:
            snapshot_download(repo_id=model, cache_dir=self.cache_dir)
        except Exception as exc:
            raise ProviderError(f"Download of {model} failed: {exc}") from exc
        yield PullProgress(status="success")

    def _load(self, model: str) -> SentenceTransformer:
        with self._lock:
            if model not in self._models:
                logger.info("Loading sentence-transformer %s", model)
                self._models[model] = SentenceTransformer(
                    model, device=self.device, cache_folder=self.cache_dir
                )
            return self._models[model]

    def generate_embedding(self, model: str, text: str) -> list[float]:
        try:
            encoder = self._load(model)
            vector = encoder.encode(
                [text],
                show_progress_bar=False,
                convert_to_numpy=True,
                normalize_embeddings=self.normalize,
            )[0]
        except Exception as exc:
            raise EmbeddingError(f"Local embedding with {model} failed: {exc}") from exc
        return np.asarray(vector, dtype="float32").tolist()
