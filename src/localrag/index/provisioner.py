"""Lazy provisioning of the embedding model at the provider."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from localrag.embedding.provider import EmbeddingProvider
from localrag.errors import ProviderError, ProvisioningError
from localrag.models import PullProgress

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[PullProgress], None]


class ModelProvisioner:
    """Makes sure ``model_name`` exists at the provider before it is used.

    The first successful check is remembered, so later calls are free until
    :meth:`invalidate` is called (for instance after the provider reports the
    model missing).
    """

    def __init__(self, provider: EmbeddingProvider, model_name: str) -> None:
        self.provider = provider
        self.model_name = model_name
        self._ready = False
        self._lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return self._ready

    def invalidate(self) -> None:
        with self._lock:
            self._ready = False

    def ensure_model(self, on_progress: Optional[ProgressCallback] = None) -> None:
        if self._ready:
            return
        with self._lock:
            if self._ready:
                return

            try:
                available = self.provider.list_models()
            except ProviderError as exc:
                raise ProvisioningError(f"Could not list models: {exc}") from exc

            if any(self.model_name in name for name in available):
                LOGGER.debug("Embedding model %s already available", self.model_name)
            else:
                self._pull(on_progress)

            self._ready = True

    def _pull(self, on_progress: Optional[ProgressCallback]) -> None:
        LOGGER.info("Embedding model %s not found, pulling it", self.model_name)
        try:
            for event in self.provider.pull_model(self.model_name):
                if on_progress is not None:
                    on_progress(event)
        except ProviderError as exc:
            raise ProvisioningError(f"Could not pull {self.model_name}: {exc}") from exc
        LOGGER.info("Embedding model %s pulled", self.model_name)
