"""Exception hierarchy for the retrieval engine."""

from __future__ import annotations


class LocalRagError(Exception):
    """Base class for all localrag errors."""


class InvalidArgumentError(LocalRagError, ValueError):
    """Raised before any provider call when arguments are unusable."""


class ProvisioningError(LocalRagError):
    """The embedding model could not be listed or pulled."""


class ProviderError(LocalRagError):
    """Transport or protocol failure reported by an embedding/chat provider."""


class EmbeddingError(ProviderError):
    """A single chunk or query failed to embed."""


class ModelNotFoundError(EmbeddingError):
    """The provider no longer knows the requested model."""

    def __init__(self, model: str, message: str | None = None) -> None:
        super().__init__(message or f"Model not found at provider: {model}")
        self.model = model
