"""Provider contracts consumed by the retrieval engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator, Mapping, Protocol, Sequence, runtime_checkable

from localrag.models import PullProgress

if TYPE_CHECKING:
    from localrag.config import AppConfig


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that can embed text and manage the models it embeds with."""

    def generate_embedding(self, model: str, text: str) -> list[float]:
        ...

    def list_models(self) -> set[str]:
        ...

    def pull_model(self, model: str) -> Iterator[PullProgress]:
        ...


@runtime_checkable
class ChatProvider(Protocol):
    def chat(self, model: str, messages: Sequence[Mapping[str, str]]) -> Iterator[dict[str, Any]]:
        ...


@runtime_checkable
class ModelAdminProvider(Protocol):
    """Providers that can derive new models from existing ones and remove them."""

    def create_model(
        self, name: str, base: str, system: str | None = None
    ) -> Iterator[dict[str, Any]]:
        ...

    def delete_model(self, name: str) -> None:
        ...


def build_provider(config: "AppConfig") -> EmbeddingProvider:
    """Instantiate the provider named in the configuration."""
    if config.provider == "ollama":
        from localrag.embedding.ollama import OllamaProvider

        return OllamaProvider(config.ollama_host, timeout=config.timeout)
    if config.provider == "sentence-transformers":
        from localrag.embedding.encoder import SentenceTransformerProvider

        return SentenceTransformerProvider()
    raise ValueError(f"Unknown embedding provider: {config.provider}")
