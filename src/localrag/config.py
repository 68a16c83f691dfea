"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from localrag.embedding.ollama import DEFAULT_HOST

DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"
DEFAULT_LOCAL_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_CHAT_MODEL = "llama3.2"
PROVIDERS = ("ollama", "sentence-transformers")


@dataclass(slots=True)
class AppConfig:
    embedding_model: str | None = None
    provider: str = "ollama"
    ollama_host: str = DEFAULT_HOST
    chat_model: str = DEFAULT_CHAT_MODEL
    timeout: float = 60.0

    def __post_init__(self) -> None:
        if self.provider not in PROVIDERS:
            raise ValueError(
                f"Unknown provider {self.provider!r}, expected one of {', '.join(PROVIDERS)}"
            )
        if self.embedding_model is None:
            self.embedding_model = _default_embedding_model(self.provider)
        if "://" not in self.ollama_host:
            self.ollama_host = f"http://{self.ollama_host}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AppConfig":
        """Read overrides from ``LOCALRAG_*`` variables and ``OLLAMA_HOST``."""
        env = os.environ if environ is None else environ
        timeout = env.get("LOCALRAG_TIMEOUT")
        try:
            timeout_seconds = float(timeout) if timeout else 60.0
        except ValueError as exc:
            raise ValueError(f"LOCALRAG_TIMEOUT must be a number of seconds, got {timeout!r}") from exc
        return cls(
            embedding_model=env.get("LOCALRAG_EMBEDDING_MODEL") or None,
            provider=env.get("LOCALRAG_PROVIDER") or "ollama",
            ollama_host=env.get("OLLAMA_HOST") or DEFAULT_HOST,
            chat_model=env.get("LOCALRAG_CHAT_MODEL") or DEFAULT_CHAT_MODEL,
            timeout=timeout_seconds,
        )


def _default_embedding_model(provider: str) -> str:
    if provider == "sentence-transformers":
        return DEFAULT_LOCAL_EMBEDDING_MODEL
    return DEFAULT_EMBEDDING_MODEL
