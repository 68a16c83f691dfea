"""HTTP adapter for a local Ollama server."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterator, Mapping, Sequence

import httpx

from localrag.errors import EmbeddingError, ModelNotFoundError, ProviderError
from localrag.models import PullProgress

DEFAULT_HOST = "http://localhost:11434"

logger = logging.getLogger(__name__)


class OllamaProvider:
    """Embedding and chat provider backed by the Ollama REST API.

    Streaming endpoints (``/api/pull``, ``/api/create``, ``/api/chat``) answer with
    newline-delimited JSON; each line is decoded as it arrives so callers can
    report progress or render tokens incrementally.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        *,
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.host = host.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.Client(base_url=self.host, timeout=httpx.Timeout(timeout))

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OllamaProvider":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def list_models(self) -> set[str]:
        try:
            response = self._client.get("/api/tags")
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(f"Failed to list models at {self.host}: {exc}") from exc

        if not isinstance(payload, dict):
            raise ProviderError(f"Unexpected model listing from {self.host}: {payload!r}")

        names = set()
        for entry in payload.get("models") or []:
            name = entry.get("name") or entry.get("model")
            if name:
                names.add(name)
        return names

    def pull_model(self, model: str) -> Iterator[PullProgress]:
        """Download ``model``, yielding progress events until Ollama reports success."""
        logger.info("Pulling model %s from %s", model, self.host)
        finished = False
        # Layers can take minutes between events, so reads never time out here.
        timeout = httpx.Timeout(self.timeout, read=None)
        try:
            with self._client.stream(
                "POST", "/api/pull", json={"model": model, "stream": True}, timeout=timeout
            ) as response:
                response.raise_for_status()
                for event in _iter_ndjson(response):
                    if "error" in event:
                        raise ProviderError(f"Pull of {model} failed: {event['error']}")
                    progress = PullProgress(
                        status=str(event.get("status", "")),
                        digest=event.get("digest"),
                        total=event.get("total"),
                        completed=event.get("completed"),
                    )
                    finished = finished or progress.done
                    yield progress
        except httpx.HTTPError as exc:
            raise ProviderError(f"Pull of {model} failed: {exc}") from exc

        if not finished:
            raise ProviderError(f"Pull of {model} ended before completion")
        logger.info("Model %s is ready", model)

    def generate_embedding(self, model: str, text: str) -> list[float]:
        try:
            response = self._client.post("/api/embeddings", json={"model": model, "prompt": text})
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        if response.status_code == 404:
            raise ModelNotFoundError(model, _error_message(response))
        if response.is_error:
            raise EmbeddingError(
                f"Embedding request failed with {response.status_code}: {_error_message(response)}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise EmbeddingError(f"Invalid embedding response: {exc}") from exc
        embedding = payload.get("embedding") if isinstance(payload, dict) else None
        if not embedding:
            raise EmbeddingError(f"Provider returned no embedding for model {model}")
        try:
            return [float(value) for value in embedding]
        except (TypeError, ValueError) as exc:
            raise EmbeddingError(f"Malformed embedding from model {model}: {exc}") from exc

    def chat(
        self, model: str, messages: Sequence[Mapping[str, str]]
    ) -> Iterator[dict[str, Any]]:
        """Stream chat completion parts as decoded JSON objects."""
        payload = {"model": model, "messages": [dict(m) for m in messages], "stream": True}
        timeout = httpx.Timeout(self.timeout, read=None)
        try:
            with self._client.stream("POST", "/api/chat", json=payload, timeout=timeout) as response:
                response.raise_for_status()
                for event in _iter_ndjson(response):
                    if "error" in event:
                        raise ProviderError(f"Chat with {model} failed: {event['error']}")
                    yield event
        except httpx.HTTPError as exc:
            raise ProviderError(f"Chat with {model} failed: {exc}") from exc

    def create_model(
        self, name: str, base: str, system: str | None = None
    ) -> Iterator[dict[str, Any]]:
        """Derive model ``name`` from ``base``, streaming Ollama's status events."""
        logger.info("Creating model %s from %s", name, base)
        payload: dict[str, Any] = {"model": name, "from": base, "stream": True}
        if system:
            payload["system"] = system
        timeout = httpx.Timeout(self.timeout, read=None)
        try:
            with self._client.stream("POST", "/api/create", json=payload, timeout=timeout) as response:
                response.raise_for_status()
                for event in _iter_ndjson(response):
                    if "error" in event:
                        raise ProviderError(f"Create of {name} failed: {event['error']}")
                    yield event
        except httpx.HTTPError as exc:
            raise ProviderError(f"Create of {name} failed: {exc}") from exc

    def delete_model(self, name: str) -> None:
        """Remove ``name``; a model Ollama does not know counts as deleted."""
        try:
            response = self._client.request("DELETE", "/api/delete", json={"model": name})
        except httpx.HTTPError as exc:
            raise ProviderError(f"Delete of {name} failed: {exc}") from exc

        if response.status_code == 404:
            logger.warning("Model %s not found at %s, treating it as deleted", name, self.host)
            return
        if response.is_error:
            raise ProviderError(
                f"Delete of {name} failed with {response.status_code}: {_error_message(response)}"
            )
        logger.info("Model %s deleted", name)


def _iter_ndjson(response: httpx.Response) -> Iterator[dict[str, Any]]:
    for line in response.iter_lines():
        if not line.strip():
            continue
        try:
            yield json.loads(line)
        except json.JSONDecodeError:
            logger.error("Skipping malformed stream line: %r", line[:200])


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return response.text
