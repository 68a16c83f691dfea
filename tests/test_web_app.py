"""Tests for the FastAPI web application."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import pytest
from fastapi.testclient import TestClient

from conftest import FakeProvider
from localrag.config import AppConfig
from localrag.engine import RetrievalEngine
from localrag.errors import ProviderError
from localrag.web.app import app, get_config, get_engine


class ChattyProvider(FakeProvider):
    def __init__(self) -> None:
        super().__init__(models={"nomic-embed-text:latest"})
        self.chat_messages: List[List[Dict[str, str]]] = []
        self.chat_error: Exception | None = None
        self.created: List[Tuple[str, str, Optional[str]]] = []
        self.deleted: List[str] = []
        self.admin_error: Exception | None = None

    def chat(self, model: str, messages: Sequence[Mapping[str, str]]) -> Iterator[Dict[str, Any]]:
        self.chat_messages.append([dict(m) for m in messages])
        yield {"message": {"role": "assistant", "content": "Hi"}, "done": False, "model": model}
        if self.chat_error is not None:
            raise self.chat_error
        yield {"message": {"role": "assistant", "content": "!"}, "done": True, "model": model}

    def create_model(
        self, name: str, base: str, system: Optional[str] = None
    ) -> Iterator[Dict[str, Any]]:
        self.created.append((name, base, system))
        yield {"status": "reading model metadata"}
        if self.admin_error is not None:
            raise self.admin_error
        yield {"status": "success"}

    def delete_model(self, name: str) -> None:
        if self.admin_error is not None:
            raise self.admin_error
        self.deleted.append(name)


def _events(body: str) -> List[Dict[str, Any]]:
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


@pytest.fixture
def chatty() -> ChattyProvider:
    return ChattyProvider()


@pytest.fixture
def client(chatty: ChattyProvider) -> Iterator[TestClient]:
    engine = RetrievalEngine(chatty, chunk_chars=100)
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_config] = lambda: AppConfig(chat_model="llama3.2")
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestHealthEndpoints:
    """Tests for health and provider status."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_status_connected(self, client: TestClient) -> None:
        response = client.get("/status")
        assert response.status_code == 200
        assert response.json() == {"status": "connected"}

    def test_status_unreachable(self, client: TestClient, chatty: ChattyProvider) -> None:
        chatty.list_error = ProviderError("connection refused")

        response = client.get("/status")

        assert response.status_code == 503


class TestModelEndpoints:
    """Tests for model listing and pulling."""

    def test_list_models(self, client: TestClient) -> None:
        response = client.get("/models")
        assert response.status_code == 200
        assert response.json() == {"models": ["nomic-embed-text:latest"]}

    def test_list_models_failure(self, client: TestClient, chatty: ChattyProvider) -> None:
        chatty.list_error = ProviderError("connection refused")

        response = client.get("/models")

        assert response.status_code == 503

    def test_pull_streams_events(self, client: TestClient, chatty: ChattyProvider) -> None:
        response = client.post("/models/pull", json={"model": "all-minilm"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _events(response.text)
        assert events[-1]["status"] == "success"
        assert chatty.pull_calls == ["all-minilm"]

    def test_pull_defaults_to_embedding_model(self, client: TestClient, chatty: ChattyProvider) -> None:
        client.post("/models/pull", json={})
        assert chatty.pull_calls == ["nomic-embed-text"]

    def test_pull_failure_becomes_error_event(
        self, client: TestClient, chatty: ChattyProvider
    ) -> None:
        chatty.pull_error = ProviderError("disk full")

        events = _events(client.post("/models/pull", json={}).text)

        assert events[-1] == {"error": "disk full"}


class TestModelAdminEndpoints:
    """Tests for creating and deleting models."""

    def test_create_streams_events(self, client: TestClient, chatty: ChattyProvider) -> None:
        response = client.post(
            "/models/create",
            json={"name": "pirate", "from": "llama3.2", "system": "Talk like a pirate."},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert [e["status"] for e in _events(response.text)] == ["reading model metadata", "success"]
        assert chatty.created == [("pirate", "llama3.2", "Talk like a pirate.")]

    def test_create_failure_becomes_error_event(
        self, client: TestClient, chatty: ChattyProvider
    ) -> None:
        chatty.admin_error = ProviderError("base model not found")

        events = _events(client.post("/models/create", json={"name": "x", "from": "nope"}).text)

        assert events[-1] == {"error": "base model not found"}

    def test_create_requires_base(self, client: TestClient) -> None:
        response = client.post("/models/create", json={"name": "pirate"})
        assert response.status_code == 422

    def test_delete(self, client: TestClient, chatty: ChattyProvider) -> None:
        response = client.delete("/models/pirate:latest")

        assert response.status_code == 200
        assert response.json() == {"status": "deleted", "model": "pirate:latest"}
        assert chatty.deleted == ["pirate:latest"]

    def test_delete_namespaced_model(self, client: TestClient, chatty: ChattyProvider) -> None:
        client.delete("/models/library/pirate")
        assert chatty.deleted == ["library/pirate"]

    def test_delete_resets_provisioning(self, client: TestClient, chatty: ChattyProvider) -> None:
        client.post("/documents", json={"content": "A quick brown fox jumps high."})
        calls_before = chatty.list_calls

        client.delete("/models/nomic-embed-text:latest")
        client.post("/documents", json={"content": "The lazy dog sleeps all day."})

        assert chatty.list_calls == calls_before + 1

    def test_delete_failure(self, client: TestClient, chatty: ChattyProvider) -> None:
        chatty.admin_error = ProviderError("locked")

        response = client.delete("/models/pirate")

        assert response.status_code == 503

    def test_unsupported_provider(self) -> None:
        engine = RetrievalEngine(FakeProvider())
        app.dependency_overrides[get_engine] = lambda: engine
        try:
            client = TestClient(app)
            create = client.post("/models/create", json={"name": "x", "from": "y"})
            delete = client.delete("/models/x")
        finally:
            app.dependency_overrides.clear()

        assert create.status_code == 501
        assert delete.status_code == 501


class TestDocumentAndSearchEndpoints:
    """Tests for POST /documents and POST /search."""

    def test_add_document(self, client: TestClient) -> None:
        response = client.post(
            "/documents",
            json={
                "content": "The quick brown fox.\n\nJumps over the lazy dog.",
                "metadata": {"source": "fox.txt", "type": "file"},
            },
        )

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "chunks": 2, "embedded": 2, "skipped": 0}

    def test_add_document_partial(self, client: TestClient, chatty: ChattyProvider) -> None:
        chatty.fail_on.add("Second paragraph fails.")

        response = client.post(
            "/documents",
            json={"content": "First paragraph works.\n\nSecond paragraph fails.\n\nThird one works."},
        )

        assert response.status_code == 200
        assert response.json()["embedded"] == 2
        assert response.json()["skipped"] == 1

    def test_add_document_provider_down(self, client: TestClient, chatty: ChattyProvider) -> None:
        chatty.list_error = ProviderError("connection refused")

        response = client.post("/documents", json={"content": "Some long enough paragraph."})

        assert response.status_code == 503

    def test_search(self, client: TestClient) -> None:
        client.post(
            "/documents",
            json={"content": "The lazy dog sleeps all day.", "metadata": {"source": "dog"}},
        )
        client.post(
            "/documents",
            json={"content": "A quick brown fox jumps high.", "metadata": {"source": "fox"}},
        )

        response = client.post("/search", json={"query": "fox", "k": 1})

        assert response.status_code == 200
        assert response.json() == {
            "results": [{"content": "A quick brown fox jumps high.", "metadata": {"source": "fox"}}]
        }

    def test_search_empty_index(self, client: TestClient) -> None:
        response = client.post("/search", json={"query": "fox"})
        assert response.status_code == 200
        assert response.json() == {"results": []}

    def test_search_empty_query(self, client: TestClient) -> None:
        response = client.post("/search", json={"query": "   "})
        assert response.status_code == 400
        assert "Empty query" in response.json()["detail"]

    def test_search_invalid_k(self, client: TestClient) -> None:
        response = client.post("/search", json={"query": "fox", "k": 0})
        assert response.status_code == 400


class TestChatEndpoint:
    """Tests for POST /chat."""

    def test_chat_with_context(self, client: TestClient, chatty: ChattyProvider) -> None:
        client.post("/documents", json={"content": "A quick brown fox jumps high."})

        response = client.post(
            "/chat", json={"messages": [{"role": "user", "content": "fox"}]}
        )

        assert response.status_code == 200
        events = _events(response.text)
        assert "".join(e["message"]["content"] for e in events) == "Hi!"
        assert events[0]["model"] == "llama3.2"
        sent = chatty.chat_messages[0]
        assert sent[0]["role"] == "system"
        assert "A quick brown fox jumps high." in sent[0]["content"]

    def test_chat_without_context(self, client: TestClient, chatty: ChattyProvider) -> None:
        client.post("/documents", json={"content": "A quick brown fox jumps high."})

        client.post(
            "/chat",
            json={
                "model": "mistral",
                "use_context": False,
                "messages": [{"role": "user", "content": "fox"}],
            },
        )

        assert chatty.chat_messages[0] == [{"role": "user", "content": "fox"}]

    def test_chat_no_messages(self, client: TestClient) -> None:
        response = client.post("/chat", json={"messages": []})
        assert response.status_code == 400

    def test_chat_stream_error(self, client: TestClient, chatty: ChattyProvider) -> None:
        chatty.chat_error = ProviderError("model crashed")

        events = _events(
            client.post("/chat", json={"messages": [{"role": "user", "content": "hi"}]}).text
        )

        assert events[-1] == {"error": "model crashed"}

    def test_chat_unsupported_provider(self) -> None:
        engine = RetrievalEngine(FakeProvider())
        app.dependency_overrides[get_engine] = lambda: engine
        try:
            response = TestClient(app).post(
                "/chat", json={"messages": [{"role": "user", "content": "hi"}]}
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 501
