"""FastAPI application exposing the retrieval engine over HTTP."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from typing import Any, Dict, Iterator, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from localrag.chat import stream_chat
from localrag.config import AppConfig
from localrag.embedding.provider import ChatProvider, ModelAdminProvider
from localrag.engine import RetrievalEngine
from localrag.errors import InvalidArgumentError, LocalRagError, ProviderError, ProvisioningError

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="localrag", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_engine: Optional[RetrievalEngine] = None
_engine_lock = threading.Lock()


def get_engine() -> RetrievalEngine:
    """Process-wide engine, built from the environment on first use."""
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = RetrievalEngine.from_config(AppConfig.from_env())
        return _engine


def get_config() -> AppConfig:
    return AppConfig.from_env()


class DocumentPayload(BaseModel):
    content: str
    metadata: Any = None


class SearchPayload(BaseModel):
    query: str
    k: int = 3


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatPayload(BaseModel):
    model: Optional[str] = None
    messages: List[ChatMessage]
    use_context: bool = True


class PullPayload(BaseModel):
    model: Optional[str] = None


class CreatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    base: str = Field(alias="from")
    system: Optional[str] = None


def _http_error(exc: LocalRagError) -> HTTPException:
    if isinstance(exc, InvalidArgumentError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, (ProvisioningError, ProviderError)):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _sse(events: Iterator[Dict[str, Any]]) -> Iterator[str]:
    """Encode events as server-sent events; a failure becomes a final error event."""
    try:
        for event in events:
            yield f"data: {json.dumps(event)}\n\n"
    except LocalRagError as exc:
        LOGGER.error("Stream aborted: %s", exc)
        yield f"data: {json.dumps({'error': str(exc)})}\n\n"


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/status")
async def provider_status(engine: RetrievalEngine = Depends(get_engine)) -> Dict[str, str]:
    try:
        await asyncio.to_thread(engine.provider.list_models)
    except ProviderError as exc:
        LOGGER.warning("Provider unreachable: %s", exc)
        raise HTTPException(status_code=503, detail="Embedding provider is not reachable") from exc
    return {"status": "connected"}


@app.get("/models")
async def list_models(engine: RetrievalEngine = Depends(get_engine)) -> Dict[str, List[str]]:
    try:
        models = await asyncio.to_thread(engine.provider.list_models)
    except ProviderError as exc:
        raise _http_error(exc) from exc
    return {"models": sorted(models)}


@app.post("/models/pull")
async def pull_model(
    payload: PullPayload, engine: RetrievalEngine = Depends(get_engine)
) -> StreamingResponse:
    model = payload.model or engine.embedding_model

    def events() -> Iterator[Dict[str, Any]]:
        for progress in engine.provider.pull_model(model):
            yield {
                "status": progress.status,
                "digest": progress.digest,
                "total": progress.total,
                "completed": progress.completed,
            }

    return StreamingResponse(_sse(events()), media_type="text/event-stream")


def _model_admin(engine: RetrievalEngine) -> ModelAdminProvider:
    provider = engine.provider
    if not isinstance(provider, ModelAdminProvider):
        raise HTTPException(status_code=501, detail="The embedding provider cannot manage models")
    return provider


@app.post("/models/create")
async def create_model(
    payload: CreatePayload, engine: RetrievalEngine = Depends(get_engine)
) -> StreamingResponse:
    provider = _model_admin(engine)
    stream = provider.create_model(payload.name, payload.base, payload.system)
    return StreamingResponse(_sse(stream), media_type="text/event-stream")


@app.delete("/models/{name:path}")
async def delete_model(name: str, engine: RetrievalEngine = Depends(get_engine)) -> Dict[str, str]:
    provider = _model_admin(engine)
    try:
        await asyncio.to_thread(provider.delete_model, name)
    except ProviderError as exc:
        raise _http_error(exc) from exc
    engine.provisioner.invalidate()
    return {"status": "deleted", "model": name}


@app.post("/documents")
async def add_document(
    payload: DocumentPayload, engine: RetrievalEngine = Depends(get_engine)
) -> Dict[str, Any]:
    try:
        stats = await asyncio.to_thread(engine.add_document, payload.content, payload.metadata)
    except LocalRagError as exc:
        raise _http_error(exc) from exc
    return {
        "status": "ok",
        "chunks": stats.chunks,
        "embedded": stats.embedded,
        "skipped": stats.skipped,
    }


@app.post("/search")
async def search_documents(
    payload: SearchPayload, engine: RetrievalEngine = Depends(get_engine)
) -> Dict[str, List[Dict[str, Any]]]:
    try:
        results = await asyncio.to_thread(engine.search, payload.query, payload.k)
    except LocalRagError as exc:
        raise _http_error(exc) from exc
    return {"results": [{"content": r.content, "metadata": r.metadata} for r in results]}


@app.post("/chat")
async def chat(
    payload: ChatPayload,
    engine: RetrievalEngine = Depends(get_engine),
    config: AppConfig = Depends(get_config),
) -> StreamingResponse:
    if not payload.messages:
        raise HTTPException(status_code=400, detail="No messages provided")
    provider = engine.provider
    if not isinstance(provider, ChatProvider):
        raise HTTPException(status_code=501, detail="The embedding provider does not support chat")

    messages = [message.model_dump() for message in payload.messages]
    results = []
    if payload.use_context:
        try:
            results = await asyncio.to_thread(engine.search, messages[-1]["content"])
        except LocalRagError as exc:
            raise _http_error(exc) from exc

    stream = stream_chat(
        engine,
        provider,
        payload.model or config.chat_model,
        messages,
        context=results,
    )
    return StreamingResponse(_sse(stream), media_type="text/event-stream")
