"""Assemble retrieved context into chat messages for the language model."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from localrag.embedding.provider import ChatProvider
from localrag.engine import RetrievalEngine
from localrag.errors import InvalidArgumentError
from localrag.index.search import DEFAULT_TOP_K
from localrag.models import SearchResult

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful assistant. Use the following context to answer the user's question:"
    "\n\n{context}"
)


def build_context(results: Sequence[SearchResult]) -> str:
    return "\n\n".join(result.content for result in results)


def build_messages(
    messages: Sequence[Mapping[str, str]], results: Sequence[SearchResult]
) -> List[Dict[str, str]]:
    """Return a copy of ``messages`` with a context system prompt in front, if any."""
    prepared = [dict(message) for message in messages]
    context = build_context(results)
    if context:
        prepared.insert(0, {"role": "system", "content": SYSTEM_PROMPT.format(context=context)})
    return prepared


def stream_chat(
    engine: RetrievalEngine,
    provider: ChatProvider,
    model: str,
    messages: Sequence[Mapping[str, str]],
    *,
    use_context: bool = True,
    k: int = DEFAULT_TOP_K,
    context: Optional[Sequence[SearchResult]] = None,
) -> Iterator[Dict[str, Any]]:
    """Ground the last user message in the index and stream the model's reply.

    ``context`` skips the lookup when the caller already ran the search.
    """
    if not messages:
        raise InvalidArgumentError("At least one message is required")

    results: Sequence[SearchResult] = ()
    if context is not None:
        results = context
    elif use_context:
        results = engine.search(messages[-1]["content"], k=k)
    LOGGER.debug("Using %d context chunks", len(results))

    yield from provider.chat(model, build_messages(messages, results))
