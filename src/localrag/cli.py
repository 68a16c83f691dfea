"""Command line interface for localrag."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, NoReturn, Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, DownloadColumn, Progress, TaskID, TextColumn
from rich.table import Table

from localrag.chat import stream_chat
from localrag.config import AppConfig
from localrag.embedding.provider import ChatProvider, build_provider
from localrag.engine import RetrievalEngine
from localrag.errors import LocalRagError
from localrag.models import PullProgress
from localrag.utils.files import iter_text_paths, read_text


console = Console()
app = typer.Typer(help="localrag - retrieval over your own documents for a local LLM")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _build_config(model: Optional[str], provider: Optional[str]) -> AppConfig:
    try:
        defaults = AppConfig.from_env()
        return AppConfig(
            embedding_model=model or os.environ.get("LOCALRAG_EMBEDDING_MODEL") or None,
            provider=provider or defaults.provider,
            ollama_host=defaults.ollama_host,
            chat_model=defaults.chat_model,
            timeout=defaults.timeout,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _fail(exc: LocalRagError) -> NoReturn:
    console.print(f"[red]Error:[/red] {exc}")
    raise typer.Exit(code=1)


def _ingest(engine: RetrievalEngine, inputs: List[Path]) -> int:
    paths = list(iter_text_paths(inputs))
    if not paths:
        console.print("[yellow]No text or Markdown files found.[/yellow]")
        return 0

    for path in paths:
        stats = engine.add_document(read_text(path), {"source": str(path), "type": "file"})
        note = f" ([yellow]{stats.skipped} skipped[/yellow])" if stats.skipped else ""
        console.print(f"Indexed [bold]{path}[/bold]: {stats.embedded} chunks{note}")
    return len(paths)


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    inputs: List[Path] = typer.Argument(
        ..., help="Text or Markdown files (or folders) to search.", resolve_path=True
    ),
    model: Optional[str] = typer.Option(None, help="Embedding model name"),
    provider: Optional[str] = typer.Option(None, help="ollama or sentence-transformers"),
    top_k: int = typer.Option(3, "--top-k", "-k", help="Number of results to display"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index the given files in memory and run a semantic search over them."""
    _setup_logging(verbose)
    config = _build_config(model, provider)
    engine = RetrievalEngine.from_config(config)

    try:
        if not _ingest(engine, inputs):
            return
        results = engine.search(query, k=top_k)
    except LocalRagError as exc:
        _fail(exc)

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Rank")
    table.add_column("Source")
    table.add_column("Snippet")

    for rank, result in enumerate(results, start=1):
        snippet = result.content.replace("\n", " ")
        source = (result.metadata or {}).get("source", "")
        table.add_row(str(rank), source, snippet[:180])

    console.print(table)


@app.command()
def pull(
    model: Optional[str] = typer.Option(None, help="Embedding model name"),
    provider: Optional[str] = typer.Option(None, help="ollama or sentence-transformers"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Make sure the embedding model is available, downloading it if needed."""
    _setup_logging(verbose)
    config = _build_config(model, provider)
    engine = RetrievalEngine.from_config(config)

    progress = Progress(
        TextColumn("{task.description}"), BarColumn(), DownloadColumn(), console=console
    )
    tasks: Dict[str, TaskID] = {}

    def on_progress(event: PullProgress) -> None:
        key = event.digest or event.status
        if key not in tasks:
            tasks[key] = progress.add_task(event.status, total=event.total)
        progress.update(
            tasks[key], description=event.status, total=event.total, completed=event.completed or 0
        )

    try:
        with progress:
            engine.ensure_model(on_progress)
    except LocalRagError as exc:
        _fail(exc)
    console.print(f"[green]{config.embedding_model} is ready.[/green]")


@app.command()
def chat(
    question: str = typer.Argument(..., help="Question for the model"),
    inputs: List[Path] = typer.Argument(
        None, help="Text or Markdown files (or folders) used as context.", resolve_path=True
    ),
    chat_model: Optional[str] = typer.Option(None, "--chat-model", help="Chat model name"),
    model: Optional[str] = typer.Option(None, help="Embedding model name"),
    use_context: bool = typer.Option(True, "--context/--no-context", help="Ground the answer"),
    top_k: int = typer.Option(3, "--top-k", "-k", help="Number of context chunks"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Ask the local model a question grounded in the given files."""
    _setup_logging(verbose)
    config = _build_config(model, None)
    provider = build_provider(config)
    if not isinstance(provider, ChatProvider):
        raise typer.BadParameter("The configured provider cannot chat")
    engine = RetrievalEngine(provider, embedding_model=config.embedding_model)

    messages = [{"role": "user", "content": question}]
    try:
        grounded = use_context and _ingest(engine, inputs or []) > 0
        for part in stream_chat(
            engine,
            provider,
            chat_model or config.chat_model,
            messages,
            use_context=grounded,
            k=top_k,
        ):
            content = (part.get("message") or {}).get("content", "")
            console.print(content, end="", markup=False, highlight=False)
    except LocalRagError as exc:
        _fail(exc)
    console.print()


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
) -> None:
    """Start the HTTP API."""
    import uvicorn

    from localrag.web.app import app as web_app

    console.print(f"Starting localrag API on http://{host}:{port}")
    uvicorn.run(web_app, host=host, port=port, reload=False, log_level="info")
