from __future__ import annotations

import logging
from typing import List, Sequence

from rich.console import Console

from ..config import AppConfig
from ..engine import Embedder, OllamaClient, Reranker, ScoredCandidate, sort_by_score
from ..tools import VectorStore

logger = logging.getLogger(__name__)

console = Console()

SEPARATOR = "-" * 50
TRUNCATION_MARKER = "... (truncated)"


def search(
    query: str,
    embedder: Embedder,
    store: VectorStore,
    reranker: Reranker,
    limit: int = 25,
    console: Console = console,
) -> List[ScoredCandidate]:
    """Retrieve ``limit`` nearest files and return them reranked, best first."""
    console.print("Generating embedding for query...")
    query_vector = embedder.embed(query)

    console.print("Retrieving initial documents from database...")
    candidates = store.nearest(query_vector, limit)
    console.print(f"Retrieved {len(candidates)} documents for reranking...")

    return sort_by_score(reranker.rerank(query, candidates))


def format_results(
    results: Sequence[ScoredCandidate], top_n: int, max_chars: int = 500
) -> str:
    if top_n < 0:
        raise ValueError(f"top_n must be non-negative, got {top_n}")
    lines = ["", f"--- Top {top_n} Reranked Results ---"]
    for rank, result in enumerate(results[:top_n], start=1):
        lines.append("")
        lines.append(f"{rank}. ID: {result.id} (Score: {result.score:.4f})")
        lines.append(SEPARATOR)
        lines.append(result.text[:max_chars])
        if len(result.text) > max_chars:
            lines.append(TRUNCATION_MARKER)
    return "\n".join(lines)


def run_query(
    config: AppConfig,
    query: str,
    limit: int,
    top_n: int,
    console: Console = console,
) -> List[ScoredCandidate]:
    database_url = config.require_database_url()
    if top_n > limit:
        logger.warning(
            "Requested %d results but only %d candidates will be retrieved", top_n, limit
        )
    client = OllamaClient(config.ollama)
    embedder = Embedder(client, model=config.ollama.embedding_model)
    reranker = Reranker(
        client,
        model=config.ollama.rerank_model,
        prompt_style=config.rerank.prompt_style,
        concurrency=config.rerank.concurrency,
    )
    store = VectorStore.from_url(
        database_url, pool_size=config.database.pool_size, table=config.database.table
    )
    try:
        with store:
            return search(query, embedder, store, reranker, limit=limit, console=console)
    finally:
        client.close()
