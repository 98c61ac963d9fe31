"""
code-rag: retrieve-then-rerank search over a local source tree.

This package walks a codebase into a pgvector table using embeddings from a
local Ollama host, then answers queries by nearest-neighbour retrieval followed
by generative reranking. It ships a Typer-based CLI with ``ingest`` and
``query`` commands.
"""

__all__ = ["config", "engine", "errors", "pipeline", "tools"]
