"""Model host client, embedder and reranker."""

from .backend import BackendResponse, OllamaClient
from .embedder import Embedder
from .reranker import Reranker, ScoredCandidate, parse_score, sort_by_score

__all__ = [
    "BackendResponse",
    "Embedder",
    "OllamaClient",
    "Reranker",
    "ScoredCandidate",
    "parse_score",
    "sort_by_score",
]
