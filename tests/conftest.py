"""Shared fixtures: an in-memory model host and a dict-backed vector store."""
import io
from typing import Callable, Dict, List

import pytest
from rich.console import Console

from code_rag.engine.backend import BackendResponse
from code_rag.errors import BackendError
from code_rag.tools.pgvector import EmbeddingRecord, RetrievedCandidate


class FakeOllamaClient:
    """Stands in for OllamaClient; vectors and replies are computed from the input."""

    def __init__(
        self,
        embed_fn: Callable[[str], List[float]] = lambda text: [float(len(text)), 1.0],
        reply_fn: Callable[[str], str] = lambda prompt: "0.5",
    ):
        self.embed_fn = embed_fn
        self.reply_fn = reply_fn
        self.embed_calls: List[str] = []
        self.prompts: List[str] = []

    def embed(self, model: str, text: str) -> List[List[float]]:
        self.embed_calls.append(text)
        vector = self.embed_fn(text)
        return [vector] if vector is not None else []

    def generate(self, model: str, prompt: str) -> BackendResponse:
        self.prompts.append(prompt)
        return BackendResponse(content=self.reply_fn(prompt), raw={})

    def close(self):
        pass


class FakeVectorStore:
    def __init__(self, rows: List[RetrievedCandidate] | None = None):
        self.records: Dict[str, EmbeddingRecord] = {}
        self.upsert_order: List[str] = []
        self.rows = rows or []
        self.nearest_calls = []

    def upsert(self, record: EmbeddingRecord):
        self.records[record.id] = record
        self.upsert_order.append(record.id)

    def nearest(self, vector, limit):
        self.nearest_calls.append((list(vector), limit))
        return self.rows[:limit]


def failing(message: str = "connection refused"):
    def _raise(*_args, **_kwargs):
        raise BackendError(message)

    return _raise


@pytest.fixture
def quiet_console() -> Console:
    return Console(file=io.StringIO(), width=200)


@pytest.fixture
def fake_client() -> FakeOllamaClient:
    return FakeOllamaClient()


@pytest.fixture
def fake_store() -> FakeVectorStore:
    return FakeVectorStore()
