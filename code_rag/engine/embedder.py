from __future__ import annotations

import logging
from typing import Iterable, Iterator, List, Tuple

from ..errors import BackendError, EmbedderError
from ..tools.corpus import Document
from .backend import OllamaClient

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "dengcao/Qwen3-Embedding-4B:Q4_K_M"


class Embedder:
    """Turns a string into a single dense vector via the model host."""

    def __init__(self, client: OllamaClient, model: str = DEFAULT_EMBEDDING_MODEL):
        self.client = client
        self.model = model

    def embed(self, text: str) -> List[float]:
        try:
            embeddings = self.client.embed(self.model, text)
        except BackendError as exc:
            raise EmbedderError(str(exc)) from exc
        if not embeddings:
            raise EmbedderError(f"Model {self.model} returned no embedding")
        return [float(value) for value in embeddings[0]]

    def embed_documents(
        self, documents: Iterable[Document]
    ) -> Iterator[Tuple[Document, List[float]]]:
        """Embed documents in order, skipping any the host fails on."""
        for document in documents:
            try:
                vector = self.embed(document.text)
            except EmbedderError as exc:
                logger.error("Failed to generate embedding for %s: %s", document.id, exc)
                continue
            yield document, vector
