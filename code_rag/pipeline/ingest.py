from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from rich.console import Console

from ..config import AppConfig
from ..engine import Embedder, OllamaClient
from ..tools import CorpusWalker, Document, EmbeddingRecord, VectorStore

logger = logging.getLogger(__name__)

console = Console()


@dataclass
class IngestReport:
    loaded: int
    embedded: int
    stored: int


def ingest_corpus(
    documents: Iterable[Document],
    embedder: Embedder,
    store: VectorStore,
    console: Console = console,
) -> IngestReport:
    """Embed every document and upsert it, stage by stage, in walk order."""
    loaded = list(documents)
    console.print(f"Loaded {len(loaded)} documents.")

    embedded = list(embedder.embed_documents(loaded))
    console.print(f"Generated {len(embedded)} embeddings.")

    for document, vector in embedded:
        store.upsert(
            EmbeddingRecord(
                id=document.id,
                text=document.text,
                vector=vector,
                metadata=document.metadata,
            )
        )
    console.print(f"Successfully stored {len(embedded)} embeddings in the database.")
    return IngestReport(loaded=len(loaded), embedded=len(embedded), stored=len(embedded))


def run_ingest(
    config: AppConfig,
    root: Optional[Path] = None,
    console: Console = console,
) -> IngestReport:
    database_url = config.require_database_url()
    walk_root = root if root is not None else config.ingest.root
    walker = CorpusWalker(
        walk_root,
        ignored_dirs=config.ingest.ignored_dirs,
        ignored_files=config.ingest.ignored_files,
        generated_markers=config.ingest.generated_markers,
    )
    client = OllamaClient(config.ollama)
    embedder = Embedder(client, model=config.ollama.embedding_model)
    store = VectorStore.from_url(
        database_url, pool_size=config.database.pool_size, table=config.database.table
    )
    try:
        with store:
            console.print("Database pool initialized.")
            logger.info("Walking %s", walk_root)
            return ingest_corpus(walker, embedder, store, console=console)
    finally:
        client.close()
