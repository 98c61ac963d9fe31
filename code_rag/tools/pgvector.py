"""
pgvector-backed store for file embeddings.

Rows live in a table shaped like::

    embeddings(id TEXT PRIMARY KEY, text TEXT, vector VECTOR(D), metadata JSONB)

The schema is expected to exist. Vectors travel as their textual encoding
``[v0,v1,...]`` and are cast to the native ``vector`` type server-side.
Nearest-neighbour lookups use the cosine distance operator ``<=>``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Sequence

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError, DBAPIError, SQLAlchemyError

from ..errors import StoreQueryError, StoreUnavailableError

logger = logging.getLogger(__name__)

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def format_vector(values: Sequence[float]) -> str:
    return "[" + ",".join(repr(float(value)) for value in values) + "]"


def parse_vector(encoded: str) -> List[float]:
    body = encoded.strip()
    if not (body.startswith("[") and body.endswith("]")):
        raise ValueError(f"Not a vector literal: {encoded!r}")
    body = body[1:-1].strip()
    if not body:
        return []
    return [float(part) for part in body.split(",")]


def _sqlalchemy_url(url: str) -> str:
    """Pick the psycopg driver for plain postgres URLs."""
    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            return "postgresql+psycopg://" + url[len(scheme):]
    return url


@dataclass
class EmbeddingRecord:
    id: str
    text: str
    vector: List[float]
    metadata: Dict[str, str]


@dataclass
class RetrievedCandidate:
    id: str
    text: str


class VectorStore:
    """Upsert and top-K lookup over a pgvector table."""

    def __init__(self, engine: Engine, table: str = "embeddings"):
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid table name: {table}")
        self.engine = engine
        self.table = table
        self._upsert_sql = text(
            f"""
            INSERT INTO {table} (id, text, vector, metadata)
            VALUES (:id, :text, CAST(:vector AS vector), CAST(:metadata AS jsonb))
            ON CONFLICT (id) DO UPDATE
            SET text = EXCLUDED.text,
                vector = EXCLUDED.vector,
                metadata = EXCLUDED.metadata
            """
        )
        self._nearest_sql = text(
            f"""
            SELECT id, text
            FROM {table}
            ORDER BY vector <=> CAST(:vector AS vector)
            LIMIT :limit
            """
        )

    @classmethod
    def from_url(cls, url: str, pool_size: int = 5, table: str = "embeddings") -> "VectorStore":
        try:
            engine = create_engine(
                _sqlalchemy_url(url),
                pool_size=pool_size,
                max_overflow=0,
                pool_pre_ping=True,
            )
        except (ArgumentError, ImportError) as exc:
            raise StoreUnavailableError(f"Invalid database URL: {exc}") from exc
        return cls(engine, table=table)

    def connect(self) -> "VectorStore":
        """Check that the database answers; raises StoreUnavailableError otherwise."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except DBAPIError as exc:
            raise StoreUnavailableError(f"Could not connect to the vector store: {exc}") from exc
        logger.info("Vector store connection pool ready")
        return self

    def close(self):
        self.engine.dispose()

    def __enter__(self) -> "VectorStore":
        try:
            return self.connect()
        except StoreUnavailableError:
            self.close()
            raise

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def upsert(self, record: EmbeddingRecord):
        params = {
            "id": record.id,
            "text": record.text,
            "vector": format_vector(record.vector),
            "metadata": json.dumps(record.metadata),
        }
        try:
            with self.engine.begin() as conn:
                conn.execute(self._upsert_sql, params)
        except SQLAlchemyError as exc:
            raise StoreQueryError(f"Failed to upsert {record.id}: {exc}") from exc

    def nearest(self, vector: Sequence[float], limit: int) -> List[RetrievedCandidate]:
        params = {"vector": format_vector(vector), "limit": limit}
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(self._nearest_sql, params).fetchall()
        except SQLAlchemyError as exc:
            raise StoreQueryError(f"Nearest-neighbour query failed: {exc}") from exc
        return [RetrievedCandidate(id=row[0], text=row[1]) for row in rows]
