"""Corpus walker and vector store adapter."""

from .corpus import CorpusWalker, Document, build_metadata, language_for, walk_documents
from .pgvector import EmbeddingRecord, RetrievedCandidate, VectorStore, format_vector, parse_vector

__all__ = [
    "CorpusWalker",
    "Document",
    "EmbeddingRecord",
    "RetrievedCandidate",
    "VectorStore",
    "build_metadata",
    "format_vector",
    "language_for",
    "parse_vector",
    "walk_documents",
]
