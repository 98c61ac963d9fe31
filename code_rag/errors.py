from __future__ import annotations


class CodeRagError(RuntimeError):
    """Base class for failures the command line reports and exits on."""


class ConfigError(CodeRagError):
    """Raised when required configuration (e.g. DATABASE_URL) is missing."""


class BackendError(CodeRagError):
    """Raised when the model host is unreachable or returns an error response."""


class EmbedderError(CodeRagError):
    """Raised when no embedding could be produced for an input."""


class RerankerError(CodeRagError):
    """Raised when the generative model host fails during reranking."""


class ScoreParseError(CodeRagError):
    """Raised when a reranker response does not end in a float literal."""

    def __init__(self, line: str):
        super().__init__(f"Could not parse rerank score from line '{line}'")
        self.line = line


class StoreUnavailableError(CodeRagError):
    """Raised when the vector store cannot be reached."""


class StoreQueryError(CodeRagError):
    """Raised when a statement against the vector store fails."""
