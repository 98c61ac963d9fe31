from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Optional

import yaml

from .errors import ConfigError


DEFAULT_CONFIG_PATH = Path("config.yaml")

DEFAULT_IGNORED_DIRS = ["/target/", "/.git/", "/venv/", "/__pycache__/", "/.sqlx/"]
DEFAULT_IGNORED_FILES = [
    ".gitignore",
    "Cargo.lock",
    "yarn.lock",
    "package-lock.json",
    "debug_log.txt",
    "Cargo.toml",
    "Dockerfile",
    ".env",
]
# Boilerplate that adds noise but little retrieval value; tune per project.
DEFAULT_GENERATED_MARKERS = [
    "/// This module was auto-generated with ethers-rs Abigen.",
    "pub struct OnnxModels {",
]


@dataclass
class OllamaConfig:
    """Configuration for the local model host."""

    base_url: str = "http://localhost:11434"
    embedding_model: str = "dengcao/Qwen3-Embedding-4B:Q4_K_M"
    rerank_model: str = "hf.co/mradermacher/Qwen3-Reranker-4B-GGUF:Q4_K_M"
    request_timeout: int = 120


@dataclass
class DatabaseConfig:
    url: Optional[str] = None
    pool_size: int = 5
    table: str = "embeddings"


@dataclass
class IngestConfig:
    root: Path = Path("..")
    ignored_dirs: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORED_DIRS))
    ignored_files: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORED_FILES))
    generated_markers: List[str] = field(
        default_factory=lambda: list(DEFAULT_GENERATED_MARKERS)
    )


@dataclass
class RerankConfig:
    prompt_style: Literal["inline", "delimited"] = "inline"
    concurrency: int = 1


@dataclass
class QueryConfig:
    limit: int = 25
    top_n: int = 5
    max_chars: int = 500


@dataclass
class AppConfig:
    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    rerank: RerankConfig = field(default_factory=RerankConfig)
    query: QueryConfig = field(default_factory=QueryConfig)

    def require_database_url(self) -> str:
        if not self.database.url:
            raise ConfigError("DATABASE_URL must be set")
        return self.database.url


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def _resolve_env(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return os.path.expandvars(value)


def load_config(path: Path | str = DEFAULT_CONFIG_PATH) -> AppConfig:
    """Load application configuration, falling back to defaults."""

    config_path = Path(path)
    raw = _load_yaml(config_path)

    ollama = raw.get("ollama", {})
    database = raw.get("database", {})
    ingest = raw.get("ingest", {})
    rerank = raw.get("rerank", {})
    query = raw.get("query", {})

    ollama_config = OllamaConfig(
        base_url=_resolve_env(ollama.get("base_url", OllamaConfig.base_url)),
        embedding_model=ollama.get("embedding_model", OllamaConfig.embedding_model),
        rerank_model=ollama.get("rerank_model", OllamaConfig.rerank_model),
        request_timeout=ollama.get("request_timeout", OllamaConfig.request_timeout),
    )

    # A placeholder left unexpanded means its variable is unset.
    database_url = _resolve_env(database.get("url"))
    if database_url and "${" in database_url:
        database_url = None
    database_url = database_url or os.getenv("DATABASE_URL")
    database_config = DatabaseConfig(
        url=database_url,
        pool_size=database.get("pool_size", DatabaseConfig.pool_size),
        table=database.get("table", DatabaseConfig.table),
    )

    defaults = IngestConfig()
    ingest_config = IngestConfig(
        root=Path(_resolve_env(str(ingest.get("root", defaults.root)))),
        ignored_dirs=ingest.get("ignored_dirs", defaults.ignored_dirs),
        ignored_files=ingest.get("ignored_files", defaults.ignored_files),
        generated_markers=ingest.get("generated_markers", defaults.generated_markers),
    )

    rerank_config = RerankConfig(
        prompt_style=rerank.get("prompt_style", RerankConfig.prompt_style),
        concurrency=rerank.get("concurrency", RerankConfig.concurrency),
    )
    if rerank_config.prompt_style not in ("inline", "delimited"):
        raise ConfigError(f"Unsupported rerank prompt style: {rerank_config.prompt_style}")

    query_config = QueryConfig(
        limit=query.get("limit", QueryConfig.limit),
        top_n=query.get("top_n", QueryConfig.top_n),
        max_chars=query.get("max_chars", QueryConfig.max_chars),
    )
    for name in ("limit", "top_n", "max_chars"):
        if getattr(query_config, name) < 0:
            raise ConfigError(f"query.{name} must be non-negative")

    return AppConfig(
        ollama=ollama_config,
        database=database_config,
        ingest=ingest_config,
        rerank=rerank_config,
        query=query_config,
    )
