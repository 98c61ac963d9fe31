from __future__ import annotations

from pathlib import Path
import logging
import os
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from ..config import load_config
from ..errors import CodeRagError
from .ingest import run_ingest
from .query import format_results, run_query


os.environ.setdefault("PYTHONIOENCODING", "utf-8")
try:
    sys.stdout.reconfigure(encoding="utf-8")
except Exception:
    pass

console = Console()
error_console = Console(stderr=True)
app = typer.Typer(help="code-rag: embed a codebase into pgvector and query it with reranking.")


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_path=False)],
        force=True,
    )
    for noisy in ("urllib3", "sqlalchemy"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _fail(exc: CodeRagError):
    error_console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}", highlight=False)
    raise typer.Exit(code=1)


@app.command()
def ingest(
    root: Optional[Path] = typer.Option(
        None, help="Directory to index (defaults to the parent of the working directory)."
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress details."),
):
    """Walk a source tree and upsert one embedding per file."""
    _configure_logging(verbose)
    try:
        config = load_config(config_path or "config.yaml")
        run_ingest(config, root=root, console=console)
    except CodeRagError as exc:
        _fail(exc)


@app.command()
def query(
    query_text: str = typer.Option(..., "--query", "-q", help="The query to search for"),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-l", min=0, help="The number of initial documents to retrieve (default 25)"
    ),
    top_n: Optional[int] = typer.Option(
        None, "--top-n", "-t", min=0, help="The number of final documents to return after reranking (default 5)"
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress details."),
):
    """Retrieve the nearest files for a query and rerank them."""
    _configure_logging(verbose)
    try:
        config = load_config(config_path or "config.yaml")
        limit = config.query.limit if limit is None else limit
        top_n = config.query.top_n if top_n is None else top_n
        results = run_query(config, query_text, limit=limit, top_n=top_n, console=console)
    except CodeRagError as exc:
        _fail(exc)
    typer.echo(format_results(results, top_n, max_chars=config.query.max_chars))


def ingest_main():
    typer.run(ingest)


def query_main():
    typer.run(query)


if __name__ == "__main__":
    app()
