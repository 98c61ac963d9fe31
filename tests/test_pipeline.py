"""Tests for the ingest and query drivers and the result presenter."""
import logging
from unittest.mock import MagicMock, patch

import pytest

from code_rag.config import AppConfig, DatabaseConfig
from code_rag.engine import Embedder, Reranker, ScoredCandidate
from code_rag.errors import ConfigError, EmbedderError, StoreQueryError
from code_rag.pipeline.ingest import ingest_corpus, run_ingest
from code_rag.pipeline.query import format_results, run_query, search
from code_rag.tools.corpus import LANGUAGES, Document, walk_documents
from code_rag.tools.pgvector import RetrievedCandidate

from conftest import FakeOllamaClient, FakeVectorStore, failing


def _config(url="postgres://localhost/rag"):
    return AppConfig(database=DatabaseConfig(url=url))


# ---------------------------------------------------------------------------
# Ingest
# ---------------------------------------------------------------------------

class TestIngest:
    def test_upserts_in_walk_order_with_metadata(self, tmp_path, fake_store, quiet_console):
        (tmp_path / "a.rs").write_text("fn a() {}")
        (tmp_path / "b.md").write_text("# b")
        (tmp_path / "c.xyz").write_text("c")
        embedder = Embedder(FakeOllamaClient())

        report = ingest_corpus(walk_documents(tmp_path), embedder, fake_store, console=quiet_console)

        assert report.loaded == report.embedded == report.stored == 3
        assert [r.rsplit("/", 1)[-1] for r in fake_store.upsert_order] == ["a.rs", "b.md", "c.xyz"]
        for record_id, record in fake_store.records.items():
            assert record.metadata["path"] == record_id
            assert record.metadata["source"] == "codebase"
            assert record.metadata["language"] in set(LANGUAGES.values()) | {"text"}
        assert [r.metadata["language"] for r in fake_store.records.values()] == ["rust", "markdown", "text"]

    def test_progress_messages(self, fake_store, quiet_console):
        docs = [Document("x.py", "x"), Document("y.py", "y")]
        ingest_corpus(docs, Embedder(FakeOllamaClient()), fake_store, console=quiet_console)
        out = quiet_console.file.getvalue()
        assert "Loaded 2 documents." in out
        assert "Generated 2 embeddings." in out
        assert "Successfully stored 2 embeddings in the database." in out

    def test_embedding_failure_skips_document(self, fake_store, quiet_console):
        def embed_fn(text):
            if text == "boom":
                raise EmbedderError("host down")
            return [1.0]

        client = FakeOllamaClient()
        client.embed = lambda model, text: [embed_fn(text)]
        docs = [Document("ok.py", "fine"), Document("bad.py", "boom"), Document("ok2.py", "fine")]

        report = ingest_corpus(docs, Embedder(client), fake_store, console=quiet_console)

        assert fake_store.upsert_order == ["ok.py", "ok2.py"]
        assert report.loaded == 3
        assert report.stored == 2

    def test_host_outage_skips_every_document(self, fake_store, quiet_console):
        client = FakeOllamaClient()
        client.embed = failing()
        report = ingest_corpus([Document("a.py", "a")], Embedder(client), fake_store, console=quiet_console)
        assert report.stored == 0
        assert fake_store.records == {}

    def test_reingest_is_idempotent(self, tmp_path, fake_store, quiet_console):
        (tmp_path / "a.py").write_text("a")
        (tmp_path / "b.py").write_text("b")
        embedder = Embedder(FakeOllamaClient())

        ingest_corpus(walk_documents(tmp_path), embedder, fake_store, console=quiet_console)
        first = set(fake_store.records)
        ingest_corpus(walk_documents(tmp_path), embedder, fake_store, console=quiet_console)

        assert set(fake_store.records) == first
        assert len(fake_store.records) == 2

    def test_store_failure_propagates(self, quiet_console):
        store = MagicMock()
        store.upsert.side_effect = StoreQueryError("disk full")
        with pytest.raises(StoreQueryError):
            ingest_corpus([Document("a.py", "a")], Embedder(FakeOllamaClient()), store, console=quiet_console)

    def test_missing_database_url_fails_before_walking(self, quiet_console):
        with patch("code_rag.pipeline.ingest.CorpusWalker") as walker:
            with pytest.raises(ConfigError, match="DATABASE_URL"):
                run_ingest(_config(url=None), console=quiet_console)
        walker.assert_not_called()

    def test_run_ingest_defaults_to_configured_root(self, quiet_console):
        with patch("code_rag.pipeline.ingest.VectorStore") as store_cls, patch(
            "code_rag.pipeline.ingest.CorpusWalker"
        ) as walker_cls, patch("code_rag.pipeline.ingest.ingest_corpus") as ingest:
            run_ingest(_config(), console=quiet_console)

        assert str(walker_cls.call_args[0][0]) == ".."
        store_cls.from_url.assert_called_once_with(
            "postgres://localhost/rag", pool_size=5, table="embeddings"
        )
        store = store_cls.from_url.return_value
        store.__exit__.assert_called_once()
        ingest.assert_called_once()


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------

def _reply_by_text(scores):
    def reply(prompt):
        for text, value in scores.items():
            if f"document: '{text}'" in prompt:
                return value
        return "n/a"

    return reply


class TestSearch:
    def test_retrieve_then_rerank(self, quiet_console):
        store = FakeVectorStore(
            rows=[RetrievedCandidate("one", "t1"), RetrievedCandidate("two", "t2"), RetrievedCandidate("three", "t3")]
        )
        client = FakeOllamaClient(
            embed_fn=lambda text: [0.5, 0.5],
            reply_fn=_reply_by_text({"t1": "0.1", "t2": "0.9", "t3": "0.5"}),
        )

        ranked = search("where?", Embedder(client), store, Reranker(client), limit=10, console=quiet_console)

        assert [c.id for c in ranked] == ["two", "three", "one"]
        assert store.nearest_calls == [([0.5, 0.5], 10)]
        assert client.embed_calls == ["where?"]
        assert "Retrieved 3 documents for reranking..." in quiet_console.file.getvalue()

    def test_embedding_failure_is_fatal(self, quiet_console):
        client = FakeOllamaClient()
        client.embed = failing()
        store = FakeVectorStore()
        with pytest.raises(EmbedderError):
            search("q", Embedder(client), store, Reranker(client), console=quiet_console)
        assert store.nearest_calls == []

    def test_store_failure_is_fatal(self, quiet_console):
        store = MagicMock()
        store.nearest.side_effect = StoreQueryError("relation does not exist")
        client = FakeOllamaClient()
        with pytest.raises(StoreQueryError):
            search("q", Embedder(client), store, Reranker(client), console=quiet_console)

    def test_unparseable_scores_are_dropped(self, quiet_console):
        store = FakeVectorStore(rows=[RetrievedCandidate("a", "ta"), RetrievedCandidate("b", "tb")])
        client = FakeOllamaClient(reply_fn=_reply_by_text({"ta": "Sure!\n0.42\n", "tb": "The score is 0.7 out of 1."}))
        ranked = search("q", Embedder(client), store, Reranker(client), console=quiet_console)
        assert [(c.id, c.score) for c in ranked] == [("a", pytest.approx(0.42))]


class TestRunQuery:
    def test_missing_database_url(self, quiet_console):
        with pytest.raises(ConfigError):
            run_query(_config(url=None), "q", limit=25, top_n=5, console=quiet_console)

    def test_top_n_above_limit_warns(self, quiet_console, caplog):
        with patch("code_rag.pipeline.query.VectorStore") as store_cls, patch(
            "code_rag.pipeline.query.search", return_value=[]
        ) as run_search:
            with caplog.at_level(logging.WARNING, logger="code_rag.pipeline.query"):
                results = run_query(_config(), "q", limit=3, top_n=10, console=quiet_console)

        assert results == []
        assert "Requested 10 results" in caplog.text
        assert run_search.call_args[1]["limit"] == 3
        store_cls.from_url.return_value.__exit__.assert_called_once()


# ---------------------------------------------------------------------------
# Presenter
# ---------------------------------------------------------------------------

class TestFormatResults:
    def test_header_and_ranks(self):
        results = [ScoredCandidate("b.rs", "B", 0.9), ScoredCandidate("c.rs", "C", 0.5), ScoredCandidate("a.rs", "A", 0.1)]
        out = format_results(results, top_n=2)
        lines = out.split("\n")
        assert lines[:2] == ["", "--- Top 2 Reranked Results ---"]
        assert lines[2:6] == ["", "1. ID: b.rs (Score: 0.9000)", "-" * 50, "B"]
        assert lines[6:10] == ["", "2. ID: c.rs (Score: 0.5000)", "-" * 50, "C"]
        assert "a.rs" not in out

    def test_fewer_results_than_requested(self):
        out = format_results([ScoredCandidate("only", "x", 1.23456)], top_n=5)
        assert "--- Top 5 Reranked Results ---" in out
        assert "1. ID: only (Score: 1.2346)" in out
        assert "2. ID" not in out

    def test_long_text_is_truncated(self):
        text = "é" * 1000
        out = format_results([ScoredCandidate("big", text, 0.5)], top_n=1)
        assert out.endswith("é" * 500 + "\n... (truncated)")
        assert "é" * 501 not in out

    def test_exactly_max_chars_is_not_truncated(self):
        text = "日本" * 250
        out = format_results([ScoredCandidate("cjk", text, 0.5)], top_n=1)
        assert out.endswith(text)
        assert "(truncated)" not in out

    def test_negative_top_n_is_rejected(self):
        with pytest.raises(ValueError):
            format_results([ScoredCandidate("a", "", 0.5)], top_n=-1)

    def test_custom_max_chars(self):
        out = format_results([ScoredCandidate("x", "abcdef", 0.5)], top_n=1, max_chars=3)
        assert out.endswith("abc\n... (truncated)")
