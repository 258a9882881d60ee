"""Tests for the index builder: context → chunks → embeddings → upserts."""

from __future__ import annotations

import json
import threading

import pytest

from issue_store import KeywordEmbedder, insert_issue
from issuelens.db.repository import Repository
from issuelens.index.builder import IndexBuilder, IndexConfig, IndexProgress
from issuelens.index.graph import RelationshipGraph
from issuelens.rag.llm_client import ModelServerError


def _builder(conn, embedder, chunk_size=1500, hop=2):
    repo = Repository(conn)
    issues = repo.load_all_issues()
    builder = IndexBuilder(repo, RelationshipGraph(issues), embedder, IndexConfig(chunk_size, hop))
    return builder, repo, issues


# ------------------------------------------------------------------
# Full build
# ------------------------------------------------------------------


def test_single_issue_yields_one_chunk(tmp_db, embedder):
    insert_issue(tmp_db, "DEV-1", description="Login must support SSO.")
    builder, repo, issues = _builder(tmp_db, embedder)

    result = builder.build(issues)

    chunks = repo.load_all_chunks()
    assert len(chunks) == 1
    assert chunks[0].issue_key == "DEV-1"
    assert chunks[0].chunk_index == 0
    assert "Login must support SSO." in chunks[0].text
    assert result.issues_indexed == 1
    assert result.chunks_written == 1
    assert not result.cancelled


def test_chunk_indexes_gapless_and_text_concatenates(sample_db, embedder):
    builder, repo, issues = _builder(sample_db, embedder, chunk_size=20)
    builder.build(issues)

    chunks = repo.load_chunks_for_issue("DEV-3")
    assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
    text = "".join(c.text for c in chunks)
    assert text.startswith("KEY: DEV-3\n")
    assert all(len(c.text) <= 20 for c in chunks)


def test_meta_json(sample_db, embedder):
    builder, repo, issues = _builder(sample_db, embedder)
    builder.build(issues)
    meta = json.loads(repo.load_chunks_for_issue("DEV-3")[0].meta)
    assert meta == {
        "summary": "SSO login",
        "issuetype": "Requirement",
        "status": "In Progress",
        "project": "DEV",
        "path": "DEV-1 > DEV-3",
    }


def test_progress_reported_per_chunk(sample_db, embedder):
    builder, _, issues = _builder(sample_db, embedder, chunk_size=100)
    events: list[IndexProgress] = []
    result = builder.build(issues, on_progress=events.append)

    assert len(events) == result.chunks_written
    assert [e.issue_key for e in events if e.chunk_ordinal == 1] == ["DEV-1", "DEV-2", "DEV-3", "OPS-7"]
    assert events[0].issue_ordinal == 1
    assert events[0].issue_total == 4
    assert events[-1].chunk_ordinal == events[-1].chunk_total
    assert events[0].describe().startswith("[1/4] Embedding DEV-1 (chunk 1/")


def test_rebuild_is_idempotent(sample_db, embedder):
    builder, repo, issues = _builder(sample_db, embedder, chunk_size=50)
    builder.build(issues)
    first = [(c.issue_key, c.chunk_index, c.text) for c in repo.load_all_chunks()]
    builder.build(issues)
    second = [(c.issue_key, c.chunk_index, c.text) for c in repo.load_all_chunks()]
    assert sorted(first) == sorted(second)


def test_stale_trailing_chunks_removed(sample_db, embedder):
    builder, repo, issues = _builder(sample_db, embedder, chunk_size=10)
    builder.build(issues)
    many = len(repo.load_chunks_for_issue("DEV-2"))

    builder, repo, issues = _builder(sample_db, embedder, chunk_size=1500)
    builder.build(issues)
    assert many > 1
    assert [c.chunk_index for c in repo.load_chunks_for_issue("DEV-2")] == [0]


# ------------------------------------------------------------------
# Scoped build
# ------------------------------------------------------------------


def test_build_keys_only_touches_selected(sample_db, embedder):
    builder, repo, issues = _builder(sample_db, embedder)
    result = builder.build_keys(issues, ["dev-3"])
    assert result.issues_total == 1
    assert {c.issue_key for c in repo.load_all_chunks()} == {"DEV-3"}
    # neighbour summaries still come from the full map
    assert "- OPS-7: Identity provider setup" in repo.load_all_chunks()[0].text


def test_build_keys_unknown_key_raises(sample_db, embedder):
    builder, _, issues = _builder(sample_db, embedder)
    with pytest.raises(KeyError, match="NOPE-1"):
        builder.build_keys(issues, ["DEV-1", "NOPE-1"])


# ------------------------------------------------------------------
# Cancellation + failures
# ------------------------------------------------------------------


def test_cancel_before_start_writes_nothing(sample_db, embedder):
    builder, repo, issues = _builder(sample_db, embedder)
    cancel = threading.Event()
    cancel.set()
    result = builder.build(issues, cancel=cancel)
    assert result.cancelled
    assert result.issues_indexed == 0
    assert repo.count_chunks() == 0
    assert embedder.calls == []


def test_cancel_mid_run_keeps_completed_rows(sample_db, embedder):
    builder, repo, issues = _builder(sample_db, embedder)
    cancel = threading.Event()

    def on_progress(p: IndexProgress) -> None:
        if p.issue_key == "DEV-2":
            cancel.set()

    result = builder.build(issues, on_progress=on_progress, cancel=cancel)
    assert result.cancelled
    assert result.issues_indexed == 2
    assert {c.issue_key for c in repo.load_all_chunks()} == {"DEV-1", "DEV-2"}


def test_rerun_after_cancel_re_embeds_every_issue(sample_db, embedder):
    builder, repo, issues = _builder(sample_db, embedder)
    cancel = threading.Event()
    builder.build(issues, on_progress=lambda p: cancel.set(), cancel=cancel)
    embedder.calls.clear()

    result = builder.build(issues)
    assert not result.cancelled
    assert result.issues_indexed == len(issues)
    assert len(embedder.calls) == repo.count_chunks()
    assert any(call.startswith("KEY: DEV-1") for call in embedder.calls)


class _FailingEmbedder(KeywordEmbedder):
    def embed(self, text: str) -> list[float]:
        if "DEV-2" in text.split("\n", 1)[0]:
            raise ModelServerError("boom")
        return super().embed(text)


def test_embedding_failure_aborts_run(sample_db):
    builder, repo, issues = _builder(sample_db, _FailingEmbedder())
    with pytest.raises(ModelServerError):
        builder.build(issues)
    assert {c.issue_key for c in repo.load_all_chunks()} == {"DEV-1"}
