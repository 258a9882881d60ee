"""Tests for the Repository: issue reads and chunk-embedding writes."""

from __future__ import annotations

import sqlite3

import pytest

from issue_store import insert_issue
from issuelens.db.models import ChunkEmbedding, normalize_key
from issuelens.db.repository import IssueStoreError, Repository, split_keys


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


def _chunk(key="DEV-1", index=0, text="hello", vector=None, meta="{}"):
    return ChunkEmbedding(
        issue_key=key, chunk_index=index, text=text,
        vector=vector if vector is not None else [1.0, 0.0], meta=meta,
    )


# ------------------------------------------------------------------
# Issues
# ------------------------------------------------------------------


def test_load_all_issues_maps_columns(sample_db):
    issues = Repository(sample_db).load_all_issues()
    assert sorted(issues) == ["DEV-1", "DEV-2", "DEV-3", "OPS-7"]

    dev3 = issues["DEV-3"]
    assert dev3.summary == "SSO login"
    assert dev3.description == "Login must support SSO."
    assert dev3.parent_key == "DEV-1"
    assert dev3.related == ["OPS-7"]
    assert dev3.issue_type == "Requirement"
    assert dev3.project_code == "DEV"
    assert dev3.project_name == "Development"
    assert dev3.status == "In Progress"
    assert issues["DEV-1"].children == ["DEV-2", "DEV-3"]


def test_null_columns_read_as_empty(repo, tmp_db):
    insert_issue(tmp_db, "DEV-9")
    issue = repo.load_all_issues()["DEV-9"]
    assert issue.summary == ""
    assert issue.description == ""
    assert issue.parent_key == ""
    assert issue.children == []
    assert issue.history == ""


def test_blank_keys_skipped(repo, tmp_db):
    insert_issue(tmp_db, None, summary="no key")
    insert_issue(tmp_db, "   ", summary="blank key")
    insert_issue(tmp_db, "DEV-1", summary="ok")
    assert list(repo.load_all_issues()) == ["DEV-1"]


def test_keys_are_canonical_upper_case(repo, tmp_db):
    insert_issue(tmp_db, " dev-5 ", parent="dev-1", children="dev-6")
    issue = repo.load_all_issues()["DEV-5"]
    assert issue.key == "DEV-5"
    assert issue.parent_key == "DEV-1"
    assert issue.children == ["DEV-6"]


def test_missing_issue_table_raises(tmp_path):
    conn = sqlite3.connect(tmp_path / "empty.db")
    conn.row_factory = sqlite3.Row
    with pytest.raises(IssueStoreError, match="Cannot read issue store"):
        Repository(conn).load_all_issues()
    conn.close()


@pytest.mark.parametrize("raw,expected", [
    ("DEV-1, DEV-2", ["DEV-1", "DEV-2"]),
    ("DEV-1;DEV-2 DEV-3\nDEV-4\r\n\tDEV-5", ["DEV-1", "DEV-2", "DEV-3", "DEV-4", "DEV-5"]),
    ("dev-1, DEV-1, Dev-1", ["DEV-1"]),
    (" , ;  ", []),
    ("", []),
    (None, []),
])
def test_split_keys(raw, expected):
    assert split_keys(raw) == expected


def test_normalize_key():
    assert normalize_key("  dev-12 ") == "DEV-12"
    assert normalize_key(None) == ""


# ------------------------------------------------------------------
# Chunk embeddings
# ------------------------------------------------------------------


def test_upsert_and_load_chunk(repo):
    repo.upsert_chunk(_chunk(vector=[0.5, -0.5], meta='{"summary": "s"}'))
    [loaded] = repo.load_all_chunks()
    assert loaded.issue_key == "DEV-1"
    assert loaded.chunk_index == 0
    assert loaded.text == "hello"
    assert loaded.vector == [0.5, -0.5]
    assert loaded.meta_dict == {"summary": "s"}


def test_upsert_twice_keeps_one_row_with_latest_text(repo):
    repo.upsert_chunk(_chunk(text="first"))
    repo.upsert_chunk(_chunk(text="second", vector=[0.0, 1.0]))
    chunks = repo.load_all_chunks()
    assert len(chunks) == 1
    assert chunks[0].text == "second"
    assert chunks[0].vector == [0.0, 1.0]


def test_load_all_chunks_in_insertion_order(repo):
    repo.upsert_chunk(_chunk(key="DEV-2", index=0))
    repo.upsert_chunk(_chunk(key="DEV-1", index=0))
    repo.upsert_chunk(_chunk(key="DEV-1", index=1))
    assert [(c.issue_key, c.chunk_index) for c in repo.load_all_chunks()] == [
        ("DEV-2", 0), ("DEV-1", 0), ("DEV-1", 1),
    ]


def test_load_chunks_for_issue_ordered_and_limited(repo):
    for i in (2, 0, 1):
        repo.upsert_chunk(_chunk(index=i, text=f"t{i}"))
    repo.upsert_chunk(_chunk(key="DEV-2"))
    assert [c.chunk_index for c in repo.load_chunks_for_issue("dev-1")] == [0, 1, 2]
    assert [c.text for c in repo.load_chunks_for_issue("DEV-1", limit=2)] == ["t0", "t1"]


def test_delete_chunks_from(repo):
    for i in range(4):
        repo.upsert_chunk(_chunk(index=i))
    assert repo.delete_chunks_from("DEV-1", 2) == 2
    assert [c.chunk_index for c in repo.load_chunks_for_issue("DEV-1")] == [0, 1]


def test_counts(repo):
    assert repo.count_chunks() == 0
    repo.upsert_chunk(_chunk(key="DEV-1", index=0))
    repo.upsert_chunk(_chunk(key="DEV-1", index=1))
    repo.upsert_chunk(_chunk(key="DEV-2", index=0))
    assert repo.count_chunks() == 3
    assert repo.count_indexed_issues() == 2
    assert repo.chunk_dimensions() == {2: 3}


def test_ensure_chunk_table_idempotent(repo):
    repo.upsert_chunk(_chunk())
    repo.ensure_chunk_table()
    assert repo.count_chunks() == 1
