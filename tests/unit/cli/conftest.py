"""CLI fixtures: isolated config, a populated issue store, a fake model server."""

from __future__ import annotations

from pathlib import Path

import pytest

from issue_store import FakeModelClient, insert_issue, make_issue_store


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch):
    """No user/global config and no ISSUELENS_* env leaks into CLI tests."""
    monkeypatch.setattr("issuelens.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    for var in (
        "ISSUELENS_SERVER_URL",
        "ISSUELENS_EMBEDDING_MODEL",
        "ISSUELENS_GENERATION_MODEL",
        "ISSUELENS_SERVER_TOKEN",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    """Issue store with DEV-1 (epic) → DEV-2, DEV-3; no chunks yet."""
    path = tmp_path / "issues.db"
    conn = make_issue_store(path)
    insert_issue(conn, "DEV-1", summary="Authentication", children="DEV-2 DEV-3")
    insert_issue(conn, "DEV-2", summary="Password login", parent="DEV-1")
    insert_issue(
        conn, "DEV-3",
        summary="SSO login", description="Login must support SSO.", parent="DEV-1",
    )
    conn.close()
    return path


@pytest.fixture
def fake_client() -> FakeModelClient:
    return FakeModelClient()
