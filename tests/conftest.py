"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from issue_store import KeywordEmbedder, insert_issue, make_issue_store
from issuelens.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based issue store with the chunk table initialized, closed after test."""
    conn = make_issue_store(tmp_path / "issues.db")
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def sample_db(tmp_db):
    """Small hierarchy: DEV-1 → DEV-2, DEV-3; DEV-3 related to OPS-7."""
    insert_issue(
        tmp_db, "DEV-1",
        summary="Authentication", description="Users sign in.",
        children="DEV-2, DEV-3", issue_type="Epic",
        project_code="DEV", project_name="Development", status="Open",
    )
    insert_issue(
        tmp_db, "DEV-2",
        summary="Password login", description="Login with password.",
        parent="DEV-1", issue_type="Requirement",
        project_code="DEV", project_name="Development", status="Done",
    )
    insert_issue(
        tmp_db, "DEV-3",
        summary="SSO login", description="Login must support SSO.",
        parent="DEV-1", related="OPS-7", issue_type="Requirement",
        project_code="DEV", project_name="Development", status="In Progress",
    )
    insert_issue(
        tmp_db, "OPS-7",
        summary="Identity provider setup", description="Configure the IdP.",
        issue_type="Task", project_code="OPS", project_name="Operations",
    )
    return tmp_db


@pytest.fixture
def embedder():
    return KeywordEmbedder()
