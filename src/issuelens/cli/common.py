"""Helpers shared by the issuelens commands: store, config, model client."""

from __future__ import annotations

import signal
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console

from issuelens.cli.errors import EXIT_FAILURE, err_config, err_no_db, err_store_unreadable
from issuelens.config import ConfigError, IssueLensConfig, load_config, validate_server_url
from issuelens.db.connection import Database
from issuelens.db.models import IssueRecord
from issuelens.db.repository import IssueStoreError, Repository
from issuelens.rag.assembler import AssemblerConfig
from issuelens.rag.llm_client import ModelServerClient, ModelServerConfig

DEFAULT_DB = Path("issues.db")

console = Console()


def load_settings(server: str | None = None) -> IssueLensConfig:
    """Load the layered config and apply the ``--server`` flag on top.

    The flag goes through the same URL check as the config files.
    """
    try:
        cfg = load_config()
        if server:
            validate_server_url(server)
            cfg.server.url = server.rstrip("/")
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(EXIT_FAILURE)
    return cfg


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open an existing issue store. The file is never created here."""
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(EXIT_FAILURE)
    try:
        return Database(db_path).connect()
    except IssueStoreError as exc:
        console.print(err_store_unreadable(str(db_path), str(exc)))
        raise typer.Exit(EXIT_FAILURE)


def load_issues(repo: Repository, db_path: Path) -> dict[str, IssueRecord]:
    try:
        return repo.load_all_issues()
    except IssueStoreError as exc:
        console.print(err_store_unreadable(str(db_path), str(exc)))
        raise typer.Exit(EXIT_FAILURE)


def make_client(cfg: IssueLensConfig) -> ModelServerClient:
    return ModelServerClient(
        ModelServerConfig(
            base_url=cfg.server.url,
            embedding_model=cfg.embedding.model,
            generation_model=cfg.generation.model,
            timeout=cfg.server.timeout,
            token=cfg.server.token,
        )
    )


def assembler_config(cfg: IssueLensConfig) -> AssemblerConfig:
    r = cfg.retrieval
    return AssemblerConfig(
        top_k=r.top_k,
        seed_boost=r.seed_boost,
        token_budget=r.token_budget,
        keyed_chunks=r.keyed_chunks,
    )


@contextmanager
def cancel_on_sigint() -> Iterator[threading.Event]:
    """Yield an Event that is set on Ctrl-C instead of raising KeyboardInterrupt."""
    cancel = threading.Event()
    if threading.current_thread() is not threading.main_thread():
        yield cancel
        return

    def _handler(signum: int, frame: object) -> None:
        cancel.set()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield cancel
    finally:
        signal.signal(signal.SIGINT, previous)
