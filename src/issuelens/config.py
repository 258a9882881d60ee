"""issuelens configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (ISSUELENS_SERVER_URL, ISSUELENS_EMBEDDING_MODEL,
     ISSUELENS_GENERATION_MODEL, ISSUELENS_SERVER_TOKEN)
  3. Per-project issuelens.yaml  (in the working directory)
  4. Global ~/.issuelens/config.yaml  (defaults only, no credentials)
  5. Hardcoded defaults

The model server token is read from the environment only.
server.url must be an http(s) URL.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".issuelens"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "issuelens.yaml"

# Credential-looking key names, forbidden in the global config.
# Does NOT match legitimate keys like token_budget or top_k.
_CREDENTIAL_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["server", "embedding", "generation", "index", "retrieval"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class ServerCfg:
    """Model server connection (issuelens.yaml: server:).

    Attributes:
        url: Base URL of the embedding + generation server.
        timeout: Per-request timeout in seconds (connect + read).
        token: Optional bearer token. Only ever populated from
            ``ISSUELENS_SERVER_TOKEN``.
    """

    url: str = "http://localhost:11434"
    timeout: float = 120.0
    token: str | None = None


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (issuelens.yaml: embedding:)."""

    model: str = "nomic-embed-text"


@dataclass
class GenerationCfg:
    """Generation model configuration (issuelens.yaml: generation:)."""

    model: str = "llama3.1:8b"


@dataclass
class IndexCfg:
    """Index build parameters (issuelens.yaml: index:)."""

    chunk_size: int = 1500
    hop: int = 2


@dataclass
class RetrievalCfg:
    """Retrieval and prompt parameters (issuelens.yaml: retrieval:).

    Attributes:
        top_k: Number of chunks passed to the prompt for ``ask``.
        seed_boost: Additive score bonus for chunks of the seed issue.
        token_budget: Max tokens of retrieved context in an ``ask`` prompt.
        keyed_chunks: Chunks of one issue used by summary/tests/guide.
    """

    top_k: int = 12
    seed_boost: float = 0.05
    token_budget: int = 6_000
    keyed_chunks: int = 8


@dataclass
class IssueLensConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    server: ServerCfg = field(default_factory=ServerCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    index: IndexCfg = field(default_factory=IndexCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_credentials(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any credential-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _CREDENTIAL_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  Credentials must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export ISSUELENS_SERVER_TOKEN=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def validate_server_url(url: str) -> None:
    """Raise ConfigError unless *url* is an http:// or https:// URL."""
    if not url.startswith(("http://", "https://")):
        raise ConfigError(
            f"server.url must be an http(s) URL: '{url}'\n"
            "  Example: server.url: http://localhost:11434"
        )


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> IssueLensConfig:
    """Build an *IssueLensConfig* from a merged raw YAML dict."""
    cfg = IssueLensConfig()

    if "server" in data:
        s = data["server"] or {}
        cfg.server = ServerCfg(
            url=str(s.get("url", cfg.server.url)).rstrip("/"),
            timeout=float(s.get("timeout", cfg.server.timeout)),
        )

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(model=str(e.get("model", cfg.embedding.model)))

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(model=str(g.get("model", cfg.generation.model)))

    if "index" in data:
        i = data["index"] or {}
        cfg.index = IndexCfg(
            chunk_size=int(i.get("chunk_size", cfg.index.chunk_size)),
            hop=int(i.get("hop", cfg.index.hop)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
            seed_boost=float(r.get("seed_boost", cfg.retrieval.seed_boost)),
            token_budget=int(r.get("token_budget", cfg.retrieval.token_budget)),
            keyed_chunks=int(r.get("keyed_chunks", cfg.retrieval.keyed_chunks)),
        )

    if cfg.index.chunk_size < 1:
        raise ConfigError(f"index.chunk_size must be >= 1, got {cfg.index.chunk_size}")
    if cfg.index.hop < 0:
        raise ConfigError(f"index.hop must be >= 0, got {cfg.index.hop}")

    return cfg


def _apply_env_overrides(cfg: IssueLensConfig) -> IssueLensConfig:
    """Apply ISSUELENS_* environment variable overrides (layer 2)."""
    if url := os.environ.get("ISSUELENS_SERVER_URL"):
        cfg.server.url = url.rstrip("/")
    if model := os.environ.get("ISSUELENS_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if model := os.environ.get("ISSUELENS_GENERATION_MODEL"):
        cfg.generation.model = model
    if token := os.environ.get("ISSUELENS_SERVER_TOKEN"):
        cfg.server.token = token
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> IssueLensConfig:
    """Load and return a merged *IssueLensConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *issuelens.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *IssueLensConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains credential-like fields, if
            ``server.url`` is not an http(s) URL, or if index values are
            out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_credentials(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    validate_server_url(cfg.server.url)

    return cfg
