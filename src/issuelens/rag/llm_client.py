"""HTTP client for the embedding + generation model server.

Wire protocol (JSON over HTTP, configurable base URL):

  POST /api/embeddings  {model, input}
      → {"embedding": [f, ...]}  or  {"embeddings": [[f, ...], ...]}
  POST /api/generate    {model, prompt, stream: false}
      → {"response": "...", "done": true}
  POST /api/generate    {model, prompt, stream: true}
      → newline-delimited JSON objects, each with an optional "response"
        delta; the object with "done": true ends the stream.

No retry or backoff: transport and HTTP errors surface as ModelServerError.
Token counting for prompt budgets goes through LiteLLM.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

import httpx
import litellm

litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

EMBEDDINGS_PATH = "/api/embeddings"
GENERATE_PATH = "/api/generate"


class ModelServerError(RuntimeError):
    """Raised when the model server is unreachable or returns an error."""


class ShapeMismatchError(ModelServerError):
    """Raised when an embedding response has neither known shape."""


@dataclass
class ModelServerConfig:
    """Connection and model settings for ModelServerClient.

    Attributes:
        base_url: Server root, e.g. ``http://localhost:11434``.
        embedding_model: Model name sent to /api/embeddings.
        generation_model: Model name sent to /api/generate.
        timeout: Seconds for connect + read of a single request.
        token: Optional bearer token sent as ``Authorization`` header.
    """

    base_url: str = "http://localhost:11434"
    embedding_model: str = "nomic-embed-text"
    generation_model: str = "llama3.1:8b"
    timeout: float = 120.0
    token: str | None = None


@dataclass(frozen=True)
class EmbeddingResponse:
    """An embedding vector tagged with the response field it came from."""

    vector: list[float]
    field: str  # "embedding" | "embeddings"


def parse_embedding_response(data: Any) -> EmbeddingResponse:
    """Resolve either embedding response shape.

    ``{"embedding": [...]}`` wins over ``{"embeddings": [[...], ...]}``;
    for the list shape the first vector is used.

    Raises:
        ShapeMismatchError: If neither shape is present, or the vector holds
            something other than numbers.
    """
    if isinstance(data, dict):
        single = data.get("embedding")
        if isinstance(single, list):
            return EmbeddingResponse(vector=_as_floats(single), field="embedding")
        many = data.get("embeddings")
        if isinstance(many, list) and many and isinstance(many[0], list):
            return EmbeddingResponse(vector=_as_floats(many[0]), field="embeddings")
    raise ShapeMismatchError(
        "Unexpected response shape from embedding endpoint: "
        "expected 'embedding' or 'embeddings'."
    )


def _as_floats(values: list[Any]) -> list[float]:
    try:
        return [float(x) for x in values]
    except (TypeError, ValueError) as exc:
        raise ShapeMismatchError(
            f"Unexpected response shape from embedding endpoint: non-numeric vector ({exc})."
        ) from exc


class ModelServerClient:
    """Synchronous client for the model server.

    Usable as a context manager; closes its httpx.Client on exit.

    Args:
        config: Connection and model settings.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        config: ModelServerConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config or ModelServerConfig()
        headers = {"Accept": "application/json"}
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"
        self._http = httpx.Client(
            base_url=self._config.base_url,
            timeout=httpx.Timeout(self._config.timeout),
            headers=headers,
            transport=transport,
        )

    @property
    def config(self) -> ModelServerConfig:
        return self._config

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> ModelServerClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def embed(self, text: str) -> list[float]:
        """Return the embedding vector for *text*.

        Raises:
            ShapeMismatchError: Response has neither embedding shape.
            ModelServerError: Network or HTTP failure.
        """
        data = self._post(EMBEDDINGS_PATH, {"model": self._config.embedding_model, "input": text})
        return parse_embedding_response(data).vector

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate(self, prompt: str) -> str:
        """Blocking generation; returns the ``response`` text ("" if absent)."""
        data = self._post(
            GENERATE_PATH,
            {"model": self._config.generation_model, "prompt": prompt, "stream": False},
        )
        text = data.get("response") if isinstance(data, dict) else None
        return text if isinstance(text, str) else ""

    def generate_stream(
        self,
        prompt: str,
        cancel: threading.Event | None = None,
    ) -> Iterator[str]:
        """Stream generation deltas lazily.

        The request is sent on first iteration. Blank and malformed lines are
        skipped; the stream ends after an object with ``"done": true``, at end
        of body, or (silently) once *cancel* is set, which is checked before
        each line.

        Raises:
            ModelServerError: Network or HTTP failure.
        """
        payload = {"model": self._config.generation_model, "prompt": prompt, "stream": True}
        logger.debug("POST %s (stream)", GENERATE_PATH)
        try:
            with self._http.stream("POST", GENERATE_PATH, json=payload) as response:
                _check_status(response)
                for line in response.iter_lines():
                    if cancel is not None and cancel.is_set():
                        logger.info("Generation stream cancelled")
                        return
                    if not line.strip():
                        continue
                    try:
                        obj = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug("Skipping malformed stream line: %.80r", line)
                        continue
                    if not isinstance(obj, dict):
                        continue
                    delta = obj.get("response")
                    if isinstance(delta, str) and delta:
                        yield delta
                    if obj.get("done") is True:
                        return
        except httpx.HTTPError as exc:
            raise ModelServerError(
                f"Model server request failed ({self._config.base_url}{GENERATE_PATH}): {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _post(self, path: str, payload: dict[str, Any]) -> Any:
        logger.debug("POST %s", path)
        url = f"{self._config.base_url}{path}"
        try:
            response = self._http.post(path, json=payload)
            _check_status(response)
            return response.json()
        except httpx.HTTPError as exc:
            raise ModelServerError(f"Model server request failed ({url}): {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ModelServerError(f"Model server returned invalid JSON ({url}): {exc}") from exc


def _check_status(response: httpx.Response) -> None:
    if response.is_error:
        raise ModelServerError(
            f"Model server returned HTTP {response.status_code} for {response.request.url}"
        )


# ------------------------------------------------------------------
# Token counting
# ------------------------------------------------------------------


def count_tokens(model: str, text: str) -> int:
    """Count tokens in *text* for *model* using LiteLLM's provider-aware counter.

    Falls back to character-based approximation (4 chars ≈ 1 token) if the model
    is not supported by litellm.token_counter().
    """
    try:
        return litellm.token_counter(model=model, text=text)
    except Exception:
        return max(1, len(text) // 4)
