"""Tests for the model server client (httpx wire protocol + token counting)."""

from __future__ import annotations

import json
import threading
from unittest.mock import patch

import httpx
import pytest

from issuelens.rag.llm_client import (
    EMBEDDINGS_PATH,
    GENERATE_PATH,
    ModelServerClient,
    ModelServerConfig,
    ModelServerError,
    ShapeMismatchError,
    count_tokens,
    parse_embedding_response,
)


def _client(handler, **config) -> ModelServerClient:
    return ModelServerClient(
        ModelServerConfig(base_url="http://models.test", **config),
        transport=httpx.MockTransport(handler),
    )


def _ndjson(*objects) -> bytes:
    return "".join(
        (o if isinstance(o, str) else json.dumps(o)) + "\n" for o in objects
    ).encode()


# ------------------------------------------------------------------
# Embedding response shapes
# ------------------------------------------------------------------


def test_parse_single_embedding():
    result = parse_embedding_response({"embedding": [1, 2.5]})
    assert result.vector == [1.0, 2.5]
    assert result.field == "embedding"


def test_parse_embeddings_list_uses_first():
    result = parse_embedding_response({"embeddings": [[0.1, 0.2], [9.0, 9.0]]})
    assert result.vector == [0.1, 0.2]
    assert result.field == "embeddings"


def test_parse_prefers_embedding_field():
    result = parse_embedding_response({"embedding": [1.0], "embeddings": [[2.0]]})
    assert result.vector == [1.0]


@pytest.mark.parametrize("data", [
    {},
    {"embeddings": []},
    {"vector": [1.0]},
    [1.0],
    None,
    {"embedding": ["a", "b"]},
    {"embedding": [None]},
    {"embedding": [[0.1, 0.2]]},
    {"embeddings": [["x"]]},
])
def test_parse_unknown_shape_raises(data):
    with pytest.raises(ShapeMismatchError, match="Unexpected response shape"):
        parse_embedding_response(data)


# ------------------------------------------------------------------
# embed()
# ------------------------------------------------------------------


def test_embed_posts_model_and_input():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"embedding": [0.5, 0.5]})

    with _client(handler, embedding_model="nomic-embed-text") as client:
        assert client.embed("hello") == [0.5, 0.5]
    assert seen["path"] == EMBEDDINGS_PATH
    assert seen["body"] == {"model": "nomic-embed-text", "input": "hello"}


def test_embed_shape_mismatch_propagates():
    with _client(lambda r: httpx.Response(200, json={"data": []})) as client:
        with pytest.raises(ShapeMismatchError):
            client.embed("x")


def test_embed_non_numeric_vector_is_a_model_server_error():
    with _client(lambda r: httpx.Response(200, json={"embedding": ["oops"]})) as client:
        with pytest.raises(ModelServerError, match="non-numeric vector"):
            client.embed("x")


def test_http_error_status_raises():
    with _client(lambda r: httpx.Response(500, text="oops")) as client:
        with pytest.raises(ModelServerError, match="HTTP 500"):
            client.embed("x")


def test_transport_error_wrapped():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with _client(handler) as client:
        with pytest.raises(ModelServerError, match="request failed"):
            client.embed("x")


def test_invalid_json_wrapped():
    with _client(lambda r: httpx.Response(200, text="not json")) as client:
        with pytest.raises(ModelServerError, match="invalid JSON"):
            client.embed("x")


def test_bearer_token_header():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"embedding": [1.0]})

    with _client(handler, token="s3cret") as client:
        client.embed("x")
    assert seen["auth"] == "Bearer s3cret"


# ------------------------------------------------------------------
# generate()
# ------------------------------------------------------------------


def test_generate_blocking():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": "Answer [DEV-1]", "done": True})

    with _client(handler, generation_model="llama3.1:8b") as client:
        assert client.generate("prompt") == "Answer [DEV-1]"
    assert seen["path"] == GENERATE_PATH
    assert seen["body"] == {"model": "llama3.1:8b", "prompt": "prompt", "stream": False}


def test_generate_missing_response_is_empty():
    with _client(lambda r: httpx.Response(200, json={"done": True})) as client:
        assert client.generate("p") == ""


# ------------------------------------------------------------------
# generate_stream()
# ------------------------------------------------------------------


def test_stream_yields_deltas_and_stops_on_done():
    body = _ndjson(
        {"response": "Hel", "done": False},
        {"response": "lo", "done": True},
        {"response": "IGNORED", "done": False},
    )
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=body)

    with _client(handler) as client:
        assert list(client.generate_stream("p")) == ["Hel", "lo"]
    assert seen["path"] == GENERATE_PATH
    assert seen["body"]["stream"] is True


def test_stream_skips_blank_and_malformed_lines():
    body = _ndjson(
        "",
        "{not json",
        "[1, 2]",
        {"response": "", "done": False},
        {"response": "ok", "done": False},
        "   ",
        {"done": True},
    )
    with _client(lambda r: httpx.Response(200, content=body)) as client:
        assert list(client.generate_stream("p")) == ["ok"]


def test_stream_ends_at_end_of_body_without_done():
    body = _ndjson({"response": "a"}, {"response": "b"})
    with _client(lambda r: httpx.Response(200, content=body)) as client:
        assert list(client.generate_stream("p")) == ["a", "b"]


def test_stream_is_lazy():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, content=_ndjson({"response": "x", "done": True}))

    with _client(handler) as client:
        stream = client.generate_stream("p")
        assert calls == []
        assert list(stream) == ["x"]
        assert len(calls) == 1
        assert list(stream) == []


def test_stream_cancellation_stops_silently():
    body = _ndjson(*({"response": str(i)} for i in range(10)), {"done": True})
    cancel = threading.Event()
    received = []
    with _client(lambda r: httpx.Response(200, content=body)) as client:
        for delta in client.generate_stream("p", cancel=cancel):
            received.append(delta)
            if len(received) == 3:
                cancel.set()
    assert received == ["0", "1", "2"]


def test_stream_http_error():
    with _client(lambda r: httpx.Response(404)) as client:
        with pytest.raises(ModelServerError, match="HTTP 404"):
            list(client.generate_stream("p"))


# ------------------------------------------------------------------
# count_tokens()
# ------------------------------------------------------------------


def test_count_tokens_uses_litellm():
    with patch("issuelens.rag.llm_client.litellm.token_counter", return_value=42) as m:
        assert count_tokens("llama3.1:8b", "hello") == 42
    m.assert_called_once_with(model="llama3.1:8b", text="hello")


def test_count_tokens_falls_back_to_chars():
    with patch(
        "issuelens.rag.llm_client.litellm.token_counter", side_effect=ValueError("unknown")
    ):
        assert count_tokens("x", "a" * 40) == 10
        assert count_tokens("x", "") == 1
