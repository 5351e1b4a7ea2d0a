from __future__ import annotations

import json

import httpx
import pytest

from ace_index.config import RemoteConfig
from ace_index.index.models import Blob
from ace_index.remote.client import RemoteClient
from ace_index.remote.errors import UnexpectedResponseError

_CONFIG = RemoteConfig(base_url="https://api.example.com", token="secret-token")


def test_batch_upload_posts_blobs_with_bearer_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"blob_names": ["d1", "d2"]})

    client = RemoteClient(_CONFIG, transport=httpx.MockTransport(handler))
    blobs = [
        Blob(path="a.py", content="a\n", source_path="a.py"),
        Blob(path="b.py#chunk1of2", content="b\n", source_path="b.py"),
    ]

    assert client.batch_upload(blobs) == ["d1", "d2"]
    request = seen[0]
    assert request.url == "https://api.example.com/batch-upload"
    assert request.headers["Authorization"] == "Bearer secret-token"
    assert json.loads(request.content) == {
        "blobs": [
            {"path": "a.py", "content": "a\n"},
            {"path": "b.py#chunk1of2", "content": "b\n"},
        ]
    }


def test_batch_upload_raises_for_http_errors() -> None:
    client = RemoteClient(
        _CONFIG, transport=httpx.MockTransport(lambda request: httpx.Response(401))
    )

    with pytest.raises(httpx.HTTPStatusError):
        client.batch_upload([Blob(path="a.py", content="", source_path="a.py")])


def test_batch_upload_rejects_non_object_body() -> None:
    client = RemoteClient(
        _CONFIG, transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[1]))
    )

    with pytest.raises(UnexpectedResponseError):
        client.batch_upload([Blob(path="a.py", content="", source_path="a.py")])


def test_codebase_retrieval_sends_full_blob_set() -> None:
    bodies: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"formatted_retrieval": "context here"})

    client = RemoteClient(_CONFIG, transport=httpx.MockTransport(handler))

    assert client.codebase_retrieval("where is auth", ["d1", "d2"]) == "context here"
    assert bodies[0] == {
        "information_request": "where is auth",
        "blobs": {"checkpoint_id": None, "added_blobs": ["d1", "d2"], "deleted_blobs": []},
        "dialog": [],
        "max_output_length": 0,
        "disable_codebase_retrieval": False,
        "enable_commit_retrieval": False,
    }


def test_codebase_retrieval_without_text_is_empty() -> None:
    client = RemoteClient(
        _CONFIG, transport=httpx.MockTransport(lambda request: httpx.Response(200, json={}))
    )

    assert client.codebase_retrieval("q", ["d1"]) == ""


def test_chat_stream_yields_lines_and_merges_headers() -> None:
    seen: list[httpx.Request] = []
    body = b'{"text": "a"}\n{"text": "b"}\n'

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=body)

    with RemoteClient(_CONFIG, transport=httpx.MockTransport(handler)) as client:
        with client.chat_stream({"message": ""}, {"x-request-id": "rid"}) as lines:
            received = list(lines)

    assert received == ['{"text": "a"}', '{"text": "b"}']
    assert seen[0].url.path == "/chat-stream"
    assert seen[0].headers["x-request-id"] == "rid"
    assert seen[0].headers["Accept"] == "text/event-stream"
