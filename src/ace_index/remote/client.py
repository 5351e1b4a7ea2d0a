"""HTTP client for the remote blob store and retrieval service.

Thin wrapper around the service endpoints. Handles API calls only; retries,
batching and index bookkeeping live with the callers.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager

import httpx

from ace_index.config import RemoteConfig
from ace_index.index.models import Blob
from ace_index.remote.errors import UnexpectedResponseError

__all__ = [
    "RETRIEVAL_TIMEOUT_SECONDS",
    "CHAT_STREAM_TIMEOUT_SECONDS",
    "RemoteClient",
]

RETRIEVAL_TIMEOUT_SECONDS = 60
CHAT_STREAM_TIMEOUT_SECONDS = 120


class RemoteClient:
    """Low-level client for batch upload, codebase retrieval and chat streaming."""

    def __init__(
        self,
        config: RemoteConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=config.base_url,
            headers={
                "Authorization": f"Bearer {config.token}",
                "Content-Type": "application/json",
            },
            timeout=config.timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        """Close pooled connections."""
        self._client.close()

    def __enter__(self) -> RemoteClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def batch_upload(self, blobs: Sequence[Blob]) -> list[str]:
        """Upload one batch and return the digests the remote now holds for it."""
        response = self._client.post(
            "/batch-upload",
            json={"blobs": [blob.to_wire() for blob in blobs]},
        )
        response.raise_for_status()
        payload = _json_object(response)
        names = payload.get("blob_names") or []
        if not isinstance(names, list):
            raise UnexpectedResponseError("batch-upload response blob_names must be a list.")
        return [name for name in names if isinstance(name, str)]

    def codebase_retrieval(self, query: str, blob_names: Sequence[str]) -> str:
        """Ask the retrieval service for formatted context; empty when nothing matched."""
        payload = {
            "information_request": query,
            "blobs": {
                "checkpoint_id": None,
                "added_blobs": list(blob_names),
                "deleted_blobs": [],
            },
            "dialog": [],
            "max_output_length": 0,
            "disable_codebase_retrieval": False,
            "enable_commit_retrieval": False,
        }
        response = self._client.post(
            "/agents/codebase-retrieval",
            json=payload,
            timeout=RETRIEVAL_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        formatted = _json_object(response).get("formatted_retrieval")
        if not isinstance(formatted, str):
            return ""
        return formatted

    @contextmanager
    def chat_stream(
        self,
        payload: dict[str, object],
        headers: dict[str, str] | None = None,
    ) -> Iterator[Iterator[str]]:
        """Open a streaming chat request and yield its response lines."""
        request_headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        request_headers.update(headers or {})
        with self._client.stream(
            "POST",
            "/chat-stream",
            json=payload,
            headers=request_headers,
            timeout=CHAT_STREAM_TIMEOUT_SECONDS,
        ) as response:
            response.raise_for_status()
            yield response.iter_lines()


def _json_object(response: httpx.Response) -> dict[str, object]:
    if not response.content:
        return {}
    try:
        payload = response.json()
    except ValueError as error:
        raise UnexpectedResponseError(f"Response from {response.url} is not JSON.") from error
    if not isinstance(payload, dict):
        raise UnexpectedResponseError(f"Response from {response.url} is not a JSON object.")
    return payload
