"""Content addresses for blobs."""

from __future__ import annotations

import hashlib

from ace_index.index.models import Blob


def blob_digest(path: str, content: str) -> str:
    """Return the SHA-256 content address of a (logical path, content) pair.

    The path and content are fed as two consecutive updates with no separator.
    Remote stores compute the same digest, so the layout must stay as is.
    """
    digest = hashlib.sha256()
    digest.update(path.encode("utf-8"))
    digest.update(content.encode("utf-8"))
    return digest.hexdigest()


def digest_blobs(blobs: list[Blob]) -> dict[str, Blob]:
    """Map digests to blobs, preserving first-seen order."""
    output: dict[str, Blob] = {}
    for blob in blobs:
        output.setdefault(blob_digest(blob.path, blob.content), blob)
    return output
