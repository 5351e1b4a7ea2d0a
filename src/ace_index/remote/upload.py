"""Batched blob upload with per-batch verification."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from ace_index.index.models import Blob
from ace_index.remote.retry import DEFAULT_BASE_DELAY, DEFAULT_MAX_ATTEMPTS, with_retry

logger = logging.getLogger(__name__)

BlobUploader = Callable[[Sequence[Blob]], Sequence[str]]


class BlobDigestMismatchError(Exception):
    """Raised when the remote reports different digests than computed locally."""


@dataclass(slots=True, frozen=True)
class UploadOutcome:
    """Partition of one upload run into uploaded digests and failed batches."""

    uploaded: tuple[str, ...]
    failed_batches: tuple[int, ...]
    total_batches: int

    @property
    def all_failed(self) -> bool:
        """Return True when at least one batch ran and none succeeded."""
        return self.total_batches > 0 and len(self.failed_batches) == self.total_batches


def partition_batches(digests: Sequence[str], batch_size: int) -> list[list[str]]:
    """Split digests into consecutive batches of at most batch_size."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    return [
        list(digests[start : start + batch_size]) for start in range(0, len(digests), batch_size)
    ]


def verify_batch(expected: Sequence[str], returned: Sequence[str]) -> None:
    """Raise unless the returned digests are set-equal to the expected ones."""
    if not returned:
        raise BlobDigestMismatchError("Remote returned no blob names for the batch.")
    expected_set = set(expected)
    returned_set = set(returned)
    if len(expected_set) != len(returned_set) or expected_set != returned_set:
        raise BlobDigestMismatchError("Blob hash mismatch between local and server.")


def upload_blobs(
    upload: BlobUploader,
    pending: Mapping[str, Blob],
    batch_size: int,
    on_batch: Callable[[int, int], None] | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> UploadOutcome:
    """Upload pending blobs batch by batch; a failed batch never stops the next one."""
    digests = list(pending.keys())
    batches = partition_batches(digests, batch_size)
    uploaded: list[str] = []
    failed: list[int] = []
    for index, expected in enumerate(batches):
        if on_batch is not None:
            on_batch(index, len(batches))
        batch_blobs = [pending[digest] for digest in expected]
        try:
            returned = with_retry(
                lambda: list(upload(batch_blobs)),
                max_attempts=max_attempts,
                base_delay=base_delay,
                sleep=sleep,
            )
            verify_batch(expected, returned)
        except Exception as error:
            logger.error("Batch %d/%d upload failed: %s", index + 1, len(batches), error)
            failed.append(index)
            continue
        uploaded.extend(expected)
    return UploadOutcome(
        uploaded=tuple(uploaded),
        failed_batches=tuple(failed),
        total_batches=len(batches),
    )
