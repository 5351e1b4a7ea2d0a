"""Typed models for indexing state."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

IndexStatusName = Literal["success", "partial_success", "error", "skipped"]
ProgressStage = Literal[
    "idle",
    "scanning",
    "hashing",
    "uploading",
    "saving",
    "enhancing",
    "searching",
    "complete",
    "error",
]


@dataclass(slots=True, frozen=True)
class Blob:
    """Immutable content unit derived from a whole file or one of its chunks."""

    path: str
    content: str
    source_path: str

    def to_wire(self) -> dict[str, str]:
        """Return the upload payload entry for this blob."""
        return {"path": self.path, "content": self.content}


@dataclass(slots=True, frozen=True)
class IndexStats:
    """Blob counts reported by a project run."""

    total_blobs: int
    existing_blobs: int
    new_blobs: int


@dataclass(slots=True, frozen=True)
class IndexResult:
    """Structured outcome of one reconciliation."""

    status: IndexStatusName
    message: str
    stats: IndexStats | None = None

    def to_dict(self) -> dict[str, object]:
        """Return serializable result payload."""
        payload: dict[str, object] = {"status": self.status, "message": self.message}
        if self.stats is not None:
            payload["stats"] = {
                "total_blobs": self.stats.total_blobs,
                "existing_blobs": self.stats.existing_blobs,
                "new_blobs": self.stats.new_blobs,
            }
        return payload


@dataclass(slots=True, frozen=True)
class ProgressUpdate:
    """Progress notification delivered to host callbacks."""

    stage: ProgressStage
    message: str
    percent: int | None = None


ProgressReporter = Callable[[ProgressUpdate], None]


def report(
    reporter: ProgressReporter | None,
    stage: ProgressStage,
    message: str,
    percent: int,
) -> None:
    """Deliver a progress update when a reporter is attached."""
    if reporter is not None:
        reporter(ProgressUpdate(stage=stage, message=message, percent=percent))
