"""Content-addressed indexing package."""

from .collector import collect_blobs, decode_with_fallback, read_text_with_fallback
from .hashing import blob_digest, digest_blobs
from .ignore import IgnoreFilter
from .models import Blob, IndexResult, IndexStats, ProgressReporter, ProgressUpdate
from .reconciler import IndexReconciler
from .splitting import split_content, split_lines
from .store import (
    INDEX_STORE_VERSION,
    IndexStore,
    IndexStoreRepository,
    IndexStoreWriteError,
    collect_blob_names,
)

__all__ = [
    "Blob",
    "INDEX_STORE_VERSION",
    "IgnoreFilter",
    "IndexReconciler",
    "IndexResult",
    "IndexStats",
    "IndexStore",
    "IndexStoreRepository",
    "IndexStoreWriteError",
    "ProgressReporter",
    "ProgressUpdate",
    "blob_digest",
    "collect_blob_names",
    "collect_blobs",
    "decode_with_fallback",
    "digest_blobs",
    "read_text_with_fallback",
    "split_content",
    "split_lines",
]
