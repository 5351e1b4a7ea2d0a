"""Full-project and single-file reconciliation against the index store."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from ace_index.config import IndexConfig
from ace_index.index.collector import collect_blobs, has_allowed_extension, read_text_with_fallback
from ace_index.index.hashing import blob_digest, digest_blobs
from ace_index.index.ignore import IgnoreFilter
from ace_index.index.models import Blob, IndexResult, IndexStats, ProgressReporter, report
from ace_index.index.splitting import split_content
from ace_index.index.store import IndexStore, IndexStoreRepository
from ace_index.remote.retry import DEFAULT_BASE_DELAY, DEFAULT_MAX_ATTEMPTS
from ace_index.remote.upload import BlobUploader, UploadOutcome, upload_blobs
from ace_index.security import project_relative_path, resolve_project_path

logger = logging.getLogger(__name__)


class IndexReconciler:
    """Diffs project files against the index store and commits consistent snapshots.

    The store document is read once at the start of each operation and written
    at most once at the end. Callers must not run two operations concurrently
    for the same project; see IndexScheduler.
    """

    def __init__(
        self,
        project_root: Path,
        config: IndexConfig,
        store: IndexStoreRepository,
        upload: BlobUploader,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._project_root = project_root.resolve()
        self._config = config
        self._store = store
        self._upload = upload
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._sleep = sleep

    @property
    def project_root(self) -> Path:
        """Return the resolved project root."""
        return self._project_root

    def index_project(self, reporter: ProgressReporter | None = None) -> IndexResult:
        """Reindex the whole project, uploading only blobs the remote lacks."""
        logger.info("Indexing project: %s", self._project_root)
        try:
            report(reporter, "scanning", "Scanning project files...", 10)
            profile: dict[str, object] = {}
            blobs = collect_blobs(self._project_root, self._config, profile=profile)
            logger.debug("Collection profile: %s", profile)
            if not blobs:
                return self._fail(reporter, "No text files found in project")

            report(reporter, "hashing", "Computing hashes...", 25)
            store = self._store.load()
            blob_by_digest = digest_blobs(blobs)
            candidate_map: dict[str, list[str]] = {}
            for digest, blob in blob_by_digest.items():
                candidate_map.setdefault(blob.source_path, []).append(digest)

            existing = {digest for digest in blob_by_digest if digest in store.blob_names}
            pending = {
                digest: blob for digest, blob in blob_by_digest.items() if digest not in existing
            }

            report(reporter, "uploading", f"Uploading {len(pending)} new blobs...", 50)
            outcome = self._upload_pending(pending, reporter)
            if not existing and outcome.all_failed:
                return self._fail(reporter, "All batches failed on first indexing")
        except Exception as error:
            logger.exception("Index project failed")
            return self._fail(reporter, str(error) or type(error).__name__)

        available = existing | set(outcome.uploaded)
        filtered_map: dict[str, tuple[str, ...]] = {}
        for source_path, digests in candidate_map.items():
            kept = tuple(digest for digest in digests if digest in available)
            if kept:
                filtered_map[source_path] = kept

        report(reporter, "saving", "Saving index...", 90)
        self._store.save(IndexStore(blob_names=frozenset(available), file_map=filtered_map))
        report(reporter, "complete", "Index complete", 100)

        stats = IndexStats(
            total_blobs=len(available),
            existing_blobs=len(existing),
            new_blobs=len(outcome.uploaded),
        )
        message = (
            f"Indexed {stats.total_blobs} blobs "
            f"(existing: {stats.existing_blobs}, new: {stats.new_blobs})"
        )
        if outcome.failed_batches:
            logger.warning(
                "%d of %d batches failed; committed a partial index",
                len(outcome.failed_batches),
                outcome.total_batches,
            )
            return IndexResult(status="partial_success", message=message, stats=stats)
        return IndexResult(status="success", message=message, stats=stats)

    def index_file(
        self, path: str | Path, reporter: ProgressReporter | None = None
    ) -> IndexResult:
        """Reconcile one file: add, update, or drop its entry all-or-nothing."""
        full_path = resolve_project_path(self._project_root, path)
        relative = project_relative_path(self._project_root, full_path)
        if relative is None:
            return IndexResult(status="skipped", message="File is outside project root")
        logical_path = self._project_root / relative

        rules = IgnoreFilter(self._project_root, self._config.exclude_patterns)
        if rules.is_relative_excluded(relative, is_dir=logical_path.is_dir()):
            return self._remove_file(relative, reporter, "File excluded from index")
        if not has_allowed_extension(relative, self._config.text_extensions):
            return self._remove_file(relative, reporter, "File extension not indexed")
        if not logical_path.is_file():
            return self._remove_file(relative, reporter, "File not found")

        report(reporter, "hashing", "Indexing file...", 20)
        try:
            content = read_text_with_fallback(logical_path)
        except OSError as error:
            logger.error("Failed to read %s: %s", relative, error)
            return self._fail(reporter, f"Failed to read file {relative}")
        blobs = split_content(relative, content, self._config.max_lines_per_blob)
        next_digests = tuple(blob_digest(blob.path, blob.content) for blob in blobs)

        store = self._store.load()
        if tuple(store.file_map.get(relative, ())) == next_digests:
            return IndexResult(status="success", message="No changes detected")

        pending: dict[str, Blob] = {}
        for digest, blob in zip(next_digests, blobs):
            if digest not in store.blob_names:
                pending.setdefault(digest, blob)
        if pending:
            report(reporter, "uploading", f"Uploading {len(pending)} new blobs...", 50)
            outcome = self._upload_pending(pending, reporter)
            if outcome.failed_batches:
                return self._fail(reporter, "File indexing failed")

        next_map = dict(store.file_map)
        next_map[relative] = next_digests
        self._store.save(IndexStore.from_file_map(next_map))
        report(reporter, "complete", "File index updated", 100)
        return IndexResult(status="success", message=f"Indexed file {relative}")

    def _remove_file(
        self, relative: str, reporter: ProgressReporter | None, reason: str
    ) -> IndexResult:
        store = self._store.load()
        if relative not in store.file_map:
            return IndexResult(status="success", message=reason)
        next_map = {path: digests for path, digests in store.file_map.items() if path != relative}
        self._store.save(IndexStore.from_file_map(next_map))
        report(reporter, "complete", reason, 100)
        return IndexResult(status="success", message=reason)

    def _upload_pending(
        self, pending: dict[str, Blob], reporter: ProgressReporter | None
    ) -> UploadOutcome:
        if not pending:
            return UploadOutcome(uploaded=(), failed_batches=(), total_batches=0)

        def on_batch(index: int, total: int) -> None:
            percent = 50 + int(40 * index / total)
            report(reporter, "uploading", f"Uploading batch {index + 1}/{total}...", percent)

        return upload_blobs(
            self._upload,
            pending,
            self._config.batch_size,
            on_batch=on_batch,
            max_attempts=self._max_attempts,
            base_delay=self._base_delay,
            sleep=self._sleep,
        )

    @staticmethod
    def _fail(reporter: ProgressReporter | None, message: str) -> IndexResult:
        report(reporter, "error", message, 100)
        return IndexResult(status="error", message=message)
