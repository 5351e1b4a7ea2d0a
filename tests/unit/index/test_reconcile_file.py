from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from ace_index.config import IndexConfig
from ace_index.index import reconciler as reconciler_module
from ace_index.index.hashing import blob_digest
from ace_index.index.models import Blob
from ace_index.index.reconciler import IndexReconciler
from ace_index.index.store import IndexStoreRepository, collect_blob_names


class RecordingUploader:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.paths: list[str] = []

    def __call__(self, blobs: Sequence[Blob]) -> list[str]:
        self.paths.extend(blob.path for blob in blobs)
        if self.fail:
            raise RuntimeError("upload refused")
        return [blob_digest(blob.path, blob.content) for blob in blobs]


def _write(root: Path, relative: str, content: str) -> None:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _indexed_project(
    root: Path, uploader: RecordingUploader, max_lines: int = 800
) -> tuple[IndexReconciler, IndexStoreRepository]:
    _write(root, "a.py", "a = 1\n")
    _write(root, "src/b.py", "b = 1\n")
    repository = IndexStoreRepository(root / ".ace-tool" / "index.json")
    reconciler = IndexReconciler(
        project_root=root,
        config=IndexConfig(max_lines_per_blob=max_lines),
        store=repository,
        upload=uploader,
        sleep=lambda _: None,
    )
    reconciler.index_project()
    uploader.paths.clear()
    return reconciler, repository


def test_new_file_is_added_without_touching_others(tmp_path: Path) -> None:
    uploader = RecordingUploader()
    reconciler, repository = _indexed_project(tmp_path, uploader)
    before = repository.load()
    _write(tmp_path, "src/c.py", "c = 1\n")

    result = reconciler.index_file("src/c.py")

    assert result.status == "success"
    assert result.message == "Indexed file src/c.py"
    assert uploader.paths == ["src/c.py"]
    store = repository.load()
    assert store.file_map["a.py"] == before.file_map["a.py"]
    assert store.file_map["src/b.py"] == before.file_map["src/b.py"]
    assert store.file_map["src/c.py"] == (blob_digest("src/c.py", "c = 1\n"),)


def test_unchanged_file_reports_no_changes(tmp_path: Path) -> None:
    uploader = RecordingUploader()
    reconciler, repository = _indexed_project(tmp_path, uploader)
    before = repository.path.read_bytes()

    result = reconciler.index_file("a.py")

    assert result.status == "success"
    assert result.message == "No changes detected"
    assert uploader.paths == []
    assert repository.path.read_bytes() == before


def test_modified_file_replaces_its_digests(tmp_path: Path) -> None:
    uploader = RecordingUploader()
    reconciler, repository = _indexed_project(tmp_path, uploader)
    old_digest = blob_digest("a.py", "a = 1\n")
    _write(tmp_path, "a.py", "a = 2\n")

    reconciler.index_file(tmp_path / "a.py")

    store = repository.load()
    assert store.file_map["a.py"] == (blob_digest("a.py", "a = 2\n"),)
    assert old_digest not in store.blob_names
    assert store.blob_names == collect_blob_names(store.file_map)


def test_file_growing_into_chunks_uploads_all_chunks(tmp_path: Path) -> None:
    uploader = RecordingUploader()
    reconciler, repository = _indexed_project(tmp_path, uploader, max_lines=5)
    _write(tmp_path, "a.py", "".join(f"a{n} = {n}\n" for n in range(12)))

    reconciler.index_file("a.py")

    assert uploader.paths == ["a.py#chunk1of3", "a.py#chunk2of3", "a.py#chunk3of3"]
    assert len(repository.load().file_map["a.py"]) == 3


def test_failed_upload_leaves_store_untouched(tmp_path: Path) -> None:
    uploader = RecordingUploader()
    reconciler, repository = _indexed_project(tmp_path, uploader)
    before = repository.path.read_bytes()
    _write(tmp_path, "a.py", "a = 'new'\n")
    uploader.fail = True

    result = reconciler.index_file("a.py")

    assert result.status == "error"
    assert result.message == "File indexing failed"
    assert repository.path.read_bytes() == before


def test_deleted_file_is_removed(tmp_path: Path) -> None:
    uploader = RecordingUploader()
    reconciler, repository = _indexed_project(tmp_path, uploader)
    (tmp_path / "src" / "b.py").unlink()

    result = reconciler.index_file("src/b.py")

    assert result.status == "success"
    assert result.message == "File not found"
    store = repository.load()
    assert list(store.file_map) == ["a.py"]
    assert blob_digest("src/b.py", "b = 1\n") not in store.blob_names


def test_newly_excluded_file_is_removed(tmp_path: Path) -> None:
    uploader = RecordingUploader()
    reconciler, repository = _indexed_project(tmp_path, uploader)
    _write(tmp_path, ".gitignore", "src/\n")

    result = reconciler.index_file("src/b.py")

    assert result.message == "File excluded from index"
    assert uploader.paths == []
    assert "src/b.py" not in repository.load().file_map


def test_unindexed_extension_is_treated_as_removal(tmp_path: Path) -> None:
    uploader = RecordingUploader()
    reconciler, repository = _indexed_project(tmp_path, uploader)
    before = repository.path.read_bytes()
    _write(tmp_path, "photo.png", "pixels")

    result = reconciler.index_file("photo.png")

    assert result.status == "success"
    assert result.message == "File extension not indexed"
    assert repository.path.read_bytes() == before


def test_path_outside_root_is_skipped(tmp_path: Path) -> None:
    root = tmp_path / "project"
    root.mkdir()
    uploader = RecordingUploader()
    reconciler, repository = _indexed_project(root, uploader)
    _write(tmp_path, "outside.py", "x = 1\n")

    for candidate in (tmp_path / "outside.py", "../outside.py"):
        result = reconciler.index_file(candidate)
        assert result.status == "skipped"
        assert result.message == "File is outside project root"
    assert uploader.paths == []
    assert "outside.py" not in repository.load().file_map


def test_windows_style_relative_path_is_normalized(tmp_path: Path) -> None:
    uploader = RecordingUploader()
    reconciler, repository = _indexed_project(tmp_path, uploader)
    _write(tmp_path, "src/b.py", "b = 2\n")

    result = reconciler.index_file("src\\b.py")

    assert result.message == "Indexed file src/b.py"
    assert repository.load().file_map["src/b.py"] == (blob_digest("src/b.py", "b = 2\n"),)


def test_read_failure_returns_error_and_keeps_store(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    uploader = RecordingUploader()
    reconciler, repository = _indexed_project(tmp_path, uploader)
    before = repository.path.read_bytes()
    _write(tmp_path, "a.py", "a = 2\n")

    def unreadable(path: Path) -> str:
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(reconciler_module, "read_text_with_fallback", unreadable)

    result = reconciler.index_file("a.py")

    assert result.status == "error"
    assert result.message == "Failed to read file a.py"
    assert uploader.paths == []
    assert repository.path.read_bytes() == before
