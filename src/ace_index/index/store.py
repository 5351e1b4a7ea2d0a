"""Durable project-scoped ledger of indexed files and known blob digests."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from ace_index.config import DATA_DIR_NAME

logger = logging.getLogger(__name__)

INDEX_STORE_VERSION = 1


class IndexStoreWriteError(Exception):
    """Raised when the index document cannot be written."""

    def __init__(self, path: Path, cause: OSError) -> None:
        super().__init__(f"Failed to save index to {path}: {cause}")
        self.path = path
        self.cause = cause


@dataclass(slots=True, frozen=True)
class IndexStore:
    """Snapshot of the index: file -> ordered digests, plus all known digests."""

    version: int = INDEX_STORE_VERSION
    blob_names: frozenset[str] = frozenset()
    file_map: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def from_file_map(cls, file_map: Mapping[str, Iterable[str]]) -> IndexStore:
        """Build a store whose blob_names is exactly the union of file_map."""
        normalized = {path: tuple(digests) for path, digests in file_map.items()}
        return cls(
            version=INDEX_STORE_VERSION,
            blob_names=collect_blob_names(normalized),
            file_map=normalized,
        )

    @property
    def is_empty(self) -> bool:
        """Return True when no digests are known."""
        return not self.blob_names

    def to_payload(self) -> dict[str, object]:
        """Return the persisted JSON shape."""
        return {
            "version": self.version,
            "blob_names": sorted(self.blob_names),
            "file_map": {path: list(digests) for path, digests in self.file_map.items()},
        }


def collect_blob_names(file_map: Mapping[str, Iterable[str]]) -> frozenset[str]:
    """Return the union of every digest list in file_map."""
    names: set[str] = set()
    for digests in file_map.values():
        names.update(digests)
    return frozenset(names)


class IndexStoreRepository:
    """Loads and atomically rewrites the single index document."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        """Return on-disk index document path."""
        return self._path

    def load(self) -> IndexStore:
        """Return the stored index, or an empty one when absent or malformed."""
        if not self._path.exists():
            return IndexStore()
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as error:
            logger.error("Failed to load index %s: %s", self._path, error)
            return IndexStore()
        return parse_index_payload(payload)

    def save(self, store: IndexStore) -> None:
        """Atomically overwrite the index document; failures always propagate."""
        try:
            ensure_data_dir(self._path.parent)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            with tmp.open("w", encoding="utf-8") as handle:
                json.dump(store.to_payload(), handle, indent=2, sort_keys=True)
                handle.write("\n")
            os.replace(tmp, self._path)
        except OSError as error:
            logger.error("Failed to save index %s: %s", self._path, error)
            raise IndexStoreWriteError(self._path, error) from error


def parse_index_payload(payload: object) -> IndexStore:
    """Interpret a decoded index document, accepting the legacy bare array."""
    if isinstance(payload, list):
        return IndexStore(blob_names=frozenset(_strings(payload)), file_map={})
    if not isinstance(payload, dict):
        logger.warning("Index document has unexpected shape; starting from an empty index.")
        return IndexStore()
    raw_names = payload.get("blob_names")
    if not isinstance(raw_names, list):
        logger.warning("Index document has no blob_names list; starting from an empty index.")
        return IndexStore()
    version = payload.get("version", INDEX_STORE_VERSION)
    if isinstance(version, int) and version != INDEX_STORE_VERSION:
        logger.warning(
            "Index document version %s is unsupported (expected %s); "
            "starting from an empty index.",
            version,
            INDEX_STORE_VERSION,
        )
        return IndexStore()

    file_map: dict[str, tuple[str, ...]] = {}
    raw_file_map = payload.get("file_map")
    if isinstance(raw_file_map, dict):
        for path, digests in raw_file_map.items():
            if not isinstance(path, str) or not isinstance(digests, list):
                continue
            file_map[path] = tuple(_strings(digests))
    return IndexStore(
        version=INDEX_STORE_VERSION,
        blob_names=frozenset(_strings(raw_names)),
        file_map=file_map,
    )


def ensure_data_dir(data_dir: Path) -> None:
    """Create the data directory and list it in the project .gitignore once."""
    if data_dir.is_dir():
        return
    data_dir.mkdir(parents=True, exist_ok=True)
    if data_dir.name == DATA_DIR_NAME:
        _add_to_gitignore(data_dir.parent)


def _add_to_gitignore(project_root: Path) -> None:
    ignore_path = project_root / ".gitignore"
    content = ""
    try:
        if ignore_path.exists():
            content = ignore_path.read_text(encoding="utf-8")
            if DATA_DIR_NAME in content:
                return
        separator = "" if content == "" or content.endswith("\n") else "\n"
        ignore_path.write_text(f"{content}{separator}{DATA_DIR_NAME}/\n", encoding="utf-8")
    except (OSError, UnicodeDecodeError) as error:
        logger.warning("Could not add %s to %s: %s", DATA_DIR_NAME, ignore_path, error)


def _strings(values: list[object]) -> list[str]:
    return [value for value in values if isinstance(value, str)]
