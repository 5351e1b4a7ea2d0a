"""Deterministic project walk producing blobs from text files."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path

from ace_index.config import IndexConfig
from ace_index.index.ignore import IgnoreFilter
from ace_index.index.models import Blob
from ace_index.index.splitting import split_content
from ace_index.security import project_relative_path

logger = logging.getLogger(__name__)

CANDIDATE_ENCODINGS = ("utf-8", "gbk", "gb2312", "latin-1")
REPLACEMENT_CHAR = "\ufffd"
SHORT_CONTENT_LENGTH = 100
SHORT_CONTENT_MAX_REPLACEMENTS = 5
MAX_REPLACEMENT_RATIO = 0.05


@dataclass(slots=True, frozen=True)
class CollectionProfile:
    """Deterministic counters for one collection pass."""

    total_candidates: int
    excluded_by_rules: int
    excluded_by_extension: int
    outside_root: int
    unreadable: int
    collected_files: int
    blob_count: int
    total_seconds: float


@dataclass(slots=True, frozen=True)
class _CandidateFile:
    relative_path: str
    full_path: Path


def is_acceptable_decoding(text: str) -> bool:
    """Return True when the replacement-character density is tolerable."""
    if not text:
        return True
    replacements = text.count(REPLACEMENT_CHAR)
    if len(text) < SHORT_CONTENT_LENGTH:
        return replacements <= SHORT_CONTENT_MAX_REPLACEMENTS
    return replacements / len(text) <= MAX_REPLACEMENT_RATIO


def decode_with_fallback(data: bytes) -> str:
    """Decode bytes with the first candidate encoding that decodes cleanly enough."""
    for encoding in CANDIDATE_ENCODINGS:
        try:
            text = data.decode(encoding, errors="replace")
        except LookupError:
            continue
        if is_acceptable_decoding(text):
            return text
    return data.decode("utf-8", errors="replace")


def read_text_with_fallback(path: Path) -> str:
    """Read a file and decode it with multi-encoding recovery."""
    return decode_with_fallback(path.read_bytes())


def has_allowed_extension(relative_path: str, text_extensions: tuple[str, ...]) -> bool:
    """Return True when the lower-cased file extension is allowed."""
    suffix = Path(relative_path).suffix.lower()
    return suffix in text_extensions


def collect_blobs(
    project_root: Path,
    config: IndexConfig,
    ignore_filter: IgnoreFilter | None = None,
    profile: dict[str, object] | None = None,
) -> list[Blob]:
    """Walk the project and split every indexable text file into blobs."""
    started = time.perf_counter()
    root = project_root.resolve()
    rules = ignore_filter or IgnoreFilter(root, config.exclude_patterns)
    counters = {
        "total_candidates": 0,
        "excluded_by_rules": 0,
        "excluded_by_extension": 0,
        "outside_root": 0,
    }
    candidates = _discover_candidates(root, config, rules, counters)
    candidates.sort(key=lambda item: item.relative_path)

    blobs: list[Blob] = []
    unreadable = 0
    collected_files = 0
    for candidate in candidates:
        try:
            content = read_text_with_fallback(candidate.full_path)
        except OSError as error:
            logger.debug("Skipping unreadable file %s: %s", candidate.relative_path, error)
            unreadable += 1
            continue
        blobs.extend(split_content(candidate.relative_path, content, config.max_lines_per_blob))
        collected_files += 1

    if profile is not None:
        payload = CollectionProfile(
            total_candidates=counters["total_candidates"],
            excluded_by_rules=counters["excluded_by_rules"],
            excluded_by_extension=counters["excluded_by_extension"],
            outside_root=counters["outside_root"],
            unreadable=unreadable,
            collected_files=collected_files,
            blob_count=len(blobs),
            total_seconds=time.perf_counter() - started,
        )
        profile.update(asdict(payload))
    return blobs


def _discover_candidates(
    root: Path,
    config: IndexConfig,
    rules: IgnoreFilter,
    counters: dict[str, int],
) -> list[_CandidateFile]:
    """Walk tree deterministically, pruning excluded directories."""
    candidates: list[_CandidateFile] = []
    stack: list[Path] = [root]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as entries:
                ordered_entries = sorted(entries, key=lambda item: item.name)
        except OSError as error:
            logger.debug("Skipping unreadable directory %s: %s", current, error)
            continue
        for entry in reversed(ordered_entries):
            full_path = Path(entry.path)
            relative = full_path.relative_to(root).as_posix()
            try:
                if entry.is_dir(follow_symlinks=False):
                    if not rules.is_relative_excluded(relative, is_dir=True):
                        stack.append(full_path)
                    continue
                if not entry.is_file():
                    continue
            except OSError:
                continue
            counters["total_candidates"] += 1
            if rules.is_relative_excluded(relative):
                counters["excluded_by_rules"] += 1
                continue
            if not has_allowed_extension(relative, config.text_extensions):
                counters["excluded_by_extension"] += 1
                continue
            if entry.is_symlink() and project_relative_path(root, full_path) is None:
                counters["outside_root"] += 1
                continue
            candidates.append(_CandidateFile(relative_path=relative, full_path=full_path))
    return candidates
