"""Ignore-file and exclude-pattern filtering."""

from __future__ import annotations

import logging
import re
from pathlib import Path

import pathspec

from ace_index.config import CONFIG_FILE_NAME, DATA_DIR_NAME

logger = logging.getLogger(__name__)

IGNORE_FILE_NAME = ".gitignore"


def compile_exclude_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a glob where * is any run and ? one character, fully anchored."""
    parts: list[str] = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def load_ignore_spec(project_root: Path) -> pathspec.GitIgnoreSpec | None:
    """Load .gitignore rules from the project root, if present."""
    ignore_path = project_root / IGNORE_FILE_NAME
    if not ignore_path.is_file():
        return None
    try:
        lines = ignore_path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as error:
        logger.warning("Could not read %s: %s", ignore_path, error)
        return None
    return pathspec.GitIgnoreSpec.from_lines(lines)


class IgnoreFilter:
    """Decides whether a project path is excluded from indexing.

    Rules are loaded once at construction; build a new filter per collection
    pass to pick up edits to the ignore file.
    """

    def __init__(self, project_root: Path, exclude_patterns: tuple[str, ...]) -> None:
        self._project_root = project_root.resolve()
        self._ignore_spec = load_ignore_spec(self._project_root)
        self._exclude_patterns = tuple(
            compile_exclude_pattern(pattern) for pattern in exclude_patterns
        )

    @property
    def has_ignore_file(self) -> bool:
        """Return True when ignore-file rules are active."""
        return self._ignore_spec is not None

    def is_excluded(self, path: Path, is_dir: bool | None = None) -> bool:
        """Return True when an absolute path is excluded by any rule."""
        try:
            relative = path.relative_to(self._project_root).as_posix()
        except ValueError:
            return False
        if relative == ".":
            return False
        if is_dir is None:
            is_dir = path.is_dir()
        return self.is_relative_excluded(relative, is_dir=is_dir)

    def is_relative_excluded(self, relative: str, is_dir: bool = False) -> bool:
        """Return True when a forward-slash relative path is excluded."""
        parts = relative.split("/")
        if parts[0] == DATA_DIR_NAME or relative == CONFIG_FILE_NAME:
            return True
        if self._ignore_spec is not None:
            candidate = f"{relative}/" if is_dir else relative
            if self._ignore_spec.match_file(candidate):
                return True
        for pattern in self._exclude_patterns:
            if pattern.fullmatch(relative):
                return True
            if any(pattern.fullmatch(part) for part in parts):
                return True
        return False
