"""Path resolution helpers for project-scoped access."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Final

WINDOWS_ABSOLUTE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z]:[\\/]")


def _normalize_input(candidate: str) -> tuple[str, bool]:
    """Normalize path separators and detect absolute-style inputs."""
    normalized = candidate.replace("\\", "/")
    if normalized.startswith("/"):
        return normalized, True
    if WINDOWS_ABSOLUTE_PATTERN.match(normalized):
        return normalized, True
    return normalized, False


def resolve_project_path(project_root: Path, candidate: str | Path) -> Path:
    """Turn a relative or absolute candidate into an absolute path.

    The result is not checked for containment; use project_relative_path for that.
    """
    if isinstance(candidate, Path):
        if candidate.is_absolute():
            return candidate
        return project_root / candidate
    normalized, is_absolute_style = _normalize_input(candidate)
    if is_absolute_style:
        return Path(normalized)
    parts = [part for part in normalized.split("/") if part not in ("", ".")]
    return project_root.joinpath(*parts)


def project_relative_path(project_root: Path, path: Path) -> str | None:
    """Return the forward-slash relative path, or None when path escapes the root.

    The final component keeps its own name so a symlinked file is indexed under
    the link's path, but the link target must still live under the root.
    """
    root = project_root.resolve()
    absolute = path if path.is_absolute() else root / path
    if absolute.name in ("", ".", ".."):
        logical = absolute.resolve(strict=False)
    else:
        logical = absolute.parent.resolve(strict=False) / absolute.name
    if not logical.is_relative_to(root) or logical == root:
        return None
    if not absolute.resolve(strict=False).is_relative_to(root):
        return None
    return logical.relative_to(root).as_posix()
