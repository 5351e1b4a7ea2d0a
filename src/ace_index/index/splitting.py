"""Deterministic line-accurate splitting of file content into blobs."""

from __future__ import annotations

import math

from ace_index.config import DEFAULT_MAX_LINES_PER_BLOB
from ace_index.index.models import Blob


def split_lines(content: str) -> list[str]:
    """Split on \\n, \\r\\n or a lone \\r, keeping every terminator verbatim."""
    lines: list[str] = []
    start = 0
    index = 0
    length = len(content)
    while index < length:
        char = content[index]
        if char == "\n":
            lines.append(content[start : index + 1])
            start = index + 1
        elif char == "\r":
            if index + 1 < length and content[index + 1] == "\n":
                index += 1
            lines.append(content[start : index + 1])
            start = index + 1
        index += 1
    if start < length:
        lines.append(content[start:])
    return lines


def split_content(
    path: str,
    content: str,
    max_lines: int = DEFAULT_MAX_LINES_PER_BLOB,
) -> list[Blob]:
    """Partition content into contiguous blobs of at most max_lines lines."""
    if max_lines < 1:
        raise ValueError("max_lines must be >= 1")

    lines = split_lines(content)
    total_lines = len(lines)
    if total_lines <= max_lines:
        return [Blob(path=path, content=content, source_path=path)]

    chunk_count = math.ceil(total_lines / max_lines)
    blobs: list[Blob] = []
    for chunk_index in range(chunk_count):
        start_line = chunk_index * max_lines
        end_line = min(start_line + max_lines, total_lines)
        blobs.append(
            Blob(
                path=chunk_path(path, chunk_index + 1, chunk_count),
                content="".join(lines[start_line:end_line]),
                source_path=path,
            )
        )
    return blobs


def chunk_path(path: str, number: int, total: int) -> str:
    """Build the logical path of a 1-indexed chunk."""
    return f"{path}#chunk{number}of{total}"
