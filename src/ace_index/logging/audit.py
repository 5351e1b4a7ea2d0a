"""Append-only JSONL audit trail of tool requests."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path

from ace_index.index.store import ensure_data_dir

AUDIT_FILE_NAME = "audit.jsonl"

_VERBATIM_STRING_KEYS = frozenset({"path", "since", "name"})
_TEXT_KEYS = frozenset({"query", "prompt", "prefix", "suffix", "selected_code"})
_SECRET_KEYS = frozenset({"token", "authorization", "api_key"})


@dataclass(slots=True, frozen=True)
class AuditEvent:
    """Sanitized record of one tool request."""

    timestamp: str
    request_id: str
    tool: str
    ok: bool
    error_code: str | None
    duration_ms: int
    metadata: dict[str, object]


def utc_timestamp() -> str:
    """Return an ISO-8601 UTC timestamp with millisecond precision."""
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sanitize_arguments(arguments: dict[str, object]) -> dict[str, object]:
    """Reduce tool arguments to metadata that is safe to persist.

    Free text (queries, editor snippets) is recorded only as presence and
    length, and credential-like keys are dropped entirely.
    """
    sanitized: dict[str, object] = {}
    for key in sorted(arguments):
        value = arguments[key]
        if key.lower() in _SECRET_KEYS:
            continue
        if key in _VERBATIM_STRING_KEYS and isinstance(value, str):
            sanitized[key] = value
        elif key in _TEXT_KEYS and isinstance(value, str):
            sanitized[f"{key}_present"] = bool(value)
            sanitized[f"{key}_length"] = len(value)
        elif isinstance(value, (bool, int, float)) or value is None:
            sanitized[key] = value
        elif isinstance(value, str):
            sanitized[f"{key}_present"] = True
            sanitized[f"{key}_length"] = len(value)
        elif isinstance(value, list):
            sanitized[f"{key}_length"] = len(value)
        elif isinstance(value, dict):
            sanitized[f"{key}_keys"] = sorted(
                str(item) for item in value if str(item).lower() not in _SECRET_KEYS
            )
        else:
            sanitized[f"{key}_type"] = type(value).__name__
    return sanitized


class JsonlAuditLogger:
    """Appends audit events under the data directory and reads them back."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        """Return on-disk JSONL path."""
        return self._path

    def append(self, event: AuditEvent) -> None:
        """Append one event as a single JSON line."""
        ensure_data_dir(self._path.parent)
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(asdict(event), sort_keys=True))
            handle.write("\n")

    def read(self, since: str | None = None, limit: int = 50) -> list[dict[str, object]]:
        """Return the newest events at or after since, oldest first."""
        if limit < 1 or not self._path.exists():
            return []
        entries: list[dict[str, object]] = []
        with self._path.open("r", encoding="utf-8") as handle:
            for line in handle:
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    record = json.loads(stripped)
                except json.JSONDecodeError:
                    continue
                if not isinstance(record, dict):
                    continue
                if since is not None:
                    timestamp = record.get("timestamp")
                    if not isinstance(timestamp, str) or timestamp < since:
                        continue
                entries.append(record)
        return entries[-limit:]
