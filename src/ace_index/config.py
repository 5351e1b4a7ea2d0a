"""Configuration loading and deterministic merge order."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit

DATA_DIR_NAME = ".ace-tool"
CONFIG_FILE_NAME = "ace_index.toml"

MAX_BATCH_SIZE_CAP = 1_000
MAX_LINES_PER_BLOB_CAP = 100_000
MAX_TIMEOUT_SECONDS_CAP = 600

DEFAULT_BATCH_SIZE = 10
DEFAULT_MAX_LINES_PER_BLOB = 800
DEFAULT_TIMEOUT_SECONDS = 30

DEFAULT_TEXT_EXTENSIONS = (
    ".c",
    ".cc",
    ".cfg",
    ".cpp",
    ".cs",
    ".css",
    ".go",
    ".h",
    ".hpp",
    ".html",
    ".ini",
    ".java",
    ".js",
    ".json",
    ".jsx",
    ".kt",
    ".md",
    ".php",
    ".py",
    ".rb",
    ".rs",
    ".rst",
    ".scss",
    ".sh",
    ".sql",
    ".swift",
    ".toml",
    ".ts",
    ".tsx",
    ".txt",
    ".vue",
    ".xml",
    ".yaml",
    ".yml",
)
DEFAULT_EXCLUDE_PATTERNS = (
    ".git",
    ".venv",
    "venv",
    "__pycache__",
    "node_modules",
    "dist",
    "build",
    DATA_DIR_NAME,
)


@dataclass(slots=True, frozen=True)
class RemoteConfig:
    """Remote service endpoint and credential."""

    base_url: str
    token: str
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS


@dataclass(slots=True, frozen=True)
class IndexConfig:
    """Deterministic indexing settings."""

    text_extensions: tuple[str, ...] = DEFAULT_TEXT_EXTENSIONS
    exclude_patterns: tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    batch_size: int = DEFAULT_BATCH_SIZE
    max_lines_per_blob: int = DEFAULT_MAX_LINES_PER_BLOB


@dataclass(slots=True, frozen=True)
class QueryConfig:
    """Retrieval and prompt enhancement settings."""

    user_guidelines: str = ""


@dataclass(slots=True, frozen=True)
class EngineConfig:
    """Fully merged engine configuration."""

    project_root: Path
    remote: RemoteConfig
    index: IndexConfig
    query: QueryConfig

    @property
    def data_dir(self) -> Path:
        """Return the engine's hidden state directory."""
        return self.project_root / DATA_DIR_NAME

    @property
    def index_path(self) -> Path:
        """Return the persisted index document path."""
        return self.data_dir / "index.json"

    def to_public_dict(self) -> dict[str, object]:
        """Return serializable config snapshot without the credential."""
        return {
            "project_root": str(self.project_root),
            "data_dir": str(self.data_dir),
            "remote": {
                "base_url": self.remote.base_url,
                "token_present": bool(self.remote.token),
                "timeout_seconds": self.remote.timeout_seconds,
            },
            "index": {
                "text_extensions": list(self.index.text_extensions),
                "exclude_patterns": list(self.index.exclude_patterns),
                "batch_size": self.index.batch_size,
                "max_lines_per_blob": self.index.max_lines_per_blob,
            },
            "query": {
                "user_guidelines_present": bool(self.query.user_guidelines),
            },
        }


@dataclass(slots=True, frozen=True)
class CliOverrides:
    """Optional startup overrides applied at highest precedence."""

    base_url: str | None = None
    token: str | None = None
    timeout_seconds: int | None = None
    batch_size: int | None = None
    max_lines_per_blob: int | None = None
    user_guidelines: str | None = None


def detect_project_root(start: Path) -> Path:
    """Walk upwards for a .ace-tool directory, then a .git entry."""
    resolved = start.resolve()
    for candidate in (resolved, *resolved.parents):
        if (candidate / DATA_DIR_NAME).is_dir():
            return candidate
        if (candidate / ".git").exists():
            return candidate
    return resolved


def normalize_base_url(value: str) -> str:
    """Add a default scheme, drop the trailing slash and validate the URL."""
    candidate = value.strip()
    if not candidate:
        raise ValueError("Config field 'remote.base_url' must be a non-empty string.")
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    candidate = candidate.rstrip("/")
    parts = urlsplit(candidate)
    if parts.scheme not in {"http", "https"} or not parts.hostname:
        raise ValueError(
            "Config field 'remote.base_url' must be a full URL such as https://api.example.com."
        )
    return candidate


def normalize_extensions(values: tuple[str, ...]) -> tuple[str, ...]:
    """Lower-case extensions and make sure each starts with a dot."""
    output: list[str] = []
    for value in values:
        stripped = value.strip().lower()
        if not stripped:
            continue
        if not stripped.startswith("."):
            stripped = f".{stripped}"
        if stripped not in output:
            output.append(stripped)
    return tuple(output)


def load_project_config_file(project_root: Path) -> dict[str, object]:
    """Load optional ace_index.toml from the project root."""
    config_path = project_root / CONFIG_FILE_NAME
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"{CONFIG_FILE_NAME} must contain a top-level table.")
    return payload


def _get_table(payload: dict[str, object], key: str) -> dict[str, object]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{key}' must be a table.")
    return value


def _tuple_of_strings(value: object, section: str, field: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Config field '{section}.{field}' must be a list of strings.")
    output: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"Config field '{section}.{field}' must contain only strings.")
        stripped = item.strip()
        if stripped:
            output.append(stripped)
    return tuple(output)


def _optional_str(value: object, name: str, default: str) -> str:
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValueError(f"Config field '{name}' must be a string.")
    return value.strip()


def _optional_positive_int_with_cap(
    value: object,
    name: str,
    default: int,
    cap: int | None,
) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"Config field '{name}' must be a positive integer.")
    if cap is not None and value > cap:
        raise ValueError(f"Config field '{name}' must be <= {cap}.")
    return value


def merge_config(
    project_root: Path, payload: dict[str, object], overrides: CliOverrides
) -> EngineConfig:
    """Merge defaults, project config file, then startup overrides."""
    remote_payload = _get_table(payload, "remote")
    index_payload = _get_table(payload, "index")
    query_payload = _get_table(payload, "query")

    base_url = _optional_str(remote_payload.get("base_url"), "remote.base_url", "")
    token = _optional_str(remote_payload.get("token"), "remote.token", "")
    timeout_seconds = _optional_positive_int_with_cap(
        remote_payload.get("timeout_seconds"),
        "remote.timeout_seconds",
        DEFAULT_TIMEOUT_SECONDS,
        MAX_TIMEOUT_SECONDS_CAP,
    )

    text_extensions = DEFAULT_TEXT_EXTENSIONS
    if "text_extensions" in index_payload:
        text_extensions = _tuple_of_strings(
            index_payload["text_extensions"], "index", "text_extensions"
        )
    exclude_patterns = DEFAULT_EXCLUDE_PATTERNS
    if "exclude_patterns" in index_payload:
        exclude_patterns = _tuple_of_strings(
            index_payload["exclude_patterns"], "index", "exclude_patterns"
        )
    batch_size = _optional_positive_int_with_cap(
        index_payload.get("batch_size"), "index.batch_size", DEFAULT_BATCH_SIZE, MAX_BATCH_SIZE_CAP
    )
    max_lines_per_blob = _optional_positive_int_with_cap(
        index_payload.get("max_lines_per_blob"),
        "index.max_lines_per_blob",
        DEFAULT_MAX_LINES_PER_BLOB,
        MAX_LINES_PER_BLOB_CAP,
    )
    user_guidelines = _optional_str(
        query_payload.get("user_guidelines"), "query.user_guidelines", ""
    )

    merged = EngineConfig(
        project_root=project_root,
        remote=RemoteConfig(base_url=base_url, token=token, timeout_seconds=timeout_seconds),
        index=IndexConfig(
            text_extensions=normalize_extensions(text_extensions),
            exclude_patterns=exclude_patterns,
            batch_size=batch_size,
            max_lines_per_blob=max_lines_per_blob,
        ),
        query=QueryConfig(user_guidelines=user_guidelines),
    )
    return apply_cli_overrides(merged, overrides)


def apply_cli_overrides(config: EngineConfig, overrides: CliOverrides) -> EngineConfig:
    """Apply startup overrides at highest precedence and validate the remote."""
    base_url = _optional_str(overrides.base_url, "overrides.base_url", config.remote.base_url)
    token = _optional_str(overrides.token, "overrides.token", config.remote.token)
    if not token:
        raise ValueError("Config field 'remote.token' must be a non-empty string.")
    timeout_seconds = _optional_positive_int_with_cap(
        overrides.timeout_seconds,
        "overrides.timeout_seconds",
        config.remote.timeout_seconds,
        MAX_TIMEOUT_SECONDS_CAP,
    )
    batch_size = _optional_positive_int_with_cap(
        overrides.batch_size, "overrides.batch_size", config.index.batch_size, MAX_BATCH_SIZE_CAP
    )
    max_lines_per_blob = _optional_positive_int_with_cap(
        overrides.max_lines_per_blob,
        "overrides.max_lines_per_blob",
        config.index.max_lines_per_blob,
        MAX_LINES_PER_BLOB_CAP,
    )
    user_guidelines = _optional_str(
        overrides.user_guidelines, "overrides.user_guidelines", config.query.user_guidelines
    )
    return EngineConfig(
        project_root=config.project_root,
        remote=RemoteConfig(
            base_url=normalize_base_url(base_url),
            token=token,
            timeout_seconds=timeout_seconds,
        ),
        index=IndexConfig(
            text_extensions=config.index.text_extensions,
            exclude_patterns=config.index.exclude_patterns,
            batch_size=batch_size,
            max_lines_per_blob=max_lines_per_blob,
        ),
        query=QueryConfig(user_guidelines=user_guidelines),
    )


def load_effective_config(
    project_root: Path, overrides: CliOverrides | None = None
) -> EngineConfig:
    """Load effective config using merge order defaults -> project file -> overrides."""
    resolved_root = project_root.resolve()
    payload = load_project_config_file(resolved_root)
    return merge_config(resolved_root, payload, overrides or CliOverrides())
