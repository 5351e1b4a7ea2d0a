"""Built-in codebase.* tools."""

from __future__ import annotations

from collections.abc import Callable

from ace_index.index.models import IndexResult
from ace_index.protocol import WARNINGS_KEY
from ace_index.query import EditorContext
from ace_index.tools.registry import ToolDispatchError, ToolHandler, ToolRegistry

DEFAULT_AUDIT_LIMIT = 50
MAX_AUDIT_LIMIT = 200
BUSY_MESSAGE = "Another index run is in progress; request skipped."

_EDITOR_FIELDS = ("path", "prefix", "selected_code", "suffix", "language")


def register_builtin_tools(
    registry: ToolRegistry,
    read_status: Callable[[], dict[str, object]],
    run_project: Callable[[], IndexResult | None],
    run_file: Callable[[str], IndexResult | None],
    schedule_file: Callable[[str], None],
    search: Callable[[str], str],
    enhance_prompt: Callable[[str, EditorContext | None], str],
    read_audit_entries: Callable[[str | None, int], list[dict[str, object]]],
) -> None:
    """Register the codebase tool set."""
    registry.register(
        "codebase.status",
        lambda _: read_status(),
        "Report project root, index counts and effective configuration.",
    )
    registry.register(
        "codebase.index_project",
        _index_project_handler(run_project),
        "Reindex the whole project, uploading only new blobs.",
    )
    registry.register(
        "codebase.index_file",
        _index_file_handler(run_file, schedule_file),
        "Add, update or drop one file in the index.",
    )
    registry.register(
        "codebase.search",
        _search_handler(search),
        "Retrieve code context relevant to a natural-language query.",
    )
    registry.register(
        "codebase.enhance_prompt",
        _enhance_prompt_handler(enhance_prompt),
        "Rewrite a prompt into a clearer one using the indexed codebase.",
    )
    registry.register(
        "codebase.audit_log",
        _audit_log_handler(read_audit_entries),
        "Return recent sanitized request audit entries.",
    )


def _result_payload(result: IndexResult | None) -> dict[str, object]:
    if result is None:
        return {"status": "skipped", "message": BUSY_MESSAGE, WARNINGS_KEY: [BUSY_MESSAGE]}
    if result.status == "error":
        raise ToolDispatchError(code="INDEX_FAILED", message=result.message)
    payload = result.to_dict()
    if result.status == "partial_success":
        payload[WARNINGS_KEY] = ["Some batches failed to upload; the index is partial."]
    return payload


def _require_string(arguments: dict[str, object], key: str, tool: str) -> str:
    value = arguments.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ToolDispatchError(
            code="INVALID_PARAMS",
            message=f"{tool} {key} must be a non-empty string.",
        )
    return value


def _index_project_handler(run_project: Callable[[], IndexResult | None]) -> ToolHandler:
    def handler(_: dict[str, object]) -> dict[str, object]:
        return _result_payload(run_project())

    return handler


def _index_file_handler(
    run_file: Callable[[str], IndexResult | None],
    schedule_file: Callable[[str], None],
) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        path = _require_string(arguments, "path", "codebase.index_file")
        debounce = arguments.get("debounce", False)
        if not isinstance(debounce, bool):
            raise ToolDispatchError(
                code="INVALID_PARAMS",
                message="codebase.index_file debounce must be a boolean.",
            )
        if debounce:
            schedule_file(path)
            return {"status": "scheduled", "message": f"Index of {path} scheduled"}
        return _result_payload(run_file(path))

    return handler


def _search_handler(search: Callable[[str], str]) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        query = _require_string(arguments, "query", "codebase.search")
        return {"text": search(query)}

    return handler


def _enhance_prompt_handler(
    enhance_prompt: Callable[[str, EditorContext | None], str],
) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        query = _require_string(arguments, "query", "codebase.enhance_prompt")
        editor_value = arguments.get("editor")
        editor: EditorContext | None = None
        if editor_value is not None:
            if not isinstance(editor_value, dict):
                raise ToolDispatchError(
                    code="INVALID_PARAMS",
                    message="codebase.enhance_prompt editor must be an object.",
                )
            fields: dict[str, str | None] = {}
            for name in _EDITOR_FIELDS:
                field_value = editor_value.get(name)
                if field_value is not None and not isinstance(field_value, str):
                    raise ToolDispatchError(
                        code="INVALID_PARAMS",
                        message=f"codebase.enhance_prompt editor.{name} must be a string.",
                    )
                fields[name] = field_value
            editor = EditorContext(**fields)
        return {"prompt": enhance_prompt(query, editor)}

    return handler


def _audit_log_handler(
    read_audit_entries: Callable[[str | None, int], list[dict[str, object]]],
) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        since_value = arguments.get("since")
        limit_value = arguments.get("limit", DEFAULT_AUDIT_LIMIT)

        since = since_value if isinstance(since_value, str) else None
        limit = limit_value if isinstance(limit_value, int) else DEFAULT_AUDIT_LIMIT
        limit = max(1, min(limit, MAX_AUDIT_LIMIT))
        return {"entries": read_audit_entries(since, limit)}

    return handler
