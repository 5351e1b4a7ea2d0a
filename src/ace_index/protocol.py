"""JSON-lines request parsing and response envelopes."""

from __future__ import annotations

from dataclasses import dataclass

LIST_TOOLS_METHOD = "tools/list"
CALL_TOOL_METHOD = "tools/call"
WARNINGS_KEY = "__warnings__"


@dataclass(slots=True, frozen=True)
class Request:
    """One parsed request line."""

    request_id: str
    method: str
    params: dict[str, object]


@dataclass(slots=True, frozen=True)
class RequestError(Exception):
    """A request that cannot be dispatched, with its envelope error code."""

    request_id: str
    code: str
    message: str


class RequestIdSequence:
    """Fallback ids for requests that carry no usable id."""

    def __init__(self) -> None:
        self._counter = 0

    def next(self) -> str:
        """Return the next id, e.g. ``req-000001``."""
        self._counter += 1
        return f"req-{self._counter:06d}"

    def coerce(self, value: object) -> str:
        """Use a client id when it is a non-empty string or an integer."""
        if isinstance(value, str) and value:
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return self.next()


def parse_request(payload: object, ids: RequestIdSequence) -> Request:
    """Validate a decoded line; raise RequestError when it is malformed."""
    if not isinstance(payload, dict):
        raise RequestError(ids.next(), "INVALID_REQUEST", "Request must be an object.")
    request_id = ids.coerce(payload.get("id"))
    method = payload.get("method")
    if not isinstance(method, str) or not method:
        raise RequestError(
            request_id, "INVALID_REQUEST", "Request method must be a non-empty string."
        )
    params = payload.get("params", {})
    if not isinstance(params, dict):
        raise RequestError(request_id, "INVALID_PARAMS", "Request params must be an object.")
    return Request(request_id=request_id, method=method, params=params)


def resolve_tool_call(request: Request) -> tuple[str, dict[str, object]]:
    """Return (tool name, arguments) for a tools/call or a direct tool method."""
    if request.method != CALL_TOOL_METHOD:
        return request.method, request.params
    name = request.params.get("name")
    if not isinstance(name, str) or not name:
        raise RequestError(
            request.request_id,
            "INVALID_PARAMS",
            "tools/call params.name must be a non-empty string.",
        )
    arguments = request.params.get("arguments", {})
    if not isinstance(arguments, dict):
        raise RequestError(
            request.request_id,
            "INVALID_PARAMS",
            "tools/call params.arguments must be an object.",
        )
    return name, arguments


def success_envelope(request_id: str, result: dict[str, object]) -> dict[str, object]:
    """Wrap a tool result, lifting any handler warnings into the envelope."""
    raw = result.pop(WARNINGS_KEY, None)
    warnings = [item for item in raw if isinstance(item, str)] if isinstance(raw, list) else []
    return {"request_id": request_id, "ok": True, "result": result, "warnings": warnings}


def error_envelope(
    request_id: str, code: str, message: str, hint: str | None = None
) -> dict[str, object]:
    """Build a failed response; ``hint`` is included only when given."""
    error: dict[str, object] = {"code": code, "message": message}
    if hint is not None:
        error["hint"] = hint
    return {"request_id": request_id, "ok": False, "result": {}, "warnings": [], "error": error}


def error_code_of(response: dict[str, object]) -> str | None:
    """Return the error code of an envelope, or None for a success."""
    error = response.get("error")
    if isinstance(error, dict) and isinstance(error.get("code"), str):
        return error["code"]
    return None
