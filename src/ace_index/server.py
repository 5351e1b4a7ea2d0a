"""JSON-lines STDIO server exposing the indexing engine as tools."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import TextIO

import httpx

from ace_index.config import CliOverrides, EngineConfig, detect_project_root, load_effective_config
from ace_index.index import IndexReconciler, IndexStoreRepository, IndexStoreWriteError
from ace_index.logging import (
    AUDIT_FILE_NAME,
    AuditEvent,
    JsonlAuditLogger,
    sanitize_arguments,
    utc_timestamp,
)
from ace_index.protocol import (
    LIST_TOOLS_METHOD,
    RequestError,
    RequestIdSequence,
    error_code_of,
    error_envelope,
    parse_request,
    resolve_tool_call,
    success_envelope,
)
from ace_index.query import EditorContext, IndexBootstrapError, QueryService
from ace_index.remote import (
    PromptExtractionError,
    RemoteClient,
    RemoteServiceError,
    UnexpectedResponseError,
)
from ace_index.scheduler import IndexScheduler, TimerFactory
from ace_index.tools.builtin import register_builtin_tools
from ace_index.tools.registry import ToolDispatchError, ToolRegistry

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "ACE_INDEX_TOKEN"
WRITE_FAILED_HINT = "Check that the project directory is writable."


def build_arg_parser() -> argparse.ArgumentParser:
    """Command-line flags; each one overrides the matching ace_index.toml field."""
    parser = argparse.ArgumentParser(
        prog="ace-index",
        description="Serve the codebase index over JSON lines on stdin/stdout.",
    )
    parser.add_argument("--project-root", default=".")
    parser.add_argument("--base-url")
    parser.add_argument("--token", help=f"Remote token; defaults to ${TOKEN_ENV_VAR}.")
    parser.add_argument("--timeout-seconds", type=int)
    parser.add_argument("--batch-size", type=int)
    parser.add_argument("--max-lines-per-blob", type=int)
    parser.add_argument("--user-guidelines")
    parser.add_argument(
        "--log-level", choices=("DEBUG", "INFO", "WARNING", "ERROR"), default="INFO"
    )
    return parser


class StdioServer:
    """Session owner: one config, remote client, store, scheduler and query service."""

    def __init__(
        self,
        config: EngineConfig,
        client: RemoteClient,
        sleep: Callable[[float], None] = time.sleep,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._store = IndexStoreRepository(config.index_path)
        self._audit_logger = JsonlAuditLogger(path=config.data_dir / AUDIT_FILE_NAME)
        reconciler = IndexReconciler(
            project_root=config.project_root,
            config=config.index,
            store=self._store,
            upload=client.batch_upload,
            sleep=sleep,
        )
        if timer_factory is None:
            self._scheduler = IndexScheduler(reconciler)
        else:
            self._scheduler = IndexScheduler(reconciler, timer_factory=timer_factory)
        self._query = QueryService(
            project_root=config.project_root,
            store=self._store,
            client=client,
            bootstrap=self._scheduler.run_project,
            user_guidelines=config.query.user_guidelines,
            sleep=sleep,
        )
        self._registry = ToolRegistry()
        register_builtin_tools(
            self._registry,
            read_status=self._status,
            run_project=self._scheduler.run_project,
            run_file=self._scheduler.run_file,
            schedule_file=self._scheduler.schedule_file,
            search=self._query.search,
            enhance_prompt=self._enhance_prompt,
            read_audit_entries=self._audit_logger.read,
        )
        self._ids = RequestIdSequence()

    def close(self) -> None:
        """Cancel pending index triggers and release the HTTP client."""
        self._scheduler.shutdown()
        self._client.close()

    def serve(self, in_stream: TextIO, out_stream: TextIO) -> None:
        """Answer each non-blank input line with exactly one output line."""
        for raw_line in in_stream:
            line = raw_line.strip()
            if not line:
                continue
            out_stream.write(json.dumps(self.handle_json_line(line), sort_keys=True) + "\n")
            out_stream.flush()

    def handle_json_line(self, raw_line: str) -> dict[str, object]:
        """Decode one request line and handle it."""
        started = time.perf_counter()
        try:
            payload = json.loads(raw_line)
        except json.JSONDecodeError:
            response = error_envelope(
                self._ids.next(), "INVALID_JSON", "Request must be valid JSON."
            )
            self._audit(response, "invalid_json", {"raw_line_length": len(raw_line)}, started)
            return response
        return self.handle_payload(payload)

    def handle_payload(self, payload: object) -> dict[str, object]:
        """Validate a decoded request and run the tool it names."""
        started = time.perf_counter()
        tool_name = "invalid_request"
        arguments: dict[str, object] = {}
        try:
            request = parse_request(payload, self._ids)
            if request.method == LIST_TOOLS_METHOD:
                return success_envelope(request.request_id, {"tools": self._registry.describe()})
            tool_name, arguments = resolve_tool_call(request)
        except RequestError as error:
            response = error_envelope(error.request_id, error.code, error.message)
        else:
            response = self._dispatch(request.request_id, tool_name, arguments)
        self._audit(response, tool_name, arguments, started)
        return response

    def _dispatch(
        self, request_id: str, tool_name: str, arguments: dict[str, object]
    ) -> dict[str, object]:
        try:
            result = self._registry.dispatch(name=tool_name, arguments=arguments)
        except ToolDispatchError as error:
            return error_envelope(request_id, error.code, error.message)
        except RemoteServiceError as error:
            return error_envelope(request_id, "REMOTE_ERROR", error.reason, hint=error.hint)
        except (PromptExtractionError, UnexpectedResponseError, httpx.HTTPError) as error:
            logger.error("Remote request for %s failed: %s", tool_name, error)
            return error_envelope(request_id, "REMOTE_ERROR", str(error))
        except IndexBootstrapError as error:
            return error_envelope(request_id, "INDEX_FAILED", str(error))
        except IndexStoreWriteError as error:
            return error_envelope(
                request_id, "INDEX_WRITE_FAILED", str(error), hint=WRITE_FAILED_HINT
            )
        except Exception:
            logger.exception("Unhandled error while executing %s", tool_name)
            return error_envelope(
                request_id, "INTERNAL_ERROR", "Unhandled server error while executing tool."
            )
        return success_envelope(request_id, result)

    def _audit(
        self,
        response: dict[str, object],
        tool_name: str,
        arguments: dict[str, object],
        started: float,
    ) -> None:
        event = AuditEvent(
            timestamp=utc_timestamp(),
            request_id=str(response["request_id"]),
            tool=tool_name,
            ok=response["ok"] is True,
            error_code=error_code_of(response),
            duration_ms=int((time.perf_counter() - started) * 1000),
            metadata=sanitize_arguments(arguments),
        )
        try:
            self._audit_logger.append(event)
        except OSError as error:
            logger.warning("Could not write audit event: %s", error)

    def _status(self) -> dict[str, object]:
        store = self._store.load()
        return {
            "project_root": str(self._config.project_root),
            "index_path": str(self._store.path),
            "index_exists": self._store.path.exists(),
            "indexed_file_count": len(store.file_map),
            "blob_count": len(store.blob_names),
            "busy": self._scheduler.is_busy,
            "pending_paths": list(self._scheduler.pending_paths),
            "effective_config": self._config.to_public_dict(),
        }

    def _enhance_prompt(self, query: str, editor: EditorContext | None) -> str:
        return self._query.enhance_prompt(query, editor=editor)


def create_server(
    project_root: str | Path,
    cli_overrides: CliOverrides | None = None,
    transport: httpx.BaseTransport | None = None,
    sleep: Callable[[float], None] = time.sleep,
    timer_factory: TimerFactory | None = None,
) -> StdioServer:
    """Resolve configuration for project_root and build a server around it.

    ``transport`` replaces the network layer of the HTTP client; tests pass an
    ``httpx.MockTransport``.
    """
    config = load_effective_config(project_root=Path(project_root), overrides=cli_overrides)
    client = RemoteClient(config.remote, transport=transport)
    return StdioServer(config=config, client=client, sleep=sleep, timer_factory=timer_factory)


def main(argv: list[str] | None = None) -> int:
    """Run the server until stdin closes; exit code 2 on bad configuration."""
    args = build_arg_parser().parse_args(argv)
    # stdout carries the protocol, so logs go to stderr.
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    token = args.token if args.token is not None else os.getenv(TOKEN_ENV_VAR) or None
    overrides = CliOverrides(
        base_url=args.base_url,
        token=token,
        timeout_seconds=args.timeout_seconds,
        batch_size=args.batch_size,
        max_lines_per_blob=args.max_lines_per_blob,
        user_guidelines=args.user_guidelines,
    )
    project_root = detect_project_root(Path(args.project_root))
    try:
        server = create_server(project_root=project_root, cli_overrides=overrides)
    except ValueError as error:
        logger.error("Invalid configuration: %s", error)
        return 2
    logger.info("Serving project %s", project_root)
    try:
        server.serve(in_stream=sys.stdin, out_stream=sys.stdout)
    finally:
        server.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
