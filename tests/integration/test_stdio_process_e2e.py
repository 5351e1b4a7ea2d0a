from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Any

# Nothing below reaches the remote service, so an unroutable base URL is safe.
_UNUSED_BASE_URL = "http://127.0.0.1:9"


def test_stdio_process_serves_local_tools(tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    (tmp_path / "app.py").write_text("print('hi')\n", encoding="utf-8")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "dep.js").write_text("x\n", encoding="utf-8")

    proc = _start_server(project_root=tmp_path, token="process-token")
    try:
        listed = _call_tool(proc, "req-e2e-1", "tools/list", {})
        assert listed["ok"] is True
        assert len(listed["result"]["tools"]) == 6

        status = _call_tool(proc, "req-e2e-2", "codebase.status", {})
        assert status["ok"] is True
        assert status["result"]["project_root"] == str(tmp_path.resolve())
        assert status["result"]["index_exists"] is False
        assert status["result"]["effective_config"]["remote"]["base_url"] == _UNUSED_BASE_URL

        excluded = _call_tool(
            proc, "req-e2e-3", "codebase.index_file", {"path": "node_modules/dep.js"}
        )
        assert excluded["ok"] is True
        assert excluded["result"]["status"] == "success"

        invalid = _call_tool(proc, "req-e2e-4", "codebase.search", {})
        assert invalid["error"]["code"] == "INVALID_PARAMS"

        audit = _call_tool(proc, "req-e2e-5", "codebase.audit_log", {"limit": 20})
        assert [entry["tool"] for entry in audit["result"]["entries"]] == [
            "codebase.status",
            "codebase.index_file",
            "codebase.search",
        ]
    finally:
        _stop_server(proc)

    assert "process-token" not in (tmp_path / ".ace-tool" / "audit.jsonl").read_text(
        encoding="utf-8"
    )


def test_missing_token_exits_with_configuration_error(tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()

    proc = _start_server(project_root=tmp_path, token=None)
    assert proc.stdin is not None
    proc.stdin.close()
    proc.wait(timeout=10)

    assert proc.returncode == 2
    assert proc.stderr is not None
    assert "remote.token" in proc.stderr.read()


def _start_server(project_root: Path, token: str | None) -> subprocess.Popen[str]:
    env = os.environ.copy()
    env.pop("ACE_INDEX_TOKEN", None)
    workspace_root = Path(__file__).resolve().parents[2]
    src_path = workspace_root / "src"
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = str(src_path) if not existing else f"{src_path}:{existing}"
    cmd = [
        sys.executable,
        "-m",
        "ace_index.server",
        "--project-root",
        str(project_root),
        "--base-url",
        _UNUSED_BASE_URL,
        "--log-level",
        "WARNING",
    ]
    if token is not None:
        cmd.extend(["--token", token])
    return subprocess.Popen(
        cmd,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        env=env,
    )


def _call_tool(
    proc: subprocess.Popen[str],
    request_id: str,
    method: str,
    params: dict[str, object],
) -> dict[str, Any]:
    assert proc.stdin is not None
    assert proc.stdout is not None
    if method.startswith("codebase."):
        payload = {
            "id": request_id,
            "method": "tools/call",
            "params": {"name": method, "arguments": params},
        }
    else:
        payload = {"id": request_id, "method": method, "params": params}
    proc.stdin.write(json.dumps(payload) + "\n")
    proc.stdin.flush()
    line = proc.stdout.readline()
    if not line:
        stderr_output = ""
        if proc.stderr is not None:
            stderr_output = proc.stderr.read()
        raise RuntimeError(f"Server produced no response. stderr={stderr_output}")
    return json.loads(line)


def _stop_server(proc: subprocess.Popen[str]) -> None:
    if proc.stdin is not None:
        proc.stdin.close()
    proc.wait(timeout=10)
    if proc.returncode != 0 and proc.stderr is not None:
        stderr_output = proc.stderr.read()
        raise AssertionError(f"Server exited with code {proc.returncode}: {stderr_output}")
