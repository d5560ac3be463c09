import io
import json
import os
import signal
import subprocess
import sys
from pathlib import Path

import pytest

from mcpgov.config import ProxyConfig
from mcpgov.errors import SpawnError
from mcpgov.policy.load import load_policy
from mcpgov.proxy.session import ProxySession


REPO_ROOT = Path(__file__).resolve().parents[1]
STUB_SERVER = REPO_ROOT / "integrations" / "stub_mcp" / "server.py"


def _rules(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "rules.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def _session(tmp_path: Path, rules: dict, client_in, *, service: str = "", extra: str = ""):
    record = tmp_path / "backend-received.log"
    rules_path = _rules(tmp_path, rules)
    config = ProxyConfig(
        target=f"{sys.executable} {STUB_SERVER} --record {record} {extra}".strip(),
        rules_path=str(rules_path),
        service=service,
        shutdown_grace=5.0,
    )
    client_out = io.BytesIO()
    diag = io.StringIO()
    session = ProxySession(
        config,
        load_policy(rules_path),
        client_in=client_in,
        client_out=client_out,
        diag=diag,
        backend_stderr=subprocess.DEVNULL,
    )
    return session, client_out, diag, record


def _line(message: dict) -> bytes:
    return (json.dumps(message) + "\n").encode("utf-8")


def _call(tool: str, request_id: int) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "method": "tools/call", "params": {"name": tool, "arguments": {}}}


def _responses(client_out: io.BytesIO) -> list[str]:
    return client_out.getvalue().decode("utf-8").splitlines()


def _received(record: Path) -> list[str]:
    if not record.exists():
        return []
    return record.read_text(encoding="utf-8").splitlines()


def test_denied_call_never_reaches_backend(tmp_path: Path):
    client_in = io.BytesIO(
        _line({"jsonrpc": "2.0", "id": 0, "method": "initialize", "params": {}})
        + _line(_call("list_directory", 1))
    )
    session, client_out, diag, record = _session(
        tmp_path, {"services": {"filesystem": {"operations": {"read": "deny"}}}}, client_in, service="filesystem"
    )

    assert session.run() == 0

    received = _received(record)
    assert len(received) == 1
    assert json.loads(received[0])["method"] == "initialize"

    by_id = {json.loads(line)["id"]: json.loads(line) for line in _responses(client_out)}
    denial = by_id[1]["error"]["message"]
    assert "filesystem" in denial and "read" in denial and "list_directory" in denial
    assert "result" in by_id[0]

    audit = [line for line in diag.getvalue().splitlines() if line.startswith("[AUDIT]")]
    assert len(audit) == 1
    assert "DENIED" in audit[0]


def test_allowed_call_round_trips_unmodified(tmp_path: Path):
    request = _line(_call("github_list_repos", 9))
    session, client_out, diag, record = _session(
        tmp_path, {"services": {"github": {"operations": {"delete": "deny"}}}}, io.BytesIO(request)
    )

    assert session.run() == 0

    assert _received(record) == [request.decode("utf-8").rstrip("\n")]
    expected = json.dumps(
        {"jsonrpc": "2.0", "id": 9, "result": {"content": [{"type": "text", "text": "Executed github_list_repos"}]}}
    )
    assert _responses(client_out) == [expected]
    audit = [line for line in diag.getvalue().splitlines() if line.startswith("[AUDIT]")]
    assert len(audit) == 1
    assert "ALLOWED" in audit[0] and "service=github" in audit[0] and "operation=read" in audit[0]


def test_garbage_line_is_forwarded_without_audit(tmp_path: Path):
    session, client_out, diag, record = _session(
        tmp_path, {"rules": [{"service": "*", "operations": ["*"], "permission": "deny"}]}, io.BytesIO(b"not json at all\n")
    )

    assert session.run() == 0

    assert _received(record) == ["not json at all"]
    assert _responses(client_out) == ["not json at all"]
    assert "[AUDIT]" not in diag.getvalue()


def test_backend_exit_code_is_propagated_and_input_stops(tmp_path: Path):
    read_fd, write_fd = os.pipe()
    client_in = os.fdopen(read_fd, "rb")
    writer = os.fdopen(write_fd, "wb")
    session, _client_out, diag, record = _session(
        tmp_path, {}, client_in, service="jobs", extra="--exit-on-tool crash_now --exit-code 3"
    )

    writer.write(_line(_call("crash_now", 1)))
    writer.flush()
    try:
        assert session.run() == 3
        writer.write(_line(_call("get_status", 2)))
        writer.close()
        session.inbound.join(timeout=5)
    finally:
        if not writer.closed:
            writer.close()

    assert not session.inbound.is_alive()
    assert [json.loads(line)["params"]["name"] for line in _received(record)] == ["crash_now"]
    audit = [line for line in diag.getvalue().splitlines() if line.startswith("[AUDIT]")]
    assert len(audit) == 1
    assert "Backend exited with code 3" in diag.getvalue()
    client_in.close()


def test_unstartable_backend_raises_spawn_error(tmp_path: Path):
    rules_path = _rules(tmp_path, {})
    config = ProxyConfig(target=str(tmp_path / "no-such-binary"), rules_path=str(rules_path))
    session = ProxySession(config, load_policy(rules_path), client_in=io.BytesIO(), client_out=io.BytesIO(), diag=io.StringIO())
    with pytest.raises(SpawnError):
        session.run()


def test_reload_swaps_policy_and_keeps_old_on_error(tmp_path: Path):
    session, _client_out, diag, _record = _session(tmp_path, {}, io.BytesIO())
    rules_path = Path(session.config.rules_path)

    rules_path.write_text('{"github": {"delete": "deny"}}', encoding="utf-8")
    assert session.reload_policy() is True
    assert len(session.policy.current.rules) == 1

    rules_path.write_text("{broken", encoding="utf-8")
    assert session.reload_policy() is False
    assert len(session.policy.current.rules) == 1
    assert "RELOAD FAILED" in diag.getvalue()


def test_termination_requested_during_startup_reaches_backend(tmp_path: Path):
    session, _client_out, diag, _record = _session(tmp_path, {}, io.BytesIO(b""))

    session._relay_signal(signal.SIGTERM, None)

    assert session.run() == 128 + signal.SIGTERM
    assert f"backend pid {session.backend.pid}" in diag.getvalue()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signal delivery")
def test_sigterm_to_proxy_process_is_relayed_to_backend(tmp_path: Path):
    marker = tmp_path / "backend-signal.txt"
    rules_path = _rules(tmp_path, {})
    target = f"{sys.executable} {STUB_SERVER} --signal-file {marker}"
    proc = subprocess.Popen(
        [sys.executable, "-m", "mcpgov.cli", "proxy", "-s", "github", "-t", target, "-r", str(rules_path)],
        cwd=REPO_ROOT,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    try:
        seen = set()
        for line in proc.stderr:
            if "Proxy ready" in line:
                seen.add("proxy")
            if "stub-mcp ready" in line:
                seen.add("backend")
            if seen == {"proxy", "backend"}:
                break
        assert seen == {"proxy", "backend"}

        proc.send_signal(signal.SIGTERM)
        assert proc.wait(timeout=15) == 128 + signal.SIGTERM
    finally:
        if proc.poll() is None:
            proc.kill()
            proc.wait()
        for stream in (proc.stdin, proc.stdout, proc.stderr):
            stream.close()

    assert marker.read_text(encoding="utf-8") == "SIGTERM"
