#!/usr/bin/env python3
"""Minimal stdio MCP server used to exercise the governance proxy.

Replies to ``initialize`` and ``tools/call``, echoes every other line
verbatim, and can record what it received, exit on a given tool, or note
which termination signal reached it.
"""
from __future__ import annotations

import argparse
import json
import os
import signal
import sys
from pathlib import Path


def _reply(payload: dict) -> None:
    sys.stdout.write(json.dumps(payload) + "\n")
    sys.stdout.flush()


def _handle(line: str, args: argparse.Namespace) -> None:
    try:
        msg = json.loads(line)
    except json.JSONDecodeError:
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
        return

    if not isinstance(msg, dict):
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
        return

    method = msg.get("method")
    if method == "initialize":
        _reply(
            {
                "jsonrpc": "2.0",
                "id": msg.get("id"),
                "result": {
                    "protocolVersion": "2024-11-05",
                    "capabilities": {"tools": {}},
                    "serverInfo": {"name": "stub-mcp", "version": "0.1.0"},
                },
            }
        )
        return

    if method == "tools/call":
        name = (msg.get("params") or {}).get("name")
        if args.exit_on_tool and name == args.exit_on_tool:
            sys.exit(args.exit_code)
        _reply(
            {
                "jsonrpc": "2.0",
                "id": msg.get("id"),
                "result": {"content": [{"type": "text", "text": f"Executed {name}"}]},
            }
        )
        return

    sys.stdout.write(line + "\n")
    sys.stdout.flush()


def _note_signals(marker: Path) -> None:
    def _on_signal(signum, _frame):
        marker.write_text(signal.Signals(signum).name, encoding="utf-8")
        signal.signal(signum, signal.SIG_DFL)
        os.kill(os.getpid(), signum)

    for signum in (signal.SIGTERM, signal.SIGINT):
        signal.signal(signum, _on_signal)


def main() -> None:
    parser = argparse.ArgumentParser(description="stub MCP server for proxy tests")
    parser.add_argument("--record", default="", help="append every received line to this file")
    parser.add_argument("--exit-on-tool", default="")
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("--signal-file", default="", help="write the name of a received SIGTERM/SIGINT here, then die by it")
    args = parser.parse_args()

    if args.signal_file:
        _note_signals(Path(args.signal_file))

    record = Path(args.record) if args.record else None
    print("stub-mcp ready", file=sys.stderr, flush=True)
    for raw in sys.stdin:
        line = raw.rstrip("\n")
        if record is not None:
            with record.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        _handle(line, args)


if __name__ == "__main__":
    main()
