from __future__ import annotations

import io
import json
import threading
from typing import IO, Any, Iterator

JSONRPC_VERSION = "2.0"
TOOLS_CALL = "tools/call"


def _decode(raw: str | bytes) -> str:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="surrogateescape")
    return raw[:-1] if raw.endswith("\n") else raw


def iter_lines(stream: IO) -> Iterator[str]:
    """Yield one message per line, terminator stripped, until EOF.

    Works on text and binary streams. A trailing line without a terminator
    is still yielded.
    """
    while True:
        raw = stream.readline()
        if not raw:
            break
        yield _decode(raw)


def parse_message(line: str) -> dict[str, Any] | None:
    """Return the JSON-RPC request/notification on ``line``, or None.

    None means the line is not something the proxy understands and must be
    passed through untouched. That includes JSON-RPC batch arrays: a
    ``tools/call`` inside a batch is forwarded unclassified.
    """
    try:
        message = json.loads(line)
    except (ValueError, RecursionError):
        return None
    if not isinstance(message, dict):
        return None
    if message.get("jsonrpc") != JSONRPC_VERSION or not isinstance(message.get("method"), str):
        return None
    return message


def is_tools_call(message: dict[str, Any] | None) -> bool:
    return message is not None and message.get("method") == TOOLS_CALL


def tool_name(message: dict[str, Any]) -> str | None:
    params = message.get("params")
    if not isinstance(params, dict):
        return None
    name = params.get("name")
    if not isinstance(name, str) or not name:
        return None
    return name


def encode_message(message: dict[str, Any]) -> str:
    # Compact, ASCII-only output: one line, and no lone surrogates from
    # escaped input can reach the byte encoder.
    return json.dumps(message, separators=(",", ":"))


class LineWriter:
    """Serializes whole lines onto a shared output stream."""

    def __init__(self, stream: IO):
        self.stream = stream
        self._binary = not isinstance(stream, io.TextIOBase)
        self._lock = threading.Lock()

    def write_line(self, line: str) -> None:
        data = line + "\n"
        with self._lock:
            self.stream.write(data.encode("utf-8", errors="surrogateescape") if self._binary else data)
            self.stream.flush()

    def write_message(self, message: dict[str, Any]) -> None:
        self.write_line(encode_message(message))
