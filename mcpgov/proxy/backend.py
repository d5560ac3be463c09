from __future__ import annotations

import subprocess
import threading
from typing import IO

from mcpgov.errors import BackendGone, SpawnError


def split_command(command: str) -> list[str]:
    """Tokenize a launch command on whitespace into executable + arguments."""
    argv = command.split()
    if not argv:
        raise SpawnError("Backend command is empty")
    return argv


def exit_status(returncode: int | None) -> int:
    """Map a Popen return code to a process exit status (signal N -> 128+N)."""
    if returncode is None:
        return 1
    if returncode < 0:
        return 128 - returncode
    return returncode


class BackendProcess:
    """Owns the child MCP server and is the only writer to its stdin."""

    def __init__(self, proc: subprocess.Popen, argv: list[str]):
        self.proc = proc
        self.argv = argv
        self._stdin_lock = threading.Lock()

    @classmethod
    def spawn(cls, command: str | list[str], stderr: IO | int | None = None) -> "BackendProcess":
        # stderr=None lets the child write straight to the proxy's own stderr.
        argv = split_command(command) if isinstance(command, str) else list(command)
        if not argv:
            raise SpawnError("Backend command is empty")
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=stderr,
            )
        except (OSError, ValueError) as exc:
            raise SpawnError(f"Cannot start backend {argv[0]!r}: {exc}") from exc
        return cls(proc, argv)

    @property
    def pid(self) -> int:
        return self.proc.pid

    @property
    def stdout(self) -> IO[bytes]:
        return self.proc.stdout

    @property
    def returncode(self) -> int | None:
        return self.proc.poll()

    def send_line(self, line: str) -> None:
        data = (line + "\n").encode("utf-8", errors="surrogateescape")
        with self._stdin_lock:
            try:
                self.proc.stdin.write(data)
                self.proc.stdin.flush()
            except (BrokenPipeError, ValueError) as exc:
                raise BackendGone(f"backend input closed: {exc}") from exc

    def close_stdin(self) -> None:
        with self._stdin_lock:
            if self.proc.stdin.closed:
                return
            try:
                self.proc.stdin.close()
            except BrokenPipeError:
                # Child already gone; its exit status is reported by wait().
                pass

    def send_signal(self, signum: int) -> None:
        if self.proc.poll() is None:
            self.proc.send_signal(signum)

    def wait(self, timeout: float | None = None) -> int:
        return self.proc.wait(timeout=timeout)

    def stop(self, grace: float = 5.0) -> int:
        """Close input and wait; escalate to terminate, then kill."""
        self.close_stdin()
        try:
            return self.proc.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            self.proc.terminate()
        try:
            return self.proc.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            self.proc.kill()
            return self.proc.wait()
