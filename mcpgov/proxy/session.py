from __future__ import annotations

import signal
import sys
import threading
from typing import IO

from rich.console import Console
from rich.markup import escape

from mcpgov.audit.ledger import AuditLog
from mcpgov.classify.keywords import DEFAULT_KEYWORDS, KeywordTable
from mcpgov.config import ProxyConfig
from mcpgov.errors import ConfigError
from mcpgov.policy.evaluate import PolicyHolder
from mcpgov.policy.load import load_policy
from mcpgov.policy.model import PolicyTable

from .backend import BackendProcess, exit_status
from .framing import LineWriter, iter_lines
from .pipeline import EnforcementPipeline

RELAYED_SIGNALS = ("SIGTERM", "SIGINT")


class ProxySession:
    """One client, one backend, two ordered streams.

    The inbound thread runs client lines through the enforcement pipeline;
    the outbound thread copies backend lines to the client unclassified.
    The calling thread supervises the backend and returns its exit status.
    """

    def __init__(
        self,
        config: ProxyConfig,
        policy: PolicyTable,
        *,
        keywords: KeywordTable = DEFAULT_KEYWORDS,
        client_in: IO | None = None,
        client_out: IO | None = None,
        diag: IO | None = None,
        backend_stderr: IO | int | None = None,
    ):
        self.config = config
        self.policy = PolicyHolder(policy)
        self.keywords = keywords
        self.client_in = client_in if client_in is not None else sys.stdin.buffer
        self.client = LineWriter(client_out if client_out is not None else sys.stdout.buffer)
        diag = diag if diag is not None else sys.stderr
        self.console = Console(file=diag, highlight=False, soft_wrap=True)
        self.audit = AuditLog(diag)
        self.backend_stderr = backend_stderr
        self.stop = threading.Event()
        self.backend: BackendProcess | None = None
        self.pipeline: EnforcementPipeline | None = None
        self.inbound: threading.Thread | None = None
        self.outbound: threading.Thread | None = None
        self._pending_signal: int | None = None

    def start(self) -> None:
        self.backend = BackendProcess.spawn(self.config.target, stderr=self.backend_stderr)
        if self._pending_signal is not None:
            # Termination was requested while the backend was starting.
            self.backend.send_signal(self._pending_signal)
        self.pipeline = EnforcementPipeline(
            policy=self.policy,
            backend=self.backend,
            client=self.client,
            audit=self.audit,
            service=self.config.service,
            keywords=self.keywords,
            console=self.console,
        )
        self.outbound = threading.Thread(target=self._pump_backend, name="mcpgov-outbound", daemon=True)
        self.inbound = threading.Thread(target=self._pump_client, name="mcpgov-inbound", daemon=True)
        self.outbound.start()
        self.inbound.start()
        self.console.print(f"Proxy ready, backend pid {self.backend.pid}")

    def _pump_client(self) -> None:
        self.pipeline.run(iter_lines(self.client_in), stop=self.stop)
        if not self.stop.is_set():
            # Client hung up: pass EOF on and give the backend time to finish.
            self.backend.stop(grace=self.config.shutdown_grace)

    def _pump_backend(self) -> None:
        try:
            for line in iter_lines(self.backend.stdout):
                self.client.write_line(line)
        except (BrokenPipeError, ValueError):
            self.console.print("[red]client output closed[/red], stopping backend")
            self.stop.set()
            self.backend.send_signal(signal.SIGTERM)

    def reload_policy(self) -> bool:
        try:
            table = load_policy(self.config.rules_path)
        except ConfigError as exc:
            self.console.print(f"[red]RELOAD FAILED[/red] keeping current policy: {escape(str(exc))}")
            return False
        self.policy.swap(table)
        self.console.print(f"[green]RELOADED[/green] {len(table.rules)} rules from {escape(table.source)}")
        return True

    def _relay_signal(self, signum, _frame) -> None:
        if self.backend is None:
            self._pending_signal = signum
            return
        self.backend.send_signal(signum)

    def _on_sighup(self, _signum, _frame) -> None:
        self.reload_policy()

    def _install_signal_handlers(self) -> dict:
        if threading.current_thread() is not threading.main_thread():
            return {}
        previous = {}
        for name in RELAYED_SIGNALS:
            signum = getattr(signal, name)
            previous[signum] = signal.signal(signum, self._relay_signal)
        if self.config.reload_on_sighup and hasattr(signal, "SIGHUP"):
            previous[signal.SIGHUP] = signal.signal(signal.SIGHUP, self._on_sighup)
        return previous

    def run(self) -> int:
        previous = self._install_signal_handlers()
        try:
            self.start()
            returncode = self.backend.wait()
        finally:
            for signum, handler in previous.items():
                if handler is not None:
                    signal.signal(signum, handler)
        self.stop.set()
        # Deliver whatever the backend wrote before exiting.
        self.outbound.join(timeout=self.config.shutdown_grace)
        self.console.print(f"Backend exited with code {returncode}")
        return exit_status(returncode)
