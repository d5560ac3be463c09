from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Protocol

from rich.console import Console
from rich.markup import escape

from mcpgov.audit.ledger import AuditLog
from mcpgov.classify.detector import classify, resolve_service
from mcpgov.classify.keywords import DEFAULT_KEYWORDS, KeywordTable, Operation
from mcpgov.errors import BackendGone
from mcpgov.policy.evaluate import Decision, PolicyHolder, lookup

from .framing import JSONRPC_VERSION, LineWriter, is_tools_call, parse_message, tool_name

GOVERNANCE_TAG = "mcp-gov"
DENIAL_ERROR_CODE = -32000
INTERNAL_ERROR_CODE = -32603


class Outcome(str, Enum):
    PASSTHROUGH = "passthrough"
    FORWARDED = "forwarded"
    DENIED = "denied"


class LineSink(Protocol):
    def send_line(self, line: str) -> None: ...


@dataclass(frozen=True, slots=True)
class GovernedCall:
    raw: str
    tool: str
    service: str
    operation: Operation
    decision: Decision
    request_id: Any


def denial_message(call: GovernedCall) -> str:
    text = (
        f"[{GOVERNANCE_TAG}] Permission denied by governance policy: "
        f"{call.service}.{call.operation.value} operation on tool {call.tool}"
    )
    if call.decision.reason:
        text += f" ({call.decision.reason})"
    return text


def build_denial(call: GovernedCall) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": call.request_id,
        "error": {
            "code": DENIAL_ERROR_CODE,
            "message": denial_message(call),
            "data": {
                "source": GOVERNANCE_TAG,
                "service": call.service,
                "operation": call.operation.value,
                "tool": call.tool,
                "reason": call.decision.reason,
                "rule_id": call.decision.rule_id,
            },
        },
    }


class EnforcementPipeline:
    """Classifies inbound tools/call requests and forwards or rejects them.

    Everything the pipeline cannot interpret (non-JSON lines, other JSON-RPC
    methods, calls without a tool name) is forwarded untouched and is not
    audited. Classified calls are always audited before being acted on.
    """

    def __init__(
        self,
        *,
        policy: PolicyHolder,
        backend: LineSink,
        client: LineWriter,
        audit: AuditLog,
        service: str | None = None,
        keywords: KeywordTable = DEFAULT_KEYWORDS,
        console: Console | None = None,
    ):
        self.policy = policy
        self.backend = backend
        self.client = client
        self.audit = audit
        self.service = service or None
        self.keywords = keywords
        self.console = console or Console(stderr=True)

    def evaluate(self, raw: str, message: dict[str, Any], tool: str) -> GovernedCall:
        service = resolve_service(self.service, tool, self.keywords)
        operation = classify(tool, self.keywords)
        # One read of the shared reference per call; reloads swap it whole.
        table = self.policy.current
        decision = lookup(table, service, operation)
        return GovernedCall(
            raw=raw,
            tool=tool,
            service=service,
            operation=operation,
            decision=decision,
            request_id=message.get("id"),
        )

    def handle_line(self, line: str) -> Outcome:
        message = parse_message(line)
        if not is_tools_call(message):
            self.backend.send_line(line)
            return Outcome.PASSTHROUGH

        tool = tool_name(message)
        if tool is None:
            self.console.print(f"[yellow]PASS[/yellow] tools/call id={escape(repr(message.get('id')))} has no tool name, forwarded unclassified")
            self.backend.send_line(line)
            return Outcome.PASSTHROUGH

        call = self.evaluate(line, message, tool)
        self.audit.record(
            tool=call.tool,
            service=call.service,
            operation=call.operation.value,
            allowed=call.decision.allowed,
            reason=call.decision.reason,
        )

        if call.decision.allowed:
            self.backend.send_line(line)
            return Outcome.FORWARDED

        self.client.write_message(build_denial(call))
        return Outcome.DENIED

    def run(self, lines: Iterable[str], stop: threading.Event | None = None) -> int:
        """Process inbound lines in arrival order; returns the number handled."""
        handled = 0
        for line in lines:
            if stop is not None and stop.is_set():
                break
            try:
                self._handle_guarded(line)
            except BackendGone:
                if stop is not None:
                    stop.set()
                break
            handled += 1
        return handled

    def _handle_guarded(self, line: str) -> Outcome | None:
        try:
            return self.handle_line(line)
        except BackendGone:
            raise
        except Exception as exc:
            # A governed call is never forwarded unaudited; anything else fails open.
            message = parse_message(line)
            governed = is_tools_call(message) and tool_name(message) is not None
            action = "dropped governed call" if governed else "forwarded unclassified"
            self.console.print(f"[red]ERROR[/red] handling inbound line ({escape(repr(exc))}), {action}")
            if governed:
                self._reject_unhandled(message)
                return None
            self.backend.send_line(line)
            return Outcome.PASSTHROUGH

    def _reject_unhandled(self, message: dict[str, Any]) -> None:
        response = {
            "jsonrpc": JSONRPC_VERSION,
            "id": message.get("id"),
            "error": {
                "code": INTERNAL_ERROR_CODE,
                "message": f"[{GOVERNANCE_TAG}] Tool call could not be evaluated and was not forwarded",
                "data": {"source": GOVERNANCE_TAG},
            },
        }
        try:
            self.client.write_message(response)
        except (OSError, ValueError) as exc:
            self.console.print(f"[red]ERROR[/red] cannot answer rejected call: {escape(repr(exc))}")
