from __future__ import annotations

import json
import sys
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TextIO

# json escapes C0 controls; these cover the separator and the remaining
# characters str.splitlines treats as line breaks.
_EXTRA_ESCAPES = str.maketrans(
    {
        "|": "\\u007c",
        "\x85": "\\u0085",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)


def _field(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)[1:-1].translate(_EXTRA_ESCAPES)


@dataclass(frozen=True, slots=True)
class AuditEvent:
    timestamp: str
    tool: str
    service: str
    operation: str
    decision: str
    reason: str | None = None

    def render(self) -> str:
        """One line; field values are JSON-string escaped with ``|`` as ``\\u007c``."""
        parts = [
            f"[AUDIT] {self.timestamp}",
            self.decision,
            f"tool={_field(self.tool)}",
            f"service={_field(self.service)}",
            f"operation={self.operation}",
        ]
        if self.reason:
            parts.append(f"reason={_field(self.reason)}")
        return " | ".join(parts)


class AuditLog:
    """Writes one line per governed call to the diagnostic stream."""

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream if stream is not None else sys.stderr
        self._lock = threading.Lock()

    def record(
        self,
        *,
        tool: str,
        service: str,
        operation: str,
        allowed: bool,
        reason: str | None = None,
    ) -> AuditEvent:
        event = AuditEvent(
            timestamp=datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            tool=tool,
            service=service,
            operation=operation,
            decision="ALLOWED" if allowed else "DENIED",
            reason=None if allowed else reason,
        )
        with self._lock:
            self.stream.write(event.render() + "\n")
            self.stream.flush()
        return event
