from __future__ import annotations

import fnmatch
import threading
from dataclasses import dataclass

from mcpgov.classify.keywords import Operation

from .model import DENY, PolicyRule, PolicyTable

DEFAULT_ALLOW_REASON = "no matching rule (default allow)"


@dataclass(frozen=True, slots=True)
class Decision:
    allowed: bool
    reason: str
    rule_id: str

    @property
    def label(self) -> str:
        return "ALLOWED" if self.allowed else "DENIED"


def _specificity(rule: PolicyRule, service: str) -> int:
    """Rank of ``rule`` for ``service``: 2 exact, 1 glob, 0 catch-all, -1 no match."""
    if rule.service == service:
        return 2
    if rule.is_wildcard:
        return 0
    if rule.is_pattern and fnmatch.fnmatchcase(service, rule.service):
        return 1
    return -1


def lookup(policy: PolicyTable, service: str, operation: Operation | str) -> Decision:
    operation = Operation(operation)
    best: PolicyRule | None = None
    best_rank = -1
    for rule in policy.rules:
        if operation not in rule.operations:
            continue
        rank = _specificity(rule, service)
        if rank < 0 or rank < best_rank:
            continue
        # Equally specific rules disagreeing: deny wins.
        if rank > best_rank or rule.permission == DENY:
            best, best_rank = rule, rank

    if best is None:
        return Decision(True, DEFAULT_ALLOW_REASON, "default_allow")
    if best.permission == DENY:
        reason = best.reason or f"{service}.{operation.value} denied by policy"
        return Decision(False, reason, best.rule_id)
    return Decision(True, best.reason or f"{service}.{operation.value} allowed by policy", best.rule_id)


class PolicyHolder:
    """Shared reference to the active table; swapped whole on reload."""

    def __init__(self, policy: PolicyTable):
        self._policy = policy
        self._lock = threading.Lock()

    @property
    def current(self) -> PolicyTable:
        return self._policy

    def swap(self, policy: PolicyTable) -> PolicyTable:
        with self._lock:
            previous, self._policy = self._policy, policy
        return previous
