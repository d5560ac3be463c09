from __future__ import annotations

from dataclasses import dataclass, field

from mcpgov.classify.keywords import Operation

ALLOW = "allow"
DENY = "deny"
PERMISSIONS = (ALLOW, DENY)


@dataclass(frozen=True, slots=True)
class PolicyRule:
    service: str
    operations: frozenset[Operation]
    permission: str
    reason: str | None = None
    rule_id: str = "rule"

    @property
    def is_wildcard(self) -> bool:
        return self.service == "*"

    @property
    def is_pattern(self) -> bool:
        return any(ch in self.service for ch in "*?[")


@dataclass(frozen=True, slots=True)
class PolicyTable:
    rules: tuple[PolicyRule, ...] = field(default_factory=tuple)
    source: str = "<memory>"
