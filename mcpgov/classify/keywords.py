from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from mcpgov.documents import parse_document
from mcpgov.errors import ConfigError


class Operation(str, Enum):
    ADMIN = "admin"
    DELETE = "delete"
    EXECUTE = "execute"
    WRITE = "write"
    READ = "read"


# Most sensitive first. Classification walks categories in this order.
OPERATION_ORDER: tuple[Operation, ...] = (
    Operation.ADMIN,
    Operation.DELETE,
    Operation.EXECUTE,
    Operation.WRITE,
    Operation.READ,
)


@dataclass(frozen=True, slots=True)
class KeywordTable:
    version: str
    admin: tuple[str, ...] = field(default_factory=tuple)
    delete: tuple[str, ...] = field(default_factory=tuple)
    execute: tuple[str, ...] = field(default_factory=tuple)
    write: tuple[str, ...] = field(default_factory=tuple)
    read: tuple[str, ...] = field(default_factory=tuple)

    def keywords_for(self, operation: Operation) -> tuple[str, ...]:
        return getattr(self, operation.value)

    def total(self) -> int:
        return sum(len(self.keywords_for(op)) for op in OPERATION_ORDER)

    def all_keywords(self) -> frozenset[str]:
        return frozenset(k for op in OPERATION_ORDER for k in self.keywords_for(op))


DEFAULT_KEYWORDS = KeywordTable(
    version="2025.1",
    admin=(
        "admin", "superuser", "root", "sudo", "elevate", "privilege",
        "grant", "revoke", "permission", "role", "access", "policy",
        "configure", "config", "setting", "preference", "setup",
        "initialize", "init", "bootstrap", "install", "uninstall",
        "enable", "disable", "activate", "deactivate", "toggle",
        "migrate", "migration", "backup", "restore", "export", "import",
        "deploy", "deployment", "provision", "manage", "management",
    ),
    delete=(
        "delete", "remove", "destroy", "erase", "clear", "purge",
        "drop", "truncate", "unlink", "discard", "revoke", "cancel",
        "terminate", "kill", "stop", "abort", "close", "shutdown",
        "deactivate", "disable", "detach", "disconnect", "unpublish",
        "archive", "trash", "clean", "wipe", "reset", "revert",
    ),
    execute=(
        "execute", "run", "invoke", "call", "trigger", "fire",
        "launch", "start", "begin", "process", "perform", "apply",
        "send", "submit", "post", "publish", "deploy", "release",
        "build", "compile", "generate", "compute", "calculate",
        "merge", "rebase", "commit", "push", "pull", "sync",
        "approve", "reject", "accept", "decline", "confirm",
        "schedule", "queue", "enqueue", "dispatch", "broadcast",
        "notify", "alert", "activate", "deactivate",
        "lock", "unlock", "freeze", "unfreeze", "suspend", "resume",
    ),
    write=(
        "create", "add", "insert", "new", "make", "build",
        "write", "save", "store", "persist", "record",
        "update", "modify", "edit", "change", "alter", "set",
        "put", "patch", "replace", "overwrite", "append",
        "upload", "push", "commit", "submit", "publish",
        "move", "rename", "copy", "duplicate", "clone",
        "attach", "link", "associate", "bind", "connect",
        "assign", "allocate", "register", "enroll", "subscribe",
        "comment", "reply", "respond", "post", "share",
        "transfer", "migrate", "convert", "transform",
        "fork", "branch", "tag", "label", "mark",
        "star", "favorite", "like", "follow", "watch",
        "open", "reopen", "draft", "issue", "pr", "pull_request",
    ),
    read=(
        "get", "list", "fetch", "retrieve", "query", "find",
        "search", "lookup", "check", "verify", "validate",
        "read", "view", "show", "display", "print", "render",
        "describe", "info", "detail", "summary", "status",
        "count", "total", "aggregate", "stats", "statistics",
        "download", "export", "extract", "parse", "decode",
        "inspect", "audit", "log", "trace", "monitor",
        "compare", "diff", "match", "filter", "sort",
        "scan", "analyze", "review", "preview", "browse",
        "watch", "observe", "listen", "subscribe", "poll",
        "test", "ping", "health", "heartbeat",
    ),
)


def load_keywords(path: str | Path, base: KeywordTable = DEFAULT_KEYWORDS) -> KeywordTable:
    """Build a keyword table from a YAML/JSON override file.

    The file carries an optional ``version`` and a ``keywords`` mapping of
    category to keyword list. Categories left out keep the lists from
    ``base``; a listed category replaces its list entirely.
    """
    path_obj = Path(path)
    try:
        text = path_obj.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read keyword file {path_obj}: {exc}") from exc
    data = parse_document(text, path_obj, "Keyword") or {}

    if not isinstance(data, dict):
        raise ConfigError("Keyword file must be a mapping")
    keywords = data.get("keywords", {})
    if not isinstance(keywords, dict):
        raise ConfigError("keywords must be a mapping of category to list")

    valid = {op.value for op in OPERATION_ORDER}
    overrides: dict[str, tuple[str, ...]] = {}
    for category, values in keywords.items():
        if category not in valid:
            raise ConfigError(f"Unknown operation category in keyword file: {category}")
        if not isinstance(values, list) or not all(isinstance(v, str) and v for v in values):
            raise ConfigError(f"keywords.{category} must be a list of non-empty strings")
        overrides[category] = tuple(v.lower() for v in values)

    fields = {op.value: overrides.get(op.value, base.keywords_for(op)) for op in OPERATION_ORDER}
    return KeywordTable(version=str(data.get("version", f"{base.version}+{path_obj.stem}")), **fields)
