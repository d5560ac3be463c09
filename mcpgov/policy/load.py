from __future__ import annotations

from pathlib import Path

from mcpgov.classify.keywords import OPERATION_ORDER, Operation
from mcpgov.documents import parse_document
from mcpgov.errors import ConfigError

from .model import PERMISSIONS, PolicyRule, PolicyTable

__all__ = ["ConfigError", "load_policy", "normalize_rules"]

ALL_OPERATIONS = frozenset(OPERATION_ORDER)


def _ensure_list(value: object, field_name: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{field_name} must be a list")
    return value


def _operation(name: object, field_name: str) -> Operation:
    try:
        return Operation(str(name).lower())
    except ValueError:
        valid = ", ".join(op.value for op in OPERATION_ORDER)
        raise ConfigError(f"{field_name}: unknown operation {name!r} (expected one of {valid})") from None


def _permission(value: object, field_name: str) -> str:
    permission = str(value).lower() if isinstance(value, str) else value
    if permission not in PERMISSIONS:
        raise ConfigError(f'{field_name}: permission must be "allow" or "deny", got {value!r}')
    return permission


def _rules_from_list(items: list, field_name: str) -> list[PolicyRule]:
    rules: list[PolicyRule] = []
    for idx, item in enumerate(items):
        where = f"{field_name}[{idx}]"
        if not isinstance(item, dict):
            raise ConfigError(f"{where} must be a mapping")
        service = item.get("service")
        if not isinstance(service, str) or not service.strip():
            raise ConfigError(f"{where}: service must be a non-empty string")
        names = _ensure_list(item.get("operations"), f"{where}.operations")
        if not names:
            raise ConfigError(f"{where}: operations must list at least one operation")
        if "*" in names:
            operations = ALL_OPERATIONS
        else:
            operations = frozenset(_operation(name, f"{where}.operations") for name in names)
        reason = item.get("reason")
        rules.append(
            PolicyRule(
                service=service.strip(),
                operations=operations,
                permission=_permission(item.get("permission"), where),
                reason=str(reason) if reason else None,
                rule_id=str(item.get("rule_id", f"rule_{idx}")),
            )
        )
    return rules


def _rules_from_map(services: dict, field_name: str) -> list[PolicyRule]:
    rules: list[PolicyRule] = []
    for service, body in services.items():
        where = f"{field_name}.{service}"
        if not isinstance(body, dict):
            raise ConfigError(f"{where} must be a mapping of operation to permission")
        operations = body.get("operations", body)
        if not isinstance(operations, dict):
            raise ConfigError(f"{where}.operations must be a mapping")
        for name, value in operations.items():
            names = OPERATION_ORDER if name == "*" else (_operation(name, where),)
            permission = _permission(value, f"{where}.{name}")
            for operation in names:
                rules.append(
                    PolicyRule(
                        service=str(service),
                        operations=frozenset({operation}),
                        permission=permission,
                        rule_id=f"{service}.{operation.value}",
                    )
                )
    return rules


def normalize_rules(data: object) -> list[PolicyRule]:
    """Normalize either policy encoding into one list of rules.

    Flat list::

        {"rules": [{"service": "github", "operations": ["delete"], "permission": "deny"}]}

    Nested map::

        {"services": {"github": {"operations": {"delete": "deny"}}}}
        {"github": {"delete": "deny"}}
    """
    if data is None:
        return []
    if isinstance(data, list):
        return _rules_from_list(data, "rules")
    if not isinstance(data, dict):
        raise ConfigError("Policy must be a list of rules or a mapping")

    if "rules" in data:
        return _rules_from_list(_ensure_list(data["rules"], "rules"), "rules")
    if "services" in data:
        services = data["services"] or {}
        if not isinstance(services, dict):
            raise ConfigError("services must be a mapping")
        return _rules_from_map(services, "services")
    return _rules_from_map(data, "policy")


def load_policy(path: str | Path) -> PolicyTable:
    path_obj = Path(path)
    if not path_obj.exists():
        raise ConfigError(f"Policy file not found: {path_obj}")

    try:
        text = path_obj.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read policy file {path_obj}: {exc}") from exc

    data = parse_document(text, path_obj, "Policy")
    if data is None:
        raise ConfigError(f"Policy file {path_obj} is empty")
    if not isinstance(data, (dict, list)):
        raise ConfigError("Policy must be a list of rules or a mapping")

    return PolicyTable(rules=tuple(normalize_rules(data)), source=str(path_obj))
