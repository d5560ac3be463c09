from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(slots=True)
class ProxyConfig:
    target: str
    rules_path: str
    service: str = ""
    keywords_path: str = ""
    reload_on_sighup: bool = True
    shutdown_grace: float = 5.0


def load_proxy_config(
    *,
    target: str | None = None,
    rules_path: str | None = None,
    service: str | None = None,
    keywords_path: str | None = None,
) -> ProxyConfig:
    """Merge explicit values over MCPGOV_* environment defaults.

    Raises ValueError naming the first required setting that is missing.
    """
    resolved_target = target or os.environ.get("MCPGOV_TARGET", "")
    resolved_rules = rules_path or os.environ.get("MCPGOV_RULES", "")
    if not resolved_target.strip():
        raise ValueError("--target is required")
    if not resolved_rules.strip():
        raise ValueError("--rules is required")
    return ProxyConfig(
        target=resolved_target,
        rules_path=resolved_rules,
        service=(service if service is not None else os.environ.get("MCPGOV_SERVICE", "")).strip(),
        keywords_path=keywords_path or os.environ.get("MCPGOV_KEYWORDS", ""),
        reload_on_sighup=os.environ.get("MCPGOV_RELOAD_ON_SIGHUP", "1") not in {"0", "false", "no"},
        shutdown_grace=float(os.environ.get("MCPGOV_SHUTDOWN_GRACE", "5.0")),
    )
