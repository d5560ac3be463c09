from __future__ import annotations

import sys

import typer
from rich.console import Console
from rich.markup import escape

from mcpgov.classify.detector import classify as classify_tool
from mcpgov.classify.detector import resolve_service
from mcpgov.classify.keywords import DEFAULT_KEYWORDS, OPERATION_ORDER, KeywordTable, load_keywords
from mcpgov.config import load_proxy_config
from mcpgov.errors import ConfigError, SpawnError
from mcpgov.policy.evaluate import lookup
from mcpgov.policy.load import load_policy
from mcpgov.proxy.session import ProxySession

app = typer.Typer(help="MCP governance proxy CLI")
console = Console()
# stdout belongs to the protocol stream while proxying.
err_console = Console(stderr=True)

PROXY_USAGE = """\
Usage: mcp-gov-proxy [--service <name>] --target <command> --rules <rules.json>

  --service, -s  Service name for rule matching (falls back to tool name prefix)
  --target, -t   Backend MCP server command to wrap (required)
  --rules, -r    Path to the rules file, JSON or YAML (required)
  --keywords     Optional keyword table override for operation detection

Example:
  mcp-gov-proxy -s filesystem -t "npx -y @modelcontextprotocol/server-filesystem /tmp" -r rules.json"""


def _keywords_or_exit(path: str) -> KeywordTable:
    if not path:
        return DEFAULT_KEYWORDS
    try:
        return load_keywords(path)
    except ConfigError as exc:
        err_console.print(f"[red]Error loading keywords:[/red] {escape(str(exc))}")
        raise typer.Exit(1)


@app.command("proxy")
def proxy(
    service: str = typer.Option("", "--service", "-s", help="Service name used for rule matching"),
    target: str = typer.Option("", "--target", "-t", help="Backend MCP server command"),
    rules: str = typer.Option("", "--rules", "-r", help="Path to rules file (JSON or YAML)"),
    keywords: str = typer.Option("", "--keywords", help="Keyword table override (JSON or YAML)"),
) -> None:
    try:
        config = load_proxy_config(target=target, rules_path=rules, service=service or None, keywords_path=keywords)
    except ValueError as exc:
        err_console.print(f"[red]Error:[/red] {escape(str(exc))}")
        err_console.print(escape(PROXY_USAGE))
        raise typer.Exit(1)

    try:
        policy = load_policy(config.rules_path)
    except ConfigError as exc:
        err_console.print(f"[red]Error loading rules:[/red] {escape(str(exc))}")
        raise typer.Exit(1)
    keyword_table = _keywords_or_exit(config.keywords_path)

    if not config.service:
        err_console.print(
            "[yellow]WARN[/yellow] no --service given, service names are derived from tool name prefixes"
        )

    session = ProxySession(config, policy, keywords=keyword_table)
    try:
        code = session.run()
    except SpawnError as exc:
        err_console.print(f"[red]Error spawning target server:[/red] {escape(str(exc))}")
        raise typer.Exit(1)
    raise typer.Exit(code)


@app.command("classify")
def classify(
    tool: str = typer.Argument(..., help="Tool identifier, e.g. github_delete_repo"),
    service: str = typer.Option("", "--service", "-s"),
    keywords: str = typer.Option("", "--keywords"),
) -> None:
    table = _keywords_or_exit(keywords)
    console.print_json(
        data={
            "tool": tool,
            "service": resolve_service(service, tool, table),
            "operation": classify_tool(tool, table).value,
        }
    )


@app.command("check")
def check(
    tool: str = typer.Argument(..., help="Tool identifier to evaluate"),
    rules: str = typer.Option(..., "--rules", "-r", help="Path to rules file"),
    service: str = typer.Option("", "--service", "-s"),
    keywords: str = typer.Option("", "--keywords"),
) -> None:
    try:
        policy = load_policy(rules)
    except ConfigError as exc:
        console.print(f"[red]Error loading rules:[/red] {escape(str(exc))}")
        raise typer.Exit(1)
    table = _keywords_or_exit(keywords)

    resolved = resolve_service(service, tool, table)
    operation = classify_tool(tool, table)
    decision = lookup(policy, resolved, operation)
    color = "green" if decision.allowed else "red"
    console.print(
        f"[{color}]{decision.label}[/{color}] {escape(resolved)}.{operation.value} "
        f"tool={escape(tool)} rule={escape(decision.rule_id)}: {escape(decision.reason)}"
    )
    if not decision.allowed:
        raise typer.Exit(2)


@app.command("rules")
def show_rules(rules: str = typer.Option(..., "--rules", "-r", help="Path to rules file")) -> None:
    try:
        policy = load_policy(rules)
    except ConfigError as exc:
        console.print(f"[red]Error loading rules:[/red] {escape(str(exc))}")
        raise typer.Exit(1)
    console.print_json(
        data={
            "source": policy.source,
            "rules": [
                {
                    "rule_id": rule.rule_id,
                    "service": rule.service,
                    "operations": [op.value for op in OPERATION_ORDER if op in rule.operations],
                    "permission": rule.permission,
                    "reason": rule.reason,
                }
                for rule in policy.rules
            ],
        }
    )


@app.command("keywords")
def show_keywords(keywords: str = typer.Option("", "--keywords")) -> None:
    table = _keywords_or_exit(keywords)
    console.print_json(
        data={
            "version": table.version,
            "total": table.total(),
            "categories": {op.value: len(table.keywords_for(op)) for op in OPERATION_ORDER},
        }
    )


def proxy_alias() -> None:
    if any(arg in {"-h", "--help"} for arg in sys.argv[1:]):
        console.print(escape(PROXY_USAGE))
        raise SystemExit(0)
    app(["proxy", *sys.argv[1:]], prog_name="mcp-gov")


if __name__ == "__main__":
    app()
