"""Detour CLI - Command line interface."""

from __future__ import annotations

import json
import logging
import sys

import click
import structlog
from rich.console import Console
from rich.table import Table

console = Console()

BANNER = "detour - request routing rules for redirects, rewrites and headers"


def _configure_logging(log_level: str) -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.WARNING)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _parse_header_options(values: tuple[str, ...]) -> dict[str, str]:
    """Parse ``Name: value`` pairs given with --header."""
    headers: dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"Expected 'Name: value', got {item!r}", param_hint="--header")
        headers[name.strip().lower()] = value.strip()
    return headers


def _parse_cookie_options(values: tuple[str, ...]) -> dict[str, str] | None:
    """Parse ``name=value`` pairs given with --cookie."""
    if not values:
        return None
    cookies: dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"Expected 'name=value', got {item!r}", param_hint="--cookie")
        cookies[name] = value
    return cookies


def _load_engine(config_file: str | None):
    from detour.core.config import get_settings
    from detour.errors import RuleConfigError
    from detour.rewrites.config import load_rules

    settings = get_settings()
    path = config_file or settings.rules_file
    if not path:
        console.print("[red]No rules file given.[/red] Use --config or set DETOUR_RULES_FILE.")
        sys.exit(1)

    try:
        return load_rules(path, settings)
    except (FileNotFoundError, RuleConfigError) as e:
        console.print(f"[red]Failed to load rules:[/red] {e}")
        sys.exit(1)


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log level (default: DETOUR_LOG_LEVEL or warning)",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, log_level: str | None):
    """Detour - request routing rules for redirects, rewrites and headers.

    Examples:

        detour resolve /blog/hello -c rules.yaml

        detour resolve "/docs/a?ref=x" -c rules.yaml -H "x-beta: 1" --cookie beta=on

        detour rules -c rules.yaml
    """
    from detour.core.config import get_settings

    effective_log_level = "debug" if verbose else (log_level or get_settings().log_level)
    _configure_logging(effective_log_level)

    if ctx.invoked_subcommand is None:
        console.print(BANNER, style="cyan")
        console.print("Usage: detour resolve URL --config rules.yaml", style="yellow")
        console.print("\nCommands:", style="bold")
        console.print("  detour resolve  Resolve a request against rules", style="dim")
        console.print("  detour rules    List rules in a rules file", style="dim")
        console.print("  detour version  Show version information", style="dim")


@main.command()
@click.argument("url")
@click.option(
    "--config", "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to YAML or TOML rules file",
)
@click.option("--method", "-X", default="GET", help="HTTP method (default: GET)")
@click.option("--header", "-H", "headers", multiple=True, help='Request header as "Name: value"')
@click.option("--cookie", "-b", "cookies", multiple=True, help="Request cookie as name=value")
@click.option(
    "--kind",
    type=click.Choice(["redirect", "rewrite", "header"]),
    default=None,
    help="Only consider rules of this kind",
)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def resolve(
    url: str,
    config_file: str | None,
    method: str,
    headers: tuple[str, ...],
    cookies: tuple[str, ...],
    kind: str | None,
    json_output: bool,
):
    """Resolve a request URL against a rules file.

    Prints the first rule that applies with its params and destination.
    Exits with status 1 when no rule applies.

    Examples:

        detour resolve /blog/hello -c rules.yaml

        detour resolve https://docs.example.com/guide -c rules.yaml --json
    """
    from detour.errors import PatternError
    from detour.rewrites.engine import RuleKind
    from detour.rewrites.request import create_request_view

    engine = _load_engine(config_file)

    try:
        request = create_request_view(
            url,
            method=method,
            headers=_parse_header_options(headers),
            cookies=_parse_cookie_options(cookies),
        )
    except ValueError as e:
        console.print(f"[red]Invalid URL:[/red] {e}")
        sys.exit(1)

    try:
        result = engine.match(request, RuleKind(kind) if kind else None)
    except (PatternError, ValueError) as e:
        console.print(f"[red]Failed to resolve destination:[/red] {e}")
        sys.exit(1)

    if result is None:
        if json_output:
            click.echo(json.dumps({"matched": False}, indent=2))
        else:
            console.print("[yellow]No rule matched[/yellow]")
        sys.exit(1)

    if json_output:
        click.echo(json.dumps({"matched": True, **result.to_dict()}, indent=2))
        return

    console.print(f"\n[bold]Rule:[/bold] {result.rule.name or result.rule.source}")
    console.print(f"[bold]Kind:[/bold] [cyan]{result.rule.kind.value}[/cyan]")
    if result.url is not None:
        console.print(f"[bold]Destination:[/bold] [green]{result.url}[/green]")

    if result.params:
        table = Table(title="Params")
        table.add_column("Name", style="cyan")
        table.add_column("Value")
        for name, value in result.params.items():
            table.add_row(name, ", ".join(value) if isinstance(value, list) else value)
        console.print(table)

    if result.headers:
        table = Table(title="Headers")
        table.add_column("Header", style="cyan")
        table.add_column("Value")
        for name, value in result.headers.items():
            table.add_row(name, value)
        console.print(table)


@main.command()
@click.option(
    "--config", "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to YAML or TOML rules file",
)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def rules(config_file: str | None, json_output: bool):
    """List the rules in a rules file in evaluation order."""
    engine = _load_engine(config_file)

    if json_output:
        click.echo(json.dumps(engine.to_dict(), indent=2))
        return

    if not engine:
        console.print("[dim]No rules configured[/dim]")
        return

    table = Table()
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Kind")
    table.add_column("Source")
    table.add_column("Destination")
    table.add_column("Conditions", justify="right")
    table.add_column("Enabled")

    for index, rule in enumerate(engine.list_rules(), start=1):
        table.add_row(
            str(index),
            rule.name,
            rule.kind.value,
            rule.source,
            rule.destination or ", ".join(h.key for h in rule.headers),
            str(len(rule.has)),
            "yes" if rule.enabled else "no",
        )

    console.print(table)


@main.command()
def version():
    """Show version information."""
    from detour import __version__

    console.print(BANNER, style="cyan")
    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


if __name__ == "__main__":
    main()
