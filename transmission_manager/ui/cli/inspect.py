"""
CLI commands for read-only inspection — firewall, logs, performance, config.

Thin wrappers over ``core.use_cases.inspect``.
"""

from __future__ import annotations

import json

import click

from transmission_manager.ui.cli.common import get_runtime


def _kb(value: int | None) -> str:
    if value is None:
        return "?"
    return f"{value / 1024 / 1024:.1f} GiB"


def _bytes(value: int) -> str:
    return f"{value / 1024 ** 3:.1f} GiB"


@click.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def firewall(ctx: click.Context, as_json: bool) -> None:
    """Show the daemon ports and matching firewall rules."""
    from transmission_manager.core.use_cases.inspect import firewall_report

    report = firewall_report(get_runtime(ctx).config)
    if as_json:
        click.echo(json.dumps(report, indent=2))
        return

    if "rpc_port" not in report:
        click.secho(f"⚠ {report['error']}", fg="yellow")
        return

    click.secho("=== Firewall Check ===", fg="blue", bold=True)
    click.echo(f"RPC: {report['rpc_port']} | Peer: {report['peer_port']}")
    if report["firewall"] is None:
        click.echo("No ufw or firewalld found")
    elif report.get("error"):
        click.secho(f"⚠ {report['error']}", fg="yellow")
    elif report["rules"]:
        for rule in report["rules"]:
            click.echo(f"  {rule}")
    else:
        click.secho(f"⚠ No {report['firewall']} rules found", fg="yellow")


@click.command()
@click.option("--lines", "-n", default=20, show_default=True, help="Lines to show.")
@click.option("--history", is_flag=True, help="Show the installer run history instead.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def logs(ctx: click.Context, lines: int, history: bool, as_json: bool) -> None:
    """Tail the daemon log (or the installer run history)."""
    from transmission_manager.core.use_cases.inspect import daemon_log, install_history

    config = get_runtime(ctx).config

    if history:
        entries = install_history(config, lines)
        if as_json:
            click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
            return
        if not entries:
            click.echo("No installation logs found")
            return
        click.secho("=== Installation Logs ===", fg="blue", bold=True)
        for entry in entries:
            color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(entry.status, "white")
            click.echo(f"{entry.timestamp}  {entry.operation:<16} ", nl=False)
            click.secho(entry.status, fg=color, nl=False)
            click.echo(f"  {entry.actions_succeeded}/{entry.actions_total} actions")
            for error in entry.errors:
                click.echo(f"    ✗ {error}")
        click.echo(f"\nFull log: {config.history_file}")
        return

    result = daemon_log(config, lines)
    if as_json:
        click.echo(json.dumps(result, indent=2))
        return
    if "error" in result:
        click.secho(f"⚠ {result['error']} ({result['path']})", fg="yellow")
        return
    click.secho("=== Transmission Logs ===", fg="blue", bold=True)
    for line in result["lines"]:
        click.echo(line)


@click.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def perf(ctx: click.Context, as_json: bool) -> None:
    """Show memory, disk and network buffer settings."""
    from transmission_manager.core.use_cases.inspect import performance_report

    report = performance_report(get_runtime(ctx).config)
    if as_json:
        click.echo(json.dumps(report, indent=2))
        return

    click.secho("=== Performance Stats ===", fg="blue", bold=True)
    memory = report["memory"]
    click.echo("Memory:")
    click.echo(f"  total {_kb(memory.get('total_kb'))}, available {_kb(memory.get('available_kb'))}")
    disk = report["disk"]
    click.echo("Disk:")
    if disk:
        click.echo(
            f"  {disk['path']}: {_bytes(disk['used_bytes'])} used of "
            f"{_bytes(disk['total_bytes'])} ({_bytes(disk['free_bytes'])} free)"
        )
    click.echo("Network:")
    for key, value in report["network"].items():
        click.echo(f"  {key} = {value if value is not None else '?'}")


@click.group("config")
def config_group() -> None:
    """Daemon and manager configuration."""


@config_group.command("show")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_show(ctx: click.Context, as_json: bool) -> None:
    """Show the settings file and its key settings."""
    from transmission_manager.core.use_cases.inspect import config_view

    view = config_view(get_runtime(ctx).config)
    if as_json:
        click.echo(json.dumps(view, indent=2))
        return

    click.echo(f"Config: {view['settings_file']}")
    if not view["exists"]:
        click.secho("⚠ settings.json not found — install first", fg="yellow")
        return
    for key, value in view["settings"].items():
        click.echo(f"  {key}: {value}")
    if view["password_file"]:
        click.echo(f"Password file: {view['password_file']}")


@config_group.command("manager")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_manager(ctx: click.Context, as_json: bool) -> None:
    """Show the effective manager configuration."""
    config = get_runtime(ctx).config
    data = config.model_dump(mode="json")
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return
    for key, value in data.items():
        if isinstance(value, dict):
            click.echo(f"{key}:")
            for sub_key, sub_value in value.items():
                click.echo(f"  {sub_key}: {sub_value}")
        elif isinstance(value, list):
            click.echo(f"{key}:")
            for item in value:
                click.echo(f"  - {item}")
        else:
            click.echo(f"{key}: {value}")
