"""
Transmission Manager — CLI entrypoint.

Usage:
    transmission-manager --help
    transmission-manager install --dry-run
    transmission-manager status --json
    transmission-manager            (interactive menu)

Exit codes: 0 success, 1 failure, 3 invalid invocation, 4 another run
holds the lock.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import click

from transmission_manager import __version__
from transmission_manager.core.config.loader import ConfigError
from transmission_manager.core.errors import LockContention, ManagerError
from transmission_manager.core.models.facts import CREDENTIAL_GENERATE, CREDENTIAL_UNCHANGED, LATEST, DesiredState
from transmission_manager.core.observability.logging_config import resolve_level, setup_logging
from transmission_manager.ui.cli.common import (
    EXIT_FAILURE,
    EXIT_LOCKED,
    EXIT_OK,
    EXIT_USAGE,
    ensure_root,
    get_runtime,
    print_plan,
    print_run,
    run_exit_code,
)


class ManagerGroup(click.Group):
    """Maps manager errors to exit codes and a one-line cause."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except LockContention as e:
            click.secho(f"❌ {e}", fg="red", err=True)
            ctx.exit(EXIT_LOCKED)
        except (ManagerError, ConfigError) as e:
            click.secho(f"❌ {e}", fg="red", err=True)
            ctx.exit(EXIT_FAILURE)
        except click.UsageError as e:
            e.show()
            ctx.exit(EXIT_USAGE)


@click.group(cls=ManagerGroup, invoke_without_command=True)
@click.version_option(version=__version__, prog_name="transmission-manager")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to config.yml (default: $TM_CONFIG or /etc/transmission-manager/config.yml).",
)
@click.option("--log-file", type=click.Path(), default=None, help="Also log to this file.")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    log_file: str | None,
) -> None:
    """Transmission Manager — install and manage the Transmission daemon."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj.setdefault("config_path", Path(config_path) if config_path else None)

    # ── Logging setup (once, at process start) ──────────────────
    runtime = get_runtime(ctx)
    log_file = log_file or os.environ.get("TM_LOG_FILE")
    if log_file is None and os.geteuid() == 0:
        log_file = runtime.config.log_file
    ctx.obj["log_file"] = log_file

    setup_logging(
        level=resolve_level(verbose=verbose, quiet=quiet, debug=debug),
        log_file=log_file,
        log_file_level=os.environ.get("TM_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )

    if ctx.invoked_subcommand is None:
        from transmission_manager.ui.cli.menu import run_menu

        run_menu(ctx)


# ── Install / uninstall ─────────────────────────────────────────


@cli.command()
@click.option("--version", "target_version", default=LATEST, show_default=True, help="Version to install.")
@click.option(
    "--password",
    "credential",
    type=click.Choice([CREDENTIAL_GENERATE, CREDENTIAL_UNCHANGED]),
    default=CREDENTIAL_GENERATE,
    show_default=True,
    help="Generate an RPC password if none is set, or leave it alone.",
)
@click.option("--tune/--no-tune", default=False, help="Also apply network tuning.")
@click.option("--no-start", is_flag=True, help="Leave the daemon stopped.")
@click.option("--dry-run", is_flag=True, help="Show the plan without applying it.")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    target_version: str,
    credential: str,
    tune: bool,
    no_start: bool,
    dry_run: bool,
    yes: bool,
    as_json: bool,
) -> None:
    """Install or update Transmission and converge its configuration."""
    from transmission_manager.core.use_cases.install import previous_install, run_install

    runtime = get_runtime(ctx)
    if not dry_run:
        ensure_root(ctx, "install")
        previous = previous_install(runtime)
        if previous is not None and not yes and not as_json:
            click.secho(f"Transmission {previous.version} already installed", fg="yellow")
            if not click.confirm("Reinstall/update?", default=False):
                return

    desired = DesiredState(
        version=target_version,
        running=not no_start,
        credential=credential,
        network_tuning=tune,
    )
    result = run_install(runtime, desired, dry_run=dry_run)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        ctx.exit(run_exit_code(result.outcome.run))

    if dry_run:
        click.echo(f"Target version: {result.version}")
        print_plan(result.outcome.plan)
        return

    run = result.outcome.run
    assert run is not None
    if run.plan:
        print_run(run)
    else:
        print_plan(result.outcome.plan)

    credential_result = run.result_for("set-credential")
    if credential_result is not None and credential_result.ok:
        password_file = credential_result.metadata.get("password_file")
        if password_file:
            click.secho(f"🔑 RPC password saved to {password_file}", fg="cyan")
    ctx.exit(run_exit_code(run))


@cli.command()
@click.option("--purge/--keep-data", default=None, help="Also remove the account, downloads and logs.")
@click.option("--backup/--no-backup", "make_backup", default=None, help="Back up config and data first.")
@click.option("--dry-run", is_flag=True, help="Show the plan without applying it.")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def uninstall(
    ctx: click.Context,
    purge: bool | None,
    make_backup: bool | None,
    dry_run: bool,
    yes: bool,
) -> None:
    """Remove Transmission (service, tuning, binaries; optionally data)."""
    from transmission_manager.core.use_cases.backup import create_backup
    from transmission_manager.core.use_cases.uninstall import is_installed, run_uninstall

    runtime = get_runtime(ctx)
    if dry_run:
        print_plan(run_uninstall(runtime, purge_data=bool(purge), dry_run=True).plan)
        return

    ensure_root(ctx, "uninstall")
    if not is_installed(runtime):
        click.secho("Transmission not installed", fg="yellow")
        return

    if make_backup is None:
        make_backup = False if yes else click.confirm("Backup before uninstall?", default=True)
    if make_backup:
        backup = create_backup(runtime.config)
        if "error" in backup:
            click.secho(f"⚠ {backup['error']}", fg="yellow")
        else:
            click.secho(f"✓ Backup: {backup['path']}", fg="green")

    if not yes and not click.confirm("Uninstall Transmission?", default=False):
        return
    if purge is None:
        purge = False if yes else click.confirm(f"Remove {runtime.config.user} and all data?", default=False)

    outcome = run_uninstall(runtime, purge_data=purge)
    assert outcome.run is not None
    print_run(outcome.run)
    ctx.exit(run_exit_code(outcome.run))


# ── Status / backup / optimize ──────────────────────────────────


@cli.command()
@click.option("--check-latest", is_flag=True, help="Look up the latest release (network).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, check_latest: bool, as_json: bool) -> None:
    """Show installation status and convergence."""
    from transmission_manager.core.use_cases.status import get_status

    result = get_status(get_runtime(ctx), check_latest=check_latest)
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    facts = result.facts
    click.secho("=== Transmission Status ===", fg="blue", bold=True)
    click.echo(f"Host: {facts.os_family} / {facts.init_system}")

    if not facts.installed:
        click.secho("Transmission not installed", fg="yellow")
        if result.latest_version:
            click.secho(f"Latest version: {result.latest_version}", fg="blue")
    else:
        click.secho(f"Version: {facts.installed_version}", fg="green")
        click.secho(f"Binary: {facts.binary_path}", fg="green")
        if facts.is_running:
            click.secho("Service: Running", fg="green")
        else:
            click.secho("Service: Not running", fg="yellow")
        if result.rpc_port is not None or result.download_dir:
            click.echo("-" * 40)
            click.echo(f"RPC Port: {result.rpc_port}")
            click.echo(f"Downloads: {result.download_dir}")
            click.echo("-" * 40)
        if result.update_available:
            click.secho(f"Update available: {result.latest_version}", fg="yellow")

    if result.pending:
        click.secho(f"Pending: {', '.join(result.pending)}", fg="yellow")
    elif result.converged:
        click.secho("Converged ✓", fg="green")

    if result.last_run is not None:
        run = result.last_run
        color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(run.status, "white")
        click.echo(f"Last run: {run.operation} — ", nl=False)
        click.secho(run.status, fg=color, nl=False)
        click.echo(f" at {run.ended_at}")
        if run.failure_reason:
            click.echo(f"  reason: {run.failure_reason}")

    if result.lock_holder is not None:
        click.secho(f"⚠ A run is in progress (PID {result.lock_holder.pid})", fg="yellow")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def backup(ctx: click.Context, as_json: bool) -> None:
    """Archive config, downloads and daemon logs into a .tar.gz."""
    from transmission_manager.core.use_cases.backup import create_backup

    ensure_root(ctx, "backup")
    result = create_backup(get_runtime(ctx).config)
    if as_json:
        click.echo(json.dumps(result, indent=2))
    elif "error" in result:
        click.secho(f"❌ {result['error']}", fg="red")
    else:
        click.secho(f"✓ Backup: {result['path']}", fg="green")
        for missing in result["manifest"]["missing"]:
            click.echo(f"  (not found, skipped: {missing})")
    ctx.exit(EXIT_FAILURE if "error" in result else EXIT_OK)


@cli.command()
@click.pass_context
def optimize(ctx: click.Context) -> None:
    """Apply the kernel network tuning and file limits."""
    from transmission_manager.core.use_cases.optimize import run_optimize

    ensure_root(ctx, "optimize")
    outcome = run_optimize(get_runtime(ctx))
    assert outcome.run is not None
    if outcome.run.plan:
        print_run(outcome.run)
    else:
        click.secho("✓ Network tuning already applied", fg="green")
    ctx.exit(run_exit_code(outcome.run))


@cli.command()
@click.pass_context
def menu(ctx: click.Context) -> None:
    """Interactive menu (also the default with no command)."""
    from transmission_manager.ui.cli.menu import run_menu

    run_menu(ctx.find_root())


# ── Sub-command registration ────────────────────────────────────

from transmission_manager.ui.cli.inspect import config_group, firewall, logs, perf  # noqa: E402
from transmission_manager.ui.cli.password import password  # noqa: E402
from transmission_manager.ui.cli.service import restart, start, stop  # noqa: E402

cli.add_command(start)
cli.add_command(stop)
cli.add_command(restart)
cli.add_command(password)
cli.add_command(firewall)
cli.add_command(logs)
cli.add_command(perf)
cli.add_command(config_group)


def main(argv: list[str] | None = None) -> int:
    """Console entry point; returns the process exit code."""
    try:
        rv = cli.main(args=argv, prog_name="transmission-manager", standalone_mode=False)
    except click.UsageError as e:
        e.show()
        return EXIT_USAGE
    except click.Abort:
        click.echo("Aborted!", err=True)
        return EXIT_FAILURE
    except click.ClickException as e:
        e.show()
        return EXIT_FAILURE
    return rv if isinstance(rv, int) else EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
