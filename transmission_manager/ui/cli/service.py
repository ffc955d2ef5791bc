"""
CLI commands for service control.

Thin wrappers over ``core.use_cases.service``.
"""

from __future__ import annotations

import click

from transmission_manager.ui.cli.common import ensure_root, get_runtime, print_run, run_exit_code


def _control(ctx: click.Context, command: str) -> None:
    from transmission_manager.core.use_cases.service import control_service

    ensure_root(ctx, command)
    outcome = control_service(get_runtime(ctx), command)
    if outcome.run is not None:
        print_run(outcome.run)
    ctx.exit(run_exit_code(outcome.run))


@click.command()
@click.pass_context
def start(ctx: click.Context) -> None:
    """Start the daemon."""
    _control(ctx, "start")


@click.command()
@click.pass_context
def stop(ctx: click.Context) -> None:
    """Stop the daemon (killing it if it does not exit in time)."""
    _control(ctx, "stop")


@click.command()
@click.pass_context
def restart(ctx: click.Context) -> None:
    """Restart the daemon."""
    _control(ctx, "restart")
