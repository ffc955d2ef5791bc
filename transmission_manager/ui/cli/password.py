"""
CLI commands for the RPC password.

Thin wrappers over ``core.use_cases.password``.
"""

from __future__ import annotations

import click

from transmission_manager.ui.cli.common import ensure_root, get_runtime, print_run, run_exit_code


@click.group()
def password() -> None:
    """RPC password — set a chosen one or generate a random one."""


@password.command("set")
@click.option(
    "--password",
    "plain",
    prompt=True,
    hide_input=True,
    confirmation_prompt=True,
    help="New password (prompted when omitted).",
)
@click.pass_context
def set_cmd(ctx: click.Context, plain: str) -> None:
    """Hash and store a new RPC password."""
    from transmission_manager.core.use_cases.password import set_password

    ensure_root(ctx, "password set")
    try:
        result = set_password(get_runtime(ctx), plain)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--password") from None

    if result.outcome.run is not None:
        print_run(result.outcome.run)
    ctx.exit(run_exit_code(result.outcome.run))


@password.command("random")
@click.option("--length", default=16, show_default=True, type=click.IntRange(min=8), help="Password length.")
@click.pass_context
def random_cmd(ctx: click.Context, length: int) -> None:
    """Generate, store and print a random RPC password."""
    from transmission_manager.core.use_cases.password import random_password

    ensure_root(ctx, "password random")
    result = random_password(get_runtime(ctx), length=length)
    run = result.outcome.run
    if run is not None:
        print_run(run)
    if result.ok:
        click.secho(f"\n🔑 Password: {result.plain}", fg="cyan", bold=True)
        click.echo("   (shown once; also saved to the password file, mode 0600)")
    ctx.exit(run_exit_code(run))
