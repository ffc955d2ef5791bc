"""
Shared CLI plumbing — runtime lookup, root check and run rendering.
"""

from __future__ import annotations

from pathlib import Path

import click

from transmission_manager.core.config.loader import load_config
from transmission_manager.core.engine.executor import Plan
from transmission_manager.core.models.run import ConvergenceRun
from transmission_manager.core.use_cases.runtime import Runtime, require_root

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 3
EXIT_LOCKED = 4

_STATUS_MARKS = {
    "success": ("✓", "green"),
    "already_satisfied": ("✓", "green"),
    "skipped": ("⊘", "yellow"),
    "failed": ("✗", "red"),
}


def get_runtime(ctx: click.Context) -> Runtime:
    """The runtime for this invocation, built on first use."""
    obj = ctx.find_root().obj
    if obj.get("runtime") is None:
        config_path: Path | None = obj.get("config_path")
        obj["runtime"] = Runtime.for_host(load_config(config_path), command=ctx.command_path)
    return obj["runtime"]


def ensure_root(ctx: click.Context, command: str) -> None:
    if ctx.find_root().obj.get("root_check", True):
        require_root(command)


def print_plan(plan: Plan) -> None:
    if plan.empty:
        click.secho("✓ Nothing to do — already converged", fg="green")
        return
    click.secho(f"Plan ({plan.operation}): {len(plan)} action(s)", fg="cyan", bold=True)
    for index, name in enumerate(plan.actions, start=1):
        click.echo(f"  {index}. {name}")


def print_run(run: ConvergenceRun) -> None:
    """Per-action outcome lines plus a summary.

    Settings backups taken by an action are listed under it; a failed
    run ends with where to look next (installer log, run history).
    """
    for result in run.results:
        mark, color = _STATUS_MARKS.get(result.status, ("•", "white"))
        line = f"  {mark} {result.action}"
        if result.status == "already_satisfied":
            line += " (already satisfied)"
        elif result.reason and result.status != "success":
            line += f" — {result.reason}"
        click.secho(line, fg=color)
        if result.metadata.get("backup"):
            click.echo(f"      Settings backup: {result.metadata['backup']}")

    if run.ok:
        click.secho(f"\n✅ {run.operation} complete ({run.run_id})", fg="green", bold=True)
        return
    color = "yellow" if run.partial else "red"
    click.secho(f"\n❌ {run.operation} {run.status}: {run.failure_reason}", fg=color, bold=True)
    for label, path in _failure_paths():
        click.echo(f"   {label}: {path}")


def _failure_paths() -> list[tuple[str, str]]:
    ctx = click.get_current_context(silent=True)
    if ctx is None:
        return []
    obj = ctx.find_root().obj or {}
    paths = []
    if obj.get("log_file"):
        paths.append(("Log", str(obj["log_file"])))
    runtime = obj.get("runtime")
    if runtime is not None:
        paths.append(("Run history", str(runtime.config.history_file)))
    return paths


def run_exit_code(run: ConvergenceRun | None) -> int:
    return EXIT_OK if run is None or run.ok else EXIT_FAILURE
