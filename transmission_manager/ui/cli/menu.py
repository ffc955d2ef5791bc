"""
Interactive menu — numbered entries dispatching to the CLI commands.

Each entry invokes the same click command the non-interactive CLI
uses, so prompts, output and error handling are identical. A failing
entry reports its cause and returns to the menu.
"""

from __future__ import annotations

import logging

import click

from transmission_manager.core.config.loader import ConfigError
from transmission_manager.core.errors import ManagerError
from transmission_manager.ui.cli.common import get_runtime

logger = logging.getLogger(__name__)

# (label, command path under the root group, arguments)
MENU_ENTRIES: list[tuple[str, tuple[str, ...], list[str]]] = [
    ("Install/Update", ("install",), []),
    ("Uninstall", ("uninstall",), []),
    ("Show Status", ("status",), ["--check-latest"]),
    ("Start Service", ("start",), []),
    ("Stop Service", ("stop",), []),
    ("Restart Service", ("restart",), []),
    ("View Config", ("config", "show"), []),
    ("Backup", ("backup",), []),
    ("Set Password", ("password", "set"), []),
    ("Generate Random Password", ("password", "random"), []),
    ("Check Firewall", ("firewall",), []),
    ("View Logs", ("logs",), []),
    ("Show Performance", ("perf",), []),
    ("Apply Network Optimizations", ("optimize",), []),
    ("View Install Logs", ("logs",), ["--history"]),
    ("Exit", (), []),
]


def render_menu(installed_version: str | None) -> str:
    lines = [
        "╔════════════════════════════════════════╗",
        "║    Transmission Seedbox Manager        ║",
        "╚════════════════════════════════════════╝",
        "",
        f"Current: Transmission {installed_version}" if installed_version else "Current: Not installed",
        "",
    ]
    for number, (label, _, _) in enumerate(MENU_ENTRIES, start=1):
        lines.append(f"{number:>2}) {label}")
    return "\n".join(lines)


def _resolve(root: click.Context, path: tuple[str, ...]) -> click.Command:
    command: click.Command = root.command
    for name in path:
        assert isinstance(command, click.Group)
        found = command.get_command(root, name)
        if found is None:
            raise click.UsageError(f"Unknown menu command: {' '.join(path)}")
        command = found
    return command


def run_entry(root: click.Context, choice: int) -> bool:
    """Run menu entry ``choice`` (1-based). Returns False on Exit."""
    label, path, args = MENU_ENTRIES[choice - 1]
    if not path:
        return False

    command = _resolve(root, path)
    logger.debug("Menu entry %d: %s", choice, label)
    try:
        # Parsed like a command line, so defaults and prompts apply
        with command.make_context(path[-1], list(args), parent=root) as sub_ctx:
            command.invoke(sub_ctx)
    except click.exceptions.Exit:
        pass
    except (ManagerError, ConfigError) as e:
        click.secho(f"❌ {e}", fg="red", err=True)
    except click.ClickException as e:
        e.show()
    except click.Abort:
        click.echo()
    return True


def run_menu(root: click.Context) -> None:
    """Show the menu until the operator picks Exit."""
    runtime = get_runtime(root)
    count = len(MENU_ENTRIES)

    while True:
        facts = runtime.probe()
        click.clear()
        click.secho(render_menu(facts.installed_version), fg="blue")
        choice = click.prompt(f"Select [1-{count}]", type=click.IntRange(1, count), err=True)
        if not run_entry(root, choice):
            click.echo("Goodbye!")
            return
        click.pause("Press Enter to continue...")
