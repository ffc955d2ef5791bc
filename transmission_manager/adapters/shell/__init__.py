"""Subprocess plumbing shared by every adapter."""

from transmission_manager.adapters.shell.command import CommandResult, Runner, run_command

__all__ = ["CommandResult", "Runner", "run_command"]
