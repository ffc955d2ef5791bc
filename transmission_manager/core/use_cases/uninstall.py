"""
Uninstall use case — the removal catalog on the same engine.

A successful uninstall clears the install marker. The account and its
data (home, downloads, daemon logs) go only with ``purge_data``.
"""

from __future__ import annotations

from transmission_manager.core.models.facts import DesiredState
from transmission_manager.core.services.actions import build_removal_registry
from transmission_manager.core.use_cases.runtime import ConvergeOutcome, Runtime, converge


def run_uninstall(runtime: Runtime, *, purge_data: bool = False, dry_run: bool = False) -> ConvergeOutcome:
    desired = DesiredState(running=False, purge_data=purge_data)
    return converge(
        runtime,
        build_removal_registry(runtime.config),
        desired,
        operation="uninstall",
        dry_run=dry_run,
    )


def is_installed(runtime: Runtime) -> bool:
    """Whether anything the removal catalog would touch is present."""
    facts = runtime.probe()
    return facts.installed or facts.service_unit or facts.service_account
