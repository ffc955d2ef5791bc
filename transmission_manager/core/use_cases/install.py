"""
Install use case — converge the host to an installed, configured daemon.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from transmission_manager.adapters.registry import CapabilityRegistry
from transmission_manager.core.models.facts import DesiredState, EnvironmentFacts
from transmission_manager.core.models.run import InstallRecord
from transmission_manager.core.services.actions import build_install_registry
from transmission_manager.core.use_cases.runtime import ConvergeOutcome, Runtime, converge

logger = logging.getLogger(__name__)


@dataclass
class InstallResult:
    """Outcome of ``run_install``."""

    outcome: ConvergeOutcome
    desired: DesiredState
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.outcome.ok

    @property
    def version(self) -> str:
        return self.desired.version

    def to_dict(self) -> dict:
        result: dict = {
            "dry_run": self.dry_run,
            "version": self.version,
            "plan": self.outcome.plan.to_dict(),
        }
        if self.outcome.run is not None:
            result["run"] = self.outcome.run.to_dict()
        return result


def resolve_desired(
    desired: DesiredState,
    capabilities: CapabilityRegistry,
    default_version: str,
) -> DesiredState:
    """Replace ``latest`` with a concrete version.

    Falls back to the configured default when no release can be found.
    """
    if not desired.wants_latest:
        return desired.resolved(desired.version)
    latest = capabilities.fetcher.resolve_latest()
    if latest is None:
        logger.warning("Could not determine the latest release — using %s", default_version)
        latest = default_version
    return desired.resolved(latest)


def previous_install(runtime: Runtime) -> InstallRecord | None:
    """The last converged install, for the reinstall confirmation."""
    return runtime.store.last_success()


def run_install(
    runtime: Runtime,
    desired: DesiredState,
    *,
    dry_run: bool = False,
    targets: Iterable[str] | None = None,
) -> InstallResult:
    """Plan and apply the install catalog.

    Args:
        desired: Target state; ``latest`` is resolved after probing.
        dry_run: Compute and return the plan without applying it.
        targets: Restrict the plan to these action names.
    """
    resolved: list[DesiredState] = []

    def _resolve(facts: EnvironmentFacts, capabilities: CapabilityRegistry) -> DesiredState:
        wanted = resolve_desired(desired, capabilities, runtime.config.default_version)
        resolved.append(wanted)
        return wanted

    outcome = converge(
        runtime,
        build_install_registry(runtime.config),
        _resolve,
        operation="install",
        targets=targets,
        dry_run=dry_run,
    )
    return InstallResult(outcome=outcome, desired=resolved[-1], dry_run=dry_run)
