"""
Runtime — the collaborators every use case runs with.

A ``Runtime`` bundles the config, the probe, the capability selection,
the state store and the host lock. ``Runtime.for_host`` wires the real
ones; tests build one around a simulated host.

``converge`` is the shared vertical slice:

    lock → probe → select capabilities → plan → apply → record
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from transmission_manager.adapters.registry import CapabilityRegistry
from transmission_manager.core.config.loader import config_hash
from transmission_manager.core.engine.executor import ConvergenceEngine, Plan
from transmission_manager.core.engine.interrupt import signals_cancel
from transmission_manager.core.engine.registry import ActionRegistry
from transmission_manager.core.errors import Interrupted, RootRequired
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.models.facts import DesiredState, EnvironmentFacts
from transmission_manager.core.models.run import ConvergenceRun
from transmission_manager.core.persistence.audit import HistoryWriter
from transmission_manager.core.persistence.lock import LockManager
from transmission_manager.core.persistence.state_file import StateStore
from transmission_manager.core.services.detection import EnvironmentProbe

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything a use case needs to touch the host."""

    config: ManagerConfig
    probe: Callable[[], EnvironmentFacts]
    select_capabilities: Callable[[EnvironmentFacts], CapabilityRegistry]
    store: StateStore
    lock: LockManager
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def for_host(cls, config: ManagerConfig, command: str = "") -> Runtime:
        return cls(
            config=config,
            probe=EnvironmentProbe(config).snapshot,
            select_capabilities=lambda facts: CapabilityRegistry.for_host(facts, config),
            store=StateStore(Path(config.state_file), HistoryWriter(Path(config.history_file))),
            lock=LockManager(Path(config.lock_file), command=command),
        )

    def snapshot(self) -> tuple[EnvironmentFacts, CapabilityRegistry]:
        facts = self.probe()
        return facts, self.select_capabilities(facts)

    def engine(self, registry: ActionRegistry, capabilities: CapabilityRegistry) -> ConvergenceEngine:
        return ConvergenceEngine(registry, self.config, capabilities, cancel_event=self.cancel_event)


@dataclass
class ConvergeOutcome:
    """Plan and (unless dry-run) the recorded run."""

    plan: Plan
    run: ConvergenceRun | None = None
    capabilities: CapabilityRegistry | None = None

    @property
    def ok(self) -> bool:
        return self.run is None or self.run.ok


def require_root(command: str = "") -> None:
    """Raise ``RootRequired`` unless running with uid 0."""
    if os.geteuid() != 0:
        raise RootRequired(command)


def converge(
    runtime: Runtime,
    registry: ActionRegistry,
    desired: DesiredState | Callable[[EnvironmentFacts, CapabilityRegistry], DesiredState],
    *,
    operation: str,
    targets: Iterable[str] | None = None,
    dry_run: bool = False,
) -> ConvergeOutcome:
    """Plan, apply and record one run under the host lock.

    Args:
        desired: The target state, or a callable deriving it from the
            fresh facts and capabilities (e.g. to resolve ``latest``).
        targets: Restrict the plan to these action names.
        dry_run: Plan only; nothing is locked, applied or recorded.

    Raises:
        AlreadyLocked / LockContention: Another run holds the lock.
        Interrupted: SIGINT or SIGTERM stopped the run; the partial run is recorded.
    """
    if dry_run:
        facts, capabilities = runtime.snapshot()
        wanted = desired(facts, capabilities) if callable(desired) else desired
        plan = runtime.engine(registry, capabilities).plan(facts, wanted, targets, operation)
        return ConvergeOutcome(plan=plan, capabilities=capabilities)

    try:
        with runtime.lock.acquire(), signals_cancel(runtime.cancel_event):
            facts, capabilities = runtime.snapshot()
            wanted = desired(facts, capabilities) if callable(desired) else desired
            engine = runtime.engine(registry, capabilities)
            plan = engine.plan(facts, wanted, targets, operation)
            if plan.empty:
                logger.info("Nothing to do: %s is already converged", operation)
            run = engine.apply(plan)

            version = wanted.version if not wanted.wants_latest else None
            runtime.store.record(
                run,
                version=version,
                config_hash=config_hash(runtime.config, {"network_tuning": wanted.network_tuning}),
            )
    finally:
        # Cancellation is per run
        runtime.cancel_event.clear()

    if run.interrupted:
        raise Interrupted(run.run_id)
    return ConvergeOutcome(plan=plan, run=run, capabilities=capabilities)
