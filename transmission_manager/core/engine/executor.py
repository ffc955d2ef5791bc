"""
Convergence engine — plan and apply.

Flow:
    facts + desired → plan (unsatisfied actions, dependency order)
                    → apply (sequential, live facts, failure isolation)
                    → ConvergenceRun

The engine never prompts and never re-probes the host. The live view of
the facts during a run is the snapshot plus each succeeded action's
declared effect.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from transmission_manager.core.engine.dag import stable_topological_sort
from transmission_manager.core.engine.registry import (
    ActionContext,
    ActionRegistry,
    ActionSpec,
)
from transmission_manager.core.errors import PreconditionError
from transmission_manager.core.models.action import ActionResult
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.models.facts import DesiredState, EnvironmentFacts
from transmission_manager.core.models.run import REASON_INTERRUPTED, ConvergenceRun

if TYPE_CHECKING:
    from transmission_manager.adapters.registry import CapabilityRegistry

logger = logging.getLogger(__name__)


@dataclass
class Plan:
    """Ordered action names plus the inputs they were computed from."""

    actions: list[str]
    facts: EnvironmentFacts
    desired: DesiredState
    operation: str = "install"

    @property
    def empty(self) -> bool:
        return not self.actions

    def __len__(self) -> int:
        return len(self.actions)

    def to_dict(self) -> dict[str, Any]:
        facts = self.facts.model_dump(mode="json")
        facts["available_tools"] = sorted(self.facts.available_tools)
        return {
            "operation": self.operation,
            "actions": list(self.actions),
            "desired": self.desired.model_dump(mode="json"),
            "facts": facts,
        }


class ConvergenceEngine:
    """Plans and applies actions from one registry.

    Args:
        registry: The action catalog. Validated on construction.
        config: Manager configuration handed to every action.
        capabilities: Adapter registry (service control for the
            stop/start bracket, plus whatever the actions use).
        cancel_event: Set (e.g. by a SIGINT handler) to stop the run
            before the next action.
    """

    def __init__(
        self,
        registry: ActionRegistry,
        config: ManagerConfig,
        capabilities: CapabilityRegistry,
        cancel_event: threading.Event | None = None,
    ):
        registry.validate()
        self._registry = registry
        self._config = config
        self._capabilities = capabilities
        self._cancel = cancel_event or threading.Event()

    @property
    def registry(self) -> ActionRegistry:
        return self._registry

    # ── Planning ─────────────────────────────────────────────────

    def plan(
        self,
        facts: EnvironmentFacts,
        desired: DesiredState,
        targets: Iterable[str] | None = None,
        operation: str = "install",
    ) -> Plan:
        """Compute the ordered list of actions whose goal does not hold.

        Args:
            facts: Snapshot to evaluate preconditions against.
            desired: Target state.
            targets: Restrict the plan to these action names. Their
                dependencies are not pulled in.

        Raises:
            PreconditionError: If a target names an unknown action.
        """
        wanted: set[str] | None = None
        if targets is not None:
            wanted = set(targets)
            for name in sorted(wanted):
                if name not in self._registry:
                    raise PreconditionError(f"Unknown action: '{name}'")

        working: list[str] = []
        for spec in self._registry:
            if wanted is not None and spec.name not in wanted:
                continue
            if not self._is_satisfied(spec, facts, desired):
                working.append(spec.name)

        ordered = stable_topological_sort(working, self._registry.dependency_graph())
        logger.debug("Plan for %s: %s", operation, ordered or "(empty)")
        return Plan(actions=ordered, facts=facts, desired=desired, operation=operation)

    # ── Applying ─────────────────────────────────────────────────

    def apply(self, plan: Plan, run_id: str | None = None) -> ConvergenceRun:
        """Run every planned action in order and return the record.

        A failed action marks its transitive dependents skipped;
        independent actions still run. Nothing is rolled back.
        """
        run = ConvergenceRun(
            run_id=run_id or generate_run_id(),
            operation=plan.operation,
            plan=list(plan.actions),
            facts_before=plan.facts,
            desired=plan.desired,
        )
        live = plan.facts
        desired = plan.desired
        blocked_by: dict[str, str] = {}
        total = len(plan.actions)

        for index, name in enumerate(plan.actions, start=1):
            if self._cancel.is_set():
                logger.warning("Run interrupted before %s", name)
                for remaining in plan.actions[index - 1:]:
                    run.results.append(ActionResult.skip(remaining, reason=REASON_INTERRUPTED))
                run.failure_reason = REASON_INTERRUPTED
                break

            spec = self._registry.get(name)

            if name in blocked_by:
                result = ActionResult.skip(
                    name, reason=f"dependency '{blocked_by[name]}' failed"
                )
                run.results.append(result)
                logger.info("[STEP %d/%d] %s ⊘ skipped (%s)", index, total, name, result.reason)
                continue

            logger.info("[STEP %d/%d] %s", index, total, spec.description or name)

            if self._is_satisfied(spec, live, desired):
                result = ActionResult.satisfied(name, reason="already satisfied")
                run.results.append(result)
                logger.info("  ✓ %s already satisfied", name)
                continue

            start = time.monotonic()
            started_at = datetime.now(UTC).isoformat()
            result, live = self._run_one(spec, live, desired, run.run_id)
            result.action = name
            result.started_at = started_at
            result.ended_at = datetime.now(UTC).isoformat()
            result.duration_ms = int((time.monotonic() - start) * 1000)
            run.results.append(result)

            if result.failed:
                logger.error("  ✗ %s failed: %s", name, result.reason)
                for dependent in self._registry.dependents_of(name):
                    blocked_by.setdefault(dependent, name)
            else:
                logger.info("  ✓ %s → %s", name, result.status)

        run.finish(facts_after=live)
        logger.info(
            "Run %s finished: %s (%d ok, %d failed, %d skipped)",
            run.run_id, run.status, run.succeeded, run.failed, run.skipped,
        )
        return run

    def _run_one(
        self,
        spec: ActionSpec,
        live: EnvironmentFacts,
        desired: DesiredState,
        run_id: str,
    ) -> tuple[ActionResult, EnvironmentFacts]:
        """Apply one action, bracketed by stop/start if it needs the daemon down."""
        services = self._capabilities.services
        bracketed = False

        if spec.requires_stopped and live.is_running:
            logger.info("  Stopping daemon before %s", spec.name)
            stopped = services.stop()
            if not stopped.ok:
                return (
                    ActionResult.failure(
                        spec.name, reason=f"could not stop daemon: {stopped.reason}"
                    ),
                    live,
                )
            live = live.updated(is_running=False)
            bracketed = True

        context = ActionContext(
            facts=live,
            desired=desired,
            config=self._config,
            capabilities=self._capabilities,
            run_id=run_id,
        )
        result = self._call_apply(spec, context)
        if result.ok:
            live = live.updated(**spec.effect_for(live, desired, result))

        if bracketed:
            logger.info("  Restarting daemon after %s", spec.name)
            started = services.start()
            result.metadata["bracket"] = {"stopped": True, "restarted": started.ok}
            if started.ok:
                live = live.updated(is_running=True)
            else:
                logger.error("Daemon did not restart after %s: %s", spec.name, started.reason)
                result.metadata["restart_error"] = started.reason

        return result, live

    @staticmethod
    def _call_apply(spec: ActionSpec, context: ActionContext) -> ActionResult:
        try:
            result = spec.apply(context)
        except Exception as e:
            # Apply steps should return failures, but never let one escape
            logger.exception("Action %s raised", spec.name)
            return ActionResult.failure(spec.name, reason=f"Unexpected error: {e}")
        if not isinstance(result, ActionResult):
            return ActionResult.failure(spec.name, reason="apply returned no result")
        return result

    @staticmethod
    def _is_satisfied(spec: ActionSpec, facts: EnvironmentFacts, desired: DesiredState) -> bool:
        try:
            return bool(spec.precondition(facts, desired))
        except Exception as e:
            logger.warning("Precondition of %s raised (%s) — treating as unsatisfied", spec.name, e)
            return False


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"
