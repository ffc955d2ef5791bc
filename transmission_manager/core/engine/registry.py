"""
Action registry — catalog of named, idempotent convergence actions.

Registration is where programming errors surface: duplicate names,
dependency cycles and non-idempotent specs are rejected immediately,
and ``validate()`` catches dependencies on names never registered.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from transmission_manager.core.engine.dag import find_cycle, transitive_dependents
from transmission_manager.core.errors import (
    CyclicDependency,
    DuplicateAction,
    PreconditionError,
)
from transmission_manager.core.models.action import ActionResult
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.models.facts import DesiredState, EnvironmentFacts

if TYPE_CHECKING:
    from transmission_manager.adapters.registry import CapabilityRegistry

logger = logging.getLogger(__name__)

Precondition = Callable[[EnvironmentFacts, DesiredState], bool]
Effect = Callable[[EnvironmentFacts, DesiredState, ActionResult], dict[str, Any]]


@dataclass
class ActionContext:
    """What an action's apply step sees.

    ``facts`` is the live view: the run's snapshot with the effects of
    every action that succeeded so far.
    """

    facts: EnvironmentFacts
    desired: DesiredState
    config: ManagerConfig
    capabilities: CapabilityRegistry
    run_id: str = ""


@dataclass(frozen=True)
class ActionSpec:
    """Declaration of one convergence action.

    Attributes:
        name: Unique action name.
        precondition: True when the action's goal already holds.
            Must be cheap and side-effect free.
        apply: Performs the action; returns a result, never raises for
            external failures.
        depends_on: Names that must run first when both are planned.
        idempotent: Must be True; re-running a succeeded action is a no-op.
        effect: Fact updates to apply to the live view after success.
        requires_stopped: Run only while the daemon is stopped.
        description: One-line human description.
    """

    name: str
    precondition: Precondition
    apply: Callable[[ActionContext], ActionResult]
    depends_on: frozenset[str] = field(default_factory=frozenset)
    idempotent: bool = True
    effect: Effect | None = None
    requires_stopped: bool = False
    description: str = ""

    def effect_for(
        self,
        facts: EnvironmentFacts,
        desired: DesiredState,
        result: ActionResult,
    ) -> dict[str, Any]:
        if self.effect is None:
            return {}
        return self.effect(facts, desired, result)


class ActionRegistry:
    """Ordered catalog of action specs.

    Iteration follows registration order, which is also the tie-break
    order of the planner.
    """

    def __init__(self, specs: list[ActionSpec] | None = None):
        self._specs: dict[str, ActionSpec] = {}
        for spec in specs or []:
            self.register(spec)

    def register(self, spec: ActionSpec) -> None:
        """Add a spec.

        Raises:
            PreconditionError: If the spec is not idempotent.
            DuplicateAction: If the name is already registered.
            CyclicDependency: If this registration completes a cycle.
        """
        if not spec.idempotent:
            raise PreconditionError(f"Action '{spec.name}' must be idempotent")
        if spec.name in self._specs:
            raise DuplicateAction(spec.name)

        graph = self.dependency_graph()
        graph[spec.name] = set(spec.depends_on)
        cycle = find_cycle(graph, spec.name)
        if cycle is not None:
            raise CyclicDependency(cycle)

        self._specs[spec.name] = spec
        logger.debug("Registered action: %s", spec.name)

    def validate(self) -> None:
        """Reject dependencies on names that were never registered.

        Raises:
            PreconditionError: Naming the first unknown dependency.
        """
        for spec in self._specs.values():
            for dep in sorted(spec.depends_on):
                if dep not in self._specs:
                    raise PreconditionError(
                        f"Action '{spec.name}' depends on unknown action '{dep}'"
                    )

    def get(self, name: str) -> ActionSpec:
        try:
            return self._specs[name]
        except KeyError:
            raise PreconditionError(f"Unknown action: '{name}'") from None

    def names(self) -> list[str]:
        return list(self._specs)

    def specs(self) -> list[ActionSpec]:
        return list(self._specs.values())

    def dependency_graph(self) -> dict[str, set[str]]:
        """``name → depends_on`` for every registered spec."""
        return {name: set(spec.depends_on) for name, spec in self._specs.items()}

    def dependents_of(self, name: str) -> set[str]:
        """Transitive dependents of ``name``."""
        return transitive_dependents(self.dependency_graph(), name)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __iter__(self) -> Iterator[ActionSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)
