"""
ConvergenceRun and the persisted manager state.

A run is one plan execution. It is recorded only once complete
(success, failure or interruption), so the state file never describes
an in-flight run.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from transmission_manager.core.models.action import ActionResult
from transmission_manager.core.models.facts import DesiredState, EnvironmentFacts

RunOutcome = Literal["success", "failed"]

REASON_INTERRUPTED = "interrupted"
REASON_TIMEOUT = "timeout"


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ConvergenceRun(BaseModel):
    """Record of one plan execution."""

    run_id: str = ""
    operation: str = "install"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str | None = None

    plan: list[str] = Field(default_factory=list)
    results: list[ActionResult] = Field(default_factory=list)

    outcome: RunOutcome = "success"
    failure_reason: str | None = None

    facts_before: EnvironmentFacts | None = None
    facts_after: EnvironmentFacts | None = None
    desired: DesiredState | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def ok(self) -> bool:
        return self.outcome == "success"

    @property
    def interrupted(self) -> bool:
        return self.failure_reason == REASON_INTERRUPTED

    @property
    def partial(self) -> bool:
        """Failed, but some actions took effect before the failure."""
        return not self.ok and self.succeeded > 0

    @property
    def status(self) -> str:
        """Summary status: ``ok``, ``partial`` or ``failed``."""
        if self.ok:
            return "ok"
        return "partial" if self.partial else "failed"

    def result_for(self, action: str) -> ActionResult | None:
        for result in self.results:
            if result.action == action:
                return result
        return None

    def finish(self, facts_after: EnvironmentFacts | None = None) -> None:
        """Close the run, deriving the outcome from the results."""
        self.ended_at = _now_iso()
        self.facts_after = facts_after
        if self.failure_reason is None and self.failed:
            first = next(r for r in self.results if r.failed)
            self.failure_reason = f"action failed: {first.action}"
        self.outcome = "failed" if self.failure_reason else "success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "operation": self.operation,
            "outcome": self.outcome,
            "status": self.status,
            "failure_reason": self.failure_reason,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "plan": list(self.plan),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "results": [r.model_dump(mode="json") for r in self.results],
        }


class InstallRecord(BaseModel):
    """Last successfully converged installation."""

    version: str | None = None
    converged_at: str = Field(default_factory=_now_iso)
    config_hash: str = ""
    run_id: str = ""


class ManagerState(BaseModel):
    """Root of the state file (install marker)."""

    schema_version: int = 1
    updated_at: str = Field(default_factory=_now_iso)

    last_run: ConvergenceRun | None = None
    last_success: InstallRecord | None = None

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()
