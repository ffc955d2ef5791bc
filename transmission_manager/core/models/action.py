"""
ActionResult — the outcome contract between actions, adapters and engine.

Adapters and action apply steps return results; they never raise for
external failures. The engine records one result per planned action.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

ResultStatus = Literal["success", "skipped", "failed", "already_satisfied"]


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ActionResult(BaseModel):
    """Tagged outcome of one action.

    ``reason`` explains failures and skips; ``output`` carries whatever
    the external operation printed (trimmed); ``metadata`` is free-form
    (installed path, backup path, bracket info).
    """

    action: str = ""
    status: ResultStatus = "success"
    reason: str | None = None
    output: str = ""

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the desired effect now holds."""
        return self.status in ("success", "already_satisfied")

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @classmethod
    def success(cls, action: str = "", output: str = "", **kwargs: Any) -> ActionResult:
        """Create a success result."""
        return cls(action=action, status="success", output=output, **kwargs)

    @classmethod
    def failure(cls, action: str = "", reason: str = "failed", **kwargs: Any) -> ActionResult:
        """Create a failure result."""
        return cls(action=action, status="failed", reason=reason, **kwargs)

    @classmethod
    def skip(cls, action: str = "", reason: str = "", **kwargs: Any) -> ActionResult:
        """Create a skip result."""
        return cls(action=action, status="skipped", reason=reason, **kwargs)

    @classmethod
    def satisfied(cls, action: str = "", reason: str = "", **kwargs: Any) -> ActionResult:
        """Create an already-satisfied result."""
        return cls(action=action, status="already_satisfied", reason=reason, **kwargs)
