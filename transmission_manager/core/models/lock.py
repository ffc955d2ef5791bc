"""Lock record written to the host lock file."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class LockRecord(BaseModel):
    """Holder of the host lock.

    Attributes:
        pid: Process ID of the lock holder.
        token: Random token distinguishing this acquisition.
        command: Command that acquired the lock.
        acquired_at: When the lock was acquired.
    """

    pid: int
    token: str = ""
    command: str = ""
    acquired_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
