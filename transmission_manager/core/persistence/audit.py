"""
Run history — append-only NDJSON ledger.

Every completed run appends one line. Entries are never modified or
deleted; the file is kept at mode 0640 like the installer log.
"""

from __future__ import annotations

import json
import logging
import os
from collections import deque
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from transmission_manager.core.models.run import ConvergenceRun

logger = logging.getLogger(__name__)


class RunHistoryEntry(BaseModel):
    """One completed run, summarized."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    operation: str = ""            # install, uninstall, optimize, password, ...

    status: str = ""               # ok, partial, failed
    failure_reason: str | None = None
    version: str | None = None

    actions_total: int = 0
    actions_succeeded: int = 0
    actions_failed: int = 0
    actions_skipped: int = 0
    duration_ms: int = 0

    # One line per failed action: "<name>: <reason>"
    errors: list[str] = Field(default_factory=list)

    context: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_run(cls, run: ConvergenceRun, version: str | None = None) -> RunHistoryEntry:
        return cls(
            timestamp=run.ended_at or datetime.now(UTC).isoformat(),
            run_id=run.run_id,
            operation=run.operation,
            status=run.status,
            failure_reason=run.failure_reason,
            version=version,
            actions_total=len(run.results),
            actions_succeeded=run.succeeded,
            actions_failed=run.failed,
            actions_skipped=run.skipped,
            duration_ms=sum(r.duration_ms for r in run.results),
            errors=[f"{r.action}: {r.reason}" for r in run.results if r.failed],
        )


class HistoryWriter:
    """Append-only run history writer."""

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: RunHistoryEntry) -> None:
        """Append an entry. Write errors are logged, not raised."""
        data = entry.model_dump(mode="json")
        line = json.dumps(data, ensure_ascii=False) + "\n"

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            os.chmod(self._path, 0o640)
            logger.debug("History entry written: %s/%s", entry.operation, entry.run_id)
        except OSError as e:
            logger.error("Failed to write run history %s: %s", self._path, e)

    def read_all(self) -> list[RunHistoryEntry]:
        """All entries, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(RunHistoryEntry.model_validate(json.loads(line)))
                    except Exception as e:
                        logger.warning("Skipping corrupt history entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read run history: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[RunHistoryEntry]:
        """The most recent ``n`` entries, oldest first."""
        return list(deque(self.read_all(), maxlen=n))

    def entry_count(self) -> int:
        if not self._path.is_file():
            return 0
        try:
            with self._path.open("r", encoding="utf-8") as f:
                return sum(1 for line in f if line.strip())
        except OSError:
            return 0
