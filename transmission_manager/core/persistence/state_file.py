"""
State file persistence — the install marker.

State is stored as JSON (by default ``/etc/transmission-manager.installed``).
Writes are atomic (write to temp file, then rename) so a crash mid-write
never leaves a half-written marker. Only completed runs are recorded.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from transmission_manager.core.models.run import ConvergenceRun, InstallRecord, ManagerState
from transmission_manager.core.persistence.audit import HistoryWriter, RunHistoryEntry

logger = logging.getLogger(__name__)


def load_state(path: Path) -> ManagerState:
    """Load manager state from a JSON file.

    Returns:
        ManagerState. A missing, corrupt or foreign file (the old
        plain-text marker, for instance) yields a fresh state, which
        means "assume not converged".
    """
    if not path.is_file():
        logger.info("No state file at %s — starting fresh", path)
        return ManagerState()

    try:
        raw = path.read_text(encoding="utf-8")
        data = json.loads(raw)
        state = ManagerState.model_validate(data)
        logger.debug("Loaded state from %s (updated_at=%s)", path, state.updated_at)
        return state
    except json.JSONDecodeError as e:
        logger.warning("Unreadable state file %s: %s — starting fresh", path, e)
        return ManagerState()
    except Exception as e:
        logger.warning("Cannot load state from %s: %s — starting fresh", path, e)
        return ManagerState()


def save_state(state: ManagerState, path: Path) -> None:
    """Save manager state to a JSON file (atomic write)."""
    state.touch()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = state.model_dump(mode="json")
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=".tm_state_",
            suffix=".tmp",
        )
        tmp = Path(tmp_path)
        try:
            with open(fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp.chmod(0o640)
            tmp.replace(path)
            logger.debug("State saved to %s", path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
    except Exception as e:
        logger.error("Failed to save state to %s: %s", path, e)
        raise


class StateStore:
    """Last completed run, last converged install, and run history.

    Args:
        path: State file (install marker).
        history: Optional NDJSON run history written alongside.
    """

    def __init__(self, path: Path, history: HistoryWriter | None = None):
        self._path = path
        self._history = history

    @property
    def path(self) -> Path:
        return self._path

    @property
    def history(self) -> HistoryWriter | None:
        return self._history

    def load(self) -> ManagerState:
        return load_state(self._path)

    def record(
        self,
        run: ConvergenceRun,
        version: str | None = None,
        config_hash: str = "",
    ) -> ManagerState:
        """Persist a completed run.

        A successful install updates the converged-install record; a
        successful uninstall clears it.

        Raises:
            ValueError: If the run has not finished.
        """
        if run.ended_at is None:
            raise ValueError(f"Run {run.run_id} is still in progress")

        state = self.load()
        state.last_run = run
        if run.ok and run.operation == "install":
            state.last_success = InstallRecord(
                version=version,
                converged_at=run.ended_at,
                config_hash=config_hash,
                run_id=run.run_id,
            )
        elif run.ok and run.operation == "uninstall":
            state.last_success = None
        save_state(state, self._path)

        if self._history is not None:
            self._history.write(RunHistoryEntry.from_run(run, version=version))
        return state

    def last_run(self) -> ConvergenceRun | None:
        return self.load().last_run

    def last_success(self) -> InstallRecord | None:
        return self.load().last_success
