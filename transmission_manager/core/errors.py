"""
Error taxonomy for the manager.

Only programming errors (bad registrations) and run-level conditions
(lock contention, interruption) are raised. Failures of external
operations are never raised to the engine: adapters report them as
``ActionResult.failure`` and the engine records them in the run.
"""

from __future__ import annotations


class ManagerError(Exception):
    """Base class for all manager errors."""


class ProbeError(ManagerError):
    """Environment detection was inconclusive.

    Raised by individual probe helpers and always caught inside
    ``EnvironmentProbe.snapshot()``, which degrades the fact to
    ``unknown`` / absent instead of failing.
    """


class PreconditionError(ManagerError):
    """An action registration is malformed (programming error)."""


class DuplicateAction(PreconditionError):
    """An action with the same name is already registered."""

    def __init__(self, name: str):
        super().__init__(f"Action '{name}' is already registered")
        self.name = name


class CyclicDependency(PreconditionError):
    """Registering an action would complete a dependency cycle."""

    def __init__(self, cycle: list[str]):
        super().__init__("Dependency cycle: " + " → ".join(cycle))
        self.cycle = cycle


class ActionFailed(ManagerError):
    """An external operation failed.

    Raised only inside adapter helpers; the engine turns it into a
    failed ``ActionResult``.
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class LockContention(ManagerError):
    """Another run holds the host lock."""


class AlreadyLocked(LockContention):
    """The lock is held by a live process."""

    def __init__(self, holder_pid: int | None, lock_path: str = ""):
        holder = str(holder_pid) if holder_pid is not None else "unknown"
        super().__init__(
            f"Another instance is already running (PID: {holder}, lock: {lock_path})"
        )
        self.holder_pid = holder_pid
        self.lock_path = lock_path


class Interrupted(ManagerError):
    """The operator cancelled the run between actions.

    Raised after the partial run has been recorded.
    """

    def __init__(self, run_id: str = ""):
        super().__init__(f"Run {run_id} interrupted; completed actions were kept" if run_id else "Interrupted")
        self.run_id = run_id


class RootRequired(ManagerError):
    """A mutating command was started without root privileges."""

    def __init__(self, command: str = ""):
        what = f"'{command}' " if command else ""
        super().__init__(f"Command {what}must be run as root (or with sudo)")
        self.command = command
