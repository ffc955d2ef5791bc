"""Domain models: facts, desired state, results, runs and config."""

from transmission_manager.core.models.action import ActionResult
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.models.facts import (
    CREDENTIAL_GENERATE,
    CREDENTIAL_UNCHANGED,
    LATEST,
    DesiredState,
    EnvironmentFacts,
    InitSystem,
    OsFamily,
)
from transmission_manager.core.models.lock import LockRecord
from transmission_manager.core.models.run import ConvergenceRun, InstallRecord, ManagerState

__all__ = [
    "CREDENTIAL_GENERATE",
    "CREDENTIAL_UNCHANGED",
    "LATEST",
    "ActionResult",
    "ConvergenceRun",
    "DesiredState",
    "EnvironmentFacts",
    "InitSystem",
    "InstallRecord",
    "LockRecord",
    "ManagerConfig",
    "ManagerState",
    "OsFamily",
]
