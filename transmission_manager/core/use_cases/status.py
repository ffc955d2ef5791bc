"""
Status use case — facts, pending actions and run history in one view.

Read-only: no lock is taken and nothing is recorded. The pending list
is the plan ``install`` would run against the last converged version,
so an empty list means the host is converged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from transmission_manager.core.models.facts import (
    DesiredState,
    EnvironmentFacts,
    version_tuple,
)
from transmission_manager.core.models.lock import LockRecord
from transmission_manager.core.models.run import ConvergenceRun, InstallRecord
from transmission_manager.core.persistence.lock import pid_alive
from transmission_manager.core.services.actions import build_install_registry
from transmission_manager.core.services.settings_file import (
    DOWNLOAD_DIR_KEY,
    RPC_PORT_KEY,
    try_read_settings,
)
from transmission_manager.core.use_cases.runtime import Runtime

logger = logging.getLogger(__name__)


@dataclass
class StatusResult:
    """Aggregated installation status."""

    facts: EnvironmentFacts
    pending: list[str] = field(default_factory=list)
    last_run: ConvergenceRun | None = None
    last_success: InstallRecord | None = None
    lock_holder: LockRecord | None = None
    capabilities: dict[str, dict] = field(default_factory=dict)
    rpc_port: int | None = None
    download_dir: str | None = None
    latest_version: str | None = None

    @property
    def converged(self) -> bool:
        return self.last_success is not None and not self.pending

    @property
    def update_available(self) -> bool:
        installed = self.facts.installed_version
        if not installed or not self.latest_version:
            return False
        return version_tuple(self.latest_version) > version_tuple(installed)

    def to_dict(self) -> dict:
        facts = self.facts.model_dump(mode="json")
        facts["available_tools"] = sorted(self.facts.available_tools)
        result: dict = {
            "installed": self.facts.installed,
            "converged": self.converged,
            "facts": facts,
            "pending": list(self.pending),
            "rpc_port": self.rpc_port,
            "download_dir": self.download_dir,
            "capabilities": self.capabilities,
            "locked_by": self.lock_holder.model_dump(mode="json") if self.lock_holder else None,
            "last_success": self.last_success.model_dump(mode="json") if self.last_success else None,
            "last_run": None,
        }
        if self.last_run is not None:
            result["last_run"] = {
                "run_id": self.last_run.run_id,
                "operation": self.last_run.operation,
                "status": self.last_run.status,
                "failure_reason": self.last_run.failure_reason,
                "ended_at": self.last_run.ended_at,
            }
        if self.latest_version is not None:
            result["latest_version"] = self.latest_version
            result["update_available"] = self.update_available
        return result


def get_status(runtime: Runtime, check_latest: bool = False) -> StatusResult:
    """Probe the host and summarize it against the state store.

    Args:
        check_latest: Also look up the latest release (network access).
    """
    facts, capabilities = runtime.snapshot()
    state = runtime.store.load()

    result = StatusResult(
        facts=facts,
        last_run=state.last_run,
        last_success=state.last_success,
        capabilities=capabilities.status(),
    )

    holder = runtime.lock.holder()
    if holder is not None and pid_alive(holder.pid):
        result.lock_holder = holder

    settings = try_read_settings(runtime.config.settings_file)
    if settings is not None:
        result.rpc_port = settings.get(RPC_PORT_KEY, runtime.config.rpc_port)
        result.download_dir = settings.get(DOWNLOAD_DIR_KEY)

    if facts.installed or state.last_success is not None:
        target = (state.last_success.version if state.last_success else None) or facts.installed_version
        desired = DesiredState(version=target or runtime.config.default_version)
        engine = runtime.engine(build_install_registry(runtime.config), capabilities)
        result.pending = engine.plan(facts, desired, operation="status").actions

    if check_latest:
        result.latest_version = capabilities.fetcher.resolve_latest()
        if result.latest_version is None:
            logger.warning("Could not determine the latest release")

    return result
