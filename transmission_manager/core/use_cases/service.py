"""
Service control use cases — start, stop, restart under the host lock.
"""

from __future__ import annotations

from transmission_manager.core.models.facts import DesiredState
from transmission_manager.core.services.actions import (
    ENSURE_SERVICE_STATE,
    build_install_registry,
    build_restart_registry,
)
from transmission_manager.core.use_cases.runtime import ConvergeOutcome, Runtime, converge

SERVICE_COMMANDS = ("start", "stop", "restart")


def control_service(runtime: Runtime, command: str) -> ConvergeOutcome:
    """Run ``start``, ``stop`` or ``restart``.

    Start and stop converge the running state (a no-op when it already
    holds); restart always cycles the daemon.

    Raises:
        ValueError: On an unknown command.
    """
    if command not in SERVICE_COMMANDS:
        raise ValueError(f"Unknown service command: {command!r}")

    if command == "restart":
        return converge(
            runtime,
            build_restart_registry(),
            DesiredState(running=True),
            operation="service-restart",
        )

    return converge(
        runtime,
        build_install_registry(runtime.config),
        DesiredState(running=command == "start"),
        operation=f"service-{command}",
        targets=[ENSURE_SERVICE_STATE],
    )
