"""
Optimize use case — apply the network tuning on its own.
"""

from __future__ import annotations

from transmission_manager.core.models.facts import DesiredState
from transmission_manager.core.services.actions import APPLY_TUNING, build_install_registry
from transmission_manager.core.use_cases.runtime import ConvergeOutcome, Runtime, converge


def run_optimize(runtime: Runtime) -> ConvergeOutcome:
    return converge(
        runtime,
        build_install_registry(runtime.config),
        DesiredState(network_tuning=True),
        operation="optimize",
        targets=[APPLY_TUNING],
    )
