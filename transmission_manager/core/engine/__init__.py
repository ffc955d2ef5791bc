"""Convergence engine: action registry, planner and executor."""

from transmission_manager.core.engine.executor import ConvergenceEngine, Plan, generate_run_id
from transmission_manager.core.engine.registry import ActionContext, ActionRegistry, ActionSpec

__all__ = [
    "ActionContext",
    "ActionRegistry",
    "ActionSpec",
    "ConvergenceEngine",
    "Plan",
    "generate_run_id",
]
