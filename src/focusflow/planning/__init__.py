"""
Plan generation requests, the modification grammar and the refinement engine.
"""

from importlib import import_module
from typing import Any

_EXPORTS = {
    "GenerationRequest": "focusflow.planning.request",
    "LLMPlanOracle": "focusflow.planning.oracle",
    "Plan": "focusflow.planning.schemas",
    "PlanRequestOrchestrator": "focusflow.planning.request",
    "RefinementEngine": "focusflow.planning.refinement",
    "ReorderPolicy": "focusflow.planning.refinement",
    "SubTask": "focusflow.planning.schemas",
    "parse_modifications": "focusflow.planning.modifications",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import planning helpers so the schema module loads on its own."""
    if name in _EXPORTS:
        module = import_module(_EXPORTS[name])
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
