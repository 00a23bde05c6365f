"""Assemble plan-generation requests and validate the oracle's reply."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Protocol

from ..errors import InputValidationError, OracleContractError, TransferError
from ..ingest.validator import DocumentFile
from ..models.llm_client import LLMClientError
from .schemas import Plan, SubTask

__all__ = [
    "BreakdownLevel",
    "EnergyLevel",
    "GenerationOracle",
    "GenerationRequest",
    "PlanRequestOrchestrator",
    "build_plan_from_response",
]

LOGGER = logging.getLogger(__name__)


class EnergyLevel(str, Enum):
    """How much energy the user reports for the session."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class BreakdownLevel(str, Enum):
    """Granularity of the generated steps."""

    FOCUSED = "focused"
    SMALL = "small"
    MICRO = "micro"


@dataclass(slots=True)
class GenerationRequest:
    """Input payload for a single plan generation."""

    goal: str
    allocated_minutes: int = 0
    strict_time_adherence: bool = False
    energy_level: EnergyLevel = EnergyLevel.MEDIUM
    breakdown_level: BreakdownLevel = BreakdownLevel.SMALL
    files: list[DocumentFile] = field(default_factory=list)
    document_paths: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.goal = (self.goal or "").strip()
        if not self.goal:
            raise InputValidationError("A goal description is required to generate a plan.")
        if self.allocated_minutes < 0:
            raise InputValidationError("Allocated time cannot be negative.")
        if self.files and self.document_paths:
            raise InputValidationError(
                "A generation request carries either inline files or storage paths, not both."
            )
        self.energy_level = EnergyLevel(self.energy_level)
        self.breakdown_level = BreakdownLevel(self.breakdown_level)
        # Strictness only means something when there is a time budget.
        self.strict_time_adherence = bool(self.strict_time_adherence and self.allocated_minutes)

    @property
    def upload_method(self) -> str:
        return "resumable" if self.document_paths else "inline"

    def document_names(self) -> list[str]:
        """Return the display names of every referenced document."""
        names = [item.name for item in self.files]
        names.extend(path.rsplit("/", 1)[-1] or "document" for path in self.document_paths)
        return names

    def to_fields(self) -> dict[str, Any]:
        """Render the text fields as sent to the generation endpoint."""
        return {
            "taskDescription": self.goal,
            "timeAllocated": self.allocated_minutes,
            "strictTimeAdherence": self.strict_time_adherence,
            "energyLevel": self.energy_level.value,
            "breakdownLevel": self.breakdown_level.value,
        }


class GenerationOracle(Protocol):
    """External service that proposes a plan for a request."""

    def generate(self, request: GenerationRequest) -> Mapping[str, Any]:
        """Return ``{success, plan, projectTitle?, timeWarning?, error?}``."""
        ...


class PlanRequestOrchestrator:
    """Call the oracle once per request and turn its reply into a :class:`Plan`."""

    def __init__(self, oracle: GenerationOracle) -> None:
        self._oracle = oracle

    def generate(self, request: GenerationRequest) -> Plan:
        LOGGER.info(
            "Requesting plan: %d document(s) via %s transfer, %s minutes, energy=%s, breakdown=%s",
            len(request.files) + len(request.document_paths),
            request.upload_method,
            request.allocated_minutes or "unlimited",
            request.energy_level.value,
            request.breakdown_level.value,
        )
        try:
            response = self._oracle.generate(request)
        except LLMClientError as error:
            raise OracleContractError(f"Plan generation failed: {error}") from error
        except OSError as error:
            raise TransferError(f"Failed to read documents for the plan request: {error}") from error

        plan = build_plan_from_response(response)
        LOGGER.info(
            "Plan generated with %d task(s)%s",
            len(plan.tasks),
            " and a time warning" if plan.time_warning else "",
        )
        return plan


def build_plan_from_response(response: Any) -> Plan:
    """Validate an oracle generation envelope and convert it into a plan.

    An unsuccessful, empty or malformed plan list is a hard failure.
    """
    if not isinstance(response, Mapping):
        raise OracleContractError("Plan generation returned a malformed response.")
    if not response.get("success"):
        message = response.get("error") or "Plan generation failed"
        raise OracleContractError(str(message))

    items = response.get("plan")
    if not isinstance(items, list) or not items:
        raise OracleContractError("Invalid plan structure received from the generation service.")
    if not all(isinstance(item, Mapping) for item in items):
        raise OracleContractError("Plan items must be objects.")

    tasks = [_task_from_item(index, item) for index, item in enumerate(items, start=1)]
    title = response.get("projectTitle")
    warning = response.get("timeWarning")
    return Plan(
        project_title=title.strip() if isinstance(title, str) else "",
        tasks=tasks,
        time_warning=warning if isinstance(warning, str) and warning.strip() else None,
    )


def _task_from_item(index: int, item: Mapping[str, Any]) -> SubTask:
    description = _text(item.get("sub_task_description"))
    return SubTask(
        id=f"task-{index}",
        title=_text(item.get("title")) or f"Task {index}",
        action=_text(item.get("action")) or description,
        details=_text(item.get("details")) or description,
        estimated_minutes=_positive_minutes(item.get("estimated_minutes_per_sub_task")),
    )


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value.strip() if isinstance(value, str) else str(value)


def _positive_minutes(value: Any) -> Optional[int]:
    """Return ``value`` as a positive integer, or ``None`` when it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number != int(number) or number <= 0:
        return None
    return int(number)
