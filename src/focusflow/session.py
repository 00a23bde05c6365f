"""Session state: document selection, the current plan and its refinements."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence

from pydantic import ValidationError

from .errors import InputValidationError, OracleContractError
from .ingest.media import partition_by_media_type
from .ingest.quota import QuotaTier, policy_for
from .ingest.validator import DocumentFile, IngestionResult, validate_ingestion
from .models.llm_client import LLMClientError
from .planning.modifications import parse_modifications
from .planning.oracle import PlanOracle
from .planning.refinement import PlanDiff, RefinementEngine, RefinementOutcome, diff_plans
from .planning.request import (
    BreakdownLevel,
    EnergyLevel,
    GenerationRequest,
    PlanRequestOrchestrator,
)
from .planning.schemas import (
    AddModification,
    DeleteModification,
    Modification,
    NewTask,
    Plan,
    TaskChanges,
    UpdateModification,
)
from .telemetry import EventBuffer
from .upload.orchestrator import ProgressListener, ProgressTracker, UploadOrchestrator
from .upload.storage import StorageBackend, UploadProgress
from .upload.strategy import select_strategy

__all__ = ["PendingRefinement", "PlanSession"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PendingRefinement:
    """Refinement proposed by the oracle and awaiting accept or discard."""

    command: str
    base: Plan
    outcome: RefinementOutcome
    operations: list[str] = field(default_factory=list)

    @property
    def diff(self) -> PlanDiff:
        return diff_plans(self.base, self.outcome.plan)


class PlanSession:
    """Owns the current plan; refinements are applied one batch at a time."""

    def __init__(
        self,
        oracle: PlanOracle,
        *,
        tier: QuotaTier | str = QuotaTier.STANDARD,
        owner: str = "anonymous",
        storage: Optional[StorageBackend] = None,
        engine: Optional[RefinementEngine] = None,
        telemetry: Optional[EventBuffer] = None,
        progress_listener: Optional[ProgressListener] = None,
    ) -> None:
        self._oracle = oracle
        self._tier = QuotaTier(tier)
        self._owner = owner
        self._engine = engine or RefinementEngine()
        self._telemetry = telemetry
        self._tracker = ProgressTracker(progress_listener)
        self._uploader = UploadOrchestrator(storage, tracker=self._tracker)
        self._requests = PlanRequestOrchestrator(oracle)
        self._refine_lock = threading.Lock()
        self._selected: list[DocumentFile] = []
        self._plan: Optional[Plan] = None
        self._last_request: Optional[GenerationRequest] = None
        self._pending: Optional[PendingRefinement] = None

    @property
    def tier(self) -> QuotaTier:
        return self._tier

    @property
    def plan(self) -> Optional[Plan]:
        return self._plan

    @property
    def selected_files(self) -> list[DocumentFile]:
        return list(self._selected)

    @property
    def upload_progress(self) -> Dict[str, UploadProgress]:
        return self._tracker.snapshot()

    # Document selection -------------------------------------------------

    def add_files(self, files: Iterable[DocumentFile]) -> IngestionResult:
        """Filter, validate and select a newly dropped batch of documents."""
        supported, rejected = partition_by_media_type(files)
        result = validate_ingestion(self._selected, supported, rejected, policy_for(self._tier))
        self._selected.extend(result.accepted)
        for message in result.errors:
            LOGGER.info("Document rejected: %s", message)
        return result

    def remove_file(self, name: str) -> bool:
        """Drop every selected file called ``name``; return whether any was removed."""
        remaining = [item for item in self._selected if item.name != name]
        removed = len(remaining) != len(self._selected)
        self._selected = remaining
        return removed

    # Generation ---------------------------------------------------------

    async def generate(
        self,
        goal: str,
        *,
        allocated_minutes: int = 0,
        strict_time_adherence: bool = False,
        energy_level: EnergyLevel | str = EnergyLevel.MEDIUM,
        breakdown_level: BreakdownLevel | str = BreakdownLevel.SMALL,
    ) -> Plan:
        """Upload the selected documents, request a plan and make it current."""
        self._tracker.clear()
        files = list(self._selected)
        # Validate the text fields before any transfer starts.
        GenerationRequest(
            goal=goal,
            allocated_minutes=allocated_minutes,
            strict_time_adherence=strict_time_adherence,
            energy_level=EnergyLevel(energy_level),
            breakdown_level=BreakdownLevel(breakdown_level),
        )
        strategy = select_strategy(self._tier, files)
        try:
            outcome = await self._uploader.run(files, strategy, owner=self._owner)
        except Exception as error:
            self._track("upload_failed", {"strategy": strategy.value, "error": str(error)})
            raise

        request = GenerationRequest(
            goal=goal,
            allocated_minutes=allocated_minutes,
            strict_time_adherence=strict_time_adherence,
            energy_level=EnergyLevel(energy_level),
            breakdown_level=BreakdownLevel(breakdown_level),
            files=outcome.files,
            document_paths=outcome.paths,
        )
        try:
            plan = await asyncio.to_thread(self._requests.generate, request)
        except Exception as error:
            self._track("plan_generation_failed", {"error": str(error)})
            raise

        self._plan = plan
        self._pending = None
        self._last_request = request
        self._track(
            "plan_generated",
            {
                "tasks": len(plan.tasks),
                "documents": len(files),
                "upload_method": strategy.value,
                "tier": self._tier.value,
            },
        )
        return plan

    def load_plan(self, plan: Plan) -> None:
        """Make an existing plan current, e.g. one restored from disk."""
        self._plan = plan
        self._pending = None

    # Refinement ---------------------------------------------------------

    @property
    def pending(self) -> Optional[PendingRefinement]:
        """Refinement proposed by the oracle and not yet accepted or discarded."""
        return self._pending

    def propose(self, command: str, *, document_context: Optional[str] = None) -> RefinementOutcome:
        """Ask the oracle for modifications matching ``command`` without committing them.

        The result is held as :attr:`pending` until :meth:`accept` or :meth:`discard`.
        A new proposal replaces any earlier one.
        """
        command = (command or "").strip()
        if not command:
            raise InputValidationError("A refinement command is required.")
        with self._refine_lock:
            plan = self._require_plan()
            context = document_context or self._document_context()
            try:
                raw = self._oracle.refine(command, plan, context)
            except LLMClientError as error:
                raise OracleContractError(f"Plan refinement failed: {error}") from error
            proposal = parse_modifications(raw)
            outcome = self._engine.apply_proposal(plan, proposal)
            pending = PendingRefinement(
                command=command,
                base=plan,
                outcome=outcome,
                operations=[item.operation for item in proposal.modifications],
            )
            self._pending = pending
        self._track(
            "plan_refinement_proposed",
            {"modifications": pending.operations, "skipped": len(outcome.skipped)},
        )
        return outcome

    def accept(self) -> Plan:
        """Commit the pending refinement and return the new current plan."""
        with self._refine_lock:
            pending = self._pending
            if pending is None:
                raise InputValidationError("There is no proposed refinement to accept.")
            self._pending = None
            if self._plan is not pending.base:
                raise InputValidationError(
                    "The plan changed after the refinement was proposed; request it again."
                )
            self._plan = pending.outcome.plan
        self._track(
            "plan_refined",
            {
                "modifications": pending.operations,
                "skipped": len(pending.outcome.skipped),
                "renamed": pending.outcome.plan.project_title != pending.base.project_title,
            },
        )
        return pending.outcome.plan

    def discard(self) -> bool:
        """Drop the pending refinement; return whether there was one."""
        with self._refine_lock:
            pending, self._pending = self._pending, None
        if pending is None:
            return False
        self._track("plan_refinement_discarded", {"modifications": pending.operations})
        return True

    def refine(self, command: str, *, document_context: Optional[str] = None) -> RefinementOutcome:
        """Propose and immediately accept the modifications for ``command``."""
        outcome = self.propose(command, document_context=document_context)
        self.accept()
        return outcome

    def apply_modifications(self, modifications: Sequence[Modification]) -> RefinementOutcome:
        """Apply an already validated batch to the current plan."""
        with self._refine_lock:
            outcome = self._engine.apply(self._require_plan(), modifications)
            self._plan = outcome.plan
            self._pending = None
        return outcome

    def add_task(
        self,
        title: str,
        action: str = "",
        details: str = "",
        *,
        estimated_minutes: Optional[int] = None,
    ) -> RefinementOutcome:
        """Append a hand-written task to the end of the plan."""
        plan = self._require_plan()
        anchor = plan.tasks[-1].id if plan.tasks else None
        try:
            new_task = NewTask(
                title=title,
                action=action,
                details=details,
                estimated_minutes_per_sub_task=estimated_minutes,
            )
        except ValidationError as error:
            raise InputValidationError(f"Invalid task: {error}") from error
        return self.apply_modifications([AddModification(after_task_id=anchor, new_task=new_task)])

    def delete_task(self, task_id: str) -> RefinementOutcome:
        return self.apply_modifications([DeleteModification(task_id=task_id)])

    def update_task(self, task_id: str, **changes: Any) -> RefinementOutcome:
        """Update fields of one task; keys follow the modification grammar."""
        try:
            parsed = TaskChanges(**changes)
        except ValidationError as error:
            raise InputValidationError(f"Invalid task changes: {error}") from error
        return self.apply_modifications([UpdateModification(task_id=task_id, changes=parsed)])

    def reset(self) -> None:
        """Forget the plan, the selection and any progress."""
        with self._refine_lock:
            self._plan = None
            self._selected = []
            self._last_request = None
            self._pending = None
            self._tracker.clear()

    # Helpers ------------------------------------------------------------

    def _require_plan(self) -> Plan:
        if self._plan is None:
            raise InputValidationError("There is no plan yet; generate one first.")
        return self._plan

    def _document_context(self) -> Optional[str]:
        if self._last_request is None:
            return None
        names = self._last_request.document_names()
        if not names:
            return None
        return f"Documents processed: {', '.join(names)}"

    def _track(self, name: str, data: Dict[str, Any]) -> None:
        if self._telemetry is not None:
            self._telemetry.record(name, data)
