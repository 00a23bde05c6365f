"""Apply ordered modification batches to a plan."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Sequence

from pydantic import ValidationError

from ..errors import ApplyError
from .schemas import (
    AddModification,
    DeleteModification,
    Modification,
    Plan,
    RefinementProposal,
    ReorderModification,
    SubTask,
    UpdateModification,
)

__all__ = ["PlanDiff", "RefinementEngine", "RefinementOutcome", "ReorderPolicy", "diff_plans"]

LOGGER = logging.getLogger(__name__)

_NEW_TASK_PREFIX = "task-new"


class ReorderPolicy(str, Enum):
    """What happens to tasks a ``reorder`` operation does not mention."""

    DROP = "drop"
    APPEND = "append"


@dataclass(slots=True)
class RefinementOutcome:
    """New plan produced by a batch plus the operations that degraded to no-ops."""

    plan: Plan
    skipped: list[str] = field(default_factory=list)
    explanation: Optional[str] = None


class RefinementEngine:
    """Pure transition from (plan, modifications) to a new plan.

    Operations run strictly in order. The input plan is never mutated, so a
    failure leaves the caller holding the original.
    """

    def __init__(self, *, reorder_policy: ReorderPolicy | str = ReorderPolicy.DROP) -> None:
        self._reorder_policy = ReorderPolicy(reorder_policy)

    @property
    def reorder_policy(self) -> ReorderPolicy:
        return self._reorder_policy

    def apply(self, plan: Plan, modifications: Sequence[Modification]) -> RefinementOutcome:
        """Apply ``modifications`` to ``plan`` as one transition."""
        skipped: list[str] = []
        try:
            tasks = list(plan.tasks)
            for modification in modifications:
                tasks = self._apply_one(tasks, modification, skipped)
            refined = Plan(
                project_title=plan.project_title,
                tasks=tasks,
                time_warning=plan.time_warning,
            )
        except (ValidationError, ValueError, TypeError, AttributeError, KeyError) as error:
            LOGGER.error("Modification batch could not be applied: %s", error)
            raise ApplyError(f"Failed to apply plan modifications: {error}") from error
        LOGGER.info(
            "Applied %d modification(s); %d task(s) now, %d skipped",
            len(modifications),
            len(refined.tasks),
            len(skipped),
        )
        return RefinementOutcome(plan=refined, skipped=skipped)

    def apply_proposal(self, plan: Plan, proposal: RefinementProposal) -> RefinementOutcome:
        """Apply a parsed refinement response, including an optional new title."""
        outcome = self.apply(plan, proposal.modifications)
        new_title = (proposal.new_project_title or "").strip()
        if new_title:
            outcome.plan = outcome.plan.model_copy(update={"project_title": new_title})
        outcome.explanation = proposal.explanation
        return outcome

    def _apply_one(
        self,
        tasks: list[SubTask],
        modification: Modification,
        skipped: list[str],
    ) -> list[SubTask]:
        if isinstance(modification, UpdateModification):
            return self._update(tasks, modification, skipped)
        if isinstance(modification, AddModification):
            return self._add(tasks, modification)
        if isinstance(modification, DeleteModification):
            return self._delete(tasks, modification, skipped)
        if isinstance(modification, ReorderModification):
            return self._reorder(tasks, modification, skipped)
        raise TypeError(f"Unsupported modification {modification!r}")

    @staticmethod
    def _update(
        tasks: list[SubTask],
        modification: UpdateModification,
        skipped: list[str],
    ) -> list[SubTask]:
        index = _index_of(tasks, modification.task_id)
        if index is None:
            LOGGER.info("Ignoring update for unknown task %s", modification.task_id)
            skipped.append(f"update: unknown task {modification.task_id}")
            return tasks
        updated = list(tasks)
        updated[index] = tasks[index].model_copy(update=modification.changes.as_updates())
        return updated

    @staticmethod
    def _add(tasks: list[SubTask], modification: AddModification) -> list[SubTask]:
        payload = modification.new_task
        new_task = SubTask(
            id=_fresh_id(payload.id, (task.id for task in tasks)),
            title=payload.title,
            action=payload.action,
            details=payload.details,
            estimated_minutes=payload.estimated_minutes_per_sub_task,
        )
        updated = list(tasks)
        if modification.after_task_id is None:
            updated.insert(0, new_task)
            return updated
        anchor = _index_of(tasks, modification.after_task_id)
        if anchor is None:
            LOGGER.info(
                "Anchor task %s not found; appending %s at the end",
                modification.after_task_id,
                new_task.id,
            )
            updated.append(new_task)
        else:
            updated.insert(anchor + 1, new_task)
        return updated

    @staticmethod
    def _delete(
        tasks: list[SubTask],
        modification: DeleteModification,
        skipped: list[str],
    ) -> list[SubTask]:
        remaining = [task for task in tasks if task.id != modification.task_id]
        if len(remaining) == len(tasks):
            LOGGER.debug("Ignoring delete for unknown task %s", modification.task_id)
            skipped.append(f"delete: unknown task {modification.task_id}")
        return remaining

    def _reorder(
        self,
        tasks: list[SubTask],
        modification: ReorderModification,
        skipped: list[str],
    ) -> list[SubTask]:
        by_id = {task.id: task for task in tasks}
        ordered: list[SubTask] = []
        placed: set[str] = set()
        for task_id in modification.new_order:
            if task_id in placed:
                continue
            task = by_id.get(task_id)
            if task is None:
                LOGGER.info("Reorder references unknown task %s; ignoring it", task_id)
                skipped.append(f"reorder: unknown task {task_id}")
                continue
            ordered.append(task)
            placed.add(task_id)

        omitted = [task for task in tasks if task.id not in placed]
        if omitted:
            if self._reorder_policy is ReorderPolicy.APPEND:
                ordered.extend(omitted)
            else:
                LOGGER.info(
                    "Reorder omitted %d task(s); dropping %s",
                    len(omitted),
                    ", ".join(task.id for task in omitted),
                )
        return ordered


def _index_of(tasks: Sequence[SubTask], task_id: str) -> Optional[int]:
    for index, task in enumerate(tasks):
        if task.id == task_id:
            return index
    return None


def _fresh_id(requested: Optional[str], existing: Iterable[str]) -> str:
    """Return ``requested`` when free, otherwise the first free ``<base>-N``."""
    taken = set(existing)
    requested = (requested or "").strip()
    if requested and requested not in taken:
        return requested
    base = requested or _NEW_TASK_PREFIX
    counter = 2 if requested else 1
    while f"{base}-{counter}" in taken:
        counter += 1
    return f"{base}-{counter}"


@dataclass(slots=True)
class PlanDiff:
    """Task-level difference between a plan and its proposed refinement."""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    reordered: bool = False
    title_change: Optional[tuple[str, str]] = None

    @property
    def has_changes(self) -> bool:
        return bool(
            self.added or self.removed or self.updated or self.reordered or self.title_change
        )


def diff_plans(before: Plan, after: Plan) -> PlanDiff:
    """Compare two plans by task id."""
    before_ids = before.task_ids()
    after_ids = after.task_ids()
    before_set = set(before_ids)
    after_set = set(after_ids)
    diff = PlanDiff(
        added=[task_id for task_id in after_ids if task_id not in before_set],
        removed=[task_id for task_id in before_ids if task_id not in after_set],
    )
    for task in after.tasks:
        previous = before.find(task.id)
        if previous is not None and previous != task:
            diff.updated.append(task.id)
    kept_before = [task_id for task_id in before_ids if task_id in after_set]
    kept_after = [task_id for task_id in after_ids if task_id in before_set]
    diff.reordered = kept_before != kept_after
    if before.project_title != after.project_title:
        diff.title_change = (before.project_title, after.project_title)
    return diff
