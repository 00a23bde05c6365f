"""Typed records for plans and the modification grammar."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, model_validator

__all__ = [
    "AddModification",
    "DeleteModification",
    "Modification",
    "NewTask",
    "Plan",
    "RecordModel",
    "RefinementProposal",
    "ReorderModification",
    "SubTask",
    "TaskChanges",
    "UpdateModification",
]


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class SubTask(RecordModel):
    """Single step of a plan."""

    id: str = Field(min_length=1)
    title: str
    action: str = ""
    details: str = ""
    estimated_minutes: Optional[PositiveInt] = Field(
        default=None, alias="estimated_minutes_per_sub_task"
    )
    is_completed: bool = False


class Plan(RecordModel):
    """Project title plus the ordered steps that make up the plan."""

    project_title: str = ""
    tasks: List[SubTask] = Field(default_factory=list)
    time_warning: Optional[str] = None

    @model_validator(mode="after")
    def _ids_are_unique(self) -> "Plan":
        seen: set[str] = set()
        for task in self.tasks:
            if task.id in seen:
                raise ValueError(f"Duplicate task id {task.id!r}")
            seen.add(task.id)
        return self

    def task_ids(self) -> list[str]:
        return [task.id for task in self.tasks]

    def find(self, task_id: str) -> Optional[SubTask]:
        """Return the task with ``task_id`` or ``None``."""
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def total_minutes(self) -> int:
        return sum(task.estimated_minutes or 0 for task in self.tasks)


class TaskChanges(RecordModel):
    """Closed set of fields an ``update`` operation may change."""

    title: Optional[str] = None
    action: Optional[str] = None
    details: Optional[str] = None
    estimated_minutes_per_sub_task: Optional[PositiveInt] = None
    is_completed: Optional[bool] = None

    def as_updates(self) -> Dict[str, Any]:
        """Map the explicitly provided changes onto :class:`SubTask` field names.

        Only the minute estimate may be cleared with an explicit ``null``; a null
        for any other field leaves it untouched.
        """
        updates: Dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if name == "estimated_minutes_per_sub_task":
                updates["estimated_minutes"] = value
            elif value is not None:
                updates[name] = value
        return updates


class NewTask(BaseModel):
    """Task payload carried by an ``add`` operation."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    title: str = Field(min_length=1)
    action: str = ""
    details: str = ""
    estimated_minutes_per_sub_task: Optional[PositiveInt] = None


class _Operation(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class UpdateModification(_Operation):
    operation: Literal["update"] = "update"
    task_id: str = Field(alias="taskId", min_length=1)
    changes: TaskChanges = Field(default_factory=TaskChanges)


class AddModification(_Operation):
    operation: Literal["add"] = "add"
    after_task_id: Optional[str] = Field(default=None, alias="afterTaskId")
    new_task: NewTask = Field(alias="newTask")


class DeleteModification(_Operation):
    operation: Literal["delete"] = "delete"
    task_id: str = Field(alias="taskId", min_length=1)


class ReorderModification(_Operation):
    operation: Literal["reorder"] = "reorder"
    new_order: List[str] = Field(alias="newOrder", min_length=1)


Modification = Annotated[
    Union[UpdateModification, AddModification, DeleteModification, ReorderModification],
    Field(discriminator="operation"),
]


class RefinementProposal(BaseModel):
    """Validated refinement response: ordered modifications plus optional extras."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    modifications: List[Modification]
    new_project_title: Optional[str] = Field(default=None, alias="newProjectTitle")
    explanation: Optional[str] = None
