"""Prompt templates for plan generation and refinement."""

from __future__ import annotations

import json
from typing import Sequence

from .planning.schemas import Plan

JSON_RESPONSE_INSTRUCTION = (
    "Return only JSON. Emit a single JSON object that satisfies the documented response schema. "
    "Do not include markdown fences, explanations, or trailing text."
)

_GRANULARITY = {
    "focused": "Each sub-task should be a focused block of work, taking roughly 20-30 minutes.",
    "small": "Each sub-task should be small and actionable, taking roughly 10-15 minutes.",
    "micro": "Each sub-task must be a tiny micro-action, taking only 1-3 minutes. Be extremely detailed.",
}

_ENERGY = {
    "low": (
        "The user has LOW energy. The plan must start with the easiest, most preparatory tasks "
        "to build momentum. Defer complex tasks."
    ),
    "medium": "The user has MEDIUM energy. The plan should be balanced.",
    "high": (
        "The user has HIGH energy. The plan should prioritize the most challenging, creative, "
        "or important tasks first."
    ),
}


def render_granularity_instruction(breakdown_level: str) -> str:
    return _GRANULARITY.get(breakdown_level, _GRANULARITY["focused"])


def render_energy_instruction(energy_level: str) -> str:
    return _ENERGY.get(energy_level, _ENERGY["medium"])


def render_time_instruction(allocated_minutes: int, strict: bool) -> str:
    """Describe the time budget; zero minutes means no limit."""
    if not allocated_minutes:
        return (
            "There is no total time limit. Create the most logical and complete plan required "
            "to achieve the goal."
        )
    if strict:
        return (
            f"The plan MUST strictly fit within the total {allocated_minutes} minutes. If not possible, "
            "plan only the most critical parts and include a 'time_warning'."
        )
    return f"Use the total {allocated_minutes} minutes as a soft guideline for the plan's total duration."


def render_generation_prompt(
    *,
    goal: str,
    allocated_minutes: int,
    strict: bool,
    energy_level: str,
    breakdown_level: str,
    document_names: Sequence[str] = (),
) -> str:
    """Build the plan-generation prompt for the oracle."""
    lines = [
        "You are an expert productivity coach. Create a detailed, actionable plan based on the "
        "user's goal and provided documents.",
        "",
        "## User Request",
        f'- Main goal: "{goal}"',
    ]
    if document_names:
        lines.append(f"- Analyze documents: {', '.join(document_names)}")
    lines.extend(
        [
            "",
            "## Preferences & Constraints",
            f"- Task granularity: {render_granularity_instruction(breakdown_level)}",
            f"- Energy level strategy: {render_energy_instruction(energy_level)}",
            f"- Time constraint: {render_time_instruction(allocated_minutes, strict)}",
            "",
            "## Output",
            JSON_RESPONSE_INSTRUCTION,
            'Top-level keys: "project_title" (5-10 words), "sub_tasks" (array), '
            '"time_warning" (string or null).',
            'Each sub-task has "title" (short headline), "action" (verb-first call to action), '
            '"details" (longer explanation) and "estimated_minutes_per_sub_task" (integer).',
        ]
    )
    return "\n".join(lines)


def render_refinement_prompt(command: str, plan: Plan, document_context: str | None = None) -> str:
    """Build the refinement prompt describing the current plan and the operation grammar."""
    tasks = [
        {
            "id": task.id,
            "title": task.title,
            "action": task.action,
            "details": task.details,
            "estimated_minutes_per_sub_task": task.estimated_minutes,
        }
        for task in plan.tasks
    ]
    sections = [
        "You are a plan refinement engine. Interpret the user's command and emit precise "
        "modifications to their current plan.",
        "",
        "## Current Plan",
        f'Title: "{plan.project_title}"',
        f"Tasks: {json.dumps(tasks, indent=2)}",
        "",
        "## User Command",
        f'"{command}"',
    ]
    if document_context:
        sections.extend(["", "## Document Context", document_context[:1000]])
    sections.extend(
        [
            "",
            "## Operations",
            '- update: {"operation": "update", "taskId": "<id>", "changes": {"title"?, "action"?, '
            '"details"?, "estimated_minutes_per_sub_task"?}}',
            '- add: {"operation": "add", "afterTaskId": "<id>" or null for the beginning, '
            '"newTask": {"id", "title", "action", "details", "estimated_minutes_per_sub_task"}}',
            '- delete: {"operation": "delete", "taskId": "<id>"}',
            '- reorder: {"operation": "reorder", "newOrder": ["<every task id in the new order>"]}',
            "",
            "## Guidelines",
            "- Only modify what the user asks for.",
            "- Keep estimated times realistic; scale proportionally for time adjustments.",
            "- Operations are applied in the order given.",
            "",
            "## Output",
            JSON_RESPONSE_INSTRUCTION,
            'Keys: "modifications" (array of operations), "newProjectTitle" (optional), '
            '"explanation" (short summary of the changes).',
        ]
    )
    return "\n".join(sections)


__all__ = [
    "JSON_RESPONSE_INSTRUCTION",
    "render_energy_instruction",
    "render_generation_prompt",
    "render_granularity_instruction",
    "render_refinement_prompt",
    "render_time_instruction",
]
