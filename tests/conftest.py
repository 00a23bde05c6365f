from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from focusflow.ingest.quota import MEGABYTE  # noqa: E402
from focusflow.ingest.validator import DocumentFile  # noqa: E402
from focusflow.planning.schemas import Plan, SubTask  # noqa: E402


def doc(name: str, size_mb: float = 1.0, content_type: str = "application/pdf") -> DocumentFile:
    """Describe an in-memory document of ``size_mb`` megabytes."""
    return DocumentFile(name=name, size=int(size_mb * MEGABYTE), content_type=content_type)


def make_plan(*task_ids: str, title: str = "Demo project") -> Plan:
    return Plan(
        project_title=title,
        tasks=[SubTask(id=task_id, title=f"Task {task_id}") for task_id in task_ids],
    )


@pytest.fixture()
def write_document(tmp_path: Path) -> Callable[..., DocumentFile]:
    """Write a real file under ``tmp_path`` and return its descriptor."""

    def _write(name: str, payload: bytes = b"hello world\n") -> DocumentFile:
        path = tmp_path / "docs" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)
        return DocumentFile.from_path(path)

    return _write


@dataclass(slots=True)
class FakeOracle:
    """Scripted oracle recording every call it receives."""

    generation: Mapping[str, Any] = field(
        default_factory=lambda: {
            "success": True,
            "projectTitle": "Write the report",
            "plan": [
                {"title": "Outline", "action": "List sections", "estimated_minutes_per_sub_task": 10},
                {"title": "Draft", "action": "Write the body", "estimated_minutes_per_sub_task": 25},
            ],
        }
    )
    refinement: Optional[str] = None
    generate_calls: list[Any] = field(default_factory=list)
    refine_calls: list[tuple[str, Plan, Optional[str]]] = field(default_factory=list)
    error: Optional[Exception] = None

    def generate(self, request: Any) -> Mapping[str, Any]:
        self.generate_calls.append(request)
        if self.error is not None:
            raise self.error
        return self.generation

    def refine(self, command: str, plan: Plan, document_context: Optional[str] = None) -> str:
        self.refine_calls.append((command, plan, document_context))
        if self.error is not None:
            raise self.error
        if self.refinement is None:
            return json.dumps({"modifications": []})
        return self.refinement


@pytest.fixture()
def fake_oracle() -> FakeOracle:
    return FakeOracle()
