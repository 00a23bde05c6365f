from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from focusflow import cli
from focusflow.cli import app
from focusflow.planning.schemas import Plan

from conftest import FakeOracle, make_plan


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "focusflow.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "storage": {"root": (tmp_path / "uploads").as_posix()},
                "paths": {"logs": (tmp_path / "logs").as_posix()},
                "telemetry": {"batch_size": 1},
            }
        ),
        encoding="utf-8",
    )
    return path


def _write_plan(path: Path, plan: Plan) -> Path:
    path.write_text(plan.model_dump_json(indent=2), encoding="utf-8")
    return path


def test_init_writes_default_config_once(tmp_path: Path) -> None:
    runner = CliRunner()
    target = tmp_path / "conf" / "focusflow.yaml"

    first = runner.invoke(app, ["init", "--config", str(target)])
    second = runner.invoke(app, ["init", "--config", str(target)])
    forced = runner.invoke(app, ["init", "--config", str(target), "--force"])

    assert first.exit_code == 0, first.stdout
    assert yaml.safe_load(target.read_text(encoding="utf-8"))["session"]["tier"] == "standard"
    assert second.exit_code == 1
    assert "already exists" in second.stdout
    assert forced.exit_code == 0


def test_check_files_reports_each_file(tmp_path: Path) -> None:
    good = tmp_path / "brief.pdf"
    good.write_bytes(b"%PDF-1.4")
    bad = tmp_path / "tool.exe"
    bad.write_bytes(b"MZ")

    result = CliRunner().invoke(app, ["check-files", str(good), str(bad)])

    assert result.exit_code == 1
    assert "OK    brief.pdf (8 Bytes)" in result.stdout
    assert "Unsupported file type for: tool.exe" in result.stdout


def test_check_files_rejects_unknown_tier(tmp_path: Path) -> None:
    good = tmp_path / "brief.pdf"
    good.write_bytes(b"%PDF-1.4")

    result = CliRunner().invoke(app, ["check-files", str(good), "--tier", "gold"])

    assert result.exit_code != 0


def test_show_renders_a_saved_plan(tmp_path: Path) -> None:
    plan_path = _write_plan(tmp_path / "plan.json", make_plan("A", "B", title="Move house"))

    result = CliRunner().invoke(app, ["show", str(plan_path)])

    assert result.exit_code == 0, result.stdout
    assert "Plan: Move house" in result.stdout
    assert "[A]" in result.stdout and "[B]" in result.stdout


def test_show_rejects_invalid_plan_files(tmp_path: Path) -> None:
    plan_path = tmp_path / "plan.json"
    plan_path.write_text(json.dumps({"tasks": [{"id": "A"}]}), encoding="utf-8")

    result = CliRunner().invoke(app, ["show", str(plan_path)])

    assert result.exit_code == 1
    assert "not a valid plan" in result.stdout


def test_apply_updates_the_plan_file(tmp_path: Path, config_path: Path) -> None:
    plan_path = _write_plan(tmp_path / "plan.json", make_plan("A", "B", "C"))
    modifications = tmp_path / "mods.json"
    modifications.write_text(
        json.dumps(
            {
                "modifications": [{"operation": "reorder", "newOrder": ["C", "A"]}],
                "explanation": "C first.",
            }
        ),
        encoding="utf-8",
    )

    result = CliRunner().invoke(
        app,
        [
            "apply",
            str(plan_path),
            str(modifications),
            "--reorder-policy",
            "append",
            "--config",
            str(config_path),
        ],
    )

    assert result.exit_code == 0, result.stdout
    assert "Co-pilot: C first." in result.stdout
    saved = Plan.model_validate_json(plan_path.read_text(encoding="utf-8"))
    assert saved.task_ids() == ["C", "A", "B"]


def test_apply_reports_grammar_errors(tmp_path: Path, config_path: Path) -> None:
    plan_path = _write_plan(tmp_path / "plan.json", make_plan("A"))
    modifications = tmp_path / "mods.json"
    modifications.write_text(json.dumps({"modifications": [{"operation": "nope"}]}), encoding="utf-8")

    result = CliRunner().invoke(
        app, ["apply", str(plan_path), str(modifications), "--config", str(config_path)]
    )

    assert result.exit_code == 1
    assert "Could not apply modifications" in result.stdout
    assert Plan.model_validate_json(plan_path.read_text(encoding="utf-8")).task_ids() == ["A"]


def test_generate_writes_plan_and_events(
    tmp_path: Path, config_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    oracle = FakeOracle()
    monkeypatch.setattr(cli, "_build_oracle", lambda config_data, storage: oracle)
    notes = tmp_path / "notes.md"
    notes.write_text("# Notes\n", encoding="utf-8")
    out = tmp_path / "out" / "plan.json"

    result = CliRunner().invoke(
        app,
        [
            "generate",
            "Write the report",
            "--file",
            str(notes),
            "--time",
            "30",
            "--strict",
            "--out",
            str(out),
            "--config",
            str(config_path),
        ],
    )

    assert result.exit_code == 0, result.stdout
    saved = Plan.model_validate_json(out.read_text(encoding="utf-8"))
    assert saved.task_ids() == ["task-1", "task-2"]
    request = oracle.generate_calls[0]
    assert request.strict_time_adherence is True
    assert [item.name for item in request.files] == ["notes.md"]
    events = (tmp_path / "logs" / "events.jsonl").read_text(encoding="utf-8")
    assert "plan_generated" in events


def test_generate_reports_oracle_failures(
    tmp_path: Path, config_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    oracle = FakeOracle(generation={"success": False, "error": "Service unavailable"})
    monkeypatch.setattr(cli, "_build_oracle", lambda config_data, storage: oracle)

    result = CliRunner().invoke(
        app,
        ["generate", "Study", "--out", str(tmp_path / "plan.json"), "--config", str(config_path)],
    )

    assert result.exit_code == 1
    assert "Plan generation failed: Service unavailable" in result.stdout
    assert not (tmp_path / "plan.json").exists()


def test_refine_rewrites_the_plan(
    tmp_path: Path, config_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    oracle = FakeOracle(
        refinement=json.dumps(
            {
                "modifications": [{"operation": "delete", "taskId": "ghost"}],
                "newProjectTitle": "Renamed",
            }
        )
    )
    monkeypatch.setattr(cli, "_build_oracle", lambda config_data, storage: oracle)
    plan_path = _write_plan(tmp_path / "plan.json", make_plan("A"))

    result = CliRunner().invoke(
        app, ["refine", str(plan_path), "remove the ghost", "--config", str(config_path)]
    )

    assert result.exit_code == 0, result.stdout
    assert "Skipped delete: unknown task ghost" in result.stdout
    saved = Plan.model_validate_json(plan_path.read_text(encoding="utf-8"))
    assert saved.project_title == "Renamed"
    assert oracle.refine_calls[0][0] == "remove the ghost"


def test_refine_dry_run_previews_without_saving(
    tmp_path: Path, config_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    oracle = FakeOracle(
        refinement=json.dumps(
            {
                "modifications": [
                    {"operation": "delete", "taskId": "B"},
                    {"operation": "add", "afterTaskId": "A", "newTask": {"id": "D", "title": "Stretch"}},
                ],
                "newProjectTitle": "Lighter plan",
            }
        )
    )
    monkeypatch.setattr(cli, "_build_oracle", lambda config_data, storage: oracle)
    plan_path = _write_plan(tmp_path / "plan.json", make_plan("A", "B"))
    before = plan_path.read_text(encoding="utf-8")

    result = CliRunner().invoke(
        app,
        ["refine", str(plan_path), "swap B for a stretch", "--dry-run", "--config", str(config_path)],
    )

    assert result.exit_code == 0, result.stdout
    assert "~ title: Demo project -> Lighter plan" in result.stdout
    assert "- B" in result.stdout
    assert "+ D: Stretch" in result.stdout
    assert "Dry run: plan not saved." in result.stdout
    assert plan_path.read_text(encoding="utf-8") == before


def test_apply_dry_run_leaves_the_plan_file_alone(tmp_path: Path, config_path: Path) -> None:
    plan_path = _write_plan(tmp_path / "plan.json", make_plan("A", "B"))
    before = plan_path.read_text(encoding="utf-8")
    modifications = tmp_path / "mods.json"
    modifications.write_text(
        json.dumps({"modifications": [{"operation": "reorder", "newOrder": ["B", "A"]}]}),
        encoding="utf-8",
    )

    result = CliRunner().invoke(
        app,
        ["apply", str(plan_path), str(modifications), "--dry-run", "--config", str(config_path)],
    )

    assert result.exit_code == 0, result.stdout
    assert "~ order: B, A" in result.stdout
    assert plan_path.read_text(encoding="utf-8") == before
