"""CLI commands for generating and refining FocusFlow plans."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from pydantic import ValidationError

from .config import (
    DEFAULT_CONFIG_NAME,
    DEFAULT_CONFIG_TEMPLATE,
    ConfigError,
    config_value,
    load_config,
    resolve_path,
    write_config,
)
from .errors import FocusFlowError
from .ingest.media import format_file_size, partition_by_media_type
from .ingest.quota import QuotaTier, policy_for
from .ingest.validator import DocumentFile, validate_ingestion
from .models import GeminiClient
from .planning.modifications import parse_modifications
from .planning.oracle import LLMPlanOracle
from .planning.refinement import (
    PlanDiff,
    RefinementEngine,
    RefinementOutcome,
    ReorderPolicy,
    diff_plans,
)
from .planning.schemas import Plan
from .session import PlanSession
from .telemetry import EventBuffer, JsonlEventSink, TelemetryLogHandler
from .upload.storage import LocalResumableStorage, UploadProgress

APP_HELP = "FocusFlow CLI: turn goals and documents into editable step-by-step plans."

LOGGER = logging.getLogger(__name__)

app = typer.Typer(help=APP_HELP)


def _config_option() -> Any:
    return typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the FocusFlow configuration file.",
    )


def _load(config: str, verbose: bool = False) -> Dict[str, Any]:
    try:
        config_data = load_config(Path(config))
    except ConfigError as error:
        typer.echo(f"Failed to parse config: {error}")
        raise typer.Exit(code=1) from error
    level_name = "DEBUG" if verbose else str(config_value(config_data, "logging.level", "WARNING"))
    logging.basicConfig(
        level=getattr(logging, level_name.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )
    return config_data


def _build_telemetry(config_data: Dict[str, Any]) -> Optional[EventBuffer]:
    if not config_value(config_data, "telemetry.enabled", False):
        return None
    events_path = resolve_path(config_data, "paths.logs") / str(
        config_value(config_data, "telemetry.events_file", "events.jsonl")
    )
    buffer = EventBuffer(
        JsonlEventSink(events_path),
        batch_size=int(config_value(config_data, "telemetry.batch_size", 10)),
        flush_interval=float(config_value(config_data, "telemetry.flush_interval", 5.0)),
        max_buffer=int(config_value(config_data, "telemetry.max_buffer", 500)),
        overflow=str(config_value(config_data, "telemetry.overflow", "drop_oldest")),
        context={"owner": config_value(config_data, "session.owner", "local")},
    )
    handler = TelemetryLogHandler(buffer, level=logging.WARNING)
    logging.getLogger("focusflow").addHandler(handler)
    buffer.start()
    return buffer


def _close_telemetry(buffer: Optional[EventBuffer]) -> None:
    if buffer is None:
        return
    package_logger = logging.getLogger("focusflow")
    for handler in list(package_logger.handlers):
        if isinstance(handler, TelemetryLogHandler):
            package_logger.removeHandler(handler)
    buffer.close()
    if buffer.dropped:
        LOGGER.warning("Telemetry dropped %d event(s)", buffer.dropped)


def _build_storage(config_data: Dict[str, Any]) -> LocalResumableStorage:
    return LocalResumableStorage(
        resolve_path(config_data, "storage.root"),
        chunk_size=int(config_value(config_data, "storage.chunk_size", 6 * 1024 * 1024)),
    )


def _build_oracle(config_data: Dict[str, Any], storage: LocalResumableStorage) -> LLMPlanOracle:
    models_cfg = config_data.get("models", {})
    try:
        client = GeminiClient(
            model=str(models_cfg.get("generation") or "gemini-2.5-flash"),
            timeout=float(models_cfg.get("timeout") or 120),
            api_key_env=str(models_cfg.get("api_key_env") or "GEMINI_API_KEY"),
        )
    except ValueError as error:
        typer.echo(f"Failed to initialise Gemini client: {error}")
        raise typer.Exit(code=1) from error
    return LLMPlanOracle(
        client,
        documents=storage,
        generation_model=models_cfg.get("generation"),
        refinement_model=models_cfg.get("refinement"),
        generation_temperature=float(models_cfg.get("generation_temperature", 0.7)),
        refinement_temperature=float(models_cfg.get("refinement_temperature", 0.3)),
        max_output_tokens=models_cfg.get("max_output_tokens"),
    )


def _build_engine(config_data: Dict[str, Any], override: Optional[str] = None) -> RefinementEngine:
    policy = override or str(config_value(config_data, "refinement.reorder_policy", "drop"))
    try:
        return RefinementEngine(reorder_policy=ReorderPolicy(policy))
    except ValueError as error:
        raise typer.BadParameter(
            f"Unknown reorder policy '{policy}'. Expected 'drop' or 'append'.",
            param_hint="--reorder-policy",
        ) from error


def _parse_tier(value: str) -> QuotaTier:
    try:
        return QuotaTier(value.lower())
    except ValueError as error:
        raise typer.BadParameter(
            f"Unknown tier '{value}'. Expected 'standard' or 'premium'.",
            param_hint="--tier",
        ) from error


def _read_plan(path: Path) -> Plan:
    try:
        return Plan.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as error:
        typer.echo(f"Failed to read plan {path}: {error}")
        raise typer.Exit(code=1) from error
    except ValidationError as error:
        typer.echo(f"Plan file {path} is not a valid plan: {error}")
        raise typer.Exit(code=1) from error


def _write_plan(plan: Plan, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(plan.model_dump_json(indent=2) + "\n", encoding="utf-8")


def _render_plan(plan: Plan) -> None:
    typer.echo(f"Plan: {plan.project_title or '(untitled)'}")
    for position, task in enumerate(plan.tasks, start=1):
        minutes = f" ({task.estimated_minutes} min)" if task.estimated_minutes else ""
        marker = "x" if task.is_completed else " "
        typer.echo(f"{position:>2}. [{marker}] {task.title}{minutes} [{task.id}]")
        if task.action:
            typer.echo(f"       {task.action}")
    total = plan.total_minutes()
    if total:
        typer.echo(f"Estimated total: {total} min")
    if plan.time_warning:
        typer.echo(f"Time warning: {plan.time_warning}")


def _report_outcome(outcome: RefinementOutcome) -> None:
    if outcome.explanation:
        typer.echo(f"Co-pilot: {outcome.explanation}")
    for note in outcome.skipped:
        typer.echo(f"Skipped {note}")


def _render_diff(diff: PlanDiff, after: Plan) -> None:
    if not diff.has_changes:
        typer.echo("No changes proposed.")
        return
    if diff.title_change:
        before_title, after_title = diff.title_change
        typer.echo(f"~ title: {before_title or '(untitled)'} -> {after_title}")
    for task_id in diff.removed:
        typer.echo(f"- {task_id}")
    for task_id in diff.added:
        typer.echo(f"+ {task_id}: {after.find(task_id).title}")
    for task_id in diff.updated:
        typer.echo(f"~ {task_id}: {after.find(task_id).title}")
    if diff.reordered:
        typer.echo(f"~ order: {', '.join(after.task_ids())}")


def _echo_progress(file_name: str, progress: UploadProgress) -> None:
    typer.echo(f"Uploading {file_name}: {progress.percentage}%")


@app.command()
def init(
    config: str = _config_option(),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write the default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"{config_path} already exists; use --force to overwrite it.")
        raise typer.Exit(code=1)
    write_config(config_path, DEFAULT_CONFIG_TEMPLATE)
    typer.echo(f"Wrote default configuration to {config_path}.")


@app.command("check-files")
def check_files(
    files: List[Path] = typer.Argument(..., help="Documents to validate against the quota."),
    tier: str = typer.Option("standard", "--tier", help="Subscription tier: standard or premium."),
) -> None:
    """Report which documents fit the tier's upload quota."""
    quota_tier = _parse_tier(tier)
    missing = [path for path in files if not path.is_file()]
    if missing:
        typer.echo(f"File not found: {', '.join(str(path) for path in missing)}")
        raise typer.Exit(code=1)

    documents = [DocumentFile.from_path(path) for path in files]
    supported, rejected = partition_by_media_type(documents)
    result = validate_ingestion([], supported, rejected, policy_for(quota_tier))
    for item in result.accepted:
        typer.echo(f"OK    {item.name} ({format_file_size(item.size)})")
    for message in result.errors:
        typer.echo(f"ERROR {message}")
    if result.errors:
        raise typer.Exit(code=1)


@app.command()
def generate(
    goal: str = typer.Argument(..., help="What you want to accomplish."),
    file: List[Path] = typer.Option(
        None,
        "--file",
        "-f",
        help="Reference document to attach (repeatable).",
    ),
    time: int = typer.Option(0, "--time", "-t", help="Minutes available; 0 means unlimited."),
    strict: bool = typer.Option(False, "--strict", help="Fit the plan strictly inside --time."),
    energy: str = typer.Option("medium", "--energy", help="Energy level: low, medium or high."),
    breakdown: str = typer.Option(
        "small",
        "--breakdown",
        help="Step granularity: focused, small or micro.",
    ),
    tier: Optional[str] = typer.Option(None, "--tier", help="Override the configured tier."),
    out: Path = typer.Option(Path("plan.json"), "--out", "-o", help="Where to write the plan."),
    config: str = _config_option(),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Generate a plan for GOAL and write it as JSON."""
    config_data = _load(config, verbose)
    quota_tier = _parse_tier(tier or str(config_value(config_data, "session.tier", "standard")))
    storage = _build_storage(config_data)
    oracle = _build_oracle(config_data, storage)
    telemetry = _build_telemetry(config_data)
    try:
        session = PlanSession(
            oracle,
            tier=quota_tier,
            owner=str(config_value(config_data, "session.owner", "local")),
            storage=storage,
            engine=_build_engine(config_data),
            telemetry=telemetry,
            progress_listener=_echo_progress,
        )
        if file:
            missing = [path for path in file if not path.is_file()]
            if missing:
                typer.echo(f"File not found: {', '.join(str(path) for path in missing)}")
                raise typer.Exit(code=1)
            result = session.add_files(DocumentFile.from_path(path) for path in file)
            for message in result.errors:
                typer.echo(f"Skipping document: {message}")
        try:
            plan = asyncio.run(
                session.generate(
                    goal,
                    allocated_minutes=time,
                    strict_time_adherence=strict,
                    energy_level=energy,
                    breakdown_level=breakdown,
                )
            )
        except ValueError as error:
            typer.echo(f"Invalid option: {error}")
            raise typer.Exit(code=1) from error
        except FocusFlowError as error:
            typer.echo(f"Plan generation failed: {error}")
            raise typer.Exit(code=1) from error
    finally:
        _close_telemetry(telemetry)

    _write_plan(plan, out)
    _render_plan(plan)
    typer.echo(f"Saved plan to {out}.")


@app.command()
def refine(
    plan_path: Path = typer.Argument(..., help="Plan JSON written by 'generate'."),
    command: str = typer.Argument(..., help="Edit request, e.g. 'make all tasks 10 minutes'."),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Output path (defaults to PLAN_PATH)."),
    context: Optional[str] = typer.Option(None, "--context", help="Extra document context for the oracle."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview the proposed changes without saving them."),
    config: str = _config_option(),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Refine a saved plan with a natural-language COMMAND."""
    config_data = _load(config, verbose)
    plan = _read_plan(plan_path)
    storage = _build_storage(config_data)
    oracle = _build_oracle(config_data, storage)
    telemetry = _build_telemetry(config_data)
    try:
        session = PlanSession(oracle, engine=_build_engine(config_data), telemetry=telemetry)
        session.load_plan(plan)
        try:
            outcome = session.propose(command, document_context=context)
            _report_outcome(outcome)
            _render_diff(session.pending.diff, outcome.plan)
            if dry_run:
                session.discard()
                typer.echo("Dry run: plan not saved.")
                return
            refined = session.accept()
        except FocusFlowError as error:
            typer.echo(f"Plan refinement failed: {error}")
            raise typer.Exit(code=1) from error
    finally:
        _close_telemetry(telemetry)

    _write_plan(refined, out or plan_path)
    _render_plan(refined)


@app.command()
def apply(
    plan_path: Path = typer.Argument(..., help="Plan JSON written by 'generate'."),
    modifications_path: Path = typer.Argument(..., help="Refinement response JSON to apply."),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Output path (defaults to PLAN_PATH)."),
    reorder_policy: Optional[str] = typer.Option(
        None,
        "--reorder-policy",
        help="What to do with tasks a reorder omits: drop or append.",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview the changes without saving them."),
    config: str = _config_option(),
) -> None:
    """Apply a saved modification list to a plan without calling the oracle."""
    config_data = _load(config)
    plan = _read_plan(plan_path)
    engine = _build_engine(config_data, reorder_policy)
    try:
        raw = modifications_path.read_text(encoding="utf-8")
    except OSError as error:
        typer.echo(f"Failed to read modifications {modifications_path}: {error}")
        raise typer.Exit(code=1) from error
    try:
        proposal = parse_modifications(raw)
        outcome = engine.apply_proposal(plan, proposal)
    except FocusFlowError as error:
        typer.echo(f"Could not apply modifications: {error}")
        raise typer.Exit(code=1) from error

    _report_outcome(outcome)
    if dry_run:
        _render_diff(diff_plans(plan, outcome.plan), outcome.plan)
        typer.echo("Dry run: plan not saved.")
        return
    _write_plan(outcome.plan, out or plan_path)
    _render_plan(outcome.plan)


@app.command()
def show(
    plan_path: Path = typer.Argument(..., help="Plan JSON to display."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw plan JSON."),
) -> None:
    """Print a saved plan."""
    plan = _read_plan(plan_path)
    if as_json:
        typer.echo(json.dumps(plan.model_dump(mode="json"), indent=2))
        return
    _render_plan(plan)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
