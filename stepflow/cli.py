"""Command line interface for running stepflow workflows."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, NoReturn, Optional, Tuple

import typer

from stepflow import WorkflowEngine
from stepflow.cli_utils.workflow import (
    dump_workflow_file,
    format_result,
    load_ranges_file,
    load_workflow_file,
    parse_variables,
)
from stepflow.config import StepflowConfig, load_config
from stepflow.contracts import BatchError, BatchOptions, BatchProgress, Workflow
from stepflow.errors import BatchTargetError, WorkflowNotFoundError
from stepflow.operations import InMemoryRangeStore, default_registry
from stepflow.persistence import get_store
from stepflow.templates import find_template

app = typer.Typer(help="CLI for stepflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for running and storing workflows")
template_app = typer.Typer(help="Commands for built-in and saved templates")
history_app = typer.Typer(help="Commands for recorded workflow runs")

app.add_typer(workflow_app, name="workflow")
app.add_typer(template_app, name="template")
app.add_typer(history_app, name="history")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, help="Logging level (defaults to the configured log_level)"
    ),
) -> None:
    """stepflow CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _build_engine(
    ranges: Optional[Path] = None, database_url: Optional[str] = None
) -> Tuple[WorkflowEngine, InMemoryRangeStore, StepflowConfig]:
    config = load_config()
    try:
        range_store = InMemoryRangeStore(load_ranges_file(ranges) if ranges else None)
    except (OSError, ValueError) as exc:
        _fail(f"Could not read ranges: {exc}")
    engine = WorkflowEngine(
        default_registry(),
        range_reader=range_store,
        range_writer=range_store,
        store=get_store(database_url, config),
        config=config,
    )
    return engine, range_store, config


def _load(workflow_path: Path) -> Workflow:
    try:
        return load_workflow_file(workflow_path)
    except OSError as exc:
        _fail(f"Could not read {workflow_path}: {exc}")
    except ValueError as exc:
        _fail(f"Invalid workflow {workflow_path}: {exc}")


@workflow_app.command("run")
def workflow_run(
    workflow_path: Path,
    var: Optional[List[str]] = typer.Option(
        None, "--var", help="Initial variable as name=value (repeatable)"
    ),
    ranges: Optional[Path] = typer.Option(
        None, help="YAML/JSON file mapping range addresses to values"
    ),
    run_id: Optional[str] = None,
    database_url: Optional[str] = None,
) -> None:
    """
    Run a workflow definition once.

    Steps execute in order against the built-in operations and an in-memory
    range store. Exits with code 1 when the run is unsuccessful.

    Example:
        stepflow workflow run ./report.yaml --var threshold=5
        stepflow workflow run ./report.yaml --ranges ./data.yaml
    """
    workflow = _load(workflow_path)
    try:
        variables = parse_variables(var or [])
    except ValueError as exc:
        _fail(str(exc))
    engine, range_store, _ = _build_engine(ranges, database_url)

    result = asyncio.run(engine.run_workflow(workflow, variables, run_id=run_id))
    for line in format_result(result):
        typer.echo(line)
    written = range_store.snapshot()
    if written:
        typer.echo(f"Ranges: {written}")
    if not result.success:
        raise typer.Exit(code=1)


@workflow_app.command("batch")
def workflow_batch(
    workflow_path: Path,
    targets: List[str],
    parallel: bool = typer.Option(False, help="Run targets concurrently in chunks"),
    ranges: Optional[Path] = typer.Option(
        None, help="YAML/JSON file mapping range addresses to values"
    ),
    database_url: Optional[str] = None,
) -> None:
    """
    Run a workflow once per target.

    Each target is exposed to the workflow as the currentItem and currentRange
    variables.

    Example:
        stepflow workflow batch ./clean.yaml Sheet1!A1:B10 Sheet2!A1:B10 --parallel
    """
    workflow = _load(workflow_path)
    engine, _, _ = _build_engine(ranges, database_url)

    def on_progress(progress: BatchProgress) -> None:
        typer.echo(
            f"[{progress.percentage:5.1f}%] {progress.current_item} "
            f"({progress.completed}/{progress.total}, {progress.failed} failed)"
        )

    def on_error(error: BatchError) -> None:
        typer.secho(f"Target {error.item} failed: {error.error}", fg=typer.colors.YELLOW)

    options = BatchOptions(parallel=parallel, on_progress=on_progress, on_error=on_error)
    try:
        results = asyncio.run(engine.run_batch(targets, workflow, options))
    except BatchTargetError as exc:
        _fail(f"Batch aborted: {exc}")

    for target, result in zip(targets, results):
        typer.echo(f"{target}\t{result.status.value}\tsuccess={result.success}")
    if not all(r.success for r in results):
        raise typer.Exit(code=1)


@workflow_app.command("validate")
def workflow_validate(workflow_path: Path) -> None:
    """Parse a workflow definition and list its steps."""
    workflow = _load(workflow_path)
    typer.echo(
        f"Workflow {workflow.name} ({workflow.id}): {len(workflow.steps)} steps, "
        f"error_handling={workflow.error_handling.value}"
    )
    for step in workflow.steps:
        typer.echo(f"  {step.id} [{step.type.value}] {step.operation}")


@workflow_app.command("save")
def workflow_save(
    workflow_path: Path,
    template: bool = typer.Option(False, help="Store the workflow as a template"),
    database_url: Optional[str] = None,
) -> None:
    """Store a workflow definition in the configured store."""
    workflow = _load(workflow_path)
    engine, _, _ = _build_engine(database_url=database_url)
    if template:
        asyncio.run(engine.save_workflow_template(workflow))
    else:
        asyncio.run(engine.save_workflow(workflow))
    typer.echo(f"Saved workflow {workflow.id}")


@workflow_app.command("list")
def workflow_list(database_url: Optional[str] = None) -> None:
    """List stored workflow definitions."""
    store = get_store(database_url)
    workflows = asyncio.run(store.list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\t{wf.name}\t{len(wf.steps)} steps")


@workflow_app.command("show")
def workflow_show(workflow_id: str, database_url: Optional[str] = None) -> None:
    """Show a stored workflow definition."""
    store = get_store(database_url)
    try:
        wf = asyncio.run(store.load_workflow(workflow_id))
    except WorkflowNotFoundError:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {wf.id}: {wf.name}")
    if wf.description:
        typer.echo(wf.description)
    if wf.variables:
        typer.echo(f"Variables: {wf.variables}")
    for step in wf.steps:
        typer.echo(f"- {step.id} [{step.type.value}] {step.operation}")


@template_app.command("list")
def template_list(database_url: Optional[str] = None) -> None:
    """List built-in and saved templates."""
    engine, _, _ = _build_engine(database_url=database_url)
    for template in asyncio.run(engine.get_workflow_templates()):
        typer.echo(f"{template.name} - {template.description or 'No description'}")


@template_app.command("export")
def template_export(
    name: str, output_path: Path, database_url: Optional[str] = None
) -> None:
    """Write a template to a YAML or JSON file for editing."""
    engine, _, _ = _build_engine(database_url=database_url)
    templates = asyncio.run(engine.get_workflow_templates())
    try:
        template = find_template(name, templates)
    except WorkflowNotFoundError:
        _fail(f"Template {name} not found")
    dump_workflow_file(template, output_path)
    typer.echo(f"Wrote {template.name} to {output_path}")


@history_app.command("list")
def history_list(database_url: Optional[str] = None) -> None:
    """List recorded runs, oldest first."""
    engine, _, _ = _build_engine(database_url=database_url)
    runs = asyncio.run(engine.history())
    if not runs:
        typer.echo("No runs recorded")
        return
    for run in runs:
        typer.echo(
            f"{run.run_id}\t{run.status.value}\tsuccess={run.success}\t{run.duration_ms:.1f} ms"
        )


@history_app.command("clear")
def history_clear(database_url: Optional[str] = None) -> None:
    """Forget all recorded runs."""
    engine, _, _ = _build_engine(database_url=database_url)
    asyncio.run(engine.clear_history())
    typer.echo("History cleared")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
