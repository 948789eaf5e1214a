"""Utility functions to read workflow definitions and CLI arguments."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List

import yaml

from stepflow.contracts import StepResult, Workflow, WorkflowResult

JSON_SUFFIXES = {".json"}


def _read_document(path: Path) -> Any:
    text = Path(path).read_text()
    if Path(path).suffix.lower() in JSON_SUFFIXES:
        return json.loads(text)
    return yaml.safe_load(text)


def load_workflow_file(path: Path) -> Workflow:
    """Parse a YAML or JSON workflow definition."""
    data = _read_document(path)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a workflow mapping")
    return Workflow.model_validate(data)


def dump_workflow_file(workflow: Workflow, path: Path) -> None:
    data = workflow.model_dump(mode="json")
    if Path(path).suffix.lower() in JSON_SUFFIXES:
        Path(path).write_text(json.dumps(data, indent=2))
    else:
        Path(path).write_text(yaml.safe_dump(data, sort_keys=False))


def load_ranges_file(path: Path) -> Dict[str, Any]:
    """Read an ``address: grid`` mapping used to seed the range store."""
    data = _read_document(path) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must map range addresses to values")
    return {str(k): v for k, v in data.items()}


def parse_variables(pairs: Iterable[str]) -> Dict[str, Any]:
    """Parse ``name=value`` pairs; values are read as YAML scalars."""
    variables: Dict[str, Any] = {}
    for pair in pairs:
        name, sep, raw = pair.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Expected name=value, got {pair!r}")
        try:
            variables[name.strip()] = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid value for {name.strip()}: {e}") from e
    return variables


def _format_step(step: StepResult) -> str:
    if step.skipped:
        status = "skipped"
    elif step.success:
        status = "ok"
    else:
        status = "failed"
    line = f"- {step.step_id}: {status} ({step.duration_ms:.1f} ms, retries={step.retries})"
    if step.error:
        line += f" {step.error}"
    return line


def format_result(result: WorkflowResult) -> List[str]:
    lines = [f"Run {result.run_id}: {result.status.value} success={result.success}"]
    lines.extend(_format_step(step) for step in result.steps)
    for error in result.errors:
        lines.append(f"! {error.step_id}: {error.message}")
    if result.outputs:
        lines.append(f"Outputs: {json.dumps(result.outputs, default=str)}")
    return lines
