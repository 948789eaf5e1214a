import json

import pytest
from typer.testing import CliRunner

from stepflow.cli import app

FLATTEN_WORKFLOW = """
id: flatten-wf
name: Flatten
error_handling: stop
steps:
  - id: flat
    type: data-transform
    operation: flatten
    inputs:
      - name: data
        type: range
        source: Sheet1!A1:B2
        required: true
    outputs:
      - name: cells
        type: range
        target: Sheet2!A1
"""

TARGET_WORKFLOW = """
id: per-target
name: Per target
error_handling: continue
steps:
  - id: flat
    type: data-transform
    operation: flatten
    inputs:
      - name: data
        type: variable
        source: currentItem
        required: true
    outputs:
      - name: cells
        type: value
        target: cells
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite://{tmp_path / 'stepflow.db'}"


def _write(tmp_path, name: str, content: str):
    path = tmp_path / name
    path.write_text(content)
    return path


def test_workflow_run_writes_ranges(runner, tmp_path, db_url):
    wf_path = _write(tmp_path, "flatten.yaml", FLATTEN_WORKFLOW)
    ranges_path = _write(tmp_path, "ranges.json", json.dumps({"Sheet1!A1:B2": [[1, 2], [3, 4]]}))

    result = runner.invoke(
        app,
        [
            "workflow",
            "run",
            str(wf_path),
            "--ranges",
            str(ranges_path),
            "--run-id",
            "cli-run",
            "--database-url",
            db_url,
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Run cli-run: completed success=True" in result.output
    assert "- flat: ok" in result.output
    assert "Sheet2!A1" in result.output

    history = runner.invoke(app, ["history", "list", "--database-url", db_url])
    assert history.exit_code == 0, history.output
    assert "cli-run\tcompleted\tsuccess=True" in history.output


def test_workflow_run_reports_failure(runner, tmp_path, db_url):
    wf_path = _write(tmp_path, "flatten.yaml", FLATTEN_WORKFLOW)

    result = runner.invoke(app, ["workflow", "run", str(wf_path), "--database-url", db_url])

    assert result.exit_code == 1
    assert "aborted success=False" in result.output
    assert "! flat: Required input data is missing for step flat" in result.output


def test_workflow_run_rejects_bad_variables(runner, tmp_path, db_url):
    wf_path = _write(tmp_path, "flatten.yaml", FLATTEN_WORKFLOW)

    result = runner.invoke(
        app, ["workflow", "run", str(wf_path), "--var", "novalue", "--database-url", db_url]
    )

    assert result.exit_code == 1
    assert "Expected name=value" in result.output


def test_workflow_batch(runner, tmp_path, db_url):
    wf_path = _write(tmp_path, "target.yaml", TARGET_WORKFLOW)

    result = runner.invoke(
        app,
        ["workflow", "batch", str(wf_path), "A1", "B1", "--parallel", "--database-url", db_url],
    )

    assert result.exit_code == 0, result.output
    assert "A1\tcompleted\tsuccess=True" in result.output
    assert "B1\tcompleted\tsuccess=True" in result.output
    assert "Complete" in result.output


def test_workflow_validate(runner, tmp_path):
    wf_path = _write(tmp_path, "flatten.yaml", FLATTEN_WORKFLOW)

    result = runner.invoke(app, ["workflow", "validate", str(wf_path)])

    assert result.exit_code == 0, result.output
    assert "Workflow Flatten (flatten-wf): 1 steps, error_handling=stop" in result.output
    assert "flat [data-transform] flatten" in result.output


def test_workflow_validate_rejects_invalid_definition(runner, tmp_path):
    wf_path = _write(tmp_path, "bad.yaml", "steps:\n  - id: x\n    type: shell\n    operation: rm\n")

    result = runner.invoke(app, ["workflow", "validate", str(wf_path)])

    assert result.exit_code == 1
    assert "Invalid workflow" in result.output


def test_save_list_and_show(runner, tmp_path, db_url):
    wf_path = _write(tmp_path, "flatten.yaml", FLATTEN_WORKFLOW)

    empty = runner.invoke(app, ["workflow", "list", "--database-url", db_url])
    assert "No workflows found" in empty.output

    saved = runner.invoke(app, ["workflow", "save", str(wf_path), "--database-url", db_url])
    assert saved.exit_code == 0, saved.output

    listed = runner.invoke(app, ["workflow", "list", "--database-url", db_url])
    assert "flatten-wf\tFlatten\t1 steps" in listed.output

    shown = runner.invoke(app, ["workflow", "show", "flatten-wf", "--database-url", db_url])
    assert shown.exit_code == 0, shown.output
    assert "- flat [data-transform] flatten" in shown.output

    missing = runner.invoke(app, ["workflow", "show", "missing-id", "--database-url", db_url])
    assert missing.exit_code == 1
    assert "Workflow not found" in missing.output


def test_templates(runner, tmp_path, db_url):
    wf_path = _write(tmp_path, "flatten.yaml", FLATTEN_WORKFLOW)
    runner.invoke(app, ["workflow", "save", str(wf_path), "--template", "--database-url", db_url])

    listed = runner.invoke(app, ["template", "list", "--database-url", db_url])
    assert listed.exit_code == 0, listed.output
    assert "Data Analysis Pipeline - Analyze data" in listed.output
    assert "Flatten - No description" in listed.output

    out_path = tmp_path / "report.yaml"
    exported = runner.invoke(
        app,
        ["template", "export", "monthly report generator", str(out_path), "--database-url", db_url],
    )
    assert exported.exit_code == 0, exported.output
    validated = runner.invoke(app, ["workflow", "validate", str(out_path)])
    assert "summarize [ai-analysis] summarize" in validated.output

    missing = runner.invoke(
        app, ["template", "export", "Nope", str(out_path), "--database-url", db_url]
    )
    assert missing.exit_code == 1


def test_history_clear(runner, db_url):
    empty = runner.invoke(app, ["history", "list", "--database-url", db_url])
    assert "No runs recorded" in empty.output

    cleared = runner.invoke(app, ["history", "clear", "--database-url", db_url])
    assert cleared.exit_code == 0
    assert "History cleared" in cleared.output


def test_workflow_run_rejects_unparseable_variable(runner, tmp_path, db_url):
    wf_path = _write(tmp_path, "flatten.yaml", FLATTEN_WORKFLOW)

    result = runner.invoke(
        app, ["workflow", "run", str(wf_path), "--var", "a=[", "--database-url", db_url]
    )

    assert result.exit_code == 1
    assert "Invalid value for a" in result.output
