import pytest

from stepflow.contracts import RunStatus, StepResult, Workflow, WorkflowResult
from stepflow.errors import WorkflowNotFoundError
from stepflow.persistence import InMemoryWorkflowStore, SQLiteWorkflowStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryWorkflowStore()
    else:
        sqlite_store = SQLiteWorkflowStore(tmp_path / "wf.db")
        yield sqlite_store
        sqlite_store.close()


def _workflow(workflow_id: str, **extra) -> Workflow:
    return Workflow.model_validate(
        {
            "id": workflow_id,
            "name": f"Workflow {workflow_id}",
            "variables": {"threshold": 5},
            "steps": [{"id": "s1", "type": "validation", "operation": "validate-emails"}],
            **extra,
        }
    )


def _run(run_id: str, success: bool = True) -> WorkflowResult:
    return WorkflowResult(
        run_id=run_id,
        workflow_id="wf",
        status=RunStatus.COMPLETED,
        success=success,
        outputs={"s1.total": 42},
        steps=[StepResult(step_id="s1", success=success, output={"total": 42})],
    )


@pytest.mark.asyncio
async def test_workflow_crud(store):
    await store.save_workflow(_workflow("a"))
    await store.save_workflow(_workflow("b", is_template=True))

    loaded = await store.load_workflow("a")
    assert loaded.variables == {"threshold": 5}
    assert loaded.steps[0].operation == "validate-emails"
    assert sorted(w.id for w in await store.list_workflows()) == ["a", "b"]

    updated = _workflow("a", name="Renamed")
    await store.save_workflow(updated)
    assert (await store.load_workflow("a")).name == "Renamed"

    assert await store.delete_workflow("a")
    assert not await store.delete_workflow("a")
    with pytest.raises(WorkflowNotFoundError):
        await store.load_workflow("a")


@pytest.mark.asyncio
async def test_loaded_workflow_is_a_copy(store):
    wf = _workflow("a")
    await store.save_workflow(wf)
    wf.variables["threshold"] = 99

    loaded = await store.load_workflow("a")
    loaded.variables["threshold"] = 7

    assert (await store.load_workflow("a")).variables == {"threshold": 5}


@pytest.mark.asyncio
async def test_run_history(store):
    for i in range(4):
        await store.record_run(_run(f"run-{i}", success=i != 2))

    assert [r.run_id for r in await store.list_runs()] == ["run-0", "run-1", "run-2", "run-3"]
    assert [r.run_id for r in await store.list_runs(limit=2)] == ["run-2", "run-3"]
    assert await store.list_runs(limit=0) == []

    run = await store.get_run("run-2")
    assert not run.success
    assert run.outputs == {"s1.total": 42}
    assert run.steps[0].output == {"total": 42}

    with pytest.raises(WorkflowNotFoundError):
        await store.get_run("missing")

    await store.clear_runs()
    assert await store.list_runs() == []


@pytest.mark.asyncio
async def test_sqlite_store_persists_across_connections(tmp_path):
    db_path = tmp_path / "wf.db"
    first = SQLiteWorkflowStore(db_path)
    await first.save_workflow(_workflow("a"))
    await first.record_run(_run("run-1"))
    first.close()

    second = SQLiteWorkflowStore(db_path)
    assert (await second.load_workflow("a")).id == "a"
    assert [r.run_id for r in await second.list_runs()] == ["run-1"]
    second.close()


@pytest.mark.asyncio
async def test_sqlite_store_records_unserializable_outputs(tmp_path):
    class Opaque:
        def __str__(self) -> str:
            return "opaque-value"

    store = SQLiteWorkflowStore(tmp_path / "wf.db")
    result = _run("run-1")
    result.outputs = {"s1.obj": Opaque()}

    await store.record_run(result)

    loaded = await store.get_run("run-1")
    assert loaded.outputs == {"s1.obj": "opaque-value"}
    assert loaded.status == RunStatus.COMPLETED
    store.close()


@pytest.mark.asyncio
async def test_in_memory_store_caps_run_records():
    store = InMemoryWorkflowStore(max_runs=3)
    for i in range(5):
        await store.record_run(_run(f"run-{i}"))

    assert [r.run_id for r in await store.list_runs()] == ["run-2", "run-3", "run-4"]
    assert (await store.get_run("run-4")).run_id == "run-4"
    with pytest.raises(WorkflowNotFoundError):
        await store.get_run("run-0")
