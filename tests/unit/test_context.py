import pytest

from stepflow.context import ExecutionContext, split_output_key


def test_create_merges_overrides_over_workflow_variables():
    ctx = ExecutionContext.create({"a": 1, "b": 2}, {"b": 3, "c": 4}, run_id="r1")
    assert ctx.variables == {"a": 1, "b": 3, "c": 4}
    assert ctx.run_id == "r1"


def test_variables_and_outputs_are_separate():
    ctx = ExecutionContext()
    ctx.set("total", 42)
    ctx.set_output("sum", "total", 42)

    assert ctx.get("total") == 42
    assert ctx.get_output("sum", "total") == 42
    assert ctx.outputs == {"sum.total": 42}
    assert ctx.has("total")
    assert ctx.has_output("sum", "total")
    assert not ctx.has_output("other", "total")
    assert ctx.get("missing", "fallback") == "fallback"


def test_views_are_copies():
    ctx = ExecutionContext({"a": 1})
    ctx.variables["a"] = 99
    ctx.outputs["x.y"] = 1
    assert ctx.get("a") == 1
    assert ctx.outputs == {}


def test_split_output_key():
    assert split_output_key("clean.cleanedData") == ("clean", "cleanedData")
    assert split_output_key("a.b.c") == ("a", "b.c")
    with pytest.raises(ValueError):
        split_output_key("no_dot")
    with pytest.raises(ValueError):
        split_output_key(".name")
