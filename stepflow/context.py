"""Per-run variable and step output scope."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


def output_key(step_id: str, output_name: str) -> str:
    return f"{step_id}.{output_name}"


def split_output_key(key: str) -> tuple[str, str]:
    """Split ``"<step_id>.<output_name>"`` on the first dot."""
    step_id, sep, output_name = key.partition(".")
    if not sep or not step_id or not output_name:
        raise ValueError(f"Output reference must look like '<stepId>.<outputName>': {key!r}")
    return step_id, output_name


class ExecutionContext:
    """Variables and outputs accumulated during a single workflow run.

    One instance is created per run and written only by the step executor;
    contexts are never shared between runs.
    """

    def __init__(
        self,
        variables: Optional[Mapping[str, Any]] = None,
        run_id: Optional[str] = None,
    ) -> None:
        self.run_id = run_id
        self._variables: Dict[str, Any] = dict(variables or {})
        self._outputs: Dict[str, Any] = {}

    @classmethod
    def create(
        cls,
        workflow_variables: Optional[Mapping[str, Any]] = None,
        overrides: Optional[Mapping[str, Any]] = None,
        run_id: Optional[str] = None,
    ) -> "ExecutionContext":
        """Merge workflow defaults with caller overrides; overrides win."""
        merged = {**(workflow_variables or {}), **(overrides or {})}
        return cls(merged, run_id=run_id)

    def get(self, name: str, default: Any = None) -> Any:
        return self._variables.get(name, default)

    def set(self, name: str, value: Any) -> None:
        self._variables[name] = value

    def has(self, name: str) -> bool:
        return name in self._variables

    def get_output(self, step_id: str, output_name: str, default: Any = None) -> Any:
        return self._outputs.get(output_key(step_id, output_name), default)

    def set_output(self, step_id: str, output_name: str, value: Any) -> None:
        self._outputs[output_key(step_id, output_name)] = value

    def has_output(self, step_id: str, output_name: str) -> bool:
        return output_key(step_id, output_name) in self._outputs

    @property
    def variables(self) -> Dict[str, Any]:
        return dict(self._variables)

    @property
    def outputs(self) -> Dict[str, Any]:
        return dict(self._outputs)
