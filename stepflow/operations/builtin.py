"""Operations the engine can perform locally without external services."""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List

from ..contracts import StepType
from .registry import OperationRegistry

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _cells(data: Any) -> List[Any]:
    """Flatten a scalar, list or grid into a list of cell values."""
    if data is None:
        return []
    if isinstance(data, (list, tuple)):
        cells: List[Any] = []
        for item in data:
            if isinstance(item, (list, tuple)):
                cells.extend(item)
            else:
                cells.append(item)
        return cells
    return [data]


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(str(value).strip())
    except ValueError:
        return False
    return bool(str(value).strip())


def _validator(check: Callable[[Any], bool]) -> Callable[[Dict[str, Any]], List[dict]]:
    def _validate(inputs: Dict[str, Any]) -> List[dict]:
        return [{"value": v, "valid": check(v)} for v in _cells(inputs.get("data"))]

    return _validate


validate_emails = _validator(lambda v: isinstance(v, str) and bool(EMAIL_RE.match(v)))
validate_numbers = _validator(_is_number)
validate_required = _validator(lambda v: v is not None and v != "")


def pivot(inputs: Dict[str, Any]) -> Dict[str, Any]:
    """Describe a pivot table over the input range."""
    return {
        "sourceData": inputs.get("range"),
        "rows": inputs.get("rows") or [],
        "columns": inputs.get("columns") or [],
        "values": inputs.get("values") or [],
    }


def flatten(inputs: Dict[str, Any]) -> List[Any]:
    return _cells(inputs.get("data"))


def register_builtins(registry: OperationRegistry) -> OperationRegistry:
    registry.register(StepType.VALIDATION, "validate-emails", validate_emails)
    registry.register(StepType.VALIDATION, "validate-numbers", validate_numbers)
    registry.register(StepType.VALIDATION, "validate-required", validate_required)
    registry.register(StepType.DATA_TRANSFORM, "pivot", pivot)
    registry.register(StepType.DATA_TRANSFORM, "flatten", flatten)
    return registry


def default_registry() -> OperationRegistry:
    """Return a new registry holding the built-in operations."""
    return register_builtins(OperationRegistry())
