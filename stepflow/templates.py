"""Pre-built workflow templates."""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from .contracts import Workflow
from .errors import WorkflowNotFoundError

WORKFLOW_TEMPLATES: List[Dict[str, Any]] = [
    {
        "name": "Data Analysis Pipeline",
        "description": "Analyze data, generate insights, and create visualizations",
        "steps": [
            {
                "id": "detect",
                "name": "Detect Data Types",
                "type": "data-transform",
                "operation": "smart-detect",
                "inputs": [
                    {"name": "range", "type": "range", "source": "selection", "required": True}
                ],
                "outputs": [{"name": "dataInfo", "type": "variable", "target": "detectedInfo"}],
            },
            {
                "id": "analyze",
                "name": "AI Analysis",
                "type": "ai-analysis",
                "operation": "analyze",
                "inputs": [
                    {"name": "data", "type": "range", "source": "selection", "required": True},
                    {"name": "context", "type": "variable", "source": "detectedInfo"},
                ],
                "outputs": [
                    {"name": "insights", "type": "variable", "target": "analysisResults"}
                ],
            },
            {
                "id": "format",
                "name": "Apply Smart Formatting",
                "type": "formatting",
                "operation": "conditional-format",
                "inputs": [
                    {"name": "range", "type": "range", "source": "selection", "required": True},
                    {"name": "rules", "type": "variable", "source": "analysisResults.formatting"},
                ],
            },
        ],
        "error_handling": "continue",
    },
    {
        "name": "Monthly Report Generator",
        "description": "Generate comprehensive monthly reports from raw data",
        "steps": [
            {
                "id": "clean",
                "name": "Clean Data",
                "type": "ai-generation",
                "operation": "clean",
                "inputs": [
                    {"name": "data", "type": "range", "source": "selection", "required": True}
                ],
                "outputs": [{"name": "cleanedData", "type": "range", "target": "Sheet2!A1"}],
            },
            {
                "id": "summarize",
                "name": "Generate Summary",
                "type": "ai-analysis",
                "operation": "summarize",
                "inputs": [
                    {
                        "name": "data",
                        "type": "previous-output",
                        "source": "clean.cleanedData",
                        "required": True,
                    }
                ],
                "outputs": [{"name": "summary", "type": "value", "target": "summary"}],
            },
            {
                "id": "chart",
                "name": "Create Charts",
                "type": "document-operation",
                "operation": "create-chart",
                "inputs": [
                    {
                        "name": "data",
                        "type": "previous-output",
                        "source": "clean.cleanedData",
                        "required": True,
                    }
                ],
            },
        ],
        "error_handling": "stop",
    },
]


def create_workflow_from_template(template: Dict[str, Any]) -> Workflow:
    """Build a full workflow from a partial template definition."""
    data = {"id": f"template_{uuid.uuid4().hex}", **template, "is_template": True}
    return Workflow.model_validate(data)


def builtin_templates() -> List[Workflow]:
    return [create_workflow_from_template(t) for t in WORKFLOW_TEMPLATES]


def find_template(name: str, templates: Optional[List[Workflow]] = None) -> Workflow:
    """Return the template called ``name`` (case-insensitive)."""
    for template in templates if templates is not None else builtin_templates():
        if template.name.lower() == name.lower() or template.id == name:
            return template
    raise WorkflowNotFoundError(f"Template {name} not found")
