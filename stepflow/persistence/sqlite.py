"""SQLite implementation of the workflow store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel
from pydantic_core import PydanticSerializationError

from ..contracts import Workflow, WorkflowResult
from ..errors import WorkflowNotFoundError
from .repository import WorkflowStore


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _dumps(model: BaseModel) -> str:
    try:
        return model.model_dump_json()
    except PydanticSerializationError:
        # step outputs may hold arbitrary objects
        return json.dumps(model.model_dump(), default=_json_default)


class SQLiteWorkflowStore(WorkflowStore):
    """Persist workflow definitions and run history using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                is_template INTEGER NOT NULL DEFAULT 0,
                definition TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT NOT NULL UNIQUE,
                workflow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                success INTEGER NOT NULL,
                result TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Workflow definitions
    async def save_workflow(self, workflow: Workflow) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT OR REPLACE INTO workflows (id, name, is_template, definition) VALUES (?, ?, ?, ?)",
            workflow.id,
            workflow.name,
            int(workflow.is_template),
            _dumps(workflow),
        )

    async def load_workflow(self, workflow_id: str) -> Workflow:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT definition FROM workflows WHERE id = ?",
            workflow_id,
        )
        if not row:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        return Workflow.model_validate(json.loads(row["definition"]))

    async def list_workflows(self) -> list[Workflow]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT definition FROM workflows ORDER BY name, id"
        )
        return [Workflow.model_validate(json.loads(r["definition"])) for r in rows]

    async def delete_workflow(self, workflow_id: str) -> bool:
        deleted = await asyncio.to_thread(
            self._execute, "DELETE FROM workflows WHERE id = ?", workflow_id
        )
        return deleted > 0

    # ------------------------------------------------------------------
    # Run history
    async def record_run(self, result: WorkflowResult) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT OR REPLACE INTO runs (run_id, workflow_id, status, success, result) VALUES (?, ?, ?, ?, ?)",
            result.run_id,
            result.workflow_id,
            result.status.value,
            int(result.success),
            _dumps(result),
        )

    async def list_runs(self, limit: int | None = None) -> list[WorkflowResult]:
        if limit is None:
            rows = await asyncio.to_thread(
                self._fetchall, "SELECT result FROM runs ORDER BY seq"
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT result FROM (SELECT seq, result FROM runs ORDER BY seq DESC LIMIT ?) ORDER BY seq",
                max(limit, 0),
            )
        return [WorkflowResult.model_validate(json.loads(r["result"])) for r in rows]

    async def get_run(self, run_id: str) -> WorkflowResult:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT result FROM runs WHERE run_id = ?", run_id
        )
        if not row:
            raise WorkflowNotFoundError(f"Run {run_id} not found")
        return WorkflowResult.model_validate(json.loads(row["result"]))

    async def clear_runs(self) -> None:
        await asyncio.to_thread(self._execute, "DELETE FROM runs")
