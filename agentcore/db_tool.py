"""
Agent Core — Database Tool (orchestrator only)

Direct SQL against the platform's own SQLite store. Statements are
screened before they run: DROP, TRUNCATE, DELETE without WHERE and
ALTER TABLE ... DROP are blocked, and writes to protected tables are
refused. The task queue and workflow tables are protected: task status
only moves through the queue, and workflow rows only through the engine,
which owns the definition cache.
"""

from __future__ import annotations

import re
import sqlite3
from typing import Any

from agentcore.constraints import ConstraintService
from agentcore.db import SQLiteBackend
from agentcore.errors import ToolExecutionError, ValidationError
from agentcore.tools import SandboxTool

BLOCKED_PATTERNS = [
    re.compile(r"\bDROP\s+(TABLE|DATABASE|SCHEMA|INDEX|VIEW|TRIGGER)\b", re.I),
    re.compile(r"\bTRUNCATE\b", re.I),
    re.compile(r"\bDELETE\s+FROM\s+\w+\s*(;|$)", re.I),
    re.compile(r"\bALTER\s+TABLE\s+\w+\s+DROP\b", re.I),
]

_TABLE = r"(?:\w+\.)?[\"`\[]?(\w+)"

_WRITE_TARGETS = [
    re.compile(r"\bINSERT\s+(?:OR\s+\w+\s+)?INTO\s+" + _TABLE, re.I),
    re.compile(r"\bUPDATE\s+(?:OR\s+\w+\s+)?" + _TABLE, re.I),
    re.compile(r"\bDELETE\s+FROM\s+" + _TABLE, re.I),
    re.compile(r"\bREPLACE\s+INTO\s+" + _TABLE, re.I),
]

PROTECTED_TABLES = frozenset({
    "agents", "tools", "projects", "subtasks", "features", "_migrations",
    "agent_fsm_log", "tasks", "workflows",
})


def check_sql_safety(sql: Any) -> str:
    if not isinstance(sql, str) or not sql.strip():
        raise ValidationError("SQL query must be a non-empty string")
    statement = sql.strip()
    for pattern in BLOCKED_PATTERNS:
        if pattern.search(statement):
            raise ValidationError(
                "Blocked: dangerous SQL pattern. Cannot DROP, TRUNCATE, "
                "or DELETE without WHERE clause.",
                sql=statement,
            )
    for pattern in _WRITE_TARGETS:
        match = pattern.search(statement)
        if match and match.group(1).lower() in PROTECTED_TABLES:
            raise ValidationError(
                f'Blocked: table "{match.group(1).lower()}" is protected',
                sql=statement,
            )
    return statement


class DatabaseTool(SandboxTool):
    name = "database"
    description = "query and modify the platform database (guarded SQL)"
    actions = {"query": "read", "execute": "write", "tables": "read"}
    default_action = "query"

    def __init__(self, constraints: ConstraintService, agent_id: str, db: SQLiteBackend):
        super().__init__(constraints, agent_id)
        self.db = db

    def _params(self, params: dict[str, Any]) -> tuple:
        values = params.get("params") or ()
        return tuple(values) if isinstance(values, (list, tuple)) else (values,)

    def _action_query(self, params: dict[str, Any]) -> dict[str, Any]:
        sql = check_sql_safety(self.require(params, "sql", "query"))
        try:
            rows = self.db.fetchall(sql, self._params(params))
        except sqlite3.Error as e:
            raise ToolExecutionError(f"Query failed: {e}", sql=sql) from e
        return {"rows": rows, "row_count": len(rows)}

    def _action_execute(self, params: dict[str, Any]) -> dict[str, Any]:
        sql = check_sql_safety(self.require(params, "sql", "query"))
        try:
            cur = self.db.execute(sql, self._params(params))
        except sqlite3.Error as e:
            raise ToolExecutionError(f"Statement failed: {e}", sql=sql) from e
        return {"row_count": cur.rowcount, "last_row_id": cur.lastrowid}

    def _action_tables(self, params: dict[str, Any]) -> dict[str, Any]:
        rows = self.db.fetchall(
            "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
        )
        return {"tables": [r["name"] for r in rows]}
