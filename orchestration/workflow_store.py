"""
Agent Core — Workflow Definition Store

Named, versioned workflow definitions with an is_active flag. The
engine treats them as read-mostly data; authoring happens elsewhere
(YAML files under workflows/, or update_workflow()).

Definition file shape (workflows/bug_triage.yaml):

    name: bug_triage
    version: 1.0.0
    states:
      New: Bug reported by user or agent
      Triage: Automated severity analysis
    transitions:
      - {from: New, to: Triage, event: REPORT_RECEIVED}
      - {from: Triage, to: Escalated, event: PLAN, condition: "strategy:three-tier"}
    metadata:
      initial: New
      roles: {Quick_Fix: devon, Escalated: orion}
      timeouts: {Quick_Fix: 86400}
      auto_actions: {Merged: DELETE_BRANCH}
      max_loops: {Clarification: 3}
"""

from __future__ import annotations

import abc
import copy
import json
import logging
import sqlite3
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from agentcore.db import SQLiteBackend
from agentcore.errors import ValidationError

logger = logging.getLogger("agentcore.workflow_store")


@dataclass
class WorkflowDefinition:
    name: str
    version: str = "1.0.0"
    states: dict[str, str] = field(default_factory=dict)
    transitions: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True

    @property
    def initial(self) -> str | None:
        if self.metadata.get("initial"):
            return self.metadata["initial"]
        if self.states:
            return next(iter(self.states))
        if self.transitions:
            return self.transitions[0].get("from")
        return None

    def all_states(self) -> set[str]:
        names = set(self.states)
        for t in self.transitions:
            names.add(t.get("from"))
            names.add(t.get("to"))
        names.discard(None)
        return names

    def definition(self) -> dict[str, Any]:
        return {
            "initial": self.initial,
            "states": copy.deepcopy(self.states),
            "transitions": copy.deepcopy(self.transitions),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.name,
            "name": self.name,
            "version": self.version,
            "definition": self.definition(),
            "metadata": copy.deepcopy(self.metadata),
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowDefinition:
        """Accepts the flat file shape or the {definition: {...}} API shape."""
        if not data.get("name"):
            raise ValidationError("Workflow definition requires a name")
        body = data.get("definition") or data
        if isinstance(body, str):
            body = json.loads(body)
        states = body.get("states") or {}
        if isinstance(states, list):
            states = {s: "" for s in states}
        transitions = body.get("transitions")
        if not isinstance(transitions, list):
            raise ValidationError(
                f"Invalid workflow definition {data['name']!r}: missing transitions list"
            )
        for t in transitions:
            if not isinstance(t, dict) or not t.get("from") or not t.get("to") or not t.get("event"):
                raise ValidationError(
                    f"Invalid transition in {data['name']!r}: {t!r} (needs from, to, event)"
                )
        metadata = dict(data.get("metadata") or {})
        if body.get("initial") and "initial" not in metadata:
            metadata["initial"] = body["initial"]
        return cls(
            name=data["name"],
            version=str(data.get("version", "1.0.0")),
            states={str(k): (v or "") for k, v in states.items()},
            transitions=[dict(t) for t in transitions],
            metadata=metadata,
            is_active=bool(data.get("is_active", True)),
        )


# ─── Abstract Store Interface ────────────────────────────────────────

class WorkflowStore(abc.ABC):

    @abc.abstractmethod
    def get(self, name: str, active_only: bool = True) -> WorkflowDefinition | None:
        ...

    @abc.abstractmethod
    def list(self, active_only: bool = True) -> list[WorkflowDefinition]:
        """Definitions ordered by name."""
        ...

    @abc.abstractmethod
    def save(self, definition: WorkflowDefinition) -> None:
        """Insert or replace by name."""
        ...

    @abc.abstractmethod
    def update(self, name: str, definition: WorkflowDefinition) -> bool:
        """Replace the definition stored under `name` (may rename). False when missing."""
        ...


# ─── In-Memory Implementation ────────────────────────────────────────

class InMemoryWorkflowStore(WorkflowStore):

    def __init__(self, definitions: list[WorkflowDefinition] | None = None):
        self._defs: dict[str, WorkflowDefinition] = {}
        self._lock = threading.Lock()
        for d in definitions or ():
            self.save(d)

    def get(self, name: str, active_only: bool = True) -> WorkflowDefinition | None:
        with self._lock:
            d = self._defs.get(name)
        if d is None or (active_only and not d.is_active):
            return None
        return copy.deepcopy(d)

    def list(self, active_only: bool = True) -> list[WorkflowDefinition]:
        with self._lock:
            defs = [copy.deepcopy(d) for d in self._defs.values()]
        if active_only:
            defs = [d for d in defs if d.is_active]
        return sorted(defs, key=lambda d: d.name)

    def save(self, definition: WorkflowDefinition) -> None:
        with self._lock:
            self._defs[definition.name] = copy.deepcopy(definition)

    def update(self, name: str, definition: WorkflowDefinition) -> bool:
        with self._lock:
            if name not in self._defs:
                return False
            del self._defs[name]
            self._defs[definition.name] = copy.deepcopy(definition)
        return True


# ─── SQLite Implementation ───────────────────────────────────────────

class SQLiteWorkflowStore(WorkflowStore):

    def __init__(self, db: SQLiteBackend):
        self.db = db
        self.db.executescript("""
            CREATE TABLE IF NOT EXISTS workflows (
                name TEXT PRIMARY KEY,
                version TEXT NOT NULL DEFAULT '1.0.0',
                definition TEXT NOT NULL,
                metadata TEXT DEFAULT '{}',
                is_active INTEGER NOT NULL DEFAULT 1,
                updated_at REAL NOT NULL
            );
        """)

    def get(self, name: str, active_only: bool = True) -> WorkflowDefinition | None:
        query = "SELECT * FROM workflows WHERE name = ?"
        if active_only:
            query += " AND is_active = 1"
        row = self.db.fetchone(query, (name,))
        return self._row_to_definition(row) if row else None

    def list(self, active_only: bool = True) -> list[WorkflowDefinition]:
        query = "SELECT * FROM workflows"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY name"
        return [self._row_to_definition(r) for r in self.db.fetchall(query)]

    def save(self, definition: WorkflowDefinition) -> None:
        self.db.execute(
            "INSERT OR REPLACE INTO workflows "
            "(name, version, definition, metadata, is_active, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            self._row_values(definition),
        )

    def update(self, name: str, definition: WorkflowDefinition) -> bool:
        values = self._row_values(definition)
        try:
            cur = self.db.execute(
                "UPDATE workflows SET name = ?, version = ?, definition = ?, metadata = ?, "
                "is_active = ?, updated_at = ? WHERE name = ?",
                values + (name,),
            )
        except sqlite3.IntegrityError as e:
            raise ValidationError(f"Workflow name already exists: {definition.name}") from e
        return cur.rowcount == 1

    @staticmethod
    def _row_values(d: WorkflowDefinition) -> tuple:
        return (
            d.name,
            d.version,
            json.dumps({"states": d.states, "transitions": d.transitions}),
            json.dumps(d.metadata, default=str),
            1 if d.is_active else 0,
            time.time(),
        )

    @staticmethod
    def _row_to_definition(row: dict[str, Any]) -> WorkflowDefinition:
        body = json.loads(row["definition"])
        return WorkflowDefinition(
            name=row["name"],
            version=row["version"],
            states=body.get("states") or {},
            transitions=body.get("transitions") or [],
            metadata=json.loads(row["metadata"] or "{}"),
            is_active=bool(row["is_active"]),
        )


# ─── Seeding ─────────────────────────────────────────────────────────

def load_definition_file(path: str | Path) -> WorkflowDefinition:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return WorkflowDefinition.from_dict(data)


def load_definitions(store: WorkflowStore, directory: str | Path) -> list[str]:
    """Save every *.yaml / *.yml definition in `directory`. Returns names."""
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Workflow directory not found: {directory}")
    names = []
    for path in sorted([*directory.glob("*.yaml"), *directory.glob("*.yml")]):
        definition = load_definition_file(path)
        store.save(definition)
        names.append(definition.name)
        logger.info("Seeded workflow %s v%s from %s", definition.name, definition.version, path.name)
    return names
