"""
Agent Core — FSM Transition Log

Append-only record of every agent state change, keyed by subtask.
Separate table from the task queue so an executor run can be replayed
transition by transition after the fact.

Usage:
    log = TransitionLog(create_backend("agentcore.db"))
    log.log_transition(entry)                       # TransitionLogEntry
    log.log_transition("6-1", "devon", "OBSERVE", "THINK")
    log.get_transitions("6-1")                      # oldest first
    log.get_latest("6-1")

Store failures never reach the executor: writes return a stand-in
entry (id=None) and reads return empty results, with a warning logged.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from agentcore.db import SQLiteBackend
from agentcore.fsm import AgentState, TransitionLogEntry, create_log_entry

logger = logging.getLogger("agentcore.audit")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS agent_fsm_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subtask_id TEXT NOT NULL,
    agent TEXT NOT NULL,
    from_state TEXT NOT NULL,
    to_state TEXT NOT NULL,
    timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_fsm_log_subtask ON agent_fsm_log(subtask_id, id);
"""


class TransitionLog:
    """Transition audit store on the shared SQLite backend."""

    def __init__(self, db: SQLiteBackend):
        self._db = db
        self._db.executescript(_SCHEMA)

    def log_transition(
        self,
        entry_or_subtask: TransitionLogEntry | str,
        agent: str = "",
        from_state: AgentState | str = "",
        to_state: AgentState | str = "",
    ) -> TransitionLogEntry:
        if isinstance(entry_or_subtask, TransitionLogEntry):
            entry = entry_or_subtask
        else:
            entry = create_log_entry(from_state, to_state, agent, str(entry_or_subtask))

        try:
            cur = self._db.execute(
                "INSERT INTO agent_fsm_log (subtask_id, agent, from_state, to_state, timestamp)"
                " VALUES (?, ?, ?, ?, ?)",
                (entry.subtask_id, entry.agent, entry.from_state, entry.to_state, entry.timestamp),
            )
        except sqlite3.Error as e:
            logger.warning(
                "Transition log write failed for %s (%s → %s): %s",
                entry.subtask_id, entry.from_state, entry.to_state, e,
            )
            return entry
        return TransitionLogEntry(
            subtask_id=entry.subtask_id,
            agent=entry.agent,
            from_state=entry.from_state,
            to_state=entry.to_state,
            timestamp=entry.timestamp,
            id=cur.lastrowid,
        )

    def get_transitions(self, subtask_id: str, descending: bool = False) -> list[TransitionLogEntry]:
        order = "DESC" if descending else "ASC"
        try:
            rows = self._db.fetchall(
                f"SELECT * FROM agent_fsm_log WHERE subtask_id = ? ORDER BY id {order}",
                (str(subtask_id),),
            )
        except sqlite3.Error as e:
            logger.warning("Transition log read failed for %s: %s", subtask_id, e)
            return []
        return [_row_to_entry(r) for r in rows]

    def get_latest(self, subtask_id: str) -> TransitionLogEntry | None:
        try:
            row = self._db.fetchone(
                "SELECT * FROM agent_fsm_log WHERE subtask_id = ? ORDER BY id DESC LIMIT 1",
                (str(subtask_id),),
            )
        except sqlite3.Error as e:
            logger.warning("Transition log read failed for %s: %s", subtask_id, e)
            return None
        return _row_to_entry(row) if row else None

    def count(self) -> int:
        row = self._db.fetchone("SELECT COUNT(*) AS n FROM agent_fsm_log")
        return row["n"] if row else 0


def _row_to_entry(row: dict[str, Any]) -> TransitionLogEntry:
    return TransitionLogEntry(
        subtask_id=row["subtask_id"],
        agent=row["agent"],
        from_state=row["from_state"],
        to_state=row["to_state"],
        timestamp=row["timestamp"],
        id=row["id"],
    )
