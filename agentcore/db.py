"""
Agent Core — Database Backend

Thin SQLite wrapper shared by the task store, the transition log and
the workflow definition store.

Usage:
    from agentcore.db import create_backend

    db = create_backend(path="agentcore.db")
    cur = db.execute("UPDATE tasks SET status = ? WHERE id = ?", ("running", 7))
    cur.rowcount                       # read from the returned cursor
    row = db.fetchone("SELECT * FROM tasks WHERE id = ?", (7,))

One connection per backend, shared across threads and serialized by
an RLock. Rows come back as plain dicts.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Iterator

logger = logging.getLogger("agentcore.db")


class SQLiteBackend:
    """SQLite backend with WAL journaling and a busy timeout."""

    def __init__(self, path: str = ":memory:", wal: bool = True, busy_timeout: int = 5000):
        self._path = path
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if wal and path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(f"PRAGMA busy_timeout={busy_timeout}")
        self._lock = threading.RLock()
        self._in_transaction = False
        self._closed = False
        logger.info("SQLite backend initialized: %s", path)

    @property
    def path(self) -> str:
        return self._path

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            cursor = self._conn.execute(sql, params)
            if not self._in_transaction:
                self._conn.commit()
            return cursor

    def executescript(self, sql: str) -> None:
        with self._lock:
            self._conn.executescript(sql)
            if not self._in_transaction:
                self._conn.commit()

    def fetchone(self, sql: str, params: tuple = ()) -> dict[str, Any] | None:
        with self._lock:
            row = self._conn.execute(sql, params).fetchone()
            return dict(row) if row is not None else None

    def fetchall(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._conn.execute(sql, params).fetchall()]

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Explicit transaction; statements inside commit together."""
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            self._in_transaction = True
            try:
                yield
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
            finally:
                self._in_transaction = False

    def close(self) -> None:
        with self._lock:
            if not self._closed:
                self._conn.close()
                self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed


def create_backend(path: str = "agentcore.db", **kwargs) -> SQLiteBackend:
    """Create the SQLite backend for the given file (":memory:" for tests)."""
    return SQLiteBackend(path=path, **kwargs)
