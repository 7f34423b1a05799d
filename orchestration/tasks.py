"""
Agent Core — Durable Task Queue

Work distribution for agent executors. Tasks move one way only:

    pending ──dequeue──► running ──complete──► completed
                                 └──fail─────► failed

Claims use claim-with-skip: a caller never waits on another caller's
claim. A row someone else is claiming is skipped and the next candidate
tried, so N workers racing over M tasks each get a different task or
None. complete()/fail() only touch rows that are `running` and return
False otherwise, which makes duplicate calls harmless.

Stores:
  - InMemoryTaskStore: per-row non-blocking try-locks (dev/test)
  - SQLiteTaskStore:   conditional UPDATE ... WHERE status='pending'

Usage:
    queue = TaskQueue(SQLiteTaskStore(create_backend("agentcore.db")))
    task = queue.enqueue("devon", {"subtaskId": "6-1"})
    claimed = queue.dequeue("worker-1")
    queue.complete(claimed.id, {"ok": True})        # True
    queue.complete(claimed.id, {"ok": True})        # False

Store failures raise QueueStoreError from every operation.
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
from typing import Any

from agentcore.db import SQLiteBackend
from agentcore.errors import QueueStoreError

logger = logging.getLogger("agentcore.queue")


class TaskStatus:
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = (PENDING, RUNNING, COMPLETED, FAILED)


@dataclass
class Task:
    """One unit of agent work. `type` names the agent role that runs it."""
    id: int
    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    status: str = TaskStatus.PENDING
    worker_id: str | None = None
    result: Any = None
    error: str | None = None
    created_at: float = 0.0
    started_at: float | None = None
    completed_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "payload": self.payload,
            "status": self.status,
            "worker_id": self.worker_id,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }


# ─── Abstract Store Interface ────────────────────────────────────────

class TaskStore(abc.ABC):

    @abc.abstractmethod
    def enqueue(self, type: str, payload: dict[str, Any]) -> Task:
        ...

    @abc.abstractmethod
    def dequeue(self, worker_id: str) -> Task | None:
        """Claim the oldest pending task, skipping contended rows."""
        ...

    @abc.abstractmethod
    def complete(self, task_id: int, result: Any) -> bool:
        ...

    @abc.abstractmethod
    def fail(self, task_id: int, error: str) -> bool:
        ...

    @abc.abstractmethod
    def get_task(self, task_id: int) -> Task | None:
        ...

    @abc.abstractmethod
    def get_pending_count(self) -> int:
        ...

    @abc.abstractmethod
    def get_tasks_by_status(self, status: str) -> list[Task]:
        """Tasks in `status`, newest first."""
        ...


# ─── In-Memory Implementation ────────────────────────────────────────

class InMemoryTaskStore(TaskStore):
    """
    In-process store. Each row has its own lock taken with
    acquire(blocking=False); a held lock means another caller is claiming
    that row and it is skipped.
    """

    def __init__(self):
        self._tasks: dict[int, Task] = {}
        self._row_locks: dict[int, threading.Lock] = {}
        self._lock = threading.Lock()
        self._next_id = 1
        self._closed = False

    def close(self) -> None:
        self._closed = True

    def _check_open(self) -> None:
        if self._closed:
            raise QueueStoreError("Task store is closed")

    def enqueue(self, type: str, payload: dict[str, Any]) -> Task:
        self._check_open()
        with self._lock:
            task = Task(
                id=self._next_id,
                type=type,
                payload=copy.deepcopy(payload or {}),
                created_at=time.time(),
            )
            self._tasks[task.id] = task
            self._row_locks[task.id] = threading.Lock()
            self._next_id += 1
            return copy.deepcopy(task)

    def dequeue(self, worker_id: str) -> Task | None:
        self._check_open()
        with self._lock:
            candidates = [
                (t.id, self._row_locks[t.id])
                for t in self._tasks.values() if t.status == TaskStatus.PENDING
            ]

        for task_id, row_lock in candidates:
            if not row_lock.acquire(blocking=False):
                continue
            try:
                with self._lock:
                    task = self._tasks[task_id]
                    if task.status != TaskStatus.PENDING:
                        continue
                    task.status = TaskStatus.RUNNING
                    task.worker_id = worker_id
                    task.started_at = time.time()
                    return copy.deepcopy(task)
            finally:
                row_lock.release()
        return None

    def _finish(self, task_id: int, status: str, result: Any = None, error: str | None = None) -> bool:
        self._check_open()
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.status != TaskStatus.RUNNING:
                return False
            task.status = status
            task.result = copy.deepcopy(result)
            task.error = error
            task.completed_at = time.time()
            return True

    def complete(self, task_id: int, result: Any) -> bool:
        return self._finish(task_id, TaskStatus.COMPLETED, result=result)

    def fail(self, task_id: int, error: str) -> bool:
        return self._finish(task_id, TaskStatus.FAILED, error=error)

    def get_task(self, task_id: int) -> Task | None:
        self._check_open()
        with self._lock:
            task = self._tasks.get(task_id)
            return copy.deepcopy(task) if task else None

    def get_pending_count(self) -> int:
        self._check_open()
        with self._lock:
            return sum(1 for t in self._tasks.values() if t.status == TaskStatus.PENDING)

    def get_tasks_by_status(self, status: str) -> list[Task]:
        self._check_open()
        with self._lock:
            tasks = [copy.deepcopy(t) for t in self._tasks.values() if t.status == status]
        return sorted(tasks, key=lambda t: t.id, reverse=True)


# ─── SQLite Implementation ───────────────────────────────────────────

class SQLiteTaskStore(TaskStore):
    """
    SQLite-backed store.

    A claim is a conditional UPDATE on a candidate id that only matches
    while the row is still pending. rowcount 0 means another claimant got
    there first; the next candidate is tried instead of waiting.
    """

    CLAIM_BATCH = 8

    def __init__(self, db: SQLiteBackend):
        self.db = db
        self._guard(self._create_table)

    def _create_table(self):
        self.db.executescript("""
            CREATE TABLE IF NOT EXISTS tasks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                type TEXT NOT NULL,
                payload TEXT DEFAULT '{}',
                status TEXT NOT NULL DEFAULT 'pending',
                worker_id TEXT,
                result TEXT,
                error TEXT,
                created_at REAL NOT NULL,
                started_at REAL,
                completed_at REAL
            );
            CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status, id);
        """)

    @staticmethod
    def _guard(fn, *args):
        try:
            return fn(*args)
        except sqlite3.Error as e:
            raise QueueStoreError(f"Task store unavailable: {e}") from e

    def enqueue(self, type: str, payload: dict[str, Any]) -> Task:
        def _insert():
            now = time.time()
            cur = self.db.execute(
                "INSERT INTO tasks (type, payload, status, created_at) VALUES (?, ?, 'pending', ?)",
                (type, json.dumps(payload or {}, default=str), now),
            )
            return self.get_task(cur.lastrowid)
        return self._guard(_insert)

    def dequeue(self, worker_id: str) -> Task | None:
        def _claim():
            while True:
                rows = self.db.fetchall(
                    "SELECT id FROM tasks WHERE status = 'pending' ORDER BY id ASC LIMIT ?",
                    (self.CLAIM_BATCH,),
                )
                if not rows:
                    return None
                for row in rows:
                    cur = self.db.execute(
                        "UPDATE tasks SET status = 'running', worker_id = ?, started_at = ? "
                        "WHERE id = ? AND status = 'pending'",
                        (worker_id, time.time(), row["id"]),
                    )
                    if cur.rowcount == 1:
                        return self.get_task(row["id"])
        return self._guard(_claim)

    def complete(self, task_id: int, result: Any) -> bool:
        cur = self._guard(
            self.db.execute,
            "UPDATE tasks SET status = 'completed', result = ?, completed_at = ? "
            "WHERE id = ? AND status = 'running'",
            (json.dumps(result, default=str), time.time(), task_id),
        )
        return cur.rowcount == 1

    def fail(self, task_id: int, error: str) -> bool:
        cur = self._guard(
            self.db.execute,
            "UPDATE tasks SET status = 'failed', error = ?, completed_at = ? "
            "WHERE id = ? AND status = 'running'",
            (str(error), time.time(), task_id),
        )
        return cur.rowcount == 1

    def get_task(self, task_id: int) -> Task | None:
        row = self._guard(self.db.fetchone, "SELECT * FROM tasks WHERE id = ?", (task_id,))
        return self._row_to_task(row) if row else None

    def get_pending_count(self) -> int:
        row = self._guard(
            self.db.fetchone, "SELECT COUNT(*) AS n FROM tasks WHERE status = 'pending'"
        )
        return row["n"] if row else 0

    def get_tasks_by_status(self, status: str) -> list[Task]:
        rows = self._guard(
            self.db.fetchall,
            "SELECT * FROM tasks WHERE status = ? ORDER BY id DESC",
            (status,),
        )
        return [self._row_to_task(r) for r in rows]

    def _row_to_task(self, row: dict[str, Any]) -> Task:
        return Task(
            id=row["id"],
            type=row["type"],
            payload=json.loads(row["payload"] or "{}"),
            status=row["status"],
            worker_id=row["worker_id"],
            result=json.loads(row["result"]) if row["result"] is not None else None,
            error=row["error"],
            created_at=row["created_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
        )


# ─── Queue Facade ────────────────────────────────────────────────────

class TaskQueue:
    """Logging facade over a TaskStore; what executors and the CLI hold."""

    def __init__(self, store: TaskStore | None = None):
        self.store = store or InMemoryTaskStore()

    def enqueue(self, type: str, payload: dict[str, Any] | None = None) -> Task:
        task = self.store.enqueue(type, payload or {})
        logger.info("Task %s enqueued (type=%s)", task.id, type)
        return task

    def dequeue(self, worker_id: str) -> Task | None:
        task = self.store.dequeue(worker_id)
        if task is not None:
            logger.info("Task %s claimed by %s", task.id, worker_id)
        return task

    def complete(self, task_id: int, result: Any = None) -> bool:
        done = self.store.complete(task_id, result)
        if done:
            logger.info("Task %s completed", task_id)
        else:
            logger.debug("complete(%s) ignored: task not running", task_id)
        return done

    def fail(self, task_id: int, error: str) -> bool:
        done = self.store.fail(task_id, error)
        if done:
            logger.warning("Task %s failed: %s", task_id, error)
        else:
            logger.debug("fail(%s) ignored: task not running", task_id)
        return done

    def get_task(self, task_id: int) -> Task | None:
        return self.store.get_task(task_id)

    def get_pending_count(self) -> int:
        return self.store.get_pending_count()

    def get_tasks_by_status(self, status: str) -> list[Task]:
        if status not in TaskStatus.ALL:
            raise ValueError(f"Unknown task status: {status}")
        return self.store.get_tasks_by_status(status)
