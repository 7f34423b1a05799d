"""
Agent Core — Worker Pool

Runs N executors side by side on a ThreadPoolExecutor. Each worker
thread owns its own AgentExecutor (its own worker_id) and keeps calling
execute_next() until the queue is drained or stop() is called. The
queue claim is the only coordination point between workers.

Usage:
    pool = WorkerPool(lambda worker_id: AgentExecutor(..., worker_id=worker_id), workers=4)
    outcomes = pool.run()                         # drain and return
    pool.run_forever(poll_interval=1.0)           # until stop()
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from agentcore.executor import AgentExecutor, ExecutionOutcome

logger = logging.getLogger("agentcore.worker")


class WorkerPool:

    def __init__(
        self,
        executor_factory: Callable[[str], AgentExecutor],
        workers: int = 4,
        name: str = "agent-worker",
    ):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.executor_factory = executor_factory
        self.workers = workers
        self.name = name
        self._stop = threading.Event()
        self._outcomes: list[ExecutionOutcome] = []
        self._lock = threading.Lock()

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def _worker(self, worker_id: str, poll_interval: float | None) -> int:
        executor = self.executor_factory(worker_id)
        handled = 0
        while not self._stop.is_set():
            outcome = executor.execute_next()
            if outcome is None:
                if poll_interval is None:
                    break
                self._stop.wait(poll_interval)
                continue
            handled += 1
            with self._lock:
                self._outcomes.append(outcome)
        logger.info("Worker %s exiting after %d task(s)", worker_id, handled)
        return handled

    def _run(self, poll_interval: float | None) -> list[ExecutionOutcome]:
        self._stop.clear()
        with self._lock:
            self._outcomes = []
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix=self.name) as pool:
            futures = [
                pool.submit(self._worker, f"{self.name}-{i + 1}", poll_interval)
                for i in range(self.workers)
            ]
            for f in futures:
                f.result()
        with self._lock:
            return list(self._outcomes)

    def run(self) -> list[ExecutionOutcome]:
        """Drain the queue; each worker exits when it finds no pending task."""
        return self._run(poll_interval=None)

    def run_forever(self, poll_interval: float = 1.0) -> list[ExecutionOutcome]:
        """Poll until stop() is called."""
        return self._run(poll_interval=poll_interval)
