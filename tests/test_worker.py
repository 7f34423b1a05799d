"""
Agent Core — Worker Pool Tests
"""

import os
import sys
import tempfile
import threading
import time
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from agentcore.config import CoreConfig
from agentcore.constraints import ConstraintService
from agentcore.executor import AgentExecutor
from agentcore.llm import ScriptedBackend
from agentcore.sandbox import build_sandbox
from orchestration.tasks import InMemoryTaskStore, TaskQueue, TaskStatus
from orchestration.worker import WorkerPool


class WorkerPoolTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.config = CoreConfig(sandbox_root=self.tmp.name, rate_limit_interval=0)
        self.constraints = ConstraintService(root=self.tmp.name, rate_limit_interval=0)
        self.queue = TaskQueue(InMemoryTaskStore())
        self.backend = ScriptedBackend(["Nothing to change."])

    def tearDown(self):
        self.tmp.cleanup()

    def factory(self, worker_id):
        return AgentExecutor(
            queue=self.queue,
            sandbox_factory=lambda role: build_sandbox(role, self.config, self.constraints),
            backend=self.backend,
            worker_id=worker_id,
        )


class TestWorkerPool(WorkerPoolTestCase):

    def test_drains_queue_once_per_task(self):
        ids = [self.queue.enqueue("devon", {"n": i}).id for i in range(20)]
        outcomes = WorkerPool(self.factory, workers=4).run()

        self.assertEqual(sorted(o.task_id for o in outcomes), ids)
        self.assertTrue(all(o.completed for o in outcomes))
        self.assertEqual(len(self.queue.get_tasks_by_status(TaskStatus.COMPLETED)), 20)
        workers = {self.queue.get_task(i).worker_id for i in ids}
        self.assertTrue(workers <= {f"agent-worker-{i}" for i in range(1, 5)})

    def test_empty_queue(self):
        self.assertEqual(WorkerPool(self.factory, workers=2).run(), [])

    def test_invalid_worker_count(self):
        with self.assertRaises(ValueError):
            WorkerPool(self.factory, workers=0)

    def test_run_forever_until_stopped(self):
        pool = WorkerPool(self.factory, workers=2, name="poller")
        result = {}
        runner = threading.Thread(target=lambda: result.setdefault("outcomes", pool.run_forever(0.01)))
        runner.start()

        for i in range(5):
            self.queue.enqueue("tara", {"n": i})
        deadline = time.time() + 10
        while len(self.queue.get_tasks_by_status(TaskStatus.COMPLETED)) < 5 and time.time() < deadline:
            time.sleep(0.01)

        pool.stop()
        runner.join(timeout=10)
        self.assertFalse(runner.is_alive())
        self.assertTrue(pool.stopped)
        self.assertEqual(len(result["outcomes"]), 5)


if __name__ == "__main__":
    unittest.main()
