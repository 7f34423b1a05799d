"""
Agent Core — CLI Tests

Drives orchestration.cli.main() against a file-backed database and a
scripted model response file.
"""

import contextlib
import io
import json
import logging
import os
import sys
import tempfile
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from orchestration.cli import main


class TestCli(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db = os.path.join(self.tmp.name, "cli.db")
        self.script = os.path.join(self.tmp.name, "responses.yaml")
        with open(self.script, "w") as f:
            f.write("- All done, no changes required.\n")

    def tearDown(self):
        root = logging.getLogger("agentcore")
        root.handlers.clear()
        root.setLevel(logging.NOTSET)
        root.propagate = True
        self.tmp.cleanup()

    def run_cli(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        args = ["--config", os.path.join(_base, "agentcore.yaml"), "--env", "test",
                "--db", self.db, "--log-level", "ERROR", *argv]
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = main(args)
        return code, out.getvalue()

    def test_enqueue_run_once_and_inspect(self):
        code, out = self.run_cli("enqueue", "devon", "--payload", '{"subtaskId": "6-1"}')
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["status"], "pending")

        code, out = self.run_cli("run-once", "--script", self.script)
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["status"], "completed")

        code, out = self.run_cli("tasks", "--status", "completed")
        self.assertIn("COMPLETED (1)", out)

        code, out = self.run_cli("log", "6-1")
        self.assertIn("VERIFY → COMPLETE", out)

    def test_run_once_empty_queue(self):
        code, out = self.run_cli("run-once", "--script", self.script)
        self.assertEqual(code, 0)
        self.assertIn("No pending tasks", out)

    def test_work_drains_queue(self):
        for i in range(3):
            self.run_cli("enqueue", "tara", "--payload", json.dumps({"n": i}))
        code, out = self.run_cli("work", "--workers", "2", "--script", self.script)
        self.assertEqual(code, 0)
        self.assertIn("Processed 3 task(s): 3 completed, 0 failed", out)

    def test_workflows(self):
        code, out = self.run_cli("workflows", "seed", os.path.join(_base, "workflows"))
        self.assertIn("Seeded 5 workflow(s)", out)

        code, out = self.run_cli("workflows", "list")
        self.assertIn("bug_triage", out)

        code, out = self.run_cli("workflows", "transition", "bug_triage", "Triage", "ROUTE",
                                 "--context", '{"escalatedFrom": "devon"}')
        self.assertEqual(code, 0)
        result = json.loads(out)
        self.assertEqual(result["next_state"], "Escalated")
        self.assertEqual(result["context"]["strategy"], "three-tier")

    def test_domain_error_exit_code(self):
        self.run_cli("workflows", "seed", os.path.join(_base, "workflows"))
        code, _ = self.run_cli("workflows", "transition", "bug_triage", "Closed", "ROUTE")
        self.assertEqual(code, 1)

    def test_show_missing_workflow(self):
        code, _ = self.run_cli("workflows", "show", "ghost")
        self.assertEqual(code, 1)


if __name__ == "__main__":
    unittest.main()
