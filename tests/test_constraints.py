"""
Agent Core — Constraint Service Tests

Path safety, git lock detection, concern locks, path permissions and
one-time grants.
"""

import os
import sys
import tempfile
import threading
import unittest
from pathlib import Path

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from agentcore.constraints import ConstraintService
from agentcore.errors import (
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ResourceLockedError,
    ValidationError,
)


class ConstraintTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name).resolve()
        self.constraints = ConstraintService(root=self.root, rate_limit_interval=0)

    def tearDown(self):
        self.tmp.cleanup()


class TestPathSafety(ConstraintTestCase):

    def test_relative_path_resolves_under_root(self):
        self.assertEqual(self.constraints.validate_path_safety("src/app.py"), self.root / "src" / "app.py")

    def test_root_itself_is_allowed(self):
        resolved = self.constraints.validate_path_safety(".")
        self.assertEqual(resolved, self.root)
        self.assertEqual(self.constraints.relative(resolved), ".")

    def test_traversal_rejected(self):
        for path in ("../etc/passwd", "src/../../x", "..", "a\\..\\b"):
            with self.subTest(path=path):
                with self.assertRaises(ValidationError):
                    self.constraints.validate_path_safety(path)

    def test_absolute_paths_rejected(self):
        for path in ("/etc/passwd", "C:\\Windows\\system32", "C:/x", "\\\\server\\share"):
            with self.subTest(path=path):
                with self.assertRaises(ValidationError):
                    self.constraints.validate_path_safety(path)

    def test_nul_byte_rejected(self):
        with self.assertRaises(ValidationError):
            self.constraints.validate_path_safety("src/a\x00.py")

    def test_symlink_escape_rejected(self):
        outside = tempfile.TemporaryDirectory()
        self.addCleanup(outside.cleanup)
        link = self.root / "escape"
        try:
            link.symlink_to(outside.name, target_is_directory=True)
        except (OSError, NotImplementedError):
            self.skipTest("symlinks not supported here")
        with self.assertRaises(ValidationError):
            self.constraints.validate_path_safety("escape/file.txt")

    def test_dotted_names_are_not_traversal(self):
        self.constraints.validate_path_safety("src/..hidden/file")
        self.constraints.validate_path_safety("a..b.txt")


class TestGitLock(ConstraintTestCase):

    def test_no_marker_passes(self):
        (self.root / ".git").mkdir()
        self.constraints.validate_git_lock()

    def test_index_lock_raises(self):
        (self.root / ".git").mkdir()
        (self.root / ".git" / "index.lock").write_text("")
        with self.assertRaises(ResourceLockedError) as ctx:
            self.constraints.validate_git_lock()
        self.assertTrue(ctx.exception.retryable)

    def test_nested_repo(self):
        (self.root / "projects" / "app" / ".git").mkdir(parents=True)
        (self.root / "projects" / "app" / ".git" / "index.lock").write_text("")
        self.constraints.validate_git_lock()
        with self.assertRaises(ResourceLockedError):
            self.constraints.validate_git_lock("projects/app")


class TestConcernLocks(ConstraintTestCase):

    def test_acquire_and_release(self):
        lock = self.constraints.acquire_lock("6-1", "src", "devon")
        self.assertEqual(lock.agent_id, "devon")
        self.assertEqual(self.constraints.get_lock("6-1", "src").agent_id, "devon")
        self.assertTrue(self.constraints.release_lock("6-1", "src", "devon"))
        self.assertIsNone(self.constraints.get_lock("6-1", "src"))

    def test_other_agent_blocked(self):
        self.constraints.acquire_lock("6-1", "src", "devon")
        with self.assertRaises(ResourceLockedError) as ctx:
            self.constraints.acquire_lock("6-1", "src", "tara")
        self.assertIn("locked by devon", str(ctx.exception))

    def test_reentrant_for_holder(self):
        first = self.constraints.acquire_lock("6-1", "src", "devon")
        again = self.constraints.acquire_lock("6-1", "src", "devon")
        self.assertIs(first, again)

    def test_release_by_non_holder_is_refused(self):
        self.constraints.acquire_lock("6-1", "src", "devon")
        self.assertFalse(self.constraints.release_lock("6-1", "src", "tara"))
        self.assertFalse(self.constraints.release_lock("6-1", "tests", "devon"))
        self.assertIsNotNone(self.constraints.get_lock("6-1", "src"))

    def test_concerns_are_independent(self):
        self.constraints.acquire_lock("6-1", "src", "devon")
        self.constraints.acquire_lock("6-1", "tests", "tara")
        self.constraints.acquire_lock("6-2", "src", "tara")

    def test_exactly_one_concurrent_winner(self):
        winners = []
        lock = threading.Lock()
        barrier = threading.Barrier(10)

        def contend(agent):
            barrier.wait()
            try:
                self.constraints.acquire_lock("6-1", "src", agent)
            except ResourceLockedError:
                return
            with lock:
                winners.append(agent)

        threads = [threading.Thread(target=contend, args=(f"agent-{i}",)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)
        self.assertEqual(len(winners), 1)


class TestPermissions(ConstraintTestCase):

    def setUp(self):
        super().setUp()
        self.constraints.load_role_permissions("implementer", [
            ["*", "read", True, 0],
            ["src/*", "write", True, 10],
            ["*.test.*", "write", False, 20],
        ])

    def test_no_rule_denies(self):
        self.assertFalse(self.constraints.check_permission("implementer", "docs/x.md", "write"))
        self.assertFalse(self.constraints.check_permission("nobody", "src/a.py", "read"))

    def test_matching_rule_allows(self):
        self.assertTrue(self.constraints.check_permission("implementer", "src/a.py", "write"))
        self.assertTrue(self.constraints.check_permission("implementer", "anything", "read"))

    def test_higher_priority_deny_wins(self):
        self.assertFalse(self.constraints.check_permission("implementer", "src/a.test.ts", "write"))

    def test_tie_goes_to_deny(self):
        self.constraints.set_permission("tester", "tests/*", "write", True, 5)
        self.constraints.set_permission("tester", "tests/*", "write", False, 5)
        self.assertFalse(self.constraints.check_permission("tester", "tests/a.py", "write"))

    def test_validate_permission_raises(self):
        with self.assertRaises(PermissionDeniedError) as ctx:
            self.constraints.validate_permission("implementer", "README.md", "write")
        self.assertEqual(ctx.exception.permission, "write")
        self.assertIsInstance(ctx.exception, ValidationError)

    def test_unknown_permission_rejected(self):
        with self.assertRaises(ValidationError):
            self.constraints.set_permission("x", "*", "delete")

    def test_ensure_role_permissions_seeds_once(self):
        rules = [["*", "read", True, 0]]
        self.constraints.ensure_role_permissions("tester", rules)
        self.constraints.ensure_role_permissions("tester", [["*", "write", True, 0]])
        self.assertTrue(self.constraints.check_permission("tester", "a", "read"))
        self.assertFalse(self.constraints.check_permission("tester", "a", "write"))


class TestGrants(ConstraintTestCase):

    def test_grant_is_single_use(self):
        token = self.constraints.grant_one_time_access("devon", "npm publish", "release")
        self.assertTrue(self.constraints.validate_grant("devon", "npm publish", token))
        self.assertFalse(self.constraints.validate_grant("devon", "npm publish", token))

    def test_grant_bound_to_agent_and_command(self):
        token = self.constraints.grant_one_time_access("devon", "npm publish")
        self.assertFalse(self.constraints.validate_grant("tara", "npm publish", token))
        self.assertFalse(self.constraints.validate_grant("devon", "rm x", token))
        self.assertTrue(self.constraints.validate_grant("devon", "npm publish", token))

    def test_require_grant_raises(self):
        with self.assertRaises(NotFoundError):
            self.constraints.require_grant("devon", "npm publish", "bogus")


class TestRateLimitDelegation(unittest.TestCase):

    def test_validate_rate_limit_uses_limiter(self):
        constraints = ConstraintService(root=".", rate_limit_interval=60)
        constraints.validate_rate_limit("devon")
        with self.assertRaises(RateLimitError):
            constraints.validate_rate_limit("devon")


if __name__ == "__main__":
    unittest.main()
