"""
Agent Core — Configuration Loader Tests

Base file, per-environment overlay and AGENTCORE_ env overrides.
"""

import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from agentcore.config import DEFAULT_ROLES, CoreConfig, deep_merge, load_config


class TestDeepMerge(unittest.TestCase):

    def test_nested(self):
        base = {"a": {"x": 1, "y": 2}, "b": 3}
        self.assertEqual(deep_merge(base, {"a": {"y": 9}}), {"a": {"x": 1, "y": 9}, "b": 3})

    def test_lists_replace(self):
        self.assertEqual(deep_merge({"a": [1, 2]}, {"a": [3]}), {"a": [3]})

    def test_base_untouched(self):
        base = {"a": {"x": 1}}
        deep_merge(base, {"a": {"x": 2}})
        self.assertEqual(base, {"a": {"x": 1}})


class TestLoadConfig(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)
        clean = {k: v for k, v in os.environ.items() if not k.startswith("AGENTCORE_")}
        patcher = patch.dict(os.environ, clean, clear=True)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, name, text):
        path = self.dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
        return path

    def test_defaults(self):
        cfg = CoreConfig()
        self.assertEqual(cfg.max_steps, 20)
        self.assertEqual(cfg.rate_limit_interval, 1.0)
        self.assertEqual(set(cfg.roles), {"implementer", "tester", "orchestrator"})

    def test_base_file(self):
        base = self.write("agentcore.yaml", "max_steps: 7\nsandbox_root: /srv/ws\nunknown_key: 1\n")
        cfg = load_config(path=str(base))
        self.assertEqual(cfg.max_steps, 7)
        self.assertEqual(cfg.sandbox_root, "/srv/ws")
        self.assertEqual(cfg.source, str(base))
        self.assertEqual(cfg.env, "default")

    def test_overlay(self):
        base = self.write("agentcore.yaml", "max_steps: 7\nlog_level: INFO\n")
        self.write("config/ci.yaml", "log_level: DEBUG\n")
        cfg = load_config(path=str(base), env="ci", config_dir=str(self.dir / "config"))
        self.assertEqual(cfg.max_steps, 7)
        self.assertEqual(cfg.log_level, "DEBUG")
        self.assertEqual(cfg.env, "ci")

    def test_overlay_beside_base_file(self):
        base = self.write("agentcore.yaml", "shell_timeout: 60\n")
        self.write("config/fast.yaml", "shell_timeout: 5\n")
        cfg = load_config(path=str(base), env="fast", config_dir=str(self.dir / "elsewhere"))
        self.assertEqual(cfg.shell_timeout, 5)

    def test_env_var_overrides_keep_type(self):
        base = self.write("agentcore.yaml", "max_steps: 7\n")
        os.environ["AGENTCORE_MAX_STEPS"] = "40"
        os.environ["AGENTCORE_RATE_LIMIT_INTERVAL"] = "0.5"
        os.environ["AGENTCORE_ROLES"] = "ignored"
        cfg = load_config(path=str(base))
        self.assertEqual(cfg.max_steps, 40)
        self.assertEqual(cfg.rate_limit_interval, 0.5)
        self.assertEqual(set(cfg.roles), set(DEFAULT_ROLES))
        self.assertEqual(load_config(path=str(base), include_env_vars=False).max_steps, 7)

    def test_roles_merge_over_defaults(self):
        base = self.write("agentcore.yaml", "roles:\n  tester:\n    tools: [filesystem]\n")
        cfg = load_config(path=str(base))
        self.assertEqual(cfg.roles["tester"]["tools"], ["filesystem"])
        self.assertEqual(cfg.roles["tester"]["aliases"], ["tara"])
        self.assertEqual(cfg.roles["implementer"], DEFAULT_ROLES["implementer"])

    def test_shipped_test_profile(self):
        cfg = load_config(path=os.path.join(_base, "agentcore.yaml"), env="test",
                          config_dir=os.path.join(_base, "config"))
        self.assertEqual(cfg.rate_limit_interval, 0.0)
        self.assertEqual(cfg.db_path, ":memory:")
        self.assertEqual(cfg.llm["provider"], "openai")
        self.assertEqual(cfg.roles["implementer"]["aliases"], ["devon"])


if __name__ == "__main__":
    unittest.main()
