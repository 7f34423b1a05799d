"""
Agent Core — Git Tool

status / add / commit / push / checkout, nothing else. Arguments are
passed to git as an argv list (never through a shell) and each one is
scanned for injection and destructive patterns first. Mutating
subcommands need execute on the repository directory (add also needs
write on every staged path) and refuse to run while `.git/index.lock`
exists.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from typing import Any

from agentcore.constraints import ConstraintService
from agentcore.errors import ToolExecutionError, ValidationError
from agentcore.tools import SandboxTool

logger = logging.getLogger("agentcore.git")

DANGEROUS_PATTERNS = [
    re.compile(p) for p in (
        r";\s*rm\s+-rf",
        r";\s*rm\s+-r",
        r";\s*del\s+/s",
        r"&&\s*rm",
        r"\|\s*rm",
        r"`.*`",
        r"\$\(.*\)",
        r"\.\./",
        r"\.\.\\",
        r"/etc",
        r"/bin",
        r"/usr",
        r"/var",
        r"/root",
        r"/home",
        r"/windows",
        r"/system32",
    )
]

MUTATING = frozenset({"add", "commit", "push", "checkout"})


def validate_git_arg(value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError("Git argument must be a string", argument=repr(value))
    for pattern in DANGEROUS_PATTERNS:
        if pattern.search(value):
            raise ValidationError(
                f"Dangerous pattern detected: {pattern.pattern}", argument=value
            )
    if value.startswith("-"):
        raise ValidationError(f"Options are not accepted as arguments: {value}", argument=value)
    return value


class GitTool(SandboxTool):
    name = "git"
    description = "status, add, commit, push and checkout in the workspace repository"
    actions = {
        "status": "read",
        "add": "execute",
        "commit": "execute",
        "push": "execute",
        "checkout": "execute",
    }
    default_action = "status"

    def __init__(self, constraints: ConstraintService, agent_id: str, timeout: float = 60.0):
        super().__init__(constraints, agent_id)
        self.timeout = timeout

    def _repo(self, params: dict[str, Any], permission: str):
        return self.check_path(params.get("repo") or ".", permission)

    def _action_status(self, params: dict[str, Any]) -> dict[str, Any]:
        repo, _ = self._repo(params, "read")
        return self._run(repo, "status", [])

    def _action_add(self, params: dict[str, Any]) -> dict[str, Any]:
        files = self.as_list(params.get("files") or params.get("file"))
        if not files:
            raise ValidationError("Files must be a non-empty list", param="files")
        repo, _ = self._repo(params, "execute")
        staged = []
        for f in files:
            validate_git_arg(f)
            target, rel = self.check_path(f, "write")
            if target != repo and repo not in target.parents:
                raise ValidationError(f"Path is outside the repository: {rel}", path=rel)
            staged.append(target.relative_to(repo).as_posix() or ".")
        return self._run(repo, "add", ["--", *staged])

    def _action_commit(self, params: dict[str, Any]) -> dict[str, Any]:
        message = validate_git_arg(self.require(params, "message"))
        repo, _ = self._repo(params, "execute")
        return self._run(repo, "commit", ["-m", message])

    def _action_push(self, params: dict[str, Any]) -> dict[str, Any]:
        args = [validate_git_arg(a) for a in self.as_list(params.get("remote"))]
        args += [validate_git_arg(a) for a in self.as_list(params.get("branch"))]
        repo, _ = self._repo(params, "execute")
        return self._run(repo, "push", args)

    def _action_checkout(self, params: dict[str, Any]) -> dict[str, Any]:
        branch = validate_git_arg(self.require(params, "branch"))
        args = ["-b", branch] if self.as_bool(params.get("create", False)) else [branch]
        repo, _ = self._repo(params, "execute")
        return self._run(repo, "checkout", args)

    def _run(self, repo, subcommand: str, args: list[str]) -> dict[str, Any]:
        if subcommand in MUTATING:
            self.constraints.validate_git_lock(self.constraints.relative(repo))

        argv = ["git", subcommand, *args]
        env = {**os.environ, "GIT_EDITOR": "true", "EDITOR": "true", "GIT_TERMINAL_PROMPT": "0"}
        logger.debug("Running %s in %s", argv, repo)
        try:
            proc = subprocess.run(
                argv, cwd=str(repo), env=env,
                capture_output=True, text=True, timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolExecutionError(f"git {subcommand} timed out", subcommand=subcommand) from e
        except OSError as e:
            raise ToolExecutionError(f"git could not be started: {e}", subcommand=subcommand) from e

        if proc.returncode != 0:
            raise ToolExecutionError(
                f"Git command failed: git {subcommand}: {(proc.stderr or proc.stdout).strip()}",
                subcommand=subcommand, exit_code=proc.returncode,
            )
        return {"stdout": proc.stdout.strip(), "stderr": proc.stderr.strip()}
