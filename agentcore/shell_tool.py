"""
Agent Core — Shell Tool

Runs whitelisted commands inside the sandbox root.

Validation is two-stage: blocklisted substrings first (privilege
escalation, destructive deletion, traversal, command substitution),
then the leading token must be whitelisted. `a && b` chains are split
and every segment validated again before it runs.

`cd` segments move a working directory that is local to the chain:

    cd src && ls          # ls runs in <root>/src
    ls                    # next call starts at <root> again

The chain stops at the first non-zero exit code, which is returned in
the result rather than raised. Timeouts raise ToolExecutionError.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Any

from agentcore.constraints import ConstraintService
from agentcore.errors import NotFoundError, ToolExecutionError, ValidationError
from agentcore.tools import SandboxTool

logger = logging.getLogger("agentcore.shell")

BLOCKLIST = (
    "sudo",
    "rm -rf",
    "rm -r",
    "rmdir /s",
    "del /s",
    "del /q",
    "format",
    "mkfs",
    "dd if=",
    "shutdown",
    "reboot",
    "halt",
    "init 0",
    "init 6",
    "kill -9",
    "pkill",
    "killall",
    "> /dev",
    ">> /dev",
    ":(){",
    "../",
    "..\\",
    "`",
    "$(",
    "| rm",
    "| del",
)

WHITELIST = frozenset({
    "ls", "dir", "cd", "pwd",
    "npm", "npx", "node",
    "git", "echo",
    "cat", "type", "grep", "findstr",
    "mkdir", "md", "touch",
    "cp", "copy", "mv", "move",
    "chmod", "chown",
    "python", "python3", "pip", "pip3", "pytest",
    "yarn", "pnpm",
    "docker", "docker-compose",
    "curl", "wget",
    "tar", "zip", "unzip",
    "find", "which", "where", "env", "export", "set",
    "head", "tail", "wc", "sort", "tree",
})


def validate_command(command: Any) -> str:
    """Blocklist then whitelist. Returns the stripped command."""
    if not isinstance(command, str):
        raise ValidationError("Command must be a string", command=repr(command))
    trimmed = command.strip()
    if not trimmed:
        raise ValidationError("Empty command")

    lowered = trimmed.lower()
    for blocked in BLOCKLIST:
        if blocked in lowered:
            raise ValidationError(f"Blocked command: contains '{blocked}'", command=trimmed)

    first = lowered.split()[0]
    if first not in WHITELIST and first.rsplit("/", 1)[-1] not in WHITELIST:
        raise ValidationError(
            f"Command '{first}' is not in the allowed list",
            command=trimmed,
        )
    return trimmed


def split_chain(command: str) -> list[str]:
    return [part.strip() for part in command.split("&&") if part.strip()]


class ShellTool(SandboxTool):
    name = "shell"
    description = "run whitelisted shell commands; chain with && and use cd to move"
    actions = {"run": "execute"}
    default_action = "run"

    def __init__(self, constraints: ConstraintService, agent_id: str, timeout: float = 60.0):
        super().__init__(constraints, agent_id)
        self.timeout = timeout

    def _action_run(self, params: dict[str, Any]) -> dict[str, Any]:
        command = validate_command(self.require(params, "command", "cmd"))
        cwd, rel = self.check_path(params.get("cwd") or ".", "execute")
        if not cwd.is_dir():
            raise NotFoundError(f"Directory not found: {rel}", path=rel)

        segments = split_chain(command)
        stdout: list[str] = []
        stderr: list[str] = []
        exit_code = 0

        for segment in segments:
            validate_command(segment)
            if segment.split()[0].lower() == "cd":
                cwd = self._change_dir(cwd, segment)
                continue

            out, err, exit_code = self._run_segment(segment, cwd)
            if out:
                stdout.append(out)
            if err:
                stderr.append(err)
            if exit_code != 0:
                logger.info("Chain stopped at %r (exit %d)", segment, exit_code)
                break

        return {
            "stdout": "\n".join(stdout),
            "stderr": "\n".join(stderr),
            "exit_code": exit_code,
            "cwd": self.constraints.relative(cwd),
        }

    def _change_dir(self, cwd: Path, segment: str) -> Path:
        target = segment[2:].strip().strip("\"'") or "."
        if os.path.isabs(target):
            raise ValidationError(f"cd outside the sandbox root: {target}", path=target)
        new_cwd = (cwd / target).resolve()
        root = self.constraints.root
        if new_cwd != root and root not in new_cwd.parents:
            raise ValidationError(f"cd outside the sandbox root: {target}", path=target)
        if not new_cwd.is_dir():
            raise NotFoundError(f"Directory not found: {target}", path=target)
        self.constraints.validate_permission(
            self.agent_id, self.constraints.relative(new_cwd), "execute"
        )
        return new_cwd

    def _run_segment(self, segment: str, cwd: Path) -> tuple[str, str, int]:
        logger.debug("Executing %r in %s", segment, cwd)
        env = {**os.environ, "GIT_EDITOR": "true", "EDITOR": "true"}
        try:
            proc = subprocess.run(
                segment,
                shell=True,
                cwd=str(cwd),
                env=env,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolExecutionError(
                f"Command timed out after {self.timeout:g}s: {segment}",
                command=segment,
            ) from e
        except OSError as e:
            raise ToolExecutionError(f"Command failed to start: {e}", command=segment) from e
        return proc.stdout.rstrip("\n"), proc.stderr.rstrip("\n"), proc.returncode
