"""
Agent Core — Sandboxed Tool Base

A tool is a small object with a fixed set of named actions. Each action
takes the params dict extracted from the model output and returns plain
data, or raises one of the typed errors in agentcore.errors.

    class EchoTool(SandboxTool):
        name = "echo"
        actions = {"say": "read"}          # action → permission it needs

        def _action_say(self, params):
            return {"text": self.require(params, "text")}

The sandbox (agentcore.sandbox) turns those raises into ToolResult
values, so nothing above the sandbox needs a try/except per tool.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from agentcore.constraints import ConstraintService
from agentcore.errors import ValidationError

# Class-style names accepted in model output and role config.
TOOL_ALIASES = {
    "filesystemtool": "filesystem",
    "fs": "filesystem",
    "file": "filesystem",
    "shelltool": "shell",
    "gittool": "git",
    "projecttool": "project",
    "databasetool": "database",
    "db": "database",
}


def canonical_tool_name(name: str) -> str:
    key = (name or "").strip().lower()
    return TOOL_ALIASES.get(key, key)


@dataclass
class ToolResult:
    """Outcome of one sandboxed invocation."""
    tool: str
    action: str
    status: str  # success | failed
    data: Any = None
    error: str | None = None
    error_type: str | None = None
    latency_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        out = {
            "tool": self.tool,
            "action": self.action,
            "status": self.status,
            "latency_ms": round(self.latency_ms, 1),
        }
        if self.ok:
            out["data"] = self.data
        else:
            out["error"] = self.error
            out["error_type"] = self.error_type
        return out


@dataclass
class ToolSpec:
    """Prompt-facing description of one tool."""
    name: str
    actions: list[str] = field(default_factory=list)
    description: str = ""

    def describe(self) -> str:
        return f"  - {self.name} ({', '.join(self.actions)}): {self.description}"


class SandboxTool:
    """Base for tools bound to one constraint service and agent identity."""

    name = ""
    description = ""
    actions: dict[str, str] = {}
    default_action = ""

    def __init__(self, constraints: ConstraintService, agent_id: str):
        self.constraints = constraints
        self.agent_id = agent_id

    def spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, actions=list(self.actions), description=self.description)

    def execute(self, action: str, params: dict[str, Any]) -> Any:
        action = action or self.default_action
        if action not in self.actions:
            raise ValidationError(
                f"Unknown {self.name} action: {action or '<none>'}. "
                f"Allowed: {', '.join(self.actions)}",
                tool=self.name, action=action,
            )
        return getattr(self, f"_action_{action}")(params or {})

    # ── Param helpers ────────────────────────────────────────

    @staticmethod
    def require(params: dict[str, Any], *keys: str) -> Any:
        """First present, non-empty value among `keys`."""
        for key in keys:
            value = params.get(key)
            if value not in (None, ""):
                return value
        raise ValidationError(f"Missing required param: {keys[0]}", param=keys[0])

    @staticmethod
    def as_bool(value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)

    @staticmethod
    def as_list(value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value]
        return [v for v in str(value).replace(",", " ").split() if v]

    def check_path(self, path: str, permission: str):
        """Path-safety then permission check; returns (resolved, relative)."""
        resolved = self.constraints.validate_path_safety(path)
        rel = self.constraints.relative(resolved)
        self.constraints.validate_permission(self.agent_id, rel, permission)
        return resolved, rel
