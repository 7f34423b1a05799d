"""
Agent Core — Tool Sandbox

Role-scoped tool access. A role resolves (by name or alias) to a fixed
capability set; an unknown role resolves to nothing and every tool
reference then fails closed.

Usage:
    sandbox = build_sandbox("devon", config, constraints)
    sandbox.tool_names                     # ['filesystem', 'git', 'shell', 'project']
    result = sandbox.invoke(ToolCall("filesystem", "read", {"path": "src/app.py"}))
    result.ok, result.data, result.error_type

invoke() never raises for tool-level problems. Every rejection and
failure comes back as a failed ToolResult tagged with the error class
name, so the executor decides what is fatal.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from agentcore.config import CoreConfig
from agentcore.constraints import ConstraintService
from agentcore.db import SQLiteBackend
from agentcore.db_tool import DatabaseTool
from agentcore.errors import AgentCoreError, RateLimitError, ValidationError
from agentcore.extractor import ToolCall
from agentcore.fs_tool import FileSystemTool
from agentcore.git_tool import GitTool
from agentcore.project_tool import ProjectTool
from agentcore.shell_tool import ShellTool
from agentcore.tools import SandboxTool, ToolResult, ToolSpec, canonical_tool_name

logger = logging.getLogger("agentcore.sandbox")


# ═══════════════════════════════════════════════════════════════════
# Role resolution
# ═══════════════════════════════════════════════════════════════════

def resolve_role(role: str | None, roles: dict[str, dict[str, Any]]) -> str | None:
    """Canonical role name for a name or alias (case-insensitive)."""
    key = (role or "").strip().lower()
    if not key:
        return None
    for name, spec in roles.items():
        if key == name.lower():
            return name
        if key in (a.lower() for a in spec.get("aliases", ())):
            return name
    return None


def get_tools_for_role(role: str | None, roles: dict[str, dict[str, Any]]) -> list[str]:
    """Canonical tool names for `role`; [] for an unknown role."""
    canonical = resolve_role(role, roles)
    if canonical is None:
        return []
    return [canonical_tool_name(t) for t in roles[canonical].get("tools", ())]


# ═══════════════════════════════════════════════════════════════════
# Sandbox
# ═══════════════════════════════════════════════════════════════════

class ToolSandbox:
    """The tools one agent may use, gated by the constraint service."""

    def __init__(
        self,
        role: str,
        agent_id: str,
        constraints: ConstraintService,
        tools: dict[str, SandboxTool],
        rate_limit_retries: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.role = role
        self.agent_id = agent_id
        self.constraints = constraints
        self._tools = dict(tools)
        self.rate_limit_retries = rate_limit_retries
        self._sleep = sleep

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> list[ToolSpec]:
        return [tool.spec() for tool in self._tools.values()]

    def get_tool(self, name: str) -> SandboxTool:
        tool = self._tools.get(canonical_tool_name(name))
        if tool is None:
            raise ValidationError(
                f"Tool {name} not allowed for role {self.role}",
                tool=name, role=self.role,
            )
        return tool

    def _check_rate_limit(self) -> None:
        for attempt in range(self.rate_limit_retries + 1):
            try:
                self.constraints.validate_rate_limit(self.agent_id)
                return
            except RateLimitError as e:
                if attempt >= self.rate_limit_retries:
                    raise
                logger.debug(
                    "Rate limited %s, waiting %.3fs (attempt %d/%d)",
                    self.agent_id, e.retry_after, attempt + 1, self.rate_limit_retries,
                )
                self._sleep(e.retry_after)

    def invoke(self, call: ToolCall) -> ToolResult:
        t0 = time.time()
        name = canonical_tool_name(call.tool)
        try:
            tool = self.get_tool(call.tool)
            self._check_rate_limit()
            data = tool.execute(call.action, dict(call.params))
        except AgentCoreError as e:
            return ToolResult(
                tool=name, action=call.action, status="failed",
                error=str(e), error_type=e.error_type,
                latency_ms=(time.time() - t0) * 1000,
            )
        except Exception as e:
            logger.exception("Tool %s.%s raised unexpectedly", name, call.action)
            return ToolResult(
                tool=name, action=call.action, status="failed",
                error=str(e) or type(e).__name__, error_type=type(e).__name__,
                latency_ms=(time.time() - t0) * 1000,
            )
        return ToolResult(
            tool=name, action=call.action or tool.default_action, status="success",
            data=data, latency_ms=(time.time() - t0) * 1000,
        )


def build_sandbox(
    role: str | None,
    config: CoreConfig,
    constraints: ConstraintService,
    db: SQLiteBackend | None = None,
    agent_id: str | None = None,
    worker_id: str | None = None,
) -> ToolSandbox:
    """
    Sandbox for `role` per the config's capability map.

    Permissions are keyed by the canonical role and seeded from config
    on first use. The database tool is only built when `db` is given.

    The rate-limit identity is `agent_id` when given, else
    `<role>@<worker_id>`, so every worker of a role gets its own slot.
    With neither, all sandboxes of the role share one slot.
    """
    canonical = resolve_role(role, config.roles)
    label = role or "<none>"
    if agent_id is None and worker_id:
        agent_id = f"{canonical or label}@{worker_id}"
    if canonical is None:
        logger.warning("Unknown role %r: no tools available", role)
        return ToolSandbox(label, agent_id or label, constraints, {},
                           rate_limit_retries=config.rate_limit_retries)

    constraints.ensure_role_permissions(canonical, config.roles[canonical].get("permissions", ()))
    factories: dict[str, Callable[[], SandboxTool]] = {
        "filesystem": lambda: FileSystemTool(constraints, canonical),
        "shell": lambda: ShellTool(constraints, canonical, timeout=config.shell_timeout),
        "git": lambda: GitTool(constraints, canonical, timeout=config.shell_timeout),
        "project": lambda: ProjectTool(constraints, canonical),
    }
    if db is not None:
        factories["database"] = lambda: DatabaseTool(constraints, canonical, db)

    tools: dict[str, SandboxTool] = {}
    for name in get_tools_for_role(canonical, config.roles):
        factory = factories.get(name)
        if factory is None:
            logger.warning("Tool %r for role %s is not available here", name, canonical)
            continue
        tools[name] = factory()

    return ToolSandbox(
        role=canonical,
        agent_id=agent_id or canonical,
        constraints=constraints,
        tools=tools,
        rate_limit_retries=config.rate_limit_retries,
    )
