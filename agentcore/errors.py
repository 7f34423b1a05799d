"""
Agent Core — Structured Exception Hierarchy

Typed rejections so callers can tell apart:
- Unsafe input (path, command, SQL)  → fatal, never retried
- Contended resources (locks, rate)  → caller-recoverable
- Missing lookups                    → fatal to that lookup
- Definition/logic gaps              → fatal
- Reasoning backend failures         → fatal for the current step

Each error carries a `retryable` flag and the keyword details it was
raised with (`err.detail`).
"""

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ═══════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════

class AgentCoreError(Exception):
    """Base exception for all Agent Core errors."""
    severity: Severity = Severity.MEDIUM
    retryable: bool = False

    def __init__(self, message: str = "", **kwargs):
        self.detail = kwargs
        super().__init__(message)

    @property
    def error_type(self) -> str:
        return type(self).__name__


# ═══════════════════════════════════════════════════════════════
# Sandbox / Constraint Errors
# ═══════════════════════════════════════════════════════════════

class ValidationError(AgentCoreError):
    """Unsafe path, command, argument or statement."""
    severity = Severity.HIGH


class PermissionDeniedError(ValidationError):
    """No permission rule allows the requested access."""

    def __init__(self, agent_id: str, path: str, permission: str):
        self.agent_id = agent_id
        self.path = path
        self.permission = permission
        super().__init__(
            f"Permission denied: {agent_id} may not {permission} {path!r}",
            agent_id=agent_id, path=path, permission=permission,
        )


class ResourceLockedError(AgentCoreError):
    """A git lock marker or a concern lock held by another agent."""
    severity = Severity.LOW
    retryable = True


class RateLimitError(AgentCoreError):
    """Agent exceeded its request ceiling."""
    severity = Severity.LOW
    retryable = True

    def __init__(self, agent_id: str, retry_after: float = 0.0):
        self.agent_id = agent_id
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded for {agent_id} (retry after {retry_after:.3f}s)",
            agent_id=agent_id, retry_after=retry_after,
        )


class NotFoundError(AgentCoreError):
    """Lookup target does not exist (file, directory, workflow, task)."""


class ToolExecutionError(AgentCoreError):
    """A tool ran but could not complete (timeout, I/O failure, bad action)."""


# ═══════════════════════════════════════════════════════════════
# Execution Errors
# ═══════════════════════════════════════════════════════════════

class TransitionError(AgentCoreError):
    """No valid FSM/workflow transition — a definition or logic gap."""
    severity = Severity.HIGH


class WorkflowPausedError(TransitionError):
    """Transition attempted while the engine or the workflow is paused."""

    def __init__(self, workflow: str = ""):
        self.workflow = workflow
        super().__init__("Workflow execution is paused", workflow=workflow)


class StepBudgetExceeded(AgentCoreError):
    """Executor hit its max_steps ceiling before reaching COMPLETE."""
    severity = Severity.HIGH

    def __init__(self, max_steps: int):
        self.max_steps = max_steps
        super().__init__(
            f"Step budget exceeded (max {max_steps} steps)",
            max_steps=max_steps,
        )


class AdapterError(AgentCoreError):
    """Reasoning backend failure surfaced to the executor."""

    def __init__(self, message: str, provider: str = "", attempts: int = 1):
        self.provider = provider
        self.attempts = attempts
        super().__init__(message, provider=provider, attempts=attempts)


# ═══════════════════════════════════════════════════════════════
# Storage Errors
# ═══════════════════════════════════════════════════════════════

class QueueStoreError(AgentCoreError):
    """Task store unavailable; never swallowed."""
    severity = Severity.CRITICAL
