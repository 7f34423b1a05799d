"""
Agent Core — Constraint Service

Cross-cutting validators shared by every sandboxed tool:

  validate_path_safety(path)     — `..`, absolute paths and anything that
                                   resolves outside the root are rejected
  validate_git_lock(repo)        — `.git/index.lock` present → locked
  validate_rate_limit(agent_id)  — 1 request / interval per agent
  acquire_lock / release_lock    — exclusive concern locks between agents
  check_permission               — fnmatch path rules, highest priority wins
  grant_one_time_access          — single-use override tokens

Every validator raises a typed rejection from agentcore.errors; none of
them ever silently passes. Unsafe paths are fatal; locks and rate limits
are recoverable by the caller.

Usage:
    constraints = ConstraintService(root="/srv/workspace")
    target = constraints.validate_path_safety("src/app.py")   # Path
    constraints.validate_permission("implementer", "src/app.py", "write")
"""

from __future__ import annotations

import fnmatch
import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Any, Iterable

from agentcore.errors import (
    NotFoundError,
    PermissionDeniedError,
    ResourceLockedError,
    ValidationError,
)
from agentcore.rate_limit import AgentRateLimiter

logger = logging.getLogger("agentcore.constraints")

PERMISSIONS = ("read", "write", "execute")


@dataclass
class Lock:
    """Concern lock: one agent owns (task_id, concern) at a time."""
    task_id: str
    concern: str
    agent_id: str
    locked_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "concern": self.concern,
            "agent_id": self.agent_id,
            "locked_at": self.locked_at,
        }


@dataclass
class Permission:
    agent_id: str
    path_pattern: str
    permission: str
    allowed: bool = True
    priority: int = 0


@dataclass
class Grant:
    agent_id: str
    command: str
    reason: str = ""
    used: bool = False
    created_at: float = field(default_factory=time.time)


class ConstraintService:
    """Path, lock, rate and permission checks bound to one sandbox root."""

    def __init__(
        self,
        root: str | os.PathLike = ".",
        rate_limiter: AgentRateLimiter | None = None,
        rate_limit_interval: float = 1.0,
    ):
        self._root = Path(root).resolve()
        self.rate_limiter = rate_limiter or AgentRateLimiter(interval=rate_limit_interval)
        self._lock = threading.Lock()
        self._locks: dict[tuple[str, str], Lock] = {}
        self._permissions: dict[str, list[Permission]] = {}
        self._grants: dict[str, Grant] = {}

    @property
    def root(self) -> Path:
        return self._root

    # ── Paths ────────────────────────────────────────────────

    def validate_path_safety(self, path: str | os.PathLike) -> Path:
        """
        Resolve `path` against the root. Raises ValidationError before any
        I/O when the path is absolute, contains a `..` segment, or resolves
        (symlinks included) outside the root.
        """
        raw = os.fspath(path)
        if not isinstance(raw, str) or "\x00" in raw:
            raise ValidationError(f"Invalid path: {raw!r}", path=raw)
        if PurePosixPath(raw).is_absolute() or PureWindowsPath(raw).is_absolute() \
                or PureWindowsPath(raw).drive:
            raise ValidationError(f"Absolute paths are not allowed: {raw}", path=raw)
        parts = raw.replace("\\", "/").split("/")
        if ".." in parts:
            raise ValidationError(f"Path traversal is not allowed: {raw}", path=raw)

        resolved = (self._root / raw).resolve()
        if resolved != self._root and self._root not in resolved.parents:
            raise ValidationError(f"Path escapes sandbox root: {raw}", path=raw)
        return resolved

    def relative(self, resolved: Path) -> str:
        """Root-relative POSIX form of a resolved path ("." for the root)."""
        rel = resolved.relative_to(self._root).as_posix()
        return rel or "."

    # ── Git ──────────────────────────────────────────────────

    def validate_git_lock(self, repo: str | None = None) -> None:
        repo_dir = self.validate_path_safety(repo) if repo else self._root
        marker = repo_dir / ".git" / "index.lock"
        if marker.exists():
            raise ResourceLockedError(
                f"Git repository is locked: {self.relative(marker)} exists",
                repo=self.relative(repo_dir),
            )

    # ── Rate limit ───────────────────────────────────────────

    def validate_rate_limit(self, agent_id: str) -> None:
        self.rate_limiter.check(agent_id)

    # ── Concern locks ────────────────────────────────────────

    def acquire_lock(self, task_id: str, concern: str, agent_id: str) -> Lock:
        """Take (task_id, concern) for agent_id. Re-entrant for the holder."""
        key = (str(task_id), concern)
        with self._lock:
            held = self._locks.get(key)
            if held is not None:
                if held.agent_id == agent_id:
                    return held
                raise ResourceLockedError(
                    f"Concern '{concern}' on task {task_id} is locked by {held.agent_id}",
                    task_id=str(task_id), concern=concern, holder=held.agent_id,
                )
            lock = Lock(task_id=str(task_id), concern=concern, agent_id=agent_id)
            self._locks[key] = lock
        logger.debug("Lock acquired: %s/%s by %s", task_id, concern, agent_id)
        return lock

    def release_lock(self, task_id: str, concern: str, agent_id: str) -> bool:
        """Release when held by agent_id; False otherwise."""
        key = (str(task_id), concern)
        with self._lock:
            held = self._locks.get(key)
            if held is None or held.agent_id != agent_id:
                return False
            del self._locks[key]
        logger.debug("Lock released: %s/%s by %s", task_id, concern, agent_id)
        return True

    def get_lock(self, task_id: str, concern: str) -> Lock | None:
        with self._lock:
            return self._locks.get((str(task_id), concern))

    # ── Permissions ──────────────────────────────────────────

    def set_permission(
        self,
        agent_id: str,
        path_pattern: str,
        permission: str,
        allowed: bool = True,
        priority: int = 0,
    ) -> Permission:
        if permission not in PERMISSIONS:
            raise ValidationError(f"Unknown permission: {permission}", permission=permission)
        rule = Permission(agent_id, path_pattern, permission, bool(allowed), int(priority))
        with self._lock:
            self._permissions.setdefault(agent_id, []).append(rule)
        return rule

    def load_role_permissions(self, agent_id: str, rules: Iterable[Iterable[Any]]) -> int:
        """Seed rules given as [pattern, permission, allowed, priority] rows."""
        count = 0
        for row in rules:
            pattern, permission, allowed, priority = list(row)
            self.set_permission(agent_id, pattern, permission, allowed, priority)
            count += 1
        return count

    def ensure_role_permissions(self, agent_id: str, rules: Iterable[Iterable[Any]]) -> None:
        """Seed `rules` once; later calls for the same agent are no-ops."""
        with self._lock:
            if agent_id in self._permissions:
                return
            self._permissions[agent_id] = []
        self.load_role_permissions(agent_id, rules)

    def check_permission(self, agent_id: str, path: str, permission: str) -> bool:
        """Highest-priority matching rule decides; no match denies."""
        target = path.replace("\\", "/")
        if target.startswith("./"):
            target = target[2:]
        with self._lock:
            rules = list(self._permissions.get(agent_id, ()))

        best: Permission | None = None
        for rule in rules:
            if rule.permission != permission:
                continue
            if not fnmatch.fnmatchcase(target, rule.path_pattern):
                continue
            # Ties go to the deny rule.
            if best is None or rule.priority > best.priority or (
                rule.priority == best.priority and not rule.allowed
            ):
                best = rule
        return bool(best and best.allowed)

    def validate_permission(self, agent_id: str, path: str, permission: str) -> None:
        if not self.check_permission(agent_id, path, permission):
            raise PermissionDeniedError(agent_id, path, permission)

    # ── One-time grants ──────────────────────────────────────

    def grant_one_time_access(self, agent_id: str, command: str, reason: str = "") -> str:
        token = str(uuid.uuid4())
        with self._lock:
            self._grants[token] = Grant(agent_id=agent_id, command=command, reason=reason)
        logger.info("One-time grant issued to %s for %r: %s", agent_id, command, reason)
        return token

    def validate_grant(self, agent_id: str, command: str, token: str) -> bool:
        """True once for a matching unused token; marks it used."""
        with self._lock:
            grant = self._grants.get(token)
            if grant is None or grant.used:
                return False
            if grant.agent_id != agent_id or grant.command != command:
                return False
            grant.used = True
        return True

    def require_grant(self, agent_id: str, command: str, token: str) -> None:
        if not self.validate_grant(agent_id, command, token):
            raise NotFoundError(f"No valid grant for {agent_id}: {command!r}", token=token)
