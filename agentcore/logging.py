"""
Agent Core — Structured Logging

JSON log lines for executor runs, queue operations and workflow
transitions. Every run logger carries the subtask id and agent role
so a whole task can be reconstructed from the log stream alone.

Usage:
    from agentcore.logging import RunLogger, configure_logging

    configure_logging(level="INFO")
    run_log = RunLogger(subtask_id="6-1", agent="devon", task_id=42)
    run_log.on_run_start(max_steps=20)
    run_log.on_transition("OBSERVE", "THINK", "OBSERVE_COMPLETE", step_count=1)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any


# ═══════════════════════════════════════════════════════════════════
# JSON Formatter
# ═══════════════════════════════════════════════════════════════════

class JSONFormatter(logging.Formatter):
    """One JSON object per record; `extra={"structured": {...}}` keys are merged in."""

    def __init__(self, service_name: str = "agentcore"):
        super().__init__()
        self.service = {
            "service.name": service_name,
            "service.version": os.environ.get("AGENTCORE_VERSION", "0.1.0"),
        }

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            **self.service,
        }
        entry.update(getattr(record, "structured", None) or {})

        exc_type, exc, _ = record.exc_info or (None, None, None)
        if exc_type is not None:
            entry["exception.type"] = exc_type.__name__
            entry["exception.message"] = str(exc)
        return json.dumps(entry, default=str)


# ═══════════════════════════════════════════════════════════════════
# Log Configuration
# ═══════════════════════════════════════════════════════════════════

def _level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


def configure_logging(
    level: str | int = "INFO",
    stream: Any = None,
    service_name: str = "agentcore",
) -> logging.Logger:
    """Route the whole agentcore.* tree to one JSON handler. Safe to call again."""
    root = logging.getLogger("agentcore")
    for name in [n for n in logging.Logger.manager.loggerDict if n.startswith("agentcore.")]:
        child = logging.getLogger(name)
        child.handlers.clear()
        child.setLevel(logging.NOTSET)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter(service_name=service_name))
    root.handlers[:] = [handler]
    root.setLevel(_level(level))
    root.propagate = False
    return root


def get_logger(name: str = "") -> logging.Logger:
    """Get a child logger under the agentcore namespace."""
    if name:
        return logging.getLogger(f"agentcore.{name}")
    return logging.getLogger("agentcore")


def log_event(logger: logging.Logger, level: int, action: str, **fields) -> None:
    """Emit one structured record; `fields` land as top-level JSON keys."""
    if not logger.isEnabledFor(level):
        return
    logger.log(level, action, extra={"structured": {"action": action, **fields}})


# ═══════════════════════════════════════════════════════════════════
# Run Logger
# ═══════════════════════════════════════════════════════════════════

class RunLogger:
    """Structured logger bound to one executor run."""

    def __init__(self, subtask_id: str, agent: str, task_id: Any = None):
        self.subtask_id = subtask_id
        self.agent = agent
        self.task_id = task_id
        self._logger = get_logger("executor")

    def _emit(self, level: int, action: str, **fields):
        log_event(
            self._logger, level, action,
            subtask_id=self.subtask_id, agent=self.agent, task_id=self.task_id,
            **fields,
        )

    def on_run_start(self, max_steps: int, tools: list[str]) -> None:
        self._emit(logging.INFO, "run_start", max_steps=max_steps, tools=tools)

    def on_transition(self, from_state: str, to_state: str, event: str,
                      step_count: int) -> None:
        self._emit(
            logging.INFO, "transition",
            from_state=from_state, to_state=to_state,
            fsm_event=event, step_count=step_count,
        )

    def on_backend_call(self, prompt_chars: int, response_chars: int,
                        elapsed: float) -> None:
        self._emit(
            logging.DEBUG, "backend_call",
            prompt_chars=prompt_chars, response_chars=response_chars,
            latency_ms=round(elapsed * 1000, 1),
        )

    def on_tool_result(self, tool: str, action: str, status: str,
                       latency_ms: float, error: str | None = None) -> None:
        level = logging.INFO if status == "success" else logging.WARNING
        fields: dict[str, Any] = {
            "tool": tool, "tool_action": action, "status": status,
            "latency_ms": round(latency_ms, 1),
        }
        if error:
            fields["error"] = error[:500]
        self._emit(level, "tool_result", **fields)

    def on_run_end(self, status: str, step_count: int, elapsed_s: float,
                   error: str | None = None) -> None:
        level = logging.INFO if status == "completed" else logging.WARNING
        self._emit(
            level, "run_end",
            status=status, step_count=step_count,
            elapsed_s=round(elapsed_s, 3), error=error,
        )
