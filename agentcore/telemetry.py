"""
Agent Core — Transition Telemetry

Publish contract for live state-change events. The executor publishes
one event per FSM transition:

    {"subtaskId": "6-1", "agent": "devon", "from": "OBSERVE",
     "to": "THINK", "timestamp": "2026-01-01T00:00:00+00:00"}

Sinks:
  - NullSink       drops everything
  - InMemorySink   keeps events (tests, CLI dry runs)
  - LoggingSink    one structured log line per event
  - CallbackSink   hands each event to a callable (WebSocket bridge etc.)

Publishing is best effort; the executor logs and ignores sink failures.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Protocol

from agentcore.fsm import TransitionLogEntry
from agentcore.logging import log_event

logger = logging.getLogger("agentcore.telemetry")


class TelemetrySink(Protocol):
    def publish(self, event: dict[str, Any]) -> None:
        ...


def transition_event(entry: TransitionLogEntry) -> dict[str, Any]:
    """Wire shape of one transition event."""
    return {
        "subtaskId": entry.subtask_id,
        "agent": entry.agent,
        "from": entry.from_state,
        "to": entry.to_state,
        "timestamp": entry.timestamp,
    }


class NullSink:
    def publish(self, event: dict[str, Any]) -> None:
        pass


class InMemorySink:
    """Thread-safe event buffer."""

    def __init__(self):
        self._events: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def publish(self, event: dict[str, Any]) -> None:
        with self._lock:
            self._events.append(dict(event))

    @property
    def events(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._events)

    def for_subtask(self, subtask_id: str) -> list[dict[str, Any]]:
        return [e for e in self.events if e.get("subtaskId") == subtask_id]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class LoggingSink:
    def __init__(self, level: int = logging.INFO):
        self.level = level

    def publish(self, event: dict[str, Any]) -> None:
        log_event(logger, self.level, "state_change", **event)


class CallbackSink:
    def __init__(self, callback: Callable[[dict[str, Any]], None]):
        self._callback = callback

    def publish(self, event: dict[str, Any]) -> None:
        self._callback(event)
