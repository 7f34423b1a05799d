"""
Agent Core — Agent Finite State Machine

The OBSERVE → THINK → ACT → WAIT → VERIFY → COMPLETE reasoning loop as
pure functions. No I/O, no hidden state: the executor owns the context
and persists the log entries this module builds.

  OBSERVE --OBSERVE_COMPLETE-->    THINK
  THINK   --THINK_COMPLETE-->      ACT
  ACT     --ACTION_COMPLETE-->     WAIT
  WAIT    --WAIT_COMPLETE-->       VERIFY
  VERIFY  --VERIFICATION_PASSED--> COMPLETE   (terminal)
  VERIFY  --VERIFICATION_FAILED--> THINK
  *       --ERROR_OCCURRED-->      ERROR      (any non-terminal state)
  ERROR   --ERROR_HANDLED-->       OBSERVE
"""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


class AgentState(str, enum.Enum):
    OBSERVE = "OBSERVE"
    THINK = "THINK"
    ACT = "ACT"
    WAIT = "WAIT"
    VERIFY = "VERIFY"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


class AgentEvent(str, enum.Enum):
    OBSERVE_COMPLETE = "OBSERVE_COMPLETE"
    THINK_COMPLETE = "THINK_COMPLETE"
    ACTION_COMPLETE = "ACTION_COMPLETE"
    WAIT_COMPLETE = "WAIT_COMPLETE"
    VERIFICATION_PASSED = "VERIFICATION_PASSED"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    ERROR_OCCURRED = "ERROR_OCCURRED"
    ERROR_HANDLED = "ERROR_HANDLED"


INITIAL_STATE = AgentState.OBSERVE
ALL_STATES = tuple(AgentState)

_TRANSITIONS: dict[AgentState, dict[AgentEvent, AgentState]] = {
    AgentState.OBSERVE: {
        AgentEvent.OBSERVE_COMPLETE: AgentState.THINK,
        AgentEvent.ERROR_OCCURRED: AgentState.ERROR,
    },
    AgentState.THINK: {
        AgentEvent.THINK_COMPLETE: AgentState.ACT,
        AgentEvent.ERROR_OCCURRED: AgentState.ERROR,
    },
    AgentState.ACT: {
        AgentEvent.ACTION_COMPLETE: AgentState.WAIT,
        AgentEvent.ERROR_OCCURRED: AgentState.ERROR,
    },
    AgentState.WAIT: {
        AgentEvent.WAIT_COMPLETE: AgentState.VERIFY,
        AgentEvent.ERROR_OCCURRED: AgentState.ERROR,
    },
    AgentState.VERIFY: {
        AgentEvent.VERIFICATION_PASSED: AgentState.COMPLETE,
        AgentEvent.VERIFICATION_FAILED: AgentState.THINK,
        AgentEvent.ERROR_OCCURRED: AgentState.ERROR,
    },
    AgentState.COMPLETE: {},
    AgentState.ERROR: {
        AgentEvent.ERROR_HANDLED: AgentState.OBSERVE,
    },
}

# Where each *_COMPLETE event files the stage output (context.last_result).
_RESULT_SLOTS = {
    AgentEvent.OBSERVE_COMPLETE: "last_observation",
    AgentEvent.THINK_COMPLETE: "plan",
    AgentEvent.ACTION_COMPLETE: "action_result",
}


@dataclass(frozen=True)
class ExecutionContext:
    """
    Per-run context threaded through the reducer.

    Frozen: update_context returns a new instance, so a caller holding
    an old context never observes a later step.
    """
    payload: dict[str, Any] = field(default_factory=dict)
    step_count: int = 0
    last_event: str | None = None
    last_result: Any = None
    last_observation: Any = None
    plan: Any = None
    action_result: Any = None
    tool_calls: tuple = ()
    steps: tuple = ()
    retry_count: int = 0
    error: str | None = None

    def evolve(self, **changes) -> ExecutionContext:
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "payload": self.payload,
            "step_count": self.step_count,
            "last_event": self.last_event,
            "last_observation": self.last_observation,
            "plan": self.plan,
            "action_result": self.action_result,
            "tool_calls": [
                c.to_dict() if hasattr(c, "to_dict") else c for c in self.tool_calls
            ],
            "steps": list(self.steps),
            "retry_count": self.retry_count,
            "error": self.error,
        }


@dataclass(frozen=True)
class TransitionLogEntry:
    """One append-only row of the transition log."""
    subtask_id: str
    agent: str
    from_state: str
    to_state: str
    timestamp: str
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subtask_id": self.subtask_id,
            "agent": self.agent,
            "from_state": self.from_state,
            "to_state": self.to_state,
            "timestamp": self.timestamp,
        }


def _state(value: AgentState | str) -> AgentState | str:
    try:
        return AgentState(value)
    except ValueError:
        return value


def _event(value: AgentEvent | str) -> AgentEvent | str:
    try:
        return AgentEvent(value)
    except ValueError:
        return value


def is_terminal(state: AgentState | str) -> bool:
    return _state(state) is AgentState.COMPLETE


def transition(
    state: AgentState | str,
    event: AgentEvent | str,
    context: ExecutionContext | None = None,
) -> AgentState | str:
    """
    Next state for (state, event). Unknown states and unmapped events
    leave the state unchanged; COMPLETE is a fixed point.

    `context` is accepted for conditional transitions; the agent loop
    has none today.
    """
    current = _state(state)
    table = _TRANSITIONS.get(current)
    if table is None:
        return current
    return table.get(_event(event), current)


def update_context(
    from_state: AgentState | str,
    event: AgentEvent | str,
    context: ExecutionContext,
) -> ExecutionContext:
    """Pure reducer: the context after `event` fires in `from_state`."""
    source = _state(from_state)
    ev = _event(event)
    changes: dict[str, Any] = {"last_event": ev.value if isinstance(ev, AgentEvent) else ev}

    if not (source is AgentState.ERROR and ev is AgentEvent.ERROR_HANDLED):
        changes["step_count"] = context.step_count + 1

    slot = _RESULT_SLOTS.get(ev)
    if slot is not None:
        changes[slot] = context.last_result
    elif ev is AgentEvent.VERIFICATION_FAILED:
        changes["retry_count"] = context.retry_count + 1
    elif ev is AgentEvent.ERROR_OCCURRED:
        changes["error"] = context.error or "Unknown error"
    elif ev is AgentEvent.ERROR_HANDLED:
        changes["error"] = None

    return context.evolve(**changes)


def create_log_entry(
    from_state: AgentState | str,
    to_state: AgentState | str,
    agent: str,
    subtask_id: str,
) -> TransitionLogEntry:
    return TransitionLogEntry(
        subtask_id=subtask_id,
        agent=agent,
        from_state=_state_name(from_state),
        to_state=_state_name(to_state),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


def _state_name(state: AgentState | str) -> str:
    return state.value if isinstance(state, enum.Enum) else str(state)
