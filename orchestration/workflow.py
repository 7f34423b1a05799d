"""
Agent Core — Workflow Engine

Runtime for longer-lived business processes (git lifecycle, bug
triage, environment bring-up, request handling) whose states and
transitions are data, not code.

    engine = WorkflowEngine(SQLiteWorkflowStore(db), transition_log=TransitionLog(db))
    engine.register_action_handler("DELETE_BRANCH", delete_branch)

    ctx = {"subtaskId": "6-1", "escalatedFrom": "devon"}
    engine.transition("bug_triage", "Triage", {"type": "PLAN"}, ctx)
    ctx["strategy"]                                    # "three-tier"

Matching rules for transition(name, state, event, context):
  1. paused (engine-wide or this workflow) → WorkflowPausedError
  2. escalation override: escalatedFrom in the tactical roles or
     isBugEscalation → context["strategy"] = "three-tier"
  3. candidates: from == state and event == event type
  4. condition "key:value" keeps a candidate only if context[key] == value
  5. the first remaining candidate in definition order wins;
     none left → TransitionError("No valid transition ...")
  6. max_loops: re-entering a capped state more often than allowed →
     TransitionError
  7. auto_actions for the source state, then the destination state

The engine mutates the caller's context in place for the strategy
override and the loop counters (context["_loop_counts"]).
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Callable

from agentcore.errors import (
    NotFoundError,
    TransitionError,
    ValidationError,
    WorkflowPausedError,
)
from orchestration.workflow_store import WorkflowDefinition, WorkflowStore

logger = logging.getLogger("agentcore.workflow")

THREE_TIER = "three-tier"
LOOP_COUNTS_KEY = "_loop_counts"


def event_type(event: Any) -> str:
    if isinstance(event, dict):
        return str(event.get("type", ""))
    return str(getattr(event, "type", event))


def condition_holds(condition: str | None, context: dict[str, Any]) -> bool:
    """`key:value` → context[key] == value. Empty condition always holds."""
    if not condition:
        return True
    key, sep, expected = condition.partition(":")
    if not sep:
        return bool(context.get(condition.strip()))
    return str(context.get(key.strip(), "")) == expected.strip()


def calculate_next_state(
    definition: WorkflowDefinition,
    current_state: str,
    event: Any,
    context: dict[str, Any],
) -> str:
    """Pure transition lookup; first match in definition order wins."""
    etype = event_type(event)
    for t in definition.transitions:
        if t.get("from") != current_state or t.get("event") != etype:
            continue
        if not condition_holds(t.get("condition"), context):
            continue
        return t["to"]
    raise TransitionError(
        f"No valid transition from state {current_state} with event {etype}",
        workflow=definition.name, state=current_state, event=etype,
    )


class WorkflowEngine:
    """One engine instance owns its definition cache and pause state."""

    def __init__(
        self,
        store: WorkflowStore,
        transition_log=None,
        tactical_roles: tuple[str, ...] = ("devon", "implementer"),
    ):
        self.store = store
        self.transition_log = transition_log
        self.tactical_roles = tuple(r.lower() for r in tactical_roles)
        self._cache: dict[str, WorkflowDefinition] = {}
        self._handlers: dict[str, Callable[[dict[str, Any]], Any]] = {}
        self._paused = False
        self._paused_workflows: set[str] = set()
        self._lock = threading.Lock()

    # ── Definitions ──────────────────────────────────────────

    def load_workflow(self, name: str) -> WorkflowDefinition:
        with self._lock:
            cached = self._cache.get(name)
        if cached is not None:
            return cached

        definition = self.store.get(name, active_only=True)
        if definition is None:
            raise NotFoundError(f"Workflow not found: {name}", workflow=name)
        with self._lock:
            self._cache[name] = definition
        logger.debug("Loaded workflow %s v%s", name, definition.version)
        return definition

    def invalidate(self, name: str | None = None) -> None:
        with self._lock:
            if name is None:
                self._cache.clear()
            else:
                self._cache.pop(name, None)

    def validate_state(self, workflow_name: str, state: str) -> bool:
        return state in self.load_workflow(workflow_name).all_states()

    # ── Actions ──────────────────────────────────────────────

    def register_action_handler(self, action: str, handler: Callable[[dict[str, Any]], Any]) -> None:
        with self._lock:
            self._handlers[action] = handler

    def execute_action(self, action: str, context: dict[str, Any]) -> None:
        with self._lock:
            handler = self._handlers.get(action)
        if handler is None:
            logger.debug("No handler registered for auto action %s", action)
            return
        logger.info("Running auto action %s", action)
        handler(context)

    # ── Pause / resume ───────────────────────────────────────

    def pause(self, workflow_name: str | None = None) -> None:
        with self._lock:
            if workflow_name:
                self._paused_workflows.add(workflow_name)
            else:
                self._paused = True
        logger.warning("Workflow execution paused: %s", workflow_name or "<all>")

    def resume(self, workflow_name: str | None = None) -> None:
        with self._lock:
            if workflow_name:
                self._paused_workflows.discard(workflow_name)
            else:
                self._paused = False
        logger.info("Workflow execution resumed: %s", workflow_name or "<all>")

    def is_paused(self, workflow_name: str | None = None) -> bool:
        with self._lock:
            if workflow_name:
                return workflow_name in self._paused_workflows
            return self._paused

    # ── Transition ───────────────────────────────────────────

    def transition(
        self,
        workflow_name: str,
        current_state: str,
        event: Any,
        context: dict[str, Any] | None = None,
    ) -> str:
        context = {} if context is None else context
        with self._lock:
            paused = self._paused or workflow_name in self._paused_workflows
        if paused:
            raise WorkflowPausedError(workflow_name)

        definition = self.load_workflow(workflow_name)

        escalated_from = str(context.get("escalatedFrom") or "").lower()
        if escalated_from in self.tactical_roles or context.get("isBugEscalation"):
            context["strategy"] = THREE_TIER

        next_state = calculate_next_state(definition, current_state, event, context)
        self._count_loop(definition, next_state, context)

        auto_actions = definition.metadata.get("auto_actions") or {}
        if current_state in auto_actions:
            self.execute_action(auto_actions[current_state], context)
        if next_state in auto_actions:
            self.execute_action(auto_actions[next_state], context)

        self._audit(definition, current_state, next_state, context)
        logger.info(
            "Workflow %s: %s --%s--> %s",
            workflow_name, current_state, event_type(event), next_state,
        )
        return next_state

    def _count_loop(self, definition: WorkflowDefinition, next_state: str,
                    context: dict[str, Any]) -> None:
        limits = definition.metadata.get("max_loops") or {}
        limit = limits.get(next_state)
        counts = context.setdefault(LOOP_COUNTS_KEY, {})
        count = counts.get(next_state, 0) + 1
        if limit is not None and count > int(limit):
            raise TransitionError(
                f"Loop limit reached for state {next_state} (max {limit})",
                workflow=definition.name, state=next_state, max_loops=limit,
            )
        counts[next_state] = count

    def _audit(self, definition: WorkflowDefinition, from_state: str, to_state: str,
               context: dict[str, Any]) -> None:
        if self.transition_log is None:
            return
        roles = definition.metadata.get("roles") or {}
        subtask_id = str(context.get("subtaskId") or context.get("subtask_id") or definition.name)
        try:
            self.transition_log.log_transition(
                subtask_id, roles.get(to_state, "workflow"), from_state, to_state
            )
        except Exception as e:
            logger.warning("Workflow transition log failed for %s: %s", subtask_id, e)

    # ── CRUD ─────────────────────────────────────────────────

    def list_workflows(self) -> list[dict[str, Any]]:
        return [
            {"id": d.name, "name": d.name, "version": d.version,
             "status": "active" if d.is_active else "inactive"}
            for d in self.store.list(active_only=True)
        ]

    def get_workflow(self, name: str) -> dict[str, Any] | None:
        try:
            return self.load_workflow(name).to_dict()
        except NotFoundError:
            return None

    def update_workflow(self, name: str, data: dict[str, Any]) -> dict[str, Any] | None:
        if not data or not data.get("name") or not data.get("definition"):
            raise ValidationError("Workflow update requires name and definition")

        existing = self.store.get(name, active_only=False)
        if existing is None:
            return None

        merged = {
            "name": data["name"],
            "version": data.get("version", existing.version),
            "definition": copy.deepcopy(data["definition"]),
            "metadata": data.get("metadata") if data.get("metadata") is not None else {},
            "is_active": data.get("is_active", existing.is_active),
        }
        definition = WorkflowDefinition.from_dict(merged)
        if not self.store.update(name, definition):
            return None

        self.invalidate(name)
        if definition.name != name:
            self.invalidate(definition.name)
        logger.info("Workflow %s updated (now %s v%s)", name, definition.name, definition.version)
        return definition.to_dict()
