"""
Agent Core — Agent Executor

Drives one claimed task through the agent FSM to a terminal state:

    claim ─► OBSERVE ─► THINK ─► ACT ─► WAIT ─► VERIFY ─► COMPLETE ─► complete()
                │          │       │                          │
                └──────────┴───────┴───── ERROR ◄─────────────┘ ─► fail()

  OBSERVE  prompt the reasoning backend with the task context and the
           role's tool names; any backend failure is an ERROR
  THINK    extract tool calls from the response (zero calls is fine)
  ACT      run every call in order through the sandbox; the first
           failed call aborts the task
  WAIT     on_wait(context) hook, WAIT_COMPLETE by default
  VERIFY   on_verify(context) hook, VERIFICATION_PASSED by default

Each transition is written to the transition log and published to the
telemetry sink; failures on either side are logged and ignored. A task
is always finished with complete() or fail(), never left running.

Usage:
    executor = AgentExecutor(
        queue=TaskQueue(SQLiteTaskStore(db)),
        sandbox_factory=lambda role: build_sandbox(role, cfg, constraints),
        backend=ChatModelBackend(create_chat_model("openai", "gpt-4o-mini")),
        transition_log=TransitionLog(db),
        telemetry=LoggingSink(),
    )
    outcome = executor.execute_next()
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from agentcore.errors import ResourceLockedError, StepBudgetExceeded
from agentcore.extractor import GRAMMAR_VERSION, ToolCall, extract_tool_calls
from agentcore.fsm import (
    INITIAL_STATE,
    AgentEvent,
    AgentState,
    ExecutionContext,
    create_log_entry,
    transition,
    update_context,
)
from agentcore.llm import ReasoningBackend
from agentcore.logging import RunLogger
from agentcore.sandbox import ToolSandbox
from agentcore.telemetry import NullSink, TelemetrySink, transition_event

logger = logging.getLogger("agentcore.executor")

NO_TOOLS_NEEDED = "No tools needed"


@dataclass
class ExecutionOutcome:
    """What happened to one task."""
    task_id: Any
    subtask_id: str
    agent: str
    status: str  # completed | failed
    final_state: str
    step_count: int = 0
    error: str | None = None
    elapsed_s: float = 0.0
    context: ExecutionContext | None = None

    @property
    def completed(self) -> bool:
        return self.status == "completed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "subtask_id": self.subtask_id,
            "agent": self.agent,
            "status": self.status,
            "final_state": self.final_state,
            "step_count": self.step_count,
            "error": self.error,
            "elapsed_s": round(self.elapsed_s, 3),
        }


def build_prompt(context: ExecutionContext, sandbox: ToolSandbox) -> str:
    """Prompt for one OBSERVE step: tools, grammar and current context."""
    specs = sandbox.specs()
    tool_lines = "\n".join(s.describe() for s in specs) if specs else "  (none)"
    context_json = json.dumps(context.to_dict(), indent=2, default=str)
    return f"""You are an AI agent ({sandbox.role}) executing a task. You have access to the following tools:
{tool_lines}

Current task context:
{context_json}

Respond with tool calls (grammar {GRAMMAR_VERSION}) to perform the next step:
<tool name="filesystem" action="write">
  <path>src/example.py</path>
  <content><![CDATA[...]]></content>
</tool>

If the task is complete, respond without any tool calls.
"""


class AgentExecutor:
    """Composes queue, FSM, reasoning backend and sandbox into task runs."""

    def __init__(
        self,
        queue,
        sandbox_factory: Callable[[str], ToolSandbox],
        backend: ReasoningBackend,
        transition_log=None,
        telemetry: TelemetrySink | None = None,
        max_steps: int = 20,
        extractor: Callable[[str], list[ToolCall]] = extract_tool_calls,
        worker_id: str | None = None,
    ):
        self.queue = queue
        self.sandbox_factory = sandbox_factory
        self.backend = backend
        self.transition_log = transition_log
        self.telemetry = telemetry or NullSink()
        self.max_steps = max_steps
        self.extractor = extractor
        self.worker_id = worker_id or f"executor-{uuid.uuid4().hex[:8]}"

    # ── Entry points ─────────────────────────────────────────

    def execute_next(self) -> ExecutionOutcome | None:
        """Claim the oldest pending task and run it. None when the queue is empty."""
        task = self.queue.dequeue(self.worker_id)
        if task is None:
            return None
        return self.run_task(task)

    def run_task(self, task) -> ExecutionOutcome:
        payload = dict(task.payload or {})
        subtask_id = str(payload.get("subtaskId") or payload.get("subtask_id") or f"task-{task.id}")
        agent = str(payload.get("agent") or payload.get("role") or task.type)
        run_log = RunLogger(subtask_id=subtask_id, agent=agent, task_id=task.id)
        t0 = time.time()

        try:
            return self._run(task, payload, subtask_id, agent, run_log, t0)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.exception("Task %s aborted: %s", task.id, message)
            self.queue.fail(task.id, message)
            elapsed = time.time() - t0
            run_log.on_run_end("failed", 0, elapsed, error=message)
            return ExecutionOutcome(
                task_id=task.id, subtask_id=subtask_id, agent=agent,
                status="failed", final_state=AgentState.ERROR.value,
                error=message, elapsed_s=elapsed,
            )

    # ── Hooks ────────────────────────────────────────────────

    def on_wait(self, context: ExecutionContext) -> AgentEvent:
        return AgentEvent.WAIT_COMPLETE

    def on_verify(self, context: ExecutionContext) -> AgentEvent:
        return AgentEvent.VERIFICATION_PASSED

    # ── Loop ─────────────────────────────────────────────────

    def _run(self, task, payload, subtask_id, agent, run_log: RunLogger, t0: float) -> ExecutionOutcome:
        sandbox = self.sandbox_factory(agent)
        concern = payload.get("concern")
        lock_held = False
        if concern:
            try:
                sandbox.constraints.acquire_lock(subtask_id, concern, agent)
                lock_held = True
            except ResourceLockedError as e:
                return self._finish_failed(task, subtask_id, agent, INITIAL_STATE,
                                           ExecutionContext(payload=payload), str(e), run_log, t0)

        try:
            run_log.on_run_start(self.max_steps, sandbox.tool_names)
            state, context = self._loop(sandbox, payload, subtask_id, agent, run_log)
        finally:
            if lock_held:
                sandbox.constraints.release_lock(subtask_id, concern, agent)

        if state is AgentState.COMPLETE:
            self.queue.complete(task.id, {"context": context.to_dict(), "completed": True})
            elapsed = time.time() - t0
            run_log.on_run_end("completed", context.step_count, elapsed)
            return ExecutionOutcome(
                task_id=task.id, subtask_id=subtask_id, agent=agent,
                status="completed", final_state=state.value,
                step_count=context.step_count, elapsed_s=elapsed, context=context,
            )

        return self._finish_failed(task, subtask_id, agent, state, context,
                                   context.error or "Agent execution failed", run_log, t0)

    def _finish_failed(self, task, subtask_id, agent, state, context, error, run_log, t0):
        self.queue.fail(task.id, error)
        elapsed = time.time() - t0
        run_log.on_run_end("failed", context.step_count, elapsed, error=error)
        return ExecutionOutcome(
            task_id=task.id, subtask_id=subtask_id, agent=agent,
            status="failed", final_state=getattr(state, "value", str(state)),
            step_count=context.step_count, error=error,
            elapsed_s=elapsed, context=context,
        )

    def _loop(self, sandbox: ToolSandbox, payload: dict, subtask_id: str, agent: str,
              run_log: RunLogger) -> tuple[AgentState, ExecutionContext]:
        state = INITIAL_STATE
        context = ExecutionContext(payload=payload)

        while state not in (AgentState.COMPLETE, AgentState.ERROR):
            if context.step_count >= self.max_steps:
                context = context.evolve(error=str(StepBudgetExceeded(self.max_steps)))
                state, context = self._apply(state, AgentEvent.ERROR_OCCURRED, context,
                                             subtask_id, agent, run_log)
                break

            if state is AgentState.OBSERVE:
                event, context = self._observe(context, sandbox, run_log)
            elif state is AgentState.THINK:
                event, context = self._think(context)
            elif state is AgentState.ACT:
                event, context = self._act(context, sandbox, run_log)
            elif state is AgentState.WAIT:
                event = self.on_wait(context)
            elif state is AgentState.VERIFY:
                event = self.on_verify(context)
            else:
                event = AgentEvent.ERROR_OCCURRED
                context = context.evolve(error=f"Unexpected state: {state}")

            state, context = self._apply(state, event, context, subtask_id, agent, run_log)

        return state, context

    def _apply(self, state, event, context, subtask_id, agent, run_log):
        next_state = transition(state, event, context)
        self._record(state, next_state, agent, subtask_id)
        context = update_context(state, event, context)
        run_log.on_transition(state.value, next_state.value, event.value, context.step_count)
        return next_state, context

    # ── Stages ───────────────────────────────────────────────

    def _observe(self, context: ExecutionContext, sandbox: ToolSandbox, run_log: RunLogger):
        prompt = build_prompt(context, sandbox)
        t0 = time.time()
        try:
            result = self.backend.generate(prompt, {})
        except Exception as e:
            return AgentEvent.ERROR_OCCURRED, context.evolve(error=f"LLM call failed: {e}")
        run_log.on_backend_call(len(prompt), len(result.content or ""), time.time() - t0)
        return AgentEvent.OBSERVE_COMPLETE, context.evolve(last_result=result.content)

    def _think(self, context: ExecutionContext):
        calls = self.extractor(context.last_observation or "")
        if not calls:
            return AgentEvent.THINK_COMPLETE, context.evolve(
                tool_calls=(), last_result=NO_TOOLS_NEEDED,
            )
        return AgentEvent.THINK_COMPLETE, context.evolve(
            tool_calls=tuple(calls), last_result=[c.to_dict() for c in calls],
        )

    def _act(self, context: ExecutionContext, sandbox: ToolSandbox, run_log: RunLogger):
        results = []
        for call in context.tool_calls:
            result = sandbox.invoke(call)
            run_log.on_tool_result(call.tool, call.action, result.status,
                                   result.latency_ms, result.error)
            if not result.ok:
                return AgentEvent.ERROR_OCCURRED, context.evolve(
                    error=f"{result.error_type}: {result.error}",
                )
            results.append({
                "tool": result.tool, "action": result.action,
                "params": dict(call.params), "result": result.data,
            })

        step = {"step": context.step_count + 1, "tool_calls": results}
        return AgentEvent.ACTION_COMPLETE, context.evolve(
            steps=context.steps + (step,), last_result=results,
        )

    # ── Audit & telemetry ────────────────────────────────────

    def _record(self, from_state, to_state, agent: str, subtask_id: str) -> None:
        entry = create_log_entry(from_state, to_state, agent, subtask_id)
        if self.transition_log is not None:
            try:
                self.transition_log.log_transition(entry)
            except Exception as e:
                logger.warning("Transition log failed for %s: %s", subtask_id, e)
        try:
            self.telemetry.publish(transition_event(entry))
        except Exception as e:
            logger.warning("Telemetry publish failed for %s: %s", subtask_id, e)
