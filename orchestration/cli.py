"""
Agent Core — Command Line Interface

Usage:
    # Queue work
    python -m orchestration.cli enqueue devon --payload '{"subtaskId": "6-1", "goal": "add a health check"}'

    # Run one task (real model from agentcore.yaml, or a scripted dry run)
    python -m orchestration.cli run-once
    python -m orchestration.cli run-once --script responses.yaml

    # Drain the queue with 4 worker threads
    python -m orchestration.cli work --workers 4

    # Inspect
    python -m orchestration.cli tasks --status failed
    python -m orchestration.cli log 6-1

    # Workflows
    python -m orchestration.cli workflows seed workflows/
    python -m orchestration.cli workflows list
    python -m orchestration.cli workflows show bug_triage
    python -m orchestration.cli workflows transition bug_triage Triage ROUTE --context '{"escalatedFrom": "devon"}'

A --script file is a YAML list of canned model responses.
"""

from __future__ import annotations

import argparse
import json
import sys
import uuid
from dataclasses import dataclass
from typing import Any

import yaml

from agentcore.audit import TransitionLog
from agentcore.config import CoreConfig, load_config
from agentcore.constraints import ConstraintService
from agentcore.db import SQLiteBackend, create_backend
from agentcore.errors import AgentCoreError
from agentcore.executor import AgentExecutor
from agentcore.llm import ScriptedBackend, create_backend_from_config
from agentcore.logging import configure_logging
from agentcore.sandbox import build_sandbox
from agentcore.telemetry import LoggingSink
from orchestration.tasks import SQLiteTaskStore, TaskQueue, TaskStatus
from orchestration.worker import WorkerPool
from orchestration.workflow import WorkflowEngine
from orchestration.workflow_store import SQLiteWorkflowStore, load_definitions


@dataclass
class Runtime:
    """Everything one process needs, wired from config."""
    config: CoreConfig
    db: SQLiteBackend
    queue: TaskQueue
    transition_log: TransitionLog
    constraints: ConstraintService
    workflows: WorkflowEngine

    def executor(self, backend, worker_id: str | None = None) -> AgentExecutor:
        worker_id = worker_id or f"executor-{uuid.uuid4().hex[:8]}"
        return AgentExecutor(
            queue=self.queue,
            sandbox_factory=lambda role: build_sandbox(
                role, self.config, self.constraints, db=self.db, worker_id=worker_id
            ),
            backend=backend,
            transition_log=self.transition_log,
            telemetry=LoggingSink(),
            max_steps=self.config.max_steps,
            worker_id=worker_id,
        )


def build_runtime(config: CoreConfig, db_path: str | None = None) -> Runtime:
    db = create_backend(db_path or config.db_path)
    transition_log = TransitionLog(db)
    return Runtime(
        config=config,
        db=db,
        queue=TaskQueue(SQLiteTaskStore(db)),
        transition_log=transition_log,
        constraints=ConstraintService(
            root=config.sandbox_root,
            rate_limit_interval=config.rate_limit_interval,
        ),
        workflows=WorkflowEngine(SQLiteWorkflowStore(db), transition_log=transition_log),
    )


def _load_backend(args, rt: Runtime):
    if getattr(args, "script", None):
        with open(args.script, encoding="utf-8") as f:
            responses = yaml.safe_load(f) or []
        if isinstance(responses, str):
            responses = [responses]
        return ScriptedBackend([str(r) for r in responses])
    return create_backend_from_config(rt.config.llm)


def _parse_json(value: str | None, what: str) -> dict[str, Any]:
    if not value:
        return {}
    try:
        data = json.loads(value)
    except json.JSONDecodeError as e:
        raise SystemExit(f"Error: {what} is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise SystemExit(f"Error: {what} must be a JSON object")
    return data


# ═══════════════════════════════════════════════════════════════════
# Commands
# ═══════════════════════════════════════════════════════════════════

def cmd_enqueue(args, rt: Runtime) -> int:
    task = rt.queue.enqueue(args.type, _parse_json(args.payload, "--payload"))
    print(json.dumps(task.to_dict(), indent=2, default=str))
    return 0


def cmd_run_once(args, rt: Runtime) -> int:
    executor = rt.executor(_load_backend(args, rt), worker_id=args.worker)
    outcome = executor.execute_next()
    if outcome is None:
        print("No pending tasks.")
        return 0
    print(json.dumps(outcome.to_dict(), indent=2, default=str))
    return 0 if outcome.completed else 1


def cmd_work(args, rt: Runtime) -> int:
    backend = _load_backend(args, rt)
    pool = WorkerPool(lambda worker_id: rt.executor(backend, worker_id=worker_id),
                      workers=args.workers)
    outcomes = pool.run()
    completed = sum(1 for o in outcomes if o.completed)
    print(f"Processed {len(outcomes)} task(s): {completed} completed, "
          f"{len(outcomes) - completed} failed")
    return 0 if completed == len(outcomes) else 1


def cmd_tasks(args, rt: Runtime) -> int:
    statuses = [args.status] if args.status else list(TaskStatus.ALL)
    for status in statuses:
        tasks = rt.queue.get_tasks_by_status(status)
        if not tasks:
            continue
        print(f"\n{status.upper()} ({len(tasks)})")
        print(f"{'─' * 70}")
        for t in tasks:
            line = f"  #{t.id:<5} {t.type:<14} worker={t.worker_id or '—'}"
            if t.error:
                line += f"  error={t.error}"
            print(line)
    return 0


def cmd_log(args, rt: Runtime) -> int:
    entries = rt.transition_log.get_transitions(args.subtask_id, descending=args.desc)
    if not entries:
        print(f"No transitions recorded for {args.subtask_id}.")
        return 0
    for e in entries:
        print(f"  {e.timestamp}  {e.agent:<12} {e.from_state:>9} → {e.to_state}")
    return 0


def cmd_workflows(args, rt: Runtime) -> int:
    engine = rt.workflows
    if args.wf_command == "seed":
        names = load_definitions(engine.store, args.directory)
        engine.invalidate()
        print(f"Seeded {len(names)} workflow(s): {', '.join(names)}")
    elif args.wf_command == "list":
        for wf in engine.list_workflows():
            print(f"  {wf['name']:<20} v{wf['version']:<8} {wf['status']}")
    elif args.wf_command == "show":
        wf = engine.get_workflow(args.name)
        if wf is None:
            print(f"Workflow not found: {args.name}", file=sys.stderr)
            return 1
        print(yaml.safe_dump(wf, sort_keys=False))
    elif args.wf_command == "transition":
        context = _parse_json(args.context, "--context")
        next_state = engine.transition(args.name, args.state, {"type": args.event}, context)
        print(json.dumps({"next_state": next_state, "context": context}, indent=2, default=str))
    return 0


# ═══════════════════════════════════════════════════════════════════
# Entry point
# ═══════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentcore",
        description="Agent Core — task queue, executor and workflow engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Base config YAML (default: agentcore.yaml)")
    parser.add_argument("--env", default="", help="Config overlay profile (config/<env>.yaml)")
    parser.add_argument("--db", help="Database path (overrides db_path)")
    parser.add_argument("--log-level", help="Log level (overrides log_level)")

    subs = parser.add_subparsers(dest="command", help="Command")

    enqueue_p = subs.add_parser("enqueue", help="Queue a task for an agent role")
    enqueue_p.add_argument("type", help="Agent role, e.g. devon / tara / orion")
    enqueue_p.add_argument("--payload", "-p", help="JSON payload")

    run_p = subs.add_parser("run-once", help="Claim and run one pending task")
    run_p.add_argument("--script", "-s", help="YAML list of canned model responses")
    run_p.add_argument("--worker", "-w", default="cli-worker")

    work_p = subs.add_parser("work", help="Drain the queue with a worker pool")
    work_p.add_argument("--workers", "-n", type=int, default=4)
    work_p.add_argument("--script", "-s", help="YAML list of canned model responses")

    tasks_p = subs.add_parser("tasks", help="List tasks by status")
    tasks_p.add_argument("--status", choices=TaskStatus.ALL)

    log_p = subs.add_parser("log", help="Show the FSM transition log for a subtask")
    log_p.add_argument("subtask_id")
    log_p.add_argument("--desc", action="store_true", help="Newest first")

    wf_p = subs.add_parser("workflows", help="Manage workflow definitions")
    wf_subs = wf_p.add_subparsers(dest="wf_command")
    wf_subs.add_parser("list", help="List active workflows")
    show_p = wf_subs.add_parser("show", help="Show one workflow")
    show_p.add_argument("name")
    seed_p = wf_subs.add_parser("seed", help="Load YAML definitions from a directory")
    seed_p.add_argument("directory")
    tr_p = wf_subs.add_parser("transition", help="Compute a workflow transition")
    tr_p.add_argument("name")
    tr_p.add_argument("state")
    tr_p.add_argument("event")
    tr_p.add_argument("--context", "-c", help="JSON context")

    return parser


COMMANDS = {
    "enqueue": cmd_enqueue,
    "run-once": cmd_run_once,
    "work": cmd_work,
    "tasks": cmd_tasks,
    "log": cmd_log,
    "workflows": cmd_workflows,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1
    if args.command == "workflows" and not args.wf_command:
        parser.error("workflows requires a subcommand: list, show, seed, transition")

    config = load_config(path=args.config, env=args.env)
    configure_logging(level=args.log_level or config.log_level)
    rt = build_runtime(config, db_path=args.db)
    try:
        return COMMANDS[args.command](args, rt)
    except AgentCoreError as e:
        print(f"Error ({e.error_type}): {e}", file=sys.stderr)
        return 1
    finally:
        rt.db.close()


if __name__ == "__main__":
    sys.exit(main())
