"""
Agent Core — Orchestration

Task queue, worker pool and the data-driven workflow engine that sit
above the per-task agent executor.

Usage:
    from orchestration.tasks import TaskQueue, SQLiteTaskStore
    from orchestration.workflow import WorkflowEngine
"""

from orchestration.tasks import (
    InMemoryTaskStore, SQLiteTaskStore, Task, TaskQueue, TaskStatus, TaskStore,
)
from orchestration.workflow import WorkflowEngine, calculate_next_state
from orchestration.workflow_store import (
    InMemoryWorkflowStore, SQLiteWorkflowStore, WorkflowDefinition, WorkflowStore,
    load_definitions,
)
