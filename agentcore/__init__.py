"""
Agent Core — Core Package

Light imports only: the FSM, the error hierarchy, configuration and the
tool-call grammar. Modules with I/O (executor, sandbox, tools, llm) are
imported from their own modules.

  - agentcore.fsm:        AgentState, AgentEvent, transition, update_context
  - agentcore.errors:     AgentCoreError and the typed rejections
  - agentcore.config:     CoreConfig, load_config
  - agentcore.extractor:  ToolCall, extract_tool_calls
"""

from agentcore.config import CoreConfig, load_config
from agentcore.errors import (
    AdapterError, AgentCoreError, NotFoundError, PermissionDeniedError,
    QueueStoreError, RateLimitError, ResourceLockedError, StepBudgetExceeded,
    ToolExecutionError, TransitionError, ValidationError, WorkflowPausedError,
)
from agentcore.extractor import GRAMMAR_VERSION, ToolCall, extract_tool_calls
from agentcore.fsm import (
    INITIAL_STATE, AgentEvent, AgentState, ExecutionContext, TransitionLogEntry,
    create_log_entry, is_terminal, transition, update_context,
)
