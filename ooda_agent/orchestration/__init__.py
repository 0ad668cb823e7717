"""
OODA orchestration: bounded context, action parsing and the task loop.
"""

from .context import ContextWindow, EvictionPolicy, Message, Role
from .parser import ActionParser, Invocation
from .prompts import Task, render_tool_descriptions, seed_context
from .loop import (
    JobUpdate,
    LoopState,
    OutcomeStatus,
    StepRecord,
    TaskLoop,
    TaskOutcome,
    UpdateKind,
    run_task,
)

__all__ = [
    "ActionParser",
    "ContextWindow",
    "EvictionPolicy",
    "Invocation",
    "JobUpdate",
    "LoopState",
    "Message",
    "OutcomeStatus",
    "Role",
    "StepRecord",
    "Task",
    "TaskLoop",
    "TaskOutcome",
    "UpdateKind",
    "render_tool_descriptions",
    "run_task",
    "seed_context",
]
