"""
ooda-agent - drives a language model through an OODA loop of tool calls

This package provides:
- Bounded context window with a pinned preamble and a rolling tail
- Three-tier tool registry and dispatcher
- Action parser for fenced YAML/JSON blocks
- Per-task control loop, API server and interactive CLI
"""

from .llm_call import LLMClient
from .orchestration import TaskLoop, TaskOutcome, run_task

__all__ = [
    "LLMClient",
    "TaskLoop",
    "TaskOutcome",
    "run_task",
]

__version__ = "0.1.0"
