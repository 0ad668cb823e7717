"""
Tools available to the OODA agent.

Tiers:
- Simple: Calculate, WebSearch
- Advanced: SandboxedPython
- Terminal: Conclude
"""

import logging
from typing import Optional

from ..models import ToolsConfig
from .base import (
    AdvancedTool,
    TerminalTool,
    TerminationRecord,
    Tool,
    ToolDescriptor,
    ToolTier,
)
from .conclude import ConcludeTool
from .math_solver import CalculateTool
from .python import SandboxedPythonTool
from .registry import (
    Dispatcher,
    DuplicatePolicy,
    InvocationContext,
    NestedDispatcher,
    ToolRegistry,
)
from .search import WebSearchTool

logger = logging.getLogger(__name__)

__all__ = [
    "AdvancedTool",
    "CalculateTool",
    "ConcludeTool",
    "Dispatcher",
    "DuplicatePolicy",
    "InvocationContext",
    "NestedDispatcher",
    "SandboxedPythonTool",
    "TerminalTool",
    "TerminationRecord",
    "Tool",
    "ToolDescriptor",
    "ToolRegistry",
    "ToolTier",
    "WebSearchTool",
    "build_registry",
]


def build_registry(config: Optional[ToolsConfig] = None, question: Optional[str] = None) -> ToolRegistry:
    """
    Build a registry holding fresh instances of the enabled tools.

    Each task gets its own registry, so Terminal tool state is never
    shared between tasks.

    Args:
        config: Tools configuration. Defaults are used when None.
        question: Question the Conclude tool falls back to when the model
            omits ``original_question``.

    Raises:
        ValueError: If an enabled tool name is unknown.
    """
    config = config or ToolsConfig()
    factories = {
        "Calculate": CalculateTool,
        "WebSearch": lambda: WebSearchTool(
            url=config.searxng.url, timeout=config.searxng.timeout
        ),
        "SandboxedPython": SandboxedPythonTool,
        "Conclude": lambda: ConcludeTool(default_question=question),
    }

    registry = ToolRegistry(DuplicatePolicy(config.duplicate_policy))
    for name in config.enabled:
        factory = factories.get(name)
        if factory is None:
            raise ValueError(f"Unknown tool: {name} (available: {sorted(factories)})")
        registry.register(factory())

    logger.debug("Registry built: %r", registry)
    return registry
