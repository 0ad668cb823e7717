"""
Tool Registry and Dispatcher.

The registry holds tool instances in three tier-specific mappings. The
dispatcher resolves a command name against those mappings according to the
context it is called from:

- top level (the task loop): Advanced, then Terminal, then Simple;
- nested (inside an Advanced tool): Terminal, then Simple.

Advanced tools are unreachable from a nested call, which bounds tool
recursion to depth 1.
"""

import logging
from enum import Enum
from typing import Any, Optional

from ..errors import (
    DuplicateToolError,
    ToolInvocationFailed,
    ToolNotFound,
    ToolUseError,
)
from .base import AdvancedTool, TerminalTool, TerminationRecord, Tool, ToolDescriptor, ToolTier

logger = logging.getLogger(__name__)


class DuplicatePolicy(str, Enum):
    """What to do when a name is registered twice in the same tier."""

    OVERWRITE = "overwrite"
    REJECT = "reject"


class InvocationContext(str, Enum):
    """Where a dispatch originates."""

    TOP_LEVEL = "top_level"
    NESTED = "nested"


_RESOLUTION_ORDER: dict[InvocationContext, tuple[ToolTier, ...]] = {
    InvocationContext.TOP_LEVEL: (ToolTier.ADVANCED, ToolTier.TERMINAL, ToolTier.SIMPLE),
    InvocationContext.NESTED: (ToolTier.TERMINAL, ToolTier.SIMPLE),
}


class ToolRegistry:
    """Registry of tool instances, partitioned by tier."""

    def __init__(self, duplicate_policy: DuplicatePolicy = DuplicatePolicy.OVERWRITE):
        self.duplicate_policy = DuplicatePolicy(duplicate_policy)
        self._tiers: dict[ToolTier, dict[str, Tool]] = {tier: {} for tier in ToolTier}

    def __repr__(self) -> str:
        tiers = ", ".join(
            f"{tier.value}={sorted(tools)}" for tier, tools in self._tiers.items()
        )
        return f"ToolRegistry({tiers})"

    def register(self, tool: Tool) -> None:
        """
        Register a tool in the tier it declares.

        Raises:
            DuplicateToolError: If the name is already taken in that tier
                and the policy is REJECT.
        """
        name = tool.description().name
        tier_tools = self._tiers[tool.tier]

        if name in tier_tools:
            if self.duplicate_policy is DuplicatePolicy.REJECT:
                raise DuplicateToolError(
                    f"Tool '{name}' is already registered as a {tool.tier.value} tool"
                )
            logger.debug("Overwriting %s tool '%s'", tool.tier.value, name)

        tier_tools[name] = tool

    def get(self, name: str, tier: ToolTier) -> Optional[Tool]:
        """Get a tool by name within one tier."""
        return self._tiers[tier].get(name)

    def tools(self, tier: ToolTier) -> dict[str, Tool]:
        """Get a copy of the tools registered in a tier."""
        return dict(self._tiers[tier])

    def all_tools(self) -> dict[str, Tool]:
        """
        Get every registered tool by name.

        A name present in several tiers maps to the tool top-level
        dispatch would pick.
        """
        merged: dict[str, Tool] = {}
        for tier in reversed(_RESOLUTION_ORDER[InvocationContext.TOP_LEVEL]):
            merged.update(self._tiers[tier])
        return merged

    def describe(self) -> dict[str, ToolDescriptor]:
        """Merge the descriptors of all tiers into a single mapping."""
        return {name: tool.description() for name, tool in self.all_tools().items()}

    def poll_terminations(self) -> list[TerminationRecord]:
        """Take the pending termination record of every Terminal tool."""
        records = []
        for tool in self._tiers[ToolTier.TERMINAL].values():
            if not isinstance(tool, TerminalTool):
                continue
            record = tool.take_termination()
            if record is not None:
                records.append(record)
        return records


class Dispatcher:
    """Resolves command names to tools and invokes them."""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    def resolve(self, name: str, context: InvocationContext) -> Tool:
        """
        Find the tool a name refers to from a given context.

        Raises:
            ToolNotFound: If no reachable tier holds that name.
        """
        for tier in _RESOLUTION_ORDER[context]:
            tool = self.registry.get(name, tier)
            if tool is not None:
                return tool
        raise ToolNotFound(name)

    def dispatch(
        self,
        name: str,
        input: Any,
        context: InvocationContext = InvocationContext.TOP_LEVEL,
    ) -> Any:
        """
        Invoke a tool by name.

        Raises:
            ToolNotFound: If the name does not resolve in this context.
            ToolInvocationFailed: If the tool failed.
            InvalidInput: If the input does not match the tool's format.
        """
        tool = self.resolve(name, context)
        logger.debug("Dispatching '%s' (%s, %s)", name, tool.tier.value, context.value)

        try:
            if isinstance(tool, AdvancedTool):
                return tool.invoke_nested(NestedDispatcher(self), input)
            return tool.invoke(input)
        except ToolUseError:
            raise
        except Exception as e:
            logger.error("Tool '%s' raised %s: %s", name, type(e).__name__, e)
            raise ToolInvocationFailed(f"{type(e).__name__}: {e}") from e

    def dispatch_restricted(self, name: str, input: Any) -> Any:
        """Invoke a Simple or Terminal tool, as an Advanced tool would."""
        return self.dispatch(name, input, context=InvocationContext.NESTED)

    def poll_terminations(self) -> list[TerminationRecord]:
        return self.registry.poll_terminations()


class NestedDispatcher:
    """
    The dispatcher handle given to Advanced tools.

    Only nested dispatch is exposed, so an Advanced tool cannot reach
    another Advanced tool.
    """

    def __init__(self, dispatcher: Dispatcher):
        self._dispatcher = dispatcher

    def dispatch(self, name: str, input: Any) -> Any:
        return self._dispatcher.dispatch_restricted(name, input)

    def describe(self) -> dict[str, ToolDescriptor]:
        registry = self._dispatcher.registry
        return {
            name: tool.description()
            for tier in _RESOLUTION_ORDER[InvocationContext.NESTED][::-1]
            for name, tool in registry.tools(tier).items()
        }
