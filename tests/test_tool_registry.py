"""
Tests for the Tool Registry and Dispatcher.

Tests cover registration, tier precedence, the depth-1 recursion limit and
termination polling.
"""

from typing import Any

import pytest

from ooda_agent.errors import (
    DuplicateToolError,
    ToolInvocationFailed,
    ToolNotFound,
)
from ooda_agent.models import ToolsConfig
from ooda_agent.tools import (
    AdvancedTool,
    ConcludeTool,
    Dispatcher,
    DuplicatePolicy,
    InvocationContext,
    TerminalTool,
    TerminationRecord,
    Tool,
    ToolRegistry,
    ToolTier,
    build_registry,
)


class NamedSimple(Tool):
    name = "Shared"
    purpose = "simple"

    def invoke(self, input: Any) -> str:
        return "simple"


class NamedTerminal(TerminalTool):
    name = "Shared"
    purpose = "terminal"

    def invoke(self, input: Any) -> str:
        self.latch(TerminationRecord("q", "terminal"))
        return "terminal"


class NamedAdvanced(AdvancedTool):
    name = "Shared"
    purpose = "advanced"

    def invoke_nested(self, dispatcher, input: Any) -> str:
        return "advanced"


class Caller(AdvancedTool):
    """Advanced tool calling whatever name it is given."""

    name = "Caller"
    purpose = "calls another tool"

    def invoke_nested(self, dispatcher, input: Any) -> Any:
        return dispatcher.dispatch(input["target"], input.get("input", {}))


class Broken(Tool):
    name = "Broken"
    purpose = "always fails"

    def invoke(self, input: Any) -> Any:
        raise RuntimeError("boom")


@pytest.fixture
def shared_registry():
    registry = ToolRegistry()
    registry.register(NamedSimple())
    registry.register(NamedTerminal())
    registry.register(NamedAdvanced())
    registry.register(Caller())
    return registry


class TestToolRegistry:
    """Tests for the ToolRegistry class."""

    def test_register_by_tier(self, shared_registry):
        assert shared_registry.get("Shared", ToolTier.SIMPLE).purpose == "simple"
        assert shared_registry.get("Shared", ToolTier.TERMINAL).purpose == "terminal"
        assert shared_registry.get("Shared", ToolTier.ADVANCED).purpose == "advanced"
        assert shared_registry.get("Missing", ToolTier.SIMPLE) is None

    def test_overwrite_policy_replaces(self):
        registry = ToolRegistry(DuplicatePolicy.OVERWRITE)
        first, second = NamedSimple(), NamedSimple()
        registry.register(first)
        registry.register(second)
        assert registry.get("Shared", ToolTier.SIMPLE) is second

    def test_reject_policy_raises(self):
        registry = ToolRegistry(DuplicatePolicy.REJECT)
        registry.register(NamedSimple())
        with pytest.raises(DuplicateToolError):
            registry.register(NamedSimple())

    def test_reject_policy_allows_same_name_in_other_tier(self):
        registry = ToolRegistry(DuplicatePolicy.REJECT)
        registry.register(NamedSimple())
        registry.register(NamedTerminal())
        assert registry.get("Shared", ToolTier.TERMINAL) is not None

    def test_policy_from_string(self):
        assert ToolRegistry("reject").duplicate_policy is DuplicatePolicy.REJECT

    def test_describe_merges_tiers(self, shared_registry):
        descriptors = shared_registry.describe()
        assert sorted(descriptors) == ["Caller", "Shared"]
        # Advanced wins, as it would for top-level dispatch
        assert descriptors["Shared"].purpose == "advanced"

    def test_poll_terminations_clears_latch(self, shared_registry):
        shared_registry.get("Shared", ToolTier.TERMINAL).invoke({})
        records = shared_registry.poll_terminations()
        assert records == [TerminationRecord("q", "terminal")]
        assert shared_registry.poll_terminations() == []


class TestDispatcher:
    """Tests for name resolution and invocation."""

    def test_top_level_prefers_advanced(self, shared_registry):
        assert Dispatcher(shared_registry).dispatch("Shared", {}) == "advanced"

    def test_restricted_prefers_terminal(self, shared_registry):
        assert Dispatcher(shared_registry).dispatch_restricted("Shared", {}) == "terminal"

    def test_restricted_falls_back_to_simple(self):
        registry = ToolRegistry()
        registry.register(NamedSimple())
        registry.register(NamedAdvanced())
        assert Dispatcher(registry).dispatch_restricted("Shared", {}) == "simple"

    def test_top_level_order_without_advanced(self):
        registry = ToolRegistry()
        registry.register(NamedSimple())
        registry.register(NamedTerminal())
        assert Dispatcher(registry).dispatch("Shared", {}) == "terminal"

    def test_unknown_tool(self, shared_registry):
        with pytest.raises(ToolNotFound) as exc_info:
            Dispatcher(shared_registry).dispatch("Nope", {})
        assert exc_info.value.name == "Nope"

    def test_restricted_never_resolves_advanced(self, shared_registry):
        with pytest.raises(ToolNotFound):
            Dispatcher(shared_registry).dispatch_restricted("Caller", {})

    def test_resolve_by_context(self, shared_registry):
        dispatcher = Dispatcher(shared_registry)
        assert dispatcher.resolve("Shared", InvocationContext.TOP_LEVEL).tier is ToolTier.ADVANCED
        assert dispatcher.resolve("Shared", InvocationContext.NESTED).tier is ToolTier.TERMINAL

    def test_advanced_reaches_terminal_and_simple(self, shared_registry):
        dispatcher = Dispatcher(shared_registry)
        assert dispatcher.dispatch("Caller", {"target": "Shared"}) == "terminal"

    def test_advanced_cannot_reach_advanced(self, shared_registry):
        """Recursion is bounded to depth 1."""
        dispatcher = Dispatcher(shared_registry)
        with pytest.raises(ToolNotFound):
            dispatcher.dispatch("Caller", {"target": "Caller"})

    def test_unexpected_exception_wrapped(self):
        registry = ToolRegistry()
        registry.register(Broken())
        with pytest.raises(ToolInvocationFailed) as exc_info:
            Dispatcher(registry).dispatch("Broken", {})
        assert "RuntimeError: boom" in str(exc_info.value)

    def test_nested_terminal_latch_polled(self, shared_registry):
        dispatcher = Dispatcher(shared_registry)
        dispatcher.dispatch("Caller", {"target": "Shared"})
        assert len(dispatcher.poll_terminations()) == 1


class TestBuildRegistry:
    """Tests for registry construction from config."""

    def test_default_tools(self):
        registry = build_registry()
        assert sorted(registry.all_tools()) == [
            "Calculate",
            "Conclude",
            "SandboxedPython",
            "WebSearch",
        ]
        assert registry.get("SandboxedPython", ToolTier.ADVANCED) is not None
        assert registry.get("Conclude", ToolTier.TERMINAL) is not None

    def test_enabled_subset(self):
        registry = build_registry(ToolsConfig(enabled=["Calculate"]))
        assert list(registry.all_tools()) == ["Calculate"]

    def test_unknown_tool_name(self):
        with pytest.raises(ValueError):
            build_registry(ToolsConfig(enabled=["Teleport"]))

    def test_search_settings_applied(self):
        config = ToolsConfig()
        config.searxng.url = "http://searx.local/search"
        config.searxng.timeout = 5
        search = build_registry(config).get("WebSearch", ToolTier.SIMPLE)
        assert search.url == "http://searx.local/search"
        assert search.timeout == 5

    def test_fresh_instances(self):
        first = build_registry().get("Conclude", ToolTier.TERMINAL)
        second = build_registry().get("Conclude", ToolTier.TERMINAL)
        assert first is not second
        assert isinstance(first, ConcludeTool)

    def test_duplicate_policy_from_config(self):
        registry = build_registry(ToolsConfig(duplicate_policy="reject"))
        assert registry.duplicate_policy is DuplicatePolicy.REJECT
