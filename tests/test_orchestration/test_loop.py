"""Tests for the task loop."""

from typing import Any

import pytest
from pydantic import BaseModel, Field

from ooda_agent.errors import ContextOverflow, ModelTransportError, TaskCancelled
from ooda_agent.models import AppConfig
from ooda_agent.orchestration.context import Role
from ooda_agent.orchestration.loop import (
    JobUpdate,
    LoopState,
    OutcomeStatus,
    StepRecord,
    TaskLoop,
    UpdateKind,
)
from ooda_agent.tools import ConcludeTool, Tool, ToolRegistry


class BigInput(BaseModel):
    size: int = Field(default=5000, description="Number of characters to return.")


class BigOutput(BaseModel):
    data: str = Field(description="A long string.")


class BigTool(Tool):
    """Simple tool returning an oversized payload."""

    name = "Big"
    purpose = "Return a lot of data."
    usage_hint = "Don't."
    input_model = BigInput
    output_model = BigOutput

    def invoke(self, input: Any) -> dict:
        data = self.parse_input(input)
        return self.dump_output(BigOutput(data="x" * data.size))


@pytest.fixture
def minimal_registry(echo_tool):
    """Registry = {Simple Echo, Terminal Conclude}."""
    registry = ToolRegistry()
    registry.register(echo_tool)
    registry.register(ConcludeTool())
    return registry


class TestStepRecord:
    """Tests for StepRecord dataclass."""

    def test_default_values(self):
        step = StepRecord(step_number=1)
        assert step.step_number == 1
        assert step.state is LoopState.QUERYING
        assert step.reply is None
        assert step.command is None
        assert step.observation is None
        assert step.error is None


class TestScenarios:
    """End-to-end scenarios with a scripted model."""

    def test_conclude_on_first_step(self, make_loop, minimal_registry, action):
        """Scenario A: a single Conclude action ends the task on step 1."""
        loop = make_loop(
            [action("Conclude", {"conclusion": "42"})],
            registry=minimal_registry,
        )

        outcome = loop.run()

        assert outcome.status is OutcomeStatus.CONCLUDED
        assert len(outcome.terminations) == 1
        assert outcome.terminations[0].conclusion == "42"
        assert outcome.conclusion == "42"
        assert len(outcome.steps) == 1
        assert loop.state is LoopState.TERMINAL

    def test_missing_action_is_corrected(self, make_loop, action):
        """Scenario B: a reply without a block gets a corrective message."""
        loop = make_loop(
            [
                "The answer is obviously 4.",
                action("Conclude", {"conclusion": "4"}),
            ]
        )

        assert loop.step() is None
        assert loop.state is LoopState.CONTINUING
        corrective = loop.window.rolling[-1]
        assert corrective.role is Role.USER
        assert "ExtractionFailure" in corrective.content
        assert "Original question: What is 2+2?" in corrective.content

        terminations = loop.step()
        assert terminations[0].conclusion == "4"
        assert len(loop.steps) == 2

    def test_oversized_output_replaced(self, make_loop, registry, action):
        """Scenario C: a 5000-character result is not inserted verbatim."""
        registry.register(BigTool())
        loop = make_loop(
            [action("Big", {"size": 5000})],
            registry=registry,
            max_response_bytes=2048,
        )

        loop.step()

        last = loop.window.rolling[-1]
        assert last.role is Role.USER
        assert "ActionResponseTooLong" in last.content
        assert "SandboxedPython" in last.content
        assert "x" * 100 not in last.content
        assert loop.steps[0].observation is None
        assert "2048" in loop.steps[0].error

    def test_oversized_output_hint_follows_registry(self, make_loop, minimal_registry, action):
        """Without SandboxedPython the corrective message does not suggest it."""
        minimal_registry.register(BigTool())
        loop = make_loop([action("Big", {"size": 5000})], registry=minimal_registry)

        loop.step()

        last = loop.window.rolling[-1].content
        assert "ActionResponseTooLong" in last
        assert "SandboxedPython" not in last
        assert "Ask for a shorter response." in last
        assert all("SandboxedPython" not in m.content for m in loop.window.pinned)

    def test_pinned_overflow_is_fatal(self, make_loop, make_accountant, action):
        """Scenario D: the preamble alone exceeds the budget."""
        loop = make_loop(
            [action("Conclude", {"conclusion": "never"})],
            accountant=make_accountant(100),
            reserved_completion_tokens=20,
        )

        with pytest.raises(ContextOverflow):
            loop.run()

        assert loop.state is LoopState.FATAL
        assert loop.window.rolling == ()
        assert loop._client.calls == []


class TestStep:
    """Tests for individual step handling."""

    def test_success_message_restates_task(self, make_loop, action):
        loop = make_loop([action("Echo", {"text": "hello"})])

        assert loop.step() is None

        last = loop.window.rolling[-1]
        assert last.content.startswith("# Action Echo result:")
        assert "text: hello" in last.content
        assert "Original question: What is 2+2?" in last.content
        assert loop.steps[0].observation == "text: hello\n"

    def test_seeding(self, make_loop, action):
        loop = make_loop([action("Echo", {"text": "hello"})])
        loop.step()

        assert len(loop.window.pinned) == 7
        assert loop.window.pinned[0].role is Role.SYSTEM
        first_query = loop._client.calls[0]
        assert first_query[-1]["role"] == "user"
        assert first_query[-1]["content"].startswith("# Your turn")

    def test_unknown_tool(self, make_loop, action):
        loop = make_loop([action("Teleport", {})])
        loop.step()

        last = loop.window.rolling[-1]
        assert last.content.startswith("# Action Teleport failed with:")
        assert "Tool not found: Teleport" in last.content
        assert loop.steps[0].command == "Teleport"

    def test_invalid_input(self, make_loop, action):
        loop = make_loop([action("Echo", {"wrong": "field"})])
        loop.step()
        assert "InvalidInput" in loop.window.rolling[-1].content

    def test_forbidden_output_field(self, make_loop):
        reply = "```yaml\ncommand: Echo\ninput:\n  text: a\noutput:\n  text: a\n```"
        loop = make_loop([reply])
        loop.step()
        assert "ForbiddenField" in loop.window.rolling[-1].content
        assert loop.steps[0].command is None

    def test_calculate_then_conclude(self, make_loop, action):
        loop = make_loop(
            [
                action("Calculate", {"expression": "2+2"}),
                action("Conclude", {"original_question": "What is 2+2?", "conclusion": "4"}),
            ]
        )

        outcome = loop.run()

        assert outcome.status is OutcomeStatus.CONCLUDED
        assert outcome.terminations[0].to_dict() == {
            "original_question": "What is 2+2?",
            "conclusion": "4",
        }
        assert "result: 4" in loop.steps[0].observation

    def test_conclude_from_sandboxed_python(self, make_loop, action):
        """A nested Conclude call ends the task after the Advanced tool returns."""
        code = 'tools.conclude(conclusion="done")\nprint("bye")'
        loop = make_loop([action("SandboxedPython", {"code": code})])

        terminations = loop.step()

        assert terminations is not None
        assert terminations[0].conclusion == "done"

    def test_step_after_end_raises(self, make_loop, action):
        loop = make_loop([action("Conclude", {"conclusion": "x"})])
        loop.run()
        with pytest.raises(RuntimeError):
            loop.step()


class TestOutcomes:
    """Tests for incomplete and fatal outcomes."""

    def test_max_steps_exhausted(self, make_loop, action):
        loop = make_loop(
            [action("Echo", {"text": str(i)}) for i in range(3)],
            max_steps=3,
        )

        outcome = loop.run()

        assert outcome.status is OutcomeStatus.INCOMPLETE
        assert outcome.terminations == []
        assert outcome.conclusion is None
        assert len(outcome.steps) == 3

    def test_transport_error_is_fatal(self, make_loop):
        loop = make_loop([ModelTransportError("connection refused")])

        with pytest.raises(ModelTransportError):
            loop.run()

        assert loop.state is LoopState.FATAL
        assert loop.steps[0].state is LoopState.FATAL
        assert "connection refused" in loop.steps[0].error

    def test_cancel_before_query(self, make_loop, action):
        loop = make_loop([action("Conclude", {"conclusion": "x"})])
        loop.cancel()

        with pytest.raises(TaskCancelled):
            loop.run()

        assert loop.cancelled
        assert loop._client.calls == []

    def test_cancel_is_transport_error(self):
        assert issubclass(TaskCancelled, ModelTransportError)

    def test_invalid_max_steps(self, scripted_model, registry):
        with pytest.raises(ValueError):
            TaskLoop("q", scripted_model([]), registry, max_steps=0)


class TestEventsAndTrace:
    """Tests for observer events, usage and traces."""

    def test_observer_receives_updates(self, make_loop, action):
        updates: list[JobUpdate] = []
        loop = make_loop(
            [
                "no action here",
                action("Conclude", {"conclusion": "42"}),
            ],
            observer=updates.append,
        )

        loop.run()

        kinds = [u.kind for u in updates]
        assert kinds == [
            UpdateKind.MODEL,
            UpdateKind.ERROR,
            UpdateKind.MODEL,
            UpdateKind.ACTION,
            UpdateKind.CONCLUSION,
        ]
        assert updates[-1].text == "42"
        assert loop.events == updates

    def test_usage_accumulated(self, make_loop, action):
        loop = make_loop(
            [action("Echo", {"text": "a"}), action("Conclude", {"conclusion": "a"})]
        )
        outcome = loop.run()
        assert outcome.usage.total_tokens == 30
        assert outcome.usage.prompt_tokens == 20

    def test_get_trace(self, make_loop, action):
        loop = make_loop(
            [action("Echo", {"text": "a"}), action("Conclude", {"conclusion": "a"})]
        )
        loop.run()

        trace = loop.get_trace()
        assert [s["step"] for s in trace] == [1, 2]
        assert trace[0]["command"] == "Echo"
        assert trace[0]["input"] == {"text": "a"}
        assert trace[0]["state"] == "continuing"
        assert trace[1]["state"] == "terminal"


class TestFromConfig:
    """Tests for building loops from the application config."""

    def test_registry_built_per_loop(self, scripted_model, accountant, action):
        config = AppConfig()
        config.tools.enabled = ["Calculate", "Conclude"]

        loop = TaskLoop.from_config(
            "What is 3*3?",
            config,
            model_client=scripted_model([action("Conclude", {"conclusion": "9"})]),
            accountant=accountant,
            max_steps=4,
        )

        assert loop.max_steps == 4
        assert sorted(loop.registry.all_tools()) == ["Calculate", "Conclude"]

        outcome = loop.run()
        # Conclude falls back to the task's question
        assert outcome.terminations[0].original_question == "What is 3*3?"

    def test_loops_do_not_share_latches(self, scripted_model, accountant):
        config = AppConfig()
        first = TaskLoop.from_config("a", config, model_client=scripted_model([]), accountant=accountant)
        second = TaskLoop.from_config("b", config, model_client=scripted_model([]), accountant=accountant)

        first_conclude = first.registry.all_tools()["Conclude"]
        second_conclude = second.registry.all_tools()["Conclude"]
        assert first_conclude is not second_conclude

        first_conclude.invoke({"conclusion": "only for a"})
        assert second.registry.poll_terminations() == []
        assert len(first.registry.poll_terminations()) == 1
