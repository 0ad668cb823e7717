"""
Pytest configuration and fixtures for ooda-agent tests.

None of the fixtures touch the network: token counting uses a word-count
accountant instead of tiktoken, and the model is a scripted stand-in.
"""

from typing import Any, Optional

import pytest
import yaml
from pydantic import BaseModel, Field

from ooda_agent.llm_call import ModelResponse, Usage
from ooda_agent.orchestration import TaskLoop
from ooda_agent.tools import (
    CalculateTool,
    ConcludeTool,
    SandboxedPythonTool,
    Tool,
    ToolRegistry,
)


class FakeAccountant:
    """Counts one token per whitespace-separated word."""

    def __init__(self, max_context_size: int = 100_000):
        self._max_context_size = max_context_size

    def count_tokens(self, model: str, messages) -> int:
        return sum(len(str(m["content"]).split()) for m in messages)

    def max_context_size(self, model: str) -> int:
        return self._max_context_size


class ScriptedModel:
    """Model stand-in replaying canned replies; an exception in the script is raised."""

    model = "test-model"

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls: list[list[dict]] = []
        self.closed = False

    def complete(
        self,
        messages: list[dict],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ModelResponse:
        self.calls.append(messages)
        if not self.replies:
            raise AssertionError("ScriptedModel ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return ModelResponse(
            content=reply,
            usage=Usage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        )

    def close(self) -> None:
        self.closed = True


class EchoInput(BaseModel):
    text: str = Field(description="Text to echo back.")


class EchoOutput(BaseModel):
    text: str = Field(description="The same text.")


class EchoTool(Tool):
    """Simple tool returning its input."""

    name = "Echo"
    purpose = "Echo the input text back."
    usage_hint = "Use this to test the loop."
    input_model = EchoInput
    output_model = EchoOutput

    def invoke(self, input: Any) -> dict:
        data = self.parse_input(input)
        return self.dump_output(EchoOutput(text=data.text))


def render_action(command: str, input: Any) -> str:
    """Build a model reply ending with a yaml action block."""
    block = yaml.safe_dump({"command": command, "input": input}, sort_keys=False)
    return (
        "## Observations:\n- ...\n## Orientation:\n- ...\n## Decision:\n- ...\n"
        f"## The ONLY Action:\n```yaml\n{block}```"
    )


@pytest.fixture
def accountant():
    """Word-count accountant with a large context."""
    return FakeAccountant()


@pytest.fixture
def make_accountant():
    """Factory for word-count accountants with a given context size."""
    return FakeAccountant


@pytest.fixture
def scripted_model():
    """Factory for scripted models."""
    return ScriptedModel


@pytest.fixture
def echo_tool():
    return EchoTool()


@pytest.fixture
def action():
    """Factory for model replies carrying one action."""
    return render_action


@pytest.fixture
def registry():
    """Registry with Echo, Calculate, SandboxedPython and Conclude."""
    registry = ToolRegistry()
    registry.register(EchoTool())
    registry.register(CalculateTool())
    registry.register(SandboxedPythonTool())
    registry.register(ConcludeTool())
    return registry


@pytest.fixture
def make_loop(registry, accountant):
    """Factory for task loops driven by a scripted model."""

    def _make_loop(replies, question: str = "What is 2+2?", **kwargs) -> TaskLoop:
        kwargs.setdefault("registry", registry)
        kwargs.setdefault("accountant", accountant)
        model = ScriptedModel(replies)
        return TaskLoop(question=question, model_client=model, **kwargs)

    return _make_loop
