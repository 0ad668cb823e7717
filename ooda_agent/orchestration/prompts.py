"""
Prompt templates for the OODA loop.

Builds the pinned preamble (persona, response format, tool descriptions and
a worked example) and the per-step prompts that restate the task after each
action result or failure.
"""

from dataclasses import dataclass
from typing import Optional

import yaml

from ..tools.base import ToolTier
from ..tools.registry import ToolRegistry
from .context import ContextWindow, Role

SYSTEM_PROMPT = "You are an automated agent acting on behalf of the user. Follow the user's instructions."

PERSONA = """You are a helpful agent that answers questions by using the tools listed below.
You work iteratively in an OODA loop: Observe, Orient, Decide, Act.

After each Action you receive its result, and the loop goes on until you know the answer
to the original question. A task is only complete once the Conclude Tool is used to give the answer.
Template syntax is not supported in your response. Keep it short."""

RESPONSE_FORMAT = """
# Response format

Answer with the sections below. Text in bold is guidance and must not appear in your response.
====================
## Observations:
**What do you know? What is still unknown? Where does the information come from? Keep notes of important facts.**
- ...
## Orientation:
**List the intermediate objectives needed to answer the original question and keep the list up to date.**
- ...
## Decision:
**Pick the next step and say why. How will you tell whether it worked?**
- ...
## The ONLY Action:
**Exactly one tool invocation with a `command` and an `input`, taken from the Tools below. Use the Conclude Tool once you have the final answer. Never write more than one YAML block.**
```yaml
command: <ToolName>
input:
  <... following the `input_format` of the Tool ...>
```
===================="""

TOOLS_HEADER = "\n# Tools you can use for your Action (and no others):\n"

EXAMPLE_QUESTION = "Sort in ascending order: [2, 3, 1, 4, 5]"

PROCESSING_TOOL = "SandboxedPython"

EXAMPLE_ACTION = """## Observations:
- The list to sort is [2, 3, 1, 4, 5].
- It has to be sorted in ascending order.
## Orientation:
- SandboxedPython can sort the list.
- The Conclude Tool ends the task once the sorted list is known.
## Decision:
- Use Python's sorted() builtin.
## The ONLY Action:
```yaml
command: SandboxedPython
input:
  code: |
    numbers = [2, 3, 1, 4, 5]
    print(f"Sorted: {sorted(numbers)}")
```"""

EXAMPLE_RESULT = {"stdout": "Sorted: [1, 2, 3, 4, 5]\n", "stderr": ""}

EXAMPLE_CONCLUSION = """## Observations:
- The Action returned the sorted list: [1, 2, 3, 4, 5].
## Orientation:
- The original question is answered.
## Decision:
- Conclude with the sorted list.
## The ONLY Action:
```yaml
command: Conclude
input:
  original_question: |
    Sort in ascending order: [2, 3, 1, 4, 5]
  conclusion: |
    The list sorted in ascending order is [1, 2, 3, 4, 5].
```"""

# Used when no processing tool is registered: the answer is direct.
EXAMPLE_DIRECT_CONCLUSION = """## Observations:
- The list to sort is [2, 3, 1, 4, 5]. Sorted, it is [1, 2, 3, 4, 5].
## Orientation:
- The original question can be answered without any other tool.
## Decision:
- Conclude with the sorted list.
## The ONLY Action:
```yaml
command: Conclude
input:
  original_question: |
    Sort in ascending order: [2, 3, 1, 4, 5]
  conclusion: |
    The list sorted in ascending order is [1, 2, 3, 4, 5].
```"""


def to_yaml(value) -> str:
    """Serialize a tool output the way it is shown to the model."""
    return yaml.safe_dump(value, sort_keys=False, allow_unicode=True, default_flow_style=False)


@dataclass(frozen=True)
class Task:
    """The question a task loop works on."""

    question: str

    def to_prompt(self) -> str:
        return (
            "# Your turn\n"
            f"Original question: {self.question}\n"
            "Do you have the answer? Use the Conclude Tool to end the task.\n"
            "Observations, Orientation, Decision, The ONLY Action?"
        )

    def action_failed_prompt(self, tool_name: str, error: Exception) -> str:
        return (
            f"# Action {tool_name} failed with:\n"
            f"{type(error).__name__}: {error}\n"
            "What was wrong in your previous response?\n"
            f"{self.to_prompt()}"
        )

    def invalid_action_prompt(self, error: Exception) -> str:
        return (
            "# Your previous response had no usable Action:\n"
            f"{type(error).__name__}: {error}\n"
            "What was wrong in your previous response?\n"
            f"{self.to_prompt()}"
        )

    def action_success_prompt(self, tool_name: str, result: str) -> str:
        return (
            f"# Action {tool_name} result:\n"
            f"```yaml\n{result}```\n"
            f"{self.to_prompt()}"
        )

    def __str__(self) -> str:
        return self.to_prompt()


def render_tool_descriptions(registry: ToolRegistry) -> str:
    """Render every tool descriptor as a YAML list sorted by tool name."""
    descriptors = sorted(registry.describe().values(), key=lambda d: d.name)
    return TOOLS_HEADER + yaml.safe_dump(
        [d.to_dict() for d in descriptors],
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )


def build_warm_up_prompt(registry: ToolRegistry) -> str:
    return PERSONA + "\n" + RESPONSE_FORMAT + "\n" + render_tool_descriptions(registry)


def processing_tool(registry: ToolRegistry) -> Optional[str]:
    """Name of the tool suggested for post-processing data, if registered."""
    if registry.get(PROCESSING_TOOL, ToolTier.ADVANCED) is None:
        return None
    return PROCESSING_TOOL


def build_preamble(registry: ToolRegistry) -> list[tuple[Role, str]]:
    """
    Build the pinned preamble.

    Persona and format, an acknowledgement, then one complete worked task.
    The worked task only calls tools the registry actually holds.
    """
    example = Task(EXAMPLE_QUESTION)
    preamble = [
        (Role.SYSTEM, SYSTEM_PROMPT),
        (Role.USER, build_warm_up_prompt(registry).strip()),
        (Role.ASSISTANT, "Understood."),
        (Role.USER, example.to_prompt()),
    ]

    if processing_tool(registry) is None:
        preamble.append((Role.ASSISTANT, EXAMPLE_DIRECT_CONCLUSION))
        return preamble

    example_result = example.action_success_prompt(PROCESSING_TOOL, to_yaml(EXAMPLE_RESULT))
    preamble.extend(
        [
            (Role.ASSISTANT, EXAMPLE_ACTION),
            (Role.USER, example_result.strip()),
            (Role.ASSISTANT, EXAMPLE_CONCLUSION),
        ]
    )
    return preamble


def seed_context(window: ContextWindow, registry: ToolRegistry) -> None:
    """Pin the preamble into a fresh context window."""
    window.append_pinned(build_preamble(registry))
