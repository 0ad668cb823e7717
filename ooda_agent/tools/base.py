"""
Tool capability interface.

A tool belongs to exactly one of three tiers:

- ``SIMPLE`` tools take an input and return an output.
- ``ADVANCED`` tools additionally receive a nested dispatcher and may call
  Simple or Terminal tools while they run, never another Advanced tool.
- ``TERMINAL`` tools can end a task: they latch a termination record that
  the loop collects after each successful dispatch.

Inputs and outputs are plain structured values (what YAML decodes to).
Each tool declares their shape with pydantic models, from which the
descriptor shown to the model is derived.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Optional

from pydantic import BaseModel, ValidationError

from ..errors import InvalidInput

if TYPE_CHECKING:
    from .registry import NestedDispatcher


class ToolTier(str, Enum):
    """Capability tier of a tool."""

    SIMPLE = "simple"
    ADVANCED = "advanced"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class ToolDescriptor:
    """What the model is told about a tool."""

    name: str
    purpose: str
    usage_hint: str
    input_format: tuple[tuple[str, str], ...] = ()
    output_format: tuple[tuple[str, str], ...] = ()

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "purpose": self.purpose,
            "usage_hint": self.usage_hint,
            "input_format": [
                {"key": key, "description": desc} for key, desc in self.input_format
            ],
            "output_format": [
                {"key": key, "description": desc} for key, desc in self.output_format
            ],
        }


@dataclass(frozen=True)
class TerminationRecord:
    """The final answer of a task."""

    original_question: str
    conclusion: str

    def to_dict(self) -> dict:
        return {
            "original_question": self.original_question,
            "conclusion": self.conclusion,
        }


def describe_model(model: Optional[type[BaseModel]]) -> tuple[tuple[str, str], ...]:
    """List ``(field, description)`` pairs of a pydantic model, in declaration order."""
    if model is None:
        return ()
    return tuple(
        (name, field.description or "") for name, field in model.model_fields.items()
    )


class Tool:
    """
    Base class for all tools.

    Subclasses set ``name``, ``purpose``, ``usage_hint`` and the
    ``input_model`` / ``output_model`` pydantic classes, and implement
    ``invoke``.
    """

    tier: ClassVar[ToolTier] = ToolTier.SIMPLE

    name: ClassVar[str] = ""
    purpose: ClassVar[str] = ""
    usage_hint: ClassVar[str] = ""
    input_model: ClassVar[Optional[type[BaseModel]]] = None
    output_model: ClassVar[Optional[type[BaseModel]]] = None

    def description(self) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name,
            purpose=self.purpose,
            usage_hint=self.usage_hint,
            input_format=describe_model(self.input_model),
            output_format=describe_model(self.output_model),
        )

    def parse_input(self, input: Any) -> BaseModel:
        """
        Validate a raw input against ``input_model``.

        Raises:
            InvalidInput: If the input does not match the declared format.
        """
        if self.input_model is None:
            raise InvalidInput(f"{self.name} does not declare an input format")
        if input is None:
            input = {}
        try:
            return self.input_model.model_validate(input)
        except ValidationError as e:
            raise InvalidInput(f"Invalid input for {self.name}: {e}") from e

    @staticmethod
    def dump_output(output: BaseModel) -> dict:
        return output.model_dump(mode="json")

    def invoke(self, input: Any) -> Any:
        raise NotImplementedError


class AdvancedTool(Tool):
    """A tool that may call Simple and Terminal tools while it runs."""

    tier = ToolTier.ADVANCED

    def invoke_nested(self, dispatcher: "NestedDispatcher", input: Any) -> Any:
        raise NotImplementedError

    def invoke(self, input: Any) -> Any:
        raise TypeError(f"{self.name} must be invoked through a dispatcher")


class TerminalTool(Tool):
    """
    A tool that can end the task.

    Invoking it latches a single termination record, which
    ``take_termination`` returns once and clears.
    """

    tier = ToolTier.TERMINAL

    def __init__(self) -> None:
        self._pending: Optional[TerminationRecord] = None

    def latch(self, record: TerminationRecord) -> None:
        self._pending = record

    def take_termination(self) -> Optional[TerminationRecord]:
        record, self._pending = self._pending, None
        return record
