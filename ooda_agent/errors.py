"""
Error taxonomy for the OODA agent.

Errors fall in two groups. Budget and transport errors are fatal and are
raised to whoever runs the task. Parsing and tool errors are recoverable:
the task loop turns them into corrective context for the model.
"""

from typing import Optional


class OodaAgentError(Exception):
    """Base class for every error raised by this package."""


# Fatal


class ContextOverflow(OodaAgentError):
    """The pinned preamble alone does not fit in the model's token budget."""

    def __init__(self, pinned_tokens: int, budget: int):
        self.pinned_tokens = pinned_tokens
        self.budget = budget
        super().__init__(
            f"The prompt is too long: pinned preamble uses {pinned_tokens} "
            f"tokens, budget is {budget}"
        )


class ModelTransportError(OodaAgentError):
    """The model provider could not be reached or returned no completion."""


class TaskCancelled(ModelTransportError):
    """The task was cancelled before the model answered."""


# Recoverable: parsing the model's reply


class ActionParseError(OodaAgentError):
    """The model's reply does not contain a usable action."""


class ExtractionFailure(ActionParseError):
    """No well-formed action block could be extracted."""


class ForbiddenField(ActionParseError):
    """An action block carries a field the model is not allowed to emit."""

    def __init__(self, field: str = "output"):
        self.field = field
        super().__init__(
            f"The Action cannot have an `{field}` field. "
            "Only `command` and `input` are allowed."
        )


# Recoverable: invoking a tool


class ToolUseError(OodaAgentError):
    """Base class for errors raised while invoking a tool."""


class ToolNotFound(ToolUseError):
    """No tool with that name can be reached from the current context."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool not found: {name}")


class ToolInvocationFailed(ToolUseError):
    """The tool ran but could not produce a result."""


class InvalidInput(ToolUseError):
    """The input does not match the tool's declared input format."""


class ActionResponseTooLong(ToolUseError):
    """The serialized tool output is larger than the loop accepts."""

    def __init__(self, size: int, limit: int, processing_tool: Optional[str] = None):
        self.size = size
        self.limit = limit
        message = f"The response is too long ({size}B). Max allowed is {limit}B. Ask for a shorter response"
        if processing_tool:
            message += f" or use the {processing_tool} Tool to process the data"
        super().__init__(message + ".")


# Registration


class DuplicateToolError(OodaAgentError, ValueError):
    """A tool name is already registered in that tier."""
