"""
Conclude Tool - ends a task with a final answer.
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from .base import TerminalTool, TerminationRecord

logger = logging.getLogger(__name__)


class ConcludeInput(BaseModel):
    original_question: str = Field(
        default="",
        description="The original question that was asked to the user.",
    )
    conclusion: str = Field(
        description="The final textual answer for this task. No string interpolation supported, only plain text. MANDATORY",
    )


class ConcludeOutput(BaseModel):
    received: bool = Field(description="Whether the conclusion was accepted.")


class ConcludeTool(TerminalTool):
    """Terminal tool latching the task's conclusion."""

    name = "Conclude"
    purpose = "A tool to terminate a task with a conclusion."
    usage_hint = "Use this to terminate a task when you have the final answer to the original question."
    input_model = ConcludeInput
    output_model = ConcludeOutput

    def __init__(self, default_question: Optional[str] = None):
        super().__init__()
        self.default_question = default_question or ""

    def invoke(self, input: Any) -> dict:
        data = self.parse_input(input)
        record = TerminationRecord(
            original_question=data.original_question.strip() or self.default_question,
            conclusion=data.conclusion.strip(),
        )
        logger.debug("Conclusion latched: %s", record.conclusion[:200])
        self.latch(record)
        return self.dump_output(ConcludeOutput(received=True))
