"""
Pydantic schemas for the API.
"""

import uuid
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class TaskRequest(BaseModel):
    """Request body for POST /v1/tasks."""

    task: str = Field(..., min_length=1, description="The question or task to work on")
    max_steps: Optional[int] = Field(
        default=None,
        ge=1,
        le=100,
        description="Maximum number of loop steps (config default if omitted)",
    )


class Conclusion(BaseModel):
    """A termination record produced by a Terminal tool."""

    original_question: str
    conclusion: str


class TraceStep(BaseModel):
    """A single step in the task trace."""

    step: int = Field(..., description="Step number in the task")
    state: str = Field(..., description="Loop state the step ended in")
    reply: Optional[str] = Field(default=None, description="The model's raw reply")
    command: Optional[str] = Field(default=None, description="Tool name that was invoked")
    input: Any = Field(default=None, description="Input passed to the tool")
    observation: Optional[str] = Field(default=None, description="Result from the tool")
    error: Optional[str] = Field(default=None, description="Parse or tool error, if any")


class JobEvent(BaseModel):
    """An update emitted while the task ran."""

    kind: Literal["model", "action", "error", "conclusion"]
    text: str


class UsageInfo(BaseModel):
    """Token usage information."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class TaskResponse(BaseModel):
    """Response body for POST /v1/tasks."""

    id: str = Field(default_factory=lambda: f"task-{uuid.uuid4().hex[:8]}")
    status: Literal["concluded", "incomplete"]
    conclusions: list[Conclusion] = Field(default_factory=list)
    steps: list[TraceStep] = Field(default_factory=list)
    events: list[JobEvent] = Field(default_factory=list)
    usage: UsageInfo = Field(default_factory=UsageInfo)


class FieldInfo(BaseModel):
    """One field of a tool's input or output format."""

    key: str
    description: str


class ToolInfo(BaseModel):
    """Description of a registered tool."""

    name: str
    tier: Literal["simple", "advanced", "terminal"]
    purpose: str
    usage_hint: str
    input_format: list[FieldInfo] = Field(default_factory=list)
    output_format: list[FieldInfo] = Field(default_factory=list)


class ToolListResponse(BaseModel):
    """Response body for GET /v1/tools."""

    tools: list[ToolInfo]


class HealthResponse(BaseModel):
    """Response body for /health endpoint."""

    status: Literal["healthy", "unhealthy"]
    version: str
    model: str
