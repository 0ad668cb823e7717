"""
Task endpoints.

Runs a question through the OODA loop and returns its conclusion, the step
trace and the events emitted along the way.
"""

import logging
import uuid

from fastapi import APIRouter, HTTPException

from ..schemas import (
    Conclusion,
    FieldInfo,
    JobEvent,
    TaskRequest,
    TaskResponse,
    ToolInfo,
    ToolListResponse,
    TraceStep,
    UsageInfo,
)
from ...config import get_config
from ...errors import ContextOverflow, ModelTransportError
from ...llm_call import LLMClient
from ...orchestration import TaskLoop
from ...tokens import TiktokenAccountant
from ...tools import build_registry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/v1/tools",
    response_model=ToolListResponse,
    summary="List tools",
    description="List the tools available to the agent, sorted by name.",
)
def list_tools() -> ToolListResponse:
    """Return the descriptors of the configured tools."""
    registry = build_registry(get_config().tools)
    tools = []
    for name, tool in sorted(registry.all_tools().items()):
        descriptor = tool.description()
        tools.append(
            ToolInfo(
                name=name,
                tier=tool.tier.value,
                purpose=descriptor.purpose,
                usage_hint=descriptor.usage_hint,
                input_format=[FieldInfo(key=k, description=d) for k, d in descriptor.input_format],
                output_format=[FieldInfo(key=k, description=d) for k, d in descriptor.output_format],
            )
        )
    return ToolListResponse(tools=tools)


@router.post(
    "/v1/tasks",
    response_model=TaskResponse,
    summary="Run a task",
    description=(
        "Run a task through the OODA loop. The response holds the conclusion "
        "(when the task concluded), the step trace and the emitted events."
    ),
)
def run_task(request: TaskRequest) -> TaskResponse:
    """
    Run a task to completion.

    A context overflow is reported as 422 and a model failure as 502.
    """
    config = get_config()
    execution_id = f"task-{uuid.uuid4().hex[:8]}"
    logger.info(f"[{execution_id}] Running task: {request.task[:100]}")

    client = LLMClient(config.model)
    loop = TaskLoop.from_config(
        request.task,
        config,
        model_client=client,
        accountant=TiktokenAccountant(),
        max_steps=request.max_steps,
        execution_id=execution_id,
    )

    try:
        outcome = loop.run()
    except ContextOverflow as e:
        logger.error(f"[{execution_id}] {e}")
        raise HTTPException(status_code=422, detail=str(e))
    except ModelTransportError as e:
        logger.error(f"[{execution_id}] {e}")
        raise HTTPException(status_code=502, detail=str(e))
    finally:
        client.close()

    logger.info(f"[{execution_id}] Task {outcome.status.value} after {len(outcome.steps)} steps")

    return TaskResponse(
        id=execution_id,
        status=outcome.status.value,
        conclusions=[Conclusion(**t.to_dict()) for t in outcome.terminations],
        steps=[TraceStep(**step) for step in loop.get_trace()],
        events=[JobEvent(**event.to_dict()) for event in loop.events],
        usage=UsageInfo(**outcome.usage.to_dict()),
    )
