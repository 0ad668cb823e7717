"""
Per-task OODA control loop.

Each step renders the context window, queries the model, parses the one
action in its reply and dispatches it. Failures to parse or to run a tool
are fed back to the model as corrective messages; only budget and
transport failures end the task early.

State machine::

    CREATED -> QUERYING -> PARSING -> DISPATCHING -> CONTINUING -> QUERYING ...
                                                  -> TERMINAL
    any state -> FATAL (ContextOverflow, ModelTransportError)
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from ..errors import (
    ActionParseError,
    ActionResponseTooLong,
    ContextOverflow,
    ModelTransportError,
    TaskCancelled,
    ToolUseError,
)
from ..llm_call import LLMClient, ModelResponse, Usage
from ..models import AppConfig
from ..tools import build_registry
from ..tools.base import TerminationRecord
from ..tools.registry import Dispatcher, ToolRegistry
from .context import ContextWindow, EvictionPolicy, Message, Role, TokenAccountant
from .parser import ActionParser
from .prompts import Task, processing_tool, seed_context, to_yaml

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 10
DEFAULT_MAX_RESPONSE_BYTES = 2048


class ModelClient(Protocol):
    def complete(
        self,
        messages: list[dict],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ModelResponse: ...


class LoopState(str, Enum):
    CREATED = "created"
    QUERYING = "querying"
    PARSING = "parsing"
    DISPATCHING = "dispatching"
    CONTINUING = "continuing"
    TERMINAL = "terminal"
    FATAL = "fatal"


class OutcomeStatus(str, Enum):
    CONCLUDED = "concluded"
    INCOMPLETE = "incomplete"


class UpdateKind(str, Enum):
    MODEL = "model"
    ACTION = "action"
    ERROR = "error"
    CONCLUSION = "conclusion"


@dataclass
class JobUpdate:
    """An event reported to front ends while a task runs."""

    kind: UpdateKind
    text: str

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "text": self.text}


@dataclass
class StepRecord:
    """A single step of a task."""

    step_number: int
    state: LoopState = LoopState.QUERYING
    reply: Optional[str] = None
    command: Optional[str] = None
    input: Any = None
    observation: Optional[str] = None
    error: Optional[str] = None


@dataclass
class TaskOutcome:
    """Result of a task that did not fail fatally."""

    status: OutcomeStatus
    terminations: list[TerminationRecord] = field(default_factory=list)
    steps: list[StepRecord] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)

    @property
    def conclusion(self) -> Optional[str]:
        """The last conclusion, if the task concluded."""
        if not self.terminations:
            return None
        return self.terminations[-1].conclusion


Observer = Callable[[JobUpdate], None]

_FINISHED = (LoopState.TERMINAL, LoopState.FATAL)


class TaskLoop:
    """
    Drives one task to a conclusion.

    A loop owns its context window, its task and its registry; run
    concurrent tasks with separate loops. ``cancel`` may be called from
    another thread.
    """

    def __init__(
        self,
        question: str,
        model_client: ModelClient,
        registry: ToolRegistry,
        model: Optional[str] = None,
        accountant: Optional[TokenAccountant] = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
        reserved_completion_tokens: int = 256,
        temperature: Optional[float] = None,
        eviction: EvictionPolicy = EvictionPolicy.OLDEST,
        observer: Optional[Observer] = None,
        execution_id: Optional[str] = None,
    ):
        if max_steps <= 0:
            raise ValueError("max_steps must be positive")

        self.task = Task(question)
        self.max_steps = max_steps
        self.max_response_bytes = max_response_bytes
        self.reserved_completion_tokens = reserved_completion_tokens
        self.temperature = temperature
        self.observer = observer
        self.execution_id = execution_id

        self._client = model_client
        self._owns_client = False
        self.registry = registry
        self._dispatcher = Dispatcher(registry)
        self._parser = ActionParser()
        self.window = ContextWindow(
            model=model or getattr(model_client, "model", "gpt-3.5-turbo"),
            reserved_completion_tokens=reserved_completion_tokens,
            accountant=accountant,
            eviction=eviction,
        )

        self._cancelled = threading.Event()

        # State
        self.state = LoopState.CREATED
        self.steps: list[StepRecord] = []
        self.events: list[JobUpdate] = []
        self.usage = Usage()

    @classmethod
    def from_config(
        cls,
        question: str,
        config: AppConfig,
        model_client: Optional[ModelClient] = None,
        accountant: Optional[TokenAccountant] = None,
        max_steps: Optional[int] = None,
        observer: Optional[Observer] = None,
        execution_id: Optional[str] = None,
    ) -> "TaskLoop":
        """
        Build a loop with a fresh registry from the application config.

        An LLMClient is created when no model client is given; the loop
        then closes it in ``close``.
        """
        owns_client = model_client is None
        client = model_client if model_client is not None else LLMClient(config.model)

        loop = cls(
            question=question,
            model_client=client,
            registry=build_registry(config.tools, question=question),
            model=config.model.model,
            accountant=accountant,
            max_steps=max_steps or config.loop.max_steps,
            max_response_bytes=config.loop.max_response_bytes,
            reserved_completion_tokens=config.model.min_tokens_for_completion,
            temperature=config.model.temperature,
            eviction=EvictionPolicy(config.loop.eviction),
            observer=observer,
            execution_id=execution_id,
        )
        loop._owns_client = owns_client
        return loop

    @property
    def _id_prefix(self) -> str:
        return f"[{self.execution_id}] " if self.execution_id else ""

    def cancel(self) -> None:
        """Request cancellation; takes effect before the next model query."""
        logger.info("%sCancellation requested", self._id_prefix)
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(self) -> TaskOutcome:
        """
        Run steps until a Terminal tool ends the task or max_steps is reached.

        Returns:
            A CONCLUDED outcome with the termination records, or an
            INCOMPLETE one when the steps ran out.

        Raises:
            ContextOverflow: If the pinned preamble does not fit the budget.
            ModelTransportError: If the model call fails or the task is cancelled.
        """
        try:
            while len(self.steps) < self.max_steps:
                terminations = self.step()
                if terminations:
                    return TaskOutcome(
                        status=OutcomeStatus.CONCLUDED,
                        terminations=terminations,
                        steps=list(self.steps),
                        usage=self.usage,
                    )

            logger.warning("%sMax steps (%d) reached without a conclusion", self._id_prefix, self.max_steps)
            return TaskOutcome(
                status=OutcomeStatus.INCOMPLETE,
                steps=list(self.steps),
                usage=self.usage,
            )
        finally:
            self._log_trace_summary()

    def step(self) -> Optional[list[TerminationRecord]]:
        """
        Run a single query, parse and dispatch cycle.

        Returns:
            The termination records when a Terminal tool ended the task,
            None when the loop should continue.

        Raises:
            RuntimeError: If the task already ended.
            ContextOverflow: If the pinned preamble does not fit the budget.
            ModelTransportError: If the model call fails or the task is cancelled.
        """
        if self.state in _FINISHED:
            raise RuntimeError(f"Task already ended ({self.state.value})")

        try:
            if self.state is LoopState.CREATED:
                self._seed()
            return self._step()
        except (ContextOverflow, ModelTransportError) as e:
            self.state = LoopState.FATAL
            if self.steps:
                self.steps[-1].state = LoopState.FATAL
                self.steps[-1].error = str(e)
            logger.error("%sTask failed: %s", self._id_prefix, e)
            self._emit(UpdateKind.ERROR, str(e))
            raise

    def _seed(self) -> None:
        seed_context(self.window, self.registry)
        self._append(Role.USER, self.task.to_prompt())
        logger.debug("%sSeeded context: %r", self._id_prefix, self.window)

    def _step(self) -> Optional[list[TerminationRecord]]:
        record = StepRecord(step_number=len(self.steps) + 1)
        self.steps.append(record)

        # 1. Query the model
        self.state = record.state = LoopState.QUERYING
        reply = self._query(record.step_number)
        record.reply = reply
        self._emit(UpdateKind.MODEL, reply)
        self._append(Role.ASSISTANT, reply)

        # 2. Parse the action
        self.state = record.state = LoopState.PARSING
        try:
            invocation = self._parser.parse(reply)
        except ActionParseError as e:
            logger.warning("%sStep %d: invalid action: %s", self._id_prefix, record.step_number, e)
            record.error = str(e)
            self._emit(UpdateKind.ERROR, str(e))
            self._append(Role.USER, self.task.invalid_action_prompt(e))
            self.state = record.state = LoopState.CONTINUING
            return None

        record.command = invocation.command
        record.input = invocation.input
        self._emit(UpdateKind.ACTION, to_yaml(invocation.to_dict()))

        # 3. Dispatch it
        self.state = record.state = LoopState.DISPATCHING
        logger.debug("%sStep %d: dispatching %s", self._id_prefix, record.step_number, invocation.command)
        try:
            output = self._dispatcher.dispatch(invocation.command, invocation.input)
        except ToolUseError as e:
            self._fail_action(record, invocation.command, e)
            stale = self._dispatcher.poll_terminations()
            if stale:
                logger.debug("%sDiscarded %d termination(s) from a failed action", self._id_prefix, len(stale))
            return None

        # 4. Done?
        terminations = self._dispatcher.poll_terminations()
        if terminations:
            self.state = record.state = LoopState.TERMINAL
            record.observation = to_yaml([t.to_dict() for t in terminations])
            for termination in terminations:
                self._emit(UpdateKind.CONCLUSION, termination.conclusion)
            logger.info("%sStep %d: task concluded", self._id_prefix, record.step_number)
            return terminations

        # 5. Feed the result back
        result = to_yaml(output)
        size = len(result.encode("utf-8"))
        if size > self.max_response_bytes:
            self._fail_action(
                record,
                invocation.command,
                ActionResponseTooLong(size, self.max_response_bytes, processing_tool(self.registry)),
            )
            return None

        record.observation = result
        self._append(Role.USER, self.task.action_success_prompt(invocation.command, result))
        self.state = record.state = LoopState.CONTINUING
        return None

    def _fail_action(self, record: StepRecord, command: str, error: ToolUseError) -> None:
        logger.warning("%sStep %d: action %s failed: %s", self._id_prefix, record.step_number, command, error)
        record.error = str(error)
        self._emit(UpdateKind.ERROR, str(error))
        self._append(Role.USER, self.task.action_failed_prompt(command, error))
        self.state = record.state = LoopState.CONTINUING

    def _query(self, step_num: int) -> str:
        """Call the model with the current context."""
        if self._cancelled.is_set():
            raise TaskCancelled("Task cancelled")

        messages = self.window.to_messages()
        logger.debug(
            "%sStep %d: querying model (%d messages, %d tokens)",
            self._id_prefix,
            step_num,
            len(messages),
            self.window.token_count(),
        )

        response = self._client.complete(
            messages,
            temperature=self.temperature,
            max_tokens=self.reserved_completion_tokens,
        )

        if self._cancelled.is_set():
            raise TaskCancelled("Task cancelled")

        self.usage.add(response.usage)
        return response.content

    def _append(self, role: Role, content: str) -> None:
        self.window.append_rolling(Message(role=role, content=content))

    def _emit(self, kind: UpdateKind, text: str) -> None:
        update = JobUpdate(kind=kind, text=text)
        self.events.append(update)
        if self.observer is not None:
            self.observer(update)

    def _log_trace_summary(self) -> None:
        """Log a compact trace summary."""
        id_prefix = self._id_prefix
        logger.info("%s%s", id_prefix, "─" * 50)
        logger.info("%sTRACE SUMMARY", id_prefix)
        logger.info("%s%s", id_prefix, "─" * 50)
        for step in self.steps:
            if step.state is LoopState.TERMINAL:
                logger.info("%sStep %d [FINAL]: %s", id_prefix, step.step_number, step.command)
            elif step.error:
                logger.info(
                    "%sStep %d: %s -> error: %s",
                    id_prefix,
                    step.step_number,
                    step.command or "(no action)",
                    step.error[:80],
                )
            else:
                obs_preview = (
                    (step.observation[:80] + "...")
                    if step.observation and len(step.observation) > 80
                    else step.observation
                )
                logger.info("%sStep %d: %s -> %s", id_prefix, step.step_number, step.command, obs_preview)
        logger.info(
            "%sTokens used: %d prompt, %d completion",
            id_prefix,
            self.usage.prompt_tokens,
            self.usage.completion_tokens,
        )

    def get_trace(self) -> list[dict]:
        """
        Get a trace of all steps.

        Returns:
            List of step dictionaries.
        """
        return [
            {
                "step": s.step_number,
                "state": s.state.value,
                "reply": s.reply,
                "command": s.command,
                "input": s.input,
                "observation": s.observation,
                "error": s.error,
            }
            for s in self.steps
        ]

    def close(self) -> None:
        """Close the model client if this loop created it."""
        if not self._owns_client:
            return
        try:
            self._client.close()  # type: ignore[attr-defined]
        except Exception as e:
            logger.debug("Error closing model client: %s", e)


def run_task(
    question: str,
    config: Optional[AppConfig] = None,
    observer: Optional[Observer] = None,
) -> TaskOutcome:
    """
    Convenience function to run a single task.

    Args:
        question: The user's question or task
        config: Application config, loaded from disk when None
        observer: Optional callable receiving JobUpdate events

    Returns:
        The task outcome
    """
    if config is None:
        from ..config import get_config

        config = get_config()

    loop = TaskLoop.from_config(question, config, observer=observer)
    try:
        return loop.run()
    finally:
        loop.close()
