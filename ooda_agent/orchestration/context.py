"""
Bounded conversation context.

The context presented to the model is split in two parts:

- the *pinned* preamble (persona, tool descriptions, worked example) which
  stays at the top of the context for the whole task, and
- the *rolling* tail (task prompt, model replies, action results) which is
  truncated from its oldest end whenever the prompt would no longer leave
  enough room for the completion.
"""

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Iterator, Optional, Protocol

from ..errors import ContextOverflow
from ..tokens import TiktokenAccountant

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Author of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """A single chat message."""

    role: Role
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content}


class EvictionPolicy(str, Enum):
    """How the rolling tail is shortened when over budget."""

    # Drop the oldest message, one at a time.
    OLDEST = "oldest"
    # Drop the oldest message and any assistant reply left orphaned at the head.
    PAIRWISE = "pairwise"


class TokenAccountant(Protocol):
    def count_tokens(self, model: str, messages: Iterable[dict]) -> int: ...

    def max_context_size(self, model: str) -> int: ...


MessageFormatter = Callable[[Message], str]


def plain_formatter(message: Message) -> str:
    """Format a message as ``[role] content``."""
    return f"[{message.role.value}] {message.content}"


class ContextWindow:
    """
    Message history kept within the model's token budget.

    Invariant: after every call to ``append_rolling`` either the pinned and
    rolling messages fit in ``max_tokens - reserved_completion_tokens`` or
    the rolling tail holds a single message.
    """

    def __init__(
        self,
        model: str,
        reserved_completion_tokens: int,
        accountant: Optional[TokenAccountant] = None,
        eviction: EvictionPolicy = EvictionPolicy.OLDEST,
    ):
        self.model = model
        self.reserved_completion_tokens = reserved_completion_tokens
        self.eviction = EvictionPolicy(eviction)
        self._accountant = accountant or TiktokenAccountant()
        self.max_tokens = self._accountant.max_context_size(model)

        self._pinned: list[Message] = []
        self._rolling: list[Message] = []
        self.pinned_token_count = 0

    def __repr__(self) -> str:
        return (
            f"ContextWindow(model={self.model!r}, max_tokens={self.max_tokens}, "
            f"reserved_completion_tokens={self.reserved_completion_tokens}, "
            f"pinned_token_count={self.pinned_token_count}, "
            f"pinned={len(self._pinned)}, rolling={len(self._rolling)})"
        )

    @property
    def budget(self) -> int:
        """Tokens available to the prompt."""
        return self.max_tokens - self.reserved_completion_tokens

    @property
    def pinned(self) -> tuple[Message, ...]:
        return tuple(self._pinned)

    @property
    def rolling(self) -> tuple[Message, ...]:
        return tuple(self._rolling)

    def append_pinned(self, messages: Iterable[tuple[Role, str]]) -> None:
        """
        Append messages to the pinned preamble.

        Args:
            messages: ``(role, text)`` pairs, in order.
        """
        for role, content in messages:
            self._pinned.append(Message(role=Role(role), content=content))

        self.pinned_token_count = self._count(self._pinned)
        logger.debug(
            "Pinned preamble: %d messages, %d tokens",
            len(self._pinned),
            self.pinned_token_count,
        )

    def append_rolling(self, entry: Message) -> int:
        """
        Append a message to the rolling tail, then evict until within budget.

        Args:
            entry: The message to append.

        Returns:
            The number of messages left in the rolling tail.

        Raises:
            ContextOverflow: If the pinned preamble alone exceeds the budget.
                The rolling tail is cleared.
        """
        self._rolling.append(entry)

        if self.pinned_token_count > self.budget:
            self._rolling.clear()
            raise ContextOverflow(self.pinned_token_count, self.budget)

        self._evict()
        return len(self._rolling)

    def _evict(self) -> None:
        """Drop messages from the head of the rolling tail while over budget."""
        remaining = self.budget - self.pinned_token_count

        while len(self._rolling) > 1 and self._count(self._rolling) > remaining:
            dropped = self._rolling.pop(0)
            logger.debug("Evicted %s message (%d chars)", dropped.role.value, len(dropped.content))

            if (
                self.eviction is EvictionPolicy.PAIRWISE
                and len(self._rolling) > 1
                and self._rolling[0].role is Role.ASSISTANT
            ):
                orphan = self._rolling.pop(0)
                logger.debug("Evicted orphaned assistant reply (%d chars)", len(orphan.content))

    def _count(self, messages: list[Message]) -> int:
        return self._accountant.count_tokens(self.model, [m.to_dict() for m in messages])

    def token_count(self) -> int:
        """Tokens used by the pinned preamble and the rolling tail."""
        return self.pinned_token_count + self._count(self._rolling)

    def iterate(self) -> Iterator[Message]:
        """Iterate over pinned then rolling messages, in insertion order."""
        return itertools.chain(self._pinned, self._rolling)

    def __iter__(self) -> Iterator[Message]:
        return self.iterate()

    def __len__(self) -> int:
        return len(self._pinned) + len(self._rolling)

    def render(self, formatter: MessageFormatter = plain_formatter) -> list[str]:
        """Format every message for display or logging."""
        return [formatter(message) for message in self.iterate()]

    def to_messages(self) -> list[dict]:
        """Messages in the ``{"role", "content"}`` shape chat APIs expect."""
        return [message.to_dict() for message in self.iterate()]
