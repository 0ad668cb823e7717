"""
LLM Call Interface for the OODA agent.

Wraps an OpenAI-compatible chat completion endpoint (OpenAI, vLLM, Ollama's
OpenAI API, ...) as the model collaborator of the task loop.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from openai import OpenAI, OpenAIError

from .errors import ModelTransportError
from .models import ModelConfig

logger = logging.getLogger(__name__)


@dataclass
class Usage:
    """Token usage reported by the model provider."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, other: Optional["Usage"]) -> None:
        if other is None:
            return
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens
        self.total_tokens += other.total_tokens

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class ModelResponse:
    """A completion returned by the model."""
    content: str
    usage: Optional[Usage] = None


class LLMClient:
    """Chat completion client for an OpenAI-compatible endpoint."""

    def __init__(self, config: Optional[ModelConfig] = None):
        self.config = config or ModelConfig()
        self.model = self.config.model
        self.client = OpenAI(
            base_url=self.config.base_url,
            # Local OpenAI-compatible servers don't require auth
            api_key=self.config.api_key or "dummy",
            timeout=self.config.timeout,
        )

    def complete(
        self,
        messages: list[dict],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ModelResponse:
        """Request a chat completion.

        Args:
            messages: List of chat messages
            temperature: Sampling temperature, config default when None
            max_tokens: Maximum tokens to generate, config default when None

        Returns:
            The first choice's content and the reported usage

        Raises:
            ModelTransportError: If the call fails, times out or returns no choice
        """
        create_kwargs: dict = {
            "model": self.model,
            "messages": messages,
            "temperature": (
                temperature if temperature is not None else self.config.temperature
            ),
            "max_tokens": (
                max_tokens if max_tokens is not None else self.config.min_tokens_for_completion
            ),
        }

        try:
            response = self.client.chat.completions.create(
                **create_kwargs  # type: ignore[arg-type]
            )
        except OpenAIError as e:
            logger.error(f"Model call failed: {e}")
            raise ModelTransportError(f"Model call failed: {e}") from e

        if not response.choices:
            logger.error("Model returned no choices")
            raise ModelTransportError("Model returned no choices")

        usage = None
        if response.usage is not None:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
                total_tokens=response.usage.total_tokens or 0,
            )

        return ModelResponse(
            content=response.choices[0].message.content or "",
            usage=usage,
        )

    def close(self) -> None:
        self.client.close()
