"""
Token accounting for chat prompts.

Counts prompt tokens with tiktoken and maps a model identifier to the size
of its context window. The context window only needs an object exposing
``count_tokens`` and ``max_context_size``, so tests can swap in a simpler
accountant.
"""

import logging
from typing import Iterable, Mapping

import tiktoken

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"

# Every message is wrapped as <|start|>{role}\n{content}<|end|>\n
TOKENS_PER_MESSAGE = 3
# Every reply is primed with <|start|>assistant<|message|>
TOKENS_PER_REPLY = 3

# Longest prefix wins.
CONTEXT_SIZES: dict[str, int] = {
    "gpt-4o": 128_000,
    "gpt-4-turbo": 128_000,
    "gpt-4-1106": 128_000,
    "gpt-4-32k": 32_768,
    "gpt-4": 8_192,
    "gpt-3.5-turbo-16k": 16_384,
    "gpt-3.5-turbo-1106": 16_385,
    "gpt-3.5-turbo": 4_096,
    "text-davinci-003": 4_097,
}
DEFAULT_CONTEXT_SIZE = 4_096


def get_context_size(model: str) -> int:
    """Return the context window size for a model identifier."""
    for prefix in sorted(CONTEXT_SIZES, key=len, reverse=True):
        if model.startswith(prefix):
            return CONTEXT_SIZES[prefix]
    logger.debug("Unknown model %s, assuming %d tokens", model, DEFAULT_CONTEXT_SIZE)
    return DEFAULT_CONTEXT_SIZE


class TiktokenAccountant:
    """Token accounting backed by tiktoken."""

    def __init__(self, context_sizes: Mapping[str, int] | None = None):
        self._context_sizes = dict(context_sizes or {})
        self._encoders: dict[str, "tiktoken.Encoding"] = {}

    def _encoder(self, model: str) -> "tiktoken.Encoding":
        encoder = self._encoders.get(model)
        if encoder is None:
            try:
                encoder = tiktoken.encoding_for_model(model)
            except KeyError:
                logger.debug("No tiktoken encoding for %s, using %s", model, DEFAULT_ENCODING)
                encoder = tiktoken.get_encoding(DEFAULT_ENCODING)
            self._encoders[model] = encoder
        return encoder

    def count_tokens(self, model: str, messages: Iterable[Mapping[str, str]]) -> int:
        """
        Count the prompt tokens of a list of chat messages.

        Args:
            model: Model identifier used to select the encoding.
            messages: Mappings with ``role`` and ``content`` keys.

        Returns:
            Number of tokens, including per-message framing and reply priming.
        """
        encoder = self._encoder(model)
        total = 0
        for message in messages:
            total += TOKENS_PER_MESSAGE
            for value in message.values():
                total += len(encoder.encode(str(value)))
        return total + TOKENS_PER_REPLY

    def max_context_size(self, model: str) -> int:
        """Return the context window size for a model identifier."""
        if model in self._context_sizes:
            return self._context_sizes[model]
        return get_context_size(model)
