"""
Action Parser

Extracts the action the model decided on from its free-form reply. The
reply is expected to end with a fenced block such as::

    ```yaml
    command: Calculate
    input:
      expression: 2+2
    ```

Every fenced ``yaml``, ``yml``, ``json`` or untagged block holding a
mapping with a ``command`` is a candidate; the last one wins. A reply
without any fence is tried as a bare YAML mapping.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

from ..errors import ExtractionFailure, ForbiddenField

logger = logging.getLogger(__name__)

FENCED_BLOCK_PATTERN = re.compile(r"```([\w+-]*)[ \t]*\r?\n(.*?)```", re.DOTALL)

STRUCTURED_TAGS = frozenset({"", "yaml", "yml", "json"})

FORBIDDEN_KEY = "output"


@dataclass
class Invocation:
    """A parsed tool call."""

    command: str
    input: Any = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"command": self.command, "input": self.input}


class ActionParser:
    """Finds the authoritative action in a model reply."""

    def find_blocks(self, text: str) -> list[tuple[str, str]]:
        """Return ``(tag, body)`` of every structured fenced block, in order."""
        blocks = []
        for match in FENCED_BLOCK_PATTERN.finditer(text):
            tag = match.group(1).lower()
            if tag in STRUCTURED_TAGS:
                blocks.append((tag, match.group(2)))
        return blocks

    def parse(self, text: str) -> Invocation:
        """
        Parse the action out of a model reply.

        Args:
            text: The raw reply.

        Returns:
            The last well-formed invocation.

        Raises:
            ForbiddenField: If any candidate carries an ``output`` key.
            ExtractionFailure: If no well-formed candidate is found.
        """
        if "```" in text:
            blocks = self.find_blocks(text)
        else:
            blocks = [("yaml", text)]

        candidates: list[Invocation] = []
        decode_error: Optional[Exception] = None

        for tag, body in blocks:
            try:
                data = self._decode(tag, body)
            except (yaml.YAMLError, ValueError) as e:
                logger.debug("Skipping malformed block: %s", e)
                decode_error = e
                continue

            if not isinstance(data, dict):
                continue

            command = data.get("command")
            if not isinstance(command, str) or not command.strip():
                continue
            if FORBIDDEN_KEY in data:
                raise ForbiddenField(FORBIDDEN_KEY)

            candidates.append(Invocation(command=command.strip(), input=data.get("input", {})))

        if not candidates:
            message = (
                "No valid action found. End your response with exactly one "
                "```yaml block containing `command` and `input`."
            )
            if decode_error is not None:
                message = f"{message} The block could not be decoded: {decode_error}"
            raise ExtractionFailure(message)

        if len(candidates) > 1:
            logger.debug("Found %d actions, using the last one", len(candidates))
        return candidates[-1]

    @staticmethod
    def _decode(tag: str, body: str) -> Any:
        if tag == "json":
            return json.loads(body)
        return yaml.safe_load(body)
