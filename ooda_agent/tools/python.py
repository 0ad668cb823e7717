"""
Sandboxed Python Tool

Runs a Python snippet in-process with a ``tools`` object in scope, through
which the snippet can call the Simple and Terminal tools. Only what the
snippet prints is returned.
"""

import builtins
import io
import logging
import re
import sys
from typing import Any

from pydantic import BaseModel, Field

from ..errors import ToolInvocationFailed
from .base import AdvancedTool

logger = logging.getLogger(__name__)

FORBIDDEN_PATTERN = re.compile(r"\b(open|exec|eval)\b")


def _normalize(name: str) -> str:
    return name.replace("_", "").lower()


def _sandbox_builtins(stdout: io.StringIO, stderr: io.StringIO) -> dict[str, Any]:
    """
    Copy the builtins with ``print`` bound to the run's own buffers.

    ``sys.stdout`` and ``sys.stderr`` are left untouched; writes aimed at
    them through ``print`` land in the run's buffers instead.
    """

    def sandbox_print(*args: Any, sep: str = " ", end: str = "\n", file: Any = None, flush: bool = False) -> None:
        if file is None or file is sys.stdout:
            file = stdout
        elif file is sys.stderr:
            file = stderr
        builtins.print(*args, sep=sep, end=end, file=file, flush=flush)

    namespace = dict(vars(builtins))
    namespace["print"] = sandbox_print
    return namespace


class ToolsProxy:
    """
    Exposes nested tools as methods.

    ``tools.web_search(query="x")`` and ``tools.WebSearch(query="x")`` both
    dispatch to ``WebSearch``. ``tools.list()`` maps names to purposes.
    """

    def __init__(self, dispatcher):
        self._dispatcher = dispatcher
        self._descriptors = dispatcher.describe()
        self._names = {_normalize(name): name for name in self._descriptors}

    def list(self) -> dict[str, str]:
        return {name: d.purpose for name, d in sorted(self._descriptors.items())}

    def __getattr__(self, attr: str):
        if attr.startswith("_"):
            raise AttributeError(attr)
        name = self._names.get(_normalize(attr))
        if name is None:
            raise AttributeError(f"No tool named '{attr}'. Available: {sorted(self._descriptors)}")

        def call(**kwargs: Any) -> Any:
            return self._dispatcher.dispatch(name, kwargs)

        call.__name__ = attr
        return call

    def __dir__(self):
        return sorted(self._descriptors)


class SandboxedPythonInput(BaseModel):
    code: str = Field(description="The Python code to execute. MANDATORY")


class SandboxedPythonOutput(BaseModel):
    stdout: str = Field(description="The standard output of the executed code.")
    stderr: str = Field(description="The standard error of the executed code.")


class SandboxedPythonTool(AdvancedTool):
    """Advanced tool running model-written Python with access to other tools."""

    name = "SandboxedPython"
    purpose = (
        "A tool that executes sandboxed Python code. "
        "Only stdout and stderr are captured and made available."
    )
    usage_hint = (
        "Use this to process data or chain several tool calls. The other tools are "
        "available as methods of the `tools` object, e.g. "
        "`input = {...}; output = tools.tool_name(**input); print(output[\"field_xxx\"])`. "
        "Call `tools.list()` to see them. `open`, `exec` and `eval` are not allowed."
    )
    input_model = SandboxedPythonInput
    output_model = SandboxedPythonOutput

    def invoke_nested(self, dispatcher, input: Any) -> dict:
        data = self.parse_input(input)
        code = data.code

        if FORBIDDEN_PATTERN.search(code):
            raise ToolInvocationFailed(
                "Python code contains forbidden keywords such as open|exec|eval"
            )

        stdout = io.StringIO()
        stderr = io.StringIO()
        namespace = {
            "__name__": "__sandbox__",
            "__builtins__": _sandbox_builtins(stdout, stderr),
            "tools": ToolsProxy(dispatcher),
        }

        try:
            compiled = compile(code, "<sandbox>", "exec")
            exec(compiled, namespace)
        except Exception as e:
            logger.debug("Sandboxed code failed: %s: %s", type(e).__name__, e)
            raise ToolInvocationFailed(
                f"Python code execution failed: {type(e).__name__}: {e}"
            ) from e

        return self.dump_output(
            SandboxedPythonOutput(stdout=stdout.getvalue(), stderr=stderr.getvalue())
        )
