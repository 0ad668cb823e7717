"""
Mathematical Expression Solver

Safely evaluates mathematical expressions using SymPy's parser.
Supports scientific calculator syntax including:
- Factorial notation: 5!
- Caret exponentiation: 2^16
- Degree notation: sin(30 degrees)
"""

import logging
import re
from tokenize import TokenError
from typing import Any, Union

from pydantic import BaseModel, Field
from sympy import N
from sympy.parsing.sympy_parser import (
    parse_expr,
    standard_transformations,
    implicit_multiplication_application,
    convert_xor,
    factorial_notation,
)

from ..errors import InvalidInput, ToolInvocationFailed
from .base import Tool

logger = logging.getLogger(__name__)

TRANSFORMATIONS = (
    standard_transformations
    + (implicit_multiplication_application,)
    + (convert_xor,)  # 2^16 -> 2**16
    + (factorial_notation,)  # 5! -> factorial(5)
)

Number = Union[int, float, str]


def preprocess_expression(expression: str) -> str:
    """
    Preprocess expression for SymPy compatibility.

    Handles:
        - Degree notation: sin(30 degrees) -> sin(30 * pi / 180)
        - ceil function: ceil(x) -> ceiling(x) (SymPy naming)
    """
    degree_pattern = r"(\d+(?:\.\d+)?)\s*(?:degrees?|deg)\b"
    expression = re.sub(degree_pattern, r"(\1 * pi / 180)", expression, flags=re.IGNORECASE)
    expression = re.sub(r"\bceil\b", "ceiling", expression)
    return expression


def calculate(expression: str) -> Number:
    """
    Evaluate a mathematical expression numerically.

    Real results come back as int when whole, float otherwise; complex
    results as their string form.

    Raises:
        InvalidInput: If the expression is empty or cannot be parsed.
        ToolInvocationFailed: If evaluation fails.
    """
    if not expression or not expression.strip():
        raise InvalidInput('Expression is empty. Provide a math expression, e.g. expression: "2+2"')

    try:
        expr = parse_expr(
            preprocess_expression(expression),
            transformations=TRANSFORMATIONS,
            evaluate=True,
        )
    except (SyntaxError, TokenError, TypeError, ValueError) as e:
        logger.debug("Cannot parse expression '%s': %s", expression, e)
        raise InvalidInput(f"Syntax error in '{expression}': {e}") from e

    try:
        result = complex(N(expr))
    except (TypeError, ValueError, ArithmeticError) as e:
        logger.debug("Cannot evaluate '%s': %s", expression, e)
        raise ToolInvocationFailed(f"Calculation error for '{expression}': {e}") from e

    if result.imag != 0:
        return str(result)

    real = result.real
    if real.is_integer():
        return int(real)
    return real


class CalculateInput(BaseModel):
    expression: str = Field(description="Math expression like 2+2, sqrt(16) or sin(30 degrees). MANDATORY")


class CalculateOutput(BaseModel):
    expression: str = Field(description="The evaluated expression.")
    result: Number = Field(description="The numeric result.")


class CalculateTool(Tool):
    """Simple tool evaluating math expressions."""

    name = "Calculate"
    purpose = "Perform mathematical calculations."
    usage_hint = "Use this for arithmetic, powers, factorials, trigonometry and other closed-form math."
    input_model = CalculateInput
    output_model = CalculateOutput

    def invoke(self, input: Any) -> dict:
        data = self.parse_input(input)
        result = calculate(data.expression)
        return self.dump_output(CalculateOutput(expression=data.expression, result=result))
