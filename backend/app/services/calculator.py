"""
Deterministic calculator for the Calculator tool.

Pure function: calculate(expression) -> Calculation.
Keyword sniffing picks the calculation type:
  "roi" / "return on investment"  → ROI = (gain - cost) / cost * 100
  "rental yield"                  → yield = annual_rent / value * 100
  anything else                   → basic arithmetic over [0-9+-*/.() ]

Operands for ROI and yield are the first two numeric literals in the
expression, in order. Basic arithmetic is evaluated over a restricted AST
(numbers, + - * /, unary +/-, parentheses), never with eval().
"""

import ast
import math
import operator
import re
from enum import Enum

import structlog
from pydantic import BaseModel

from app.constants import (
    BASIC_CALCULATION_LABEL,
    RENTAL_YIELD_BANDS,
    RENTAL_YIELD_FLOOR_LABEL,
    ROI_BANDS,
    ROI_FLOOR_LABEL,
)

logger = structlog.get_logger(__name__)

NUMBER_PATTERN = re.compile(r"\d+(?:,\d{3})*(?:\.\d+)?")
_DISALLOWED_CHARS = re.compile(r"[^0-9+\-*/.() ]")

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}
_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class CalculationError(ValueError):
    """Raised when an expression cannot produce a finite numeric result."""


class CalculationType(str, Enum):
    ROI = "roi"
    RENTAL_YIELD = "rental_yield"
    BASIC = "basic"


class Calculation(BaseModel):
    expression: str
    result: float
    formatted: str
    calculation_type: CalculationType
    interpretation: str


def detect_calculation_type(expression: str) -> CalculationType:
    lowered = expression.lower()
    if "roi" in lowered or "return on investment" in lowered:
        return CalculationType.ROI
    if "rental yield" in lowered:
        return CalculationType.RENTAL_YIELD
    return CalculationType.BASIC


def extract_operands(expression: str) -> list[float]:
    """Numeric literals in order of appearance; thousands separators allowed."""
    return [float(m.replace(",", "")) for m in NUMBER_PATTERN.findall(expression)]


def compute_roi(gain: float, cost: float) -> float:
    if cost == 0:
        raise CalculationError("ROI cost must be non-zero")
    # Multiply before dividing so exact band boundaries stay exact.
    return (gain - cost) * 100 / cost


def compute_rental_yield(annual_rent: float, property_value: float) -> float:
    if property_value == 0:
        raise CalculationError("Property value must be non-zero")
    return annual_rent * 100 / property_value


def _eval_node(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _eval_node(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        try:
            return float(node.value)
        except OverflowError as e:
            raise CalculationError("Number too large") from e
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Div) and right == 0:
            raise CalculationError("Division by zero")
        return _BINARY_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    raise CalculationError(f"Unsupported expression element: {type(node).__name__}")


def evaluate_arithmetic(expression: str) -> float:
    """Strip everything but digits/operators/parens, then evaluate safely."""
    sanitized = _DISALLOWED_CHARS.sub("", expression).strip()
    if not sanitized:
        raise CalculationError("Invalid expression")
    try:
        tree = ast.parse(sanitized, mode="eval")
    except SyntaxError as e:
        raise CalculationError("Invalid expression") from e
    return _eval_node(tree)


def interpret(value: float, calculation_type: CalculationType) -> str:
    """Map a result onto its interpretation band (strict lower bounds)."""
    if calculation_type == CalculationType.ROI:
        bands, floor_label = ROI_BANDS, ROI_FLOOR_LABEL
    elif calculation_type == CalculationType.RENTAL_YIELD:
        bands, floor_label = RENTAL_YIELD_BANDS, RENTAL_YIELD_FLOOR_LABEL
    else:
        return BASIC_CALCULATION_LABEL

    for threshold, label in bands:
        if value > threshold:
            return label
    return floor_label


def format_result(value: float) -> str:
    """Thousands-separated, at most two decimals, no trailing zeros."""
    text = f"{value:,.2f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


def calculate(expression: str) -> Calculation:
    """
    Evaluate one Calculator tool input.

    Raises:
        CalculationError: missing operands, division by zero, unsupported
            syntax, or a non-finite result.
    """
    calculation_type = detect_calculation_type(expression)

    if calculation_type == CalculationType.ROI:
        operands = extract_operands(expression)
        if len(operands) < 2:
            raise CalculationError("ROI calculation requires gain and cost values")
        result = compute_roi(operands[0], operands[1])
    elif calculation_type == CalculationType.RENTAL_YIELD:
        operands = extract_operands(expression)
        if len(operands) < 2:
            raise CalculationError("Rental yield calculation requires annual rent and property value")
        result = compute_rental_yield(operands[0], operands[1])
    else:
        result = evaluate_arithmetic(expression)

    if not math.isfinite(result):
        raise CalculationError("Invalid calculation result")

    logger.debug("calculation_completed", calculation_type=calculation_type.value, result=result)
    return Calculation(
        expression=expression,
        result=result,
        formatted=format_result(result),
        calculation_type=calculation_type,
        interpretation=interpret(result, calculation_type),
    )
