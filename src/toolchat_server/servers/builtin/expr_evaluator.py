"""Built-in expression evaluator server.

Expressions are parsed with ``ast`` and evaluated by walking a whitelist of
arithmetic node types; nothing is passed to ``eval``.
"""

import ast
import logging
import math
import operator
from typing import Any, Callable

from mcp.server.fastmcp import FastMCP

logger = logging.getLogger(__name__)

MAX_EXPRESSION_LENGTH = 1000
MAX_EXPONENT = 1000
# Upper bound on the size of a computed power
MAX_RESULT_BITS = 10_000

_BINARY_OPERATORS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS: dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_COMPARISONS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}

_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
    "sqrt": math.sqrt,
    "log": math.log,
    "log10": math.log10,
    "exp": math.exp,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "floor": math.floor,
    "ceil": math.ceil,
}

_CONSTANTS: dict[str, float] = {"pi": math.pi, "e": math.e, "tau": math.tau}


class ExpressionError(ValueError):
    """The expression is not a supported arithmetic expression."""


def _check_power(base: Any, exponent: Any) -> None:
    if abs(exponent) > MAX_EXPONENT:
        raise ExpressionError("Exponent too large")
    if abs(base) > 1 and exponent * math.log2(abs(base)) > MAX_RESULT_BITS:
        raise ExpressionError("Result too large")


def _evaluate(node: ast.AST) -> Any:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)

    if isinstance(node, ast.Constant):
        if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            return node.value
        raise ExpressionError(f"Unsupported literal: {node.value!r}")

    if isinstance(node, ast.Name):
        if node.id in _CONSTANTS:
            return _CONSTANTS[node.id]
        raise ExpressionError(f"Unknown name: {node.id}")

    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        left = _evaluate(node.left)
        right = _evaluate(node.right)
        if isinstance(node.op, ast.Pow):
            _check_power(left, right)
        return _BINARY_OPERATORS[type(node.op)](left, right)

    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate(node.operand))

    if isinstance(node, ast.Compare):
        left = _evaluate(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            if type(op) not in _COMPARISONS:
                raise ExpressionError(f"Unsupported comparison: {type(op).__name__}")
            right = _evaluate(comparator)
            if not _COMPARISONS[type(op)](left, right):
                return False
            left = right
        return True

    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
        function = _FUNCTIONS.get(node.func.id)
        if function is None or node.keywords:
            raise ExpressionError(f"Unsupported function: {node.func.id}")
        return function(*[_evaluate(arg) for arg in node.args])

    raise ExpressionError(f"Unsupported expression element: {type(node).__name__}")


def evaluate_expression(expression: str) -> str:
    """Evaluate an arithmetic expression and return the result as text.

    Raises:
        ExpressionError: If the expression is empty, too long or unsupported
        ArithmeticError: On division by zero or overflow
    """
    expression = expression.strip()
    if not expression:
        raise ExpressionError("Expression is empty")
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ExpressionError("Expression is too long")

    try:
        tree = ast.parse(expression, mode="eval")
    except SyntaxError as e:
        raise ExpressionError(f"Invalid syntax: {e.msg}") from e

    return str(_evaluate(tree))


def create_expr_evaluator_server() -> FastMCP:
    server = FastMCP("Toolchat Expression Evaluator")

    @server.tool(
        name="expr_evaluator",
        description=(
            "Evaluates an arithmetic expression (numbers, + - * / // % **, comparisons, "
            "constants pi/e/tau and functions like sqrt, log, sin, round, min, max) "
            "and returns the result as text."
        ),
    )
    def expr_evaluator(expression: str) -> str:
        logger.info(f"Evaluating expression: {expression}")
        try:
            return evaluate_expression(expression)
        except (ExpressionError, ArithmeticError, TypeError) as e:
            raise ValueError(f"Evaluation failed: {e}") from e

    return server
