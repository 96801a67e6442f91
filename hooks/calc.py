"""Calculator tool hook for agentloop.

Usage:
    agentloop --hook hooks/calc.py

Adds a calc tool that evaluates arithmetic expressions.
"""

import ast
import operator

from agentloop.errors import ToolExecutionError
from agentloop.tools.base import Tool

_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}


def _eval(node):
    if isinstance(node, ast.Expression):
        return _eval(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _OPERATORS:
        return _OPERATORS[type(node.op)](_eval(node.left), _eval(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _OPERATORS:
        return _OPERATORS[type(node.op)](_eval(node.operand))
    raise ToolExecutionError(f"unsupported expression: {ast.dump(node)}")


class CalcTool(Tool):
    """Evaluate an arithmetic expression."""

    name = "calc"
    description = "Evaluate an arithmetic expression such as '2 + 2 * 3'."
    parameters = {
        "type": "object",
        "properties": {
            "expr": {
                "type": "string",
                "description": "The expression to evaluate",
            },
        },
        "required": ["expr"],
    }

    def execute(self, expr: str) -> str:
        try:
            tree = ast.parse(expr, mode="eval")
        except SyntaxError as e:
            raise ToolExecutionError(f"invalid expression: {expr}") from e
        try:
            result = _eval(tree)
        except ZeroDivisionError as e:
            raise ToolExecutionError("division by zero") from e
        if isinstance(result, float) and result.is_integer():
            result = int(result)
        return str(result)


# Tools to add
TOOLS = [CalcTool()]
