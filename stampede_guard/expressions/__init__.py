"""
Cache Expressions

Safe evaluation of key, condition and unless expressions over call
arguments and results.
"""

from .evaluator import (
    ExpressionEvaluator,
    compile_expression,
    expression_evaluator,
    translate,
)
from .functions import DEFAULT_FUNCTIONS

__all__ = [
    "ExpressionEvaluator",
    "compile_expression",
    "expression_evaluator",
    "translate",
    "DEFAULT_FUNCTIONS",
]
