"""
Cache Expression Evaluator

Evaluates key, condition and unless expressions against a CallContext
without using eval() or exec().

Expressions are written in a small SpEL-compatible dialect that is
translated to Python source and parsed with ``ast``; only whitelisted node
types are evaluated.

Supported:
- Bound names, with or without a leading ``#``: ``isbn``, ``#isbn``
- Property access and subscripts: ``book.author.country``, ``tags[0]``
- Method-style predicates: ``isbn.length()``, ``result.isEmpty()``,
  ``book.is_expensive()``
- Registered functions: ``paramLen(isbn) > 10``, ``decimal('50')``
- Boolean: ``&&``, ``||``, ``!``, ``and``, ``or``, ``not``

Precedence: ``!`` applies to the operand right after it, so
``!#a == #b`` means ``(!#a) == #b``; wrap the comparison to negate it:
``!(#a == #b)``. The ``not`` keyword keeps Python precedence and negates
the whole comparison. ``!`` is carried as ``~`` internally, so ``~`` is
also a logical not.
- Comparisons: ``== != < <= > >= in``, ``not in``
- Arithmetic ``+ - * / %`` and string concatenation with ``+``
- Literals: quoted strings, numbers, ``null``, ``true``, ``false``

Example:
    evaluator = ExpressionEvaluator()
    context = CallContext({"isbn": "978-0134685991"})

    evaluator.evaluate_boolean("#isbn != null && #isbn.length() > 10", context)
    # Returns: True
"""

import ast
import operator
import re
from collections.abc import Mapping
from decimal import Decimal, DivisionByZero, InvalidOperation
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

from ..domain.cache.exceptions import ExpressionError
from ..domain.cache.value_objects import CallContext, to_canonical_string
from .functions import (
    DEFAULT_FUNCTIONS,
    builtin_method,
    is_builtin_value,
    to_snake_case,
)

# Maximum expression complexity
MAX_DEPTH = 32
MAX_NODES = 256

_TOKEN = re.compile(
    r"""
    (?P<squote>'(?:[^']|'')*')
  | (?P<dquote>"(?:[^"\\]|\\.)*")
  | (?P<and>&&)
  | (?P<or>\|\|)
  | (?P<ne>!=)
  | (?P<not>!)
  | (?P<var>\#[A-Za-z_][A-Za-z0-9_]*)
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<other>.)
    """,
    re.VERBOSE | re.DOTALL,
)

_LITERAL_NAMES = {"null": "None", "true": "True", "false": "False"}

COMPARE_OPS: Dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

ARITHMETIC_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}


def translate(expression: str) -> str:
    """Translate the expression dialect into Python expression source."""
    parts = []
    previous = ""
    for match in _TOKEN.finditer(expression):
        kind = match.lastgroup
        text = match.group()

        if kind == "squote":
            text = repr(text[1:-1].replace("''", "'"))
        elif kind == "and":
            text = " and "
        elif kind == "or":
            text = " or "
        elif kind == "not":
            # binds to its operand, tighter than comparisons
            text = "~"
        elif kind == "var":
            text = text[1:]
        elif kind == "name" and previous != ".":
            text = _LITERAL_NAMES.get(text, text)

        parts.append(text)
        if not text.isspace():
            previous = text.strip() or previous
    return "".join(parts).strip()


@lru_cache(maxsize=1024)
def compile_expression(expression: str) -> ast.Expression:
    """Parse an expression once; evaluation never mutates the tree."""
    source = translate(expression)
    try:
        return ast.parse(source, mode="eval")
    except SyntaxError as e:
        raise ExpressionError(
            f"Invalid expression syntax: {e.msg}", expression=expression
        ) from e


def _as_decimal(value: Any) -> Any:
    if isinstance(value, float):
        return Decimal(repr(value))
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _coerce_numbers(left: Any, right: Any):
    """Align float and Decimal operands so arithmetic stays exact."""
    if _is_number(left) and _is_number(right):
        if isinstance(left, Decimal) or isinstance(right, Decimal):
            return _as_decimal(left), _as_decimal(right)
    return left, right


class ExpressionEvaluator:
    """
    Safe evaluator for cache expressions.

    Side-effect-free for builtin values: only whitelisted, non-mutating
    methods can be called on strings, numbers and collections. Objects
    supplied by the application may expose their own public predicate
    methods.
    """

    def __init__(self, functions: Optional[Dict[str, Callable[..., Any]]] = None):
        self.functions: Dict[str, Callable[..., Any]] = dict(DEFAULT_FUNCTIONS)
        if functions:
            self.functions.update(functions)

    def register_function(self, name: str, func: Callable[..., Any]) -> None:
        """Make ``func`` callable from expressions as ``name(...)``."""
        self.functions[name] = func

    def evaluate(self, expression: str, context: Mapping) -> Any:
        """
        Evaluate an expression.

        Args:
            expression: Non-empty expression string
            context: Bound names, usually a CallContext

        Returns:
            Result of the expression

        Raises:
            ExpressionError: If the expression is invalid, references an
                unbound name or fails during evaluation
        """
        if not expression or not expression.strip():
            raise ExpressionError("Expression cannot be empty", expression=expression)

        tree = compile_expression(expression)
        state = _EvaluationState(expression, context, self.functions)
        try:
            return state.eval_node(tree.body, depth=0)
        except ExpressionError:
            raise
        except Exception as e:
            raise ExpressionError(
                f"Evaluation error: {e}", expression=expression, original_error=e
            ) from e

    def evaluate_boolean(self, expression: str, context: Mapping) -> bool:
        """Evaluate an expression that must produce a boolean."""
        value = self.evaluate(expression, context)
        if not isinstance(value, bool):
            raise ExpressionError(
                f"Expression did not evaluate to a boolean (got {type(value).__name__})",
                expression=expression,
            )
        return value


class _EvaluationState:
    """Per-evaluation walker; holds the node limit."""

    def __init__(
        self,
        expression: str,
        context: Mapping,
        functions: Dict[str, Callable[..., Any]],
    ):
        self.expression = expression
        self.context = context
        self.functions = functions
        self.node_count = 0

    def error(self, message: str) -> ExpressionError:
        return ExpressionError(message, expression=self.expression)

    def eval_node(self, node: ast.AST, depth: int) -> Any:
        """Recursively evaluate an AST node."""
        if depth > MAX_DEPTH:
            raise self.error("Expression too deeply nested")

        self.node_count += 1
        if self.node_count > MAX_NODES:
            raise self.error("Expression too complex")

        if isinstance(node, ast.Constant):
            return self._eval_constant(node)
        if isinstance(node, ast.Name):
            return self._eval_name(node)
        if isinstance(node, ast.Attribute):
            target = self.eval_node(node.value, depth + 1)
            return self._resolve_property(target, node.attr)
        if isinstance(node, ast.Call):
            return self._eval_call(node, depth)
        if isinstance(node, ast.BoolOp):
            return self._eval_boolop(node, depth)
        if isinstance(node, ast.UnaryOp):
            return self._eval_unaryop(node, depth)
        if isinstance(node, ast.BinOp):
            return self._eval_binop(node, depth)
        if isinstance(node, ast.Compare):
            return self._eval_compare(node, depth)
        if isinstance(node, ast.IfExp):
            test = self.eval_node(node.test, depth + 1)
            branch = node.body if test else node.orelse
            return self.eval_node(branch, depth + 1)
        if isinstance(node, ast.Subscript):
            return self._eval_subscript(node, depth)
        if isinstance(node, (ast.List, ast.Tuple)):
            return tuple(self.eval_node(elt, depth + 1) for elt in node.elts)

        raise self.error(f"Unsupported expression type: {type(node).__name__}")

    def _eval_constant(self, node: ast.Constant) -> Any:
        value = node.value
        if isinstance(value, float):
            return Decimal(repr(value))
        if value is None or isinstance(value, (bool, int, str)):
            return value
        raise self.error(f"Unsupported literal: {value!r}")

    def _eval_name(self, node: ast.Name) -> Any:
        name = node.id
        if name in self.context:
            return self.context[name]
        raise self.error(f"Unbound name '{name}'")

    def _resolve_property(self, target: Any, name: str) -> Any:
        """Property access: mapping key, attribute, then snake_case attribute."""
        if name.startswith("_"):
            raise self.error(f"Access to private attributes is not allowed: {name}")
        if target is None:
            raise self.error(f"Cannot access property '{name}' on null")

        if isinstance(target, Mapping):
            for candidate in (name, to_snake_case(name)):
                if candidate in target:
                    return target[candidate]
            return None

        if is_builtin_value(target):
            raise self.error(
                f"Property '{name}' is not available on {type(target).__name__}"
            )

        for candidate in (name, to_snake_case(name)):
            if hasattr(target, candidate):
                return getattr(target, candidate)

        raise self.error(
            f"Property '{name}' not found on {type(target).__name__}"
        )

    def _eval_call(self, node: ast.Call, depth: int) -> Any:
        if node.keywords:
            raise self.error("Keyword arguments are not supported")

        args = [self.eval_node(arg, depth + 1) for arg in node.args]

        if isinstance(node.func, ast.Name):
            func = self.functions.get(node.func.id)
            if func is None:
                raise self.error(f"Unknown function '{node.func.id}'")
            return func(*args)

        if isinstance(node.func, ast.Attribute):
            target = self.eval_node(node.func.value, depth + 1)
            return self._invoke_method(target, node.func.attr, args)

        raise self.error("Only named functions and methods can be called")

    def _invoke_method(self, target: Any, name: str, args: list) -> Any:
        if name.startswith("_"):
            raise self.error(f"Access to private methods is not allowed: {name}")
        if target is None:
            raise self.error(f"Cannot call method '{name}()' on null")

        if is_builtin_value(target):
            method = builtin_method(target, name)
            if method is None:
                raise self.error(
                    f"Method '{name}()' is not allowed on {type(target).__name__}"
                )
            return method(target, *args)

        for candidate in (name, to_snake_case(name)):
            if not hasattr(target, candidate):
                continue
            member = getattr(target, candidate)
            if callable(member):
                return member(*args)
            if not args:
                # property exposed where a getter-style call was written
                return member

        raise self.error(f"Method '{name}()' not found on {type(target).__name__}")

    def _eval_boolop(self, node: ast.BoolOp, depth: int) -> bool:
        # Short-circuit evaluation
        if isinstance(node.op, ast.And):
            for value_node in node.values:
                if not self.eval_node(value_node, depth + 1):
                    return False
            return True
        for value_node in node.values:
            if self.eval_node(value_node, depth + 1):
                return True
        return False

    def _eval_unaryop(self, node: ast.UnaryOp, depth: int) -> Any:
        operand = self.eval_node(node.operand, depth + 1)
        if isinstance(node.op, (ast.Not, ast.Invert)):
            return not operand
        if isinstance(node.op, ast.USub):
            return -operand
        if isinstance(node.op, ast.UAdd):
            return +operand
        raise self.error(f"Unsupported operator: {type(node.op).__name__}")

    def _eval_binop(self, node: ast.BinOp, depth: int) -> Any:
        op_type = type(node.op)
        if op_type not in ARITHMETIC_OPS:
            raise self.error(f"Unsupported operator: {op_type.__name__}")

        left = self.eval_node(node.left, depth + 1)
        right = self.eval_node(node.right, depth + 1)

        if op_type is ast.Add and (isinstance(left, str) or isinstance(right, str)):
            return to_canonical_string(left) + to_canonical_string(right)

        left, right = _coerce_numbers(left, right)
        if (
            op_type is ast.Div
            and isinstance(left, int)
            and isinstance(right, int)
            and not isinstance(left, bool)
            and not isinstance(right, bool)
        ):
            left = Decimal(left)

        try:
            return ARITHMETIC_OPS[op_type](left, right)
        except (ZeroDivisionError, DivisionByZero, InvalidOperation) as e:
            raise ExpressionError(
                "Division by zero", expression=self.expression, original_error=e
            ) from e

    def _eval_compare(self, node: ast.Compare, depth: int) -> bool:
        """Evaluate a comparison chain."""
        left = self.eval_node(node.left, depth + 1)

        for op, comparator in zip(node.ops, node.comparators):
            compare = COMPARE_OPS.get(type(op))
            if compare is None:
                raise self.error(f"Unsupported comparison: {type(op).__name__}")

            right = self.eval_node(comparator, depth + 1)
            a, b = _coerce_numbers(left, right)
            if not compare(a, b):
                return False
            left = right

        return True

    def _eval_subscript(self, node: ast.Subscript, depth: int) -> Any:
        value = self.eval_node(node.value, depth + 1)
        if isinstance(node.slice, ast.Slice):
            raise self.error("Slices are not supported")
        index = self.eval_node(node.slice, depth + 1)

        if value is None:
            raise self.error("Cannot index into null")
        if isinstance(value, Mapping):
            return value.get(index)
        try:
            return value[index]
        except (IndexError, KeyError, TypeError) as e:
            raise ExpressionError(
                f"Invalid index {index!r}", expression=self.expression, original_error=e
            ) from e


# Default evaluator shared by key resolution and predicates
expression_evaluator = ExpressionEvaluator()
