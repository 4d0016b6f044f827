"""
Formulas of computed measures.

Formulas are parsed by the `expressions` library. Two compilers walk the
parsed formula: one regenerates its text (validating every construct and
optionally renaming a variable), the other evaluates it over whole measure
arrays at once with numpy.
"""

from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
from expressions import Compiler, inspect_variables

from flatcube.errors import FormulaError, UnknownMeasureReferenceError

BINARY_OPERATORS: Dict[str, Callable] = {
    "+": np.add,
    "-": np.subtract,
    "*": np.multiply,
    "/": np.true_divide,
    "//": np.floor_divide,
    "%": np.mod,
    "**": np.power,
    "==": np.equal,
    "!=": np.not_equal,
    "<": np.less,
    "<=": np.less_equal,
    ">": np.greater,
    ">=": np.greater_equal,
    "and": np.logical_and,
    "or": np.logical_or,
}

UNARY_OPERATORS: Dict[str, Callable] = {
    "+": np.positive,
    "-": np.negative,
    "not": np.logical_not,
}

# name -> (function, number of arguments)
FUNCTIONS: Dict[str, tuple] = {
    "abs": (np.abs, 1),
    "sqrt": (np.sqrt, 1),
    "exp": (np.exp, 1),
    "log": (np.log, 1),
    "floor": (np.floor, 1),
    "ceil": (np.ceil, 1),
    "round": (np.round, 1),
    "min": (np.minimum, 2),
    "max": (np.maximum, 2),
}

Value = Union[float, np.ndarray]


def _check_binary(operator: str):
    if operator not in BINARY_OPERATORS:
        raise FormulaError(f"Unsupported operator: {operator}")


def _check_unary(operator: str):
    if operator not in UNARY_OPERATORS:
        raise FormulaError(f"Unsupported operator: {operator}")


def _check_function(name: str, args) -> Callable:
    if name not in FUNCTIONS:
        raise FormulaError(f"Unsupported function call: {name}")
    function, arity = FUNCTIONS[name]
    if len(args) != arity:
        raise FormulaError(f"{name}() takes {arity} argument(s)")
    return function


def _check_literal(literal):
    if isinstance(literal, bool) or not isinstance(literal, (int, float)):
        raise FormulaError(f"Unsupported constant: {literal!r}")


class _TextCompiler(Compiler):
    """
    Regenerate the formula text, renaming one variable if asked.

    Every node compiles to (text, is_compound); compound operands of an
    operator are parenthesized.
    """

    def __init__(self, old: Optional[str] = None, new: Optional[str] = None):
        super().__init__()
        self.old = old
        self.new = new
        self.variables: List[str] = []

    def compile_literal(self, context, literal) -> Tuple[str, bool]:
        _check_literal(literal)
        return repr(literal), False

    def compile_variable(self, context, variable) -> Tuple[str, bool]:
        name = self.new if variable.name == self.old else variable.name
        if name not in self.variables:
            self.variables.append(name)
        return name, False

    def compile_binary(self, context, operator, op1, op2) -> Tuple[str, bool]:
        _check_binary(operator)
        return f"{self._operand(op1)} {operator} {self._operand(op2)}", True

    def compile_unary(self, context, operator, operand) -> Tuple[str, bool]:
        _check_unary(operator)
        separator = " " if operator == "not" else ""
        return f"{operator}{separator}{self._operand(operand)}", True

    def compile_function(self, context, func, args) -> Tuple[str, bool]:
        _check_function(func.name, args)
        return f"{func.name}({', '.join(text for text, _ in args)})", False

    @staticmethod
    def _operand(node: Tuple[str, bool]) -> str:
        text, compound = node
        return f"({text})" if compound else text


class _NumpyCompiler(Compiler):
    """Evaluate a formula with the context's arrays bound to its variables."""

    def compile_literal(self, context, literal) -> Value:
        _check_literal(literal)
        return float(literal)

    def compile_variable(self, context, variable) -> Value:
        if variable.name not in context:
            raise UnknownMeasureReferenceError(variable.name)
        return context[variable.name]

    def compile_binary(self, context, operator, op1, op2) -> Value:
        _check_binary(operator)
        return BINARY_OPERATORS[operator](op1, op2)

    def compile_unary(self, context, operator, operand) -> Value:
        _check_unary(operator)
        return UNARY_OPERATORS[operator](operand)

    def compile_function(self, context, func, args) -> Value:
        return _check_function(func.name, args)(*args)


def _compile_text(text: str, old: Optional[str] = None,
                  new: Optional[str] = None) -> Tuple[str, List[str]]:
    compiler = _TextCompiler(old, new)
    try:
        result, _ = compiler.compile(text, None)
    except (FormulaError, UnknownMeasureReferenceError):
        raise
    except Exception as e:
        # The parser raises its own exception types for malformed text.
        raise FormulaError(f"Invalid formula '{text}': {e}") from e
    return result, compiler.variables


class Expression:
    """
    A parsed formula.

    Example:
        >>> expression = Expression.parse("revenue / units")
        >>> expression.variables()
        ['revenue', 'units']
        >>> float(expression.evaluate({"revenue": 10.0, "units": 4.0}))
        2.5
    """

    def __init__(self, text: str, variables: List[str]):
        self.text = text
        self._variables = variables

    @classmethod
    def parse(cls, text: str) -> "Expression":
        canonical, variables = _compile_text(text.strip())
        return cls(canonical, variables)

    def variables(self) -> List[str]:
        """Free variables in order of first appearance."""
        return list(self._variables)

    def references(self) -> set:
        """Free variables as reported by the expression inspector."""
        return set(inspect_variables(self.text))

    def substitute(self, old: str, new: str) -> "Expression":
        """Expression with every reference to `old` renamed to `new`."""
        text, variables = _compile_text(self.text, old, new)
        return Expression(text, variables)

    def evaluate(self, context: Mapping[str, Value]) -> Value:
        """Evaluate with numpy semantics; arrays in the context evaluate cell-wise."""
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            return _NumpyCompiler().compile(self.text, context)

    def __repr__(self):
        return f"Expression({self.text!r})"
