"""
Runtime formulas for search-progress dependent parameters.

Probabilities such as ``p_reassign_vnf`` or ``accept_worse`` depend on values
that only exist while the search runs (temperature, level index, per-level
transition counters). They are written as small arithmetic expressions and
compiled once, at configuration time, into plain closures over a
:class:`FormulaContext`. No expression text is interpreted in the hot loop.

Example
-------
>>> f = compile_formula("accept_worse", "t / tmax * 1.1 * (better / n)")
>>> f(FormulaContext(t=25.0, i=0, n=10, better=5, tmax=50.0))
0.275

Division by zero never raises: it evaluates to ``0.0``.
"""

from __future__ import annotations

import ast
import math
import operator
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Union

from vnfpsa.foundation.exceptions import FormulaError


@dataclass(frozen=True)
class FormulaContext:
    """Live search values a formula may reference."""

    t: float
    i: int
    n: int = 0
    better: int = 0
    incomp: int = 0
    number_of_temperature_levels: int = 1
    tmax: float = 1.0
    tmin: float = 0.0
    rho: float = 0.0
    extra: Mapping[str, float] = field(default_factory=dict)


Formula = Callable[[FormulaContext], float]
FormulaLike = Union[str, float, int, Callable[[FormulaContext], float]]

CONTEXT_NAMES = frozenset(
    {"t", "i", "n", "better", "incomp", "number_of_temperature_levels", "tmax", "tmin", "rho"}
)
_ALIASES = {
    "L": "number_of_temperature_levels",
    "numberOfTemperatureLevels": "number_of_temperature_levels",
}

_FUNCTIONS: dict[str, Callable[..., float]] = {
    "min": min,
    "max": max,
    "abs": abs,
    "sqrt": math.sqrt,
    "log": math.log,
    "exp": math.exp,
    "ceil": math.ceil,
    "floor": math.floor,
}
_MODULE_PREFIXES = frozenset({"math", "Math"})
_MAX_EXPRESSION_CHARS = 2000

_Node = Callable[[FormulaContext], Any]


def _safe_div(a: float, b: float) -> float:
    if b == 0:
        return 0.0
    return a / b


def _safe_floordiv(a: float, b: float) -> float:
    if b == 0:
        return 0.0
    return a // b


def _safe_mod(a: float, b: float) -> float:
    if b == 0:
        return 0.0
    return a % b


_BINARY: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: _safe_div,
    ast.FloorDiv: _safe_floordiv,
    ast.Mod: _safe_mod,
    ast.Pow: operator.pow,
}
_UNARY: dict[type, Callable[[Any], Any]] = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
    ast.Not: operator.not_,
}
_COMPARE: dict[type, Callable[[Any, Any], bool]] = {
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
}


class _FormulaCompiler:
    """Turns a parsed expression into nested closures."""

    def __init__(self, name: str, expression: str, constants: Mapping[str, float], extras: frozenset[str]) -> None:
        self.name = name
        self.expression = expression
        self.constants = constants
        self.extras = extras

    def fail(self, reason: str) -> FormulaError:
        return FormulaError(self.name, self.expression, reason)

    def compile(self, node: ast.AST) -> _Node:
        if isinstance(node, ast.Expression):
            return self.compile(node.body)
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
                raise self.fail(f"unsupported literal {node.value!r}")
            value = float(node.value)
            return lambda ctx: value
        if isinstance(node, ast.Name):
            return self._name(node.id)
        if isinstance(node, ast.BinOp):
            op = _BINARY.get(type(node.op))
            if op is None:
                raise self.fail(f"operator {type(node.op).__name__} is not allowed")
            left, right = self.compile(node.left), self.compile(node.right)
            return lambda ctx: op(left(ctx), right(ctx))
        if isinstance(node, ast.UnaryOp):
            uop = _UNARY.get(type(node.op))
            if uop is None:
                raise self.fail(f"operator {type(node.op).__name__} is not allowed")
            operand = self.compile(node.operand)
            return lambda ctx: uop(operand(ctx))
        if isinstance(node, ast.Compare):
            return self._compare(node)
        if isinstance(node, ast.BoolOp):
            parts = [self.compile(v) for v in node.values]
            if isinstance(node.op, ast.And):
                return lambda ctx: all(p(ctx) for p in parts)
            return lambda ctx: any(p(ctx) for p in parts)
        if isinstance(node, ast.IfExp):
            test, body, orelse = self.compile(node.test), self.compile(node.body), self.compile(node.orelse)
            return lambda ctx: body(ctx) if test(ctx) else orelse(ctx)
        if isinstance(node, ast.Call):
            return self._call(node)
        raise self.fail(f"'{type(node).__name__}' expressions are not allowed")

    def _name(self, raw: str) -> _Node:
        key = _ALIASES.get(raw, raw)
        if key in self.constants:
            value = float(self.constants[key])
            return lambda ctx: value
        if key in CONTEXT_NAMES:
            getter = operator.attrgetter(key)
            return lambda ctx: getter(ctx)
        if key in self.extras:
            return lambda ctx: ctx.extra.get(key, 0.0)
        raise self.fail(f"unknown name '{raw}'")

    def _compare(self, node: ast.Compare) -> _Node:
        left = self.compile(node.left)
        ops = []
        for op_node, comparator in zip(node.ops, node.comparators):
            op = _COMPARE.get(type(op_node))
            if op is None:
                raise self.fail(f"comparison {type(op_node).__name__} is not allowed")
            ops.append((op, self.compile(comparator)))

        def evaluate(ctx: FormulaContext) -> bool:
            current = left(ctx)
            for op, right in ops:
                value = right(ctx)
                if not op(current, value):
                    return False
                current = value
            return True

        return evaluate

    def _call(self, node: ast.Call) -> _Node:
        func = node.func
        if isinstance(func, ast.Attribute) and isinstance(func.value, ast.Name) and func.value.id in _MODULE_PREFIXES:
            fname = func.attr
        elif isinstance(func, ast.Name):
            fname = func.id
        else:
            raise self.fail("only plain function calls are allowed")
        fn = _FUNCTIONS.get(fname)
        if fn is None:
            raise self.fail(f"unknown function '{fname}'")
        if node.keywords:
            raise self.fail("keyword arguments are not allowed")
        if not node.args:
            raise self.fail(f"'{fname}' needs at least one argument")
        args = [self.compile(a) for a in node.args]
        return lambda ctx: fn(*(a(ctx) for a in args))


def compile_formula(
    name: str,
    expression: FormulaLike,
    constants: Mapping[str, float] | None = None,
    *,
    extras: frozenset[str] = frozenset(),
) -> Formula:
    """
    Compile a formula into a callable taking a :class:`FormulaContext`.

    Parameters
    ----------
    name : str
        Parameter name, used in error messages.
    expression : str | float | callable
        Expression text, a constant, or an already callable formula (returned unchanged).
    constants : Mapping[str, float], optional
        Named constants resolved at compile time.
    extras : frozenset[str]
        Additional names looked up in ``FormulaContext.extra`` at call time.

    Returns
    -------
    Formula
        Closure returning a float.

    Raises
    ------
    FormulaError
        If the expression cannot be parsed or uses anything beyond arithmetic.
    """
    if callable(expression):
        return expression
    if isinstance(expression, bool):
        raise FormulaError(name, repr(expression), "booleans are not valid formulas")
    if isinstance(expression, (int, float)):
        value = float(expression)
        return lambda ctx: value
    if not isinstance(expression, str):
        raise FormulaError(name, repr(expression), "expected an expression string, a number or a callable")
    text = expression.strip()
    if not text:
        raise FormulaError(name, expression, "empty expression")
    if len(text) > _MAX_EXPRESSION_CHARS:
        raise FormulaError(name, text[:40] + "...", "expression too long")
    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as exc:
        raise FormulaError(name, text, f"syntax error ({exc.msg})") from exc
    compiled = _FormulaCompiler(name, text, constants or {}, extras).compile(tree)

    def formula(ctx: FormulaContext) -> float:
        return float(compiled(ctx))

    formula.__name__ = f"formula_{name}"
    formula.__doc__ = text
    return formula


def evaluate_constants(
    constants: Mapping[str, FormulaLike],
    static: Mapping[str, float],
) -> dict[str, float]:
    """
    Resolve user constants in declaration order.

    Each constant may be a number or an expression over the static run
    parameters (``tmax``, ``tmin``, ``rho``, ``number_of_temperature_levels``)
    and previously declared constants, e.g. ``i1: 0.2 * L``.
    """
    resolved: dict[str, float] = {}
    for key, raw in constants.items():
        if callable(raw):
            raise FormulaError(key, repr(raw), "constants must be numbers or expressions")
        scope = {**resolved}
        for sname, svalue in static.items():
            scope.setdefault(sname, svalue)
        ctx = FormulaContext(
            t=float(static.get("tmax", 0.0)),
            i=0,
            number_of_temperature_levels=int(static.get("number_of_temperature_levels", 1)),
            tmax=float(static.get("tmax", 1.0)),
            tmin=float(static.get("tmin", 0.0)),
            rho=float(static.get("rho", 0.0)),
        )
        resolved[key] = compile_formula(key, raw, scope)(ctx)
    return resolved


__all__ = [
    "CONTEXT_NAMES",
    "Formula",
    "FormulaContext",
    "FormulaLike",
    "compile_formula",
    "evaluate_constants",
]
