"""
First-Class Symbolic Dimensions

Typed dimension objects with operator overloading for building the symbolic
extents that shapes are made of.

Usage:
    from n3core.dsl.dim import Dim

    H, W = Dim("H"), Dim("W")
    flat = 64 * (H / 4) * (W / 4)      # DimExpr, printed as written
    flat.equivalent((W / 4) * (H / 4) * 64)   # True
    flat.substitute({"H": 28, "W": 28}).simplify()   # ConcreteDimValue(3136)

Expressions are immutable trees. `==` compares the tree exactly, so the
author's form survives for display; `equivalent()` compares the normalized
rational form, computed with sympy.
"""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
from functools import lru_cache
from typing import Any, Mapping, Union

import sympy as sp

from .errors import DSLArithmeticError, UndeclaredSymbolError


class _DimArithmetic:
    """Operator overloads shared by every dimension term."""

    def __add__(self, other: DimLike) -> DimExpr:
        return DimExpr("+", self, _to_dim_term(other))

    def __radd__(self, other: DimLike) -> DimExpr:
        return DimExpr("+", _to_dim_term(other), self)

    def __sub__(self, other: DimLike) -> DimExpr:
        return DimExpr("-", self, _to_dim_term(other))

    def __rsub__(self, other: DimLike) -> DimExpr:
        return DimExpr("-", _to_dim_term(other), self)

    def __mul__(self, other: DimLike) -> DimExpr:
        return DimExpr("*", self, _to_dim_term(other))

    def __rmul__(self, other: DimLike) -> DimExpr:
        return DimExpr("*", _to_dim_term(other), self)

    def __truediv__(self, other: DimLike) -> DimExpr:
        return _divide(self, _to_dim_term(other))

    def __rtruediv__(self, other: DimLike) -> DimExpr:
        return _divide(_to_dim_term(other), self)

    def __neg__(self) -> DimTerm:
        if isinstance(self, ConcreteDimValue):
            return ConcreteDimValue(-self.value)
        return DimExpr("-", ConcreteDimValue(0), self)

    # Normalized views ---------------------------------------------------------

    def normal_form(self) -> sp.Expr:
        return normal_form(self)

    def equivalent(self, other: DimLike) -> bool:
        return equivalent(self, other)

    def free_symbols(self) -> set[str]:
        return free_symbols(self)

    def substitute(self, mapping: Mapping[str, DimLike]) -> DimTerm:
        return substitute(self, mapping)

    def simplify(self) -> DimTerm:
        return simplify(self)

    def evaluate(self, bindings: Mapping[str, int]) -> Union[int, Fraction]:
        return evaluate(self, bindings)

    def is_concrete(self) -> bool:
        return not normal_form(self).free_symbols

    def concrete_value(self) -> Union[int, Fraction]:
        return _as_number(normal_form(self))


@dataclass(frozen=True, eq=True)
class ConcreteDimValue(_DimArithmetic):
    """A concrete integer dimension value."""

    value: int

    def __str__(self) -> str:
        return str(self.value)

    def __repr__(self) -> str:
        return f"ConcreteDimValue({self.value})"

    def to_expr_string(self) -> str:
        return str(self.value)


@dataclass(frozen=True, eq=True)
class Dim(_DimArithmetic):
    """A symbolic dimension that can participate in expressions.

    Args:
        name: The hyperparameter or input-axis name this dimension binds to.
    """

    name: str

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"Dim({self.name!r})"

    def to_expr_string(self) -> str:
        return self.name


@dataclass(frozen=True, eq=True)
class Placeholder(Dim):
    """A dimension a shape rule could not know yet.

    Minted for required layer parameters that were never given a value (e.g.
    the output channels of a convolution) and bound later by matching against
    the shape the author declared for the node.
    """

    node: int = -1
    layer: str = ""
    param: str = ""

    def __repr__(self) -> str:
        return f"Placeholder({self.name!r})"


# Type aliases
DimTerm = Union[Dim, ConcreteDimValue, "DimExpr"]
DimLike = Union[Dim, "DimExpr", ConcreteDimValue, int]


def _to_dim_term(value: DimLike) -> DimTerm:
    """Convert a dimension-like value to a DimTerm."""
    if isinstance(value, (Dim, DimExpr, ConcreteDimValue)):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return ConcreteDimValue(value)
    raise TypeError(f"Cannot convert {type(value).__name__} to dimension term")


def as_dim(value: DimLike) -> DimTerm:
    """Public spelling of the DimLike -> DimTerm conversion."""
    return _to_dim_term(value)


def is_dim_like(value) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (Dim, DimExpr, ConcreteDimValue, int))


def _divide(left: DimTerm, right: DimTerm) -> DimExpr:
    if _is_zero(to_sympy(right)):
        raise DSLArithmeticError(f"division by zero in '{left} / {right}'")
    return DimExpr("/", left, right)


# Operator precedence for parenthesization
_PRECEDENCE = {"+": 1, "-": 1, "*": 2, "/": 2}


def _needs_parentheses(inner_op: str, outer_op: str, is_left: bool) -> bool:
    """Determine if parentheses are needed based on precedence."""
    inner_prec = _PRECEDENCE.get(inner_op, 0)
    outer_prec = _PRECEDENCE.get(outer_op, 0)

    if inner_prec < outer_prec:
        return True
    # Right-associativity issues for - and /
    if inner_prec == outer_prec and not is_left and outer_op in ("-", "/"):
        return True
    return False


def _term_to_string(term: DimTerm, parent_op: str, is_left: bool) -> str:
    """Convert a term to string with appropriate parentheses."""
    if isinstance(term, (Dim, ConcreteDimValue)):
        text = term.to_expr_string()
        if isinstance(term, ConcreteDimValue) and term.value < 0 and not is_left:
            return f"({text})"
        return text
    if isinstance(term, DimExpr):
        needs_parens = _needs_parentheses(term.op, parent_op, is_left)
        inner = term.to_expr_string()
        return f"({inner})" if needs_parens else inner
    return str(term)


@dataclass(frozen=True, eq=True)
class DimExpr(_DimArithmetic):
    """An expression combining dimensions.

    Created by arithmetic operations on Dim objects:
        expr = Cout * (H / stride) * (W / stride)

    Internally represented as a binary tree of operations.
    """

    op: str  # "+", "-", "*", "/"
    left: DimTerm
    right: DimTerm

    def __post_init__(self):
        if self.op not in _PRECEDENCE:
            raise ValueError(f"Unknown operator: {self.op}")

    def __str__(self) -> str:
        return self.to_expr_string()

    def __repr__(self) -> str:
        return f"DimExpr({self.op!r}, {self.left!r}, {self.right!r})"

    def to_expr_string(self) -> str:
        """Render with minimal parentheses based on operator precedence."""
        left_str = _term_to_string(self.left, self.op, is_left=True)
        right_str = _term_to_string(self.right, self.op, is_left=False)
        return f"{left_str} {self.op} {right_str}"

    def get_referenced_dims(self) -> set[str]:
        """Return all dimension names referenced in this expression."""
        return free_symbols(self)


# =============================================================================
# Normalization and rewriting
# =============================================================================


@lru_cache(maxsize=4096)
def to_sympy(term: DimTerm) -> sp.Expr:
    """Lower a term to a sympy expression. Memoized by value; terms are immutable."""
    if isinstance(term, ConcreteDimValue):
        return sp.Integer(term.value)
    if isinstance(term, Dim):
        return sp.Symbol(term.name)
    if isinstance(term, DimExpr):
        left = to_sympy(term.left)
        right = to_sympy(term.right)
        if term.op == "+":
            return left + right
        if term.op == "-":
            return left - right
        if term.op == "*":
            return left * right
        if _is_zero(right):
            raise DSLArithmeticError(f"division by zero in '{term}'")
        return left / right
    raise TypeError(f"Cannot lower {type(term).__name__} to sympy")


def _is_zero(expr: sp.Expr) -> bool:
    return sp.cancel(expr) == 0


@lru_cache(maxsize=4096)
def normal_form(term: DimTerm) -> sp.Expr:
    """Canonical rational form: one reduced fraction of expanded polynomials."""
    return sp.cancel(to_sympy(term))


def equivalent(a: DimLike, b: DimLike) -> bool:
    """Equality up to commutative, associative and rational normalization."""
    a, b = _to_dim_term(a), _to_dim_term(b)
    if a == b:
        return True
    return _is_zero(to_sympy(a) - to_sympy(b))


def free_symbols(term: DimLike) -> set[str]:
    """Names of every symbol referenced by the term, as written."""
    term = _to_dim_term(term)
    if isinstance(term, Dim):
        return {term.name}
    if isinstance(term, DimExpr):
        return free_symbols(term.left) | free_symbols(term.right)
    return set()


def resolve_bindings(values: Mapping[str, Any]) -> dict[str, DimTerm]:
    """Dimension-valued bindings with references between them substituted away.

    Values that are not dimensions (rates, flags, names) are dropped. Entries
    that refer to each other (`M = N * 2`) are resolved; a cycle stops after one
    pass per entry.
    """
    mapping = {k: _to_dim_term(v) for k, v in values.items() if is_dim_like(v)}
    for _ in range(len(mapping)):
        pending = [k for k, v in mapping.items() if free_symbols(v) & mapping.keys()]
        if not pending:
            break
        for key in pending:
            mapping[key] = substitute(mapping[key], mapping)
    return mapping


def placeholders(term: DimLike) -> list[Placeholder]:
    term = _to_dim_term(term)
    if isinstance(term, Placeholder):
        return [term]
    if isinstance(term, DimExpr):
        return placeholders(term.left) + placeholders(term.right)
    return []


def substitute(term: DimLike, mapping: Mapping[str, DimLike]) -> DimTerm:
    """Replace symbols by name, returning a new term. Unmapped symbols stay."""
    term = _to_dim_term(term)
    if isinstance(term, Dim):
        if term.name in mapping:
            return _to_dim_term(mapping[term.name])
        return term
    if isinstance(term, DimExpr):
        left = substitute(term.left, mapping)
        right = substitute(term.right, mapping)
        if left is term.left and right is term.right:
            return term
        if term.op == "/":
            return _divide(left, right)
        return DimExpr(term.op, left, right)
    return term


def _as_number(expr: sp.Expr) -> Union[int, Fraction]:
    """Exact Python number for a constant sympy expression."""
    if expr.free_symbols or not expr.is_Rational:
        raise ValueError(f"Expression is not a constant: {expr}")
    if expr.q == 1:
        return int(expr.p)
    return Fraction(int(expr.p), int(expr.q))


def simplify(term: DimLike) -> DimTerm:
    """Fold constant sub-trees and trivial identities, keep everything else as written."""
    term = _to_dim_term(term)
    if not isinstance(term, DimExpr):
        return term

    left = simplify(term.left)
    right = simplify(term.right)
    op = term.op

    if isinstance(left, ConcreteDimValue) and isinstance(right, ConcreteDimValue):
        value = _as_number(normal_form(DimExpr(op, left, right) if op != "/" else _divide(left, right)))
        if isinstance(value, int):
            return ConcreteDimValue(value)
        return DimExpr(op, left, right)

    lv = left.value if isinstance(left, ConcreteDimValue) else None
    rv = right.value if isinstance(right, ConcreteDimValue) else None
    if op == "+":
        if lv == 0:
            return right
        if rv == 0:
            return left
    elif op == "-":
        if rv == 0:
            return left
    elif op == "*":
        if lv == 0 or rv == 0:
            return ConcreteDimValue(0)
        if lv == 1:
            return right
        if rv == 1:
            return left
    elif op == "/":
        if rv == 1:
            return left
        return _divide(left, right)
    return DimExpr(op, left, right)


def evaluate(term: DimLike, bindings: Mapping[str, int]) -> Union[int, Fraction]:
    """Evaluate to an exact number. Raises if a symbol has no binding."""
    term = _to_dim_term(term)
    missing = sorted(free_symbols(term) - set(bindings))
    if missing:
        raise UndeclaredSymbolError(missing[0])
    return _as_number(normal_form(substitute(term, bindings)))


# =============================================================================
# Utility Functions
# =============================================================================


def dim_to_ir(d: Union[Dim, DimExpr, ConcreteDimValue, int]) -> Union[str, int]:
    """Convert a dimension to plain data (string or int)."""
    if isinstance(d, int):
        return d
    if isinstance(d, ConcreteDimValue):
        return d.value
    if isinstance(d, (Dim, DimExpr)):
        return d.to_expr_string()
    raise TypeError(f"Cannot convert {type(d).__name__} to IR dimension")
