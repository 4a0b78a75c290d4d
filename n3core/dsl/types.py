"""
DSL Type System

Defines:
- Shape: ordered tuple of symbolic extents, one per tensor axis
- ValueType: the kind of value a layer parameter holds
- ParameterSpec: one entry of a layer type's parameter schema
- ParameterSet: immutable name -> value mapping
- Hyperparameter: a model-level variable such as the class count `N`
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from functools import reduce
from typing import Any, Iterable, Iterator, Mapping, Optional, Union
import operator

from .dim import (
    ConcreteDimValue,
    Dim,
    DimExpr,
    DimLike,
    DimTerm,
    Placeholder,
    as_dim,
    dim_to_ir,
    equivalent,
    evaluate,
    free_symbols,
    is_dim_like,
    placeholders,
    simplify,
    substitute,
)


@dataclass(frozen=True)
class Shape:
    """Tensor shape as an ordered tuple of dimension terms.

    Examples:
        Shape.of("Ic", "H", "W")
        Shape.of(32, Dim("H") / 2, Dim("W") / 2)
    """

    dims: tuple[DimTerm, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "dims", tuple(as_dim(d) for d in self.dims))

    @classmethod
    def of(cls, *dims: Union[DimLike, str]) -> Shape:
        """Build a shape; bare strings become symbols."""
        return cls(tuple(Dim(d) if isinstance(d, str) else d for d in dims))

    @property
    def rank(self) -> int:
        return len(self.dims)

    def __len__(self) -> int:
        return len(self.dims)

    def __iter__(self) -> Iterator[DimTerm]:
        return iter(self.dims)

    def __getitem__(self, index: int) -> DimTerm:
        return self.dims[index]

    def __str__(self) -> str:
        return ", ".join(str(d) for d in self.dims)

    def __repr__(self) -> str:
        return f"Shape({self})"

    def equivalent(self, other: Shape, bindings: Optional[Mapping[str, DimLike]] = None) -> bool:
        """Axis-wise equivalence after normalization, with `bindings` substituted on both sides."""
        if self.rank != other.rank:
            return False
        return not self.mismatched_axes(other, bindings)

    def mismatched_axes(self, other: Shape, bindings: Optional[Mapping[str, DimLike]] = None) -> list[int]:
        mapping = bindings or {}
        return [
            axis
            for axis, (a, b) in enumerate(zip(self.dims, other.dims))
            if not equivalent(substitute(a, mapping), substitute(b, mapping))
        ]

    def substitute(self, mapping: Mapping[str, DimLike]) -> Shape:
        if not mapping:
            return self
        return Shape(tuple(substitute(d, mapping) for d in self.dims))

    def simplify(self) -> Shape:
        return Shape(tuple(simplify(d) for d in self.dims))

    def product(self) -> Shape:
        """Collapse every axis into one whose extent is their product."""
        if not self.dims:
            return Shape((ConcreteDimValue(1),))
        return Shape((reduce(operator.mul, self.dims),))

    def free_symbols(self) -> set[str]:
        names: set[str] = set()
        for d in self.dims:
            names |= free_symbols(d)
        return names

    def placeholders(self) -> list[Placeholder]:
        found: list[Placeholder] = []
        for d in self.dims:
            found.extend(placeholders(d))
        return found

    def is_concrete(self) -> bool:
        return all(d.is_concrete() for d in self.dims)

    def evaluate(self, bindings: Mapping[str, int]) -> tuple[Union[int, Fraction], ...]:
        return tuple(evaluate(d, bindings) for d in self.dims)

    def to_ir(self) -> list[Union[str, int]]:
        return [dim_to_ir(d) for d in self.dims]


class ValueType(str, Enum):
    """Kind of value a parameter holds."""

    REQUIRED = "required"  # No default; anything is accepted on first assignment
    BOOL = "bool"
    INT = "int"
    UINT = "uint"
    REAL = "real"
    DIM = "dim"  # Symbolic dimension expression
    STR = "str"

    @classmethod
    def of(cls, value: Any) -> ValueType:
        if value is None:
            return cls.REQUIRED
        if isinstance(value, bool):
            return cls.BOOL
        if isinstance(value, int):
            return cls.UINT if value >= 0 else cls.INT
        if isinstance(value, float):
            return cls.REAL
        if isinstance(value, str):
            return cls.STR
        if isinstance(value, ConcreteDimValue):
            return cls.UINT if value.value >= 0 else cls.INT
        if isinstance(value, (Dim, DimExpr)):
            return cls.DIM
        raise TypeError(f"Unsupported parameter value: {value!r}")

    def accepts(self, given: ValueType) -> bool:
        if self is ValueType.REQUIRED or self is given:
            return True
        return given in _WIDENING.get(self, ())


_WIDENING = {
    ValueType.UINT: (ValueType.DIM,),
    ValueType.INT: (ValueType.UINT, ValueType.DIM),
    ValueType.REAL: (ValueType.UINT, ValueType.INT),
    ValueType.DIM: (ValueType.UINT, ValueType.INT),
}


@dataclass(frozen=True)
class ParameterSpec:
    """Schema entry for one layer parameter."""

    name: str
    default: Any = None
    alias: Optional[str] = None
    description: str = ""
    value_type: Optional[ValueType] = None

    def __post_init__(self):
        if self.value_type is None:
            object.__setattr__(self, "value_type", ValueType.of(self.default))

    @property
    def required(self) -> bool:
        return self.default is None

    def matches(self, key: str) -> bool:
        return key == self.name or (self.alias is not None and key == self.alias)


class ParameterSet(Mapping[str, Any]):
    """Immutable mapping from parameter name to literal or dimension term."""

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Union[Mapping[str, Any], Iterable[tuple[str, Any]]]] = None):
        self._values = dict(values or {})

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        body = ", ".join(f"{k!r}: {_value_str(v)}" for k, v in self._values.items())
        return f"ParameterSet({{{body}}})"

    def merged(self, overrides: Mapping[str, Any]) -> ParameterSet:
        """New set with `overrides` taking precedence."""
        if not overrides:
            return self
        values = dict(self._values)
        values.update(overrides)
        return ParameterSet(values)

    def substitute(self, mapping: Mapping[str, DimLike]) -> ParameterSet:
        """Apply a symbol substitution to every dimension-valued entry."""
        if not mapping:
            return self
        return ParameterSet(
            {
                k: substitute(v, mapping) if isinstance(v, (Dim, DimExpr)) else v
                for k, v in self._values.items()
            }
        )

    def dim(self, key: str, default: Any = None) -> Optional[DimTerm]:
        """Fetch an entry as a dimension term."""
        value = self._values.get(key, default)
        if value is None:
            return None
        return as_dim(value)

    def to_dict(self) -> dict[str, Any]:
        return {k: _value_to_ir(v) for k, v in self._values.items()}


def _value_str(value: Any) -> str:
    if isinstance(value, (Dim, DimExpr, ConcreteDimValue)):
        return str(value)
    return repr(value)


def _value_to_ir(value: Any) -> Any:
    if isinstance(value, (Dim, DimExpr, ConcreteDimValue)):
        return dim_to_ir(value)
    return value


@dataclass(frozen=True)
class Hyperparameter:
    """A model-level variable.

    Example DSL:
        * N: number of classes = 10
    gives symbol "N", description "number of classes", value 10.
    """

    symbol: str
    description: str = ""
    value: Any = None

    @property
    def is_bound(self) -> bool:
        return self.value is not None and is_dim_like(self.value)
