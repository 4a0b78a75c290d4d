"""
Shape Transformation Rules

Each layer type carries one ShapeRule. The set of rule kinds is closed; a rule
is a pure function of (input shape, parameters) that returns the output shape
plus any parameter values it derived along the way (placeholders for required
parameters nobody set, the resolved softmax axis, input channel counts).

    CONVOLUTION  (C, *S)  -> (Co, *[s / stride])
    POOLING      (C, *S)  -> (C,  *[s / stride])
    DENSE        (F,)     -> (Co,)
    POINTWISE    shape    -> shape
    FLATTEN      (a, b..) -> (a * b * ...,)
    SOFTMAX      shape    -> shape, axis resolved against the rank
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from .dim import DimTerm, Placeholder, as_dim, equivalent, is_dim_like, substitute
from .errors import DSLArithmeticError, KernelExtentError, ShapeArityError, ShapeMismatchError
from .types import ParameterSet, Shape

# Builds a placeholder for the named parameter of the layer being applied.
PlaceholderFactory = Callable[[str], Placeholder]

INPUT_CHANNELS = "input channels"
OUTPUT_CHANNELS = "output channels"
INPUT_FEATURES = "input features"
OUTPUT_FEATURES = "output features"
KERNEL_SIZE = "kernel size"
STRIDE = "stride"
AXIS = "axis"


class RuleKind(str, Enum):
    """Supported layer families."""

    CONVOLUTION = "convolution"
    POOLING = "pooling"
    DENSE = "dense"
    POINTWISE = "pointwise"
    FLATTEN = "flatten"
    SOFTMAX = "softmax"


@dataclass(frozen=True)
class RuleOutcome:
    """Result of applying a rule."""

    shape: Shape
    derived: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ShapeRule:
    """A shape transformation, tagged by family."""

    kind: RuleKind
    spatial_rank: int = 0  # convolution/pooling only

    def expected_rank(self) -> str:
        if self.kind in (RuleKind.CONVOLUTION, RuleKind.POOLING):
            return str(self.spatial_rank + 1)
        if self.kind is RuleKind.DENSE:
            return "1"
        if self.kind in (RuleKind.FLATTEN, RuleKind.SOFTMAX):
            return "at least 1"
        return "any number of"

    def accepts_rank(self, rank: int) -> bool:
        if self.kind in (RuleKind.CONVOLUTION, RuleKind.POOLING):
            return rank == self.spatial_rank + 1
        if self.kind is RuleKind.DENSE:
            return rank == 1
        if self.kind in (RuleKind.FLATTEN, RuleKind.SOFTMAX):
            return rank >= 1
        return True

    def apply(
        self,
        layer: str,
        shape: Shape,
        params: ParameterSet,
        placeholder: PlaceholderFactory,
        bindings: Optional[Mapping[str, DimTerm]] = None,
    ) -> RuleOutcome:
        """Apply the rule. `bindings` are hyperparameter values, used only for checks."""
        if not self.accepts_rank(shape.rank):
            raise ShapeArityError(layer, self.expected_rank(), shape.rank)
        outcome = _RULES[self.kind](self, layer, shape, params, placeholder, bindings or {})
        return RuleOutcome(outcome.shape.simplify(), outcome.derived)


# =============================================================================
# Family implementations
# =============================================================================


def _resolve_required(
    params: ParameterSet,
    key: str,
    placeholder: PlaceholderFactory,
    derived: dict[str, Any],
) -> DimTerm:
    value = params.get(key)
    if value is None:
        value = placeholder(key)
        derived[key] = value
    return as_dim(value)


def _check_channels(
    layer: str,
    params: ParameterSet,
    key: str,
    actual: DimTerm,
    derived: dict[str, Any],
    bindings: Mapping[str, DimTerm],
) -> None:
    expected = params.get(key)
    if expected is None:
        derived[key] = actual
    elif not equivalent(substitute(expected, bindings), substitute(actual, bindings)):
        raise ShapeMismatchError(
            None,
            as_dim(expected),
            actual,
            axis=0,
            layer=layer,
            what=f"'{key}'",
        )


def _stride(layer: str, params: ParameterSet, bindings: Mapping[str, DimTerm]) -> DimTerm:
    stride = params.dim(STRIDE, 1)
    bound = substitute(stride, bindings)
    if bound.is_concrete() and bound.concrete_value() == 0:
        raise DSLArithmeticError("stride must not be zero", layer=layer)
    return stride


def _check_kernel(
    layer: str,
    axis: int,
    extent: DimTerm,
    kernel: Optional[DimTerm],
    bindings: Mapping[str, DimTerm],
) -> None:
    """Kernel must fit the extent when both are known; otherwise the check waits."""
    if kernel is None:
        return
    bound_extent = substitute(extent, bindings)
    bound_kernel = substitute(kernel, bindings)
    if not bound_extent.is_concrete() or not bound_kernel.is_concrete():
        return
    if bound_extent.concrete_value() < bound_kernel.concrete_value():
        raise KernelExtentError(layer, axis, extent, kernel)


def _downsample(layer, shape, params, channels, bindings) -> Shape:
    stride = _stride(layer, params, bindings)
    kernel = params.dim(KERNEL_SIZE)
    spatial = shape.dims[1:]
    for axis, extent in enumerate(spatial, start=1):
        _check_kernel(layer, axis, extent, kernel, bindings)
    return Shape((channels, *(extent / stride for extent in spatial)))


def _convolution(rule, layer, shape, params, placeholder, bindings) -> RuleOutcome:
    derived: dict[str, Any] = {}
    _check_channels(layer, params, INPUT_CHANNELS, shape[0], derived, bindings)
    out_channels = _resolve_required(params, OUTPUT_CHANNELS, placeholder, derived)
    return RuleOutcome(_downsample(layer, shape, params, out_channels, bindings), derived)


def _pooling(rule, layer, shape, params, placeholder, bindings) -> RuleOutcome:
    return RuleOutcome(_downsample(layer, shape, params, shape[0], bindings))


def _dense(rule, layer, shape, params, placeholder, bindings) -> RuleOutcome:
    derived: dict[str, Any] = {}
    _check_channels(layer, params, INPUT_FEATURES, shape[0], derived, bindings)
    out_features = _resolve_required(params, OUTPUT_FEATURES, placeholder, derived)
    return RuleOutcome(Shape((out_features,)), derived)


def _pointwise(rule, layer, shape, params, placeholder, bindings) -> RuleOutcome:
    return RuleOutcome(shape)


def _flatten(rule, layer, shape, params, placeholder, bindings) -> RuleOutcome:
    return RuleOutcome(shape.product())


def _softmax(rule, layer, shape, params, placeholder, bindings) -> RuleOutcome:
    # Out-of-range axes are left as written for the validator to report.
    derived: dict[str, Any] = {}
    resolved = resolve_axis(params.get(AXIS, -1), shape.rank)
    if resolved is not None:
        derived[AXIS] = resolved
    return RuleOutcome(shape, derived)


def resolve_axis(axis: Any, rank: int) -> Optional[int]:
    """Map a possibly negative axis to 0..rank-1, or None when out of range.

    Constant dimension expressions (`0 - 1`) are folded first.
    """
    if isinstance(axis, bool):
        return None
    if is_dim_like(axis) and not isinstance(axis, int):
        term = as_dim(axis)
        if not term.is_concrete():
            return None
        axis = term.concrete_value()
    if not isinstance(axis, int):
        return None
    resolved = axis + rank if axis < 0 else axis
    if 0 <= resolved < rank:
        return resolved
    return None


_RULES = {
    RuleKind.CONVOLUTION: _convolution,
    RuleKind.POOLING: _pooling,
    RuleKind.DENSE: _dense,
    RuleKind.POINTWISE: _pointwise,
    RuleKind.FLATTEN: _flatten,
    RuleKind.SOFTMAX: _softmax,
}
