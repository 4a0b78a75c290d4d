"""
Model Definitions

Lowers a parsed Program into an immutable ModelDefinition: expressions become
dimension terms, literals become plain values, and node 0 supplies the model's
input shape. Lowering problems are collected and raised together.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .ast_nodes import (
    BinaryOp,
    Expression,
    Identifier,
    LayerCall,
    Literal,
    ModelBlock,
    NodeLine,
    Program,
    UnaryOp,
    VariableDecl,
)
from .dim import ConcreteDimValue, Dim, as_dim, is_dim_like
from .errors import DSLError, ErrorCode, InlineModelError, ParameterTypeError, ValidationError
from .types import Hyperparameter, Shape


# =============================================================================
# Definition types
# =============================================================================


@dataclass(frozen=True)
class Assignment:
    """`key = value` as written; `key` may be a parameter name or alias."""

    key: str
    value: Any


@dataclass(frozen=True)
class LayerCallSpec:
    """One component of a node's composition."""

    name: str
    overrides: tuple[Assignment, ...] = ()
    repeat: int = 1


@dataclass(frozen=True)
class TypeOverride:
    """A model-level `[<LayerType>]` block."""

    layer: str
    assignments: tuple[Assignment, ...] = ()


@dataclass(frozen=True)
class NodeSpec:
    """One line of the node list.

    An inline model node has no calls of its own; `inner` holds the inline
    model's node lines and `submodel` its name.
    """

    index: int
    calls: tuple[LayerCallSpec, ...] = ()
    declared_shape: Optional[Shape] = None
    label: Optional[str] = None
    submodel: Optional[str] = None
    inner: tuple[NodeSpec, ...] = ()

    @property
    def layer_names(self) -> tuple[str, ...]:
        names = [call.name for call in self.calls]
        for inner in self.inner:
            names.extend(inner.layer_names)
        return tuple(names)


@dataclass(frozen=True)
class ModelDefinition:
    """A model as written, lowered to typed values. Immutable."""

    name: str
    imports: tuple[str, ...] = ()
    type_overrides: tuple[TypeOverride, ...] = ()
    hyperparameters: tuple[Hyperparameter, ...] = ()
    nodes: tuple[NodeSpec, ...] = ()

    @property
    def input_node(self) -> Optional[NodeSpec]:
        for node in self.nodes:
            if node.index == 0:
                return node
        return None

    @property
    def input_shape(self) -> Optional[Shape]:
        node = self.input_node
        return node.declared_shape if node is not None else None

    @property
    def referenced_layers(self) -> list[str]:
        """Layer names used by non-input nodes, in first-use order."""
        seen: dict[str, None] = {}
        for node in self.nodes:
            if node.index == 0:
                continue
            for name in node.layer_names:
                seen.setdefault(name, None)
        return list(seen)

    @classmethod
    def from_ast(cls, program: Program) -> ModelDefinition:
        return lower_program(program)


# =============================================================================
# Lowering
# =============================================================================


def lower_expression(expr: Expression, node: Optional[int] = None) -> Any:
    """Lower an expression AST to a plain value or a dimension term.

    Integers stay ints unless arithmetic touches a symbol; arithmetic over
    literals keeps the written form as a DimExpr (e.g. `64 * 7 * 7`).
    """
    if isinstance(expr, Literal):
        return expr.value

    if isinstance(expr, Identifier):
        return Dim(expr.name)

    if isinstance(expr, UnaryOp):
        operand = lower_expression(expr.operand, node)
        if expr.op == "+":
            return operand
        if expr.op != "-":
            raise DSLError(ErrorCode.E010, f"unsupported unary operator '{expr.op}'", node=node)
        if isinstance(operand, (int, float)) and not isinstance(operand, bool):
            return -operand
        return -_require_dim(operand, expr, node)

    if isinstance(expr, BinaryOp):
        left = _require_dim(lower_expression(expr.left, node), expr.left, node)
        right = _require_dim(lower_expression(expr.right, node), expr.right, node)
        if expr.op == "+":
            return left + right
        if expr.op == "-":
            return left - right
        if expr.op == "*":
            return left * right
        if expr.op == "/":
            try:
                return left / right
            except DSLError as e:
                raise e.at_node(node) if node is not None else e
        raise DSLError(ErrorCode.E010, f"unsupported operator '{expr.op}'", node=node)

    raise DSLError(ErrorCode.E010, f"cannot lower expression {expr!r}", node=node)


def _require_dim(value: Any, expr: Expression, node: Optional[int]):
    if is_dim_like(value):
        return as_dim(value)
    raise ParameterTypeError(None, str(expr), "dimension expression", value, node=node)


def _lower_axis(expr: Expression, node: int):
    value = lower_expression(expr, node)
    if not is_dim_like(value):
        raise ParameterTypeError(None, f"axis '{expr}'", "dimension expression", value, node=node)
    return as_dim(value)


def _lower_value(decl: VariableDecl, node: Optional[int]) -> Any:
    if decl.value is None:
        return None
    value = lower_expression(decl.value, node)
    if isinstance(value, ConcreteDimValue):
        return value.value
    return value


def _lower_assignments(decls: list[VariableDecl], node: Optional[int], errors: list[DSLError]):
    out = []
    for decl in decls:
        try:
            out.append(Assignment(decl.key, _lower_value(decl, node)))
        except DSLError as e:
            errors.append(e.at_location(_location_of(decl)))
    return tuple(out)


def _location_of(decl: VariableDecl):
    if decl.value is not None and decl.value.location is not None:
        return decl.value.location
    return decl.location


def _lower_call(call: LayerCall, node: int, errors: list[DSLError]) -> LayerCallSpec:
    repeat = call.repeat
    if isinstance(repeat, bool) or not isinstance(repeat, int) or repeat < 1:
        errors.append(
            ParameterTypeError(call.name, "repeat", "positive integer", repeat, node=node).at_location(call.location)
        )
        repeat = 1
    return LayerCallSpec(call.name, _lower_assignments(call.kwargs, node, errors), repeat)


def _lower_shape(line: NodeLine, node: int, errors: list[DSLError]) -> Optional[Shape]:
    if line.shape is None:
        return None
    dims = []
    for expr in line.shape:
        try:
            dims.append(_lower_axis(expr, node))
        except DSLError as e:
            errors.append(e.at_location(expr.location or line.location))
    return Shape(tuple(dims))


def _lower_inline(line: NodeLine, errors: list[DSLError]) -> tuple[NodeSpec, ...]:
    """Node lines of an inline model, reported against the enclosing node."""
    model = line.model
    if model.variables:
        errors.append(InlineModelError(model.name, "variables", node=line.index).at_location(model.location))
    if model.type_blocks:
        errors.append(InlineModelError(model.name, "type blocks", node=line.index).at_location(model.location))
    inner = []
    for inner_line in model.nodes:
        if inner_line.model is not None:
            errors.append(
                InlineModelError(model.name, "nested inline models", node=line.index).at_location(inner_line.location)
            )
            continue
        calls = tuple(_lower_call(call, line.index, errors) for call in inner_line.calls)
        inner.append(
            NodeSpec(
                index=inner_line.index,
                calls=calls,
                declared_shape=_lower_shape(inner_line, line.index, errors),
                label=inner_line.label,
            )
        )
    return tuple(inner)


def _lower_node(line: NodeLine, errors: list[DSLError]) -> NodeSpec:
    calls = [_lower_call(call, line.index, errors) for call in line.calls]
    shape = _lower_shape(line, line.index, errors)

    label = line.label
    if line.index == 0:
        # The input node's "calls" are descriptive tokens, e.g. `Input Gray image`
        if label is None and calls:
            label = " ".join(c.name for c in calls)
        calls = []

    if line.model is not None and line.index != 0:
        return NodeSpec(
            index=line.index,
            declared_shape=shape,
            label=label or line.model.name,
            submodel=line.model.name,
            inner=_lower_inline(line, errors),
        )

    return NodeSpec(index=line.index, calls=tuple(calls), declared_shape=shape, label=label)


def _lower_hyperparameters(model: ModelBlock, errors: list[DSLError]) -> tuple[Hyperparameter, ...]:
    out = []
    for decl in model.variables:
        try:
            value = _lower_value(decl, None)
        except DSLError as e:
            errors.append(e.at_location(_location_of(decl)))
            continue
        out.append(Hyperparameter(symbol=decl.key, description=decl.description, value=value))
    return tuple(out)


def lower_program(program: Program) -> ModelDefinition:
    """Build the ModelDefinition for a parsed Program.

    Raises:
        ValidationError: every lowering problem found, if any.
    """
    if program.model is None:
        raise ValidationError([DSLError(ErrorCode.E012, "the program defines no model")])

    model = program.model
    errors: list[DSLError] = []

    hyperparameters = _lower_hyperparameters(model, errors)
    overrides = tuple(
        TypeOverride(block.name, _lower_assignments(block.variables, None, errors))
        for block in model.type_blocks
    )
    nodes = tuple(_lower_node(line, errors) for line in model.nodes)

    if errors:
        raise ValidationError(errors)

    return ModelDefinition(
        name=model.name,
        imports=tuple(program.imports),
        type_overrides=overrides,
        hyperparameters=hyperparameters,
        nodes=nodes,
    )
