"""
Graph Builder

Turns a ResolvedModel into an execution plan (one PlannedNode per node line,
each an ordered tuple of layer steps with final merged parameters) and, once
shape inference has run over the plan, assembles the immutable Graph.

Parameter precedence, lowest to highest:
    layer-type default < model-level [<Type>] block < inline override at the node

A call with a repeat count becomes that many identical steps. An inline model
node becomes one chain of steps; the shapes its own node lines declare are
checked at the step boundaries where they fall.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .errors import (
    DSLError,
    MissingInputShapeError,
    NonContiguousIndexError,
    ValidationError,
)
from .ir import Graph, GraphNode
from .registry import LayerType
from .model import NodeSpec
from .resolver import ResolvedModel, merge_parameters
from .types import ParameterSet, Shape

if TYPE_CHECKING:
    from .inference import InferenceResult


@dataclass(frozen=True)
class PlannedStep:
    """A layer type with its final parameters, not yet applied to a shape."""

    layer_type: LayerType
    params: ParameterSet

    @property
    def layer(self) -> str:
        return self.layer_type.name


@dataclass(frozen=True)
class Checkpoint:
    """A shape declared inside an inline model, due after the first `after` steps."""

    after: int
    index: int
    shape: Shape


@dataclass(frozen=True)
class PlannedNode:
    index: int
    steps: tuple[PlannedStep, ...]
    declared_shape: Optional[Shape] = None
    label: Optional[str] = None
    submodel: Optional[str] = None
    checkpoints: tuple[Checkpoint, ...] = ()


class GraphBuilder:
    """Plans and assembles the graph of one resolved model."""

    def __init__(self, resolved: ResolvedModel):
        self.resolved = resolved

    def plan(self) -> tuple[PlannedNode, ...]:
        """Check node numbering and merge inline overrides into every step.

        Raises:
            NonContiguousIndexError: indices are not exactly 0..n-1.
            MissingInputShapeError: node 0 is missing or declares no shape.
            ValidationError: inline override and inline model problems, all of them.
        """
        nodes = self.resolved.definition.nodes
        self._check_indices()

        if not nodes or nodes[0].declared_shape is None:
            raise MissingInputShapeError()

        errors: list[DSLError] = []
        planned = []
        for node in nodes:
            if node.submodel is not None:
                planned.append(self._plan_inline(node, errors))
                continue
            steps = self._plan_calls(node.calls, node.index, errors)
            planned.append(PlannedNode(node.index, tuple(steps), node.declared_shape, node.label))

        if errors:
            raise ValidationError(errors)
        return tuple(planned)

    def _plan_calls(self, calls, node: int, errors: list[DSLError]) -> list[PlannedStep]:
        steps = []
        for call in calls:
            layer_type = self.resolved.layer_types[call.name]
            params = merge_parameters(
                layer_type,
                self.resolved.parameters_for(call.name),
                call.overrides,
                "inline overrides",
                errors,
                node=node,
            )
            steps.extend(PlannedStep(layer_type, params) for _ in range(call.repeat))
        return steps

    def _plan_inline(self, node: NodeSpec, errors: list[DSLError]) -> PlannedNode:
        """Flatten an inline model into one step chain, keeping its declared shapes as checkpoints."""
        try:
            self._check_indices(node.inner, start=1, outer=node.index)
        except NonContiguousIndexError as e:
            errors.append(e.at_node(node.index, node.submodel))
            return PlannedNode(node.index, (), node.declared_shape, node.label, node.submodel)

        steps: list[PlannedStep] = []
        checkpoints = []
        for inner in node.inner:
            steps.extend(self._plan_calls(inner.calls, node.index, errors))
            if inner.declared_shape is not None:
                checkpoints.append(Checkpoint(len(steps), inner.index, inner.declared_shape))
        return PlannedNode(
            node.index,
            tuple(steps),
            node.declared_shape,
            node.label,
            node.submodel,
            tuple(checkpoints),
        )

    def _check_indices(self, nodes=None, start: int = 0, outer: Optional[int] = None) -> None:
        if nodes is None:
            nodes = self.resolved.definition.nodes
        for expected, node in enumerate(nodes, start=start):
            if node.index != expected:
                raise NonContiguousIndexError(expected, node.index, node=outer)

    def input_symbols(self) -> tuple[str, ...]:
        """Symbols introduced by the input node that are not hyperparameters."""
        shape = self.resolved.definition.input_shape
        if shape is None:
            return ()
        seen: dict[str, None] = {}
        for dim in shape:
            for name in sorted(dim.free_symbols()):
                if name not in self.resolved.hyperparameters:
                    seen.setdefault(name, None)
        return tuple(seen)

    def assemble(self, inference: InferenceResult) -> Graph:
        """Build the Graph from the inference result of this builder's plan."""
        nodes = tuple(
            GraphNode(
                index=node.index,
                steps=node.steps,
                input_shape=node.input_shape,
                inferred_shape=node.inferred_shape,
                output_shape=node.output_shape,
                declared_shape=node.declared_shape,
                label=node.label,
                submodel=node.submodel,
            )
            for node in inference.nodes
        )
        return Graph(
            name=self.resolved.name,
            nodes=nodes,
            hyperparameters=tuple(self.resolved.hyperparameters.values()),
            input_symbols=self.input_symbols(),
        )
