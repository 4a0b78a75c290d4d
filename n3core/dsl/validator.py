"""
Graph Validation

A final walk over the assembled Graph. Checks:
1. Every symbol in a shape is a hyperparameter or an input symbol
   (placeholders nobody bound show up here too)
2. Every composed step is backed by a layer type
3. Consecutive nodes agree on rank, and every step accepts its input rank
4. Axis-selecting parameters index into the shape they apply to
"""

from typing import List

from .dim import free_symbols, is_dim_like
from .errors import (
    AxisRangeError,
    DSLError,
    NotFoundError,
    ShapeArityError,
    UndeclaredSymbolError,
    ValidationError,
)
from .ir import Graph, GraphNode
from .rules import resolve_axis


class GraphValidator:
    """Validates a Graph, collecting every diagnostic."""

    def __init__(self, graph: Graph):
        self.graph = graph
        self.allowed = graph.declared_symbols

    def collect(self) -> List[DSLError]:
        errors: List[DSLError] = []
        previous = None
        for node in self.graph.nodes:
            errors.extend(self._check_symbols(node))
            errors.extend(self._check_steps(node))
            if previous is not None:
                errors.extend(self._check_chain(previous, node))
            previous = node
        return errors

    def validate(self) -> Graph:
        """Return the graph unchanged, or raise ValidationError with every problem."""
        errors = self.collect()
        if errors:
            raise ValidationError(errors)
        return self.graph

    def _check_symbols(self, node: GraphNode) -> List[DSLError]:
        names = set(node.inferred_shape.free_symbols()) | set(node.output_shape.free_symbols())
        for step in node.steps:
            for value in step.params.values():
                if is_dim_like(value):
                    names |= free_symbols(value)
        return [UndeclaredSymbolError(name, node=node.index) for name in sorted(names - self.allowed)]

    def _check_steps(self, node: GraphNode) -> List[DSLError]:
        errors: List[DSLError] = []
        for step in node.steps:
            if step.layer_type is None:
                errors.append(NotFoundError("<missing>").at_node(node.index))
                continue

            rule = step.layer_type.rule
            rank = step.input_shape.rank
            if not rule.accepts_rank(rank):
                errors.append(ShapeArityError(step.layer, rule.expected_rank(), rank, node=node.index))

            out_rank = step.output_shape.rank
            for param in step.layer_type.axis_params:
                axis = step.params.get(param)
                if axis is not None and resolve_axis(axis, out_rank) is None:
                    errors.append(AxisRangeError(step.layer, param, axis, out_rank, node=node.index))
        return errors

    def _check_chain(self, previous: GraphNode, node: GraphNode) -> List[DSLError]:
        if node.input_shape.rank != previous.output_shape.rank:
            return [
                ShapeArityError(
                    node.layers[0] if node.steps else None,
                    str(previous.output_shape.rank),
                    node.input_shape.rank,
                    node=node.index,
                )
            ]
        if node.steps and node.steps[0].input_shape.rank != previous.output_shape.rank:
            return [
                ShapeArityError(
                    node.steps[0].layer,
                    str(previous.output_shape.rank),
                    node.steps[0].input_shape.rank,
                    node=node.index,
                )
            ]
        return []


def validate_graph(graph: Graph) -> Graph:
    """Validate a graph; raises ValidationError carrying every diagnostic."""
    return GraphValidator(graph).validate()
