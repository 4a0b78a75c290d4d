"""
Graph IR for the model DSL

The artifact the compiler hands to code generators: an immutable linear chain
of nodes, each an ordered composition of layer steps with final merged
parameters and the shape before and after every step.

Shapes stay symbolic. `Graph.bound_shapes()` substitutes the model's bound
hyperparameters (and any extra bindings) when a concrete view is wanted.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .dim import ConcreteDimValue, Dim, DimExpr, DimLike, dim_to_ir, resolve_bindings
from .registry import LayerType
from .types import Hyperparameter, ParameterSet, Shape


@dataclass(frozen=True)
class LayerStep:
    """One layer application inside a node."""

    layer_type: LayerType
    params: ParameterSet
    input_shape: Shape
    output_shape: Shape

    @property
    def layer(self) -> str:
        return self.layer_type.name

    def substitute(self, mapping: Mapping[str, DimLike]) -> "LayerStep":
        return LayerStep(
            self.layer_type,
            self.params.substitute(mapping),
            self.input_shape.substitute(mapping),
            self.output_shape.substitute(mapping),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layer": self.layer,
            "rule": self.layer_type.rule.kind.value,
            "params": self.params.to_dict(),
            "input_shape": self.input_shape.to_ir(),
            "output_shape": self.output_shape.to_ir(),
        }


@dataclass(frozen=True)
class GraphNode:
    """A node of the resolved graph.

    `inferred_shape` is what the shape rules produced; `output_shape` is what
    the next node consumes (the declared shape when there is one, which is
    equivalent to the inferred one in a successful compilation).
    """

    index: int
    steps: Tuple[LayerStep, ...]
    input_shape: Shape
    inferred_shape: Shape
    output_shape: Shape
    declared_shape: Optional[Shape] = None
    label: Optional[str] = None
    submodel: Optional[str] = None  # name of the inline model this node holds

    @property
    def is_input(self) -> bool:
        return self.index == 0

    @property
    def layers(self) -> Tuple[str, ...]:
        return tuple(step.layer for step in self.steps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "label": self.label,
            "submodel": self.submodel,
            "steps": [step.to_dict() for step in self.steps],
            "input_shape": self.input_shape.to_ir(),
            "output_shape": self.output_shape.to_ir(),
            "declared_shape": self.declared_shape.to_ir() if self.declared_shape is not None else None,
        }


@dataclass(frozen=True)
class Graph:
    """Resolved, shape-checked model graph."""

    name: str
    nodes: Tuple[GraphNode, ...]
    hyperparameters: Tuple[Hyperparameter, ...] = ()
    input_symbols: Tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.nodes)

    def node(self, index: int) -> GraphNode:
        return self.nodes[index]

    @property
    def edges(self) -> List[Tuple[int, int]]:
        """The implicit chain: node i feeds node i + 1."""
        return [(i, i + 1) for i in range(len(self.nodes) - 1)]

    @property
    def input_shape(self) -> Shape:
        return self.nodes[0].output_shape

    @property
    def output_shape(self) -> Shape:
        return self.nodes[-1].output_shape

    @property
    def hyperparameter_values(self) -> Dict[str, Any]:
        return {hp.symbol: hp.value for hp in self.hyperparameters if hp.is_bound}

    @property
    def declared_symbols(self) -> set:
        """Symbols a shape may mention: hyperparameters plus input symbols."""
        return {hp.symbol for hp in self.hyperparameters} | set(self.input_symbols)

    def _bindings(self, bindings: Optional[Mapping[str, DimLike]]) -> Dict[str, DimLike]:
        mapping: Dict[str, Any] = dict(self.hyperparameter_values)
        if bindings:
            mapping.update(bindings)
        return resolve_bindings(mapping)

    def bound_shape(self, index: int, bindings: Optional[Mapping[str, DimLike]] = None) -> Shape:
        """Output shape of one node with hyperparameters (and `bindings`) substituted."""
        return self.nodes[index].output_shape.substitute(self._bindings(bindings)).simplify()

    def bound_shapes(self, bindings: Optional[Mapping[str, DimLike]] = None) -> List[Shape]:
        """Output shape of every node with hyperparameters (and `bindings`) substituted."""
        mapping = self._bindings(bindings)
        return [node.output_shape.substitute(mapping).simplify() for node in self.nodes]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "hyperparameters": {
                hp.symbol: {"description": hp.description, "value": _plain(hp.value)}
                for hp in self.hyperparameters
            },
            "input_symbols": list(self.input_symbols),
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [list(edge) for edge in self.edges],
        }


def _plain(value: Any) -> Any:
    if isinstance(value, (Dim, DimExpr, ConcreteDimValue)):
        return dim_to_ir(value)
    return value
