"""
Shape Inference

A single sequential pass over the planned nodes. Node i consumes node i-1's
output; each step applies its layer type's shape rule to the previous step's
output. Where a node declares a shape, the inferred shape is checked against
it axis by axis:

- an inferred axis that is a bare placeholder (a required parameter nobody
  set) is bound to the declared axis, and the binding flows back into the
  step parameters;
- any other axis must be equivalent after normalization, with the bound
  hyperparameter values substituted on both sides.

A mismatch is recorded and the declared shape is carried forward, so every
mismatch in the model is reported in one pass. A rule failure on a node with
no declared shape stops the pass: later nodes have no sound input.

An inline model node is one chain of steps; each shape its own node lines
declare is checked, and carried forward, at the step where it falls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from ..utils.logger import get_logger
from .dim import DimLike, Placeholder, resolve_bindings
from .errors import DSLError, DSLWarning, ShapeMismatchError, WarningCode
from .graph_builder import PlannedNode, PlannedStep
from .ir import LayerStep
from .types import Shape


@dataclass(frozen=True)
class InferredNode:
    index: int
    steps: tuple[LayerStep, ...]
    input_shape: Shape
    inferred_shape: Shape
    output_shape: Shape
    declared_shape: Optional[Shape] = None
    label: Optional[str] = None
    submodel: Optional[str] = None


@dataclass
class InferenceResult:
    nodes: list[InferredNode] = field(default_factory=list)
    errors: list[DSLError] = field(default_factory=list)
    warnings: list[DSLWarning] = field(default_factory=list)

    # False when a failure stopped the pass before the last node
    complete: bool = True

    @property
    def success(self) -> bool:
        return self.complete and not self.errors


def placeholder_name(layer: str, node: int, step: int, key: str) -> str:
    suffix = f":{step}" if step else ""
    return f"{layer}#{node}{suffix}.{key}"


class ShapeInferencer:
    """Runs the shape rules over a plan."""

    def __init__(self, trust_declared_shapes: bool = False, hyperparameters: Optional[Mapping[str, Any]] = None):
        self.trust_declared_shapes = trust_declared_shapes
        # Bound hyperparameter values; shapes are compared with these substituted
        self.bindings = resolve_bindings(hyperparameters or {})

    def infer(self, plan: tuple[PlannedNode, ...]) -> InferenceResult:
        result = InferenceResult()
        if not plan:
            result.complete = False
            return result

        first = plan[0]
        input_shape = first.declared_shape
        result.nodes.append(
            InferredNode(0, (), input_shape, input_shape, input_shape, input_shape, first.label)
        )

        current = input_shape
        for planned in plan[1:]:
            node = self._infer_node(planned, current, result)
            if node is None:
                get_logger().debug(f"Shape inference stopped at node #{planned.index}")
                result.complete = False
                break
            result.nodes.append(node)
            current = node.output_shape

        return result

    def _infer_node(
        self,
        planned: PlannedNode,
        input_shape: Shape,
        result: InferenceResult,
    ) -> Optional[InferredNode]:
        steps: list[LayerStep] = []
        shape = input_shape
        pending = list(planned.checkpoints)

        steps, shape = self._check_inner(planned, pending, 0, steps, shape, result)
        for position, planned_step in enumerate(planned.steps):
            try:
                step = self._apply(planned, position, planned_step, shape)
            except DSLError as e:
                result.errors.append(e.at_node(planned.index, planned_step.layer))
                fallback = self._fallback_shape(planned)
                if fallback is None:
                    return None
                return self._node(planned, steps, input_shape, shape, fallback)
            steps.append(step)
            shape = step.output_shape
            steps, shape = self._check_inner(planned, pending, position + 1, steps, shape, result)

        declared = planned.declared_shape
        if declared is None:
            return self._node(planned, steps, input_shape, shape, shape)
        steps, shape = self._reconcile(planned, steps, shape, declared, result)
        return self._node(planned, steps, input_shape, shape, declared)

    def _check_inner(self, planned, pending, done, steps, shape, result):
        """Check the inline model shapes due after `done` steps; carry the declared shape on."""
        while pending and pending[0].after == done:
            checkpoint = pending.pop(0)
            what = f"declared shape of '{planned.submodel}' #{checkpoint.index}"
            steps, _ = self._reconcile(planned, steps, shape, checkpoint.shape, result, what)
            shape = checkpoint.shape
        return steps, shape

    def _fallback_shape(self, planned: PlannedNode) -> Optional[Shape]:
        """Shape later nodes may rely on when a rule failed inside this node."""
        if planned.declared_shape is not None:
            return planned.declared_shape
        if planned.checkpoints and planned.checkpoints[-1].after == len(planned.steps):
            return planned.checkpoints[-1].shape
        return None

    def _node(self, planned, steps, input_shape, inferred, output) -> InferredNode:
        return InferredNode(
            planned.index,
            tuple(steps),
            input_shape,
            inferred,
            output,
            planned.declared_shape,
            planned.label,
            planned.submodel,
        )

    def _reconcile(
        self,
        planned: PlannedNode,
        steps: list[LayerStep],
        shape: Shape,
        declared: Shape,
        result: InferenceResult,
        what: str = "declared shape",
    ) -> tuple[list[LayerStep], Shape]:
        """Bind placeholders against a declared shape, then record any mismatch."""
        bindings = unify(shape, declared)
        if bindings:
            get_logger().debug(
                f"node #{planned.index}: bound "
                + ", ".join(f"{name} = {value}" for name, value in bindings.items())
            )
            shape = shape.substitute(bindings)
            steps = [step.substitute(bindings) for step in steps]

        layer = steps[-1].layer if steps else None
        mismatch = self._check_declared(planned.index, shape, declared, layer, what)
        if mismatch is not None:
            if self.trust_declared_shapes:
                result.warnings.append(
                    DSLWarning(
                        WarningCode.W003,
                        f"{what} ({declared}) trusted over inferred shape ({shape})",
                        node=planned.index,
                        layer=layer,
                    )
                )
            else:
                result.errors.append(mismatch)
        return steps, shape

    def _apply(self, planned: PlannedNode, position: int, planned_step: PlannedStep, shape: Shape) -> LayerStep:
        layer_type = planned_step.layer_type

        def make_placeholder(key: str) -> Placeholder:
            spec = layer_type.spec(key)
            short = spec.alias if spec is not None and spec.alias else key
            return Placeholder(
                placeholder_name(layer_type.name, planned.index, position, short),
                node=planned.index,
                layer=layer_type.name,
                param=key,
            )

        outcome = layer_type.rule.apply(
            layer_type.name, shape, planned_step.params, make_placeholder, self.bindings
        )
        params = planned_step.params.merged(outcome.derived)
        return LayerStep(layer_type, params, shape, outcome.shape)

    def _check_declared(
        self,
        node: int,
        inferred: Shape,
        declared: Shape,
        layer: Optional[str],
        what: str,
    ) -> Optional[ShapeMismatchError]:
        if inferred.rank != declared.rank:
            return ShapeMismatchError(node, declared, inferred, layer=layer, what=what)
        axes = inferred.mismatched_axes(declared, self.bindings)
        if axes:
            return ShapeMismatchError(node, declared, inferred, axis=axes[0], layer=layer, what=what)
        return None


def unify(inferred: Shape, declared: Shape) -> dict[str, DimLike]:
    """Bind bare placeholder axes of `inferred` to the matching declared axes."""
    if inferred.rank != declared.rank:
        return {}
    bindings: dict[str, DimLike] = {}
    for have, want in zip(inferred, declared):
        if isinstance(have, Placeholder) and have.name not in bindings:
            bindings[have.name] = want
    return bindings
