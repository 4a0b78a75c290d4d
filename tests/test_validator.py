"""Tests for the final graph validation pass."""

import pytest

from n3core.dsl.errors import (
    AxisRangeError,
    ErrorCode,
    ShapeArityError,
    UndeclaredSymbolError,
    ValidationError,
)
from n3core.dsl.graph_builder import GraphBuilder
from n3core.dsl.inference import ShapeInferencer
from n3core.dsl.ir import Graph
from n3core.dsl.model import ModelDefinition
from n3core.dsl.resolver import resolve_model
from n3core.dsl.validator import GraphValidator, validate_graph

from dsl_helpers import call, lenet, node


def _graph(prog) -> Graph:
    resolved, _ = resolve_model(ModelDefinition.from_ast(prog))
    builder = GraphBuilder(resolved)
    return builder.assemble(ShapeInferencer(hyperparameters=resolved.hyperparameter_values).infer(builder.plan()))


def test_lenet_graph_is_valid(lenet_program):
    graph = _graph(lenet_program)
    assert validate_graph(graph) is graph
    assert GraphValidator(graph).collect() == []


def test_symbol_not_declared_anywhere():
    prog = lenet(nodes=[node(0, [], "Ic, H, W"), node(1, "ReLU", "Ic, H, K")])
    errors = GraphValidator(_graph(prog)).collect()
    symbols = {e.symbol for e in errors if isinstance(e, UndeclaredSymbolError)}
    assert "K" in symbols


def test_hyperparameters_and_input_symbols_are_declared(lenet_program):
    graph = _graph(lenet_program)
    assert graph.declared_symbols == {"N", "Ic", "H", "W"}


def test_unbound_placeholder_is_reported():
    prog = lenet(nodes=[node(0, [], "Ic, H, W"), node(1, "Conv2d")])
    errors = GraphValidator(_graph(prog)).collect()
    assert [e.code for e in errors] == [ErrorCode.E008]
    assert errors[0].symbol.startswith("Conv2d#1")


def test_inline_symbol_in_parameters_is_checked():
    prog = lenet(nodes=[node(0, [], "Ic, H, W"), node(1, [call("Conv2d", K="Q")], "8, H/2, W/2")])
    errors = GraphValidator(_graph(prog)).collect()
    assert [e.symbol for e in errors] == ["Q"]


def test_softmax_axis_out_of_range():
    prog = lenet(
        nodes=[
            node(0, [], "Ic, H, W"),
            node(1, "Transform", "Ic * H * W"),
            node(2, [call("Softmax", axis=1)], "Ic * H * W"),
        ]
    )
    errors = GraphValidator(_graph(prog)).collect()
    (error,) = errors
    assert isinstance(error, AxisRangeError)
    assert error.axis == 1
    assert error.rank == 1
    assert error.code == ErrorCode.E009


def test_softmax_negative_axis_in_range():
    prog = lenet(
        nodes=[
            node(0, [], "Ic, H, W"),
            node(1, [call("Softmax", dim=-3)], "Ic, H, W"),
        ]
    )
    graph = _graph(prog)
    assert GraphValidator(graph).collect() == []
    assert graph.node(1).steps[0].params["axis"] == 0


def test_rank_disagreement_between_nodes(lenet_program):
    graph = _graph(lenet_program)
    broken_node = graph.nodes[4].__class__(
        index=4,
        steps=graph.nodes[4].steps,
        input_shape=graph.nodes[1].output_shape,
        inferred_shape=graph.nodes[4].inferred_shape,
        output_shape=graph.nodes[4].output_shape,
        declared_shape=graph.nodes[4].declared_shape,
    )
    broken = Graph(graph.name, graph.nodes[:4] + (broken_node,), graph.hyperparameters, graph.input_symbols)
    with pytest.raises(ValidationError) as excinfo:
        validate_graph(broken)
    assert all(isinstance(d, ShapeArityError) for d in excinfo.value.diagnostics)
