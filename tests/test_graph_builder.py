"""Tests for planning: node numbering, the input node, parameter precedence."""

import pytest

from n3core.dsl.errors import (
    DuplicateOverrideError,
    ErrorCode,
    MissingInputShapeError,
    NonContiguousIndexError,
    ValidationError,
)
from n3core.dsl.graph_builder import GraphBuilder
from n3core.dsl.model import ModelDefinition
from n3core.dsl.resolver import resolve_model

from dsl_helpers import call, lenet, node, type_block, var


def _builder(prog):
    resolved, _ = resolve_model(ModelDefinition.from_ast(prog))
    return GraphBuilder(resolved)


def test_plan_has_one_entry_per_node(lenet_program):
    plan = _builder(lenet_program).plan()
    assert [p.index for p in plan] == [0, 1, 2, 3, 4]
    assert plan[0].steps == ()
    assert [s.layer for s in plan[1].steps] == ["Conv2d", "ReLU"]


def test_gap_in_node_indices():
    prog = lenet(
        nodes=[
            node(0, [], "Ic, H, W"),
            node(1, "Conv2d + ReLU", "32, H/2, W/2"),
            node(3, "Transform", "32 * (H/2) * (W/2)"),
        ]
    )
    with pytest.raises(NonContiguousIndexError) as excinfo:
        _builder(prog).plan()
    assert excinfo.value.expected == 2
    assert excinfo.value.found == 3
    assert excinfo.value.code == ErrorCode.E007


def test_nodes_must_start_at_zero():
    prog = lenet(nodes=[node(1, "ReLU", "C")])
    with pytest.raises(NonContiguousIndexError) as excinfo:
        _builder(prog).plan()
    assert excinfo.value.expected == 0


def test_duplicate_node_index():
    prog = lenet(nodes=[node(0, [], "C"), node(1, "ReLU", "C"), node(1, "ReLU", "C")])
    with pytest.raises(NonContiguousIndexError):
        _builder(prog).plan()


def test_input_node_needs_a_shape():
    prog = lenet(nodes=[node(0, []), node(1, "ReLU", "C")])
    with pytest.raises(MissingInputShapeError) as excinfo:
        _builder(prog).plan()
    assert excinfo.value.code == ErrorCode.E012


# ---------------------------------------------------------------------------
# Parameter precedence
# ---------------------------------------------------------------------------


def _stride_of(prog, index):
    plan = _builder(prog).plan()
    return plan[index].steps[0].params["stride"]


def test_default_applies_without_overrides():
    prog = lenet(type_blocks=[])
    assert _stride_of(prog, 1) == 1


def test_type_block_beats_default():
    prog = lenet(type_blocks=[type_block("Conv2d", stride=2)])
    assert _stride_of(prog, 1) == 2


def test_inline_override_beats_type_block():
    prog = lenet(
        type_blocks=[type_block("Conv2d", stride=2)],
        nodes=[
            node(0, [], "Ic, H, W"),
            node(1, [call("Conv2d", stride=1), "ReLU"], "32, H, W"),
            node(2, "Conv2d + ReLU", "64, H/2, W/2"),
        ],
    )
    assert _stride_of(prog, 1) == 1
    assert _stride_of(prog, 2) == 2


def test_inline_override_by_alias():
    prog = lenet(nodes=[node(0, [], "Ic, H, W"), node(1, [call("Conv2d", S=4)], "8, H/4, W/4")])
    assert _stride_of(prog, 1) == 4


def test_same_inline_parameter_twice():
    prog = lenet(nodes=[node(0, [], "Ic, H, W"), node(1, [call("Conv2d", stride=1, S=2)], "8, H, W")])
    with pytest.raises(ValidationError) as excinfo:
        _builder(prog).plan()
    (error,) = excinfo.value.diagnostics
    assert isinstance(error, DuplicateOverrideError)
    assert error.node == 1


def test_input_symbols_exclude_hyperparameters():
    prog = lenet(
        variables=[var("C", 3, description="input channels")],
        nodes=[node(0, [], "C, H, W"), node(1, "ReLU", "C, H, W")],
    )
    assert _builder(prog).input_symbols() == ("H", "W")
