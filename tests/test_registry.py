"""Tests for the layer registry and the shape rules of the standard library."""

import pytest

from n3core.dsl.dim import ConcreteDimValue, Dim, Placeholder, equivalent
from n3core.dsl.errors import (
    DSLArithmeticError,
    ErrorCode,
    KernelExtentError,
    NotFoundError,
    RegistryFrozenError,
    ShapeArityError,
    ShapeMismatchError,
)
from n3core.dsl.registry import LayerRegistry
from n3core.dsl.rules import RuleKind, ShapeRule, resolve_axis
from n3core.dsl.types import ParameterSet, Shape, ValueType

H, W = Dim("H"), Dim("W")


def _placeholder(key):
    return Placeholder(f"test.{key}", param=key)


def _apply(registry, layer, shape, **params):
    layer_type = registry.lookup(layer)
    merged = layer_type.defaults.merged({k.replace("_", " "): v for k, v in params.items()})
    return layer_type.rule.apply(layer, shape, merged, _placeholder)


# ---------------------------------------------------------------------------
# Registration and lookup
# ---------------------------------------------------------------------------


def test_standard_library_is_available(registry):
    layers = registry.list_layers()
    for name in ("Conv2d", "Linear", "ReLU", "Softmax", "Transform", "MaxPool2d"):
        assert name in layers
    assert "Activations" in registry.list_groups()


def test_lookup_unknown_raises_not_found(registry):
    with pytest.raises(NotFoundError) as excinfo:
        registry.lookup("Conv9d")
    assert excinfo.value.code == ErrorCode.E002
    assert isinstance(excinfo.value, LookupError)


def test_lookup_group_name_suggests_members(registry):
    with pytest.raises(NotFoundError) as excinfo:
        registry.lookup("Activations")
    assert "group" in excinfo.value.hint


def test_expand_group_and_layer(registry):
    assert "ReLU" in registry.expand("Activations")
    assert registry.expand("Conv2d") == ("Conv2d",)
    with pytest.raises(NotFoundError):
        registry.expand("Nope")


def test_default_registry_is_frozen(registry):
    assert registry.frozen
    with pytest.raises(RegistryFrozenError) as excinfo:
        registry.register("Identity", {}, ShapeRule(RuleKind.POINTWISE))
    assert excinfo.value.code == ErrorCode.E015


def test_register_custom_layer(open_registry):
    layer = open_registry.register("Scale", {"factor": 2.0}, ShapeRule(RuleKind.POINTWISE))
    assert open_registry.lookup("Scale") is layer
    assert layer.spec("factor").value_type is ValueType.REAL
    assert dict(layer.defaults) == {"factor": 2.0}


def test_register_group_requires_known_members():
    registry = LayerRegistry()
    with pytest.raises(NotFoundError):
        registry.register_group("Mine", ["Missing"])


def test_parameter_lookup_by_alias(registry):
    conv = registry.lookup("Conv2d")
    assert conv.spec("S").name == "stride"
    assert conv.spec("stride").alias == "S"
    assert conv.spec("K").name == "kernel size"
    assert conv.spec("nope") is None
    assert conv.spec("output channels").required


# ---------------------------------------------------------------------------
# Convolution
# ---------------------------------------------------------------------------


def test_convolution_divides_spatial_axes_by_stride(registry):
    outcome = _apply(registry, "Conv2d", Shape.of("C", H, W), output_channels=32, stride=2)
    assert outcome.shape.equivalent(Shape.of(32, H / 2, W / 2))


def test_convolution_derives_input_channels(registry):
    outcome = _apply(registry, "Conv2d", Shape.of("C", H, W), output_channels=32)
    assert outcome.derived["input channels"] == Dim("C")


def test_convolution_without_output_channels_emits_placeholder(registry):
    outcome = _apply(registry, "Conv2d", Shape.of(3, H, W))
    channels = outcome.shape[0]
    assert isinstance(channels, Placeholder)
    assert outcome.derived["output channels"] is channels


def test_convolution_checks_input_channels(registry):
    with pytest.raises(ShapeMismatchError) as excinfo:
        _apply(registry, "Conv2d", Shape.of(3, H, W), input_channels=1, output_channels=8)
    assert excinfo.value.code == ErrorCode.E006


def test_convolution_rejects_wrong_rank(registry):
    with pytest.raises(ShapeArityError) as excinfo:
        _apply(registry, "Conv2d", Shape.of(H, W), output_channels=8)
    assert excinfo.value.rank == 2
    assert excinfo.value.code == ErrorCode.E005


def test_convolution_rejects_zero_stride(registry):
    with pytest.raises(DSLArithmeticError):
        _apply(registry, "Conv2d", Shape.of(3, H, W), output_channels=8, stride=0)


def test_kernel_larger_than_concrete_extent(registry):
    with pytest.raises(KernelExtentError) as excinfo:
        _apply(registry, "Conv2d", Shape.of(3, 4, 4), output_channels=8, kernel_size=5)
    assert excinfo.value.code == ErrorCode.E013


def test_kernel_check_deferred_for_symbolic_extent(registry):
    outcome = _apply(registry, "Conv2d", Shape.of(3, H, 28), output_channels=8, kernel_size=5)
    assert outcome.shape.equivalent(Shape.of(8, H, 28))


def test_kernel_checked_against_bound_extent(registry):
    layer_type = registry.lookup("Conv2d")
    params = layer_type.defaults.merged({"output channels": 8, "kernel size": 5})
    bindings = {"L": ConcreteDimValue(3)}
    with pytest.raises(KernelExtentError):
        layer_type.rule.apply("Conv2d", Shape.of(3, "L", "L"), params, _placeholder, bindings)
    outcome = layer_type.rule.apply("Conv2d", Shape.of(3, "L", "L"), params, _placeholder, {"L": 7})
    assert outcome.shape == Shape.of(8, "L", "L")


def test_input_channels_compared_under_bindings(registry):
    layer_type = registry.lookup("Linear")
    params = layer_type.defaults.merged({"input features": 10, "output features": 2})
    outcome = layer_type.rule.apply("Linear", Shape.of("N"), params, _placeholder, {"N": 10})
    assert outcome.shape == Shape.of(2)


def test_conv1d_and_conv3d_ranks(registry):
    assert _apply(registry, "Conv1d", Shape.of(3, "L"), output_channels=4).shape.rank == 2
    assert _apply(registry, "Conv3d", Shape.of(3, "D", H, W), output_channels=4).shape.rank == 4


# ---------------------------------------------------------------------------
# Other families
# ---------------------------------------------------------------------------


def test_pooling_keeps_channels(registry):
    outcome = _apply(registry, "MaxPool2d", Shape.of(16, H, W))
    assert outcome.shape.equivalent(Shape.of(16, H / 2, W / 2))


def test_dense_maps_features(registry):
    outcome = _apply(registry, "Linear", Shape.of(128), output_features=Dim("N"))
    assert outcome.shape == Shape.of("N")
    with pytest.raises(ShapeArityError):
        _apply(registry, "Linear", Shape.of(4, 4), output_features=10)


def test_pointwise_is_identity(registry):
    shape = Shape.of("C", H, W)
    assert _apply(registry, "ReLU", shape).shape == shape
    assert _apply(registry, "Dropout", shape, probability=0.1).shape == shape


def test_flatten_is_product_of_axes(registry):
    outcome = _apply(registry, "Transform", Shape.of(64, H / 4, W / 4))
    assert outcome.shape.rank == 1
    assert equivalent(outcome.shape[0], 4 * H * W)


def test_softmax_resolves_negative_axis(registry):
    outcome = _apply(registry, "Softmax", Shape.of("N"))
    assert outcome.derived["axis"] == 0
    outcome = _apply(registry, "Softmax", Shape.of("B", "N"), axis=-2)
    assert outcome.derived["axis"] == 0


def test_softmax_leaves_out_of_range_axis(registry):
    outcome = _apply(registry, "Softmax", Shape.of("N"), axis=2)
    assert "axis" not in outcome.derived


def test_resolve_axis():
    assert resolve_axis(-1, 3) == 2
    assert resolve_axis(0, 1) == 0
    assert resolve_axis(3, 3) is None
    assert resolve_axis(-4, 3) is None
    assert resolve_axis(True, 3) is None


def test_resolve_axis_folds_constant_expressions():
    assert resolve_axis(ConcreteDimValue(0) - 1, 2) == 1
    assert resolve_axis(ConcreteDimValue(-1), 3) == 2
    assert resolve_axis(Dim("k"), 2) is None
    assert resolve_axis(ConcreteDimValue(1) / 2, 2) is None


def test_parameter_set_is_immutable():
    params = ParameterSet({"stride": 1})
    merged = params.merged({"stride": 2})
    assert params["stride"] == 1
    assert merged["stride"] == 2
    with pytest.raises(TypeError):
        params["stride"] = 3
