"""
Standard Layer Types

The layer catalog that `use` statements resolve against by default.
Parameter names follow the DSL's descriptive style (`kernel size`), with the
short alias a model file may use instead (`K`).
"""

from __future__ import annotations

from ..registry import LayerRegistry, LayerType
from ..rules import (
    AXIS,
    INPUT_CHANNELS,
    INPUT_FEATURES,
    KERNEL_SIZE,
    OUTPUT_CHANNELS,
    OUTPUT_FEATURES,
    STRIDE,
    RuleKind,
    ShapeRule,
)
from ..types import ParameterSpec, ValueType


def _conv(name: str, spatial_rank: int) -> LayerType:
    return LayerType(
        name=name,
        parameters=(
            ParameterSpec(INPUT_CHANNELS, alias="Ci", value_type=ValueType.DIM,
                          description="channels of the incoming tensor"),
            ParameterSpec(OUTPUT_CHANNELS, alias="Co", value_type=ValueType.DIM,
                          description="channels produced; taken from the declared shape when unset"),
            ParameterSpec(KERNEL_SIZE, 3, alias="K"),
            ParameterSpec(STRIDE, 1, alias="S"),
            ParameterSpec("bias", True),
        ),
        rule=ShapeRule(RuleKind.CONVOLUTION, spatial_rank=spatial_rank),
        description=f"{spatial_rank}-d convolution",
    )


def _pool(name: str, spatial_rank: int) -> LayerType:
    return LayerType(
        name=name,
        parameters=(
            ParameterSpec(KERNEL_SIZE, 2, alias="K"),
            ParameterSpec(STRIDE, 2, alias="S"),
        ),
        rule=ShapeRule(RuleKind.POOLING, spatial_rank=spatial_rank),
        description=f"{spatial_rank}-d pooling",
    )


def _pointwise(name: str, *parameters: ParameterSpec) -> LayerType:
    return LayerType(
        name=name,
        parameters=parameters,
        rule=ShapeRule(RuleKind.POINTWISE),
        description="elementwise",
    )


def _softmax(name: str) -> LayerType:
    return LayerType(
        name=name,
        parameters=(ParameterSpec(AXIS, -1, alias="dim", value_type=ValueType.INT),),
        rule=ShapeRule(RuleKind.SOFTMAX),
        axis_params=(AXIS,),
        description="normalization over one axis",
    )


STANDARD_LAYERS: tuple[LayerType, ...] = (
    _conv("Conv1d", 1),
    _conv("Conv2d", 2),
    _conv("Conv3d", 3),
    _pool("MaxPool2d", 2),
    _pool("AvgPool2d", 2),
    LayerType(
        name="Linear",
        parameters=(
            ParameterSpec(INPUT_FEATURES, alias="Ci", value_type=ValueType.DIM),
            ParameterSpec(OUTPUT_FEATURES, alias="Co", value_type=ValueType.DIM),
            ParameterSpec("bias", True),
        ),
        rule=ShapeRule(RuleKind.DENSE),
        description="fully connected",
    ),
    LayerType(
        name="Transform",
        rule=ShapeRule(RuleKind.FLATTEN),
        description="flatten every axis into one",
    ),
    _pointwise("ReLU"),
    _pointwise("Sigmoid"),
    _pointwise("Tanh"),
    _pointwise("GELU"),
    _pointwise("LeakyReLU", ParameterSpec("negative slope", 0.01, alias="alpha")),
    _pointwise("Dropout", ParameterSpec("probability", 0.5, alias="p")),
    _softmax("Softmax"),
    _softmax("LogSoftmax"),
)

STANDARD_GROUPS: dict[str, tuple[str, ...]] = {
    "Activations": ("ReLU", "Sigmoid", "Tanh", "GELU", "LeakyReLU", "Softmax", "LogSoftmax"),
    "Convolutions": ("Conv1d", "Conv2d", "Conv3d"),
    "Pooling": ("MaxPool2d", "AvgPool2d"),
    "Flatten": ("Transform",),
}


def install_standard_library(registry: LayerRegistry) -> LayerRegistry:
    """Register every standard layer and group into `registry`."""
    for layer in STANDARD_LAYERS:
        registry.register_layer(layer)
    for group, members in STANDARD_GROUPS.items():
        registry.register_group(group, members)
    return registry
