"""Builders for model ASTs, so tests can write shapes the way model files do.

    shape("32, H/2, W/2")
    node(1, ["Conv2d", "ReLU"], "32, H/2, W/2")
    node(2, [call("Conv2d", stride=1)], "64, H/2, W/2")
    inline(2, "Inner Model", [node(1, "Linear", "22")])
"""

import ast as pyast

from n3core.dsl.ast_nodes import (
    BinaryOp,
    Identifier,
    LayerCall,
    Literal,
    ModelBlock,
    NodeLine,
    Program,
    TypeBlock,
    UnaryOp,
    UseDecl,
    VariableDecl,
)

_BINOPS = {pyast.Add: "+", pyast.Sub: "-", pyast.Mult: "*", pyast.Div: "/"}


def _convert(node):
    if isinstance(node, pyast.Constant):
        return Literal(node.value)
    if isinstance(node, pyast.Name):
        return Identifier(node.id)
    if isinstance(node, pyast.BinOp):
        return BinaryOp(_convert(node.left), _BINOPS[type(node.op)], _convert(node.right))
    if isinstance(node, pyast.UnaryOp) and isinstance(node.op, pyast.USub):
        return UnaryOp("-", _convert(node.operand))
    raise ValueError(f"unsupported expression: {pyast.dump(node)}")


def expr(text: str):
    return _convert(pyast.parse(text, mode="eval").body)


def shape(text: str):
    tree = pyast.parse(f"({text},)", mode="eval").body
    return [_convert(elt) for elt in tree.elts]


def value(v):
    if v is None:
        return None
    if isinstance(v, str):
        return expr(v)
    return Literal(v)


def var(key: str, v=None, description: str = None):
    """`* key = v`; with `description`, `key` is the alias: `* key: description = v`."""
    if description is not None:
        return VariableDecl(description, value(v), alias=key)
    return VariableDecl(key, value(v))


def call(name: str, **overrides):
    """Layer call with inline overrides; underscores in keys become spaces."""
    return LayerCall(name, [var(k.replace("_", " "), v) for k, v in overrides.items()])


def repeated(name: str, times, **overrides):
    """Layer call applied `times` times in a row."""
    layer_call = call(name, **overrides)
    layer_call.repeat = times
    return layer_call


def node(index: int, calls=(), shape_text: str = None, label: str = None):
    if isinstance(calls, str):
        calls = [c.strip() for c in calls.split("+")]
    calls = [call(c) if isinstance(c, str) else c for c in calls]
    return NodeLine(
        index=index,
        calls=calls,
        shape=shape(shape_text) if shape_text is not None else None,
        label=label,
    )


def inline(index: int, name: str, nodes, shape_text: str = None, variables=(), type_blocks=()):
    """`#index [name]` node holding an inline model with its own node lines."""
    return NodeLine(
        index=index,
        shape=shape(shape_text) if shape_text is not None else None,
        model=ModelBlock(name=name, variables=list(variables), type_blocks=list(type_blocks), nodes=list(nodes)),
    )


def type_block(name: str, **assignments):
    return TypeBlock(name, [var(k.replace("_", " "), v) for k, v in assignments.items()])


def program(name: str, uses, nodes, variables=(), type_blocks=()):
    return Program(
        uses=[UseDecl(u) for u in uses],
        model=ModelBlock(
            name=name,
            variables=list(variables),
            type_blocks=list(type_blocks),
            nodes=list(nodes),
        ),
    )


def lenet(**overrides):
    """The LeNet model file, with optional replacements of its parts."""
    parts = dict(
        uses=["Conv2d", "Linear", "Activations", "Transform"],
        variables=[var("N", 10, description="number of classes")],
        type_blocks=[type_block("Conv2d", kernel_size=5, stride=2)],
        nodes=[
            node(0, [], "Ic, H, W", label="Input"),
            node(1, "Conv2d + ReLU", "32, H/2, W/2"),
            node(2, "Conv2d + ReLU", "64, H/4, W/4"),
            node(3, "Transform", "64 * (H/4) * (W/4)"),
            node(4, "Linear + Softmax", "N"),
        ],
    )
    parts.update(overrides)
    return program("LeNet", **parts)
