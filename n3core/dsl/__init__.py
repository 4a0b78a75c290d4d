"""
Model DSL - front-end compiler for declarative neural-network descriptions

A model file names an ordered list of layer nodes, overrides layer parameters
per model or per node, and declares the tensor shape after every node with
symbolic arithmetic over named dimensions:

    use Conv2d
    use Linear
    use Activations
    use Transform

    [LeNet]
        * N: number of classes = 10

        [Conv2d]
            * kernel size = 5
            * stride = 2

        #0 Input                = Ic, H, W
        #1 Conv2d + ReLU        = 32, H/2, W/2
        #2 Conv2d + ReLU        = 64, H/4, W/4
        #3 Transform            = 64 * (H/4) * (W/4)
        #4 Linear + Softmax     = N

Parsing is done elsewhere; this package consumes the AST (`ast_nodes`) and
produces a validated, shape-resolved `Graph` for code generators.

Key components:
- Dim: symbolic dimensions with normalization-aware equivalence
- Registry: layer types (parameter schema + shape rule) and library groups
- Resolver: imports, type overrides, hyperparameters
- GraphBuilder / ShapeInferencer / GraphValidator: the compilation phases
- Compiler: main compilation entry point

Example usage:
    from n3core.dsl import compile_model

    graph = compile_model(program)
    print(graph.output_shape)          # N
    print(graph.bound_shapes()[-1])    # 10
"""

from .ast_nodes import (
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
from .compiler import CompilationResult, Compiler, compile_model, compile_models
from .dim import ConcreteDimValue, Dim, DimExpr, Placeholder, equivalent, evaluate, simplify, substitute
from .errors import (
    AxisRangeError,
    DSLArithmeticError,
    DSLError,
    DSLWarning,
    DuplicateOverrideError,
    ErrorCode,
    InlineModelError,
    KernelExtentError,
    MissingInputShapeError,
    NonContiguousIndexError,
    NotFoundError,
    ParameterTypeError,
    RegistryFrozenError,
    ShapeArityError,
    ShapeMismatchError,
    UndeclaredSymbolError,
    UnknownParameterError,
    UnresolvedImportError,
    ValidationError,
    WarningCode,
    WarningCollector,
)
from .graph_builder import GraphBuilder
from .inference import ShapeInferencer
from .ir import Graph, GraphNode, LayerStep
from .model import ModelDefinition
from .registry import LayerRegistry, LayerType, default_registry
from .resolver import ModelResolver, ResolvedModel, resolve_model
from .rules import RuleKind, ShapeRule
from .types import Hyperparameter, ParameterSet, ParameterSpec, Shape, ValueType
from .validator import GraphValidator, validate_graph
from ..core.config import CompilerOptions, load_options

__all__ = [
    # AST
    "Program",
    "UseDecl",
    "ModelBlock",
    "TypeBlock",
    "VariableDecl",
    "NodeLine",
    "LayerCall",
    "Literal",
    "Identifier",
    "BinaryOp",
    "UnaryOp",
    # Dimensions and types
    "Dim",
    "DimExpr",
    "ConcreteDimValue",
    "Placeholder",
    "equivalent",
    "evaluate",
    "simplify",
    "substitute",
    "Shape",
    "ValueType",
    "ParameterSpec",
    "ParameterSet",
    "Hyperparameter",
    # Registry
    "LayerRegistry",
    "LayerType",
    "RuleKind",
    "ShapeRule",
    "default_registry",
    # Phases
    "ModelDefinition",
    "ModelResolver",
    "ResolvedModel",
    "resolve_model",
    "GraphBuilder",
    "ShapeInferencer",
    "GraphValidator",
    "validate_graph",
    # IR
    "Graph",
    "GraphNode",
    "LayerStep",
    # Compiler
    "Compiler",
    "CompilerOptions",
    "CompilationResult",
    "compile_model",
    "compile_models",
    "load_options",
    # Errors
    "DSLError",
    "DSLWarning",
    "ErrorCode",
    "WarningCode",
    "WarningCollector",
    "ValidationError",
    "DSLArithmeticError",
    "NotFoundError",
    "UnresolvedImportError",
    "DuplicateOverrideError",
    "ShapeArityError",
    "ShapeMismatchError",
    "NonContiguousIndexError",
    "UndeclaredSymbolError",
    "AxisRangeError",
    "ParameterTypeError",
    "UnknownParameterError",
    "MissingInputShapeError",
    "InlineModelError",
    "KernelExtentError",
    "RegistryFrozenError",
]
